from datetime import datetime, timezone
from unittest import TestCase

from apps.insights.core.config import ProfilingConfig
from apps.insights.core.exceptions import InvalidDatasetError
from apps.insights.services.profiler import (
    DatasetProfiler,
    infer_column_type,
    profile_all_columns,
    profile_column,
)


class TestTypeInference(TestCase):
    def test_numeric(self):
        self.assertEqual(infer_column_type([1, 2, 3.5, "4", "$1,200.50"]), "numeric")

    def test_boolean_words(self):
        self.assertEqual(infer_column_type(["yes", "no", "Yes", None]), "boolean")
        self.assertEqual(infer_column_type([True, False, True]), "boolean")

    def test_boolean_zero_one_needs_both_values(self):
        self.assertEqual(infer_column_type([0, 1, 1, 0]), "boolean")
        self.assertEqual(infer_column_type([1, 1, 1]), "numeric")

    def test_date(self):
        values = ["2024-01-01", "2024-02-15", "03/20/2024", None]
        self.assertEqual(infer_column_type(values), "date")

    def test_category_vs_text(self):
        self.assertEqual(infer_column_type(["a", "b", "a", "b"]), "category")
        sentences = [
            "The quick brown fox",
            "Another long sentence here",
            "Third unique line of text",
        ]
        self.assertEqual(infer_column_type(sentences), "text")

    def test_mixed_when_nothing_dominates(self):
        stats = profile_column("misc", [1, "a", "2024-01-01", True])
        self.assertEqual(stats.inferred_type, "mixed")
        self.assertEqual(stats.type, "mixed")
        self.assertAlmostEqual(stats.quality.consistency, 0.25)

    def test_consistency_is_winning_share(self):
        stats = profile_column("n", [1, 2, 3, 4, 5, 6, 7, 8, 9, "x"])
        self.assertEqual(stats.inferred_type, "numeric")
        self.assertAlmostEqual(stats.quality.consistency, 0.9)

    def test_threshold_is_configurable(self):
        strict = ProfilingConfig(type_confidence_threshold=1.0)
        values = [1, 2, 3, 4, 5, 6, 7, 8, 9, "x"]
        self.assertEqual(infer_column_type(values, strict), "mixed")


class TestColumnStatistics(TestCase):
    def setUp(self):
        self.profiler = DatasetProfiler()

    def test_numeric_stats_use_population_std(self):
        stats = self.profiler.profile_column("v", [2, 4, 4, 4, 5, 5, 7, 9])
        self.assertEqual(stats.min, 2.0)
        self.assertEqual(stats.max, 9.0)
        self.assertEqual(stats.mean, 5.0)
        self.assertEqual(stats.median, 4.5)
        self.assertAlmostEqual(stats.standard_deviation, 2.0)
        self.assertEqual(stats.mode, 4)
        self.assertEqual(stats.unique_values, 5)

    def test_median_odd_count(self):
        stats = self.profiler.profile_column("v", [3, 1, 2])
        self.assertEqual(stats.median, 2.0)

    def test_mode_ties_keep_first_seen(self):
        stats = self.profiler.profile_column("c", ["b", "a", "a", "b", "c", "c"])
        self.assertEqual(stats.mode, "b")

    def test_non_numeric_columns_have_no_numeric_stats(self):
        stats = self.profiler.profile_column("c", ["a", "b", "a", "b"])
        self.assertIsNone(stats.mean)
        self.assertIsNone(stats.standard_deviation)

    def test_boolean_mode(self):
        stats = self.profiler.profile_column("flag", [True, False, True])
        self.assertIs(stats.mode, True)

    def test_null_tokens_are_missing(self):
        stats = self.profiler.profile_column("v", [1, None, "", "  ", "NULL", float("nan")])
        self.assertEqual(stats.null_count, 5)
        self.assertEqual(stats.non_null_count, 1)
        self.assertAlmostEqual(stats.quality.completeness, 1 / 6)


class TestOutliers(TestCase):
    def test_iqr_flags_only_the_extreme_value(self):
        stats = profile_column("v", [1, 2, 3, 4, 5, 100])
        self.assertEqual(stats.outliers.method, "iqr")
        self.assertEqual(stats.outliers.count, 1)
        self.assertEqual(stats.outliers.values, [100.0])

    def test_skipped_below_minimum_sample(self):
        stats = profile_column("v", [1, 2, 100])
        self.assertEqual(stats.inferred_type, "numeric")
        self.assertIsNone(stats.outliers)

    def test_clean_column_reports_zero(self):
        stats = profile_column("v", [1, 2, 3, 4, 5])
        self.assertEqual(stats.outliers.count, 0)
        self.assertEqual(stats.outliers.values, [])

    def test_sample_is_capped_in_row_order(self):
        config = ProfilingConfig(outlier_sample_cap=2)
        values = [1000, 1, 2, 3, 4, 5, 6, 7, 8, 9, 10, 2000, 3000]
        stats = profile_column("v", values, config)
        self.assertEqual(stats.outliers.count, 3)
        self.assertEqual(stats.outliers.values, [1000.0, 2000.0])

    def test_zscore(self):
        config = ProfilingConfig(outlier_method="zscore")
        values = [5] * 10 + [6] * 9 + [100]
        stats = profile_column("v", values, config)
        self.assertEqual(stats.outliers.method, "zscore")
        self.assertEqual(stats.outliers.values, [100.0])

    def test_isolation_is_deterministic(self):
        config = ProfilingConfig(outlier_method="isolation")
        values = [1000] + list(range(10, 30))
        first = profile_column("v", values, config)
        second = profile_column("v", values, config)
        self.assertEqual(first.outliers.method, "isolation")
        self.assertIn(1000.0, first.outliers.values)
        self.assertEqual(first.outliers, second.outliers)

    def test_constant_column_has_no_outliers(self):
        stats = profile_column("v", [7, 7, 7, 7, 7])
        self.assertEqual(stats.outliers.count, 0)


class TestCategoriesAndDates(TestCase):
    def test_top_categories_sorted_with_first_seen_ties(self):
        stats = profile_column("c", ["b", "a", "a", "b", "c", "c", "a", "d"])
        top = [(c.value, c.count) for c in stats.top_categories]
        self.assertEqual(top, [("a", 3), ("b", 2), ("c", 2), ("d", 1)])
        self.assertAlmostEqual(stats.top_categories[0].percentage, 3 / 8)

    def test_top_categories_limit(self):
        config = ProfilingConfig(top_categories_limit=2)
        stats = profile_column("c", ["a", "a", "b", "b", "c", "c", "d", "d"], config)
        self.assertEqual([c.value for c in stats.top_categories], ["a", "b"])
        self.assertEqual(stats.unique_values, 4)

    def test_date_range_span_in_days(self):
        stats = profile_column("d", ["2024-01-01", "2024-03-01", "2024-02-01"])
        self.assertEqual(stats.inferred_type, "date")
        self.assertEqual(stats.date_range.span, 60)
        self.assertEqual(
            stats.date_range.min, datetime(2024, 1, 1, tzinfo=timezone.utc)
        )
        self.assertEqual(
            stats.date_range.max, datetime(2024, 3, 1, tzinfo=timezone.utc)
        )

    def test_date_range_is_utc_normalized(self):
        stats = profile_column(
            "d", ["2024-01-01T23:00:00-05:00", "2024-01-02T04:00:00Z"]
        )
        self.assertEqual(stats.date_range.span, 0)
        self.assertEqual(stats.unique_values, 1)

    def test_datetime_objects(self):
        stats = profile_column("d", [datetime(2023, 1, 1), datetime(2023, 1, 11)])
        self.assertEqual(stats.inferred_type, "date")
        self.assertEqual(stats.date_range.span, 10)


class TestProfileAllColumns(TestCase):
    def setUp(self):
        self.headers = ["id", "amount", "segment", "notes", "empty"]
        self.rows = [
            {"id": 1, "amount": "10.5", "segment": "retail", "notes": "first order"},
            {"id": 2, "amount": 20, "segment": "retail", "notes": None},
            {"id": 3, "amount": "n/a", "segment": "wholesale", "extra": "ignored"},
            {"id": 4, "amount": 7.25, "segment": "retail", "notes": "late delivery"},
            {"id": 5, "amount": 1000, "segment": "wholesale", "notes": ""},
        ]

    def test_one_entry_per_header_in_order(self):
        profiles = profile_all_columns(self.headers, self.rows)
        self.assertEqual([p.name for p in profiles], self.headers)

    def test_details_match_inferred_type(self):
        for stats in profile_all_columns(self.headers, self.rows):
            self.assertEqual(stats.null_count + stats.non_null_count, len(self.rows))
            populated = [
                stats.outliers is not None,
                stats.top_categories is not None,
                stats.date_range is not None,
            ]
            self.assertLessEqual(sum(populated), 1)
            if stats.top_categories is not None:
                self.assertEqual(stats.inferred_type, "category")
            if stats.outliers is not None:
                self.assertEqual(stats.inferred_type, "numeric")
            for value in stats.quality.model_dump().values():
                self.assertGreaterEqual(value, 0.0)
                self.assertLessEqual(value, 1.0)

    def test_all_null_column(self):
        empty = profile_all_columns(self.headers, self.rows)[-1]
        self.assertEqual(empty.inferred_type, "mixed")
        self.assertEqual(empty.quality.completeness, 0.0)
        self.assertEqual(empty.quality.uniqueness, 0.0)
        self.assertIsNone(empty.mode)
        self.assertIsNone(empty.outliers)
        self.assertIsNone(empty.top_categories)
        self.assertIsNone(empty.date_range)

    def test_empty_dataset(self):
        profiles = profile_all_columns(["a", "b"], [])
        self.assertEqual(len(profiles), 2)
        for stats in profiles:
            self.assertEqual(stats.inferred_type, "mixed")
            self.assertEqual(stats.null_count, 0)
            self.assertEqual(stats.quality.completeness, 0.0)

    def test_single_row(self):
        profiles = profile_all_columns(["a", "b"], [{"a": 1, "b": "x"}])
        self.assertEqual(profiles[0].inferred_type, "numeric")
        self.assertIsNone(profiles[0].outliers)
        self.assertEqual(profiles[1].inferred_type, "text")

    def test_oversized_integer_is_profiled_as_text(self):
        stats = profile_all_columns(["n"], [{"n": 10**400}, {"n": 1}])[0]
        self.assertEqual(stats.inferred_type, "mixed")
        self.assertEqual(stats.non_null_count, 2)
        self.assertIsNone(stats.mean)

    def test_duplicate_headers_profile_the_same_values(self):
        profiles = profile_all_columns(["a", "a"], [{"a": 1}, {"a": 2}])
        self.assertEqual(len(profiles), 2)
        self.assertEqual(profiles[0], profiles[1])

    def test_deterministic(self):
        first = profile_all_columns(self.headers, self.rows)
        second = profile_all_columns(self.headers, self.rows)
        self.assertEqual(
            [p.model_dump_json() for p in first], [p.model_dump_json() for p in second]
        )

    def test_payload_uses_contract_names(self):
        amount = profile_all_columns(self.headers, self.rows)[1]
        payload = amount.to_payload()
        self.assertEqual(payload["inferredType"], "numeric")
        self.assertIn("nullCount", payload)
        self.assertIn("standardDeviation", payload)
        self.assertIn("outliers", payload)
        self.assertNotIn("topCategories", payload)
        self.assertNotIn("details", payload)


class TestInputValidation(TestCase):
    def test_headers_must_be_a_list(self):
        with self.assertRaises(InvalidDatasetError):
            profile_all_columns("abc", [])

    def test_headers_must_not_be_empty(self):
        with self.assertRaises(InvalidDatasetError):
            profile_all_columns([], [])

    def test_headers_must_be_strings(self):
        with self.assertRaises(InvalidDatasetError):
            profile_all_columns(["a", 1], [])

    def test_rows_must_be_a_list(self):
        with self.assertRaises(InvalidDatasetError):
            profile_all_columns(["a"], {"a": 1})

    def test_rows_must_be_mappings(self):
        with self.assertRaises(InvalidDatasetError):
            profile_all_columns(["a"], [{"a": 1}, [1]])

    def test_rows_keyed_by_other_headers(self):
        rows = [{"x": 1}, {"y": 2}, {"a": 3}]
        with self.assertRaises(InvalidDatasetError):
            profile_all_columns(["a"], rows)

    def test_missing_keys_are_tolerated(self):
        rows = [{"a": 1}, {"b": 2}, {"a": 3, "b": 4}]
        profiles = profile_all_columns(["a", "b"], rows)
        self.assertEqual(profiles[0].null_count, 1)
        self.assertEqual(profiles[1].null_count, 1)

    def test_invalid_dataset_error_is_a_value_error(self):
        with self.assertRaises(ValueError):
            profile_all_columns([], [])
