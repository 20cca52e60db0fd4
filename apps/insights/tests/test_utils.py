import json
from datetime import datetime
from unittest import TestCase

import numpy as np
import pandas as pd

from apps.insights.core.exceptions import InvalidDatasetError
from apps.insights.core.models import ValueKind
from apps.insights.core.utils import (
    classify_value,
    convert_numpy,
    is_identifier_header,
    is_null,
    parse_number,
    recognize_value,
    stride_sample,
    tokenize_header,
    validate_dataset,
)


class TestRecognizeValue(TestCase):
    def test_nulls(self):
        for value in [None, "", "  ", "NULL", "n/a", "NaN", float("nan"), pd.NaT]:
            self.assertTrue(is_null(value), value)
            self.assertEqual(recognize_value(value), (ValueKind.NULL, None))

    def test_numbers(self):
        self.assertEqual(recognize_value(3), (ValueKind.NUMBER, 3.0))
        self.assertEqual(recognize_value(" 1,234.5 "), (ValueKind.NUMBER, 1234.5))
        self.assertEqual(recognize_value("$99.99"), (ValueKind.NUMBER, 99.99))
        self.assertEqual(recognize_value(np.int64(7)), (ValueKind.NUMBER, 7.0))
        self.assertAlmostEqual(parse_number("12.5%"), 0.125)

    def test_non_finite_numbers_are_not_numbers(self):
        self.assertIsNone(parse_number(float("inf")))
        self.assertEqual(recognize_value("inf")[0], ValueKind.TEXT)

    def test_integers_too_large_for_a_float_are_not_numbers(self):
        self.assertIsNone(parse_number(10**400))
        self.assertIsNone(parse_number(-(10**400)))
        self.assertEqual(recognize_value(10**400)[0], ValueKind.TEXT)

    def test_booleans(self):
        self.assertEqual(recognize_value(True), (ValueKind.BOOLEAN, True))
        self.assertEqual(recognize_value(" Yes "), (ValueKind.BOOLEAN, "Yes"))
        # 0 and 1 stay numbers; the column decides whether they are flags
        self.assertEqual(recognize_value(1)[0], ValueKind.NUMBER)

    def test_dates_are_utc(self):
        kind, stamp = recognize_value("2024-03-15")
        self.assertEqual(kind, ValueKind.DATE)
        self.assertEqual(stamp, pd.Timestamp("2024-03-15", tz="UTC"))

        kind, stamp = recognize_value(datetime(2024, 3, 15, 12, 30))
        self.assertEqual(kind, ValueKind.DATE)
        self.assertEqual(str(stamp.tz), "UTC")

    def test_text(self):
        self.assertEqual(recognize_value("  hello "), (ValueKind.TEXT, "hello"))
        self.assertEqual(recognize_value("2024-13-45x")[0], ValueKind.TEXT)

    def test_classify_value_returns_the_kind_only(self):
        self.assertEqual(classify_value("12"), ValueKind.NUMBER)
        self.assertEqual(classify_value("no"), ValueKind.BOOLEAN)
        self.assertEqual(classify_value(None), ValueKind.NULL)


class TestHeaders(TestCase):
    def test_tokenize(self):
        self.assertEqual(tokenize_header("customerId"), ["customer", "id"])
        self.assertEqual(tokenize_header("Order Date"), ["order", "date"])
        self.assertEqual(tokenize_header("unit-price_usd"), ["unit", "price", "usd"])
        self.assertEqual(tokenize_header(""), [])

    def test_identifier_headers(self):
        for header in ["id", "order_id", "customerId", "user uuid", "ID Number"]:
            self.assertTrue(is_identifier_header(header), header)
        for header in ["idea", "paid", "amount", "key_metric", ""]:
            self.assertFalse(is_identifier_header(header), header)


class TestStrideSample(TestCase):
    def test_short_input_is_unchanged(self):
        self.assertEqual(stride_sample([1, 2, 3], 5), [1, 2, 3])

    def test_keeps_first_and_last(self):
        sampled = stride_sample(list(range(100)), 10)
        self.assertLessEqual(len(sampled), 10)
        self.assertEqual(sampled[0], 0)
        self.assertEqual(sampled[-1], 99)
        self.assertEqual(sampled, sorted(sampled))

    def test_last_item_appended_when_stride_misses_it(self):
        self.assertEqual(stride_sample(list(range(12)), 5), [0, 3, 6, 9, 11])


class TestConvertNumpy(TestCase):
    def test_nested_structures_become_json_safe(self):
        converted = convert_numpy(
            {
                "count": np.int64(3),
                "mean": np.float64(2.5),
                "missing": np.nan,
                "flag": np.bool_(True),
                "when": pd.Timestamp("2024-01-01", tz="UTC"),
                "pair": (np.int32(1), pd.NaT),
                "array": np.array([1, 2]),
            }
        )
        self.assertEqual(
            converted,
            {
                "count": 3,
                "mean": 2.5,
                "missing": None,
                "flag": True,
                "when": "2024-01-01T00:00:00+00:00",
                "pair": [1, None],
                "array": [1, 2],
            },
        )
        json.dumps(converted)


class TestValidateDataset(TestCase):
    def test_accepts_sparse_rows(self):
        headers, rows = validate_dataset(["a", "b"], [{"a": 1}, {}, {"b": 2, "c": 3}])
        self.assertEqual(headers, ["a", "b"])
        self.assertEqual(len(rows), 3)

    def test_rejects_bad_shapes(self):
        with self.assertRaises(InvalidDatasetError):
            validate_dataset([], [])
        with self.assertRaises(InvalidDatasetError):
            validate_dataset(["a", 1], [])
        with self.assertRaises(InvalidDatasetError):
            validate_dataset(["a"], [["a"]])
        with self.assertRaises(InvalidDatasetError):
            validate_dataset(["a"], "rows")

    def test_rejects_rows_keyed_by_other_headers(self):
        with self.assertRaises(InvalidDatasetError):
            validate_dataset(["a"], [{"x": 1}, {"y": 2}, {"a": 3}])
