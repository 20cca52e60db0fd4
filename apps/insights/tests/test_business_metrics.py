from unittest import TestCase

from apps.insights.core.config import ProfilingConfig
from apps.insights.core.constants import EXPENSE_RATIO_GRADES, PROFIT_MARGIN_GRADES
from apps.insights.core.exceptions import InvalidColumnStatsError
from apps.insights.services.business_metrics import (
    BusinessMetricsExtractor,
    extract_business_metrics,
    grade_higher_is_better,
    grade_lower_is_better,
    overall_grade,
)
from apps.insights.services.profiler import profile_all_columns


def metrics_for(dataset_type, headers, rows, config=None):
    stats = profile_all_columns(headers, rows, config)
    return extract_business_metrics(dataset_type, stats, rows, config)


def by_label(result):
    return {m.label: m for m in result.metrics}


def orders():
    headers = ["order_date", "product", "revenue"]
    rows = [
        {"order_date": "2024-01-01", "product": "Widget", "revenue": 100},
        {"order_date": "2024-01-02", "product": "Gadget", "revenue": 50},
        {"order_date": "2024-01-03", "product": "Widget", "revenue": 150},
        {"order_date": "2024-01-04", "product": "Gizmo", "revenue": 200},
    ]
    return headers, rows


class TestSalesMetrics(TestCase):
    def test_totals_top_products_and_growth(self):
        headers, rows = orders()
        result = metrics_for("sales", headers, rows)

        self.assertEqual(result.dataset_type, "sales")
        self.assertEqual(result.record_count, 4)
        self.assertEqual(
            [m.label for m in result.metrics],
            ["Total Revenue", "Average Order Value", "Growth Rate"],
        )
        metrics = by_label(result)
        self.assertEqual(metrics["Total Revenue"].value, 500.0)
        self.assertEqual(metrics["Total Revenue"].format, "currency")
        self.assertEqual(metrics["Total Revenue"].column, "revenue")
        self.assertEqual(metrics["Average Order Value"].value, 125.0)
        self.assertAlmostEqual(metrics["Growth Rate"].value, 200 / 150 * 100)
        self.assertEqual(metrics["Growth Rate"].trend, "up")

        self.assertEqual(
            [(t.name, t.value) for t in result.top_items],
            [("Widget", 250.0), ("Gizmo", 200.0), ("Gadget", 50.0)],
        )

    def test_growth_follows_date_order_not_row_order(self):
        headers, rows = orders()
        shuffled = [rows[3], rows[0], rows[2], rows[1]]
        result = metrics_for("sales", headers, shuffled)
        self.assertAlmostEqual(by_label(result)["Growth Rate"].value, 200 / 150 * 100)

    def test_declining_sales_trend_down(self):
        headers, rows = orders()
        for row, value in zip(rows, [400, 300, 100, 50]):
            row["revenue"] = value
        growth = by_label(metrics_for("sales", headers, rows))["Growth Rate"]
        self.assertAlmostEqual(growth.value, -78.5714, places=3)
        self.assertEqual(growth.trend, "down")

    def test_no_growth_without_a_date_column(self):
        headers = ["product", "revenue"]
        rows = [{"product": p, "revenue": v} for p, v in [("a", 1), ("b", 2)]]
        labels = [m.label for m in metrics_for("sales", headers, rows).metrics]
        self.assertEqual(labels, ["Total Revenue", "Average Order Value"])

    def test_top_items_are_capped_and_ties_keep_first_seen(self):
        config = ProfilingConfig(top_items_limit=2)
        headers = ["product", "revenue"]
        rows = [
            {"product": name, "revenue": value}
            for name, value in [("Anvil", 10), ("Bucket", 10), ("Crate", 5), ("Drum", 1)]
        ]
        result = metrics_for("sales", headers, rows, config)
        self.assertEqual([t.name for t in result.top_items], ["Anvil", "Bucket"])

    def test_value_columns_must_be_numeric(self):
        headers = ["sales_rep", "amount"]
        rows = [
            {"sales_rep": "Ana", "amount": 100},
            {"sales_rep": "Ben", "amount": None},
            {"sales_rep": "Cy", "amount": 50},
        ]
        metrics = by_label(metrics_for("sales", headers, rows))
        self.assertEqual(metrics["Total Revenue"].column, "amount")
        # the empty cell is not an order
        self.assertEqual(metrics["Average Order Value"].value, 75.0)

    def test_no_revenue_column(self):
        result = metrics_for("sales", ["region"], [{"region": "north"}])
        self.assertEqual(result.metrics, [])
        self.assertEqual(result.top_items, [])


class TestFinanceMetrics(TestCase):
    def test_healthy_books_grade_a(self):
        headers = ["revenue", "expenses"]
        rows = [{"revenue": 1000, "expenses": 400}, {"revenue": 1000, "expenses": 400}]
        result = metrics_for("finance", headers, rows)

        self.assertEqual(result.grade, "A")
        self.assertEqual(
            [m.label for m in result.metrics],
            ["Financial Health", "Total Expenses", "Total Revenue", "Profit Margin", "Net Profit"],
        )
        metrics = by_label(result)
        self.assertEqual(metrics["Financial Health"].value, "A")
        self.assertEqual(metrics["Financial Health"].format, "text")
        self.assertEqual(metrics["Total Expenses"].value, 800.0)
        self.assertEqual(metrics["Total Revenue"].value, 2000.0)
        self.assertEqual(metrics["Profit Margin"].value, 60)
        self.assertEqual(metrics["Profit Margin"].trend, "up")
        self.assertEqual(metrics["Net Profit"].value, 1200.0)

    def test_thin_margin_grades_f(self):
        headers = ["income", "costs"]
        rows = [{"income": 1000, "costs": 950}, {"income": 1000, "costs": 950}]
        result = metrics_for("finance", headers, rows)
        self.assertEqual(result.grade, "F")
        margin = by_label(result)["Profit Margin"]
        self.assertEqual(margin.value, 5)
        self.assertEqual(margin.trend, "down")

    def test_expenses_only_default_to_c(self):
        rows = [{"expense": 120}, {"expense": 80}]
        result = metrics_for("finance", ["expense"], rows)
        self.assertEqual(result.grade, "C")
        self.assertEqual(
            [m.label for m in result.metrics], ["Financial Health", "Total Expenses"]
        )

    def test_nothing_to_grade(self):
        result = metrics_for("finance", ["note"], [{"note": "x"}, {"note": "y"}])
        self.assertEqual(result.metrics, [])
        self.assertIsNone(result.grade)


class TestInventoryMetrics(TestCase):
    def test_total_and_low_stock(self):
        stock = [("bolt", 5), ("nut", 20), ("screw", 0), ("washer", 8), ("gear", 3), ("cog", 2), ("pin", 9)]
        rows = [{"item": name, "stock": level} for name, level in stock]
        result = metrics_for("inventory", ["item", "stock"], rows)

        metrics = by_label(result)
        self.assertEqual(metrics["Total Stock"].value, 47.0)
        self.assertEqual(metrics["Total Stock"].format, "number")
        self.assertEqual(metrics["Low Stock Items"].value, 6)
        self.assertEqual(
            [(t.name, t.value) for t in result.top_items],
            [("bolt", 5.0), ("screw", 0.0), ("washer", 8.0), ("gear", 3.0), ("cog", 2.0)],
        )

    def test_threshold_is_configurable(self):
        config = ProfilingConfig(low_stock_threshold=3)
        rows = [{"item": n, "qty": q} for n, q in [("a", 1), ("b", 3), ("c", 2)]]
        result = metrics_for("inventory", ["item", "qty"], rows, config)
        self.assertEqual(by_label(result)["Low Stock Items"].value, 2)
        self.assertEqual([t.name for t in result.top_items], ["a", "c"])


class TestOtherDomains(TestCase):
    def test_marketing_spend_and_roi(self):
        rows = [
            {"campaign": "spring", "spend": 100, "clicks": 50},
            {"campaign": "fall", "spend": 300, "clicks": 150},
        ]
        metrics = by_label(metrics_for("marketing", ["campaign", "spend", "clicks"], rows))
        self.assertEqual(metrics["Total Marketing Spend"].value, 400.0)
        self.assertEqual(metrics["ROI"].value, 50.0)
        self.assertEqual(metrics["ROI"].format, "percentage")

    def test_operations_averages(self):
        headers = ["task", "duration_minutes", "efficiency"]
        rows = [
            {"task": t, "duration_minutes": d, "efficiency": e}
            for t, d, e in [("pack", 30, 0.8), ("ship", 60, 0.9), ("sort", 90, 1.0)]
        ]
        metrics = by_label(metrics_for("operations", headers, rows))
        self.assertEqual(metrics["Average Time"].value, 60.0)
        self.assertEqual(metrics["Average Time"].column, "duration_minutes")
        self.assertAlmostEqual(metrics["Average Efficiency"].value, 0.9)

    def test_general_totals_and_averages(self):
        headers = ["price", "units", "weight"]
        rows = [
            {"price": 10, "units": 1, "weight": 2.5},
            {"price": 30, "units": 3, "weight": 1.5},
        ]
        result = metrics_for("general", headers, rows)
        self.assertEqual(
            [(m.label, m.value, m.format) for m in result.metrics],
            [
                ("Total price", 40.0, "currency"),
                ("Average price", 20.0, "currency"),
                ("Total units", 4.0, "number"),
                ("Average units", 2.0, "number"),
            ],
        )

    def test_labels_without_an_extractor_use_general(self):
        rows = [{"score": 4}, {"score": 5}]
        result = metrics_for("survey", ["score"], rows)
        self.assertEqual(result.dataset_type, "survey")
        self.assertEqual([m.label for m in result.metrics], ["Total score", "Average score"])

    def test_missing_label_reads_as_general(self):
        result = metrics_for(None, ["score"], [{"score": 4}])
        self.assertEqual(result.dataset_type, "general")


class TestGrades(TestCase):
    def test_lower_is_better(self):
        self.assertEqual(grade_lower_is_better(0.50, EXPENSE_RATIO_GRADES), "A")
        self.assertEqual(grade_lower_is_better(0.70, EXPENSE_RATIO_GRADES), "C")
        self.assertEqual(grade_lower_is_better(0.86, EXPENSE_RATIO_GRADES), "F")

    def test_higher_is_better(self):
        self.assertEqual(grade_higher_is_better(0.20, PROFIT_MARGIN_GRADES), "A")
        self.assertEqual(grade_higher_is_better(0.04, PROFIT_MARGIN_GRADES), "D")
        self.assertEqual(grade_higher_is_better(-0.1, PROFIT_MARGIN_GRADES), "F")

    def test_overall_grade(self):
        self.assertEqual(overall_grade([]), "C")
        self.assertEqual(overall_grade(["A", "B"]), "A")
        self.assertEqual(overall_grade(["A", "F"]), "D")


class TestInputs(TestCase):
    def test_rejects_raw_dicts(self):
        with self.assertRaises(InvalidColumnStatsError):
            BusinessMetricsExtractor().extract("sales", [{"name": "a"}], [])

    def test_payload_names(self):
        headers, rows = orders()
        payload = metrics_for("sales", headers, rows).model_dump(by_alias=True, mode="json")
        self.assertEqual(payload["datasetType"], "sales")
        self.assertIn("topItems", payload)
        self.assertEqual(payload["recordCount"], 4)
