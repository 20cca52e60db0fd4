import logging
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

import pandas as pd

from apps.insights.core.config import DEFAULT_CONFIG, ProfilingConfig
from apps.insights.core.constants import (
    BUSINESS_COLUMN_KEYWORDS,
    CURRENCY_HEADER_KEYWORDS,
    DEFAULT_DOMAIN,
    DEFAULT_GRADE_SCORE,
    EXPENSE_RATIO_GRADES,
    GRADE_FLOORS,
    GRADE_SCORES,
    PROFIT_MARGIN_GRADES,
)
from apps.insights.core.models import (
    BusinessMetric,
    BusinessMetrics,
    EnhancedColumnStats,
    TopItem,
)
from apps.insights.core.utils import (
    date_value,
    is_null,
    numeric_value,
    validate_column_stats,
    validate_rows,
)
from apps.insights.services.aggregator import DataAggregator

logger = logging.getLogger(__name__)

VALUE_TYPES = ("numeric",)
LABEL_TYPES = ("category", "text")
UNKNOWN_LABEL = "Unknown"


def grade_lower_is_better(value: float, cutoffs: Sequence[float]) -> str:
    for grade, cutoff in zip("ABCD", cutoffs):
        if value <= cutoff:
            return grade
    return "F"


def grade_higher_is_better(value: float, cutoffs: Sequence[float]) -> str:
    for grade, cutoff in zip("ABCD", cutoffs):
        if value >= cutoff:
            return grade
    return "F"


def overall_grade(grades: List[str]) -> str:
    """Average the grade scores back into a letter; no grades reads as a C."""
    if grades:
        score = sum(GRADE_SCORES[g] for g in grades) / len(grades)
    else:
        score = DEFAULT_GRADE_SCORE
    for grade, floor in GRADE_FLOORS:
        if score >= floor:
            return grade
    return "F"


def is_currency_header(name: str) -> bool:
    lowered = name.lower()
    return any(keyword in lowered for keyword in CURRENCY_HEADER_KEYWORDS)


class BusinessMetricsExtractor:
    """
    Headline KPIs for a classified dataset.

    The classification label selects the extractor. Labels without a
    dedicated one (general, survey, log_data and anything unknown) get
    totals and averages of the first numeric columns. Value columns must
    have profiled as numeric and label columns as category or text; a cell
    that does not parse as a number is skipped.
    """

    def __init__(self, config: Optional[ProfilingConfig] = None):
        self.config = config or DEFAULT_CONFIG
        self.enable_logging = self.config.enable_logging
        self.aggregator = DataAggregator(self.config)
        self._extractors = {
            "sales": self._sales_metrics,
            "finance": self._finance_metrics,
            "inventory": self._inventory_metrics,
            "marketing": self._marketing_metrics,
            "operations": self._operations_metrics,
        }

    def _log(self, message: str) -> None:
        """Log message if logging is enabled."""
        if self.enable_logging:
            logger.debug("[BusinessMetricsExtractor] %s", message)

    # ------------------------------------------------------------------
    # Column lookup
    # ------------------------------------------------------------------

    def find_column(
        self,
        column_stats: Sequence[EnhancedColumnStats],
        role: str,
        types: Tuple[str, ...] = VALUE_TYPES,
        exclude: Optional[str] = None,
    ) -> Optional[str]:
        """
        First column of an allowed type whose name contains a keyword of ``role``.

        Keywords are tried in order, so an earlier keyword beats an earlier
        column.
        """
        names = [
            col.name
            for col in column_stats
            if col.inferred_type in types and col.name != exclude
        ]
        for keyword in BUSINESS_COLUMN_KEYWORDS[role]:
            for name in names:
                if keyword in name.lower():
                    return name
        return None

    def _label(self, value) -> str:
        if is_null(value):
            return UNKNOWN_LABEL
        return str(value).strip()

    def _top_items(
        self, rows: Sequence[Mapping], label_col: str, value_col: str
    ) -> List[TopItem]:
        """Labels ranked by their summed value; ties keep first-seen order."""
        frame = pd.DataFrame(
            {
                "name": [self._label(row.get(label_col)) for row in rows],
                "value": pd.Series(
                    [numeric_value(row.get(value_col)) for row in rows], dtype=float
                ),
            }
        )
        totals = frame.groupby("name", sort=False)["value"].sum()
        totals = totals.sort_values(ascending=False, kind="stable")
        return [
            TopItem(name=name, value=float(value))
            for name, value in totals.head(self.config.top_items_limit).items()
        ]

    def _growth(
        self, rows: Sequence[Mapping], date_col: str, value_col: str
    ) -> Optional[float]:
        """
        Percent change between the later and earlier half of the dated rows.

        Rows are put in date order (ties keep row order) and split at
        ``n // 2``. A row without a number contributes zero to its half.
        Returns None for fewer than two dated rows or a non-positive
        earlier half.
        """
        dated = []
        for row in rows:
            stamp = date_value(row.get(date_col))
            if stamp is not None:
                dated.append((stamp, numeric_value(row.get(value_col)) or 0.0))
        if len(dated) < 2:
            return None
        frame = pd.DataFrame(dated, columns=["date", "value"])
        frame = frame.sort_values("date", kind="stable")
        half = len(frame) // 2
        first = float(frame["value"].iloc[:half].sum())
        second = float(frame["value"].iloc[half:].sum())
        if first <= 0:
            return None
        return (second - first) / first * 100

    # ------------------------------------------------------------------
    # Per-domain extractors
    # ------------------------------------------------------------------

    def _sales_metrics(self, column_stats, rows) -> Dict:
        metrics, top_items = [], []
        revenue_col = self.find_column(column_stats, "revenue")
        if revenue_col is None:
            return {"metrics": metrics}

        revenue = self.aggregator.numeric_series(rows, revenue_col)
        if revenue.empty:
            return {"metrics": metrics}
        total = float(revenue.sum())
        metrics.append(
            BusinessMetric(
                label="Total Revenue", value=total, format="currency", column=revenue_col
            )
        )
        metrics.append(
            BusinessMetric(
                label="Average Order Value",
                value=total / len(revenue),
                format="currency",
                column=revenue_col,
            )
        )

        product_col = self.find_column(column_stats, "product", LABEL_TYPES)
        if product_col is not None:
            top_items = self._top_items(rows, product_col, revenue_col)

        date_col = next(
            (c.name for c in column_stats if c.inferred_type == "date"), None
        )
        if date_col is not None:
            growth = self._growth(rows, date_col, revenue_col)
            if growth is not None:
                if growth > 0:
                    trend = "up"
                elif growth < 0:
                    trend = "down"
                else:
                    trend = "stable"
                metrics.append(
                    BusinessMetric(
                        label="Growth Rate",
                        value=growth,
                        format="percentage",
                        trend=trend,
                        column=revenue_col,
                    )
                )
        return {"metrics": metrics, "top_items": top_items}

    def _finance_metrics(self, column_stats, rows) -> Dict:
        metrics = []
        expense_col = self.find_column(column_stats, "expense")
        income_col = self.find_column(column_stats, "income", exclude=expense_col)

        expenses = income = 0.0
        if expense_col is not None:
            expenses = float(self.aggregator.numeric_series(rows, expense_col).sum())
        if income_col is not None:
            income = float(self.aggregator.numeric_series(rows, income_col).sum())
        if expenses <= 0 and income <= 0:
            return {"metrics": metrics}

        grades = []
        margin = None
        if income > 0 and expenses > 0:
            grades.append(grade_lower_is_better(expenses / income, EXPENSE_RATIO_GRADES))
            margin = (income - expenses) / income
            grades.append(grade_higher_is_better(margin, PROFIT_MARGIN_GRADES))
        grade = overall_grade(grades)
        metrics.append(BusinessMetric(label="Financial Health", value=grade, format="text"))

        if expenses > 0:
            metrics.append(
                BusinessMetric(
                    label="Total Expenses",
                    value=expenses,
                    format="currency",
                    column=expense_col,
                )
            )
        if income > 0:
            metrics.append(
                BusinessMetric(
                    label="Total Revenue", value=income, format="currency", column=income_col
                )
            )
        if margin is not None:
            if margin >= PROFIT_MARGIN_GRADES[0]:
                trend = "up"
            elif margin < PROFIT_MARGIN_GRADES[2]:
                trend = "down"
            else:
                trend = "stable"
            metrics.append(
                BusinessMetric(
                    label="Profit Margin",
                    value=round(margin * 100),
                    format="percentage",
                    trend=trend,
                )
            )
            metrics.append(
                BusinessMetric(label="Net Profit", value=income - expenses, format="currency")
            )
        return {"metrics": metrics, "grade": grade}

    def _inventory_metrics(self, column_stats, rows) -> Dict:
        metrics, top_items = [], []
        stock_col = self.find_column(column_stats, "stock")
        if stock_col is None:
            return {"metrics": metrics}
        stock = self.aggregator.numeric_series(rows, stock_col)
        if stock.empty:
            return {"metrics": metrics}
        metrics.append(
            BusinessMetric(
                label="Total Stock", value=float(stock.sum()), format="number", column=stock_col
            )
        )

        threshold = self.config.low_stock_threshold
        low = []
        for row in rows:
            level = numeric_value(row.get(stock_col))
            if level is not None and level < threshold:
                low.append((row, level))
        if low:
            metrics.append(
                BusinessMetric(
                    label="Low Stock Items",
                    value=float(len(low)),
                    format="number",
                    column=stock_col,
                )
            )
            product_col = self.find_column(column_stats, "product", LABEL_TYPES)
            if product_col is not None:
                top_items = [
                    TopItem(name=self._label(row.get(product_col)), value=level)
                    for row, level in low[: self.config.top_items_limit]
                ]
        return {"metrics": metrics, "top_items": top_items}

    def _marketing_metrics(self, column_stats, rows) -> Dict:
        metrics = []
        spend_col = self.find_column(column_stats, "spend")
        if spend_col is None:
            return {"metrics": metrics}
        spend = self.aggregator.numeric_series(rows, spend_col)
        if spend.empty:
            return {"metrics": metrics}
        total_spend = float(spend.sum())
        metrics.append(
            BusinessMetric(
                label="Total Marketing Spend",
                value=total_spend,
                format="currency",
                column=spend_col,
            )
        )

        conversion_col = self.find_column(column_stats, "conversion", exclude=spend_col)
        if conversion_col is not None and total_spend > 0:
            conversions = float(self.aggregator.numeric_series(rows, conversion_col).sum())
            metrics.append(
                BusinessMetric(
                    label="ROI",
                    value=conversions / total_spend * 100,
                    format="percentage",
                    column=conversion_col,
                )
            )
        return {"metrics": metrics}

    def _operations_metrics(self, column_stats, rows) -> Dict:
        metrics = []
        time_col = self.find_column(column_stats, "time")
        efficiency_col = self.find_column(column_stats, "efficiency", exclude=time_col)
        for label, col, fmt in [
            ("Average Time", time_col, "number"),
            ("Average Efficiency", efficiency_col, "percentage"),
        ]:
            if col is None:
                continue
            values = self.aggregator.numeric_series(rows, col)
            if values.empty:
                continue
            metrics.append(
                BusinessMetric(label=label, value=float(values.mean()), format=fmt, column=col)
            )
        return {"metrics": metrics}

    def _general_metrics(self, column_stats, rows) -> Dict:
        limit = self.config.general_metrics_limit
        metrics = []
        seen = set()
        numeric_cols = []
        for col in column_stats:
            if col.inferred_type == "numeric" and col.name not in seen:
                seen.add(col.name)
                numeric_cols.append(col.name)

        for name in numeric_cols[:limit]:
            values = self.aggregator.numeric_series(rows, name)
            if values.empty:
                continue
            fmt = "currency" if is_currency_header(name) else "number"
            total = float(values.sum())
            metrics.append(
                BusinessMetric(label=f"Total {name}", value=total, format=fmt, column=name)
            )
            if len(metrics) < limit:
                metrics.append(
                    BusinessMetric(
                        label=f"Average {name}",
                        value=total / len(values),
                        format=fmt,
                        column=name,
                    )
                )
        return {"metrics": metrics[:limit]}

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def extract(
        self,
        dataset_type: Optional[str],
        column_stats: Sequence[EnhancedColumnStats],
        rows: Sequence[Mapping],
    ) -> BusinessMetrics:
        column_stats = validate_column_stats(column_stats)
        rows = validate_rows(rows)
        dataset_type = (dataset_type or DEFAULT_DOMAIN).lower()

        extractor = self._extractors.get(dataset_type, self._general_metrics)
        parts = extractor(column_stats, rows)
        self._log(
            f"Extracted {len(parts['metrics'])} metrics for a {dataset_type} dataset"
        )
        return BusinessMetrics(
            dataset_type=dataset_type, record_count=len(rows), **parts
        )


def extract_business_metrics(
    dataset_type: Optional[str],
    column_stats: Sequence[EnhancedColumnStats],
    rows: Sequence[Mapping],
    config: Optional[ProfilingConfig] = None,
) -> BusinessMetrics:
    return BusinessMetricsExtractor(config).extract(dataset_type, column_stats, rows)
