from typing import Dict, List, Mapping, Optional, Sequence

import numpy as np
import pandas as pd

from apps.insights.core.config import DEFAULT_CONFIG, ProfilingConfig
from apps.insights.core.constants import OTHER_CATEGORY_LABEL
from apps.insights.core.models import CategoryCount, ValueKind
from apps.insights.core.utils import (
    boolean_token,
    convert_numpy,
    date_value,
    is_true_token,
    numeric_value,
    recognize_value,
    stride_sample,
)


class DataAggregator:
    """Turns raw rows into the self-contained record lists charts carry."""

    def __init__(self, config: Optional[ProfilingConfig] = None):
        self.config = config or DEFAULT_CONFIG

    def numeric_series(self, rows: Sequence[Mapping], column: str) -> pd.Series:
        numbers = [numeric_value(row.get(column)) for row in rows]
        return pd.Series([n for n in numbers if n is not None], dtype=float)

    def _smart_bins(self, series: pd.Series) -> int:
        n = len(series)
        if n <= 20:
            bins = 5
        elif n <= 100:
            bins = int(np.sqrt(n))
        else:
            IQR = series.quantile(0.75) - series.quantile(0.25)
            if IQR == 0:
                bins = 10
            else:
                h = 2 * IQR / (n ** (1 / 3))
                bins = max(10, int((series.max() - series.min()) / h))
        return max(1, min(bins, self.config.max_histogram_bins, series.nunique()))

    def histogram(self, series: pd.Series) -> List[Dict]:
        if series.empty:
            return []
        counts, edges = np.histogram(series.to_numpy(), bins=self._smart_bins(series))
        return convert_numpy(
            [
                {
                    "bin": f"{edges[i]:.4g} to {edges[i + 1]:.4g}",
                    "start": edges[i],
                    "end": edges[i + 1],
                    "count": counts[i],
                }
                for i in range(len(counts))
            ]
        )

    def category_frequency(
        self, top_categories: List[CategoryCount], non_null_count: int
    ) -> List[Dict]:
        """
        Frequency records from a category profile, with the values beyond the
        top-N folded into a single ``Other`` bucket.
        """
        data = [
            {"name": str(c.value), "value": c.count, "percentage": c.percentage}
            for c in top_categories
        ]
        remainder = non_null_count - sum(c.count for c in top_categories)
        if remainder > 0 and non_null_count:
            data.append(
                {
                    "name": OTHER_CATEGORY_LABEL,
                    "value": remainder,
                    "percentage": remainder / non_null_count,
                }
            )
        return data

    def boolean_frequency(self, rows: Sequence[Mapping], column: str) -> List[Dict]:
        counts: Dict[str, int] = {}
        for row in rows:
            kind, payload = recognize_value(row.get(column))
            if kind not in (ValueKind.BOOLEAN, ValueKind.NUMBER):
                continue
            label = "true" if is_true_token(boolean_token(payload)) else "false"
            counts[label] = counts.get(label, 0) + 1
        total = sum(counts.values())
        return [
            {"name": label, "value": count, "percentage": count / total}
            for label, count in counts.items()
        ]

    def time_series(
        self, rows: Sequence[Mapping], date_column: str, value_columns: List[str]
    ) -> List[Dict]:
        """
        Rows with a parseable date, sorted ascending by date. Ties keep their
        original row order. Rows where every value column is empty are dropped.
        """
        points = []
        for row in rows:
            stamp = date_value(row.get(date_column))
            if stamp is None:
                continue
            values = {c: numeric_value(row.get(c)) for c in value_columns}
            if all(v is None for v in values.values()):
                continue
            points.append((stamp, values))

        points.sort(key=lambda point: point[0])
        records = [
            {date_column: stamp.isoformat(), **values} for stamp, values in points
        ]
        return stride_sample(records, self.config.chart_max_points)

    def scatter_points(
        self, rows: Sequence[Mapping], x_column: str, y_column: str
    ) -> List[Dict]:
        records = []
        for row in rows:
            x, y = numeric_value(row.get(x_column)), numeric_value(row.get(y_column))
            if x is None or y is None:
                continue
            records.append({x_column: x, y_column: y})
        return stride_sample(records, self.config.chart_max_points)

    def numeric_frame(self, rows: Sequence[Mapping], columns: List[str]) -> pd.DataFrame:
        return pd.DataFrame(
            {c: [numeric_value(row.get(c)) for row in rows] for c in columns}, dtype=float
        )

    def correlation_matrix(
        self, rows: Sequence[Mapping], columns: List[str]
    ) -> List[Dict]:
        """Long-form Pearson matrix; each cell uses pairwise non-null rows."""
        corr = self.numeric_frame(rows, columns).corr(method="pearson")
        return convert_numpy(
            [
                {"x": a, "y": b, "value": round(corr.loc[a, b], 4)}
                for a in columns
                for b in columns
            ]
        )
