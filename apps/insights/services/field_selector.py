from typing import Dict, List, Mapping, Optional, Sequence, Tuple

import numpy as np
from scipy import stats

from apps.insights.core.models import EnhancedColumnStats
from apps.insights.services.aggregator import DataAggregator


class FieldSelector:
    """Picks the columns that cross-column charts are built on."""

    def __init__(self, aggregator: DataAggregator):
        self.aggregator = aggregator

    def columns_by_type(
        self, column_stats: Sequence[EnhancedColumnStats]
    ) -> Dict[str, List[EnhancedColumnStats]]:
        """Profiles grouped by inferred type; a repeated name keeps its first entry."""
        grouped: Dict[str, List[EnhancedColumnStats]] = {}
        seen = set()
        for col in column_stats:
            if col.name in seen:
                continue
            seen.add(col.name)
            grouped.setdefault(col.inferred_type, []).append(col)
        return grouped

    def best_datetime(
        self, column_stats: Sequence[EnhancedColumnStats]
    ) -> Optional[str]:
        for col in self.columns_by_type(column_stats).get("date", []):
            if col.date_range is not None:
                return col.name
        return None

    def numeric_columns(
        self, column_stats: Sequence[EnhancedColumnStats], rows: Sequence[Mapping]
    ) -> List[str]:
        """Numeric columns whose parsed values take at least two distinct values."""
        return [
            col.name
            for col in self.columns_by_type(column_stats).get("numeric", [])
            if self.aggregator.numeric_series(rows, col.name).nunique() >= 2
        ]

    def strongest_pair(
        self, rows: Sequence[Mapping], numeric_cols: List[str]
    ) -> Optional[Tuple[str, str, float]]:
        """
        The numeric pair with the largest absolute Pearson coefficient.

        Each pair is correlated over the rows where both values are present.
        Pairs with fewer than two such rows or a side that is constant over
        them have no coefficient and are skipped, so None means no pair can
        be plotted without a flat axis. Ties keep the earlier pair.
        """
        if len(numeric_cols) < 2:
            return None

        frame = self.aggregator.numeric_frame(rows, numeric_cols)
        best = None
        for i, x in enumerate(numeric_cols):
            for y in numeric_cols[i + 1 :]:
                both = frame[[x, y]].dropna()
                if len(both) < 2:
                    continue
                if both[x].nunique() < 2 or both[y].nunique() < 2:
                    continue
                r, _ = stats.pearsonr(both[x].to_numpy(), both[y].to_numpy())
                r = float(r)
                if np.isnan(r):
                    continue
                if best is None or abs(r) > abs(best[2]):
                    best = (x, y, r)
        return best
