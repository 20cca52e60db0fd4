import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

from apps.insights.core.config import DEFAULT_CONFIG, ProfilingConfig
from apps.insights.core.constants import CATEGORICAL_COLORS, CHART_COLORS
from apps.insights.core.models import ChartConfig, EnhancedColumnStats
from apps.insights.core.utils import validate_column_stats, validate_rows
from apps.insights.services.aggregator import DataAggregator
from apps.insights.services.explanation_generator import ExplanationGenerator
from apps.insights.services.field_selector import FieldSelector

logger = logging.getLogger(__name__)


class ChartGenerator:
    """
    Deterministic chart selection over profiled columns.

    One pass over the profiles in column order emits per-column charts
    (histogram or line for numeric, bar or pie for low-cardinality
    categories, pie for booleans); the time-series, scatter and heatmap
    charts that combine columns are appended last. Degenerate charts are
    skipped, so no emitted chart has empty data.
    """

    def __init__(self, config: Optional[ProfilingConfig] = None):
        self.config = config or DEFAULT_CONFIG
        self.enable_logging = self.config.enable_logging
        self.aggregator = DataAggregator(self.config)
        self.selector = FieldSelector(self.aggregator)
        self.explainer = ExplanationGenerator()

    def _log(self, message: str) -> None:
        """Log message if logging is enabled."""
        if self.enable_logging:
            logger.debug("[ChartGenerator] %s", message)

    def _get_color_palette(self, chart_type: str, n: int) -> List[str]:
        """Get n colors from the chart type's palette with wrapping."""
        palette = CHART_COLORS.get(chart_type, CATEGORICAL_COLORS)
        return [palette[i % len(palette)] for i in range(n)]

    def _build(
        self,
        chart_type: str,
        title: str,
        data: List[Dict[str, Any]],
        fields: Dict[str, Any],
        columns_info: Dict[str, EnhancedColumnStats],
        x_axis: Optional[str] = None,
        y_axis: Optional[Union[str, List[str]]] = None,
        n_colors: int = 1,
        options: Optional[Dict[str, Any]] = None,
    ) -> Optional[ChartConfig]:
        if not data:
            self._log(f"Skipping {chart_type} '{title}': no data")
            return None
        return ChartConfig(
            type=chart_type,
            title=title,
            data=data,
            x_axis=x_axis,
            y_axis=y_axis,
            colors=self._get_color_palette(chart_type, n_colors),
            explanation=self.explainer.generate(
                chart_type, fields, columns_info, options
            ),
            options=options,
        )

    # ------------------------------------------------------------------
    # Per-column charts
    # ------------------------------------------------------------------

    def _numeric_chart(
        self,
        col: EnhancedColumnStats,
        rows: Sequence[Mapping],
        date_col: Optional[str],
        columns_info: Dict[str, EnhancedColumnStats],
    ) -> Optional[ChartConfig]:
        series = self.aggregator.numeric_series(rows, col.name)
        if series.nunique() < 2:
            self._log(f"Skipping '{col.name}': fewer than two distinct numbers")
            return None

        if date_col is not None:
            data = self.aggregator.time_series(rows, date_col, [col.name])
            return self._build(
                "line",
                f"{col.name} over {date_col}",
                data,
                {"x": date_col, "y": col.name},
                columns_info,
                x_axis=date_col,
                y_axis=col.name,
                options={"points": len(data)},
            )

        data = self.aggregator.histogram(series)
        return self._build(
            "histogram",
            f"Distribution of {col.name}",
            data,
            {"x": col.name},
            columns_info,
            x_axis="bin",
            y_axis="count",
            options={"bins": len(data)},
        )

    def _category_chart(
        self, col: EnhancedColumnStats, columns_info: Dict[str, EnhancedColumnStats]
    ) -> Optional[ChartConfig]:
        if col.unique_values < 2:
            self._log(f"Skipping '{col.name}': a single category")
            return None
        if col.unique_values > self.config.category_chart_max_unique:
            self._log(
                f"Skipping '{col.name}': {col.unique_values} categories exceed "
                f"the chart cap of {self.config.category_chart_max_unique}"
            )
            return None

        data = self.aggregator.category_frequency(
            col.top_categories or [], col.non_null_count
        )
        if col.unique_values <= self.config.pie_max_slices:
            chart_type, title = "pie", f"{col.name} breakdown"
        else:
            chart_type, title = "bar", f"{col.name} frequency"
        return self._build(
            chart_type,
            title,
            data,
            {"x": col.name},
            columns_info,
            x_axis="name",
            y_axis="value",
            n_colors=len(data),
        )

    def _boolean_chart(
        self,
        col: EnhancedColumnStats,
        rows: Sequence[Mapping],
        columns_info: Dict[str, EnhancedColumnStats],
    ) -> Optional[ChartConfig]:
        data = self.aggregator.boolean_frequency(rows, col.name)
        if len(data) < 2:
            self._log(f"Skipping '{col.name}': only one boolean value present")
            return None
        return self._build(
            "pie",
            f"{col.name} split",
            data,
            {"x": col.name},
            columns_info,
            x_axis="name",
            y_axis="value",
            n_colors=len(data),
        )

    # ------------------------------------------------------------------
    # Cross-column charts
    # ------------------------------------------------------------------

    def _time_series_chart(
        self,
        rows: Sequence[Mapping],
        date_col: str,
        numeric_cols: List[str],
        columns_info: Dict[str, EnhancedColumnStats],
    ) -> Optional[ChartConfig]:
        series = numeric_cols[: self.config.time_series_max_series]
        data = self.aggregator.time_series(rows, date_col, series)
        return self._build(
            "area",
            f"{', '.join(series)} over time",
            data,
            {"x": date_col, "y": series},
            columns_info,
            x_axis=date_col,
            y_axis=series,
            n_colors=len(series),
            options={"stacked": False},
        )

    def _scatter_chart(
        self,
        rows: Sequence[Mapping],
        numeric_cols: List[str],
        columns_info: Dict[str, EnhancedColumnStats],
    ) -> Optional[ChartConfig]:
        pair = self.selector.strongest_pair(rows, numeric_cols)
        if pair is None:
            return None
        x, y, r = pair
        data = self.aggregator.scatter_points(rows, x, y)
        return self._build(
            "scatter",
            f"{y} vs {x}",
            data,
            {"x": x, "y": y},
            columns_info,
            x_axis=x,
            y_axis=y,
            options={"correlation": round(r, 4)},
        )

    def _heatmap_chart(
        self,
        rows: Sequence[Mapping],
        numeric_cols: List[str],
        columns_info: Dict[str, EnhancedColumnStats],
    ) -> Optional[ChartConfig]:
        data = self.aggregator.correlation_matrix(rows, numeric_cols)
        return self._build(
            "heatmap",
            "Correlation between numeric columns",
            data,
            {"columns": numeric_cols},
            columns_info,
            x_axis="x",
            y_axis="y",
            n_colors=3,
            options={"min": -1, "max": 1},
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def generate(
        self,
        column_stats: Sequence[EnhancedColumnStats],
        rows: Sequence[Mapping],
    ) -> List[ChartConfig]:
        column_stats = validate_column_stats(column_stats)
        rows = validate_rows(rows)

        groups = self.selector.columns_by_type(column_stats)
        columns_info = {
            col.name: col for cols in groups.values() for col in cols
        }
        date_col = self.selector.best_datetime(column_stats)
        numeric_cols = self.selector.numeric_columns(column_stats, rows)

        charts = []
        emitted = set()
        for col in column_stats:
            if col.name in emitted:
                continue
            emitted.add(col.name)

            chart = None
            if col.inferred_type == "numeric":
                chart = self._numeric_chart(col, rows, date_col, columns_info)
            elif col.inferred_type == "category":
                chart = self._category_chart(col, columns_info)
            elif col.inferred_type == "boolean":
                chart = self._boolean_chart(col, rows, columns_info)
            if chart is not None:
                charts.append(chart)

        cross = []
        if date_col is not None and numeric_cols:
            cross.append(
                self._time_series_chart(rows, date_col, numeric_cols, columns_info)
            )
        if len(numeric_cols) >= 2:
            cross.append(self._scatter_chart(rows, numeric_cols, columns_info))
        if len(numeric_cols) >= self.config.heatmap_min_columns:
            cross.append(self._heatmap_chart(rows, numeric_cols, columns_info))
        charts.extend(c for c in cross if c is not None)

        self._log(f"Generated {len(charts)} charts")
        return charts


def generate_charts(
    column_stats: Sequence[EnhancedColumnStats],
    rows: Sequence[Mapping],
    config: Optional[ProfilingConfig] = None,
) -> List[ChartConfig]:
    return ChartGenerator(config).generate(column_stats, rows)
