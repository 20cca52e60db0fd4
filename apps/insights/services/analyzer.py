import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence

from apps.insights.core.config import DEFAULT_CONFIG, ProfilingConfig
from apps.insights.core.constants import DEFAULT_DOMAIN
from apps.insights.core.models import AnalysisResult, EnhancedColumnStats
from apps.insights.services.business_metrics import BusinessMetricsExtractor
from apps.insights.services.chart_generator import ChartGenerator
from apps.insights.services.classifier import DatasetClassifier
from apps.insights.services.health_score import HealthScoreCalculator
from apps.insights.services.profiler import DatasetProfiler

logger = logging.getLogger(__name__)


class DatasetAnalyzer:
    def __init__(self, config: Optional[ProfilingConfig] = None):
        self.config = config or DEFAULT_CONFIG
        self.profiler = DatasetProfiler(self.config)
        self.health = HealthScoreCalculator(self.config)
        self.classifier = DatasetClassifier(self.config)
        self.charts = ChartGenerator(self.config)
        self.metrics = BusinessMetricsExtractor(self.config)

    def analyze(
        self, headers: Sequence[str], rows: Sequence[Mapping[str, Any]]
    ) -> AnalysisResult:
        """
        Run the full pipeline over one dataset.

        The profile feeds the health score and the chart generator, so a
        profiler error aborts the whole call. The classifier is independent:
        its failure is logged and reported on the result while the other
        components still run, and business metrics fall back to the
        general extractor.
        """
        columns = self.profiler.profile_all_columns(headers, rows)
        row_count = len(rows)

        classification = None
        classification_error = None
        try:
            classification = self.classifier.classify(headers, rows)
        except Exception as e:
            logger.exception("Dataset classification failed")
            classification_error = f"{type(e).__name__}: {e}"

        health = self.health.calculate(columns, row_count, headers)
        charts = self.charts.generate(columns, rows)
        dataset_type = classification.type if classification else DEFAULT_DOMAIN
        business_metrics = self.metrics.extract(dataset_type, columns, rows)

        return AnalysisResult(
            row_count=row_count,
            columns=columns,
            health=health,
            charts=charts,
            classification=classification,
            classification_error=classification_error,
            business_metrics=business_metrics,
        )

    def get_column_types(self, columns: List[EnhancedColumnStats]) -> Dict[str, List[str]]:
        """
        Extract Columns Grouped By Types
        :param columns:
        :return: Dictionary of inferred types mapped to a list of column names
        """
        grouped: Dict[str, List[str]] = {}
        for col in columns:
            grouped.setdefault(col.inferred_type, []).append(col.name)
        return grouped
