import os
from typing import Dict, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

DEFAULT_HEALTH_WEIGHTS = {
    "completeness": 0.30,
    "consistency": 0.25,
    "uniqueness": 0.15,
    "header_quality": 0.10,
    "anomaly": 0.20,
}


class ProfilingConfig(BaseModel):
    """
    Thresholds shared by the profiler, health score, classifier and chart
    generator. Instances are immutable; derive variants with ``with_overrides``.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    # Type inference
    type_confidence_threshold: float = Field(0.9, gt=0, le=1)
    category_max_unique_ratio: float = Field(0.5, gt=0, le=1)
    category_max_avg_length: int = Field(40, ge=1)

    # Outliers
    outlier_method: Literal["iqr", "zscore", "isolation"] = "iqr"
    outlier_iqr_multiplier: float = Field(1.5, gt=0)
    outlier_zscore_threshold: float = Field(3.0, gt=0)
    outlier_min_sample: int = Field(4, ge=2)
    outlier_sample_cap: int = Field(10, ge=1)

    # Categories
    top_categories_limit: int = Field(10, ge=1)

    # Health score
    health_weights: Dict[str, float] = Field(
        default_factory=lambda: dict(DEFAULT_HEALTH_WEIGHTS)
    )
    completeness_threshold: float = Field(0.95, ge=0, le=1)
    consistency_threshold: float = Field(0.9, ge=0, le=1)
    identifier_uniqueness_threshold: float = Field(1.0, gt=0, le=1)
    expected_uniqueness: float = Field(0.5, gt=0, le=1)
    anomaly_penalty_factor: float = Field(2.0, ge=0)

    # Classifier
    classifier_sample_rows: int = Field(5, ge=1)
    classifier_shape_weight: float = Field(0.5, ge=0)
    classifier_max_confidence: float = Field(0.95, gt=0, le=1)
    classifier_general_confidence: float = Field(0.2, ge=0, le=1)

    # Charts
    category_chart_max_unique: int = Field(12, ge=2)
    pie_max_slices: int = Field(6, ge=2)
    max_histogram_bins: int = Field(20, ge=2)
    chart_max_points: int = Field(5000, ge=2)
    time_series_max_series: int = Field(5, ge=1)
    heatmap_min_columns: int = Field(3, ge=2)

    # Business metrics
    low_stock_threshold: float = Field(10, ge=0)
    top_items_limit: int = Field(5, ge=1)
    general_metrics_limit: int = Field(4, ge=1)

    # Input validation
    max_unmatched_row_ratio: float = Field(0.5, ge=0, le=1)

    enable_logging: bool = False

    @field_validator("health_weights")
    @classmethod
    def _check_weights(cls, weights: Dict[str, float]) -> Dict[str, float]:
        missing = set(DEFAULT_HEALTH_WEIGHTS) - set(weights)
        unknown = set(weights) - set(DEFAULT_HEALTH_WEIGHTS)
        if missing or unknown:
            raise ValueError(
                f"health_weights must define exactly {sorted(DEFAULT_HEALTH_WEIGHTS)}"
            )
        if any(w < 0 for w in weights.values()):
            raise ValueError("health_weights must be non-negative")
        if abs(sum(weights.values()) - 1.0) > 1e-6:
            raise ValueError(
                f"health_weights must sum to 1 (got {sum(weights.values()):.4f})"
            )
        return weights

    def with_overrides(self, **updates) -> "ProfilingConfig":
        """Copy with ``updates`` applied, validated like a fresh instance."""
        return type(self)(**{**self.model_dump(), **updates})

    @classmethod
    def from_env(
        cls, prefix: str = "INSIGHTS_", environ: Optional[Dict[str, str]] = None
    ) -> "ProfilingConfig":
        """
        Build a config from ``<PREFIX><FIELD_NAME>`` environment variables.

        Only scalar fields are read; unset variables keep their defaults and
        pydantic handles the string coercion.
        """
        environ = os.environ if environ is None else environ
        overrides = {}
        for name in cls.model_fields:
            if name == "health_weights":
                continue
            raw = environ.get(f"{prefix}{name.upper()}")
            if raw is not None:
                overrides[name] = raw
        return cls(**overrides)


DEFAULT_CONFIG = ProfilingConfig()
