from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    computed_field,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

InferredType = Literal["numeric", "date", "category", "text", "boolean", "mixed"]
CoarseType = Literal["string", "number", "date", "boolean", "mixed"]
Severity = Literal["low", "medium", "high"]
ChartType = Literal[
    "line", "bar", "pie", "scatter", "area", "radar", "heatmap", "histogram"
]
MetricFormat = Literal["currency", "percentage", "number", "text"]
Trend = Literal["up", "down", "stable"]
Grade = Literal["A", "B", "C", "D", "F"]


class ValueKind(str, Enum):
    """Closed set of shapes a raw cell can take once recognized."""

    NULL = "null"
    NUMBER = "number"
    BOOLEAN = "boolean"
    DATE = "date"
    TEXT = "text"


class InsightsModel(BaseModel):
    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
        arbitrary_types_allowed=True,
    )


# ---------------------------------------------------------------------------
# Column profile
# ---------------------------------------------------------------------------


class OutlierSummary(InsightsModel):
    count: int = Field(ge=0)
    values: List[float] = Field(default_factory=list)
    method: Literal["iqr", "zscore", "isolation"]


class CategoryCount(InsightsModel):
    value: Any
    count: int = Field(ge=1)
    percentage: float = Field(ge=0, le=1)


class DateRange(InsightsModel):
    min: datetime
    max: datetime
    span: int = Field(ge=0)


class ColumnQuality(InsightsModel):
    completeness: float = Field(ge=0, le=1)
    consistency: float = Field(ge=0, le=1)
    uniqueness: float = Field(ge=0, le=1)


class NumericDetails(InsightsModel):
    kind: Literal["numeric"] = "numeric"
    outliers: Optional[OutlierSummary] = None


class CategoryDetails(InsightsModel):
    kind: Literal["category"] = "category"
    top_categories: List[CategoryCount] = Field(default_factory=list)


class DateDetails(InsightsModel):
    kind: Literal["date"] = "date"
    date_range: Optional[DateRange] = None


class PlainDetails(InsightsModel):
    kind: Literal["text", "boolean", "mixed"]


ColumnDetails = Annotated[
    Union[NumericDetails, CategoryDetails, DateDetails, PlainDetails],
    Field(discriminator="kind"),
]


class EnhancedColumnStats(InsightsModel):
    """
    Profile of one column: a common record plus a ``details`` variant keyed
    by ``inferred_type``. Only the variant matching the inferred type can
    carry outliers, top categories or a date range.
    """

    name: str
    type: CoarseType
    inferred_type: InferredType
    unique_values: int = Field(ge=0)
    null_count: int = Field(ge=0)
    non_null_count: int = Field(ge=0)
    min: Optional[float] = None
    max: Optional[float] = None
    mean: Optional[float] = None
    median: Optional[float] = None
    standard_deviation: Optional[float] = None
    mode: Any = None
    quality: ColumnQuality
    details: ColumnDetails

    @model_validator(mode="after")
    def _details_match_type(self) -> "EnhancedColumnStats":
        if self.details.kind != self.inferred_type:
            raise ValueError(
                f"details kind '{self.details.kind}' does not match "
                f"inferred type '{self.inferred_type}'"
            )
        return self

    @property
    def total_count(self) -> int:
        return self.null_count + self.non_null_count

    @property
    def outliers(self) -> Optional[OutlierSummary]:
        if isinstance(self.details, NumericDetails):
            return self.details.outliers
        return None

    @property
    def top_categories(self) -> Optional[List[CategoryCount]]:
        if isinstance(self.details, CategoryDetails):
            return self.details.top_categories
        return None

    @property
    def date_range(self) -> Optional[DateRange]:
        if isinstance(self.details, DateDetails):
            return self.details.date_range
        return None

    def to_payload(self) -> Dict[str, Any]:
        """Flat, JSON-safe column profile using the camelCase contract names."""
        payload = self.model_dump(
            by_alias=True, mode="json", exclude={"details"}, exclude_none=True
        )
        if self.outliers is not None:
            payload["outliers"] = self.outliers.model_dump(by_alias=True, mode="json")
        if self.top_categories is not None:
            payload["topCategories"] = [
                c.model_dump(by_alias=True, mode="json") for c in self.top_categories
            ]
        if self.date_range is not None:
            payload["dateRange"] = self.date_range.model_dump(
                by_alias=True, mode="json"
            )
        return payload


# ---------------------------------------------------------------------------
# Health score
# ---------------------------------------------------------------------------


class Anomaly(InsightsModel):
    column: str
    type: Literal["outlier", "missing", "unusual_pattern", "data_quality"]
    severity: Severity
    description: str
    affected_rows: Optional[int] = None


ISSUE_ANOMALY_TYPES = {
    "missing_data": "missing",
    "empty_column": "missing",
    "outliers": "outlier",
    "type_inconsistency": "data_quality",
    "bad_headers": "data_quality",
    "duplicate_identifiers": "unusual_pattern",
}


class HealthIssue(InsightsModel):
    category: Literal[
        "missing_data",
        "empty_column",
        "type_inconsistency",
        "duplicate_identifiers",
        "outliers",
        "bad_headers",
    ]
    severity: Severity
    message: str
    columns: List[str] = Field(default_factory=list)
    metric: Optional[float] = None
    affected_rows: Optional[int] = None

    def to_anomaly(self) -> List[Anomaly]:
        anomaly_type = ISSUE_ANOMALY_TYPES[self.category]
        return [
            Anomaly(
                column=column,
                type=anomaly_type,
                severity=self.severity,
                description=self.message,
                affected_rows=self.affected_rows,
            )
            for column in self.columns
        ]


class HealthScoreBreakdown(InsightsModel):
    completeness: float = Field(ge=0, le=100)
    uniqueness: float = Field(ge=0, le=100)
    consistency: float = Field(ge=0, le=100)
    header_quality: float = Field(ge=0, le=100)
    anomaly_score: float = Field(ge=0, le=100)
    overall: int = Field(ge=0, le=100)


class HealthScoreResult(InsightsModel):
    breakdown: HealthScoreBreakdown
    issues: List[HealthIssue] = Field(default_factory=list)
    recommendations: List[str] = Field(default_factory=list)
    rating: Literal["excellent", "good", "needs_attention"]

    @computed_field
    @property
    def score(self) -> int:
        return self.breakdown.overall

    def anomalies(self) -> List[Anomaly]:
        return [a for issue in self.issues for a in issue.to_anomaly()]


# ---------------------------------------------------------------------------
# Classification and charts
# ---------------------------------------------------------------------------


class DatasetClassification(InsightsModel):
    type: str
    confidence: float = Field(ge=0, le=1)
    reasoning: str
    indicators: List[str] = Field(default_factory=list)
    scores: Dict[str, float] = Field(default_factory=dict)


class ChartConfig(InsightsModel):
    type: ChartType
    title: str
    data: List[Dict[str, Any]]
    x_axis: Optional[str] = None
    y_axis: Optional[Union[str, List[str]]] = None
    colors: Optional[List[str]] = None
    explanation: Optional[str] = None
    options: Optional[Dict[str, Any]] = None

    @field_validator("data")
    @classmethod
    def _data_not_empty(cls, data: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        if not data:
            raise ValueError("chart data must not be empty")
        return data


# ---------------------------------------------------------------------------
# Business metrics
# ---------------------------------------------------------------------------


class BusinessMetric(InsightsModel):
    label: str
    value: Union[float, str]
    format: MetricFormat
    trend: Optional[Trend] = None
    column: Optional[str] = None


class TopItem(InsightsModel):
    name: str
    value: float


class BusinessMetrics(InsightsModel):
    dataset_type: str
    record_count: int = Field(ge=0)
    metrics: List[BusinessMetric] = Field(default_factory=list)
    top_items: List[TopItem] = Field(default_factory=list)
    grade: Optional[Grade] = None


class AnalysisResult(InsightsModel):
    row_count: int = Field(ge=0)
    columns: List[EnhancedColumnStats]
    health: HealthScoreResult
    charts: List[ChartConfig]
    classification: Optional[DatasetClassification] = None
    classification_error: Optional[str] = None
    business_metrics: Optional[BusinessMetrics] = None

    def to_payload(self) -> Dict[str, Any]:
        payload = self.model_dump(
            by_alias=True, mode="json", exclude={"columns"}, exclude_none=True
        )
        payload["columns"] = [c.to_payload() for c in self.columns]
        return payload
