import logging
from collections import OrderedDict
from typing import Dict, List, Optional, Sequence, Tuple

from apps.insights.core.config import DEFAULT_CONFIG, ProfilingConfig
from apps.insights.core.constants import (
    GENERIC_HEADER_PATTERN,
    HEADER_ARTIFACT_PATTERN,
    SEVERITY_ORDER,
)
from apps.insights.core.exceptions import InvalidColumnStatsError
from apps.insights.core.models import (
    EnhancedColumnStats,
    HealthIssue,
    HealthScoreBreakdown,
    HealthScoreResult,
)
from apps.insights.core.utils import (
    is_identifier_header,
    validate_column_stats,
    validate_headers,
)

logger = logging.getLogger(__name__)

# Recommendation order among issues of equal severity.
ISSUE_CATEGORY_ORDER = [
    "empty_column",
    "missing_data",
    "type_inconsistency",
    "duplicate_identifiers",
    "outliers",
    "bad_headers",
]

# Header penalties, subtracted from a perfect 1.0.
HEADER_PENALTIES = {
    "empty": 1.0,
    "duplicate": 0.5,
    "generic": 0.4,
    "artifact": 0.3,
    "too_short": 0.3,
}

HEADER_REASONS = {
    "empty": "is empty",
    "duplicate": "duplicates an earlier header",
    "generic": "is generic or purely numeric",
    "artifact": "contains characters that look like a parsing artifact",
    "too_short": "is a single character",
}

# Outlier share of a column's values at which severity escalates.
OUTLIER_SHARE_HIGH = 0.10
OUTLIER_SHARE_MEDIUM = 0.05

NEUTRAL_UNIQUENESS_TYPES = ("category", "boolean")


def severity_from_gap(value: float, threshold: float) -> str:
    """Severity from how far ``value`` falls below ``threshold``, relative to it."""
    if threshold <= 0:
        return "low"
    gap = max(0.0, threshold - value) / threshold
    if gap >= 0.5:
        return "high"
    if gap >= 0.2:
        return "medium"
    return "low"


def _subject(columns: List[str], noun: str = "column") -> str:
    return f"1 {noun}" if len(columns) == 1 else f"{len(columns)} {noun}s"


def _names(columns: List[str], limit: int = 5) -> str:
    shown = ", ".join(f"'{c}'" for c in columns[:limit])
    if len(columns) > limit:
        shown += f" and {len(columns) - limit} more"
    return shown


class HealthScoreCalculator:
    def __init__(self, config: Optional[ProfilingConfig] = None):
        self.config = config or DEFAULT_CONFIG
        self.enable_logging = self.config.enable_logging

    def _log(self, message: str) -> None:
        """Log message if logging is enabled."""
        if self.enable_logging:
            logger.debug("[HealthScoreCalculator] %s", message)

    def _validate(self, column_stats, row_count) -> List[EnhancedColumnStats]:
        columns = validate_column_stats(column_stats)
        if isinstance(row_count, bool) or not isinstance(row_count, int) or row_count < 0:
            raise InvalidColumnStatsError(
                f"row_count must be a non-negative integer, got {row_count!r}"
            )
        return columns

    # ------------------------------------------------------------------
    # Sub-scores
    # ------------------------------------------------------------------

    def _completeness(
        self, columns: List[EnhancedColumnStats], row_count: int
    ) -> Tuple[float, List[HealthIssue]]:
        issues = []
        threshold = self.config.completeness_threshold
        for col in columns:
            completeness = col.quality.completeness
            if row_count == 0:
                continue
            if col.non_null_count == 0:
                issues.append(
                    HealthIssue(
                        category="empty_column",
                        severity="high",
                        message=f"Column '{col.name}' has no values",
                        columns=[col.name],
                        metric=0.0,
                        affected_rows=col.null_count,
                    )
                )
            elif completeness < threshold:
                issues.append(
                    HealthIssue(
                        category="missing_data",
                        severity=severity_from_gap(completeness, threshold),
                        message=(
                            f"Column '{col.name}' is {1 - completeness:.0%} empty "
                            f"({col.null_count} of {col.total_count} rows)"
                        ),
                        columns=[col.name],
                        metric=completeness,
                        affected_rows=col.null_count,
                    )
                )
        score = self._average([c.quality.completeness for c in columns])
        return score, issues

    def _consistency(
        self, columns: List[EnhancedColumnStats]
    ) -> Tuple[float, List[HealthIssue]]:
        issues = []
        threshold = self.config.consistency_threshold
        for col in columns:
            consistency = col.quality.consistency
            if col.non_null_count == 0 or consistency >= threshold:
                continue
            mismatched = col.non_null_count - round(col.non_null_count * consistency)
            issues.append(
                HealthIssue(
                    category="type_inconsistency",
                    severity=severity_from_gap(consistency, threshold),
                    message=(
                        f"Column '{col.name}' mixes value types: only "
                        f"{consistency:.0%} of values match its dominant type"
                    ),
                    columns=[col.name],
                    metric=consistency,
                    affected_rows=int(mismatched),
                )
            )
        score = self._average(
            [c.quality.consistency * c.quality.completeness for c in columns]
        )
        return score, issues

    def column_uniqueness(self, col: EnhancedColumnStats) -> float:
        """
        Uniqueness contribution of one column.

        Distinct values are counted against every cell of the column, so an
        emptied cell can only lower the score. Category and boolean columns
        repeat by nature and score their completeness. Identifier-like columns
        must be fully unique and use the raw ratio. Everything else saturates
        once the ratio reaches ``expected_uniqueness``, capped at completeness.
        """
        if col.total_count == 0:
            return 1.0
        completeness = col.quality.completeness
        if col.inferred_type in NEUTRAL_UNIQUENESS_TYPES:
            return completeness
        ratio = col.unique_values / col.total_count
        if is_identifier_header(col.name):
            return ratio
        return min(completeness, ratio / self.config.expected_uniqueness)

    def _uniqueness(
        self, columns: List[EnhancedColumnStats]
    ) -> Tuple[float, List[HealthIssue]]:
        issues = []
        threshold = self.config.identifier_uniqueness_threshold
        for col in columns:
            if col.non_null_count == 0 or not is_identifier_header(col.name):
                continue
            uniqueness = col.quality.uniqueness
            if uniqueness >= threshold:
                continue
            duplicates = col.non_null_count - col.unique_values
            issues.append(
                HealthIssue(
                    category="duplicate_identifiers",
                    severity=severity_from_gap(uniqueness, threshold),
                    message=(
                        f"Identifier column '{col.name}' has {duplicates} "
                        f"duplicate value{'s' if duplicates != 1 else ''}"
                    ),
                    columns=[col.name],
                    metric=uniqueness,
                    affected_rows=duplicates,
                )
            )
        score = self._average([self.column_uniqueness(c) for c in columns])
        return score, issues

    def header_problems(self, headers: Sequence[str]) -> List[List[str]]:
        """Problem codes per header, in header order."""
        seen = set()
        problems = []
        for header in headers:
            found = []
            stripped = header.strip()
            if not stripped:
                found.append("empty")
            else:
                normalized = stripped.lower()
                if normalized in seen:
                    found.append("duplicate")
                seen.add(normalized)
                if GENERIC_HEADER_PATTERN.match(stripped) or stripped.isdigit():
                    found.append("generic")
                special = sum(
                    1 for ch in stripped if not (ch.isalnum() or ch in " _-")
                )
                if HEADER_ARTIFACT_PATTERN.search(header) or special > 3:
                    found.append("artifact")
                if len(stripped) == 1:
                    found.append("too_short")
            problems.append(found)
        return problems

    def _header_quality(self, headers: List[str]) -> Tuple[float, List[HealthIssue]]:
        issues = []
        scores = []
        for header, found in zip(headers, self.header_problems(headers)):
            score = max(0.0, 1.0 - sum(HEADER_PENALTIES[p] for p in found))
            scores.append(score)
            if not found:
                continue
            reasons = " and ".join(HEADER_REASONS[p] for p in found)
            issues.append(
                HealthIssue(
                    category="bad_headers",
                    severity=severity_from_gap(score, 1.0),
                    message=f"Header '{header}' {reasons}",
                    columns=[header],
                    metric=score,
                )
            )
        return self._average(scores), issues

    def _anomaly(
        self, columns: List[EnhancedColumnStats], row_count: int
    ) -> Tuple[float, List[HealthIssue]]:
        issues = []
        total_outliers = 0
        for col in columns:
            outliers = col.outliers
            if outliers is None or outliers.count == 0:
                continue
            total_outliers += outliers.count
            share = outliers.count / col.non_null_count
            if share >= OUTLIER_SHARE_HIGH:
                severity = "high"
            elif share >= OUTLIER_SHARE_MEDIUM:
                severity = "medium"
            else:
                severity = "low"
            issues.append(
                HealthIssue(
                    category="outliers",
                    severity=severity,
                    message=(
                        f"Column '{col.name}' has {outliers.count} outlier"
                        f"{'s' if outliers.count != 1 else ''} "
                        f"({outliers.method} method)"
                    ),
                    columns=[col.name],
                    metric=share,
                    affected_rows=outliers.count,
                )
            )
        # empty cells are flagged alongside outliers
        cells = sum(col.total_count for col in columns)
        if row_count == 0 or cells == 0:
            return 1.0, issues
        flagged = total_outliers + sum(col.null_count for col in columns)
        penalty = self.config.anomaly_penalty_factor * flagged / cells
        return max(0.0, 1.0 - penalty), issues

    @staticmethod
    def _average(values: List[float]) -> float:
        return sum(values) / len(values) if values else 0.0

    # ------------------------------------------------------------------
    # Issues to recommendations
    # ------------------------------------------------------------------

    def _sort_issues(self, issues: List[HealthIssue]) -> List[HealthIssue]:
        return sorted(
            issues,
            key=lambda i: (
                -SEVERITY_ORDER[i.severity],
                ISSUE_CATEGORY_ORDER.index(i.category),
            ),
        )

    def _recommend(self, category: str, issues: List[HealthIssue]) -> str:
        columns = list(OrderedDict.fromkeys(c for i in issues for c in i.columns))
        subject, names = _subject(columns), _names(columns)

        if category == "empty_column":
            return f"Remove or populate {subject} with no values ({names})"
        if category == "missing_data":
            verb = "has a high null rate" if len(columns) == 1 else "have high null rates"
            return (
                f"{subject.capitalize()} {verb} ({names}); fill, impute or drop "
                "the missing values"
            )
        if category == "type_inconsistency":
            return (
                f"Standardize value formats in {subject} ({names}) so each "
                "holds a single type"
            )
        if category == "duplicate_identifiers":
            return f"Deduplicate identifier values in {subject} ({names})"
        if category == "outliers":
            total = sum(i.affected_rows or 0 for i in issues)
            return (
                f"Review {total} outlier value{'s' if total != 1 else ''} "
                f"across {subject} ({names})"
            )
        return f"Give {_subject(columns, 'header')} a descriptive, unique name ({names})"

    def build_recommendations(self, issues: List[HealthIssue]) -> List[str]:
        """
        One recommendation per issue category, ordered by the highest
        severity in the category, then by the fixed category order.
        """
        grouped: Dict[str, List[HealthIssue]] = OrderedDict()
        for issue in issues:
            grouped.setdefault(issue.category, []).append(issue)

        ranked = sorted(
            grouped.items(),
            key=lambda item: (
                -max(SEVERITY_ORDER[i.severity] for i in item[1]),
                ISSUE_CATEGORY_ORDER.index(item[0]),
            ),
        )
        return [self._recommend(category, group) for category, group in ranked]

    @staticmethod
    def rating_for(overall: int) -> str:
        if overall >= 90:
            return "excellent"
        if overall >= 70:
            return "good"
        return "needs_attention"

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def calculate(
        self,
        column_stats: Sequence[EnhancedColumnStats],
        row_count: int,
        headers: Sequence[str],
    ) -> HealthScoreResult:
        """
        Score a profiled dataset.

        Parameters
        ----------
        column_stats : Sequence[EnhancedColumnStats]
            Profiler output.
        row_count : int
            Number of rows the profile was computed over.
        headers : Sequence[str]
            Raw header labels, duplicates included.

        Returns
        -------
        HealthScoreResult
            Breakdown in [0, 100], issues sorted by descending severity and
            one aggregated recommendation per issue category.
        """
        columns = self._validate(column_stats, row_count)
        headers = validate_headers(headers)

        completeness, completeness_issues = self._completeness(columns, row_count)
        consistency, consistency_issues = self._consistency(columns)
        uniqueness, uniqueness_issues = self._uniqueness(columns)
        header_quality, header_issues = self._header_quality(headers)
        anomaly, anomaly_issues = self._anomaly(columns, row_count)

        weights = self.config.health_weights
        weighted = (
            weights["completeness"] * completeness
            + weights["consistency"] * consistency
            + weights["uniqueness"] * uniqueness
            + weights["header_quality"] * header_quality
            + weights["anomaly"] * anomaly
        )
        overall = int(min(100, max(0, round(weighted * 100))))

        breakdown = HealthScoreBreakdown(
            completeness=round(completeness * 100, 2),
            uniqueness=round(uniqueness * 100, 2),
            consistency=round(consistency * 100, 2),
            header_quality=round(header_quality * 100, 2),
            anomaly_score=round(anomaly * 100, 2),
            overall=overall,
        )

        issues = self._sort_issues(
            completeness_issues
            + consistency_issues
            + uniqueness_issues
            + anomaly_issues
            + header_issues
        )
        self._log(f"Overall {overall} with {len(issues)} issues")

        return HealthScoreResult(
            breakdown=breakdown,
            issues=issues,
            recommendations=self.build_recommendations(issues),
            rating=self.rating_for(overall),
        )


def calculate_health_score(
    column_stats: Sequence[EnhancedColumnStats],
    row_count: int,
    headers: Sequence[str],
    config: Optional[ProfilingConfig] = None,
) -> HealthScoreResult:
    return HealthScoreCalculator(config).calculate(column_stats, row_count, headers)
