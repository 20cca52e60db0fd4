import logging
from collections import Counter
from typing import Any, Dict, List, Optional, Sequence, Tuple

import pandas as pd
from sklearn.ensemble import IsolationForest

from apps.insights.core.config import DEFAULT_CONFIG, ProfilingConfig
from apps.insights.core.constants import (
    BOOLEAN_TOKEN_PAIRS,
    COARSE_TYPES,
    NUMERIC_BOOLEAN_PAIR,
)
from apps.insights.core.models import (
    CategoryCount,
    CategoryDetails,
    ColumnQuality,
    DateDetails,
    DateRange,
    EnhancedColumnStats,
    NumericDetails,
    OutlierSummary,
    PlainDetails,
    ValueKind,
)
from apps.insights.core.utils import (
    boolean_token,
    column_values,
    display_value,
    recognize_value,
    safe_ratio,
    validate_dataset,
    value_key,
)

logger = logging.getLogger(__name__)

Cell = Tuple[ValueKind, Any]


class DatasetProfiler:
    """
    Per-column profiler over header/row-record datasets.

    Every column gets exactly one inferred type, core statistics, a quality
    sub-score and the type-specific details (outliers for numeric columns,
    a frequency table for categories, a range for dates). Profiling is total:
    empty datasets, all-null columns and single rows yield low-confidence
    results instead of errors.
    """

    def __init__(self, config: Optional[ProfilingConfig] = None):
        self.config = config or DEFAULT_CONFIG
        self.enable_logging = self.config.enable_logging

    def _log(self, message: str) -> None:
        """Log message if logging is enabled."""
        if self.enable_logging:
            logger.debug("[DatasetProfiler] %s", message)

    # ------------------------------------------------------------------
    # Type inference
    # ------------------------------------------------------------------

    def _recognize(self, values: Sequence[Any]) -> List[Cell]:
        return [recognize_value(v) for v in values]

    def _infer_boolean(self, non_null: List[Cell]) -> Optional[float]:
        """
        Return the share of values inside the best boolean pair, or None when
        the column is not boolean-like.

        Purely numeric columns must hold exactly ``0`` and ``1``; word pairs
        (true/false, yes/no, y/n, t/f) follow the confidence threshold.
        """
        if all(kind == ValueKind.NUMBER for kind, _ in non_null):
            tokens = {boolean_token(payload) for _, payload in non_null}
            return 1.0 if tokens == NUMERIC_BOOLEAN_PAIR else None

        tokens = Counter(
            boolean_token(payload)
            for kind, payload in non_null
            if kind == ValueKind.BOOLEAN
        )
        if not tokens:
            return None
        best = max(sum(tokens[t] for t in pair) for pair in BOOLEAN_TOKEN_PAIRS)
        share = best / len(non_null)
        return share if share >= self.config.type_confidence_threshold else None

    def infer_type(self, cells: List[Cell]) -> Tuple[str, float]:
        """
        Decide the semantic type of a column by majority vote.

        Returns
        -------
        Tuple[str, float]
            ``(inferred_type, consistency)`` where consistency is the share of
            non-null values agreeing with the winning type.
        """
        non_null = [c for c in cells if c[0] != ValueKind.NULL]
        if not non_null:
            return "mixed", 0.0

        n = len(non_null)
        threshold = self.config.type_confidence_threshold
        kinds = Counter(kind for kind, _ in non_null)

        boolean_share = self._infer_boolean(non_null)
        if boolean_share is not None:
            return "boolean", boolean_share

        numeric_share = kinds[ValueKind.NUMBER] / n
        if numeric_share >= threshold:
            return "numeric", numeric_share

        date_share = kinds[ValueKind.DATE] / n
        if date_share >= threshold:
            return "date", date_share

        # boolean-looking tokens ("y", "F") inside a string column count as text
        strings = [p for _, p in non_null if isinstance(p, str)]
        string_share = len(strings) / n
        if string_share >= threshold:
            unique_ratio = len(set(strings)) / len(strings)
            avg_length = sum(len(s) for s in strings) / len(strings)
            if (
                unique_ratio <= self.config.category_max_unique_ratio
                and avg_length <= self.config.category_max_avg_length
            ):
                return "category", string_share
            return "text", string_share

        flags = n - len(strings) - kinds[ValueKind.NUMBER] - kinds[ValueKind.DATE]
        plurality = max(
            kinds[ValueKind.NUMBER], kinds[ValueKind.DATE], len(strings), flags
        )
        return "mixed", plurality / n

    # ------------------------------------------------------------------
    # Statistics
    # ------------------------------------------------------------------

    def _frequency(self, non_null: List[Cell]) -> Tuple[Counter, Dict]:
        """Counts keyed by normalized value, in first-seen order."""
        counts = Counter()
        first_seen = {}
        for kind, payload in non_null:
            key = value_key(kind, payload)
            if key not in first_seen:
                first_seen[key] = (kind, payload)
            counts[key] += 1
        return counts, first_seen

    def _numeric_stats(self, numbers: pd.Series) -> Dict[str, Optional[float]]:
        if numbers.empty:
            return {}
        return {
            "min": float(numbers.min()),
            "max": float(numbers.max()),
            "mean": float(numbers.mean()),
            "median": float(numbers.median()),
            "standard_deviation": float(numbers.std(ddof=0)),
        }

    def _outlier_mask(self, numbers: pd.Series) -> pd.Series:
        method = self.config.outlier_method
        if numbers.nunique() < 2:
            return pd.Series(False, index=numbers.index)

        if method == "iqr":
            q1 = numbers.quantile(0.25)
            q3 = numbers.quantile(0.75)
            iqr = q3 - q1
            lower = q1 - self.config.outlier_iqr_multiplier * iqr
            upper = q3 + self.config.outlier_iqr_multiplier * iqr
            return (numbers < lower) | (numbers > upper)

        if method == "zscore":
            std = numbers.std(ddof=0)
            z = (numbers - numbers.mean()) / std
            return z.abs() > self.config.outlier_zscore_threshold

        forest = IsolationForest(n_estimators=100, contamination="auto", random_state=0)
        labels = forest.fit_predict(numbers.to_numpy().reshape(-1, 1))
        return pd.Series(labels == -1, index=numbers.index)

    def detect_outliers(self, numbers: pd.Series) -> Optional[OutlierSummary]:
        """
        Flag outliers with the configured method.

        Returns None when there are fewer values than ``outlier_min_sample``;
        otherwise a summary whose ``values`` holds the first flagged values in
        row order, capped at ``outlier_sample_cap``.
        """
        if len(numbers) < self.config.outlier_min_sample:
            return None
        mask = self._outlier_mask(numbers)
        flagged = numbers[mask]
        return OutlierSummary(
            count=int(mask.sum()),
            values=[float(v) for v in flagged.head(self.config.outlier_sample_cap)],
            method=self.config.outlier_method,
        )

    def _top_categories(
        self, counts: Counter, first_seen: Dict, non_null_count: int
    ) -> List[CategoryCount]:
        top = []
        for key, count in counts.most_common(self.config.top_categories_limit):
            kind, payload = first_seen[key]
            top.append(
                CategoryCount(
                    value=display_value(kind, payload),
                    count=count,
                    percentage=count / non_null_count,
                )
            )
        return top

    def _date_range(self, cells: List[Cell]) -> Optional[DateRange]:
        dates = [p for k, p in cells if k == ValueKind.DATE]
        if not dates:
            return None
        earliest, latest = min(dates), max(dates)
        return DateRange(
            min=earliest.to_pydatetime(),
            max=latest.to_pydatetime(),
            span=int((latest - earliest).days),
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def profile_column(self, name: str, values: Sequence[Any]) -> EnhancedColumnStats:
        cells = self._recognize(values)
        non_null = [c for c in cells if c[0] != ValueKind.NULL]
        total = len(cells)
        non_null_count = len(non_null)

        inferred_type, consistency = self.infer_type(cells)
        counts, first_seen = self._frequency(non_null)
        unique_values = len(counts)

        mode = None
        if counts:
            mode_key = counts.most_common(1)[0][0]
            kind, payload = first_seen[mode_key]
            mode = display_value(kind, payload, as_boolean=inferred_type == "boolean")

        stats = {}
        if inferred_type == "numeric":
            numbers = pd.Series(
                [p for k, p in non_null if k == ValueKind.NUMBER], dtype=float
            )
            stats = self._numeric_stats(numbers)
            details = NumericDetails(outliers=self.detect_outliers(numbers))
        elif inferred_type == "category":
            details = CategoryDetails(
                top_categories=self._top_categories(counts, first_seen, non_null_count)
            )
        elif inferred_type == "date":
            details = DateDetails(date_range=self._date_range(non_null))
        else:
            details = PlainDetails(kind=inferred_type)

        if non_null_count == 0:
            self._log(f"Column '{name}' has no non-null values")

        quality = ColumnQuality(
            completeness=safe_ratio(non_null_count, total),
            consistency=consistency,
            uniqueness=safe_ratio(unique_values, non_null_count),
        )

        return EnhancedColumnStats(
            name=name,
            type=COARSE_TYPES[inferred_type],
            inferred_type=inferred_type,
            unique_values=unique_values,
            null_count=total - non_null_count,
            non_null_count=non_null_count,
            mode=mode,
            quality=quality,
            details=details,
            **stats,
        )

    def profile_all_columns(
        self, headers: Sequence[str], rows: Sequence[Dict[str, Any]]
    ) -> List[EnhancedColumnStats]:
        """
        Profile every column of a dataset.

        Parameters
        ----------
        headers : Sequence[str]
            Column names, in output order. Duplicate names are profiled from
            the same values, since rows are keyed by name.
        rows : Sequence[Dict[str, Any]]
            Row records. Missing keys are read as null; extra keys are ignored.

        Returns
        -------
        List[EnhancedColumnStats]
            One entry per header, order preserved.
        """
        headers, rows = validate_dataset(
            headers, rows, self.config.max_unmatched_row_ratio
        )
        self._log(f"Profiling {len(headers)} columns over {len(rows)} rows")

        profiles = []
        for header in headers:
            profile = self.profile_column(header, column_values(rows, header))
            self._log(
                f"{header}: {profile.inferred_type} "
                f"(consistency={profile.quality.consistency:.2f})"
            )
            profiles.append(profile)
        return profiles


def profile_all_columns(
    headers: Sequence[str],
    rows: Sequence[Dict[str, Any]],
    config: Optional[ProfilingConfig] = None,
) -> List[EnhancedColumnStats]:
    return DatasetProfiler(config).profile_all_columns(headers, rows)


def profile_column(
    name: str, values: Sequence[Any], config: Optional[ProfilingConfig] = None
) -> EnhancedColumnStats:
    return DatasetProfiler(config).profile_column(name, values)


def infer_column_type(
    values: Sequence[Any], config: Optional[ProfilingConfig] = None
) -> str:
    profiler = DatasetProfiler(config)
    inferred_type, _ = profiler.infer_type(profiler._recognize(values))
    return inferred_type
