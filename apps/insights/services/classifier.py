import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence

from apps.insights.core.config import DEFAULT_CONFIG, ProfilingConfig
from apps.insights.core.constants import (
    DEFAULT_DOMAIN,
    DOMAIN_KEYWORDS,
    LIKERT_VALUES,
    LOG_LEVEL_VALUES,
)
from apps.insights.core.models import DatasetClassification
from apps.insights.core.utils import (
    column_values,
    is_currency_like,
    is_null,
    tokenize_header,
    validate_dataset,
)

logger = logging.getLogger(__name__)

# Keywords this short only match a whole header token (optionally plural),
# so "ip" never matches "ship" and "rep" never matches "report".
SHORT_KEYWORD_LENGTH = 3

# (domain, value shape, indicator text)
SHAPE_SIGNALS = [
    ("finance", "currency", "currency-formatted values"),
    ("log_data", "log_level", "log level values"),
    ("survey", "likert", "Likert-scale answers"),
]


def keyword_matches(keyword: str, token: str) -> bool:
    if len(keyword) <= SHORT_KEYWORD_LENGTH:
        return token == keyword or token == keyword + "s"
    return keyword in token


class DatasetClassifier:
    """
    Heuristic domain classifier.

    Each domain is scored by how many headers hit its keyword vocabulary,
    plus a weighted bonus for columns whose values have a domain-specific
    shape. A unique positive top score wins; anything else is ``general``.
    """

    def __init__(self, config: Optional[ProfilingConfig] = None):
        self.config = config or DEFAULT_CONFIG
        self.enable_logging = self.config.enable_logging

    def _log(self, message: str) -> None:
        """Log message if logging is enabled."""
        if self.enable_logging:
            logger.debug("[DatasetClassifier] %s", message)

    def _header_hits(self, headers: Sequence[str]) -> Dict[str, List[str]]:
        hits = {domain: [] for domain in DOMAIN_KEYWORDS}
        for header in headers:
            tokens = tokenize_header(header)
            for domain, keywords in DOMAIN_KEYWORDS.items():
                if any(keyword_matches(k, t) for k in keywords for t in tokens):
                    if header not in hits[domain]:
                        hits[domain].append(header)
        return hits

    def _value_shape(self, values: List[Any]) -> Optional[str]:
        """Name of the shape most of a column's sampled values share, if any."""
        present = [v for v in values if not is_null(v)]
        if not present:
            return None
        majority = len(present) / 2

        if sum(1 for v in present if is_currency_like(v)) > majority:
            return "currency"

        texts = [v.strip().lower() for v in present if isinstance(v, str)]
        if sum(1 for v in texts if v in LOG_LEVEL_VALUES) > majority:
            return "log_level"
        if sum(1 for v in texts if v in LIKERT_VALUES) > majority:
            return "likert"
        return None

    def _shape_hits(
        self, headers: Sequence[str], rows: List[Mapping]
    ) -> Dict[str, List[str]]:
        hits = {domain: [] for domain in DOMAIN_KEYWORDS}
        for header in dict.fromkeys(headers):
            shape = self._value_shape(column_values(rows, header))
            for domain, name, description in SHAPE_SIGNALS:
                if shape == name:
                    hits[domain].append(f"'{header}' holds {description}")
        return hits

    def _confidence(self, top: float, total: float) -> float:
        share = top / total
        # more independent evidence -> closer to the cap
        evidence = min(1.0, top / 3)
        return round(
            min(self.config.classifier_max_confidence, share * (0.5 + 0.5 * evidence)),
            4,
        )

    def classify(
        self,
        headers: Sequence[str],
        rows: Sequence[Mapping],
        sample: bool = True,
    ) -> DatasetClassification:
        """
        Parameters
        ----------
        headers : Sequence[str]
            Column names.
        rows : Sequence[Mapping]
            Row records. Only the first ``classifier_sample_rows`` are read
            when ``sample`` is True; pass ``sample=False`` to read them all.
        """
        headers, rows = validate_dataset(
            headers, rows, self.config.max_unmatched_row_ratio
        )
        if sample:
            rows = rows[: self.config.classifier_sample_rows]

        keyword_hits = self._header_hits(headers)
        shape_hits = self._shape_hits(headers, rows)
        weight = self.config.classifier_shape_weight

        scores = {
            domain: len(keyword_hits[domain]) + weight * len(shape_hits[domain])
            for domain in DOMAIN_KEYWORDS
        }
        ranked = sorted(scores.items(), key=lambda item: item[1], reverse=True)
        top_domain, top_score = ranked[0]
        tied = [d for d, s in ranked if s == top_score]
        rounded_scores = {d: round(s, 4) for d, s in scores.items()}

        if top_score <= 0:
            self._log("No domain vocabulary matched; defaulting to general")
            return DatasetClassification(
                type=DEFAULT_DOMAIN,
                confidence=self.config.classifier_general_confidence,
                reasoning="No header or value matched any domain vocabulary",
                indicators=[],
                scores=rounded_scores,
            )

        if len(tied) > 1:
            self._log(f"Tie between {tied}; defaulting to general")
            return DatasetClassification(
                type=DEFAULT_DOMAIN,
                confidence=self.config.classifier_general_confidence,
                reasoning=f"Evidence is split evenly between {', '.join(tied)}",
                indicators=[],
                scores=rounded_scores,
            )

        indicators = [f"header '{h}'" for h in keyword_hits[top_domain]]
        indicators += shape_hits[top_domain]
        reasoning = (
            f"{len(keyword_hits[top_domain])} header(s) match the {top_domain} "
            f"vocabulary"
        )
        if shape_hits[top_domain]:
            reasoning += f" and {len(shape_hits[top_domain])} column(s) have matching values"

        total = sum(scores.values())
        confidence = self._confidence(top_score, total)
        self._log(f"Classified as {top_domain} ({confidence:.2f})")

        return DatasetClassification(
            type=top_domain,
            confidence=confidence,
            reasoning=reasoning,
            indicators=indicators,
            scores=rounded_scores,
        )


def classify_dataset(
    headers: Sequence[str],
    rows: Sequence[Mapping],
    config: Optional[ProfilingConfig] = None,
    sample: bool = True,
) -> DatasetClassification:
    return DatasetClassifier(config).classify(headers, rows, sample=sample)
