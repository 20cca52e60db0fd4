import datetime
import math
import re
from collections.abc import Mapping, Sequence
from typing import Any, List, Optional, Tuple

import numpy as np
import pandas as pd

from apps.insights.core.constants import (
    BOOLEAN_TOKEN_PAIRS,
    BOOLEAN_TRUE_TOKENS,
    CURRENCY_PATTERN,
    DATE_PATTERNS,
    IDENTIFIER_SUFFIX_PATTERN,
    IDENTIFIER_TOKENS,
    NULL_TOKENS,
    NUMERIC_PATTERN,
)
from apps.insights.core.exceptions import InvalidColumnStatsError, InvalidDatasetError
from apps.insights.core.models import EnhancedColumnStats, ValueKind

_WORD_BOOLEAN_TOKENS = frozenset().union(*BOOLEAN_TOKEN_PAIRS)
_LEADING_IDENTIFIER_TOKENS = {"id", "uuid", "guid"}


# ---------------------------------------------------------------------------
# Cell recognition
# ---------------------------------------------------------------------------


def is_null(value: Any) -> bool:
    """Missing keys, None, NaN/NaT and blank or null-token strings are all null."""
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip().lower() in NULL_TOKENS
    if isinstance(value, float):
        return math.isnan(value)
    if value is pd.NaT or value is pd.NA:
        return True
    if isinstance(value, np.floating):
        return bool(np.isnan(value))
    return False


def parse_number(value: Any) -> Optional[float]:
    """Return a finite float for numeric cells and numeric-looking strings."""
    if isinstance(value, (bool, np.bool_)):
        return None
    if isinstance(value, (int, float, np.integer, np.floating)):
        try:
            number = float(value)
        except OverflowError:
            return None
        return number if math.isfinite(number) else None
    if isinstance(value, str):
        text = value.strip()
        if not NUMERIC_PATTERN.match(text):
            return None
        is_percent = text.endswith("%")
        cleaned = re.sub(r"[$€£¥,%\s]", "", text)
        try:
            number = float(cleaned)
        except ValueError:
            return None
        if not math.isfinite(number):
            return None
        return number / 100.0 if is_percent else number
    return None


def looks_like_date(text: str) -> bool:
    return any(pattern.match(text) for pattern in DATE_PATTERNS)


def parse_date(value: Any) -> Optional[pd.Timestamp]:
    """
    Parse a date-like cell into a UTC timestamp.

    Naive values are read as UTC so that day spans never depend on the
    local timezone.
    """
    if isinstance(value, pd.Timestamp):
        stamp = value
    elif isinstance(value, (datetime.datetime, datetime.date)):
        stamp = pd.Timestamp(value)
    elif isinstance(value, str):
        text = value.strip()
        if not looks_like_date(text):
            return None
        stamp = pd.to_datetime(text, errors="coerce")
        if stamp is pd.NaT or pd.isna(stamp):
            return None
    else:
        return None
    if stamp.tzinfo is None:
        return stamp.tz_localize("UTC")
    return stamp.tz_convert("UTC")


def is_boolean_token(value: Any) -> bool:
    if isinstance(value, (bool, np.bool_)):
        return True
    if isinstance(value, str):
        return value.strip().lower() in _WORD_BOOLEAN_TOKENS
    return False


def recognize_value(value: Any) -> Tuple[ValueKind, Any]:
    """
    Map a raw cell onto the closed :class:`ValueKind` variant together with
    its normalized payload.

    ======== ==========================================
    kind     payload
    ======== ==========================================
    NULL     ``None``
    BOOLEAN  the ``bool`` or the stripped token string
    NUMBER   finite ``float``
    DATE     UTC ``pd.Timestamp``
    TEXT     stripped string
    ======== ==========================================
    """
    if is_null(value):
        return ValueKind.NULL, None
    if is_boolean_token(value):
        if isinstance(value, str):
            return ValueKind.BOOLEAN, value.strip()
        return ValueKind.BOOLEAN, bool(value)
    number = parse_number(value)
    if number is not None:
        return ValueKind.NUMBER, number
    stamp = parse_date(value)
    if stamp is not None:
        return ValueKind.DATE, stamp
    return ValueKind.TEXT, str(value).strip()


def classify_value(value: Any) -> ValueKind:
    return recognize_value(value)[0]


def numeric_value(value: Any) -> Optional[float]:
    kind, payload = recognize_value(value)
    return payload if kind == ValueKind.NUMBER else None


def date_value(value: Any) -> Optional[pd.Timestamp]:
    kind, payload = recognize_value(value)
    return payload if kind == ValueKind.DATE else None


def boolean_token(payload: Any) -> str:
    """Lower-cased token used to decide whether a column is boolean-like."""
    if isinstance(payload, (bool, np.bool_)):
        return "true" if payload else "false"
    if isinstance(payload, float) and payload in (0.0, 1.0):
        return "1" if payload == 1.0 else "0"
    return str(payload).strip().lower()


def is_true_token(token: str) -> bool:
    return token in BOOLEAN_TRUE_TOKENS


def value_key(kind: ValueKind, payload: Any) -> Tuple[str, Any]:
    """
    Hashable identity of a recognized cell for counting distinct values.

    Numbers compare by magnitude (``1``, ``1.0`` and ``"1"`` are one value)
    and kinds never collide with each other, so ``True`` and ``1`` stay apart.
    """
    if kind == ValueKind.BOOLEAN:
        return (kind.value, boolean_token(payload))
    return (kind.value, payload)


def display_value(kind: ValueKind, payload: Any, as_boolean: bool = False) -> Any:
    """JSON-friendly representative of a recognized cell."""
    if kind == ValueKind.NUMBER:
        if as_boolean:
            return payload == 1.0
        return int(payload) if payload.is_integer() else payload
    if kind == ValueKind.BOOLEAN:
        if as_boolean or isinstance(payload, bool):
            return is_true_token(boolean_token(payload))
        return payload
    if kind == ValueKind.DATE:
        return payload.isoformat()
    return payload


def is_currency_like(value: Any) -> bool:
    return isinstance(value, str) and bool(CURRENCY_PATTERN.match(value.strip()))


# ---------------------------------------------------------------------------
# Headers
# ---------------------------------------------------------------------------


def tokenize_header(header: str) -> List[str]:
    """Split snake_case, kebab-case, spaced and camelCase headers into lower tokens."""
    spaced = re.sub(r"([a-z0-9])([A-Z])", r"\1 \2", header or "")
    return [t for t in re.split(r"[^a-zA-Z0-9]+", spaced.lower()) if t]


def is_identifier_header(header: str) -> bool:
    stripped = (header or "").strip()
    if IDENTIFIER_SUFFIX_PATTERN.search(stripped):
        return True
    tokens = tokenize_header(stripped)
    if not tokens:
        return False
    return tokens[-1] in IDENTIFIER_TOKENS or tokens[0] in _LEADING_IDENTIFIER_TOKENS


# ---------------------------------------------------------------------------
# Input validation
# ---------------------------------------------------------------------------


def _is_sequence(obj: Any) -> bool:
    return isinstance(obj, Sequence) and not isinstance(obj, (str, bytes, bytearray))


def validate_headers(headers: Any) -> List[str]:
    if not _is_sequence(headers):
        raise InvalidDatasetError(
            f"headers must be a list of strings, got {type(headers).__name__}"
        )
    if len(headers) == 0:
        raise InvalidDatasetError("headers must not be empty")
    for i, header in enumerate(headers):
        if not isinstance(header, str):
            raise InvalidDatasetError(
                f"header {i} must be a string, got {type(header).__name__}"
            )
    return list(headers)


def validate_rows(rows: Any) -> List[Mapping]:
    if not _is_sequence(rows):
        raise InvalidDatasetError(
            f"rows must be a list of mappings, got {type(rows).__name__}"
        )
    for i, row in enumerate(rows):
        if not isinstance(row, Mapping):
            raise InvalidDatasetError(
                f"row {i} must be a mapping, got {type(row).__name__}"
            )
    return list(rows)


def validate_dataset(
    headers: Any, rows: Any, max_unmatched_row_ratio: float = 0.5
) -> Tuple[List[str], List[Mapping]]:
    """
    Check the shared input contract and return list copies of both inputs.

    Rows may omit header keys (read as null) and carry extra keys (ignored),
    but when too many non-empty rows share no key at all with the headers the
    records were most likely keyed by a different header set.
    """
    headers = validate_headers(headers)
    rows = validate_rows(rows)

    header_set = set(headers)
    keyed_rows = [row for row in rows if len(row) > 0]
    if keyed_rows:
        unmatched = sum(1 for row in keyed_rows if header_set.isdisjoint(row.keys()))
        ratio = unmatched / len(keyed_rows)
        if ratio > max_unmatched_row_ratio:
            raise InvalidDatasetError(
                f"{unmatched} of {len(keyed_rows)} rows share no keys with the "
                f"headers ({ratio:.0%} > {max_unmatched_row_ratio:.0%} tolerance)"
            )
    return headers, rows


def column_values(rows: List[Mapping], header: str) -> List[Any]:
    return [row.get(header) for row in rows]


# ---------------------------------------------------------------------------
# Serialization and sampling
# ---------------------------------------------------------------------------


def convert_numpy(obj):
    if isinstance(obj, dict):
        return {k: convert_numpy(v) for k, v in obj.items()}

    elif isinstance(obj, list):
        return [convert_numpy(v) for v in obj]

    elif isinstance(obj, tuple):
        return [convert_numpy(v) for v in obj]  # tuples → lists (JSON-safe)

    elif isinstance(obj, np.ndarray):
        return convert_numpy(obj.tolist())

    elif isinstance(obj, (np.integer,)):
        return int(obj)

    elif isinstance(obj, (np.floating, float)):
        return None if math.isnan(obj) else float(obj)

    elif isinstance(obj, (np.bool_,)):
        return bool(obj)

    elif obj is pd.NaT:
        return None

    elif isinstance(obj, pd.Timestamp):
        return obj.isoformat()

    elif isinstance(obj, (datetime.datetime, datetime.date)):
        return obj.isoformat()

    else:
        return obj


def stride_sample(items: List[Any], max_items: int) -> List[Any]:
    """
    Deterministically thin ``items`` to at most ``max_items`` entries by
    taking every k-th element; the last element is always kept.
    """
    if len(items) <= max_items:
        return list(items)
    step = math.ceil(len(items) / (max_items - 1))
    sampled = list(items[::step])
    if (len(items) - 1) % step != 0:
        sampled.append(items[-1])
    return sampled


def safe_ratio(numerator: float, denominator: float) -> float:
    return numerator / denominator if denominator else 0.0


def validate_column_stats(column_stats: Any) -> List[EnhancedColumnStats]:
    if not _is_sequence(column_stats):
        raise InvalidColumnStatsError(
            "column_stats must be a sequence of EnhancedColumnStats, "
            f"got {type(column_stats).__name__}"
        )
    for i, stats in enumerate(column_stats):
        if not isinstance(stats, EnhancedColumnStats):
            raise InvalidColumnStatsError(
                f"column_stats[{i}] is {type(stats).__name__}, "
                "expected EnhancedColumnStats"
            )
    return list(column_stats)
