"""Shared utility helpers used across connectors and services."""

import math

# Column limits: money columns are NUMERIC(15, 4), counters are INTEGER.
MAX_DECIMAL = 9999999999.9999
MAX_INT = 2147483647
MAX_BIGINT = 9223372036854775807


def safe_int(v, limit: int = MAX_INT):
    """Convert a value to int clamped to ±limit, returning None on failure."""
    if v is None or v == "":
        return None
    try:
        n = int(float(v)) if isinstance(v, str) else int(v)
    except (ValueError, TypeError, OverflowError):
        return None
    return max(-limit, min(limit, n))


def safe_float(v, limit: float = MAX_DECIMAL):
    """Convert a value to float clamped to ±limit, returning None on failure."""
    if v is None or v == "":
        return None
    try:
        f = float(v)
    except (ValueError, TypeError):
        return None
    if math.isnan(f):
        return None
    return max(-limit, min(limit, f))


def split_list(text) -> list[str]:
    """Split an operator-entered list on commas (ASCII or full-width) and newlines.

    Entries are trimmed and lower-cased; blanks are dropped. A list input is
    normalized the same way.
    """
    if not text:
        return []
    if isinstance(text, (list, tuple)):
        items = [str(t) for t in text]
    else:
        items = str(text).replace("，", ",").replace("\n", ",").split(",")
    return [i.strip().lower() for i in items if i and i.strip()]
