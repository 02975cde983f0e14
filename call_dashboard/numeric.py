"""
Numeric coercion for call-center exports.

Handles thousands separators, European decimal commas, accounting-style
parenthesis negatives, currency symbols and clock-style durations. Every
helper here is total: bad input becomes 0 (or None for durations) rather
than an exception, so downstream sums are always safe to accumulate.
"""

from __future__ import annotations

import math
import re
from typing import Any

UNUSUAL_SPACES_RE = re.compile(r"[\u00a0\u2000-\u200b\u202f\u3000]")
NON_NUMERIC_RE = re.compile(r"[^0-9\-+,.()]")
PARENTHESES_RE = re.compile(r"^\((.*)\)$")
EUROPEAN_GROUPED_RE = re.compile(r"^\d{1,3}(\.\d{3})+,\d{1,2}$")
DECIMAL_COMMA_RE = re.compile(r"^\d+,\d{1,2}$")
THOUSANDS_COMMA_RE = re.compile(r",(?=\d{3}(?:[.,]|$))")
LEADING_FLOAT_RE = re.compile(r"^[+-]?(?:\d+\.?\d*|\.\d+)")
CLOCK_RE = re.compile(r"^(\d+):(\d{1,2})(?::(\d{1,2})(?:\.\d+)?)?$")


def _is_missing(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, float) and math.isnan(value):
        return True
    return isinstance(value, str) and not value.strip()


def coerce_number(raw: Any) -> float:
    """Return the float a messy numeric string stands for, or 0.0."""
    if _is_missing(raw) or isinstance(raw, bool):
        return 0.0
    if isinstance(raw, (int, float)):
        return float(raw) if math.isfinite(raw) else 0.0

    text = UNUSUAL_SPACES_RE.sub(" ", str(raw)).strip()
    text = NON_NUMERIC_RE.sub("", text)
    if not text:
        return 0.0

    # Accounting negative: (1,200.00) -> -1200.0
    m = PARENTHESES_RE.match(text)
    if m:
        return -coerce_number(m.group(1))

    if EUROPEAN_GROUPED_RE.match(text):
        text = text.replace(".", "").replace(",", ".")
    elif DECIMAL_COMMA_RE.match(text):
        text = text.replace(",", ".")
    else:
        text = THOUSANDS_COMMA_RE.sub("", text)

    m = LEADING_FLOAT_RE.match(text)
    if not m:
        return 0.0
    number = float(m.group(0))
    return number if math.isfinite(number) else 0.0


def parse_duration_seconds(raw: Any) -> float | None:
    """
    Seconds for a duration cell.

    ``"02:31"`` is read as MM:SS, ``"1:02:31"`` as H:MM:SS; anything else
    goes through coerce_number. Blank cells return None so callers can tell
    a missing duration from a zero-length one.
    """
    if _is_missing(raw):
        return None
    if isinstance(raw, (int, float)) and not isinstance(raw, bool):
        return coerce_number(raw)

    text = UNUSUAL_SPACES_RE.sub(" ", str(raw)).strip()
    m = CLOCK_RE.match(text)
    if m:
        first, second, third = m.group(1), m.group(2), m.group(3)
        if third is None:
            return float(int(first) * 60 + int(second))
        return float(int(first) * 3600 + int(second) * 60 + int(third))
    return coerce_number(text)


def first_defined(*values: float | None, default: float = 0.0) -> float:
    """First value that is neither None nor NaN; a real 0.0 counts as defined."""
    for value in values:
        if value is None:
            continue
        if isinstance(value, float) and math.isnan(value):
            continue
        return value
    return default


def safe_ratio(numerator: float, denominator: float, scale: float = 1.0) -> float:
    if not denominator:
        return 0.0
    result = numerator / denominator * scale
    return result if math.isfinite(result) else 0.0
