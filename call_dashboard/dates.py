"""
Date coercion for call-center exports.

Recognised encodings, tried in order (first match wins):

    1. datetime / date objects             returned as-is
    2. spreadsheet serial numbers          20000 < n < 60000, Windows epoch 1899-12-30
    3. ISO 8601                            2024-01-31, 2024-01-31 14:05, 2024-01-31T14:05:09Z
    4. slash/dash day-month-year           31/01/2024, 01-31-24 09:15 PM
    5. written-out formats                 Jan 31 2024, 31 January 2024, 2024/01/31
    6. pandas' generic parser              anything else pandas understands

Ambiguous D/M vs M/D values (both parts <= 12) follow the ``day_first``
switch; a part greater than 12 always pins the day.
"""

from __future__ import annotations

import math
import re
import warnings
from datetime import date, datetime, timedelta
from typing import Any, Iterable

import pandas as pd

from call_dashboard.numeric import coerce_number

EXCEL_EPOCH = datetime(1899, 12, 30)
SERIAL_MIN = 20_000
SERIAL_MAX = 60_000

NUMERIC_RE = re.compile(r"^\d+(?:\.\d+)?$")
ISO_RE = re.compile(
    r"^(\d{4})-(\d{2})-(\d{2})"
    r"(?:[T ](\d{1,2}):(\d{2})(?::(\d{2})(?:\.(\d{1,6})\d*)?)?)?"
    r"\s*(?:Z|[+-]\d{2}:?\d{2})?$",
    re.IGNORECASE,
)
DAY_MONTH_RE = re.compile(
    r"^(\d{1,2})[/-](\d{1,2})[/-](\d{2,4})"
    r"(?:[ T,]+(\d{1,2}):(\d{2})(?::(\d{2}))?\s*([AaPp][Mm])?)?$"
)

TEXT_FORMATS = [
    "%Y/%m/%d",
    "%Y/%m/%d %H:%M",
    "%Y/%m/%d %H:%M:%S",
    "%B %d %Y",
    "%b %d %Y",
    "%B %d, %Y",
    "%b %d, %Y",
    "%d %B %Y",
    "%d %b %Y",
    "%d-%b-%Y",
    "%d-%b-%y",
    "%b %d, %Y %I:%M %p",
    "%a %b %d %Y",
]


def _from_serial(number: float) -> datetime | None:
    if not SERIAL_MIN < number < SERIAL_MAX:
        return None
    return EXCEL_EPOCH + timedelta(days=number)


def _hour_24(hour: int, meridiem: str | None) -> int:
    if not meridiem:
        return hour
    meridiem = meridiem.lower()
    if meridiem == "pm" and hour < 12:
        return hour + 12
    if meridiem == "am" and hour == 12:
        return 0
    return hour


def _safe_datetime(*parts: int) -> datetime | None:
    try:
        return datetime(*parts)
    except (ValueError, OverflowError):
        return None


def _parse_iso(m: re.Match) -> datetime | None:
    year, month, day = int(m.group(1)), int(m.group(2)), int(m.group(3))
    hour = int(m.group(4) or 0)
    minute = int(m.group(5) or 0)
    second = int(m.group(6) or 0)
    micro = int((m.group(7) or "0").ljust(6, "0"))
    return _safe_datetime(year, month, day, hour, minute, second, micro)


def resolve_day_month(first: int, second: int, *, day_first: bool) -> tuple[int, int]:
    """Return (day, month) for the two leading components of a D/M/Y value."""
    if first > 12:
        return first, second
    if second > 12:
        return second, first
    return (first, second) if day_first else (second, first)


def _parse_day_month(m: re.Match, *, day_first: bool) -> datetime | None:
    first, second, year = int(m.group(1)), int(m.group(2)), int(m.group(3))
    if year < 100:
        year += 2000
    day, month = resolve_day_month(first, second, day_first=day_first)
    hour = _hour_24(int(m.group(4) or 0), m.group(7))
    minute = int(m.group(5) or 0)
    sec = int(m.group(6) or 0)
    return _safe_datetime(year, month, day, hour, minute, sec)


def _parse_text_formats(text: str) -> datetime | None:
    for fmt in TEXT_FORMATS:
        try:
            return datetime.strptime(text, fmt)
        except ValueError:
            continue
    return None


def _parse_generic(text: str, *, day_first: bool) -> datetime | None:
    with warnings.catch_warnings():
        warnings.simplefilter("ignore")
        try:
            parsed = pd.to_datetime(text, errors="coerce", dayfirst=day_first)
        except (ValueError, TypeError, OverflowError):
            return None
    if parsed is None or pd.isna(parsed):
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.tz_localize(None)
    return parsed.to_pydatetime()


def coerce_date(raw: Any, *, day_first: bool = True) -> datetime | None:
    """Resolve a cell to a datetime, or None when it is not a usable date."""
    if raw is None or isinstance(raw, bool):
        return None
    if raw is pd.NaT:
        return None
    if isinstance(raw, pd.Timestamp):
        if raw.tzinfo is not None:
            raw = raw.tz_localize(None)
        return raw.to_pydatetime()
    if isinstance(raw, datetime):
        return raw
    if isinstance(raw, date):
        return datetime(raw.year, raw.month, raw.day)
    if isinstance(raw, (int, float)):
        if isinstance(raw, float) and not math.isfinite(raw):
            return None
        return _from_serial(float(raw))

    text = " ".join(str(raw).replace("\ufeff", "").split())
    if not text:
        return None

    if NUMERIC_RE.match(text):
        return _from_serial(float(text))

    m = ISO_RE.match(text)
    if m:
        return _parse_iso(m)
    if re.match(r"^\d{4}-\d{2}-\d{2}", text):
        return _parse_generic(text, day_first=False)

    m = DAY_MONTH_RE.match(text)
    if m:
        return _parse_day_month(m, day_first=day_first)

    return _parse_text_formats(text) or _parse_generic(text, day_first=day_first)


def is_ambiguous_day_month(raw: Any) -> bool:
    """True when the day_first switch changes how ``raw`` is read."""
    if not isinstance(raw, str):
        return False
    m = DAY_MONTH_RE.match(" ".join(raw.split()))
    if not m:
        return False
    first, second = int(m.group(1)), int(m.group(2))
    return first <= 12 and second <= 12 and first != second


def compose_date(year: Any, month: Any, day: Any) -> datetime | None:
    """
    Build a date from separate year/month/day cells.

    Non-positive components, years at or before 1900 and impossible dates
    (month 13, 30 February) all yield None.
    """
    y, mth, d = (coerce_number(part) for part in (year, month, day))
    if y <= 1900 or mth <= 0 or d <= 0:
        return None
    if not (float(y).is_integer() and float(mth).is_integer() and float(d).is_integer()):
        return None
    return _safe_datetime(int(y), int(mth), int(d))


def bucket_key(parsed: datetime | None, raw: Any, sentinels: Iterable[str] = ()) -> str | None:
    """Day-granularity grouping key; falls back to the raw text, never to a total label."""
    if parsed is not None:
        return parsed.strftime("%Y-%m-%d")
    if raw is None:
        return None
    text = " ".join(str(raw).split())
    if not text:
        return None
    if text.lower() in {s.lower() for s in sentinels}:
        return None
    return text


def to_day_start(value: Any, *, day_first: bool = True) -> datetime | None:
    parsed = coerce_date(value, day_first=day_first)
    if parsed is None:
        return None
    return datetime(parsed.year, parsed.month, parsed.day)


def to_day_end(value: Any, *, day_first: bool = True) -> datetime | None:
    start = to_day_start(value, day_first=day_first)
    if start is None:
        return None
    return start + timedelta(days=1) - timedelta(microseconds=1)
