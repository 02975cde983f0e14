"""
Row normalisation: one raw CSV row in, one CanonicalRecord out.

Which column plays which logical role (date, agent, status, ...) is decided by
``headers.resolve_header`` against the candidate lists in
``settings/field_mappings.json``. Resolution depends only on the header row, so
callers normalising a whole file resolve once with ``resolve_roles`` and pass
the result in.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Callable, Mapping, Sequence

from call_dashboard.config import Settings
from call_dashboard.dates import bucket_key, coerce_date, compose_date, is_ambiguous_day_month
from call_dashboard.headers import clean_header, resolve_exact_or_canonical, resolve_header
from call_dashboard.numeric import coerce_number, parse_duration_seconds
from call_dashboard.records import CanonicalRecord


def clean_fields(raw: Mapping[Any, Any]) -> dict[str, str]:
    """Trim header names and values; drop columns whose header is blank."""
    fields: dict[str, str] = {}
    for key, value in raw.items():
        name = clean_header(key)
        if not name:
            continue
        fields[name] = "" if value is None else str(value).strip()
    return fields


def resolve_roles(headers: Sequence[str], source_type: str, settings: Settings) -> dict[str, str]:
    roles: dict[str, str] = {}
    for logical_field, candidates in settings.field_mappings.get(source_type, {}).items():
        hit = resolve_header(headers, candidates)
        if hit is not None:
            roles[logical_field] = hit
    return roles


def _duration(record: CanonicalRecord, role: str) -> float | None:
    if role not in record.roles:
        return None
    return parse_duration_seconds(record.role_value(role))


def _stamp_date(record: CanonicalRecord, parsed: datetime | None, raw: str, settings: Settings) -> None:
    record.parsed_date = parsed
    record.chart_bucket_key = bucket_key(parsed, raw, settings.total_sentinels)
    record.flags["date_is_ambiguous"] = parsed is not None and is_ambiguous_day_month(raw)


def _generic_date(record: CanonicalRecord, settings: Settings) -> None:
    raw = record.role_value("date")
    _stamp_date(record, coerce_date(raw, day_first=settings.day_first), raw, settings)


# ══════════════════════════════════════════════════════════════════════════════
# PER-SOURCE NORMALISERS
# ══════════════════════════════════════════════════════════════════════════════

def normalize_inbound(record: CanonicalRecord, settings: Settings) -> None:
    _generic_date(record, settings)
    status = record.role_value("status").lower()
    record.flags["is_abandoned"] = any(keyword in status for keyword in settings.abandoned_keywords)
    record.metrics["handle_seconds"] = _duration(record, "duration")
    record.metrics["wait_seconds"] = _duration(record, "wait_time")


def normalize_outbound(record: CanonicalRecord, settings: Settings) -> None:
    """
    Per-agent daily aggregate rows.

    The totals come from a fixed schema, so they are looked up by their
    well-known names rather than through the fuzzy candidate lists. There is
    no per-call duration here, hence no connected flag.
    """
    _generic_date(record, settings)
    headers = list(record.fields)
    for metric, header in settings.fixed_columns.get("outbound", {}).items():
        actual = resolve_exact_or_canonical(headers, header)
        if actual is None:
            record.metrics[metric] = None
        elif metric == "total_call_duration":
            record.metrics[metric] = parse_duration_seconds(record.fields[actual]) or 0.0
        else:
            record.metrics[metric] = coerce_number(record.fields[actual])

    call_count = record.metrics.get("outbound_calls")
    if call_count is None:
        call_count = record.metrics.get("total_calls")
    if call_count is None and "count" in record.roles:
        call_count = coerce_number(record.role_value("count"))
    record.metrics["call_count"] = call_count


def normalize_connectrate(record: CanonicalRecord, settings: Settings) -> None:
    direction = record.role_value("direction").strip().lower()
    record.flags["is_outbound_direction"] = direction == "outbound"
    _generic_date(record, settings)
    duration = _duration(record, "duration")
    record.metrics["duration_seconds"] = duration
    record.flags["is_connected"] = (
        duration is not None and duration > settings.connected_call_minimum_seconds
    )


def normalize_fcr(record: CanonicalRecord, settings: Settings) -> None:
    if "year" in record.roles:
        parts = [record.role_value(role) for role in ("year", "month", "day")]
        parsed = compose_date(*parts)
        if any(settings.is_total_sentinel(part) for part in parts):
            raw = ""
        else:
            raw = "-".join(part for part in parts if part)
        _stamp_date(record, parsed, raw, settings)
    else:
        _generic_date(record, settings)

    if "count" in record.roles:
        record.metrics["case_count"] = coerce_number(record.role_value("count"))
    else:
        record.metrics["case_count"] = None


NORMALIZERS: dict[str, Callable[[CanonicalRecord, Settings], None]] = {
    "inbound": normalize_inbound,
    "outbound": normalize_outbound,
    "outbound_connectrate": normalize_connectrate,
    "fcr": normalize_fcr,
}


def normalize_row(
    raw: Mapping[Any, Any],
    source_type: str,
    settings: Settings,
    roles: Mapping[str, str] | None = None,
) -> CanonicalRecord:
    """
    Build the CanonicalRecord for one raw row.

    Running this again on ``record.fields`` yields identical derived values.
    Raises ValueError for an unknown source type; every cell-level problem
    resolves to None/0/False instead.
    """
    normalize = NORMALIZERS.get(source_type)
    if normalize is None:
        raise ValueError(f"Unknown source type: {source_type!r}")

    fields = clean_fields(raw)
    if roles is None:
        roles = resolve_roles(list(fields), source_type, settings)
    record = CanonicalRecord(source_type=source_type, fields=fields, roles=dict(roles))
    normalize(record, settings)
    return record
