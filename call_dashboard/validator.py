"""Per-source row validity predicates. Rejected rows never reach the store."""

from __future__ import annotations

from typing import Callable

from call_dashboard.config import Settings
from call_dashboard.records import CanonicalRecord


def _blank(value: str) -> bool:
    return not value.strip()


def valid_inbound(record: CanonicalRecord, settings: Settings) -> bool:
    # A call id separates real calls from stray header/footer lines.
    return not _blank(record.role_value("call_id"))


def valid_outbound(record: CanonicalRecord, settings: Settings) -> bool:
    if _blank(record.role_value("agent")):
        return False
    return not settings.is_total_sentinel(record.role_value("date"))


def valid_connectrate(record: CanonicalRecord, settings: Settings) -> bool:
    if not record.flag("is_outbound_direction"):
        return False
    return not _blank(record.role_value("call_id"))


def valid_fcr(record: CanonicalRecord, settings: Settings) -> bool:
    values = [record.role_value(role) for role in ("date", "year", "month", "day")]
    if any(settings.is_total_sentinel(value) for value in values):
        return False
    if "year" not in record.roles:
        return not _blank(record.role_value("date"))
    if _blank(record.role_value("year")):
        return False
    # Year=2024, Month=13 composes to nothing: reject rather than keep dateless.
    return record.parsed_date is not None


VALIDATORS: dict[str, Callable[[CanonicalRecord, Settings], bool]] = {
    "inbound": valid_inbound,
    "outbound": valid_outbound,
    "outbound_connectrate": valid_connectrate,
    "fcr": valid_fcr,
}


def is_valid(record: CanonicalRecord, source_type: str, settings: Settings) -> bool:
    if record.is_blank():
        return False
    predicate = VALIDATORS.get(source_type)
    if predicate is None:
        return False
    return predicate(record, settings)
