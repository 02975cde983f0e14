"""
KPI reconciliation across sources.

Every ratio goes through ``safe_ratio`` so empty or zero-denominator inputs
resolve to 0 rather than NaN or infinity.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Iterable, Mapping, Sequence

from call_dashboard.config import KpiDefinition, Settings
from call_dashboard.numeric import first_defined, parse_duration_seconds, safe_ratio
from call_dashboard.records import CanonicalRecord

PAGE_SOURCES: dict[str, tuple[str, ...]] = {
    "inbound": ("inbound",),
    "outbound": ("outbound", "outbound_connectrate"),
    "fcr": ("fcr", "inbound", "outbound_connectrate"),
}

STATUS_OK = "ok"
STATUS_WARNING = "warning"
STATUS_CRITICAL = "critical"


@dataclass(frozen=True)
class KpiCard:
    key: str
    label: str
    value: float
    format: str
    display: str
    status: str
    warning: float | None = None
    critical: float | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def _mean_present(values: Iterable[float | None]) -> float | None:
    """Mean of the present, non-negative values; None when there are none."""
    kept = [v for v in values if v is not None and v >= 0]
    if not kept:
        return None
    return sum(kept) / len(kept)


def _raw_mean(records: Sequence[CanonicalRecord], role: str) -> float | None:
    """Mean read straight from the raw column; the fallback when no record carries the derived metric."""
    return _mean_present(parse_duration_seconds(r.role_value(role)) for r in records if role in r.roles)


def _sum_metric(records: Iterable[CanonicalRecord], name: str) -> float:
    return sum(r.metric(name, 0.0) for r in records)


def _count_flag(records: Iterable[CanonicalRecord], name: str) -> int:
    return sum(1 for r in records if r.flag(name))


def inbound_kpis(inbound: Sequence[CanonicalRecord]) -> dict[str, float]:
    total = len(inbound)
    abandoned = _count_flag(inbound, "is_abandoned")
    return {
        "totalCalls": float(total),
        "abandonRate": safe_ratio(abandoned, total, 100),
        "avgHandleTime": first_defined(
            _mean_present(r.metrics.get("handle_seconds") for r in inbound),
            _raw_mean(inbound, "duration"),
        ),
        "avgWaitTime": first_defined(
            _mean_present(r.metrics.get("wait_seconds") for r in inbound),
            _raw_mean(inbound, "wait_time"),
        ),
    }


def outbound_kpis(
    outbound: Sequence[CanonicalRecord],
    connectrate: Sequence[CanonicalRecord],
) -> dict[str, float]:
    total_calls = _sum_metric(outbound, "call_count")
    connected = _count_flag(connectrate, "is_connected")
    return {
        "totalCalls": total_calls,
        "connectRate": safe_ratio(connected, len(connectrate), 100),
        "avgTalkTime": safe_ratio(_sum_metric(outbound, "total_call_duration"), total_calls),
        "connectedCalls": float(connected),
    }


def fcr_kpis(
    fcr: Sequence[CanonicalRecord],
    inbound: Sequence[CanonicalRecord],
    connectrate: Sequence[CanonicalRecord],
) -> dict[str, float]:
    """
    FCR rate = resolved cases / connected calls across both channels.

    Connected inbound = inbound calls not abandoned; connected outbound =
    connect-rate calls over the duration threshold. All three inputs must
    have been filtered with the same criteria.
    """
    total_cases = _sum_metric(fcr, "case_count")
    connected_inbound = sum(1 for r in inbound if not r.flag("is_abandoned"))
    connected_outbound = _count_flag(connectrate, "is_connected")
    connected = connected_inbound + connected_outbound
    return {
        "totalCases": total_cases,
        "fcrPercentage": safe_ratio(total_cases, connected, 100),
        "connectedCalls": float(connected),
    }


def compute_kpis(
    page: str,
    records_by_source: Mapping[str, Sequence[CanonicalRecord]],
    settings: Settings | None = None,
) -> dict[str, float]:
    def get(source: str) -> Sequence[CanonicalRecord]:
        return records_by_source.get(source) or ()

    if page == "inbound":
        return inbound_kpis(get("inbound"))
    if page == "outbound":
        return outbound_kpis(get("outbound"), get("outbound_connectrate"))
    if page == "fcr":
        return fcr_kpis(get("fcr"), get("inbound"), get("outbound_connectrate"))
    return {}


# ══════════════════════════════════════════════════════════════════════════════
# DISPLAY
# ══════════════════════════════════════════════════════════════════════════════

def classify_threshold(value: float, warning: float | None, critical: float | None) -> str:
    """
    ok / warning / critical for a KPI value.

    When critical < warning the KPI is one where lower is worse (connect
    rate, FCR rate); otherwise higher is worse (abandon rate, wait time).
    """
    if warning is None and critical is None:
        return STATUS_OK
    lower_is_worse = warning is not None and critical is not None and critical < warning
    if lower_is_worse:
        if value <= critical:
            return STATUS_CRITICAL
        if value <= warning:
            return STATUS_WARNING
        return STATUS_OK
    if critical is not None and value >= critical:
        return STATUS_CRITICAL
    if warning is not None and value >= warning:
        return STATUS_WARNING
    return STATUS_OK


def format_duration(seconds: float) -> str:
    total = int(round(max(seconds, 0)))
    if total < 60:
        return f"{total}s"
    if total < 3600:
        return f"{total // 60}m {total % 60}s"
    return f"{total // 3600}h {total % 3600 // 60}m"


def format_kpi_value(value: float, fmt: str) -> str:
    if fmt == "percentage":
        return f"{value:.1f}%"
    if fmt == "duration":
        return format_duration(value)
    if float(value).is_integer():
        return f"{int(value):,}"
    return f"{value:,.1f}"


def build_kpi_cards(page: str, kpis: Mapping[str, float], settings: Settings) -> list[KpiCard]:
    cards: list[KpiCard] = []
    definitions: Sequence[KpiDefinition] = settings.kpi_definitions.get(page, ())
    for definition in definitions:
        value = first_defined(kpis.get(definition.key))
        cards.append(
            KpiCard(
                key=definition.key,
                label=definition.label,
                value=value,
                format=definition.format,
                display=format_kpi_value(value, definition.format),
                status=classify_threshold(value, definition.warning, definition.critical),
                warning=definition.warning,
                critical=definition.critical,
            )
        )
    return cards
