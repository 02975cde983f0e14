"""
Chart-ready aggregates.

Rendering layers receive one of two plain shapes and nothing else:

    ChartSeries(labels, series)            bar and doughnut charts
    [TimeSeriesPoint(bucket_key, value)]   line charts, sorted by bucket key
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping, Sequence

from call_dashboard.config import Settings
from call_dashboard.kpis import PAGE_SOURCES
from call_dashboard.numeric import safe_ratio
from call_dashboard.records import CanonicalRecord

UNKNOWN_LABEL = "Unknown"


@dataclass(frozen=True)
class TimeSeriesPoint:
    bucket_key: str
    value: float


@dataclass(frozen=True)
class ChartSeries:
    labels: list[str] = field(default_factory=list)
    series: list[float] = field(default_factory=list)

    def is_empty(self) -> bool:
        return not self.labels


@dataclass(frozen=True)
class ChartSpec:
    chart_id: str
    title: str
    kind: str
    data: Any

    def to_dict(self) -> dict[str, Any]:
        if isinstance(self.data, ChartSeries):
            data: Any = {"labels": list(self.data.labels), "series": list(self.data.series)}
        else:
            data = [{"bucket_key": p.bucket_key, "value": p.value} for p in self.data]
        return {"chart_id": self.chart_id, "title": self.title, "kind": self.kind, "data": data}


def _value(record: CanonicalRecord, metric: str | None) -> float:
    if metric is None:
        return 1.0
    return record.metric(metric, 0.0)


def time_series(records: Iterable[CanonicalRecord], value_metric: str | None = None) -> list[TimeSeriesPoint]:
    """Sum ``value_metric`` (or count rows) per chart bucket key."""
    buckets: dict[str, float] = defaultdict(float)
    for record in records:
        if not record.chart_bucket_key:
            continue
        buckets[record.chart_bucket_key] += _value(record, value_metric)
    return [TimeSeriesPoint(key, buckets[key]) for key in sorted(buckets)]


def _group(
    records: Iterable[CanonicalRecord],
    role: str,
    value_metric: str | None = None,
) -> dict[str, float]:
    groups: dict[str, float] = defaultdict(float)
    for record in records:
        label = record.role_value(role).strip() or UNKNOWN_LABEL
        groups[label] += _value(record, value_metric)
    return groups


def _ranked(groups: Mapping[str, float], limit: int | None = None) -> ChartSeries:
    ordered = sorted(groups.items(), key=lambda item: (-item[1], item[0]))
    if limit is not None:
        ordered = ordered[:limit]
    return ChartSeries(labels=[k for k, _ in ordered], series=[v for _, v in ordered])


def category_counts(
    records: Sequence[CanonicalRecord],
    role: str,
    settings: Settings | None = None,
) -> ChartSeries:
    """Row counts per distinct value of the column resolved for ``role``."""
    if not records or all(role not in r.roles for r in records):
        return ChartSeries()
    return _ranked(_group(records, role))


def top_agents(
    records: Sequence[CanonicalRecord],
    settings: Settings,
    value_metric: str | None = None,
) -> ChartSeries:
    if not records or all("agent" not in r.roles for r in records):
        return ChartSeries()
    return _ranked(_group(records, "agent", value_metric), settings.top_n)


def agent_calls_per_hour(
    records: Sequence[CanonicalRecord],
    source_type: str,
    settings: Settings,
) -> ChartSeries:
    """
    Productivity per agent.

    inbound: calls / distinct date-hours the agent took calls in.
    outbound: summed daily calls / (distinct days * agent hours per day).
    """
    calls: dict[str, float] = defaultdict(float)
    slots: dict[str, set[str]] = defaultdict(set)
    for record in records:
        agent = record.role_value("agent").strip()
        if not agent or record.parsed_date is None:
            continue
        if source_type == "outbound":
            calls[agent] += record.metric("call_count", 0.0)
            slots[agent].add(record.parsed_date.strftime("%Y-%m-%d"))
        else:
            calls[agent] += 1
            slots[agent].add(record.parsed_date.strftime("%Y-%m-%d %H"))

    hours_per_slot = settings.agent_hours_per_day if source_type == "outbound" else 1.0
    rates = {
        agent: round(safe_ratio(total, len(slots[agent]) * hours_per_slot), 2)
        for agent, total in calls.items()
    }
    return _ranked(rates, settings.top_n)


def outcome_split(connectrate: Sequence[CanonicalRecord], settings: Settings) -> ChartSeries:
    connected = sum(1 for r in connectrate if r.flag("is_connected"))
    not_connected = max(len(connectrate) - connected, 0)
    threshold = int(settings.connected_call_minimum_seconds)
    label = f"Connected (>{threshold // 60}:{threshold % 60:02d})"
    slices = [(label, connected), ("Not Connected", not_connected)]
    kept = [(name, float(value)) for name, value in slices if value > 0]
    return ChartSeries(labels=[n for n, _ in kept], series=[v for _, v in kept])


def volume_comparison(
    fcr: Sequence[CanonicalRecord],
    inbound: Sequence[CanonicalRecord],
    connectrate: Sequence[CanonicalRecord],
) -> ChartSeries:
    return ChartSeries(
        labels=["FCR Cases", "Connected Inbound", "Connected Outbound"],
        series=[
            sum(r.metric("case_count", 0.0) for r in fcr),
            float(sum(1 for r in inbound if not r.flag("is_abandoned"))),
            float(sum(1 for r in connectrate if r.flag("is_connected"))),
        ],
    )


def build_page_charts(
    page: str,
    records_by_source: Mapping[str, Sequence[CanonicalRecord]],
    settings: Settings,
) -> list[ChartSpec]:
    if page not in PAGE_SOURCES:
        return []

    def get(source: str) -> Sequence[CanonicalRecord]:
        return records_by_source.get(source) or ()

    if page == "inbound":
        inbound = get("inbound")
        return [
            ChartSpec("inbound-calls-over-time", "Inbound Calls Over Time", "line", time_series(inbound)),
            ChartSpec("inbound-status", "Status Breakdown", "doughnut", category_counts(inbound, "status")),
            ChartSpec("inbound-agent", "Calls per Agent", "bar", top_agents(inbound, settings)),
            ChartSpec(
                "inbound-agent-per-hour",
                "Calls per Agent Hour",
                "bar",
                agent_calls_per_hour(inbound, "inbound", settings),
            ),
        ]

    if page == "outbound":
        outbound = get("outbound")
        connectrate = get("outbound_connectrate")
        return [
            ChartSpec(
                "outbound-calls-over-time",
                "Outbound Calls Over Time",
                "line",
                time_series(outbound, "call_count"),
            ),
            ChartSpec("outbound-agent", "Calls per Agent", "bar", top_agents(outbound, settings, "call_count")),
            ChartSpec("outbound-outcomes", "Call Outcomes", "doughnut", outcome_split(connectrate, settings)),
            ChartSpec(
                "outbound-agent-per-hour",
                "Calls per Agent Hour",
                "bar",
                agent_calls_per_hour(outbound, "outbound", settings),
            ),
        ]

    fcr = get("fcr")
    return [
        ChartSpec("fcr-cases-over-time", "FCR Cases Over Time", "line", time_series(fcr, "case_count")),
        ChartSpec(
            "fcr-volume",
            "Cases vs Connected Calls",
            "bar",
            volume_comparison(fcr, get("inbound"), get("outbound_connectrate")),
        ),
    ]
