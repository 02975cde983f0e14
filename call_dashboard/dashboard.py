"""
Dashboard orchestrator.

Owns one SourceStore, the active filter criteria and the notification list.
Pages are rendered as plain PageView payloads (KPI cards + chart specs) so
any front end can draw them: the CLI prints them, the Streamlit app charts
them.
"""

from __future__ import annotations

import itertools
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Mapping, Optional

import requests

from call_dashboard.charts import ChartSpec, build_page_charts
from call_dashboard.config import PAGES, Settings, load_settings
from call_dashboard.errors import FilterValidationError
from call_dashboard.export import export_filename, write_export
from call_dashboard.kpis import PAGE_SOURCES, KpiCard, build_kpi_cards, compute_kpis
from call_dashboard.loader import LoadReport, load_sources
from call_dashboard.records import CanonicalRecord
from call_dashboard.store import FilterCriteria, SourceStore, validate_filters

logger = logging.getLogger(__name__)

NO_DATA_MESSAGE = "No data for this view. Try widening the date range or clearing filters."


@dataclass
class Notification:
    id: int
    level: str
    message: str
    source: str | None = None
    created_at: datetime = field(default_factory=datetime.now)
    dismissed: bool = False

    def dismiss(self) -> None:
        self.dismissed = True


@dataclass
class PageView:
    page: str
    kpis: dict[str, float]
    cards: list[KpiCard]
    charts: list[ChartSpec]
    row_counts: dict[str, int]
    no_data: bool = False
    message: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "page": self.page,
            "no_data": self.no_data,
            "message": self.message,
            "row_counts": dict(self.row_counts),
            "kpis": dict(self.kpis),
            "cards": [card.to_dict() for card in self.cards],
            "charts": [chart.to_dict() for chart in self.charts],
        }


class Debouncer:
    """
    Collapse bursts of calls into one: each call restarts the wait, and only
    the last call's arguments run once ``wait_seconds`` pass quietly.
    """

    def __init__(self, wait_seconds: float, callback: Callable[..., Any]) -> None:
        self.wait_seconds = wait_seconds
        self.callback = callback
        self._timer: Optional[threading.Timer] = None
        self._pending: Optional[tuple[tuple, dict]] = None
        self._lock = threading.Lock()

    @property
    def pending(self) -> bool:
        with self._lock:
            return self._pending is not None

    def call(self, *args: Any, **kwargs: Any) -> None:
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            self._pending = (args, kwargs)
            self._timer = threading.Timer(self.wait_seconds, self._fire)
            self._timer.daemon = True
            self._timer.start()

    def _fire(self) -> None:
        with self._lock:
            pending, self._pending = self._pending, None
            self._timer = None
        if pending is not None:
            args, kwargs = pending
            self.callback(*args, **kwargs)

    def flush(self) -> None:
        """Run the pending call now instead of waiting for the timer."""
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
        self._fire()

    def cancel(self) -> None:
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            self._timer = None
            self._pending = None


class Dashboard:
    def __init__(
        self,
        settings: Settings | None = None,
        store: SourceStore | None = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.settings = settings or load_settings()
        self.store = store if store is not None else SourceStore(day_first=self.settings.day_first)
        self.session = session
        self._filters = FilterCriteria()
        self._filters_lock = threading.Lock()
        self._notifications: list[Notification] = []
        self._ids = itertools.count(1)
        self._debouncer = Debouncer(self.settings.filter_debounce_seconds, self.apply_filters)
        self.last_report: LoadReport | None = None

    # ── Loading ────────────────────────────────────────────────────────────

    def refresh(self, locations: Optional[Mapping[str, str]] = None) -> LoadReport:
        """Clear every store and reload all sources."""
        self.store.clear()
        report = load_sources(self.store, self.settings, locations, self.session)
        for source_type, reason in sorted(report.errors.items()):
            self.notify(
                f"{self.settings.source_name(source_type)} failed to load: {reason}",
                level="error",
                source=source_type,
            )
        self.last_report = report
        return report

    # ── Notifications ──────────────────────────────────────────────────────

    def notify(self, message: str, *, level: str = "info", source: str | None = None) -> Notification:
        notification = Notification(id=next(self._ids), level=level, message=message, source=source)
        self._notifications.append(notification)
        return notification

    @property
    def notifications(self) -> list[Notification]:
        return [n for n in self._notifications if not n.dismissed]

    def dismiss(self, notification_id: int) -> bool:
        for notification in self._notifications:
            if notification.id == notification_id and not notification.dismissed:
                notification.dismiss()
                return True
        return False

    # ── Filters ────────────────────────────────────────────────────────────

    @property
    def filters(self) -> FilterCriteria:
        with self._filters_lock:
            return self._filters

    def apply_filters(self, criteria: FilterCriteria) -> bool:
        """Validate and install ``criteria``. On rejection the previous filters stay."""
        try:
            validate_filters(
                criteria,
                self.settings.max_filter_span_days,
                day_first=self.settings.day_first,
            )
        except FilterValidationError as exc:
            logger.warning("Rejected filters: %s", exc)
            self.notify(str(exc), level="warning")
            return False
        with self._filters_lock:
            self._filters = criteria
        return True

    def schedule_filters(self, criteria: FilterCriteria) -> None:
        self._debouncer.call(criteria)

    def flush_filters(self) -> None:
        self._debouncer.flush()

    def reset_filters(self) -> None:
        self._debouncer.cancel()
        with self._filters_lock:
            self._filters = FilterCriteria()

    # ── Rendering ──────────────────────────────────────────────────────────

    def records_for_page(self, page: str) -> dict[str, list[CanonicalRecord]]:
        criteria = self.filters
        return {source: self.store.query(source, criteria) for source in PAGE_SOURCES.get(page, ())}

    def render_page(self, page: str) -> PageView:
        if page not in PAGES:
            raise ValueError(f"Unknown page {page!r}; expected one of {', '.join(PAGES)}")
        records = self.records_for_page(page)
        row_counts = {source: len(rows) for source, rows in records.items()}
        kpis = compute_kpis(page, records, self.settings)
        cards = build_kpi_cards(page, kpis, self.settings)

        primary = PAGE_SOURCES[page][0]
        if not records.get(primary):
            metadata = self.store.metadata(primary)
            message = NO_DATA_MESSAGE
            if metadata is not None and metadata.error:
                message = f"{self.settings.source_name(primary)} could not be loaded: {metadata.error}"
            return PageView(page, kpis, cards, [], row_counts, no_data=True, message=message)

        charts = build_page_charts(page, records, self.settings)
        return PageView(page, kpis, cards, charts, row_counts)

    # ── Export ─────────────────────────────────────────────────────────────

    def export_source(
        self,
        source_type: str,
        fmt: str = "csv",
        output_path: str | Path | None = None,
        directory: str | Path = ".",
    ) -> Path:
        """Write the currently filtered records of one source to disk."""
        records = self.store.query(source_type, self.filters)
        if output_path is None:
            output_path = Path(directory) / export_filename(source_type, fmt, self.settings)
        page = source_type if source_type in PAGES else None
        cards = None
        if page is not None and fmt == "xlsx":
            kpis = compute_kpis(page, self.records_for_page(page), self.settings)
            cards = build_kpi_cards(page, kpis, self.settings)
        path = write_export(
            records,
            fmt,
            Path(output_path),
            sheet_title=self.settings.source_name(source_type),
            kpi_cards=cards,
        )
        logger.info("Exported %d %s records to %s", len(records), source_type, path)
        return path
