"""
In-memory record store, one entry per source.

Entries are replaced wholesale by ``load`` and never mutated afterwards, so a
query always sees one consistent snapshot of a source.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Iterable

from call_dashboard.dates import to_day_end, to_day_start
from call_dashboard.errors import FilterValidationError
from call_dashboard.records import CanonicalRecord

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FilterCriteria:
    start_date: Any = None
    end_date: Any = None
    agent: str | None = None
    status: str | None = None

    def is_empty(self) -> bool:
        return not any((self.start_date, self.end_date, self.agent, self.status))


@dataclass(frozen=True)
class DateRange:
    start: datetime
    end: datetime
    count: int


@dataclass(frozen=True)
class SourceMetadata:
    loaded_at: datetime
    row_count: int
    date_range: DateRange | None = None
    columns: tuple[str, ...] = ()
    skipped_rows: int = 0
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "loaded_at": self.loaded_at.isoformat(),
            "row_count": self.row_count,
            "date_range": None if self.date_range is None else {
                "start": self.date_range.start.isoformat(),
                "end": self.date_range.end.isoformat(),
                "count": self.date_range.count,
            },
            "columns": list(self.columns),
            "skipped_rows": self.skipped_rows,
            "error": self.error,
        }


@dataclass(frozen=True)
class _Entry:
    records: tuple[CanonicalRecord, ...]
    metadata: SourceMetadata


def _date_range(records: Iterable[CanonicalRecord]) -> DateRange | None:
    dates = [r.parsed_date for r in records if r.parsed_date is not None]
    if not dates:
        return None
    return DateRange(start=min(dates), end=max(dates), count=len(dates))


def _columns(records: Iterable[CanonicalRecord]) -> tuple[str, ...]:
    seen: dict[str, None] = {}
    for record in records:
        for name in record.fields:
            seen.setdefault(name, None)
    return tuple(seen)


def _contains(record: CanonicalRecord, role: str, needle: str | None) -> bool:
    if not needle:
        return True
    column = record.roles.get(role)
    if column is None:
        return True
    return needle.lower() in record.get(column).lower()


class SourceStore:
    def __init__(self, *, day_first: bool = True) -> None:
        self.day_first = day_first
        self._entries: dict[str, _Entry] = {}

    def load(
        self,
        source_type: str,
        records: Iterable[CanonicalRecord],
        *,
        error: str | None = None,
        skipped_rows: int = 0,
        loaded_at: datetime | None = None,
    ) -> SourceMetadata:
        snapshot = tuple(records)
        metadata = SourceMetadata(
            loaded_at=loaded_at or datetime.now(),
            row_count=len(snapshot),
            date_range=_date_range(snapshot),
            columns=_columns(snapshot),
            skipped_rows=skipped_rows,
            error=error,
        )
        self._entries[source_type] = _Entry(records=snapshot, metadata=metadata)
        logger.info("Loaded %d %s records (%d skipped)", len(snapshot), source_type, skipped_rows)
        return metadata

    def query(self, source_type: str, criteria: FilterCriteria | None = None) -> list[CanonicalRecord]:
        """
        Filtered copy of a source's records; unknown sources give [].

        The date range only applies when the source has at least one parsed
        date. When it applies, dateless records are excluded and the end
        bound covers the whole end day. Agent/status filters are
        case-insensitive substring matches on the column resolved for that
        role; sources without such a column ignore the filter.
        """
        entry = self._entries.get(source_type)
        if entry is None:
            return []
        records = list(entry.records)
        if criteria is None or criteria.is_empty():
            return records

        start = end = None
        if criteria.start_date:
            start = to_day_start(criteria.start_date, day_first=self.day_first)
        if criteria.end_date:
            end = to_day_end(criteria.end_date, day_first=self.day_first)
        if (start or end) and entry.metadata.date_range is not None:
            records = [
                r for r in records
                if r.parsed_date is not None
                and (start is None or r.parsed_date >= start)
                and (end is None or r.parsed_date <= end)
            ]

        return [
            r for r in records
            if _contains(r, "agent", criteria.agent) and _contains(r, "status", criteria.status)
        ]

    def metadata(self, source_type: str) -> SourceMetadata | None:
        entry = self._entries.get(source_type)
        return entry.metadata if entry else None

    def clear(self) -> None:
        self._entries.clear()

    def source_types(self) -> list[str]:
        return list(self._entries)

    def __contains__(self, source_type: str) -> bool:
        return source_type in self._entries


def validate_filters(
    criteria: FilterCriteria,
    max_span_days: int,
    *,
    day_first: bool = True,
) -> FilterCriteria:
    """Reject unparseable, inverted or over-long date ranges before they are applied."""
    start = end = None
    if criteria.start_date:
        start = to_day_start(criteria.start_date, day_first=day_first)
        if start is None:
            raise FilterValidationError(f"Invalid start date: {criteria.start_date!r}")
    if criteria.end_date:
        end = to_day_start(criteria.end_date, day_first=day_first)
        if end is None:
            raise FilterValidationError(f"Invalid end date: {criteria.end_date!r}")
    if start and end:
        if start > end:
            raise FilterValidationError(
                f"Start date {start:%Y-%m-%d} is after end date {end:%Y-%m-%d}"
            )
        span = (end - start).days
        if span > max_span_days:
            raise FilterValidationError(
                f"Date range spans {span} days; the maximum is {max_span_days}"
            )
    return criteria
