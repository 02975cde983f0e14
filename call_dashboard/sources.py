"""
Source strategy table.

Each source type supplies its logical fields, its normaliser and its validity
predicate in one place:

    inbound               one row per inbound call
    outbound              one row per agent per day (aggregate counts)
    outbound_connectrate  one row per call, all directions; only outbound kept
    fcr                   case counts by year/month/day
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Mapping, Sequence

from call_dashboard.config import Settings
from call_dashboard.normalizer import NORMALIZERS, clean_fields, resolve_roles
from call_dashboard.records import CanonicalRecord
from call_dashboard.validator import VALIDATORS


@dataclass(frozen=True)
class SourceProfile:
    key: str
    fields: tuple[str, ...]
    normalize: Callable[[CanonicalRecord, Settings], None]
    is_valid: Callable[[CanonicalRecord, Settings], bool]

    def candidates(self, settings: Settings) -> dict[str, tuple[str, ...]]:
        return {field: settings.candidates(self.key, field) for field in self.fields}

    def roles(self, headers: Sequence[str], settings: Settings) -> dict[str, str]:
        return resolve_roles(headers, self.key, settings)

    def build(
        self,
        raw: Mapping[Any, Any],
        settings: Settings,
        roles: Mapping[str, str] | None = None,
    ) -> CanonicalRecord:
        cleaned = clean_fields(raw)
        if roles is None:
            roles = self.roles(list(cleaned), settings)
        record = CanonicalRecord(source_type=self.key, fields=cleaned, roles=dict(roles))
        self.normalize(record, settings)
        return record

    def accepts(self, record: CanonicalRecord, settings: Settings) -> bool:
        return not record.is_blank() and self.is_valid(record, settings)


SOURCE_PROFILES: dict[str, SourceProfile] = {
    "inbound": SourceProfile(
        key="inbound",
        fields=("date", "agent", "status", "duration", "wait_time", "call_id"),
        normalize=NORMALIZERS["inbound"],
        is_valid=VALIDATORS["inbound"],
    ),
    "outbound": SourceProfile(
        key="outbound",
        fields=("date", "agent", "status", "duration", "count"),
        normalize=NORMALIZERS["outbound"],
        is_valid=VALIDATORS["outbound"],
    ),
    "outbound_connectrate": SourceProfile(
        key="outbound_connectrate",
        fields=("date", "agent", "status", "duration", "direction", "call_id"),
        normalize=NORMALIZERS["outbound_connectrate"],
        is_valid=VALIDATORS["outbound_connectrate"],
    ),
    "fcr": SourceProfile(
        key="fcr",
        fields=("date", "year", "month", "day", "count", "agent", "status"),
        normalize=NORMALIZERS["fcr"],
        is_valid=VALIDATORS["fcr"],
    ),
}


def get_profile(source_type: str) -> SourceProfile:
    try:
        return SOURCE_PROFILES[source_type]
    except KeyError:
        raise ValueError(
            f"Unknown source type {source_type!r}; expected one of {', '.join(SOURCE_PROFILES)}"
        ) from None
