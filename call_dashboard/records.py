from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


@dataclass
class CanonicalRecord:
    """
    One normalised CSV row.

    ``fields`` keeps every original column under its trimmed header for
    display and export. Everything derived lives beside it: the parsed date,
    the chart bucket key, numeric ``metrics`` (None when the source column is
    absent or blank) and boolean ``flags``.
    """

    source_type: str
    fields: dict[str, str]
    parsed_date: datetime | None = None
    chart_bucket_key: str | None = None
    metrics: dict[str, float | None] = field(default_factory=dict)
    flags: dict[str, bool] = field(default_factory=dict)
    roles: dict[str, str] = field(default_factory=dict)

    def get(self, name: str | None, default: str = "") -> str:
        if name is None:
            return default
        return self.fields.get(name, default)

    def role_value(self, role: str, default: str = "") -> str:
        """Value of the column the header resolver picked for ``role``."""
        return self.get(self.roles.get(role), default)

    def metric(self, name: str, default: float | None = None) -> float | None:
        value = self.metrics.get(name)
        return default if value is None else value

    def flag(self, name: str) -> bool:
        return bool(self.flags.get(name, False))

    def is_blank(self) -> bool:
        return all(not str(value).strip() for value in self.fields.values())

    def derived(self) -> dict[str, Any]:
        return {
            "parsed_date": self.parsed_date,
            "chart_bucket_key": self.chart_bucket_key,
            "metrics": dict(self.metrics),
            "flags": dict(self.flags),
        }

    def as_row(self) -> dict[str, Any]:
        """Flat mapping used by exporters: original columns, then derived ones."""
        row: dict[str, Any] = dict(self.fields)
        row["parsed_date"] = self.parsed_date.isoformat(sep=" ") if self.parsed_date else ""
        row["chart_bucket_key"] = self.chart_bucket_key or ""
        for name, value in self.metrics.items():
            row[name] = "" if value is None else value
        for name, value in self.flags.items():
            row[name] = value
        return row
