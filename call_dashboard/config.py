"""
Dashboard settings.

Defaults live as JSON under ``call_dashboard/settings``:

    dashboard.json       source URLs, date convention, business rules, limits
    field_mappings.json  ranked candidate header names per logical field
    kpi_config.json      per-page KPI keys, labels, formats, thresholds

A user JSON file (``--config`` on the CLI or the ``CALL_DASHBOARD_CONFIG``
environment variable) is merged over the defaults key by key, so supporting
a new export layout means editing data, not normalisation code.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

from call_dashboard.errors import ConfigError

SETTINGS_DIR = Path(__file__).resolve().parent / "settings"
DASHBOARD_SETTINGS_PATH = SETTINGS_DIR / "dashboard.json"
FIELD_MAPPINGS_PATH = SETTINGS_DIR / "field_mappings.json"
KPI_CONFIG_PATH = SETTINGS_DIR / "kpi_config.json"
CONFIG_ENV_VAR = "CALL_DASHBOARD_CONFIG"

SOURCE_TYPES = ("inbound", "outbound", "outbound_connectrate", "fcr")
PAGES = ("inbound", "outbound", "fcr")
KPI_FORMATS = {"number", "percentage", "duration"}


@dataclass(frozen=True)
class SourceConfig:
    key: str
    url: str
    name: str


@dataclass(frozen=True)
class KpiDefinition:
    key: str
    label: str
    format: str = "number"
    warning: float | None = None
    critical: float | None = None


@dataclass(frozen=True)
class Settings:
    sources: dict[str, SourceConfig]
    field_mappings: dict[str, dict[str, tuple[str, ...]]]
    fixed_columns: dict[str, dict[str, str]]
    kpi_definitions: dict[str, tuple[KpiDefinition, ...]]
    day_first: bool = True
    connected_call_minimum_seconds: float = 150.0
    abandoned_keywords: tuple[str, ...] = ("abandon", "missed", "no answer", "noanswer", "timeout", "hangup")
    total_sentinels: tuple[str, ...] = ("Total", "Grand Total", "Subtotal", "Summary")
    agent_hours_per_day: float = 8.0
    top_n: int = 10
    max_filter_span_days: int = 365
    default_filter_days: int = 30
    filter_debounce_seconds: float = 0.3
    fetch_timeout_seconds: float = 30.0
    max_workers: int = 4
    max_file_bytes: int = 50 * 1024 * 1024
    export_formats: tuple[str, ...] = ("csv", "xlsx", "json")
    export_filename_prefix: str = "call_performance_"
    extra: dict[str, Any] = field(default_factory=dict)

    def candidates(self, source_type: str, logical_field: str) -> tuple[str, ...]:
        return self.field_mappings.get(source_type, {}).get(logical_field, ())

    def source_name(self, source_type: str) -> str:
        source = self.sources.get(source_type)
        return source.name if source else source_type

    def is_total_sentinel(self, value: Any) -> bool:
        if value is None:
            return False
        text = " ".join(str(value).split()).lower()
        return bool(text) and text in {s.lower() for s in self.total_sentinels}


def read_json(path: Path) -> dict[str, Any]:
    if not path.exists():
        raise ConfigError(f"Config not found: {path}")
    if path.suffix.lower() != ".json":
        raise ConfigError("Config files must be .json")
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except Exception as exc:
        raise ConfigError(f"Could not read config {path}: {exc}") from exc
    if not isinstance(payload, dict):
        raise ConfigError(f"Config root must be a JSON object: {path}")
    return payload


def deep_merge(base: Mapping[str, Any], override: Mapping[str, Any]) -> dict[str, Any]:
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, Mapping) and isinstance(merged.get(key), Mapping):
            merged[key] = deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def default_payload() -> dict[str, Any]:
    payload = read_json(DASHBOARD_SETTINGS_PATH)
    payload["field_mappings"] = read_json(FIELD_MAPPINGS_PATH)
    payload["kpi_config"] = read_json(KPI_CONFIG_PATH)
    return payload


def _number(section: Mapping[str, Any], key: str, default: float, *, minimum: float = 0.0) -> float:
    value = section.get(key, default)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigError(f"'{key}' must be a number, got {value!r}")
    if value < minimum:
        raise ConfigError(f"'{key}' must be >= {minimum}, got {value!r}")
    return float(value)


def _parse_field_mappings(payload: Mapping[str, Any]) -> tuple[dict, dict]:
    mappings: dict[str, dict[str, tuple[str, ...]]] = {}
    fixed: dict[str, dict[str, str]] = {}
    for source_type, fields in payload.items():
        if source_type == "fixed_columns":
            fixed = {src: dict(cols) for src, cols in fields.items()}
            continue
        if not isinstance(fields, Mapping):
            raise ConfigError(f"Field mapping for '{source_type}' must be an object")
        mappings[source_type] = {}
        for logical_field, candidates in fields.items():
            if isinstance(candidates, str) or not isinstance(candidates, (list, tuple)):
                raise ConfigError(
                    f"Candidates for {source_type}.{logical_field} must be a list of header names"
                )
            mappings[source_type][logical_field] = tuple(str(c) for c in candidates)
    return mappings, fixed


def _parse_kpi_config(payload: Mapping[str, Any]) -> dict[str, tuple[KpiDefinition, ...]]:
    definitions: dict[str, tuple[KpiDefinition, ...]] = {}
    for page, entries in payload.items():
        parsed = []
        for entry in entries:
            fmt = entry.get("format", "number")
            if fmt not in KPI_FORMATS:
                raise ConfigError(f"Unknown KPI format '{fmt}' for {page}.{entry.get('key')}")
            threshold = entry.get("threshold") or {}
            parsed.append(
                KpiDefinition(
                    key=entry["key"],
                    label=entry.get("label", entry["key"]),
                    format=fmt,
                    warning=threshold.get("warning"),
                    critical=threshold.get("critical"),
                )
            )
        definitions[page] = tuple(parsed)
    return definitions


def build_settings(payload: Mapping[str, Any]) -> Settings:
    sources = {
        key: SourceConfig(key=key, url=str(entry.get("url", "")), name=str(entry.get("name", key)))
        for key, entry in payload.get("sources", {}).items()
    }
    field_mappings, fixed_columns = _parse_field_mappings(payload.get("field_mappings", {}))
    kpi_definitions = _parse_kpi_config(payload.get("kpi_config", {}))

    dates = payload.get("dates", {})
    day_first = dates.get("day_first", True)
    if not isinstance(day_first, bool):
        raise ConfigError(f"'day_first' must be true or false, got {day_first!r}")

    rules = payload.get("rules", {})
    filters = payload.get("filters", {})
    io_section = payload.get("io", {})
    export = payload.get("export", {})

    known = {"sources", "field_mappings", "kpi_config", "dates", "rules", "filters", "io", "export"}
    return Settings(
        sources=sources,
        field_mappings=field_mappings,
        fixed_columns=fixed_columns,
        kpi_definitions=kpi_definitions,
        day_first=day_first,
        connected_call_minimum_seconds=_number(rules, "connected_call_minimum_seconds", 150),
        abandoned_keywords=tuple(str(k).lower() for k in rules.get("abandoned_keywords", Settings.abandoned_keywords)),
        total_sentinels=tuple(str(s) for s in rules.get("total_sentinels", Settings.total_sentinels)),
        agent_hours_per_day=_number(rules, "agent_hours_per_day", 8, minimum=1),
        top_n=int(_number(rules, "top_n", 10, minimum=1)),
        max_filter_span_days=int(_number(filters, "max_span_days", 365, minimum=1)),
        default_filter_days=int(_number(filters, "default_days", 30, minimum=1)),
        filter_debounce_seconds=_number(filters, "debounce_seconds", 0.3),
        fetch_timeout_seconds=_number(io_section, "fetch_timeout_seconds", 30, minimum=1),
        max_workers=int(_number(io_section, "max_workers", 4, minimum=1)),
        max_file_bytes=int(_number(io_section, "max_file_mb", 50, minimum=1) * 1024 * 1024),
        export_formats=tuple(export.get("formats", Settings.export_formats)),
        export_filename_prefix=str(export.get("filename_prefix", Settings.export_filename_prefix)),
        extra={key: value for key, value in payload.items() if key not in known},
    )


def load_settings(path: str | Path | None = None, overrides: Mapping[str, Any] | None = None) -> Settings:
    """
    Build Settings from the bundled defaults, an optional user JSON file and
    optional in-code overrides, in that order of precedence (last wins).
    """
    payload = default_payload()
    config_path = path or os.environ.get(CONFIG_ENV_VAR)
    if config_path:
        payload = deep_merge(payload, read_json(Path(config_path)))
    if overrides:
        payload = deep_merge(payload, overrides)
    return build_settings(payload)


def starter_config_text() -> str:
    payload = {
        "sources": {
            key: {"url": f"data/{key}.csv"}
            for key in SOURCE_TYPES
        },
        "dates": {"day_first": True},
        "rules": {"connected_call_minimum_seconds": 150},
        "filters": {"max_span_days": 365},
    }
    return json.dumps(payload, indent=2) + "\n"
