"""Shared versioned contracts for machine-readable call-dashboard outputs."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from call_dashboard import __version__

CONTRACT_VERSIONS = {
    "call_dashboard.load_report": "1.0.0",
    "call_dashboard.page_view": "1.0.0",
    "call_dashboard.export": "1.0.0",
}


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")


def build_contract(name: str) -> dict[str, str]:
    version = CONTRACT_VERSIONS[name]
    return {"name": name, "version": version}


def build_run_summary(
    *,
    command: str,
    sources: dict[str, str],
    status: str = "ok",
    output_path: str | None = None,
    metrics: dict[str, Any] | None = None,
    warnings: list[str] | None = None,
) -> dict[str, Any]:
    return {
        "tool": "call-dashboard",
        "command": command,
        "status": status,
        "generated_at": utc_now_iso(),
        "sources": dict(sources),
        "output_file": output_path,
        "warnings_count": len(warnings or []),
        "warnings": list(warnings or []),
        "metrics": metrics or {},
    }


def wrap_payload(name: str, payload: dict[str, Any], run_summary: dict[str, Any]) -> dict[str, Any]:
    contract = build_contract(name)
    return {
        "contract": contract,
        "schema_version": contract["version"],
        "tool_version": __version__,
        **payload,
        "run_summary": run_summary,
    }
