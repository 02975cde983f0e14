from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any

from call_dashboard import __version__ as TOOL_VERSION
from call_dashboard.config import PAGES, SOURCE_TYPES, load_settings, starter_config_text
from call_dashboard.contracts import build_run_summary, wrap_payload
from call_dashboard.dashboard import Dashboard, PageView
from call_dashboard.errors import ConfigError
from call_dashboard.export import EXPORT_FORMATS
from call_dashboard.loader import LoadReport
from call_dashboard.store import FilterCriteria

EXIT_SUCCESS = 0
EXIT_COMMAND_ERROR = 1
EXIT_PARSE_FAILED = 2
EXIT_VALIDATE_FAILED = 5
EXIT_PARTIAL = 6

STATUS_MARKS = {"ok": " ", "warning": "!", "critical": "X"}


class CliError(Exception):
    def __init__(self, message: str, code: int = EXIT_COMMAND_ERROR) -> None:
        super().__init__(message)
        self.code = code


class CallDashboardArgumentParser(argparse.ArgumentParser):
    def error(self, message: str) -> None:
        raise CliError(message, EXIT_COMMAND_ERROR)


def eprint(message: str) -> None:
    print(message, file=sys.stderr)


def emit_human(message: str, *, quiet: bool = False) -> None:
    if not quiet:
        eprint(message)


def json_dumps(payload: Any) -> str:
    return json.dumps(payload, indent=2, ensure_ascii=False, sort_keys=True, default=str)


def configure_logging(args: argparse.Namespace) -> None:
    level = logging.WARNING
    if getattr(args, "verbose", False):
        level = logging.INFO
    if getattr(args, "quiet", False):
        level = logging.ERROR
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s", stream=sys.stderr)


def parse_source_overrides(values: list[str] | None) -> dict[str, str] | None:
    if not values:
        return None
    locations: dict[str, str] = {}
    for value in values:
        key, sep, location = value.partition("=")
        key = key.strip()
        if not sep or not location.strip():
            raise CliError(f"--source expects KEY=PATH_OR_URL, got {value!r}")
        if key not in SOURCE_TYPES:
            raise CliError(f"Unknown source {key!r}; expected one of {', '.join(SOURCE_TYPES)}")
        locations[key] = location.strip()
    return locations


def add_load_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--source",
        action="append",
        metavar="KEY=PATH_OR_URL",
        help="Load a source from a path or URL (repeatable). When given, only the named sources are loaded.",
    )
    parser.add_argument("--config", help="JSON settings file merged over the defaults")
    parser.add_argument("--json", action="store_true", help="Write machine JSON to stdout")
    parser.add_argument("-q", "--quiet", action="store_true", help="Minimal human logs")
    parser.add_argument("-v", "--verbose", action="store_true", help="More human logs")


def add_filter_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--from", dest="start_date", help="Start date (inclusive)")
    parser.add_argument("--to", dest="end_date", help="End date (inclusive, whole day)")
    parser.add_argument("--agent", help="Case-insensitive agent substring")
    parser.add_argument("--status", help="Case-insensitive status substring")


def build_parser() -> argparse.ArgumentParser:
    parser = CallDashboardArgumentParser(
        prog="call-dashboard",
        description="Call-center KPIs from inbound, outbound, connect-rate and FCR CSV exports.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    load = subparsers.add_parser("load", help="Load sources and print per-source metadata.")
    add_load_arguments(load)

    kpis = subparsers.add_parser("kpis", help="Compute KPI cards for a dashboard page.")
    kpis.add_argument("page", choices=PAGES, help="Dashboard page")
    add_load_arguments(kpis)
    add_filter_arguments(kpis)

    export = subparsers.add_parser("export", help="Export the filtered records of one source.")
    export.add_argument("source_type", choices=SOURCE_TYPES, help="Source to export")
    export.add_argument("--format", choices=EXPORT_FORMATS, default="csv", help="Output format")
    export.add_argument("--output", help="Explicit output path")
    export.add_argument("-o", "--out", dest="out_dir", default=".", help="Output directory for the default file name")
    add_load_arguments(export)
    add_filter_arguments(export)

    config = subparsers.add_parser("config", help="Generate configuration.")
    config_subparsers = config.add_subparsers(dest="config_command", required=True)
    config_init = config_subparsers.add_parser("init", help="Write a starter config file.")
    config_init.add_argument("--path", default="call-dashboard.json", help="Config output path")

    subparsers.add_parser("version", help="Print version")
    return parser


def build_dashboard(args: argparse.Namespace) -> Dashboard:
    try:
        settings = load_settings(args.config)
    except ConfigError as exc:
        raise CliError(str(exc), EXIT_COMMAND_ERROR) from exc
    return Dashboard(settings=settings)


def refresh(dashboard: Dashboard, args: argparse.Namespace) -> LoadReport:
    report = dashboard.refresh(parse_source_overrides(args.source))
    for notification in dashboard.notifications:
        emit_human(f"[{notification.level}] {notification.message}", quiet=args.quiet)
    return report


def apply_cli_filters(dashboard: Dashboard, args: argparse.Namespace) -> None:
    criteria = FilterCriteria(
        start_date=args.start_date,
        end_date=args.end_date,
        agent=args.agent,
        status=args.status,
    )
    if not dashboard.apply_filters(criteria):
        raise CliError(dashboard.notifications[-1].message, EXIT_VALIDATE_FAILED)


def exit_code_for_report(report: LoadReport) -> int:
    if not report.errors:
        return EXIT_SUCCESS
    if not report.loaded:
        return EXIT_PARSE_FAILED
    return EXIT_PARTIAL


def render_load_text(dashboard: Dashboard) -> str:
    lines = ["Sources:"]
    for source_type in dashboard.store.source_types():
        metadata = dashboard.store.metadata(source_type)
        name = dashboard.settings.source_name(source_type)
        if metadata.error:
            lines.append(f"  {name:<28} FAILED  {metadata.error}")
            continue
        span = ""
        if metadata.date_range is not None:
            span = f"  {metadata.date_range.start:%Y-%m-%d} .. {metadata.date_range.end:%Y-%m-%d}"
        lines.append(f"  {name:<28} {metadata.row_count:>6} rows  ({metadata.skipped_rows} skipped){span}")
    return "\n".join(lines)


def render_page_text(view: PageView) -> str:
    lines = [f"Page: {view.page}"]
    if view.no_data:
        lines.append(f"  {view.message}")
    for card in view.cards:
        lines.append(f"  {STATUS_MARKS.get(card.status, ' ')} {card.label:<26} {card.display:>12}")
    return "\n".join(lines)


def run_load(args: argparse.Namespace) -> int:
    dashboard = build_dashboard(args)
    report = refresh(dashboard, args)
    if args.json:
        payload = {
            "report": report.to_dict(),
            "sources": {
                source: dashboard.store.metadata(source).to_dict()
                for source in dashboard.store.source_types()
            },
        }
        summary = build_run_summary(
            command="load",
            sources=parse_source_overrides(args.source) or {},
            status="ok" if report.ok else "partial",
            warnings=[f"{k}: {v}" for k, v in sorted(report.errors.items())],
        )
        print(json_dumps(wrap_payload("call_dashboard.load_report", payload, summary)))
    else:
        print(render_load_text(dashboard))
    return exit_code_for_report(report)


def run_kpis(args: argparse.Namespace) -> int:
    dashboard = build_dashboard(args)
    report = refresh(dashboard, args)
    apply_cli_filters(dashboard, args)
    view = dashboard.render_page(args.page)
    if args.json:
        summary = build_run_summary(
            command="kpis",
            sources=parse_source_overrides(args.source) or {},
            status="ok" if report.ok else "partial",
            metrics=view.row_counts,
            warnings=[f"{k}: {v}" for k, v in sorted(report.errors.items())],
        )
        print(json_dumps(wrap_payload("call_dashboard.page_view", view.to_dict(), summary)))
    else:
        print(render_page_text(view))
    return exit_code_for_report(report)


def run_export(args: argparse.Namespace) -> int:
    dashboard = build_dashboard(args)
    report = refresh(dashboard, args)
    if args.source_type in report.errors:
        raise CliError(f"Cannot export {args.source_type}: {report.errors[args.source_type]}", EXIT_PARSE_FAILED)
    apply_cli_filters(dashboard, args)
    if args.output and Path(args.output).exists():
        raise CliError(f"Refusing to overwrite existing output: {args.output}", EXIT_COMMAND_ERROR)

    path = dashboard.export_source(args.source_type, args.format, args.output, args.out_dir)
    rows = len(dashboard.store.query(args.source_type, dashboard.filters))
    if args.json:
        summary = build_run_summary(
            command="export",
            sources=parse_source_overrides(args.source) or {},
            output_path=str(path),
            metrics={"rows": rows},
        )
        payload = {"source": args.source_type, "format": args.format, "output": str(path), "rows": rows}
        print(json_dumps(wrap_payload("call_dashboard.export", payload, summary)))
    else:
        emit_human(f"Exported {rows} rows: {path}", quiet=args.quiet)
    return exit_code_for_report(report)


def run_config_init(args: argparse.Namespace) -> int:
    config_path = Path(args.path)
    if config_path.exists():
        eprint(f"Refusing to overwrite existing config: {config_path}")
        return EXIT_COMMAND_ERROR
    config_path.parent.mkdir(parents=True, exist_ok=True)
    config_path.write_text(starter_config_text(), encoding="utf-8")
    emit_human(f"Config written: {config_path}")
    return EXIT_SUCCESS


def run_version() -> int:
    print(TOOL_VERSION)
    return EXIT_SUCCESS


def main(argv: list[str] | None = None) -> int:
    try:
        parser = build_parser()
        args = parser.parse_args(argv)
        configure_logging(args)
        if args.command == "load":
            return run_load(args)
        if args.command == "kpis":
            return run_kpis(args)
        if args.command == "export":
            return run_export(args)
        if args.command == "config":
            if args.config_command == "init":
                return run_config_init(args)
        if args.command == "version":
            return run_version()
        raise CliError(f"Unknown command: {args.command}", EXIT_COMMAND_ERROR)
    except CliError as exc:
        eprint(str(exc))
        return exc.code


if __name__ == "__main__":
    raise SystemExit(main())
