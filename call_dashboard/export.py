"""
Export filtered records as CSV, JSON or a styled XLSX workbook.

Rows come from ``CanonicalRecord.as_row()``: the original columns first, then
parsed_date, chart_bucket_key, metrics and flags.
"""

from __future__ import annotations

import csv
import io
import json
from datetime import datetime
from pathlib import Path
from typing import Any, BinaryIO, Sequence

import openpyxl
from openpyxl.styles import Alignment, Font, PatternFill
from openpyxl.utils import get_column_letter

from call_dashboard.config import Settings
from call_dashboard.kpis import KpiCard
from call_dashboard.records import CanonicalRecord

EXPORT_FORMATS = ("csv", "json", "xlsx")
HEADER_COLOR = "1565C0"
SUMMARY_COLOR = "4CAF50"


def _header(rows: Sequence[dict[str, Any]]) -> list[str]:
    return list(rows[0].keys()) if rows else []


def records_to_csv(records: Sequence[CanonicalRecord]) -> str:
    """
    CSV text for ``records``; the header row is the first record's keys.

    Values containing the delimiter, quotes or newlines are quoted and inner
    quotes doubled. Keys a later record has that the first lacks are dropped.
    """
    rows = [record.as_row() for record in records]
    if not rows:
        return ""
    buffer = io.StringIO()
    writer = csv.DictWriter(
        buffer,
        fieldnames=_header(rows),
        extrasaction="ignore",
        restval="",
        quoting=csv.QUOTE_MINIMAL,
    )
    writer.writeheader()
    writer.writerows(rows)
    return buffer.getvalue()


def records_to_json(records: Sequence[CanonicalRecord], indent: int | None = 2) -> str:
    return json.dumps([record.as_row() for record in records], indent=indent, default=str)


# ══════════════════════════════════════════════════════════════════════════════
# XLSX
# ══════════════════════════════════════════════════════════════════════════════

def _style_sheet(ws, col_widths: list[int], header_color: str) -> None:
    """Bold coloured header, frozen first row, column widths."""
    fill = PatternFill("solid", fgColor=header_color)
    font = Font(bold=True, color="FFFFFF")
    for cell in ws[1]:
        cell.font = font
        cell.fill = fill
        cell.alignment = Alignment(horizontal="center", vertical="center", wrap_text=False)
    ws.freeze_panes = "A2"
    for i, width in enumerate(col_widths, start=1):
        ws.column_dimensions[get_column_letter(i)].width = width


def _infer_col_widths(rows: list[list], min_width: int = 10, max_width: int = 60, sample: int = 300) -> list[int]:
    if not rows:
        return []
    widths = [max(min_width, min(max_width, len(str(v)) + 2)) for v in rows[0]]
    for row in rows[1 : sample + 1]:
        for i, val in enumerate(row[: len(widths)]):
            widths[i] = max(widths[i], min(max_width, len(str(val)) + 2))
    return widths


def write_records_xlsx(
    records: Sequence[CanonicalRecord],
    output_path: Path | BinaryIO,
    *,
    sheet_title: str = "Records",
    kpi_cards: Sequence[KpiCard] | None = None,
) -> Path | BinaryIO:
    """Write records (and optionally a KPI summary sheet) to an .xlsx file or binary buffer."""
    rows = [record.as_row() for record in records]
    header = _header(rows)

    wb = openpyxl.Workbook()
    ws = wb.active
    ws.title = sheet_title[:31]
    table: list[list] = [header]
    for row in rows:
        table.append([row.get(name, "") for name in header])
    for values in table:
        ws.append(values)
    if header:
        _style_sheet(ws, _infer_col_widths(table), HEADER_COLOR)

    if kpi_cards:
        summary = wb.create_sheet("KPIs")
        summary_rows: list[list] = [["KPI", "Value", "Display", "Status"]]
        summary_rows += [[card.label, card.value, card.display, card.status] for card in kpi_cards]
        for values in summary_rows:
            summary.append(values)
        _style_sheet(summary, _infer_col_widths(summary_rows), SUMMARY_COLOR)

    if hasattr(output_path, "write"):
        wb.save(output_path)
        return output_path
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    wb.save(output_path)
    return output_path


def export_filename(name: str, fmt: str, settings: Settings, now: datetime | None = None) -> str:
    stamp = (now or datetime.now()).strftime("%Y%m%d_%H%M")
    return f"{settings.export_filename_prefix}{name}_{stamp}.{fmt}"


def write_export(
    records: Sequence[CanonicalRecord],
    fmt: str,
    output_path: Path,
    *,
    sheet_title: str = "Records",
    kpi_cards: Sequence[KpiCard] | None = None,
) -> Path:
    if fmt not in EXPORT_FORMATS:
        raise ValueError(f"Unsupported export format {fmt!r}; expected one of {', '.join(EXPORT_FORMATS)}")
    output_path = Path(output_path)
    if fmt == "xlsx":
        return write_records_xlsx(records, output_path, sheet_title=sheet_title, kpi_cards=kpi_cards)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    text = records_to_csv(records) if fmt == "csv" else records_to_json(records)
    output_path.write_text(text, encoding="utf-8", newline="")
    return output_path
