"""Writes an assembled sheet set to a styled .xlsx report."""

from __future__ import annotations

import io
import os
from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path
from typing import Any

import openpyxl
from openpyxl.styles import Alignment, Font, PatternFill
from openpyxl.utils import get_column_letter

from call_billing.filters import DateWindow
from call_billing.report import Sheet, SheetSet

STAMP_ENV_VAR = "CALL_BILLING_OUTPUT_STAMP"

HEADER_COLORS = ["1565C0", "4CAF50", "6A1B9A", "E65100"]
MONEY_FORMAT = "0.00"


def output_stamp(style: str, now: datetime | None = None) -> str:
    """
    "date" -> 2025-10-01, "iso" -> 2025-10-01T12-30-45 (UTC).

    CALL_BILLING_OUTPUT_STAMP, when set, replaces the generated stamp.
    """
    override = os.environ.get(STAMP_ENV_VAR)
    if override:
        return override
    now = now or datetime.now(timezone.utc)
    if style == "date":
        return now.strftime("%Y-%m-%d")
    return now.strftime("%Y-%m-%dT%H-%M-%S")


def report_filename(
    prefix: str,
    stamp_style: str,
    date_window: DateWindow | None = None,
    now: datetime | None = None,
) -> str:
    infix = date_window.filename_infix() if date_window is not None else ""
    return f"{prefix}{infix}_{output_stamp(stamp_style, now)}.xlsx"


def _excel_value(value: Any) -> Any:
    if isinstance(value, Decimal):
        return float(value)
    return value


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


def _infer_col_widths(rows: list[list], min_width: int = 12, max_width: int = 40, sample: int = 300) -> list[int]:
    if not rows:
        return []
    widths = [max(min_width, min(max_width, len(str(v)) + 2)) for v in rows[0]]
    for row in rows[1 : sample + 1]:
        for i, val in enumerate(row):
            widths[i] = max(widths[i], min(max_width, len(str(val)) + 2))
    return widths


def _write_sheet(ws, sheet: Sheet, header_color: str) -> None:
    ws.append(sheet.headers)
    rows_for_width: list[list] = [sheet.headers]
    for row in sheet.rows:
        values = [row[name] for name in sheet.headers]
        ws.append([_excel_value(value) for value in values])
        rows_for_width.append(values)
        for col_idx, value in enumerate(values, start=1):
            if isinstance(value, Decimal):
                ws.cell(ws.max_row, col_idx).number_format = MONEY_FORMAT
    _style_sheet(ws, _infer_col_widths(rows_for_width), header_color)


def build_workbook(sheets: SheetSet) -> openpyxl.Workbook:
    wb = openpyxl.Workbook()
    wb.remove(wb.active)
    for index, sheet in enumerate(sheets):
        ws = wb.create_sheet(sheet.name)
        _write_sheet(ws, sheet, HEADER_COLORS[index % len(HEADER_COLORS)])
    return wb


def write_sheet_set(sheets: SheetSet, output_path: Path) -> Path:
    if not sheets:
        raise ValueError("Nothing to write: the report has no sheets")
    wb = build_workbook(sheets)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    wb.save(output_path)
    return output_path


def sheet_set_bytes(sheets: SheetSet) -> bytes:
    """In-memory .xlsx, for hosts that offer the report as a download."""
    if not sheets:
        raise ValueError("Nothing to write: the report has no sheets")
    buffer = io.BytesIO()
    build_workbook(sheets).save(buffer)
    return buffer.getvalue()
