from __future__ import annotations

from collections.abc import Iterable
from datetime import date, datetime, timezone
from io import BytesIO

from openpyxl import Workbook
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter
from openpyxl.worksheet.worksheet import Worksheet

from app.models import DefaulterLog, StaffProfile
from app.teams import DEFAULT_ROLE, role_priority, team_priority

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

EXPORT_HEADERS = ["Name", "Phone", "Role", "Team", "Date"]

HEADER_FILL = PatternFill(fill_type="solid", fgColor="1D4ED8")
ZEBRA_FILL = PatternFill(fill_type="solid", fgColor="F8FAFC")
ALERT_FILL = PatternFill(fill_type="solid", fgColor="FDE2E4")

HEADER_FONT = Font(bold=True, color="FFFFFF")
TITLE_FONT = Font(bold=True, color="1D4ED8", size=14)
MUTED_FONT = Font(color="334155")

THIN_SIDE = Side(style="thin", color="D5E2EC")
THIN_BORDER = Border(left=THIN_SIDE, right=THIN_SIDE, top=THIN_SIDE, bottom=THIN_SIDE)


def _style_header(ws: Worksheet, row: int) -> None:
    for cell in ws[row]:
        cell.font = HEADER_FONT
        cell.fill = HEADER_FILL
        cell.alignment = Alignment(horizontal="center", vertical="center", wrap_text=True)
        cell.border = THIN_BORDER


def _auto_width(ws: Worksheet) -> None:
    for column_cells in ws.iter_cols(min_row=1, max_row=ws.max_row, min_col=1, max_col=ws.max_column):
        max_len = 0
        col_letter = get_column_letter(column_cells[0].column)
        for cell in column_cells:
            if cell.coordinate in ws.merged_cells:
                continue
            value = "" if cell.value is None else str(cell.value)
            max_len = max(max_len, len(value))
        ws.column_dimensions[col_letter].width = min(max_len + 2, 45)


def _style_table_region(ws: Worksheet, *, header_row: int, data_end_row: int, highlight: bool) -> None:
    ws.freeze_panes = f"A{header_row + 1}"
    if data_end_row <= header_row:
        return

    ws.auto_filter.ref = f"A{header_row}:{get_column_letter(ws.max_column)}{data_end_row}"
    for row_idx in range(header_row + 1, data_end_row + 1):
        row_fill = ZEBRA_FILL if row_idx % 2 == 0 else None
        for col_idx in range(1, ws.max_column + 1):
            cell = ws.cell(row=row_idx, column=col_idx)
            cell.border = THIN_BORDER
            cell.alignment = Alignment(horizontal="left", vertical="center")
            if row_fill is not None:
                cell.fill = row_fill
        if highlight:
            date_cell = ws.cell(row=row_idx, column=len(EXPORT_HEADERS))
            date_cell.fill = ALERT_FILL
            date_cell.font = Font(bold=True, color="9F1239")


def _write_sheet(
    ws: Worksheet,
    *,
    title: str,
    rows: list[list[object]],
    highlight: bool,
) -> None:
    ws.append([title])
    ws["A1"].font = TITLE_FONT
    ws.append(["Generated (UTC)", datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S")])
    ws.append(["Records", len(rows)])
    for row_idx in (2, 3):
        ws.cell(row=row_idx, column=1).font = MUTED_FONT
    ws.append([])

    ws.append(EXPORT_HEADERS)
    header_row = ws.max_row
    _style_header(ws, header_row)
    for row in rows:
        ws.append(row)
    _style_table_region(ws, header_row=header_row, data_end_row=ws.max_row, highlight=highlight)
    _auto_width(ws)


def _save(wb: Workbook) -> bytes:
    stream = BytesIO()
    wb.save(stream)
    return stream.getvalue()


def build_defaulter_log_xlsx_bytes(entries: Iterable[DefaulterLog], *, team: str | None = None) -> bytes:
    ordered = sorted(
        entries,
        key=lambda item: (-item.defaulter_date.toordinal(), team_priority(item.team), role_priority(item.role), item.name),
    )
    rows: list[list[object]] = [
        [item.name, item.phone or "-", item.role or "Defaulter", item.team, item.defaulter_date]
        for item in ordered
    ]
    wb = Workbook()
    ws = wb.active
    ws.title = "Defaulters"
    title = "Defaulter Log" if not team else f"Defaulter Log - {team}"
    _write_sheet(ws, title=title, rows=rows, highlight=True)
    return _save(wb)


def build_roster_xlsx_bytes(profiles: Iterable[StaffProfile], *, as_of: date) -> bytes:
    ordered = sorted(profiles, key=lambda item: (team_priority(item.team), role_priority(item.role), item.name))
    rows: list[list[object]] = [
        [item.name, item.phone, item.role or DEFAULT_ROLE, item.team, as_of]
        for item in ordered
    ]
    wb = Workbook()
    ws = wb.active
    ws.title = "Roster"
    _write_sheet(ws, title="Staff Roster", rows=rows, highlight=False)
    return _save(wb)
