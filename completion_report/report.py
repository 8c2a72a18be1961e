"""Styled Excel rendering of the completion report."""

import logging
from io import BytesIO
from typing import Any, Dict, List, Optional

from openpyxl import Workbook
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter

from completion_report.parsers import SUPERVISOR
from completion_report.reconcile import COMPLETION_RATE, FINAL_COLUMNS
from completion_report.stats import COMPLETE_THRESHOLD, compute_stats

logger = logging.getLogger(__name__)

REPORT_FILENAME = "United_Pharmacy_Completion_Report.xlsx"
DASHBOARD_SHEET = "Dashboard Report"
PIVOT_SHEET = "Pivot Analysis"

ACCENT = "F4A460"
GREEN = "008000"
GRAY = "808080"

_thin_black = Side(style="thin", color="000000")
_thin_gray = Side(style="thin", color="CCCCCC")

HEADER_FILL = PatternFill(start_color=ACCENT, end_color=ACCENT, fill_type="solid")
HEADER_FONT = Font(name="Calibri", size=12, bold=True, color="FFFFFF")
HEADER_ALIGNMENT = Alignment(horizontal="center", vertical="center")
HEADER_BORDER = Border(top=_thin_black, bottom=_thin_black, left=_thin_black, right=_thin_black)
CELL_BORDER = Border(top=_thin_gray, bottom=_thin_gray, left=_thin_gray, right=_thin_gray)
CELL_ALIGNMENT = Alignment(vertical="center")
PERCENT_FORMAT = "0%"

# Summary table sits at C2:E6, the row listing header on row 9.
SUMMARY_ROW = 2
SUMMARY_COL = 3
LISTING_HEADER_ROW = 9

DASHBOARD_WIDTHS = [15, 15, 30, 20, 20, 25, 25, 15, 15, 15]
PIVOT_WIDTHS = [30, 12, 12, 12, 12, 15]

PIVOT_TABLES = (
    ("District", "Pivot: Breakdown by District", "by_district"),
    (SUPERVISOR, "Pivot: Breakdown by Supervisor", "by_supervisor"),
    ("City", "Pivot: Breakdown by City", "by_city"),
)


def completion_color(rate: float) -> str:
    """Font colour for a completion rate cell: green, amber or gray."""
    if rate >= COMPLETE_THRESHOLD:
        return GREEN
    elif rate > 0:
        return ACCENT
    return GRAY


def _style_header(cell) -> None:
    cell.fill = HEADER_FILL
    cell.font = HEADER_FONT
    cell.alignment = HEADER_ALIGNMENT
    cell.border = HEADER_BORDER


def _style_body(cell) -> None:
    cell.border = CELL_BORDER
    cell.alignment = CELL_ALIGNMENT


def _style_percent(cell) -> None:
    cell.border = CELL_BORDER
    cell.alignment = HEADER_ALIGNMENT
    cell.number_format = PERCENT_FORMAT


def _write_summary_table(ws, summary: Dict[str, Any]) -> None:
    total = summary['total']
    table = [
        ["Summarization Status", "Number Count", "Percentage"],
        ["Number Of Student", total, 1],
        ["Number Of Student Who Completed", summary['completed'], summary['completion_percentage']],
        ["Number OF Student Who In Progress", summary['in_progress'], summary['in_progress_percentage']],
        ["Number Of Students Who Did Not Started", summary['not_started'], summary['not_started_percentage']],
    ]
    for r_offset, values in enumerate(table):
        for c_offset, value in enumerate(values):
            cell = ws.cell(row=SUMMARY_ROW + r_offset, column=SUMMARY_COL + c_offset, value=value)
            if r_offset == 0:
                _style_header(cell)
            elif c_offset == 2:
                _style_percent(cell)
            else:
                _style_body(cell)


def _write_listing(ws, rows: List[Dict[str, Any]]) -> None:
    for c_idx, column in enumerate(FINAL_COLUMNS, start=1):
        _style_header(ws.cell(row=LISTING_HEADER_ROW, column=c_idx, value=column))

    rate_col = FINAL_COLUMNS.index(COMPLETION_RATE) + 1
    for r_idx, row in enumerate(rows, start=LISTING_HEADER_ROW + 1):
        for c_idx, column in enumerate(FINAL_COLUMNS, start=1):
            cell = ws.cell(row=r_idx, column=c_idx, value=row.get(column, ""))
            if c_idx == rate_col:
                _style_percent(cell)
                cell.font = Font(bold=True, color=completion_color(float(row.get(column, 0.0))))
            else:
                _style_body(cell)

    last_row = LISTING_HEADER_ROW + len(rows)
    ws.auto_filter.ref = f"A{LISTING_HEADER_ROW}:{get_column_letter(len(FINAL_COLUMNS))}{last_row}"


def _write_pivot_table(ws, start_row: int, field: str, title: str, groups: List[Dict[str, Any]]) -> int:
    """Write one pivot table at start_row and return the next free row."""
    title_cell = ws.cell(row=start_row, column=1, value=title)
    title_cell.font = Font(bold=True, size=14, color=ACCENT)

    headers = [field, "Total Count", "Completed", "In Progress", "Not Started", "Completion %"]
    for c_idx, header in enumerate(headers, start=1):
        _style_header(ws.cell(row=start_row + 1, column=c_idx, value=header))

    row_idx = start_row + 2
    for group in groups:
        values = [
            group['name'],
            group['total'],
            group['completed'],
            group['in_progress'],
            group['not_started'],
            group['completion_rate'],
        ]
        for c_idx, value in enumerate(values, start=1):
            cell = ws.cell(row=row_idx, column=c_idx, value=value)
            if c_idx == len(values):
                _style_percent(cell)
            else:
                _style_body(cell)
        row_idx += 1

    # one blank row inside the table, one gap before the next
    return row_idx + 2


def build_workbook(rows: List[Dict[str, Any]], stats: Optional[Dict[str, Any]] = None) -> Workbook:
    """
    Build the two-sheet report workbook.

    Args:
        rows: Final report rows in output order
        stats: Result of compute_stats(rows); computed when omitted

    Returns:
        openpyxl Workbook with "Dashboard Report" and "Pivot Analysis" sheets
    """
    if stats is None:
        stats = compute_stats(rows)

    wb = Workbook()
    ws_dashboard = wb.active
    ws_dashboard.title = DASHBOARD_SHEET

    _write_summary_table(ws_dashboard, stats['summary'])
    _write_listing(ws_dashboard, rows)
    for c_idx, width in enumerate(DASHBOARD_WIDTHS, start=1):
        ws_dashboard.column_dimensions[get_column_letter(c_idx)].width = width

    ws_pivot = wb.create_sheet(PIVOT_SHEET)
    ws_pivot.cell(row=1, column=1, value="Pivot Analysis Report")
    current_row = 3
    for field, title, key in PIVOT_TABLES:
        current_row = _write_pivot_table(ws_pivot, current_row, field, title, stats[key])
    for c_idx, width in enumerate(PIVOT_WIDTHS, start=1):
        ws_pivot.column_dimensions[get_column_letter(c_idx)].width = width

    return wb


def generate_excel_report(rows: List[Dict[str, Any]], stats: Optional[Dict[str, Any]] = None) -> bytes:
    """Render the report workbook to XLSX bytes."""
    wb = build_workbook(rows, stats)
    output = BytesIO()
    wb.save(output)
    logger.info("Rendered completion report with %d rows", len(rows))
    return output.getvalue()
