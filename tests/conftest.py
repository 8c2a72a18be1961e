"""Shared fixtures for building in-memory workbooks."""

from io import BytesIO

import pytest
from openpyxl import Workbook


def build_xlsx(header, rows, extra_sheets=None):
    """Build an .xlsx file in memory with the given header and rows on the first sheet."""
    wb = Workbook()
    ws = wb.active
    ws.title = "Sheet1"
    ws.append(header)
    for row in rows:
        ws.append(row)
    for title, sheet_rows in (extra_sheets or {}).items():
        extra = wb.create_sheet(title)
        for row in sheet_rows:
            extra.append(row)
    output = BytesIO()
    wb.save(output)
    return output.getvalue()


@pytest.fixture
def xlsx_bytes():
    return build_xlsx
