"""Unit tests for parsers module."""

import pytest
import pandas as pd

from completion_report import parsers
from completion_report.parsers import (
    EmptyOrInvalidFile,
    IngestionUnavailable,
    SheetLoadFailure,
    load_excel,
    normalize_text,
    resolve_column_name,
    resolve_columns,
    to_text,
)


def test_normalize_text():
    """Test whitespace and case canonicalization."""
    assert normalize_text(" A\u00A0B ") == normalize_text("a b")
    assert normalize_text(" A\u00A0B ") == "a b"
    assert normalize_text("\uFEFFCompleted\u200B") == "completed"
    assert normalize_text("Not \u3000\t Completed") == "not completed"
    assert normalize_text("A@X.COM") == "a@x.com"


def test_normalize_text_missing_values():
    """Missing values normalize to an empty string."""
    assert normalize_text(None) == ""
    assert normalize_text("") == ""
    assert normalize_text(float("nan")) == ""
    assert normalize_text(pd.NA) == ""
    assert normalize_text("   ") == ""


def test_normalize_text_numbers():
    """Numbers are converted to text."""
    assert normalize_text(12345) == "12345"
    assert normalize_text(12345.0) == "12345"
    assert normalize_text(0.5) == "0.5"


def test_normalize_text_idempotent():
    """Normalizing twice gives the same result."""
    for value in [" A\u00A0B ", "Completed (Achieved Pass Grade)", None, 3.0, " x y"]:
        once = normalize_text(value)
        assert normalize_text(once) == once


def test_to_text():
    """Test cell value display conversion."""
    assert to_text(None) == ""
    assert to_text(float("nan")) == ""
    assert to_text(966500000000.0) == "966500000000"
    assert to_text(1.5) == "1.5"
    assert to_text("Riyadh") == "Riyadh"


def test_resolve_column_name_aliases():
    """Every alias maps to its canonical name regardless of casing."""
    assert resolve_column_name("Email address") == "Username (Email)"
    assert resolve_column_name("EMAIL") == "Username (Email)"
    assert resolve_column_name("e-mail") == "Username (Email)"
    assert resolve_column_name("  user email ") == "Username (Email)"
    assert resolve_column_name("Emp ID") == "User/Employee ID"
    assert resolve_column_name("id") == "User/Employee ID"
    assert resolve_column_name("Full Name") == "Display Name (Pharmacist name)"
    assert resolve_column_name("WHATSAPP") == "Phone number (Whatsapp)"
    assert resolve_column_name("pharmacy #") == "Pharmacy No."
    assert resolve_column_name("Manager") == "Supervisor Name"


def test_resolve_column_name_passthrough():
    """Unrecognized and canonical names pass through (trimmed)."""
    assert resolve_column_name("District") == "District"
    assert resolve_column_name("Username (Email)") == "Username (Email)"
    assert resolve_column_name(" Lesson 1: Intro ") == "Lesson 1: Intro"
    assert resolve_column_name(7) == "7"


def test_resolve_columns():
    """Test row key renaming."""
    row = {"Email": "a@x.com", "Name": "Sara", "District": "Riyadh", "Lesson 1": "Completed"}
    resolved = resolve_columns(row)

    assert resolved == {
        "Username (Email)": "a@x.com",
        "Display Name (Pharmacist name)": "Sara",
        "District": "Riyadh",
        "Lesson 1": "Completed",
    }


def test_resolve_columns_collision_keeps_first_non_empty():
    """When two columns alias to the same name, the first non-empty value wins."""
    assert resolve_columns({"Email": "first@x.com", "Username": "second@x.com"}) == {
        "Username (Email)": "first@x.com"
    }
    assert resolve_columns({"Email": "", "Username": "second@x.com"}) == {
        "Username (Email)": "second@x.com"
    }
    assert resolve_columns({"Email": "first@x.com", "Username": ""}) == {
        "Username (Email)": "first@x.com"
    }


def test_resolve_columns_drops_blank_keys():
    """Keys that are empty after trimming are dropped."""
    assert resolve_columns({"  ": "x", "City": "Jeddah"}) == {"City": "Jeddah"}


def test_load_excel(xlsx_bytes):
    """Test loading the first sheet with resolved columns."""
    content = xlsx_bytes(
        ["Email", "Full Name", "District", "Lesson 1"],
        [
            ["a@x.com", "Sara", "Riyadh", "Completed"],
            ["b@x.com", None, "Jeddah", "Not Completed"],
        ],
        extra_sheets={"Other": [["Email"], ["ignored@x.com"]]},
    )

    rows = load_excel(content, "lms.xlsx")

    assert len(rows) == 2
    assert list(rows[0].keys()) == [
        "Username (Email)", "Display Name (Pharmacist name)", "District", "Lesson 1"
    ]
    assert rows[0]["Username (Email)"] == "a@x.com"
    assert rows[1]["Lesson 1"] == "Not Completed"
    # Empty cells default to ''
    assert rows[1]["Display Name (Pharmacist name)"] == ""
    assert all(row["Username (Email)"] != "ignored@x.com" for row in rows)


def test_load_excel_csv():
    """CSV uploads are read as a single sheet."""
    content = "User ID,Email,District\n1001,a@x.com,Riyadh\n1002,,\n".encode("utf-8")

    rows = load_excel(content, "master.csv")

    assert len(rows) == 2
    assert rows[0] == {"User/Employee ID": "1001", "Username (Email)": "a@x.com", "District": "Riyadh"}
    assert rows[1]["Username (Email)"] == ""


def test_load_excel_invalid_file():
    """Bytes that are not a workbook raise EmptyOrInvalidFile."""
    with pytest.raises(EmptyOrInvalidFile):
        load_excel(b"this is not a workbook", "broken.xlsx")


def test_load_excel_library_unavailable(monkeypatch, xlsx_bytes):
    """A missing openpyxl raises IngestionUnavailable before reading."""
    monkeypatch.setattr(parsers, "OPENPYXL_AVAILABLE", False)

    with pytest.raises(IngestionUnavailable):
        load_excel(xlsx_bytes(["Email"], [["a@x.com"]]), "lms.xlsx")


def test_load_excel_sheet_failure(monkeypatch, xlsx_bytes):
    """A sheet that cannot be read raises SheetLoadFailure."""
    def broken_read_excel(*args, **kwargs):
        raise ValueError("corrupt sheet")

    monkeypatch.setattr(parsers.pd, "read_excel", broken_read_excel)

    with pytest.raises(SheetLoadFailure):
        load_excel(xlsx_bytes(["Email"], [["a@x.com"]]), "lms.xlsx")


def test_ingestion_errors_are_value_errors():
    """Ingestion errors share a ValueError base."""
    assert issubclass(EmptyOrInvalidFile, ValueError)
    assert issubclass(SheetLoadFailure, parsers.IngestionError)
    assert issubclass(IngestionUnavailable, parsers.IngestionError)
