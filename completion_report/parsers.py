"""Excel file parsing, column alias resolution and text normalization."""

import logging
import re
from io import BytesIO
from typing import Any, Dict, List, Tuple

import pandas as pd

try:
    from openpyxl import load_workbook
    OPENPYXL_AVAILABLE = True
except ImportError:
    OPENPYXL_AVAILABLE = False

logger = logging.getLogger(__name__)


class IngestionError(ValueError):
    """Base class for errors raised while reading an uploaded spreadsheet."""


class IngestionUnavailable(IngestionError):
    """The spreadsheet reading library could not be loaded."""


class EmptyOrInvalidFile(IngestionError):
    """The uploaded file is not a workbook or contains no sheets."""


class SheetLoadFailure(IngestionError):
    """The first sheet of the workbook could not be read."""


EMAIL = "Username (Email)"
EMPLOYEE_ID = "User/Employee ID"
DISPLAY_NAME = "Display Name (Pharmacist name)"
PHONE = "Phone number (Whatsapp)"
PHARMACY_NO = "Pharmacy No."
SUPERVISOR = "Supervisor Name"

# Ordered: the first case-insensitive match wins.
COLUMN_ALIASES: Tuple[Tuple[str, str], ...] = (
    # Email variants
    ("Email address", EMAIL),
    ("Username", EMAIL),
    ("Email", EMAIL),
    ("User Email", EMAIL),
    ("E-mail", EMAIL),
    # ID variants
    ("User ID", EMPLOYEE_ID),
    ("Employee ID", EMPLOYEE_ID),
    ("EmployeeID", EMPLOYEE_ID),
    ("UserID", EMPLOYEE_ID),
    ("User/EmployeeID", EMPLOYEE_ID),
    ("ID", EMPLOYEE_ID),
    ("Emp ID", EMPLOYEE_ID),
    # Name variants
    ("Display Name", DISPLAY_NAME),
    ("Pharmacist Name", DISPLAY_NAME),
    ("Pharmacist", DISPLAY_NAME),
    ("Full Name", DISPLAY_NAME),
    ("Name", DISPLAY_NAME),
    # Phone variants
    ("Phone", PHONE),
    ("Mobile", PHONE),
    ("Phone Number", PHONE),
    ("Whatsapp", PHONE),
    ("Contact No", PHONE),
    # Pharmacy number variants
    ("Pharmacy ID", PHARMACY_NO),
    ("Pharmacy #", PHARMACY_NO),
    ("Pharmacy Code", PHARMACY_NO),
    # Supervisor variants
    ("Supervisor", SUPERVISOR),
    ("Manager", SUPERVISOR),
)

_EXACT_ALIASES: Dict[str, str] = {}
for _alias, _canonical in COLUMN_ALIASES:
    _EXACT_ALIASES.setdefault(_alias, _canonical)

_SPACE_VARIANTS = re.compile(r"[\u00A0\u1680\u180E\u2000-\u200B\u202F\u205F\u3000\uFEFF]")
_WHITESPACE_RUN = re.compile(r'\s+')

SUPPORTED_EXTENSIONS = (".xlsx", ".xlsm", ".csv")


def is_missing(value: Any) -> bool:
    """True for None, NaN/NaT and empty strings."""
    if value is None:
        return True
    if isinstance(value, str):
        return value == ""
    try:
        return bool(pd.isna(value))
    except (TypeError, ValueError):
        return False


def to_text(value: Any) -> str:
    """
    Convert a cell value to its display text.

    Integral floats (Excel stores every number as a float) lose the
    trailing ``.0`` so that IDs and phone numbers read naturally.
    """
    if is_missing(value):
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def normalize_text(value: Any) -> str:
    """
    Canonicalize a value for comparison.

    Unicode space variants become plain spaces, whitespace runs collapse
    to a single space, and the result is trimmed and lowercased. Never
    raises; missing values normalize to an empty string.
    """
    text = to_text(value)
    if not text:
        return ""
    text = _SPACE_VARIANTS.sub(' ', text)
    text = _WHITESPACE_RUN.sub(' ', text)
    return text.strip().lower()


def resolve_column_name(column: Any) -> str:
    """Map a single source column name onto its canonical name."""
    clean_key = str(column).strip()
    if clean_key in _EXACT_ALIASES:
        return _EXACT_ALIASES[clean_key]

    lower_key = clean_key.lower()
    for alias, canonical in COLUMN_ALIASES:
        if alias.lower() == lower_key:
            return canonical
    return clean_key


def resolve_columns(row: Dict[Any, Any]) -> Dict[str, Any]:
    """
    Rename the keys of a raw row onto the canonical schema.

    When two source columns resolve to the same canonical name, the first
    value is kept unless it is empty and a later one is not.

    Args:
        row: Raw row mapping column name -> cell value

    Returns:
        New row keyed by canonical column names, in source order
    """
    resolved: Dict[str, Any] = {}
    for key, value in row.items():
        clean_key = resolve_column_name(key)
        if not clean_key:
            continue
        if clean_key not in resolved:
            resolved[clean_key] = value
        elif is_missing(resolved[clean_key]) and not is_missing(value):
            resolved[clean_key] = value
    return resolved


def _frame_to_rows(df: pd.DataFrame) -> List[Dict[str, Any]]:
    """Turn a sheet DataFrame into rows with empty cells defaulted to ''."""
    df = df.astype(object).where(df.notna(), "")
    return [resolve_columns(record) for record in df.to_dict(orient="records")]


def load_csv(file_bytes: bytes) -> List[Dict[str, Any]]:
    """Load a CSV upload as a single sheet of canonical rows."""
    try:
        df = pd.read_csv(BytesIO(file_bytes), dtype=str, keep_default_na=False, encoding="utf-8-sig")
    except pd.errors.EmptyDataError as e:
        raise EmptyOrInvalidFile("The uploaded file appears to be empty or invalid.") from e
    except (pd.errors.ParserError, UnicodeDecodeError) as e:
        raise SheetLoadFailure(f"Sheet could not be loaded: {e}") from e

    logger.debug("Loaded CSV with %d rows, columns: %s", len(df), list(df.columns))
    return _frame_to_rows(df)


def load_excel(file_bytes: bytes, filename: str = "upload.xlsx") -> List[Dict[str, Any]]:
    """
    Load the first sheet of an uploaded workbook.

    Only the first sheet is read. Every row is returned with its columns
    resolved onto canonical names and empty cells set to ''.

    Args:
        file_bytes: Raw bytes of the uploaded file
        filename: Original file name, used to detect CSV uploads

    Returns:
        List of canonical rows in sheet order

    Raises:
        IngestionUnavailable: openpyxl is not installed
        EmptyOrInvalidFile: the file is not a workbook or has no sheets
        SheetLoadFailure: the first sheet could not be read
    """
    if filename.lower().endswith(".csv"):
        return load_csv(file_bytes)

    if not OPENPYXL_AVAILABLE:
        raise IngestionUnavailable(
            "Excel library (openpyxl) not found. Please install the application dependencies."
        )

    try:
        workbook = load_workbook(filename=BytesIO(file_bytes), read_only=True, data_only=True)
    except Exception as e:
        raise EmptyOrInvalidFile("The uploaded file appears to be empty or invalid.") from e

    try:
        sheet_names = list(workbook.sheetnames)
    finally:
        workbook.close()

    if not sheet_names:
        raise EmptyOrInvalidFile("The uploaded file appears to be empty or invalid.")

    first_sheet = sheet_names[0]
    try:
        df = pd.read_excel(
            BytesIO(file_bytes),
            sheet_name=first_sheet,
            engine='openpyxl',
            dtype=object,
            keep_default_na=False,
            na_values=[],
        )
    except Exception as e:
        raise SheetLoadFailure(f"Sheet could not be loaded: {first_sheet}") from e

    if df.empty:
        logger.warning("Sheet '%s' in %s has no data rows", first_sheet, filename)

    logger.debug(
        "Loaded sheet '%s' from %s: %d rows, columns: %s",
        first_sheet, filename, len(df), list(df.columns)
    )
    return _frame_to_rows(df)
