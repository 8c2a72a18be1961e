"""Reconciliation of LMS exports against the master roster."""

import logging
import re
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Optional, Set

import numpy as np
import pandas as pd

from completion_report.parsers import (
    DISPLAY_NAME,
    EMAIL,
    EMPLOYEE_ID,
    PHARMACY_NO,
    PHONE,
    SUPERVISOR,
    is_missing,
    normalize_text,
    to_text,
)

logger = logging.getLogger(__name__)

COMPLETED_WITH_PASS = "completed (achieved pass grade)"
COMPLETED = "completed"
NOT_COMPLETED = "not completed"

LESSON_STATUS_VALUES = frozenset({COMPLETED_WITH_PASS, COMPLETED, NOT_COMPLETED})
COMPLETED_VALUES = frozenset({COMPLETED_WITH_PASS, COMPLETED})

COMPLETION_RATE = "Completion Rate"

# A date string needs a four-digit year and a separator or month name;
# time-only, year-less and relative strings ("12:30", "01/05", "now")
# would otherwise resolve against the current date.
_YEAR = re.compile(r"(?<!\d)\d{4}(?!\d)")
_DATE_SEPARATOR = re.compile(r"[-/.]|[A-Za-z]{3,}")
_RELATIVE_WORDS = frozenset({"now", "today", "tomorrow", "yesterday"})

# Output column order of the final report.
REPORT_FIELDS = (
    "District",
    "City",
    SUPERVISOR,
    PHARMACY_NO,
    EMPLOYEE_ID,
    EMAIL,
    DISPLAY_NAME,
    PHONE,
    "SCFHS",
)
FINAL_COLUMNS = REPORT_FIELDS + (COMPLETION_RATE,)


@dataclass
class LMSEntry:
    """Best LMS row seen so far for one identity, with its completion rate."""
    row: Dict[str, Any]
    rate: float


def identity_key(row: Dict[str, Any]) -> Optional[str]:
    """Normalized email of a row, or None when the row has no usable identity."""
    key = normalize_text(row.get(EMAIL, ""))
    if not key or key == "undefined":
        return None
    return key


def infer_lesson_columns(rows: Iterable[Dict[str, Any]]) -> Set[str]:
    """
    Find the lesson status columns of an LMS export.

    Lesson column headers vary per export, so they are detected by content:
    a column is a lesson column when any row holds one of the known status
    phrases under it.

    Args:
        rows: Canonical LMS rows from every export being reconciled

    Returns:
        Set of lesson column names
    """
    rows = list(rows)
    all_keys: Dict[str, None] = {}
    for row in rows:
        for key in row:
            all_keys.setdefault(key, None)

    lesson_columns = set()
    for key in all_keys:
        if any(normalize_text(row.get(key, "")) in LESSON_STATUS_VALUES for row in rows):
            lesson_columns.add(key)
    return lesson_columns


def completion_rate(row: Dict[str, Any], lesson_columns: Set[str]) -> float:
    """Fraction of lesson columns marked completed in this row (0-1)."""
    if not lesson_columns:
        return 0.0
    completed_count = sum(
        1 for column in lesson_columns
        if normalize_text(row.get(column, "")) in COMPLETED_VALUES
    )
    return completed_count / len(lesson_columns)


def _usable(value: float) -> bool:
    return bool(value) and value == value


def _looks_like_date(text: str) -> bool:
    if any(word in _RELATIVE_WORDS for word in re.findall(r"[a-z]+", text.lower())):
        return False
    return bool(_YEAR.search(text)) and bool(_DATE_SEPARATOR.search(text))


def parse_date_value(value: Any) -> float:
    """
    Resolve a Date cell to a comparable number.

    Tries, in order: calendar date -> epoch milliseconds, plain number,
    then 0. A step yielding 0 or NaN falls through to the next one, so an
    epoch-zero date compares equal to an unparsable one.
    """
    if is_missing(value) or isinstance(value, bool):
        return 0.0

    if isinstance(value, (datetime, date, pd.Timestamp)):
        try:
            millis = float(pd.Timestamp(value).value // 1_000_000)
        except (ValueError, OverflowError):
            millis = 0.0
        return millis if _usable(millis) else 0.0

    if isinstance(value, (int, float, np.integer, np.floating)):
        number = float(value)
        return number if _usable(number) else 0.0

    text = str(value).strip()
    millis = 0.0
    if _looks_like_date(text):
        try:
            timestamp = pd.to_datetime(text)
            if not pd.isna(timestamp):
                millis = float(timestamp.value // 1_000_000)
        except (ValueError, TypeError, OverflowError):
            millis = 0.0
    if _usable(millis):
        return millis

    try:
        number = float(text)
    except ValueError:
        return 0.0
    return number if _usable(number) else 0.0


def dedupe_lms_rows(
    rows: Iterable[Dict[str, Any]],
    lesson_columns: Set[str]
) -> Dict[str, LMSEntry]:
    """
    Collapse LMS rows to one entry per identity.

    A later row replaces the stored one when its completion rate is
    higher, or when the rates are equal and its date is strictly later.
    Otherwise the first row seen is kept.

    Returns:
        Dict identity key -> LMSEntry, in first-seen order
    """
    entries: Dict[str, LMSEntry] = {}
    skipped = 0

    for row in rows:
        key = identity_key(row)
        if key is None:
            skipped += 1
            continue

        rate = completion_rate(row, lesson_columns)
        existing = entries.get(key)

        if existing is None:
            entries[key] = LMSEntry(row=row, rate=rate)
        elif rate > existing.rate:
            entries[key] = LMSEntry(row=row, rate=rate)
        elif rate == existing.rate:
            if parse_date_value(row.get("Date", "")) > parse_date_value(existing.row.get("Date", "")):
                entries[key] = LMSEntry(row=row, rate=rate)

    if skipped:
        logger.debug("Skipped %d LMS rows without an email identity", skipped)
    return entries


def index_master_rows(rows: Iterable[Dict[str, Any]]) -> Dict[str, Dict[str, Any]]:
    """Index master roster rows by identity; later duplicates overwrite earlier ones."""
    master_by_key: Dict[str, Dict[str, Any]] = {}
    for row in rows:
        raw_email = row.get(EMAIL, "")
        if is_missing(raw_email):
            continue
        master_by_key[normalize_text(raw_email)] = row
    return master_by_key


def merge_record(
    key: str,
    entry: LMSEntry,
    master_by_key: Dict[str, Dict[str, Any]]
) -> Optional[Dict[str, Any]]:
    """
    Build the final report row for one identity.

    Master roster values take precedence over LMS values when present.
    The completion rate always comes from the LMS entry.

    Returns:
        Final report row, or None when it has no ID, email or name
    """
    master_row = master_by_key.get(key)
    record: Dict[str, Any] = {}

    for field in REPORT_FIELDS:
        value = ""
        if master_row is not None and not is_missing(master_row.get(field)):
            value = master_row[field]
        elif not is_missing(entry.row.get(field)):
            value = entry.row[field]
        record[field] = to_text(value)

    if not (record[EMPLOYEE_ID] or record[EMAIL] or record[DISPLAY_NAME]):
        return None

    record[COMPLETION_RATE] = entry.rate
    return record


def process_data(
    lms1: List[Dict[str, Any]],
    lms2: List[Dict[str, Any]],
    master: List[Dict[str, Any]]
) -> List[Dict[str, Any]]:
    """
    Reconcile both LMS exports with the master roster.

    Args:
        lms1: Canonical rows of the Talent LMS export
        lms2: Canonical rows of the Pharmacy LMS export
        master: Canonical rows of the master roster

    Returns:
        One final report row per identity, in first-seen order
    """
    combined = list(lms1) + list(lms2)

    lesson_columns = infer_lesson_columns(combined)
    logger.debug("Inferred lesson columns: %s", sorted(lesson_columns))
    if not lesson_columns:
        logger.warning("No lesson status columns found; every completion rate will be 0")

    entries = dedupe_lms_rows(combined, lesson_columns)
    master_by_key = index_master_rows(master)

    final_rows = []
    for key, entry in entries.items():
        record = merge_record(key, entry, master_by_key)
        if record is not None:
            final_rows.append(record)

    matched = sum(1 for key in entries if key in master_by_key)
    logger.info(
        "Reconciled %d LMS rows into %d people (%d matched in master roster, %d lesson columns)",
        len(combined), len(final_rows), matched, len(lesson_columns)
    )
    return final_rows
