"""Summary statistics and pivot breakdowns over the final report rows."""

from typing import Any, Dict, List

import pandas as pd

from completion_report.parsers import SUPERVISOR
from completion_report.reconcile import COMPLETION_RATE

COMPLETE_THRESHOLD = 0.999
BLANK_GROUP = "(Blank)"

STATUS_COMPLETED = "Completed"
STATUS_IN_PROGRESS = "In Progress"
STATUS_NOT_STARTED = "Not Started"

# Pivot tables, in the order they appear in the report.
GROUP_FIELDS = ("District", SUPERVISOR, "City")


def classify_completion(rate: float) -> str:
    """
    Categorize a completion rate.

    Rates at or above 0.999 count as complete to absorb rounding.

    Args:
        rate: Completion rate (0-1)

    Returns:
        "Completed", "In Progress" or "Not Started"
    """
    if rate >= COMPLETE_THRESHOLD:
        return STATUS_COMPLETED
    elif rate > 0:
        return STATUS_IN_PROGRESS
    else:
        return STATUS_NOT_STARTED


def _status_counts(rates: pd.Series) -> Dict[str, int]:
    statuses = rates.map(classify_completion)
    return {
        'completed': int((statuses == STATUS_COMPLETED).sum()),
        'in_progress': int((statuses == STATUS_IN_PROGRESS).sum()),
        'not_started': int((statuses == STATUS_NOT_STARTED).sum()),
    }


def _rates(rows: List[Dict[str, Any]]) -> pd.Series:
    return pd.Series([float(row.get(COMPLETION_RATE, 0.0)) for row in rows], dtype=float)


def summarize(rows: List[Dict[str, Any]]) -> Dict[str, Any]:
    """Overall counts and percentages for the dashboard summary table."""
    total = len(rows)
    counts = _status_counts(_rates(rows))

    def pct(count: int) -> float:
        return count / total if total > 0 else 0.0

    return {
        'total': total,
        **counts,
        'completion_percentage': pct(counts['completed']),
        'in_progress_percentage': pct(counts['in_progress']),
        'not_started_percentage': pct(counts['not_started']),
    }


def group_breakdown(rows: List[Dict[str, Any]], field: str) -> List[Dict[str, Any]]:
    """
    Break the report down by one field.

    Empty values are grouped under "(Blank)". Groups are ordered by
    descending total; groups with equal totals keep first-seen order.

    Args:
        rows: Final report rows
        field: Column to group by, e.g. "District"

    Returns:
        List of dicts with name, total, completed, in_progress,
        not_started and completion_rate
    """
    if not rows:
        return []

    df = pd.DataFrame({
        'name': [str(row.get(field, "") or BLANK_GROUP) for row in rows],
        'status': _rates(rows).map(classify_completion),
    })

    groups = []
    for name, group in df.groupby('name', sort=False):
        total = len(group)
        completed = int((group['status'] == STATUS_COMPLETED).sum())
        groups.append({
            'name': name,
            'total': total,
            'completed': completed,
            'in_progress': int((group['status'] == STATUS_IN_PROGRESS).sum()),
            'not_started': int((group['status'] == STATUS_NOT_STARTED).sum()),
            'completion_rate': completed / total if total else 0.0,
        })

    # sorted() is stable, so equal totals keep first-seen order
    return sorted(groups, key=lambda g: -g['total'])


def compute_stats(rows: List[Dict[str, Any]]) -> Dict[str, Any]:
    """
    Compute every statistic the dashboard and pivot sheets need.

    Returns:
        Dict with summary, by_district, by_supervisor, by_city and by_status
    """
    summary = summarize(rows)
    return {
        'summary': summary,
        'by_district': group_breakdown(rows, "District"),
        'by_supervisor': group_breakdown(rows, SUPERVISOR),
        'by_city': group_breakdown(rows, "City"),
        'by_status': [
            {'name': STATUS_COMPLETED, 'value': summary['completed']},
            {'name': STATUS_IN_PROGRESS, 'value': summary['in_progress']},
            {'name': STATUS_NOT_STARTED, 'value': summary['not_started']},
        ],
    }
