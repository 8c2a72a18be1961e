"""Unit tests for stats module."""

import pytest

from completion_report.stats import (
    classify_completion,
    compute_stats,
    group_breakdown,
    summarize,
)


def report_row(rate, district="", supervisor="", city=""):
    return {
        "District": district,
        "City": city,
        "Supervisor Name": supervisor,
        "Username (Email)": "someone@x.com",
        "Completion Rate": rate,
    }


def test_classify_completion():
    """Test completion status thresholds."""
    assert classify_completion(1.0) == "Completed"
    assert classify_completion(0.999) == "Completed"
    assert classify_completion(0.9989) == "In Progress"
    assert classify_completion(0.5) == "In Progress"
    assert classify_completion(0.0) == "Not Started"


def test_summarize():
    """Rates at or above 0.999 count as completed."""
    rows = [report_row(1.0), report_row(0.999), report_row(0.5), report_row(0.0)]

    summary = summarize(rows)

    assert summary['total'] == 4
    assert summary['completed'] == 2
    assert summary['in_progress'] == 1
    assert summary['not_started'] == 1
    assert summary['completion_percentage'] == 0.5
    assert summary['in_progress_percentage'] == 0.25
    assert summary['not_started_percentage'] == 0.25


def test_summarize_empty():
    """An empty report has zero percentages."""
    summary = summarize([])

    assert summary['total'] == 0
    assert summary['completed'] == 0
    assert summary['completion_percentage'] == 0


def test_group_breakdown():
    """Groups carry status counts and a completion fraction."""
    rows = [
        report_row(1.0, district="Riyadh"),
        report_row(0.5, district="Riyadh"),
        report_row(0.0, district="Riyadh"),
        report_row(1.0, district="Jeddah"),
    ]

    groups = group_breakdown(rows, "District")

    assert groups[0] == {
        'name': "Riyadh",
        'total': 3,
        'completed': 1,
        'in_progress': 1,
        'not_started': 1,
        'completion_rate': pytest.approx(1 / 3),
    }
    assert groups[1]['name'] == "Jeddah"
    assert groups[1]['completion_rate'] == 1.0


def test_group_breakdown_orders_by_total():
    """Larger groups come first; equal totals keep first-seen order."""
    rows = (
        [report_row(0.0, city="Abha")] * 3
        + [report_row(0.0, city="Dammam")] * 5
        + [report_row(0.0, city="Tabuk")]
        + [report_row(0.0, city="Hail")]
    )

    groups = group_breakdown(rows, "City")

    assert [g['name'] for g in groups] == ["Dammam", "Abha", "Tabuk", "Hail"]
    assert [g['total'] for g in groups] == [5, 3, 1, 1]


def test_group_breakdown_blank_values():
    """Empty values are grouped under (Blank)."""
    rows = [report_row(1.0, supervisor=""), report_row(0.0, supervisor="Omar"), report_row(0.0)]

    groups = group_breakdown(rows, "Supervisor Name")

    assert groups[0]['name'] == "(Blank)"
    assert groups[0]['total'] == 2
    assert group_breakdown([], "District") == []


def test_compute_stats():
    """Test the full dashboard statistics."""
    rows = [
        report_row(1.0, district="Riyadh", supervisor="Omar", city="Riyadh"),
        report_row(0.2, district="Eastern", supervisor="Omar", city="Dammam"),
    ]

    stats = compute_stats(rows)

    assert stats['summary']['total'] == 2
    assert [g['name'] for g in stats['by_district']] == ["Riyadh", "Eastern"]
    assert stats['by_supervisor'][0]['total'] == 2
    assert len(stats['by_city']) == 2
    assert stats['by_status'] == [
        {'name': "Completed", 'value': 1},
        {'name': "In Progress", 'value': 1},
        {'name': "Not Started", 'value': 0},
    ]
