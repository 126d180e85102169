from __future__ import annotations

import pytest

from metrics.config import DEFAULT_CONFIG
from metrics.intervals import blocked_hours, review_days, scan_state_intervals, sorted_history


def test_blocked_scan_single_interval(make_event):
    history = [
        make_event("2025-03-03T10:00:00Z", "In Progress", "Blocked"),
        make_event("2025-03-03T14:00:00Z", "Blocked", "In Progress"),
    ]
    assert blocked_hours(history) == [4.0]


def test_unmatched_entry_is_dropped(make_event):
    history = [make_event("2025-03-03T10:00:00Z", "In Progress", "Blocked")]
    assert blocked_hours(history) == []


def test_first_entry_time_is_kept_until_exit(make_event):
    history = [
        make_event("2025-03-03T10:00:00Z", "Todo", "Blocked"),
        make_event("2025-03-03T12:00:00Z", "In Progress", "Blocked by vendor"),
        make_event("2025-03-03T16:00:00Z", "Blocked by vendor", "Done"),
    ]
    assert blocked_hours(history) == [6.0]


def test_history_is_sorted_before_scanning(make_event):
    history = [
        make_event("2025-03-04T10:00:00Z", "Blocked", "In Progress"),
        make_event("2025-03-04T08:00:00Z", "In Progress", "Blocked"),
    ]
    assert [e.created_at for e in sorted_history(history)] == [
        "2025-03-04T08:00:00Z",
        "2025-03-04T10:00:00Z",
    ]
    assert blocked_hours(history) == [2.0]


def test_events_with_bad_timestamps_are_skipped(make_event):
    history = [
        make_event("2025-03-03T10:00:00Z", "In Progress", "Blocked"),
        make_event("garbage", "Blocked", "In Progress"),
        make_event("2025-03-03T11:00:00Z", "Blocked", "In Progress"),
    ]
    assert blocked_hours(history) == [1.0]


def test_review_time_in_days(make_event):
    history = [
        make_event("2025-03-01T00:00:00Z", "In Progress", "In Review"),
        make_event("2025-03-03T00:00:00Z", "In Review", "Done"),
    ]
    assert review_days(history, DEFAULT_CONFIG.review_state_pattern) == [2.0]


def test_multiple_intervals(make_event):
    history = [
        make_event("2025-03-01T00:00:00Z", "Todo", "Blocked"),
        make_event("2025-03-01T01:00:00Z", "Blocked", "Todo"),
        make_event("2025-03-02T00:00:00Z", "Todo", "Blocked"),
        make_event("2025-03-02T03:00:00Z", "Blocked", "Todo"),
    ]
    assert scan_state_intervals(history, lambda s: s == "Blocked") == pytest.approx([1.0, 3.0])
