from __future__ import annotations

from datetime import date

import pytest

from metrics.compute_bugs import compute_bug_metrics, is_bug
from metrics.compute_cycles import (
    CYCLE_DETAIL_METRICS,
    compute_cycle_metrics,
    cycle_details,
    cycle_status,
)
from metrics.compute_distribution import (
    classify_issue_type,
    compute_distribution_metrics,
    size_bucket,
)
from metrics.compute_flow import compute_flow_metrics
from metrics.compute_team import compute_team_metrics
from metrics.compute_timeseries import compute_ticket_activity, compute_timeseries_metrics
from metrics.keys import decode_for
from models.work_items import CycleIssue


def _by_metric(rows, category):
    return {r.metric: r.value for r in rows if r.category == category}


def test_flow_metrics(make_issue, today):
    issues = [
        make_issue(
            created_at="2025-03-01T00:00:00Z",
            started_at="2025-03-02T00:00:00Z",
            completed_at="2025-03-04T00:00:00Z",
            state=("Done", "completed"),
        ),
        make_issue(
            created_at="2025-03-01T00:00:00Z",
            started_at="2025-03-05T00:00:00Z",
            completed_at="2025-03-10T12:00:00Z",
            state=("Done", "completed"),
        ),
        make_issue(state=("In Progress", "started")),
        # Unparseable creation only skips the lead time derivation.
        make_issue(created_at="not a date", completed_at="2025-03-11T00:00:00Z"),
    ]

    rows = compute_flow_metrics(issues=issues, today=today)
    values = _by_metric(rows, "flow")

    assert {r.date for r in rows} == {"2025-03-12"}
    assert values["avg_cycle_time_days"] == 3.75
    assert values["avg_lead_time_days"] == 6.25
    assert values["weekly_throughput"] == 2
    assert values["current_wip"] == 1
    assert values["avg_review_time_days"] == 0


def test_flow_metrics_empty_snapshot(today):
    values = _by_metric(compute_flow_metrics(issues=[], today=today), "flow")
    assert values == {
        "avg_cycle_time_days": 0,
        "avg_lead_time_days": 0,
        "avg_review_time_days": 0,
        "weekly_throughput": 0,
        "current_wip": 0,
    }


def test_bug_metrics(make_issue, today):
    issues = [
        make_issue(labels=["Bug"], priority_label="High", state=("Todo", "unstarted")),
        make_issue(
            labels=["hotfix"],
            created_at="2025-01-01T00:00:00Z",
            completed_at="2025-03-10T00:00:00Z",
        ),
        make_issue(
            labels=["bug"],
            created_at="2025-03-05T00:00:00Z",
            completed_at="2025-03-08T00:00:00Z",
        ),
        make_issue(labels=["feature"]),
        make_issue(labels=["fix-needed"]),
    ]

    rows = compute_bug_metrics(issues=issues, today=today)
    stats = _by_metric(rows, "bugs")

    assert stats["total_bugs"] == 4
    assert stats["open_bugs"] == 2
    assert stats["closed_bugs"] == 2
    assert stats["bugs_created_last_30d"] == 3
    assert stats["bugs_closed_last_30d"] == 2
    assert stats["avg_bug_resolution_days"] == 35.5
    assert stats["bug_ratio"] == 80.0
    assert _by_metric(rows, "bugs_by_priority") == {"High": 1, "No priority": 1}


def test_bug_ratio_without_issues(today):
    assert _by_metric(compute_bug_metrics(issues=[], today=today), "bugs")["bug_ratio"] == 0


def test_is_bug_matches_label_substrings(make_issue):
    assert is_bug(make_issue(labels=["Bugfix"]))
    assert not is_bug(make_issue(labels=["Feature"]))
    assert not is_bug(make_issue())


@pytest.fixture
def sprint_cycles(make_cycle):
    completed = make_cycle(
        1,
        starts_at="2025-02-10T00:00:00Z",
        ends_at="2025-02-24T00:00:00Z",
        completed_at="2025-02-24T18:00:00Z",
        issues=[
            CycleIssue(estimate=3, state_type="completed", assignee_id="u1"),
            CycleIssue(estimate=2, state_type="completed", assignee_id="u2"),
            CycleIssue(estimate=5, state_type="started", assignee_id="u1", labels=("Bug",)),
            CycleIssue(estimate=None, state_type="unstarted"),
        ],
        uncompleted=["a", "b"],
        scope_history=[4, 5],
    )
    active = make_cycle(
        2,
        name="Cycle 2",
        starts_at="2025-03-10T00:00:00Z",
        ends_at="2025-03-24T00:00:00Z",
        issues=[
            CycleIssue(estimate=1, state_type="completed"),
            CycleIssue(estimate=2, state_type="started"),
        ],
    )
    upcoming = make_cycle(3, starts_at="2025-03-24T00:00:00Z", ends_at="2025-04-07T00:00:00Z")
    return [completed, active, upcoming]


def test_cycle_details(sprint_cycles, today):
    details = cycle_details(sprint_cycles[0], today=today)
    assert details == {
        "total_issues": 4,
        "completed_issues": 2,
        "bug_count": 1,
        "velocity": 5,
        "planned_points": 10,
        "completion_rate": 50,
        "carryover": 2,
        "progress": 50,
        "duration_days": 14,
        "tickets_per_day": 0.14,
        "assignee_count": 2,
        "status": "completed",
        "scope_change": 25.0,
        "initial_scope": 4,
        "final_scope": 5,
    }


def test_cycle_status(make_cycle, today):
    assert cycle_status(make_cycle(completed_at="2025-03-01T00:00:00Z"), today) == "completed"
    assert (
        cycle_status(make_cycle(starts_at="2025-03-10", ends_at="2025-03-24"), today) == "active"
    )
    assert (
        cycle_status(make_cycle(starts_at="2025-03-20", ends_at="2025-03-30"), today) == "upcoming"
    )
    assert cycle_status(make_cycle(starts_at="2025-02-01", ends_at="2025-02-14"), today) == "past"
    assert cycle_status(make_cycle(), today) == "past"


def test_cycle_details_without_issues_or_scope(make_cycle, today):
    details = cycle_details(make_cycle(), today=today)
    assert details["completion_rate"] == 0
    assert details["tickets_per_day"] == 0
    assert details["scope_change"] == 0


def test_cycle_metrics(sprint_cycles, today):
    rows = compute_cycle_metrics(cycles=sprint_cycles, today=today)
    summary = _by_metric(rows, "cycle_metrics")

    assert summary == {
        "current_cycle_velocity": 1,
        "avg_cycle_velocity": 5.0,
        "cycle_commitment_accuracy": 50.0,
        "cycle_carryover_count": 2.0,
    }

    detail = [r for r in rows if r.category == "cycle"]
    assert len(detail) == len(sprint_cycles) * len(CYCLE_DETAIL_METRICS)
    by_key = {r.metric: r for r in detail}
    assert by_key["Platform:Cycle 1:velocity"].value == 5
    assert by_key["Platform:Cycle 1:velocity"].date == "2025-02-24"
    assert by_key["Platform:Cycle 2:status"].value == "active"
    assert by_key["Platform:Cycle 2:status"].date == "2025-03-12"
    assert by_key["Platform:Cycle 3:status"].value == "upcoming"


@pytest.mark.parametrize(
    ("estimate", "bucket"),
    [
        (None, "No estimate"),
        (0, "No estimate"),
        (1, "Small (1-2)"),
        (2, "Small (1-2)"),
        (3, "Medium (3-5)"),
        (5, "Medium (3-5)"),
        (8, "Large (8+)"),
    ],
)
def test_size_bucket(estimate, bucket):
    assert size_bucket(estimate) == bucket


@pytest.mark.parametrize(
    ("labels", "title", "expected"),
    [
        (["Bug"], "", "Bug"),
        (["refactor"], "", "Tech Debt"),
        (["back-end upgrade"], "Something", "Other"),
        ([], "Fix bug in login", "Bug"),
        ([], "Improve onboarding", "Improvement"),
        ([], "Investigate slow search", "Task"),
        ([], "Quarterly sync", "Other"),
    ],
)
def test_classify_issue_type(make_issue, labels, title, expected):
    assert classify_issue_type(make_issue(labels=labels, title=title)) == expected


def test_distribution_metrics(make_issue, today):
    issues = [
        make_issue(state=("In Progress", "started"), assignee="Alice", priority_label="High", estimate=3),
        make_issue(state=("In Progress", "started"), priority_label="High", labels=["Bug"]),
        make_issue(state=("Done", "completed"), assignee="Bob"),
        make_issue(state=("Backlog", "backlog"), created_at="2025-03-02T00:00:00Z"),
    ]

    rows = compute_distribution_metrics(issues=issues, today=today)

    assert _by_metric(rows, "status") == {"In Progress": 2, "Done": 1, "Backlog": 1}
    assert _by_metric(rows, "priority") == {"High": 2, "No priority": 2}
    types = _by_metric(rows, "type")
    assert types["Bug"] == 1
    assert types["Other"] == 3
    assert types["Documentation"] == 0
    assert _by_metric(rows, "size") == {
        "No estimate": 3,
        "Small (1-2)": 0,
        "Medium (3-5)": 1,
        "Large (8+)": 0,
    }
    assert _by_metric(rows, "assignee") == {"Alice": 1, "Unassigned": 1}
    assert _by_metric(rows, "issues") == {"avg_backlog_age_days": 10.0}


def test_team_metrics(make_issue, make_event, today):
    issues = [
        make_issue(team_name="Platform", completed_at="2025-03-05T00:00:00Z"),
        make_issue(
            team_name="Platform",
            created_at="2025-03-02T00:00:00Z",
            history=[
                make_event("2025-03-03T10:00:00Z", "In Progress", "Blocked"),
                make_event("2025-03-03T14:00:00Z", "Blocked", "In Progress"),
            ],
        ),
        make_issue(team_name="Sourcing", created_at="2025-03-05T00:00:00Z", completed_at="2025-03-06T00:00:00Z"),
        make_issue(team_name="Sourcing", created_at="2025-01-01T00:00:00Z", completed_at="2025-01-02T00:00:00Z"),
    ]

    values = _by_metric(compute_team_metrics(issues=issues, today=today), "team")

    assert values["completion_rate"] == 66.67
    assert values["avg_blocked_time_hours"] == 4.0
    assert values["Platform:issues_created_30d"] == 2
    assert values["Platform:issues_completed_30d"] == 1
    assert values["Platform:completion_rate"] == 50.0
    assert values["Platform:avg_blocked_time_hours"] == 4.0
    assert values["Sourcing:completion_rate"] == 100.0
    assert values["Sourcing:avg_blocked_time_hours"] == 0


def test_ticket_activity_uses_sunday_zero_weekdays(make_issue, today):
    issues = [
        make_issue(completed_at="2025-03-10T14:30:00Z"),  # Monday
        make_issue(completed_at="2025-03-10T14:05:00Z"),
        make_issue(completed_at="2025-03-09T08:00:00Z"),  # Sunday
        make_issue(),
    ]
    rows = compute_ticket_activity(issues=issues, today=today)
    assert _by_metric(rows, "linear_ticket_activity") == {"1_14": 2, "0_8": 1}


def test_timeseries_metrics(make_issue, make_event, today):
    issues = [
        make_issue(
            team_name="Platform",
            labels=["Bug"],
            created_at="2025-03-01T00:00:00Z",
            completed_at="2025-03-03T12:00:00Z",
            state=("Done", "completed"),
            history=[make_event("2025-03-03T09:00:00Z", "In Progress", "In Review")],
        ),
        make_issue(
            team_name="Platform",
            labels=["Bug"],
            created_at="2025-03-01T05:00:00Z",
            state=("In Progress", "started"),
        ),
        make_issue(created_at="2025-03-02T00:00:00Z"),
    ]

    rows = compute_timeseries_metrics(issues=issues, today=today)

    series = {(r.date, r.metric): r.value for r in rows if r.category == "timeseries"}
    assert series[("2025-03-01", "tickets_created")] == 2
    assert series[("2025-03-01", "tickets_created_Platform")] == 2
    assert series[("2025-03-02", "tickets_created_Unknown")] == 1
    assert series[("2025-03-03", "tickets_completed")] == 1
    assert series[("2025-03-01", "bugs_created_Platform")] == 2
    assert series[("2025-03-03", "bugs_closed")] == 1

    transitions = {(r.date, r.metric): r.value for r in rows if r.category == "transition_to"}
    assert transitions == {
        ("2025-03-03", "In Review"): 1,
        ("2025-03-03", "Platform:In Review"): 1,
    }

    bugs = _by_metric(rows, "bugs_by_team")
    assert bugs == {
        "Platform:created": 2,
        "Platform:closed": 1,
        "Platform:open": 1,
        "Platform:mttr": 2.5,
    }
    assert {r.date for r in rows if r.category == "bugs_by_team"} == {date(2025, 3, 12).isoformat()}


def test_unparseable_created_at_only_skips_creation_derivations(make_issue, make_event, today):
    issue = make_issue(
        created_at="garbage",
        started_at="2025-03-08T00:00:00Z",
        completed_at="2025-03-10T00:00:00Z",
        state=("Done", "completed"),
        team_name="Platform",
        history=[make_event("2025-03-09T10:00:00Z", "Todo", "In Progress")],
    )

    flow = _by_metric(compute_flow_metrics(issues=[issue], today=today), "flow")
    assert flow["avg_cycle_time_days"] == 2.0
    assert flow["avg_lead_time_days"] == 0
    assert flow["weekly_throughput"] == 1

    rows = compute_timeseries_metrics(issues=[issue], today=today)
    series = {(r.date, r.metric): r.value for r in rows if r.category == "timeseries"}
    assert series == {
        ("2025-03-10", "tickets_completed"): 1,
        ("2025-03-10", "tickets_completed_Platform"): 1,
    }
    transitions = {(r.date, r.metric): r.value for r in rows if r.category == "transition_to"}
    assert transitions[("2025-03-09", "In Progress")] == 1


def test_team_scoped_categories_decode_every_emitted_row(make_issue, make_event, today):
    issues = [
        make_issue(
            created_at="2025-03-01T00:00:00Z",
            completed_at="2025-03-05T00:00:00Z",
            state=("Done", "completed"),
            team_name="Platform",
            history=[make_event("2025-03-02T00:00:00Z", "Todo", "In Progress")],
        ),
    ]
    rows = compute_team_metrics(issues=issues, today=today) + compute_timeseries_metrics(
        issues=issues, today=today
    )

    scoped = [r for r in rows if r.category in ("team", "transition_to")]
    assert {r.category for r in scoped} == {"team", "transition_to"}
    assert all(decode_for(r.category, r.metric) is not None for r in scoped)
