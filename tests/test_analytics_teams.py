from __future__ import annotations

from datetime import date

import pytest

from analytics.reader import MetricsReader
from analytics.team_config import TeamConfiguration
from analytics.teams import (
    TeamAggregator,
    aggregate_timeseries,
    discover_teams,
    match,
    rollup_cycles,
    rollup_rows,
)
from metrics.schemas import CycleRecord, MetricRow


def test_match_glob_pattern():
    assert match("Team *", ["Team A", "Team B", "Other"]) == {"Team A", "Team B"}


def test_match_exact_is_case_insensitive_and_literal():
    assert match(["platform"], ["Platform", "Platform Ops"]) == {"Platform"}


def test_match_glob_is_case_insensitive():
    assert match("team*", ["Team A", "team-b", "Other"]) == {"Team A", "team-b"}


def test_match_unions_patterns_and_tolerates_no_match():
    assert match(["ATS", "Global *"], ["ATS", "Global ATS", "ROI"]) == {"ATS", "Global ATS"}
    assert match(["Nothing"], ["ATS"]) == set()
    assert match([], ["ATS"]) == set()


@pytest.fixture
def two_team_records():
    return [
        CycleRecord(
            team="Team A",
            name="Cycle 1",
            date="2025-03-01",
            total_issues=2,
            completed_issues=1,
            completion_rate=50,
            progress=50,
            status="completed",
            duration_days=14,
            tickets_per_day=0,
            scope_change=20,
            initial_scope=10,
            final_scope=12,
        ),
        CycleRecord(
            team="Team B",
            name="Cycle 1",
            date="2025-03-03",
            total_issues=100,
            completed_issues=100,
            completion_rate=100,
            progress=100,
            status="active",
            duration_days=10,
            tickets_per_day=10,
            scope_change=0,
            initial_scope=30,
            final_scope=30,
        ),
    ]


def test_rollup_recomputes_completion_rate(two_team_records):
    record = TeamAggregator().aggregate("Unified", {"Team A", "Team B"}, two_team_records)

    assert record.team == "Unified"
    assert record.name == "Cycle 1"
    assert record.date == "2025-03-03"
    assert record.total_issues == 102
    assert record.completed_issues == 101
    # Recomputed from summed components, not the mean of 50 and 100.
    assert record.completion_rate == pytest.approx(99.02)
    assert record.completion_rate != 75
    assert record.progress == pytest.approx(99.02)
    assert record.scope_change == pytest.approx(5.0)
    assert record.duration_days == 12.0
    assert record.tickets_per_day == pytest.approx(8.42)
    assert record.status == "active"
    assert record.velocity is None


def test_aggregate_without_source_records(two_team_records):
    assert TeamAggregator().aggregate("Unified", {"Team C"}, two_team_records) is None


def test_combine_zero_denominator_is_zero():
    combined = TeamAggregator().combine(
        {"total_issues": [0, 0], "completed_issues": [0, 0], "completion_rate": [0, 0]}
    )
    assert combined["completion_rate"] == 0


def test_combine_rounds_halves_up():
    combined = TeamAggregator().combine(
        {
            "avg_lead_time_days": [1.0, 1.25],
            "completed_issues": [1],
            "total_issues": [800],
            "completion_rate": [50, 0],
        }
    )
    assert combined["avg_lead_time_days"] == 1.13
    assert combined["completion_rate"] == 0.13


def test_combine_status_precedence():
    aggregator = TeamAggregator()
    assert aggregator.combine({"status": ["past", "upcoming"]})["status"] == "upcoming"
    assert aggregator.combine({"status": ["completed", "past"]})["status"] == "completed"


def test_aggregate_cycles_groups_by_name(two_team_records):
    records = two_team_records + [
        CycleRecord(team="Team A", name="Cycle 2", date="2025-03-10", total_issues=4, completed_issues=1),
    ]
    merged = TeamAggregator().aggregate_cycles("Unified", ["Team A", "Team B"], records)
    assert [r.name for r in merged] == ["Cycle 1", "Cycle 2"]
    assert merged[1].total_issues == 4


def test_aggregate_team_rows():
    day = "2025-03-12"
    rows = [
        MetricRow(day, "team", "completion_rate", 75.0),
        MetricRow(day, "team", "Team A:issues_created_30d", 2.0),
        MetricRow(day, "team", "Team A:issues_completed_30d", 1.0),
        MetricRow(day, "team", "Team A:completion_rate", 50.0),
        MetricRow(day, "team", "Team A:avg_blocked_time_hours", 4.0),
        MetricRow(day, "team", "Team B:issues_created_30d", 100.0),
        MetricRow(day, "team", "Team B:issues_completed_30d", 100.0),
        MetricRow(day, "team", "Team B:completion_rate", 100.0),
        MetricRow(day, "team", "Team B:avg_blocked_time_hours", 2.0),
    ]
    merged = TeamAggregator().aggregate_rows("Unified", ["Team A", "Team B"], rows)
    values = {r.metric: r.value for r in merged}

    assert values == {
        "Unified:issues_created_30d": 102,
        "Unified:issues_completed_30d": 101,
        "Unified:completion_rate": pytest.approx(99.02),
        "Unified:avg_blocked_time_hours": 3.0,
    }
    assert {r.category for r in merged} == {"team"}


def test_rate_without_components_is_omitted():
    rows = [MetricRow("2025-03-12", "team", "Team A:completion_rate", 50.0)]
    assert TeamAggregator().aggregate_rows("Unified", ["Team A"], rows) == []


def test_aggregate_cycle_rows_keep_cycle_scope():
    day = "2025-03-10"
    rows = [
        MetricRow(day, "cycle", "Team A:Cycle 1:total_issues", "2"),
        MetricRow(day, "cycle", "Team A:Cycle 1:completed_issues", "1"),
        MetricRow(day, "cycle", "Team A:Cycle 1:completion_rate", "50"),
        MetricRow(day, "cycle", "Team A:Cycle 1:status", "completed"),
        MetricRow(day, "cycle", "Team B:Cycle 1:total_issues", "100"),
        MetricRow(day, "cycle", "Team B:Cycle 1:completed_issues", "100"),
        MetricRow(day, "cycle", "Team B:Cycle 1:completion_rate", "100"),
        MetricRow(day, "cycle", "Team B:Cycle 1:status", "active"),
        MetricRow(day, "cycle", "Team B:Cycle 2:total_issues", "3"),
    ]
    merged = TeamAggregator().aggregate_rows("Unified", ["Team A", "Team B"], rows)
    values = {r.metric: r.value for r in merged}

    assert values["Unified:Cycle 1:completion_rate"] == pytest.approx(99.02)
    assert values["Unified:Cycle 1:status"] == "active"
    assert values["Unified:Cycle 2:total_issues"] == 3


def test_rollup_rows_with_team_configuration():
    config = TeamConfiguration({"Unified": {"linear": ["Team *"]}, "Empty": {"linear": ["Nope"]}})
    day = "2025-03-12"
    rows = [
        MetricRow(day, "bugs_by_team", "Team A:open", 1.0),
        MetricRow(day, "bugs_by_team", "Team B:open", 2.0),
        MetricRow(day, "bugs_by_team", "Team A:mttr", 2.0),
        MetricRow(day, "bugs_by_team", "Team B:mttr", 4.0),
        MetricRow(day, "bugs_by_team", "Other:open", 10.0),
    ]
    values = {r.metric: r.value for r in rollup_rows(config, rows)}
    assert values == {"Unified:open": 3, "Unified:mttr": 3.0}


def test_rollup_rows_sums_transition_states():
    config = TeamConfiguration({"Unified": {"linear": ["Team *"]}})
    day = "2025-03-12"
    rows = [
        MetricRow(day, "transition_to", "Team A:In progress", 2.0),
        MetricRow(day, "transition_to", "Team B:In progress", 3.0),
    ]
    assert [(r.metric, r.value) for r in rollup_rows(config, rows)] == [("Unified:In progress", 5)]


def test_rollup_cycles(two_team_records):
    config = TeamConfiguration({"Unified": {"linear": "Team *"}, "Ghost": {"github": ["Team A"]}})
    rolled = rollup_cycles(config, two_team_records)
    assert [(r.team, r.name) for r in rolled] == [("Unified", "Cycle 1")]
    assert rolled[0].completion_rate == pytest.approx(99.02)


def test_discover_teams_and_timeseries(today):
    reader = MetricsReader(
        [
            MetricRow("2025-03-12", "bugs_by_team", "Platform:open", "1"),
            MetricRow("2025-03-12", "bugs_by_team", "Unknown:open", "1"),
            MetricRow("2025-03-11", "bugs_by_team", "Sourcing:mttr", "2"),
            MetricRow("2025-03-12", "bugs_by_team", "malformed", "2"),
            MetricRow("2025-03-10", "timeseries", "tickets_created_A", "2"),
            MetricRow("2025-03-10", "timeseries", "tickets_created_B", "3"),
            MetricRow("2025-03-11", "timeseries", "tickets_created_B", "1"),
            MetricRow("2025-03-11", "timeseries", "tickets_completed_A", "4"),
            MetricRow("2025-02-01", "timeseries", "tickets_completed_A", "9"),
        ],
        today=today,
    )

    assert discover_teams(reader) == ["Platform", "Sourcing"]
    series = aggregate_timeseries(reader, ["A", "B"], date(2025, 3, 1))
    assert series == {
        "created": [
            {"date": "2025-03-10", "value": 5.0},
            {"date": "2025-03-11", "value": 1.0},
        ],
        "completed": [{"date": "2025-03-11", "value": 4.0}],
    }
