from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date
from typing import DefaultDict, Dict, List, Sequence

from metrics.compute_bugs import bug_resolution_days, is_bug
from metrics.config import DEFAULT_CONFIG, MetricsConfig
from metrics.keys import encode_pair
from metrics.schemas import MetricRow
from metrics.utils import parse_date, parse_datetime, round_half_up
from models.work_items import Issue

TIMESERIES_CATEGORY = "timeseries"
TRANSITION_CATEGORY = "transition_to"
BUGS_BY_TEAM_CATEGORY = "bugs_by_team"
ACTIVITY_CATEGORY = "linear_ticket_activity"


def activity_key(weekday_sun0: int, hour: int) -> str:
    return f"{weekday_sun0}_{hour}"


def compute_ticket_activity(
    *,
    issues: Sequence[Issue],
    today: date,
    config: MetricsConfig = DEFAULT_CONFIG,
) -> List[MetricRow]:
    """
    Completion counts per (weekday, hour) in UTC.

    The persisted weekday follows the 0=Sunday convention (`"1_14"` is Monday
    2pm); `analytics.breakdowns.ticket_activity_grid` shifts it to 0=Monday.
    """
    counts: Dict[str, int] = defaultdict(int)
    for issue in issues:
        completed = parse_datetime(issue.completed_at)
        if completed is None:
            continue
        weekday_sun0 = (completed.weekday() + 1) % 7
        counts[activity_key(weekday_sun0, completed.hour)] += 1

    day = today.isoformat()
    return [MetricRow(day, ACTIVITY_CATEGORY, key, count) for key, count in counts.items()]


def _team_counter() -> DefaultDict[str, DefaultDict[str, int]]:
    return defaultdict(lambda: defaultdict(int))


@dataclass
class _DailyCounts:
    """Per-day totals plus the same totals split by team."""

    total: DefaultDict[str, int] = field(default_factory=lambda: defaultdict(int))
    by_team: DefaultDict[str, DefaultDict[str, int]] = field(default_factory=_team_counter)

    def record(self, day: str, team: str) -> None:
        self.total[day] += 1
        self.by_team[day][team] += 1

    def rows(self, category: str, metric: str) -> List[MetricRow]:
        rows = [MetricRow(day, category, metric, count) for day, count in self.total.items()]
        for day, teams in self.by_team.items():
            rows.extend(
                MetricRow(day, category, f"{metric}_{team}", count) for team, count in teams.items()
            )
        return rows


@dataclass
class _TeamBugAgg:
    created: int = 0
    closed: int = 0
    open: int = 0
    resolution_days: List[float] = field(default_factory=list)


def compute_timeseries_metrics(
    *,
    issues: Sequence[Issue],
    today: date,
    config: MetricsConfig = DEFAULT_CONFIG,
) -> List[MetricRow]:
    """
    Daily created/completed counters, transition counts and per-team bug stats.

    Row families:
    - `timeseries`: tickets_created, tickets_completed, bugs_created,
      bugs_closed, each also suffixed `_<team>`
    - `transition_to`: `<state>` and `<team>:<state>`, dated by the event
    - `bugs_by_team`: `<team>:created|closed|open|mttr` dated today
    """
    tickets_created = _DailyCounts()
    tickets_completed = _DailyCounts()
    bugs_created = _DailyCounts()
    bugs_closed = _DailyCounts()
    transitions: DefaultDict[str, DefaultDict[str, int]] = _team_counter()
    team_transitions: DefaultDict[str, DefaultDict[str, int]] = _team_counter()
    team_bugs: Dict[str, _TeamBugAgg] = {}

    for issue in issues:
        team = issue.team_name or config.default_team
        bug = is_bug(issue, config)

        created_day = parse_date(issue.created_at)
        if created_day is not None:
            tickets_created.record(created_day.isoformat(), team)
            if bug:
                bugs_created.record(created_day.isoformat(), team)

        completed_day = parse_date(issue.completed_at)
        if completed_day is not None:
            tickets_completed.record(completed_day.isoformat(), team)
            if bug:
                bugs_closed.record(completed_day.isoformat(), team)

        if bug:
            agg = team_bugs.setdefault(team, _TeamBugAgg())
            agg.created += 1
            if issue.state_type in config.closed_state_types:
                agg.closed += 1
                resolution = bug_resolution_days(issue)
                if resolution is not None:
                    agg.resolution_days.append(resolution)
            else:
                agg.open += 1

        for event in issue.history:
            event_day = parse_date(event.created_at)
            state = event.to_state_name
            if event_day is None or not state:
                continue
            transitions[event_day.isoformat()][state] += 1
            team_transitions[event_day.isoformat()][encode_pair(team, state)] += 1

    rows: List[MetricRow] = []
    rows.extend(tickets_created.rows(TIMESERIES_CATEGORY, "tickets_created"))
    rows.extend(tickets_completed.rows(TIMESERIES_CATEGORY, "tickets_completed"))
    rows.extend(bugs_created.rows(TIMESERIES_CATEGORY, "bugs_created"))
    rows.extend(bugs_closed.rows(TIMESERIES_CATEGORY, "bugs_closed"))

    for counter in (transitions, team_transitions):
        for day, states in counter.items():
            rows.extend(
                MetricRow(day, TRANSITION_CATEGORY, state, count) for state, count in states.items()
            )

    day = today.isoformat()
    for team, agg in team_bugs.items():
        resolutions = agg.resolution_days
        mttr = round_half_up(sum(resolutions) / len(resolutions), 1) if resolutions else 0
        for stat, value in (
            ("created", agg.created),
            ("closed", agg.closed),
            ("open", agg.open),
            ("mttr", mttr),
        ):
            rows.append(MetricRow(day, BUGS_BY_TEAM_CATEGORY, encode_pair(team, stat), value))
    return rows
