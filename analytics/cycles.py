from __future__ import annotations

import logging
import re
from collections import defaultdict
from dataclasses import replace
from typing import Dict, Iterable, List, Optional, Sequence

from analytics.config import DEFAULT_CONFIG, AnalyticsConfig
from metrics.keys import decode3
from metrics.schemas import CycleRecord, MetricRow, TeamCycleStats
from metrics.utils import round_half_up

logger = logging.getLogger(__name__)

_CYCLE_NUMBER = re.compile(r"Cycle\s*(\d+)", re.IGNORECASE)


def parse_cycles(
    rows: Iterable[MetricRow], config: AnalyticsConfig = DEFAULT_CONFIG
) -> Dict[str, CycleRecord]:
    """
    Decode `cycle` rows into records keyed by `team:cycle`.

    Rows whose key does not have exactly three segments are dropped; metric
    names outside the parser registry leave the field unset.
    """
    cycles: Dict[str, CycleRecord] = {}
    dropped = 0
    for row in rows:
        decoded = decode3(row.metric)
        if decoded is None:
            dropped += 1
            continue
        team, cycle_name, metric_name = decoded
        key = f"{team}:{cycle_name}"
        record = cycles.get(key)
        if record is None:
            record = CycleRecord(team=team, name=cycle_name, date=row.date)

        value = config.parse_cycle_value(metric_name, row.value)
        if value is not None:
            record = replace(record, **{metric_name: value})
        cycles[key] = record

    if dropped:
        logger.debug("Dropped %d cycle rows with malformed keys", dropped)
    return cycles


def cycle_number(name: str) -> int:
    found = _CYCLE_NUMBER.search(name or "")
    return int(found.group(1)) if found else 0


def cycles_by_team(
    records: Iterable[CycleRecord], teams: Optional[Sequence[str]] = None
) -> Dict[str, List[CycleRecord]]:
    """
    Records grouped by team, newest cycle first.

    Teams with an active cycle come first, then alphabetical. When `teams` is
    given, other teams are left out.
    """
    grouped: Dict[str, List[CycleRecord]] = defaultdict(list)
    for record in records:
        if teams is not None and record.team not in teams:
            continue
        grouped[record.team].append(record)

    def team_sort_key(team: str):
        has_active = any(c.status == "active" for c in grouped[team])
        return (0 if has_active else 1, team)

    return {
        team: sorted(grouped[team], key=lambda c: -cycle_number(c.name))
        for team in sorted(grouped, key=team_sort_key)
    }


def _countable(record: CycleRecord, config: AnalyticsConfig) -> bool:
    return record.status in config.countable_cycle_statuses and (record.total_issues or 0) > 0


def _field_sum(records: Sequence[CycleRecord], field_name: str) -> float:
    return sum(getattr(r, field_name) or 0 for r in records)


def _field_average(records: Sequence[CycleRecord], field_name: str) -> float:
    if not records:
        return 0
    return round_half_up(_field_sum(records, field_name) / len(records))


def team_cycle_stats(
    records: Sequence[CycleRecord], team: str, config: AnalyticsConfig = DEFAULT_CONFIG
) -> TeamCycleStats:
    """Averages over the team's completed or active cycles that have issues."""
    countable = [r for r in records if _countable(r, config)]
    return TeamCycleStats(
        team=team,
        total_cycles=len(records),
        cycles_with_data=len(countable),
        total_carryover=int(_field_sum(countable, "carryover")),
        avg_velocity=_field_average(countable, "velocity"),
        avg_tickets_per_cycle=_field_average(countable, "completed_issues"),
        avg_assignees=_field_average(countable, "assignee_count"),
        avg_completion_rate=_field_average(countable, "completion_rate"),
        avg_tickets_per_day=_field_average(countable, "tickets_per_day"),
        avg_scope_change=_field_average(countable, "scope_change"),
    )


def team_stats(
    by_team: Dict[str, List[CycleRecord]], config: AnalyticsConfig = DEFAULT_CONFIG
) -> Dict[str, TeamCycleStats]:
    return {team: team_cycle_stats(records, team, config) for team, records in by_team.items()}
