from __future__ import annotations

import logging
from datetime import date
from typing import Dict, List, Optional, Sequence

from metrics.config import DEFAULT_CONFIG, MetricsConfig
from metrics.keys import encode
from metrics.schemas import MetricRow, MetricValue
from metrics.utils import parse_date, round_half_up, safe_average, whole_number
from models.work_items import Cycle, CycleIssue

logger = logging.getLogger(__name__)

SUMMARY_CATEGORY = "cycle_metrics"
DETAIL_CATEGORY = "cycle"

# Emission order of the per-cycle detail rows.
CYCLE_DETAIL_METRICS = (
    "total_issues",
    "completed_issues",
    "bug_count",
    "velocity",
    "planned_points",
    "completion_rate",
    "carryover",
    "progress",
    "duration_days",
    "tickets_per_day",
    "assignee_count",
    "status",
    "scope_change",
    "initial_scope",
    "final_scope",
)


def _is_bug(issue: CycleIssue, config: MetricsConfig) -> bool:
    return any(
        marker in label.lower()
        for label in issue.labels
        for marker in config.bug_label_markers
    )


def _points(value: Optional[float]) -> float:
    return float(value or 0)


def completed_points(cycle: Cycle) -> float:
    return sum(_points(i.estimate) for i in cycle.issues if i.is_completed)


def cycle_is_open(cycle: Cycle, today: date) -> bool:
    if cycle.completed_at:
        return False
    starts = parse_date(cycle.starts_at)
    ends = parse_date(cycle.ends_at)
    if starts is None or ends is None:
        return False
    return starts <= today <= ends


def cycle_status(cycle: Cycle, today: date) -> str:
    starts = parse_date(cycle.starts_at)
    ends = parse_date(cycle.ends_at)
    if cycle.completed_at:
        return "completed"
    if starts is not None and ends is not None and starts <= today <= ends:
        return "active"
    if starts is not None and today < starts:
        return "upcoming"
    return "past"


def cycle_details(
    cycle: Cycle, *, today: date, config: MetricsConfig = DEFAULT_CONFIG
) -> Dict[str, MetricValue]:
    """Per-cycle detail values keyed by metric name (see CYCLE_DETAIL_METRICS)."""
    issues = cycle.issues
    total = len(issues)
    completed = sum(1 for i in issues if i.is_completed)

    starts = parse_date(cycle.starts_at)
    ends = parse_date(cycle.ends_at)
    duration = (ends - starts).days if starts and ends else 0

    scope = cycle.scope_history
    initial_scope = int(scope[0]) if scope else 0
    final_scope = int(scope[-1]) if scope else 0
    if not scope or initial_scope == 0:
        scope_change = 0.0
    else:
        scope_change = round_half_up((final_scope - initial_scope) / initial_scope * 100.0, 1)

    completion = int(round_half_up(completed / total * 100.0)) if total > 0 else 0

    return {
        "total_issues": total,
        "completed_issues": completed,
        "bug_count": sum(1 for i in issues if _is_bug(i, config)),
        "velocity": whole_number(completed_points(cycle)),
        "planned_points": whole_number(sum(_points(i.estimate) for i in issues)),
        "completion_rate": completion,
        "carryover": len(cycle.uncompleted_issue_ids),
        "progress": completion,
        "duration_days": duration,
        "tickets_per_day": round_half_up(completed / duration, 2) if duration > 0 else 0,
        "assignee_count": len({i.assignee_id for i in issues if i.assignee_id}),
        "status": cycle_status(cycle, today),
        "scope_change": scope_change,
        "initial_scope": initial_scope,
        "final_scope": final_scope,
    }


def _detail_row_date(cycle: Cycle, today: date) -> str:
    completed = parse_date(cycle.completed_at)
    if completed is not None:
        return completed.isoformat()
    ends = parse_date(cycle.ends_at)
    if ends is not None and ends <= today:
        return ends.isoformat()
    return today.isoformat()


def cycle_detail_rows(
    cycle: Cycle, *, today: date, config: MetricsConfig = DEFAULT_CONFIG
) -> List[MetricRow]:
    team = cycle.team_name or config.default_team
    day = _detail_row_date(cycle, today)
    details = cycle_details(cycle, today=today, config=config)
    return [
        MetricRow(day, DETAIL_CATEGORY, encode(team, cycle.display_name, metric), details[metric])
        for metric in CYCLE_DETAIL_METRICS
    ]


def compute_cycle_metrics(
    *,
    cycles: Sequence[Cycle],
    today: date,
    config: MetricsConfig = DEFAULT_CONFIG,
) -> List[MetricRow]:
    """
    Sprint/cycle summary metrics plus one detail row per (cycle, metric).

    Summary metrics average per completed cycle; they are not recomputed from
    totals across cycles.
    """
    completed_cycles = [c for c in cycles if c.completed_at]

    open_cycles = [c for c in cycles if cycle_is_open(c, today)]
    if len(open_cycles) > 1:
        logger.debug("Found %d open cycles; using %s", len(open_cycles), open_cycles[0].display_name)
    current_velocity = completed_points(open_cycles[0]) if open_cycles else 0

    accuracy = [
        (sum(1 for i in c.issues if i.is_completed) / len(c.issues)) * 100.0 if c.issues else 0.0
        for c in completed_cycles
    ]
    carryover = [float(len(c.uncompleted_issue_ids)) for c in completed_cycles]
    velocities = [completed_points(c) for c in completed_cycles]

    summary = {
        "current_cycle_velocity": whole_number(current_velocity),
        "avg_cycle_velocity": safe_average(velocities, precision=1),
        "cycle_commitment_accuracy": safe_average(accuracy, precision=2),
        "cycle_carryover_count": safe_average(carryover, precision=1),
    }
    day = today.isoformat()
    rows = [MetricRow(day, SUMMARY_CATEGORY, metric, value) for metric, value in summary.items()]

    for cycle in cycles:
        rows.extend(cycle_detail_rows(cycle, today=today, config=config))
    return rows
