from __future__ import annotations

from datetime import date, timedelta
from typing import Dict, List, Sequence

from metrics.config import DEFAULT_CONFIG, MetricsConfig
from metrics.intervals import blocked_hours
from metrics.keys import encode_pair
from metrics.schemas import MetricRow
from metrics.utils import parse_datetime, percentage, safe_average, start_of_day
from models.work_items import Issue

CATEGORY = "team"


def _team_values(
    issues: Sequence[Issue], *, today: date, config: MetricsConfig
) -> Dict[str, float]:
    cutoff = start_of_day(today - timedelta(days=config.recent_window_days))
    recent = []
    for issue in issues:
        created = parse_datetime(issue.created_at)
        if created is not None and created >= cutoff:
            recent.append(issue)
    completed_recent = sum(1 for i in recent if i.is_completed)

    blocked: List[float] = []
    for issue in issues:
        blocked.extend(blocked_hours(issue.history, config.blocked_state_marker))

    return {
        "issues_created_30d": len(recent),
        "issues_completed_30d": completed_recent,
        "completion_rate": percentage(completed_recent, len(recent), precision=2),
        "avg_blocked_time_hours": safe_average(blocked),
    }


def compute_team_metrics(
    *,
    issues: Sequence[Issue],
    today: date,
    config: MetricsConfig = DEFAULT_CONFIG,
) -> List[MetricRow]:
    """
    Completion rate over the last 30 days and average blocked time.

    Emits the global figures under plain metric names, then the same figures
    per source team under `team:metric` keys so report-side rollups can
    recompute the rate from its components.
    """
    day = today.isoformat()
    global_values = _team_values(issues, today=today, config=config)
    rows = [
        MetricRow(day, CATEGORY, metric, global_values[metric])
        for metric in ("completion_rate", "avg_blocked_time_hours")
    ]

    by_team: Dict[str, List[Issue]] = {}
    for issue in issues:
        by_team.setdefault(issue.team_name or config.default_team, []).append(issue)

    for team in sorted(by_team):
        values = _team_values(by_team[team], today=today, config=config)
        rows.extend(
            MetricRow(day, CATEGORY, encode_pair(team, metric), value)
            for metric, value in values.items()
        )
    return rows
