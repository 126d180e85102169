from __future__ import annotations

import logging
from collections import defaultdict
from datetime import date
from typing import Any, Dict, Iterable, List, Optional, Sequence

from analytics.config import DEFAULT_CONFIG, AnalyticsConfig
from analytics.weekly import bucket_key
from metrics.keys import DELIMITER, decode2
from metrics.schemas import MetricRow, TeamBugStats
from metrics.utils import format_week_label, parse_date, percentage, round_half_up

logger = logging.getLogger(__name__)

_BUG_STATS = ("created", "closed", "open", "mttr")


def _as_int(value) -> int:
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return 0


def bugs_by_team(
    rows: Iterable[MetricRow], teams: Optional[Sequence[str]] = None
) -> Dict[str, TeamBugStats]:
    """Per-team bug stats from `bugs_by_team` rows, most open bugs first."""
    stats: Dict[str, Dict[str, float]] = {}
    for row in rows:
        decoded = decode2(row.metric)
        if decoded is None:
            continue
        team, stat = decoded
        if stat not in _BUG_STATS or (teams is not None and team not in teams):
            continue
        values = stats.setdefault(team, {})
        if stat == "mttr":
            try:
                values[stat] = round_half_up(float(row.value))
            except (TypeError, ValueError):
                values[stat] = 0
        else:
            values[stat] = _as_int(row.value)

    teams_stats = [TeamBugStats(team=team, **values) for team, values in stats.items()]
    teams_stats.sort(key=lambda s: (-s.open, s.team))
    return {s.team: s for s in teams_stats}


def transition_weekly_data(
    rows: Iterable[MetricRow],
    *,
    cutoff: Optional[date] = None,
    teams: Optional[Sequence[str]] = None,
    config: AnalyticsConfig = DEFAULT_CONFIG,
) -> Dict[str, Any]:
    """
    Weekly share of transitions into each state category.

    Without `teams` only the global `<state>` rows count; with `teams` only
    the `<team>:<state>` rows of those teams do.
    """
    weekly: Dict[date, Dict[str, int]] = defaultdict(lambda: defaultdict(int))
    for row in rows:
        day = parse_date(row.date)
        if day is None or (cutoff is not None and day < cutoff):
            continue
        if teams is None:
            if DELIMITER in row.metric:
                continue
            state = row.metric
        else:
            decoded = decode2(row.metric)
            if decoded is None or decoded[0] not in teams:
                continue
            state = decoded[1]
        weekly[bucket_key(day)][config.state_category(state)] += _as_int(row.value)

    labels: List[str] = []
    datasets: Dict[str, Dict[str, list]] = {
        category: {"percentages": [], "raw": []} for category in config.state_categories
    }
    for week in sorted(weekly):
        totals = weekly[week]
        week_total = sum(totals.values())
        labels.append(format_week_label(week))
        for category, series in datasets.items():
            raw = totals.get(category, 0)
            series["raw"].append(raw)
            series["percentages"].append(percentage(raw, week_total))
    return {"labels": labels, "datasets": datasets}


def ticket_activity_grid(rows: Iterable[MetricRow]) -> List[List[int]]:
    """
    7x24 completion counts, rows indexed Monday=0.

    Persisted keys use `<weekday>_<hour>` with Sunday=0.
    """
    grid = [[0] * 24 for _ in range(7)]
    for row in rows:
        parts = row.metric.split("_")
        if len(parts) != 2:
            logger.debug("Skipping ticket activity key %r", row.metric)
            continue
        try:
            weekday, hour = int(parts[0]), int(parts[1])
        except ValueError:
            logger.debug("Skipping ticket activity key %r", row.metric)
            continue
        if not (0 <= weekday <= 6 and 0 <= hour <= 23):
            continue
        grid[(weekday - 1) % 7][hour] = _as_int(row.value)
    return grid


def status_chart_data(
    rows: Iterable[MetricRow], config: AnalyticsConfig = DEFAULT_CONFIG
) -> List[Dict[str, Any]]:
    """Status distribution folded into status groups; empty groups are left out."""
    counts = {row.metric: _as_int(row.value) for row in rows}
    grouped = []
    for group, statuses in config.status_groups.items():
        breakdown = [
            {"name": status, "count": counts[status]}
            for status in statuses
            if counts.get(status)
        ]
        breakdown.sort(key=lambda b: -b["count"])
        total = sum(b["count"] for b in breakdown)
        if total:
            grouped.append({"label": group, "value": total, "breakdown": breakdown})
    return grouped
