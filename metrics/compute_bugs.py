from __future__ import annotations

from collections import Counter
from datetime import date, timedelta
from typing import Dict, List, Optional, Sequence

from metrics.config import DEFAULT_CONFIG, MetricsConfig
from metrics.schemas import MetricRow
from metrics.utils import days_between, parse_date, percentage, round_half_up
from models.work_items import Issue

CATEGORY = "bugs"
PRIORITY_CATEGORY = "bugs_by_priority"


def is_bug(issue: Issue, config: MetricsConfig = DEFAULT_CONFIG) -> bool:
    """An issue is a bug when any label contains a bug marker ("bug", "fix")."""
    return any(
        marker in label.lower()
        for label in issue.labels
        for marker in config.bug_label_markers
    )


def resolution_days(issue: Issue) -> Optional[float]:
    if not issue.completed_at:
        return None
    created = parse_date(issue.created_at)
    completed = parse_date(issue.completed_at)
    if created is None or completed is None:
        return None
    return float((completed - created).days)


def _in_window(value: Optional[str], start: date, end: date) -> bool:
    day = parse_date(value)
    return day is not None and start <= day <= end


def compute_bug_metrics(
    *,
    issues: Sequence[Issue],
    today: date,
    config: MetricsConfig = DEFAULT_CONFIG,
) -> List[MetricRow]:
    """
    Bug counts, 30 day creation/closure, resolution time, bug ratio, and the
    open-bug distribution by priority label.
    """
    bugs = [i for i in issues if is_bug(i, config)]
    open_bugs = [b for b in bugs if not b.is_completed]
    closed_bugs = [b for b in bugs if b.is_completed]

    window_start = today - timedelta(days=config.recent_window_days)
    resolutions = [d for d in (resolution_days(b) for b in closed_bugs) if d is not None]

    stats: Dict[str, float] = {
        "total_bugs": len(bugs),
        "open_bugs": len(open_bugs),
        "closed_bugs": len(closed_bugs),
        "bugs_created_last_30d": sum(
            1 for b in bugs if _in_window(b.created_at, window_start, today)
        ),
        "bugs_closed_last_30d": sum(
            1 for b in closed_bugs if _in_window(b.completed_at, window_start, today)
        ),
        "avg_bug_resolution_days": round_half_up(sum(resolutions) / len(resolutions), 1) if resolutions else 0,
        "bug_ratio": percentage(len(bugs), len(issues), precision=1),
    }

    by_priority: Counter = Counter(
        b.priority_label or config.default_priority_label for b in open_bugs
    )

    day = today.isoformat()
    rows = [MetricRow(day, CATEGORY, metric, value) for metric, value in stats.items()]
    rows.extend(
        MetricRow(day, PRIORITY_CATEGORY, priority, count)
        for priority, count in by_priority.items()
    )
    return rows


def bug_resolution_days(issue: Issue) -> Optional[float]:
    """Fractional days from creation to completion (used for per-team MTTR)."""
    if not issue.completed_at:
        return None
    return days_between(issue.created_at, issue.completed_at)
