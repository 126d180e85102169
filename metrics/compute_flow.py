from __future__ import annotations

from datetime import date, timedelta
from typing import List, Sequence

from metrics.config import DEFAULT_CONFIG, MetricsConfig
from metrics.intervals import review_days
from metrics.schemas import MetricRow
from metrics.utils import days_between, parse_datetime, safe_average, start_of_day
from models.work_items import Issue

CATEGORY = "flow"


def compute_flow_metrics(
    *,
    issues: Sequence[Issue],
    today: date,
    config: MetricsConfig = DEFAULT_CONFIG,
) -> List[MetricRow]:
    """
    Cycle time, lead time, review time, weekly throughput and WIP.

    Null behavior:
    - cycle time ignores issues missing started_at or completed_at
    - lead time ignores issues whose created_at cannot be parsed
    - averages over an empty population are 0
    """
    cycle_days: List[float] = []
    lead_days: List[float] = []
    review_times: List[float] = []
    throughput = 0
    wip = 0
    week_ago = start_of_day(today - timedelta(days=config.throughput_window_days))

    for issue in issues:
        if issue.started_at and issue.completed_at:
            value = days_between(issue.started_at, issue.completed_at)
            if value is not None:
                cycle_days.append(value)

        if issue.completed_at:
            value = days_between(issue.created_at, issue.completed_at)
            if value is not None:
                lead_days.append(value)

            completed_at = parse_datetime(issue.completed_at)
            if completed_at is not None and completed_at >= week_ago:
                throughput += 1

        if issue.state_type == config.started_state_type:
            wip += 1

        review_times.extend(review_days(issue.history, config.review_state_pattern))

    values = {
        "avg_cycle_time_days": safe_average(cycle_days),
        "avg_lead_time_days": safe_average(lead_days),
        "avg_review_time_days": safe_average(review_times),
        "weekly_throughput": throughput,
        "current_wip": wip,
    }
    day = today.isoformat()
    return [MetricRow(day, CATEGORY, metric, value) for metric, value in values.items()]
