from __future__ import annotations

from collections import Counter
from datetime import date
from typing import Dict, List, Optional, Sequence

from metrics.config import DEFAULT_CONFIG, MetricsConfig
from metrics.schemas import MetricRow
from metrics.utils import days_between, safe_average, start_of_day
from models.work_items import Issue

BACKLOG_CATEGORY = "issues"


def size_bucket(estimate: Optional[float]) -> str:
    """
    Bucket an issue by its point estimate.

    - No estimate: missing or 0
    - Small:  1..2
    - Medium: 3..5
    - Large:  anything bigger
    """
    if not estimate:
        return "No estimate"
    if estimate <= 2:
        return "Small (1-2)"
    if estimate <= 5:
        return "Medium (3-5)"
    return "Large (8+)"


def _label_matches(label: str, name: str, config: MetricsConfig) -> bool:
    if name == "Tech Debt":
        if label == "tech" or any(x in label for x in config.tech_debt_label_exclusions):
            return False
    return True


def classify_issue_type(issue: Issue, config: MetricsConfig = DEFAULT_CONFIG) -> str:
    """Labels decide first; the title is only consulted for unlabeled matches."""
    labels = [label.lower() for label in issue.labels]
    for name, pattern in config.label_type_rules:
        if any(pattern.search(label) and _label_matches(label, name, config) for label in labels):
            return name

    title = (issue.title or "").lower()
    for name, pattern in config.title_type_rules:
        if pattern.search(title):
            return name

    return "Other"


def avg_backlog_age_days(
    issues: Sequence[Issue], *, today: date, config: MetricsConfig = DEFAULT_CONFIG
) -> float:
    now = start_of_day(today)
    ages = [
        age
        for age in (
            days_between(i.created_at, now)
            for i in issues
            if i.state_type == config.backlog_state_type
        )
        if age is not None
    ]
    return safe_average(ages)


def compute_distribution_metrics(
    *,
    issues: Sequence[Issue],
    today: date,
    config: MetricsConfig = DEFAULT_CONFIG,
) -> List[MetricRow]:
    """Histograms by status, priority, type, size and in-progress assignee."""
    distributions: Dict[str, Dict[str, int]] = {
        "status": dict(Counter(i.state_name or config.default_state_name for i in issues)),
        "priority": dict(
            Counter(i.priority_label or config.default_priority_label for i in issues)
        ),
    }

    types = {name: 0 for name in config.issue_types}
    for issue in issues:
        kind = classify_issue_type(issue, config)
        types[kind] = types.get(kind, 0) + 1
    distributions["type"] = types

    sizes = {"No estimate": 0, "Small (1-2)": 0, "Medium (3-5)": 0, "Large (8+)": 0}
    for issue in issues:
        sizes[size_bucket(issue.estimate)] += 1
    distributions["size"] = sizes

    distributions["assignee"] = dict(
        Counter(
            i.assignee_name or config.default_assignee
            for i in issues
            if i.state_type == config.started_state_type
        )
    )

    day = today.isoformat()
    rows = [
        MetricRow(day, category, key, value)
        for category, distribution in distributions.items()
        for key, value in distribution.items()
    ]
    rows.append(
        MetricRow(
            day,
            BACKLOG_CATEGORY,
            "avg_backlog_age_days",
            avg_backlog_age_days(issues, today=today, config=config),
        )
    )
    return rows
