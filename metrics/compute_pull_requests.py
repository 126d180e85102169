from __future__ import annotations

import logging
import re
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date
from typing import Callable, DefaultDict, Dict, List, Mapping, Optional, Sequence

from metrics.compute_timeseries import activity_key
from metrics.config import DEFAULT_CONFIG, MetricsConfig
from metrics.schemas import MetricRow
from metrics.utils import (
    days_between,
    hours_between,
    parse_date,
    parse_datetime,
    percentage,
    round_half_up,
    safe_average,
)
from models.pull_requests import CLOSED, OPEN, PullRequest, Release

logger = logging.getLogger(__name__)

GITHUB_CATEGORY = "github"
DAILY_SUFFIX = "_daily"
REPO_ACTIVITY_CATEGORY = "github_repo_activity"
CONTRIBUTOR_ACTIVITY_CATEGORY = "github_contributor_activity"
COMMIT_ACTIVITY_SUFFIX = "_commit_activity"

_REPO_FROM_URL = re.compile(r"github\.com/[^/]+/([^/]+)")


def team_category(team: str) -> str:
    """Category for one team's PR summary; `<category>_daily` holds its daily stats."""
    return f"{GITHUB_CATEGORY}:{team}"


def _mean_of(
    pull_requests: Sequence[PullRequest], value: Callable[[PullRequest], Optional[float]], precision: int
) -> float:
    values = [v for v in (value(pr) for pr in pull_requests) if v is not None]
    return safe_average(values, precision)


def _time_to_first_review(pr: PullRequest) -> Optional[float]:
    first = PullRequest.earliest(pr.reviews)
    return days_between(pr.created_at, first.created_at) if first else None


def _time_to_approval(pr: PullRequest) -> Optional[float]:
    first = PullRequest.earliest(pr.approvals)
    return days_between(pr.created_at, first.created_at) if first else None


def _time_to_green(pr: PullRequest) -> Optional[float]:
    """Hours from the head commit to its latest successful check suite."""
    commit = pr.head_commit
    if commit is None or not commit.committed_date:
        return None
    suite = commit.latest_successful_suite()
    if suite is None:
        return None
    return hours_between(commit.committed_date, suite.updated_at)


def _rows(day: str, category: str, values: Mapping[str, float]) -> List[MetricRow]:
    return [MetricRow(day, category, metric, value) for metric, value in values.items()]


def compute_pr_velocity_metrics(
    *,
    pull_requests: Sequence[PullRequest],
    today: date,
    category: str = GITHUB_CATEGORY,
) -> List[MetricRow]:
    """
    Merge and review latency over the fetched PRs (days).

    merge_rate is merged / (merged + closed-unmerged); no rows for an empty set.
    """
    if not pull_requests:
        return []
    merged = [pr for pr in pull_requests if pr.is_merged]
    closed = sum(1 for pr in pull_requests if pr.state == CLOSED)
    values = {
        "avg_time_to_merge_days": _mean_of(
            merged, lambda pr: days_between(pr.created_at, pr.merged_at), 4
        ),
        "total_merged_prs": len(merged),
        "avg_time_to_first_review_days": _mean_of(pull_requests, _time_to_first_review, 4),
        "merge_rate": percentage(len(merged), len(merged) + closed, precision=2),
        "avg_time_to_approval_days": _mean_of(pull_requests, _time_to_approval, 4),
    }
    return _rows(today.isoformat(), category, values)


def compute_pr_size_metrics(
    *,
    pull_requests: Sequence[PullRequest],
    today: date,
    category: str = GITHUB_CATEGORY,
) -> List[MetricRow]:
    if not pull_requests:
        return []
    values = {
        "avg_additions_per_pr": safe_average([pr.additions for pr in pull_requests]),
        "avg_deletions_per_pr": safe_average([pr.deletions for pr in pull_requests]),
        "avg_changed_files_per_pr": safe_average([pr.changed_files for pr in pull_requests]),
        "avg_commits_per_pr": safe_average([pr.commit_count for pr in pull_requests]),
    }
    return _rows(today.isoformat(), category, values)


def compute_collaboration_metrics(
    *,
    pull_requests: Sequence[PullRequest],
    today: date,
    category: str = GITHUB_CATEGORY,
) -> List[MetricRow]:
    if not pull_requests:
        return []
    unreviewed = sum(1 for pr in pull_requests if pr.review_count == 0)
    values = {
        "avg_reviews_per_pr": safe_average([pr.review_count for pr in pull_requests]),
        "avg_comments_per_pr": safe_average([pr.comment_count for pr in pull_requests]),
        "avg_rework_cycles": safe_average([pr.changes_requested for pr in pull_requests]),
        "unreviewed_pr_rate": percentage(unreviewed, len(pull_requests), precision=2),
    }
    return _rows(today.isoformat(), category, values)


def compute_quality_metrics(
    *,
    pull_requests: Sequence[PullRequest],
    releases: Sequence[Release],
    today: date,
    config: MetricsConfig = DEFAULT_CONFIG,
    category: str = GITHUB_CATEGORY,
) -> List[MetricRow]:
    """
    CI success and time to green over merged PRs, deploy frequency and hotfix
    rate over releases.

    Deploy frequency spreads the releases over the days since the first one,
    counting at least one day (or one week).
    """
    merged = [pr for pr in pull_requests if pr.is_merged]
    ci_success = sum(1 for pr in merged if pr.head_commit and pr.head_commit.ci_succeeded)

    release_days = sorted(d for d in (parse_date(r.created_at) for r in releases) if d is not None)
    span_days = float((today - release_days[0]).days) if release_days else 0.0
    count = len(releases)
    hotfixes = sum(1 for r in releases if r.is_hotfix(config.hotfix_marker))

    values = {
        "ci_success_rate": percentage(ci_success, len(merged), precision=2),
        "deploy_frequency_weekly": (
            round_half_up(count / max(span_days / 7.0, 1.0), 2) if release_days else 0.0
        ),
        "deploy_frequency_daily": round_half_up(count / max(span_days, 1.0), 2) if release_days else 0.0,
        "hotfix_rate": percentage(hotfixes, count, precision=2),
        "time_to_green_hours": _mean_of(merged, _time_to_green, 2),
    }
    return _rows(today.isoformat(), category, values)


@dataclass
class _DailyPullRequestStats:
    """Accumulates the PRs created (and releases published) on one day."""

    pull_requests: List[PullRequest] = field(default_factory=list)
    releases: List[Release] = field(default_factory=list)

    def metrics(self, config: MetricsConfig) -> Dict[str, float]:
        prs = self.pull_requests
        merged = [pr for pr in prs if pr.is_merged]
        closed = sum(1 for pr in prs if pr.state == CLOSED)
        merge_hours = [
            h for h in (hours_between(pr.created_at, pr.merged_at) for pr in merged) if h is not None
        ]
        hotfixes = sum(1 for r in self.releases if r.is_hotfix(config.hotfix_marker))
        return {
            "created": len(prs),
            "merged": len(merged),
            "closed": closed,
            "open": sum(1 for pr in prs if pr.state == OPEN),
            # Merged PRs without a merge timestamp still count in the divisor.
            "avg_time_to_merge_hours": (
                round_half_up(sum(merge_hours) / len(merged), 2) if merged else 0.0
            ),
            "avg_reviews_per_pr": safe_average([pr.review_count for pr in prs]),
            "avg_comments_per_pr": safe_average([pr.comment_count for pr in prs]),
            "avg_rework_cycles": safe_average([pr.changes_requested for pr in prs]),
            "avg_time_to_first_review_days": _mean_of(prs, _time_to_first_review, 2),
            "avg_time_to_approval_days": _mean_of(prs, _time_to_approval, 2),
            "unreviewed_pr_rate": percentage(
                sum(1 for pr in prs if pr.review_count == 0), len(prs), precision=2
            ),
            "avg_additions_per_pr": safe_average([pr.additions for pr in prs]),
            "avg_deletions_per_pr": safe_average([pr.deletions for pr in prs]),
            "ci_success_rate": percentage(
                sum(1 for pr in prs if pr.head_commit and pr.head_commit.ci_succeeded),
                len(prs),
                precision=2,
            ),
            "avg_time_to_green_hours": _mean_of(merged, _time_to_green, 2),
            "releases_count": len(self.releases),
            "hotfix_count": hotfixes,
            "hotfix_rate": percentage(hotfixes, len(self.releases), precision=2),
            "deploy_frequency_daily": len(self.releases),
            "merge_rate": percentage(len(merged), len(merged) + closed, precision=2),
        }


def compute_pr_daily_metrics(
    *,
    pull_requests: Sequence[PullRequest],
    releases: Sequence[Release] = (),
    config: MetricsConfig = DEFAULT_CONFIG,
    category: str = GITHUB_CATEGORY + DAILY_SUFFIX,
) -> List[MetricRow]:
    """
    One block of rows per day, dated by PR creation (or release publication).

    Every day with any PR or release gets the full metric set, zeros included.
    """
    by_day: DefaultDict[date, _DailyPullRequestStats] = defaultdict(_DailyPullRequestStats)
    for pr in pull_requests:
        day = parse_date(pr.created_at)
        if day is None:
            logger.debug("Skipping PR %s with unparseable createdAt %r", pr.url, pr.created_at)
            continue
        by_day[day].pull_requests.append(pr)
    for release in releases:
        day = parse_date(release.created_at)
        if day is not None:
            by_day[day].releases.append(release)

    rows: List[MetricRow] = []
    for day in sorted(by_day):
        rows.extend(_rows(day.isoformat(), category, by_day[day].metrics(config)))
    return rows


def repository_name(pr: PullRequest) -> str:
    if pr.repository:
        return pr.repository
    match = _REPO_FROM_URL.search(pr.url or "")
    return match.group(1) if match else "unknown"


def _daily_counts(
    pull_requests: Sequence[PullRequest], category: str, key: Callable[[PullRequest], str]
) -> List[MetricRow]:
    counts: Dict[tuple, int] = defaultdict(int)
    for pr in pull_requests:
        day = parse_date(pr.created_at)
        if day is not None:
            counts[(day.isoformat(), key(pr))] += 1
    return [MetricRow(day, category, name, count) for (day, name), count in counts.items()]


def compute_repository_activity(*, pull_requests: Sequence[PullRequest]) -> List[MetricRow]:
    """PRs opened per day and repository."""
    return _daily_counts(pull_requests, REPO_ACTIVITY_CATEGORY, repository_name)


def compute_contributor_activity(*, pull_requests: Sequence[PullRequest]) -> List[MetricRow]:
    """PRs opened per day and author login."""
    return _daily_counts(
        pull_requests, CONTRIBUTOR_ACTIVITY_CATEGORY, lambda pr: pr.author or "unknown"
    )


def compute_commit_activity(
    *,
    pull_requests: Sequence[PullRequest],
    today: date,
    category: str = GITHUB_CATEGORY,
) -> List[MetricRow]:
    """Commit counts per (weekday, hour), keyed like the ticket activity grid."""
    counts: Dict[str, int] = defaultdict(int)
    for pr in pull_requests:
        for committed in pr.commit_dates:
            moment = parse_datetime(committed)
            if moment is None:
                continue
            counts[activity_key((moment.weekday() + 1) % 7, moment.hour)] += 1
    day = today.isoformat()
    return [
        MetricRow(day, category + COMMIT_ACTIVITY_SUFFIX, key, count) for key, count in counts.items()
    ]


def compute_github_metrics(
    *,
    pull_requests: Sequence[PullRequest],
    releases: Sequence[Release] = (),
    today: date,
    config: MetricsConfig = DEFAULT_CONFIG,
) -> List[MetricRow]:
    rows: List[MetricRow] = []
    rows.extend(compute_pr_velocity_metrics(pull_requests=pull_requests, today=today))
    rows.extend(compute_collaboration_metrics(pull_requests=pull_requests, today=today))
    rows.extend(compute_pr_size_metrics(pull_requests=pull_requests, today=today))
    if pull_requests or releases:
        rows.extend(
            compute_quality_metrics(
                pull_requests=pull_requests, releases=releases, today=today, config=config
            )
        )
    rows.extend(compute_pr_daily_metrics(pull_requests=pull_requests, releases=releases, config=config))
    rows.extend(compute_repository_activity(pull_requests=pull_requests))
    rows.extend(compute_contributor_activity(pull_requests=pull_requests))
    rows.extend(compute_commit_activity(pull_requests=pull_requests, today=today))
    return rows


def compute_team_github_metrics(
    *,
    pull_requests_by_team: Mapping[str, Sequence[PullRequest]],
    today: date,
    config: MetricsConfig = DEFAULT_CONFIG,
) -> List[MetricRow]:
    """
    Per-team PR summary (`github:<team>`) and daily stats (`github:<team>_daily`).

    Team membership is resolved by the fetch side; each team's PRs arrive
    already grouped.
    """
    rows: List[MetricRow] = []
    for team, pull_requests in pull_requests_by_team.items():
        category = team_category(team)
        rows.extend(compute_pr_velocity_metrics(pull_requests=pull_requests, today=today, category=category))
        rows.extend(
            compute_collaboration_metrics(pull_requests=pull_requests, today=today, category=category)
        )
        rows.extend(compute_pr_size_metrics(pull_requests=pull_requests, today=today, category=category))
        rows.extend(
            compute_pr_daily_metrics(
                pull_requests=pull_requests, config=config, category=category + DAILY_SUFFIX
            )
        )
        logger.debug("Team %s: %d PRs", team, len(pull_requests))
    return rows
