from __future__ import annotations

import logging
from collections import defaultdict
from datetime import date
from typing import Dict, List, Optional, Sequence

from analytics.config import DEFAULT_CONFIG, AnalyticsConfig
from analytics.percentiles import build_histogram, build_stats, calculate_percentiles, percentile_labels
from analytics.reader import MetricsReader
from analytics.schemas import (
    CiSuccessDistribution,
    DeployFrequency,
    MetricPercentiles,
    PullRequestReport,
    PullRequestSizePercentiles,
    PullRequestTeamComparison,
    TeamMetricValue,
    WeeklyPullRequestThroughput,
)
from analytics.team_config import TeamConfiguration
from analytics.teams import match
from analytics.weekly import bucket_key
from metrics.compute_pull_requests import COMMIT_ACTIVITY_SUFFIX, DAILY_SUFFIX, GITHUB_CATEGORY
from metrics.schemas import MetricRow
from metrics.utils import format_week_label, parse_date, round_half_up, safe_average

logger = logging.getLogger(__name__)

DAILY_CATEGORY = GITHUB_CATEGORY + DAILY_SUFFIX
_TEAM_PREFIX = GITHUB_CATEGORY + ":"
_NON_SUMMARY_SUFFIXES = (DAILY_SUFFIX, "_repo_activity", "_contributor_activity", COMMIT_ACTIVITY_SUFFIX)


def github_teams(reader: MetricsReader, team_config: Optional[TeamConfiguration] = None) -> List[str]:
    """
    Raw GitHub team names that have a `github:<team>` summary category.

    With a team configuration, only teams matched by some unified team's
    `github` patterns are kept, in configuration order.
    """
    available = sorted(
        category[len(_TEAM_PREFIX):]
        for category in reader.metrics_by_category
        if category.startswith(_TEAM_PREFIX) and not category.endswith(_NON_SUMMARY_SUFFIXES)
    )
    available = [team for team in available if team]
    if team_config is None:
        return available

    selected: List[str] = []
    for unified in team_config.defined_teams:
        matched = match(team_config.patterns_for(unified, "github"), available)
        selected.extend(team for team in sorted(matched) if team not in selected)
    return selected


class PullRequestPercentileBuilder:
    """Distribution views over the persisted `github_daily` rows."""

    def __init__(
        self,
        reader: MetricsReader,
        *,
        cutoff: Optional[date] = None,
        teams: Optional[Sequence[str]] = None,
        config: AnalyticsConfig = DEFAULT_CONFIG,
    ) -> None:
        self.reader = reader
        self.cutoff = cutoff
        self.teams = list(teams) if teams is not None else None
        self.config = config

    def _within_cutoff(self, raw_date: str) -> bool:
        if self.cutoff is None:
            return True
        day = parse_date(raw_date)
        return day is not None and day >= self.cutoff

    def _rows(self, metric_name: str, category: str = DAILY_CATEGORY) -> List[MetricRow]:
        return [
            r
            for r in self.reader.all_metrics_for(category)
            if r.metric == metric_name and self._within_cutoff(r.date)
        ]

    def daily_values(self, metric_name: str) -> List[float]:
        """Daily values of one metric; days without activity (0) are left out."""
        return [v for v in (float(r.value) for r in self._rows(metric_name)) if v != 0]

    def weekly_totals(self, metric_name: str) -> Dict[date, float]:
        totals: Dict[date, float] = defaultdict(float)
        for row in self._rows(metric_name):
            day = parse_date(row.date)
            if day is not None:
                totals[bucket_key(day)] += float(row.value)
        return totals

    def _summary(self, values: Sequence[float], label: str, unit: str) -> MetricPercentiles:
        return MetricPercentiles(
            labels=percentile_labels(self.config.percentiles),
            percentiles=calculate_percentiles(values, self.config.percentiles),
            stats=build_stats(values),
            label=label,
            unit=unit,
        )

    def time_to_first_review_percentiles(self) -> MetricPercentiles:
        return self._summary(
            self.daily_values("avg_time_to_first_review_days"), "Time to First Review", "days"
        )

    def time_to_merge_percentiles(self) -> MetricPercentiles:
        hours = self.daily_values("avg_time_to_merge_hours")
        return self._summary([h / 24.0 for h in hours], "Time to Merge", "days")

    def time_to_approval_percentiles(self) -> MetricPercentiles:
        return self._summary(self.daily_values("avg_time_to_approval_days"), "Time to Approval", "days")

    def pr_size_percentiles(self) -> PullRequestSizePercentiles:
        """Daily average lines changed (additions + deletions), paired by date."""
        by_day: Dict[str, float] = defaultdict(float)
        for metric in ("avg_additions_per_pr", "avg_deletions_per_pr"):
            for row in self._rows(metric):
                by_day[row.date] += float(row.value)
        sizes = [by_day[day] for day in sorted(by_day) if by_day[day] > 0]
        summary = self._summary(sizes, "PR Size", "lines")
        return PullRequestSizePercentiles(
            **summary.model_dump(),
            additions=self._summary(self.daily_values("avg_additions_per_pr"), "Additions", "lines"),
            deletions=self._summary(self.daily_values("avg_deletions_per_pr"), "Deletions", "lines"),
        )

    def rework_cycles_percentiles(self) -> MetricPercentiles:
        return self._summary(self.daily_values("avg_rework_cycles"), "Rework Cycles", "cycles")

    def reviews_per_pr_percentiles(self) -> MetricPercentiles:
        return self._summary(self.daily_values("avg_reviews_per_pr"), "Reviews per PR", "reviews")

    def time_to_green_percentiles(self) -> MetricPercentiles:
        return self._summary(self.daily_values("avg_time_to_green_hours"), "Time to Green", "hours")

    def ci_success_rate_distribution(self) -> CiSuccessDistribution:
        values = self.daily_values("ci_success_rate")
        return CiSuccessDistribution(
            labels=percentile_labels(self.config.percentiles),
            percentiles=calculate_percentiles(values, self.config.percentiles),
            stats=build_stats(values),
            distribution=build_histogram(values, self.config.ci_success_histogram_buckets, suffix="%"),
        )

    def weekly_pr_throughput(self) -> WeeklyPullRequestThroughput:
        merged = self.weekly_totals("merged")
        created = self.weekly_totals("created")
        weeks = sorted(set(merged) | set(created))
        return WeeklyPullRequestThroughput(
            labels=[format_week_label(w) for w in weeks],
            merged=[merged.get(w, 0) for w in weeks],
            created=[created.get(w, 0) for w in weeks],
            percentiles={
                "merged": calculate_percentiles(list(merged.values()), self.config.percentiles),
                "created": calculate_percentiles(list(created.values()), self.config.percentiles),
            },
        )

    def deploy_frequency_percentiles(self) -> DeployFrequency:
        weekly = self.weekly_totals("releases_count")
        return DeployFrequency(
            daily=self._summary(self.daily_values("releases_count"), "Daily Deploys", "deploys"),
            weekly=self._summary(list(weekly.values()), "Weekly Deploys", "deploys"),
        )

    def _team_daily_values(self) -> Dict[str, Dict[str, List[float]]]:
        teams: Dict[str, Dict[str, List[float]]] = {}
        for category in self.reader.metrics_by_category:
            if not (category.startswith(_TEAM_PREFIX) and category.endswith(DAILY_SUFFIX)):
                continue
            team = category[len(_TEAM_PREFIX):-len(DAILY_SUFFIX)]
            if not team or (self.teams is not None and team not in self.teams):
                continue
            values: Dict[str, List[float]] = defaultdict(list)
            for row in self.reader.all_metrics_for(category):
                if self._within_cutoff(row.date):
                    values[row.metric].append(float(row.value))
            teams[team] = values
        return teams

    def team_comparison(self) -> PullRequestTeamComparison:
        """Average of each team's daily values for the headline PR metrics."""
        teams = self._team_daily_values()
        names = sorted(teams)

        def per_team(metric_name: str, divisor: float = 1.0) -> List[TeamMetricValue]:
            return [
                TeamMetricValue(
                    team=team,
                    value=round_half_up(safe_average(teams[team].get(metric_name, [])) / divisor, 2),
                )
                for team in names
            ]

        return PullRequestTeamComparison(
            labels=names,
            time_to_merge=per_team("avg_time_to_merge_hours", divisor=24.0),
            time_to_review=per_team("avg_time_to_first_review_days"),
            reviews_per_pr=per_team("avg_reviews_per_pr"),
            unreviewed_rate=per_team("unreviewed_pr_rate"),
        )

    def build(self) -> PullRequestReport:
        report = PullRequestReport(
            time_to_first_review=self.time_to_first_review_percentiles(),
            time_to_merge=self.time_to_merge_percentiles(),
            time_to_approval=self.time_to_approval_percentiles(),
            pr_size=self.pr_size_percentiles(),
            rework_cycles=self.rework_cycles_percentiles(),
            reviews_per_pr=self.reviews_per_pr_percentiles(),
            time_to_green=self.time_to_green_percentiles(),
            ci_success_rate=self.ci_success_rate_distribution(),
            weekly_throughput=self.weekly_pr_throughput(),
            deploy_frequency=self.deploy_frequency_percentiles(),
        )
        logger.debug("Built PR percentile report (cutoff=%s)", self.cutoff)
        return report
