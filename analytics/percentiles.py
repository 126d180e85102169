from __future__ import annotations

import math
from collections import defaultdict
from datetime import date
from typing import Dict, List, Optional, Sequence

from analytics.config import DEFAULT_CONFIG, AnalyticsConfig
from analytics.reader import MetricsReader
from analytics.schemas import (
    DistributionSummary,
    HistogramBucket,
    PercentileReport,
    StatsSummary,
    TeamComparison,
    TeamPercentiles,
    ThroughputPercentiles,
    WeeklyThroughput,
)
from analytics.weekly import bucket_key
from metrics.keys import decode2, decode3
from metrics.schemas import MetricRow
from metrics.utils import format_week_label, parse_date, round_half_up, safe_average

DEFAULT_PERCENTILES = DEFAULT_CONFIG.percentiles


def percentile_value(sorted_values: Sequence[float], percentile: float) -> float:
    """Linear interpolation between the order statistics around the rank."""
    if not sorted_values:
        return 0
    rank = (percentile / 100.0) * (len(sorted_values) - 1)
    lower = sorted_values[math.floor(rank)]
    upper = sorted_values[math.ceil(rank)]
    weight = rank - math.floor(rank)
    return round_half_up(lower + weight * (upper - lower), 2)


def calculate_percentiles(
    values: Sequence[float], percentiles: Sequence[float] = DEFAULT_PERCENTILES
) -> List[float]:
    if not values:
        return [0 for _ in percentiles]
    ordered = sorted(values)
    return [percentile_value(ordered, p) for p in percentiles]


def build_stats(values: Sequence[float], precision: int = 2) -> StatsSummary:
    if not values:
        return StatsSummary()
    return StatsSummary(
        min=round_half_up(min(values), precision),
        max=round_half_up(max(values), precision),
        avg=safe_average(values, precision),
        count=len(values),
    )


def build_histogram(
    values: Sequence[float], boundaries: Sequence[float], *, suffix: str = ""
) -> List[HistogramBucket]:
    """
    Counts per `[low, high)` bucket between consecutive boundaries.

    The last bucket also takes every value at or above the last boundary.
    """
    buckets = [
        HistogramBucket(
            range=f"{low}-{high}{suffix}",
            count=sum(1 for v in values if low <= v < high),
        )
        for low, high in zip(boundaries, boundaries[1:])
    ]
    if buckets:
        buckets[-1].count += sum(1 for v in values if v >= boundaries[-1])
    return buckets


def percentile_labels(percentiles: Sequence[float] = DEFAULT_PERCENTILES) -> List[str]:
    return [f"P{p}" for p in percentiles]


class PercentileDataBuilder:
    """Distribution views over persisted timeseries, bug and cycle rows."""

    def __init__(
        self,
        reader: MetricsReader,
        *,
        teams: Sequence[str] = (),
        cutoff: Optional[date] = None,
        config: AnalyticsConfig = DEFAULT_CONFIG,
    ) -> None:
        self.reader = reader
        self.teams = list(teams)
        self.cutoff = cutoff
        self.config = config

    def _within_cutoff(self, raw_date: str) -> bool:
        if self.cutoff is None:
            return True
        day = parse_date(raw_date)
        return day is not None and day >= self.cutoff

    def _timeseries(self, metric_name: str) -> List[MetricRow]:
        return [
            r
            for r in self.reader.all_metrics_for("timeseries")
            if r.metric == metric_name and self._within_cutoff(r.date)
        ]

    def _percentiles(self, values: Sequence[float]) -> List[float]:
        return calculate_percentiles(values, self.config.percentiles)

    def throughput_percentiles(self) -> ThroughputPercentiles:
        """Percentiles of daily created and completed ticket counts."""
        created = [float(r.value) for r in self._timeseries("tickets_created")]
        completed = [float(r.value) for r in self._timeseries("tickets_completed")]
        return ThroughputPercentiles(
            labels=percentile_labels(self.config.percentiles),
            created=self._percentiles(created),
            completed=self._percentiles(completed),
        )

    def _weekly_totals(self, metric_name: str) -> Dict[date, float]:
        totals: Dict[date, float] = defaultdict(float)
        for row in self._timeseries(metric_name):
            day = parse_date(row.date)
            if day is not None:
                totals[bucket_key(day)] += float(row.value)
        return totals

    def weekly_throughput(self) -> WeeklyThroughput:
        created = self._weekly_totals("tickets_created")
        completed = self._weekly_totals("tickets_completed")
        weeks = sorted(set(created) | set(completed))
        return WeeklyThroughput(
            labels=[format_week_label(w) for w in weeks],
            created=[created.get(w, 0) for w in weeks],
            completed=[completed.get(w, 0) for w in weeks],
            percentiles={
                "created": self._percentiles(list(created.values())),
                "completed": self._percentiles(list(completed.values())),
            },
        )

    def bug_mttr_by_team(self) -> TeamComparison:
        """MTTR percentiles per team over every `team:mttr` snapshot."""
        by_team: Dict[str, List[float]] = defaultdict(list)
        for row in self.reader.all_metrics_for("bugs_by_team"):
            decoded = decode2(row.metric)
            if decoded is None or decoded[1] != "mttr" or not self._within_cutoff(row.date):
                continue
            team = decoded[0]
            if self.teams and team not in self.teams:
                continue
            by_team[team].append(float(row.value))
        return self._team_comparison(by_team, "MTTR (days)")

    def _team_comparison(self, by_team: Dict[str, List[float]], metric_label: str) -> TeamComparison:
        teams = sorted(by_team)
        colors = self.config.team_colors
        return TeamComparison(
            labels=teams,
            datasets=[
                TeamPercentiles(
                    label=team,
                    data=self._percentiles(by_team[team]),
                    background_color=colors[idx % len(colors)],
                    value=safe_average(by_team[team]),
                )
                for idx, team in enumerate(teams)
            ],
            percentile_labels=percentile_labels(self.config.percentiles),
            metric_label=metric_label,
        )

    def _completed_cycle_values(self, metric_name: str) -> List[float]:
        statuses: Dict[str, str] = {}
        values: Dict[str, float] = {}
        for row in self.reader.all_metrics_for("cycle"):
            decoded = decode3(row.metric)
            if decoded is None or not self._within_cutoff(row.date):
                continue
            team, cycle_name, metric = decoded
            cycle_id = f"{team}:{cycle_name}"
            if metric == "status":
                statuses[cycle_id] = str(row.value).strip().lower()
            elif metric == metric_name and cycle_id not in values:
                try:
                    values[cycle_id] = float(row.value)
                except ValueError:
                    continue
        return [v for cycle_id, v in values.items() if statuses.get(cycle_id) == "completed"]

    def velocity_distribution(self) -> DistributionSummary:
        """Velocity of completed cycles; zero-velocity cycles are left out."""
        velocities = [v for v in self._completed_cycle_values("velocity") if v > 0]
        return DistributionSummary(
            labels=percentile_labels(self.config.percentiles),
            percentiles=self._percentiles(velocities),
            stats=build_stats(velocities),
        )

    def completion_distribution(self) -> DistributionSummary:
        rates = self._completed_cycle_values("progress")
        return DistributionSummary(
            labels=percentile_labels(self.config.percentiles),
            percentiles=self._percentiles(rates),
            stats=build_stats(rates),
            distribution=build_histogram(rates, self.config.completion_histogram_buckets, suffix="%"),
        )

    def build(self) -> PercentileReport:
        return PercentileReport(
            throughput=self.throughput_percentiles(),
            weekly_throughput=self.weekly_throughput(),
            bug_mttr=self.bug_mttr_by_team(),
            velocity=self.velocity_distribution(),
            completion=self.completion_distribution(),
        )
