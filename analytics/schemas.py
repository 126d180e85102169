from __future__ import annotations

from typing import Dict, List

from pydantic import BaseModel, Field


class StatsSummary(BaseModel):
    min: float = 0
    max: float = 0
    avg: float = 0
    count: int = 0


class HistogramBucket(BaseModel):
    range: str
    count: int = 0


class PercentileSummary(BaseModel):
    labels: List[str]
    percentiles: List[float]


class ThroughputPercentiles(BaseModel):
    labels: List[str]
    created: List[float]
    completed: List[float]


class WeeklyThroughput(BaseModel):
    labels: List[str]
    created: List[float]
    completed: List[float]
    percentiles: Dict[str, List[float]] = Field(default_factory=dict)


class DistributionSummary(BaseModel):
    labels: List[str]
    percentiles: List[float]
    stats: StatsSummary
    distribution: List[HistogramBucket] = Field(default_factory=list)


class TeamPercentiles(BaseModel):
    label: str
    data: List[float]
    background_color: str
    value: float


class TeamComparison(BaseModel):
    labels: List[str]
    datasets: List[TeamPercentiles]
    percentile_labels: List[str]
    metric_label: str


class PercentileReport(BaseModel):
    throughput: ThroughputPercentiles
    weekly_throughput: WeeklyThroughput
    bug_mttr: TeamComparison
    velocity: DistributionSummary
    completion: DistributionSummary


class MetricPercentiles(BaseModel):
    labels: List[str]
    percentiles: List[float]
    stats: StatsSummary
    label: str = ""
    unit: str = ""


class PullRequestSizePercentiles(MetricPercentiles):
    additions: MetricPercentiles
    deletions: MetricPercentiles


class CiSuccessDistribution(DistributionSummary):
    unit: str = "%"


class WeeklyPullRequestThroughput(BaseModel):
    labels: List[str]
    merged: List[float]
    created: List[float]
    percentiles: Dict[str, List[float]] = Field(default_factory=dict)


class DeployFrequency(BaseModel):
    daily: MetricPercentiles
    weekly: MetricPercentiles


class TeamMetricValue(BaseModel):
    team: str
    value: float


class PullRequestTeamComparison(BaseModel):
    labels: List[str]
    time_to_merge: List[TeamMetricValue]
    time_to_review: List[TeamMetricValue]
    reviews_per_pr: List[TeamMetricValue]
    unreviewed_rate: List[TeamMetricValue]


class PullRequestReport(BaseModel):
    time_to_first_review: MetricPercentiles
    time_to_merge: MetricPercentiles
    time_to_approval: MetricPercentiles
    pr_size: PullRequestSizePercentiles
    rework_cycles: MetricPercentiles
    reviews_per_pr: MetricPercentiles
    time_to_green: MetricPercentiles
    ci_success_rate: CiSuccessDistribution
    weekly_throughput: WeeklyPullRequestThroughput
    deploy_frequency: DeployFrequency
