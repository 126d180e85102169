from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Tuple, TypedDict, Union

MetricValue = Union[int, float, str]

# Fixed column order of the persisted metric-row file.
METRIC_ROW_HEADERS: Tuple[str, str, str, str] = ("date", "category", "metric", "value")


@dataclass(frozen=True)
class MetricRow:
    """
    The universal record emitted by every calculator.

    `metric` may itself be a composite key (see `metrics.keys`) depending
    on `category`. This 4-tuple is the only artifact persisted between the
    collection run and the report run.
    """

    date: str  # ISO-8601 calendar date
    category: str
    metric: str
    value: MetricValue

    def as_tuple(self) -> Tuple[str, str, str, MetricValue]:
        return (self.date, self.category, self.metric, self.value)


class SeriesPoint(TypedDict):
    date: str
    value: float


@dataclass(frozen=True)
class CycleRecord:
    team: str
    name: str
    date: str
    total_issues: Optional[int] = None
    completed_issues: Optional[int] = None
    bug_count: Optional[int] = None
    velocity: Optional[int] = None
    planned_points: Optional[int] = None
    completion_rate: Optional[float] = None
    carryover: Optional[int] = None
    progress: Optional[float] = None
    duration_days: Optional[int] = None
    tickets_per_day: Optional[float] = None
    assignee_count: Optional[int] = None
    status: Optional[str] = None  # completed|active|upcoming|past
    scope_change: Optional[float] = None
    initial_scope: Optional[int] = None
    final_scope: Optional[int] = None

    @property
    def key(self) -> str:
        return f"{self.team}:{self.name}"


@dataclass(frozen=True)
class TeamBugStats:
    team: str
    created: int = 0
    closed: int = 0
    open: int = 0
    mttr: float = 0.0


@dataclass(frozen=True)
class TeamCycleStats:
    team: str
    total_cycles: int
    cycles_with_data: int
    total_carryover: int
    avg_velocity: float
    avg_tickets_per_cycle: float
    avg_assignees: float
    avg_completion_rate: float
    avg_tickets_per_day: float
    avg_scope_change: float
