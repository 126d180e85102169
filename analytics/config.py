from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping, Tuple

from metrics.utils import round_half_up

# Value kinds of the cycle metric parser registry.
INTEGER = "integer"
ROUNDED_FLOAT = "rounded_float"
STRING = "string"

# Combinators of the team rollup policy.
SUM = "sum"
AVERAGE = "average"
RECOMPUTE = "recompute"
STATUS = "status"


def parse_integer(value) -> int:
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return 0


def parse_rounded_float(value) -> int:
    try:
        return int(round_half_up(float(value)))
    except (TypeError, ValueError):
        return 0


def parse_string(value) -> str:
    return str(value).strip()


VALUE_PARSERS = MappingProxyType(
    {
        INTEGER: parse_integer,
        ROUNDED_FLOAT: parse_rounded_float,
        STRING: parse_string,
    }
)

_CYCLE_METRIC_KINDS = MappingProxyType(
    {
        "total_issues": INTEGER,
        "completed_issues": INTEGER,
        "bug_count": INTEGER,
        "velocity": INTEGER,
        "planned_points": INTEGER,
        "completion_rate": ROUNDED_FLOAT,
        "carryover": INTEGER,
        "progress": ROUNDED_FLOAT,
        "duration_days": INTEGER,
        "tickets_per_day": ROUNDED_FLOAT,
        "assignee_count": INTEGER,
        "status": STRING,
        "scope_change": ROUNDED_FLOAT,
        "initial_scope": INTEGER,
        "final_scope": INTEGER,
    }
)

# Ordered (substring, combinator); first match wins, unmatched names sum.
_COMBINATOR_POLICY: Tuple[Tuple[str, str], ...] = (
    ("completion_rate", RECOMPUTE),
    ("progress", RECOMPUTE),
    ("scope_change", RECOMPUTE),
    ("tickets_per_day", RECOMPUTE),
    ("status", STATUS),
    ("lead_time", AVERAGE),
    ("cycle_time", AVERAGE),
    ("mttr", AVERAGE),
    ("duration", AVERAGE),
    ("time", AVERAGE),
)

# Ratio metrics rebuilt from combined components:
# (metric, numerator, denominator, scale).
# Several component pairs may exist for one metric; the first pair whose
# components are both present is used.
_RATIO_COMPONENTS: Tuple[Tuple[str, str, str, float], ...] = (
    ("completion_rate", "completed_issues", "total_issues", 100.0),
    ("completion_rate", "issues_completed_30d", "issues_created_30d", 100.0),
    ("progress", "completed_issues", "total_issues", 100.0),
    ("tickets_per_day", "completed_issues", "duration_days", 1.0),
)

# Relative-change metrics: (metric, initial, final).
_CHANGE_COMPONENTS: Tuple[Tuple[str, str, str], ...] = (
    ("scope_change", "initial_scope", "final_scope"),
)

# Status merge precedence for rolled-up cycles.
_STATUS_PRECEDENCE: Tuple[str, ...] = ("active", "completed", "upcoming", "past")

_STATE_CATEGORIES = MappingProxyType(
    {
        "Backlog": ("Backlog", "Triage"),
        "Todo": ("Todo", "To Do", "To do"),
        "In Progress": ("In Progress", "In progress", "To dev", "To design"),
        "In Review": (
            "In Review",
            "In review",
            "Code review",
            "To Review",
            "Ok for Merge",
            "Ok for merge",
            "To Merge (main)",
        ),
        "Testing": ("To test", "To Validate", "Qualified", "To Deploy (PROD)", "OK for release"),
        "Done": ("Done", "Released"),
        "Canceled": ("Canceled", "Auto-closed", "Duplicate", "Archived", "Stalled"),
    }
)

_STATUS_GROUPS = MappingProxyType(
    {
        "Backlog": ("Backlog", "Triage", "Archived"),
        "To Do": ("Todo", "To Do", "To do", "To design", "To dev", "To Qualify"),
        "In Progress": ("In Progress", "In progress"),
        "In Review": ("In Review", "To Review", "To test", "To Validate", "To Merge (main)"),
        "Done": ("Done", "Released", "Canceled", "Duplicate", "Auto-closed"),
    }
)


@dataclass(frozen=True)
class AnalyticsConfig:
    """
    Lookup tables for the report side.

    Built once (`DEFAULT_CONFIG`) and passed explicitly into the parser,
    aggregator and builders that need them.
    """

    cycle_metric_kinds: Mapping[str, str] = field(default_factory=lambda: _CYCLE_METRIC_KINDS)
    combinator_policy: Tuple[Tuple[str, str], ...] = _COMBINATOR_POLICY
    ratio_components: Tuple[Tuple[str, str, str, float], ...] = _RATIO_COMPONENTS
    change_components: Tuple[Tuple[str, str, str], ...] = _CHANGE_COMPONENTS
    status_precedence: Tuple[str, ...] = _STATUS_PRECEDENCE
    state_categories: Mapping[str, Tuple[str, ...]] = field(default_factory=lambda: _STATE_CATEGORIES)
    status_groups: Mapping[str, Tuple[str, ...]] = field(default_factory=lambda: _STATUS_GROUPS)

    # Categories whose values stay raw strings when read back.
    raw_value_categories: Tuple[str, ...] = (
        "cycle",
        "type_breakdown",
        "linear_ticket_activity",
    )
    # Categories whose rolled-up values are always summed.
    count_categories: Tuple[str, ...] = ("transition_to",)
    percentiles: Tuple[int, ...] = (50, 75, 90, 95)
    completion_histogram_buckets: Tuple[int, ...] = (0, 25, 50, 75, 90, 100)
    ci_success_histogram_buckets: Tuple[int, ...] = (0, 50, 75, 90, 95, 100)
    countable_cycle_statuses: Tuple[str, ...] = ("completed", "active")
    default_teams: Tuple[str, ...] = (
        "ATS",
        "Global ATS",
        "Marketplace",
        "Platform",
        "ROI",
        "Sourcing",
        "Talents",
    )
    team_colors: Tuple[str, ...] = ("blue", "green", "orange", "purple", "pink", "cyan", "red", "lime")
    unknown_team: str = "Unknown"

    def combinator_for(self, metric_name: str) -> str:
        for marker, combinator in self.combinator_policy:
            if marker in metric_name:
                return combinator
        return SUM

    def parse_cycle_value(self, metric_name: str, value):
        """Typed value for a cycle metric, or None for names outside the registry."""
        kind = self.cycle_metric_kinds.get(metric_name)
        if kind is None:
            return None
        return VALUE_PARSERS[kind](value)

    def state_category(self, state_name: str) -> str:
        for category, states in self.state_categories.items():
            if state_name in states:
                return category
        return "Other"


DEFAULT_CONFIG = AnalyticsConfig()
