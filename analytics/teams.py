from __future__ import annotations

import fnmatch
import logging
from collections import defaultdict
from dataclasses import fields
from datetime import date
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Set, Tuple, Union

from analytics.config import AVERAGE, DEFAULT_CONFIG, RECOMPUTE, STATUS, SUM, AnalyticsConfig
from analytics.reader import MetricsReader
from analytics.team_config import TeamConfiguration
from metrics.keys import DELIMITER, decode2
from metrics.schemas import CycleRecord, MetricRow, MetricValue, SeriesPoint
from metrics.utils import mean, round_half_up, whole_number

logger = logging.getLogger(__name__)

_IDENTITY_FIELDS = ("team", "name", "date")
CYCLE_METRIC_FIELDS: Tuple[str, ...] = tuple(
    f.name for f in fields(CycleRecord) if f.name not in _IDENTITY_FIELDS
)


def match(patterns: Union[str, Sequence[str]], available_teams: Iterable[str]) -> Set[str]:
    """
    Raw team names selected by one or more patterns.

    Each pattern first matches names equal to it ignoring case; a pattern
    containing `*` also glob-matches (ignoring case) every available name.
    """
    if isinstance(patterns, str):
        patterns = [patterns]
    teams = list(available_teams)
    matched: Set[str] = set()
    for pattern in patterns:
        needle = pattern.lower()
        for team in teams:
            if team.lower() == needle:
                matched.add(team)
            elif "*" in pattern and fnmatch.fnmatchcase(team.lower(), needle):
                matched.add(team)
    return matched


def _to_number(value) -> Optional[float]:
    if isinstance(value, (int, float)):
        return float(value)
    try:
        return float(str(value))
    except (TypeError, ValueError):
        return None


class TeamAggregator:
    """
    Merges metrics of several raw teams into one unified team.

    Each metric name picks its combinator from `AnalyticsConfig.combinator_policy`:
    counters are summed, durations averaged, statuses merged by precedence, and
    rates recomputed from the combined components (never averaged).
    """

    def __init__(self, config: AnalyticsConfig = DEFAULT_CONFIG) -> None:
        self.config = config

    def combine(
        self,
        values_by_metric: Mapping[str, Sequence[MetricValue]],
        *,
        counts_only: bool = False,
    ) -> Dict[str, MetricValue]:
        """
        Combine per-team values of one scope (a cycle, or a day of team stats).

        `counts_only` sums every metric, for categories whose metric names are
        free text (state names) rather than policy-governed metrics.
        """
        combined: Dict[str, MetricValue] = {}
        deferred: List[str] = []
        for metric, values in values_by_metric.items():
            if not values:
                continue
            combinator = SUM if counts_only else self.config.combinator_for(metric)
            if combinator == RECOMPUTE:
                deferred.append(metric)
            elif combinator == STATUS:
                combined[metric] = self._merge_status(values)
            else:
                numbers = [n for n in (_to_number(v) for v in values) if n is not None]
                if not numbers:
                    continue
                if combinator == AVERAGE:
                    combined[metric] = round_half_up(mean(numbers), 2)
                else:
                    combined[metric] = whole_number(sum(numbers))

        for metric in deferred:
            value = self._recompute(metric, combined)
            if value is None:
                logger.debug("No components to recompute %s; omitting it", metric)
                continue
            combined[metric] = value
        return combined

    def _merge_status(self, values: Sequence[MetricValue]) -> str:
        statuses = [str(v).strip() for v in values if str(v).strip()]
        for status in self.config.status_precedence:
            if status in statuses:
                return status
        return statuses[0] if statuses else ""

    def _recompute(self, metric: str, combined: Mapping[str, MetricValue]) -> Optional[float]:
        for name, numerator, denominator, scale in self.config.ratio_components:
            if name != metric or numerator not in combined or denominator not in combined:
                continue
            den = float(combined[denominator])
            if den <= 0:
                return 0
            return round_half_up(float(combined[numerator]) / den * scale, 2)
        for name, initial, final in self.config.change_components:
            if name != metric or initial not in combined or final not in combined:
                continue
            start = float(combined[initial])
            if start == 0:
                return 0
            return round_half_up((float(combined[final]) - start) / start * 100.0, 2)
        return None

    def aggregate(
        self,
        unified_name: str,
        source_teams: Iterable[str],
        records: Sequence[CycleRecord],
    ) -> Optional[CycleRecord]:
        """
        One synthetic record for `unified_name` from the records of `source_teams`.

        Records are expected to describe the same cycle; returns None when
        none of them belongs to a source team.
        """
        teams = set(source_teams)
        selected = [r for r in records if r.team in teams]
        if not selected:
            return None

        values: Dict[str, List[MetricValue]] = {}
        for metric in CYCLE_METRIC_FIELDS:
            present = [getattr(r, metric) for r in selected if getattr(r, metric) is not None]
            if present:
                values[metric] = present
        combined = self.combine(values)
        return CycleRecord(
            team=unified_name,
            name=selected[0].name,
            date=max(r.date for r in selected),
            **{metric: combined.get(metric) for metric in CYCLE_METRIC_FIELDS},
        )

    def aggregate_cycles(
        self,
        unified_name: str,
        source_teams: Iterable[str],
        records: Sequence[CycleRecord],
    ) -> List[CycleRecord]:
        """One synthetic record per cycle name shared by the source teams."""
        teams = set(source_teams)
        by_name: Dict[str, List[CycleRecord]] = defaultdict(list)
        for record in records:
            if record.team in teams:
                by_name[record.name].append(record)

        merged = []
        for name in sorted(by_name):
            record = self.aggregate(unified_name, teams, by_name[name])
            if record is not None:
                merged.append(record)
        return merged

    def aggregate_rows(
        self,
        unified_name: str,
        source_teams: Iterable[str],
        rows: Sequence[MetricRow],
    ) -> List[MetricRow]:
        """
        Merge composite-key rows (`team:stat` or `team:cycle:metric`).

        Rows are grouped by (category, date, middle segments) so recomputed
        rates only see components of the same day and cycle.
        """
        teams = set(source_teams)
        groups: Dict[Tuple[str, str, Tuple[str, ...]], Dict[str, List[MetricValue]]] = defaultdict(
            lambda: defaultdict(list)
        )
        for row in rows:
            parts = row.metric.split(DELIMITER)
            if len(parts) < 2 or parts[0] not in teams:
                continue
            scope = tuple(parts[1:-1])
            groups[(row.category, row.date, scope)][parts[-1]].append(row.value)

        merged: List[MetricRow] = []
        for (category, day, scope), values in groups.items():
            counts_only = category in self.config.count_categories
            for metric, value in self.combine(values, counts_only=counts_only).items():
                key = DELIMITER.join((unified_name,) + scope + (metric,))
                merged.append(MetricRow(day, category, key, value))
        return sorted(merged, key=lambda r: (r.date, r.category, r.metric))


def _unified_sources(
    team_config: TeamConfiguration, available_teams: Iterable[str], source: str
) -> List[Tuple[str, Set[str]]]:
    available = sorted(set(available_teams))
    resolved = []
    for unified_name in team_config.defined_teams:
        matched = match(team_config.patterns_for(unified_name, source), available)
        if not matched:
            logger.debug("Unified team %s matched no %s teams", unified_name, source)
            continue
        resolved.append((unified_name, matched))
    return resolved


def rollup_cycles(
    team_config: TeamConfiguration,
    records: Sequence[CycleRecord],
    *,
    source: str = "linear",
    aggregator: Optional[TeamAggregator] = None,
) -> List[CycleRecord]:
    aggregator = aggregator or TeamAggregator()
    rolled: List[CycleRecord] = []
    for unified_name, teams in _unified_sources(team_config, (r.team for r in records), source):
        rolled.extend(aggregator.aggregate_cycles(unified_name, teams, records))
    return rolled


def rollup_rows(
    team_config: TeamConfiguration,
    rows: Sequence[MetricRow],
    *,
    source: str = "linear",
    aggregator: Optional[TeamAggregator] = None,
) -> List[MetricRow]:
    aggregator = aggregator or TeamAggregator()
    available = [r.metric.split(DELIMITER)[0] for r in rows if DELIMITER in r.metric]
    rolled: List[MetricRow] = []
    for unified_name, teams in _unified_sources(team_config, available, source):
        rolled.extend(aggregator.aggregate_rows(unified_name, teams, rows))
    return rolled


def _summed_series(reader: MetricsReader, metric_names: Iterable[str], since: date) -> List[SeriesPoint]:
    totals: Dict[str, float] = defaultdict(float)
    for metric_name in metric_names:
        for row in reader.timeseries_for(metric_name, since):
            totals[row.date] += float(row.value)
    return [SeriesPoint(date=day, value=totals[day]) for day in sorted(totals)]


def aggregate_timeseries(
    reader: MetricsReader,
    teams: Iterable[str],
    since: date,
    *,
    created_prefix: str = "tickets_created",
    completed_prefix: str = "tickets_completed",
) -> Dict[str, List[SeriesPoint]]:
    """Daily created/completed series summed over the given raw teams."""
    teams = list(teams)
    return {
        "created": _summed_series(reader, (f"{created_prefix}_{t}" for t in teams), since),
        "completed": _summed_series(reader, (f"{completed_prefix}_{t}" for t in teams), since),
    }


def discover_teams(reader: MetricsReader) -> List[str]:
    """Raw team names seen in `bugs_by_team` rows, excluding the unknown team."""
    teams = set()
    for row in reader.all_metrics_for("bugs_by_team"):
        decoded = decode2(row.metric)
        if decoded is None:
            continue
        team = decoded[0]
        if team and team != reader.config.unknown_team:
            teams.add(team)
    return sorted(teams)
