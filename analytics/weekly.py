from __future__ import annotations

from collections import defaultdict
from datetime import date
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

from analytics.reader import MetricsReader
from analytics.team_config import TeamConfiguration
from analytics.teams import match
from metrics.schemas import MetricRow, SeriesPoint
from metrics.utils import format_week_label, monday_of_week, parse_date, percentage, whole_number

SeriesItem = Union[SeriesPoint, Mapping[str, Any], MetricRow]


def bucket_key(day: Union[str, date]) -> date:
    """Monday on or before `day`; a Sunday belongs to the week it ends."""
    return monday_of_week(day)


def _date_and_value(item: SeriesItem) -> Tuple[Optional[date], float]:
    if isinstance(item, MetricRow):
        raw_date, raw_value = item.date, item.value
    else:
        raw_date, raw_value = item.get("date"), item.get("value")
    try:
        value = float(raw_value or 0)
    except (TypeError, ValueError):
        value = 0.0
    return parse_date(raw_date), value


def series_from_rows(rows: Iterable[MetricRow]) -> List[SeriesPoint]:
    return [SeriesPoint(date=r.date, value=float(r.value)) for r in rows]


class WeeklyBucketAggregator:
    """
    Groups dated values into Monday-aligned calendar weeks.

    Buckets are keyed by the Monday's date, never by a week number, so weeks
    spanning a year boundary stay whole.
    """

    def __init__(self, cutoff: Optional[date] = None) -> None:
        self.cutoff = cutoff

    def weekly_totals(self, series: Iterable[SeriesItem]) -> Dict[date, float]:
        totals: Dict[date, float] = defaultdict(float)
        for item in series:
            day, value = _date_and_value(item)
            if day is None:
                continue
            if self.cutoff is not None and day < self.cutoff:
                continue
            totals[bucket_key(day)] += value
        return totals

    def aggregate_single(self, series: Iterable[SeriesItem]) -> Dict[str, list]:
        totals = self.weekly_totals(series)
        weeks = sorted(totals)
        return {
            "labels": [format_week_label(w) for w in weeks],
            "values": [whole_number(totals[w]) for w in weeks],
        }

    def aggregate_pair(
        self,
        series_a: Iterable[SeriesItem],
        series_b: Iterable[SeriesItem],
        labels: Tuple[str, str] = ("a", "b"),
    ) -> Dict[str, list]:
        """
        Weekly sums of two series plus each one's share of the weekly total.

        Returns `labels`, `<a>_raw`, `<b>_raw`, `<a>_pct`, `<b>_pct`; both
        shares are 0 for a week whose total is 0.
        """
        name_a, name_b = labels
        totals_a = self.weekly_totals(series_a)
        totals_b = self.weekly_totals(series_b)
        result: Dict[str, list] = {
            "labels": [],
            f"{name_a}_raw": [],
            f"{name_b}_raw": [],
            f"{name_a}_pct": [],
            f"{name_b}_pct": [],
        }
        for week in sorted(set(totals_a) | set(totals_b)):
            sum_a = totals_a.get(week, 0.0)
            sum_b = totals_b.get(week, 0.0)
            total = sum_a + sum_b
            result["labels"].append(format_week_label(week))
            result[f"{name_a}_raw"].append(whole_number(sum_a))
            result[f"{name_b}_raw"].append(whole_number(sum_b))
            result[f"{name_a}_pct"].append(percentage(sum_a, total))
            result[f"{name_b}_pct"].append(percentage(sum_b, total))
        return result


class WeeklyFlowBuilder:
    """Weekly created-vs-completed flows summed over a set of teams."""

    def __init__(
        self,
        reader: MetricsReader,
        teams: Sequence[str],
        cutoff: date,
        *,
        team_config: Optional[TeamConfiguration] = None,
        available_teams: Sequence[str] = (),
        source: str = "linear",
    ) -> None:
        self.reader = reader
        self.teams = list(teams)
        self.cutoff = cutoff
        self.team_config = team_config
        self.available_teams = list(available_teams)
        self.source = source
        self.aggregator = WeeklyBucketAggregator(cutoff)

    def source_teams(self, team: str) -> List[str]:
        """Raw teams behind `team`; the team itself when it has no patterns."""
        if self.team_config is None:
            return [team]
        patterns = self.team_config.patterns_for(team, self.source)
        if not patterns:
            return [team]
        return sorted(match(patterns, self.available_teams))

    def summed_series(self, metric_prefix: str, teams: Optional[Sequence[str]] = None) -> List[SeriesPoint]:
        by_date: Dict[str, float] = defaultdict(float)
        for team in self.teams if teams is None else teams:
            for source_team in self.source_teams(team):
                for row in self.reader.timeseries_for(f"{metric_prefix}_{source_team}", self.cutoff):
                    by_date[row.date] += float(row.value)
        return [SeriesPoint(date=d, value=v) for d, v in sorted(by_date.items())]

    def build_flow_data(self) -> Dict[str, list]:
        return self.aggregator.aggregate_pair(
            self.summed_series("tickets_created"),
            self.summed_series("tickets_completed"),
            labels=("created", "completed"),
        )

    def build_bug_flow_data(self) -> Dict[str, list]:
        data = self.aggregator.aggregate_pair(
            self.summed_series("bugs_created"),
            self.summed_series("bugs_closed"),
            labels=("created", "closed"),
        )
        return {
            "labels": data["labels"],
            "created": data["created_raw"],
            "closed": data["closed_raw"],
            "created_pct": data["created_pct"],
            "closed_pct": data["closed_pct"],
        }

    def _week_counts(self, series: Iterable[SeriesItem]) -> Dict[str, float]:
        return {
            format_week_label(week): total
            for week, total in self.aggregator.weekly_totals(series).items()
        }

    def build_bug_flow_by_team_data(self, base_labels: Sequence[str]) -> Dict[str, Any]:
        """Per-team weekly bug counts aligned to `base_labels` (missing weeks are 0)."""
        teams: Dict[str, Dict[str, list]] = {}
        for team in self.teams:
            created = self._week_counts(self.summed_series("bugs_created", [team]))
            closed = self._week_counts(self.summed_series("bugs_closed", [team]))
            teams[team] = {
                "created": [whole_number(created.get(label, 0)) for label in base_labels],
                "closed": [whole_number(closed.get(label, 0)) for label in base_labels],
            }
        return {"labels": list(base_labels), "teams": teams}
