from __future__ import annotations

import logging
from collections import defaultdict
from datetime import date
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Union

from analytics.config import DEFAULT_CONFIG, AnalyticsConfig
from metrics.schemas import MetricRow
from metrics.sinks.flat_file import CSVMetricsSink
from metrics.sinks.sqlite import SQLiteMetricsSink
from metrics.utils import parse_date

logger = logging.getLogger(__name__)


def _to_float(value) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


class MetricsReader:
    """
    Report-side view over persisted metric rows.

    Values are typed on load: categories listed in
    `AnalyticsConfig.raw_value_categories` keep their raw strings (composite
    cycle values, statuses), every other value becomes a float.
    """

    def __init__(
        self,
        rows: Iterable[MetricRow],
        *,
        today: Optional[date] = None,
        config: AnalyticsConfig = DEFAULT_CONFIG,
    ) -> None:
        self.config = config
        self.today = today or date.today()
        self.rows: List[MetricRow] = [self._typed(r) for r in rows]
        self._by_category: Dict[str, List[MetricRow]] = defaultdict(list)
        for row in self.rows:
            self._by_category[row.category].append(row)
        logger.debug(
            "Loaded %d metric rows across %d categories", len(self.rows), len(self._by_category)
        )

    @classmethod
    def from_csv(
        cls,
        path: Union[str, Path],
        *,
        today: Optional[date] = None,
        config: AnalyticsConfig = DEFAULT_CONFIG,
    ) -> "MetricsReader":
        sink = CSVMetricsSink(path)
        if not sink.path.exists():
            logger.warning("Metrics file %s not found; reading no rows", sink.path)
            return cls([], today=today, config=config)
        return cls(sink.iter_rows(), today=today, config=config)

    @classmethod
    def from_sqlite(
        cls,
        db_url: str,
        *,
        today: Optional[date] = None,
        config: AnalyticsConfig = DEFAULT_CONFIG,
    ) -> "MetricsReader":
        sink = SQLiteMetricsSink(db_url)
        try:
            sink.ensure_tables()
            rows = sink.read_rows()
        finally:
            sink.close()
        return cls(rows, today=today, config=config)

    def _typed(self, row: MetricRow) -> MetricRow:
        if row.category in self.config.raw_value_categories:
            return MetricRow(row.date, row.category, row.metric, str(row.value))
        return MetricRow(row.date, row.category, row.metric, _to_float(row.value))

    @property
    def metrics_by_category(self) -> Dict[str, List[MetricRow]]:
        return dict(self._by_category)

    def metrics_for(self, category: str, day: Optional[date] = None) -> List[MetricRow]:
        """Rows of `category` dated `day` (the reader's `today` by default)."""
        wanted = (day or self.today).isoformat()
        return [r for r in self._by_category.get(category, []) if r.date == wanted]

    def all_metrics_for(self, category: str) -> List[MetricRow]:
        return list(self._by_category.get(category, []))

    def timeseries_for(self, metric_name: str, since: date) -> List[MetricRow]:
        """Daily `timeseries` rows for one exact metric name from `since` on, by date."""
        selected = []
        for row in self._by_category.get("timeseries", []):
            if row.metric != metric_name:
                continue
            row_day = parse_date(row.date)
            if row_day is None or row_day < since:
                continue
            selected.append(row)
        return sorted(selected, key=lambda r: r.date)

    def latest_date(self, category: str) -> Optional[date]:
        days = [parse_date(r.date) for r in self._by_category.get(category, [])]
        days = [d for d in days if d is not None]
        return max(days) if days else None
