from __future__ import annotations

import csv
import logging
from pathlib import Path
from typing import Iterator, List, Sequence, Union

from metrics.schemas import METRIC_ROW_HEADERS, MetricRow

logger = logging.getLogger(__name__)


class CSVMetricsSink:
    """
    Flat-file sink for metric rows.

    The file always starts with the `date,category,metric,value` header in that
    order. `write_rows` replaces the file; `append_rows` adds a daily snapshot,
    writing the header only when the file is new.
    """

    def __init__(self, path: Union[str, Path]) -> None:
        if not path:
            raise ValueError("CSV output path is required")
        self.path = Path(path)

    def write_rows(self, rows: Sequence[MetricRow]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self.path.open("w", newline="", encoding="utf-8") as f:
            writer = csv.writer(f)
            writer.writerow(METRIC_ROW_HEADERS)
            writer.writerows(r.as_tuple() for r in rows)
        logger.info("Wrote %d metric rows to %s", len(rows), self.path)

    def append_rows(self, rows: Sequence[MetricRow]) -> None:
        exists = self.path.exists() and self.path.stat().st_size > 0
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self.path.open("a", newline="", encoding="utf-8") as f:
            writer = csv.writer(f)
            if not exists:
                writer.writerow(METRIC_ROW_HEADERS)
            writer.writerows(r.as_tuple() for r in rows)
        logger.info("Appended %d metric rows to %s", len(rows), self.path)

    def iter_rows(self) -> Iterator[MetricRow]:
        """Yield rows with raw string values; typing happens in the reader."""
        with self.path.open("r", newline="", encoding="utf-8") as f:
            reader = csv.DictReader(f)
            for record in reader:
                if not record.get("category"):
                    continue
                yield MetricRow(
                    date=record.get("date") or "",
                    category=record["category"],
                    metric=record.get("metric") or "",
                    value=record.get("value") or "",
                )

    def read_rows(self) -> List[MetricRow]:
        return list(self.iter_rows())
