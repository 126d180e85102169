from __future__ import annotations

from dataclasses import asdict
from typing import List, Optional, Sequence

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine

from metrics.schemas import MetricRow


def _value_to_sqlite(value) -> str:
    # Stored as text so the table mirrors the CSV contract exactly.
    return str(value)


class SQLiteMetricsSink:
    """SQLite sink for metric rows (idempotent upserts by date/category/metric)."""

    def __init__(self, db_url: str) -> None:
        if not db_url:
            raise ValueError("SQLite DB URL is required")
        if "sqlite+aiosqlite://" in db_url:
            db_url = db_url.replace("sqlite+aiosqlite://", "sqlite://", 1)
        if not db_url.startswith("sqlite"):
            raise ValueError(f"Unsupported SQLite DB URL: {db_url}")
        self.engine: Engine = create_engine(db_url, echo=False)

    def close(self) -> None:
        self.engine.dispose()

    def ensure_tables(self) -> None:
        stmts = [
            """
            CREATE TABLE IF NOT EXISTS metric_rows (
              date TEXT NOT NULL,
              category TEXT NOT NULL,
              metric TEXT NOT NULL,
              value TEXT NOT NULL,
              PRIMARY KEY (date, category, metric)
            )
            """,
            "CREATE INDEX IF NOT EXISTS idx_metric_rows_category ON metric_rows (category)",
        ]
        with self.engine.begin() as conn:
            for stmt in stmts:
                conn.execute(text(stmt))

    def write_rows(self, rows: Sequence[MetricRow]) -> None:
        if not rows:
            return
        stmt = text(
            """
            INSERT INTO metric_rows (date, category, metric, value)
            VALUES (:date, :category, :metric, :value)
            ON CONFLICT(date, category, metric) DO UPDATE SET
              value=excluded.value
            """
        )
        payload = [self._row(r) for r in rows]
        with self.engine.begin() as conn:
            conn.execute(stmt, payload)

    def read_rows(self, *, category: Optional[str] = None) -> List[MetricRow]:
        query = "SELECT date, category, metric, value FROM metric_rows"
        params = {}
        if category is not None:
            query += " WHERE category = :category"
            params["category"] = category
        query += " ORDER BY date, category, metric"
        with self.engine.connect() as conn:
            result = conn.execute(text(query), params)
            return [MetricRow(str(d), str(c), str(m), str(v)) for d, c, m, v in result]

    def _row(self, row: MetricRow) -> dict:
        data = asdict(row)
        return {
            "date": str(data["date"]),
            "category": str(data["category"]),
            "metric": str(data["metric"]),
            "value": _value_to_sqlite(data["value"]),
        }
