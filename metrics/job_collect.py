from __future__ import annotations

import logging
import os
from collections import Counter
from datetime import date
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from metrics.compute_bugs import compute_bug_metrics
from metrics.compute_cycles import compute_cycle_metrics
from metrics.compute_distribution import compute_distribution_metrics
from metrics.compute_flow import compute_flow_metrics
from metrics.compute_pull_requests import compute_github_metrics, compute_team_github_metrics
from metrics.compute_team import compute_team_metrics
from metrics.compute_timeseries import compute_ticket_activity, compute_timeseries_metrics
from metrics.config import DEFAULT_CONFIG, MetricsConfig
from metrics.schemas import MetricRow
from metrics.sinks.flat_file import CSVMetricsSink
from metrics.sinks.sqlite import SQLiteMetricsSink
from models.pull_requests import (
    PullRequest,
    Release,
    pull_requests_from_payloads,
    releases_from_payloads,
)
from models.work_items import Cycle, Issue, cycles_from_payloads, issues_from_payloads

logger = logging.getLogger(__name__)

IssueCalculator = Callable[..., List[MetricRow]]

# Issue-based calculators, in emission order.
ISSUE_CALCULATORS: Sequence[IssueCalculator] = (
    compute_flow_metrics,
    compute_bug_metrics,
    compute_distribution_metrics,
    compute_team_metrics,
    compute_ticket_activity,
    compute_timeseries_metrics,
)


def compute_all_metrics(
    *,
    issues: Sequence[Issue],
    cycles: Sequence[Cycle],
    today: date,
    pull_requests: Sequence[PullRequest] = (),
    releases: Sequence[Release] = (),
    team_pull_requests: Optional[Mapping[str, Sequence[PullRequest]]] = None,
    config: MetricsConfig = DEFAULT_CONFIG,
) -> List[MetricRow]:
    """
    Run every calculator over one snapshot and concatenate their rows.

    This function is pure: calculators read the same immutable snapshot and
    write disjoint categories.
    """
    rows: List[MetricRow] = []
    for calculator in ISSUE_CALCULATORS:
        produced = calculator(issues=issues, today=today, config=config)
        logger.debug("%s produced %d rows", calculator.__name__, len(produced))
        rows.extend(produced)

    cycle_rows = compute_cycle_metrics(cycles=cycles, today=today, config=config)
    logger.debug("compute_cycle_metrics produced %d rows", len(cycle_rows))
    rows.extend(cycle_rows)

    if pull_requests or releases:
        github_rows = compute_github_metrics(
            pull_requests=pull_requests, releases=releases, today=today, config=config
        )
        logger.debug("compute_github_metrics produced %d rows", len(github_rows))
        rows.extend(github_rows)
    if team_pull_requests:
        rows.extend(
            compute_team_github_metrics(
                pull_requests_by_team=team_pull_requests, today=today, config=config
            )
        )
    return rows


def log_metrics_summary(rows: Sequence[MetricRow]) -> None:
    by_category = category_counts(rows)
    logger.info("Metric rows by category: %s", dict(sorted(by_category.items())))
    headline = {
        (r.category, r.metric): r.value
        for r in rows
        if r.category in {"flow", "bugs", "cycle_metrics", "github"}
    }
    for (category, metric), value in sorted(headline.items()):
        logger.info("  %s.%s = %s", category, metric, value)


def run_collect_job(
    *,
    issue_payloads: Sequence[Mapping[str, Any]],
    cycle_payloads: Sequence[Mapping[str, Any]],
    pull_request_payloads: Sequence[Mapping[str, Any]] = (),
    release_payloads: Sequence[Mapping[str, Any]] = (),
    team_pull_request_payloads: Optional[Mapping[str, Sequence[Mapping[str, Any]]]] = None,
    today: Optional[date] = None,
    csv_path: Optional[str] = None,
    db_url: Optional[str] = None,
    sink: str = "auto",  # auto|csv|sqlite|both
    append: bool = False,
    config: MetricsConfig = DEFAULT_CONFIG,
) -> List[MetricRow]:
    """
    Compute metric rows from fetched payloads and persist them.

    Payloads are the raw issue, cycle, pull request and release dicts returned
    by the fetch layer; `team_pull_request_payloads` maps a GitHub team name to
    the PRs of its members.

    Destinations:
    - CSV: `csv_path` or `METRICS_CSV_PATH`
    - SQLite: `db_url` or `METRICS_DB_URL` (e.g. `sqlite:///metrics.db`)

    `sink='auto'` writes to every configured destination; at least one must
    be configured.
    """
    today = today or date.today()
    csv_path = csv_path or os.getenv("METRICS_CSV_PATH")
    db_url = db_url or os.getenv("METRICS_DB_URL")

    sink = (sink or "auto").strip().lower()
    if sink not in {"auto", "csv", "sqlite", "both"}:
        raise ValueError("sink must be one of: auto, csv, sqlite, both")
    want_csv = sink in {"csv", "both"} or (sink == "auto" and bool(csv_path))
    want_sqlite = sink in {"sqlite", "both"} or (sink == "auto" and bool(db_url))
    if want_csv and not csv_path:
        raise ValueError("CSV path is required (pass csv_path or set METRICS_CSV_PATH).")
    if want_sqlite and not db_url:
        raise ValueError("Database URI is required (pass db_url or set METRICS_DB_URL).")
    if not (want_csv or want_sqlite):
        raise ValueError("No metrics destination configured (set METRICS_CSV_PATH or METRICS_DB_URL).")

    issues = issues_from_payloads(issue_payloads)
    cycles = cycles_from_payloads(cycle_payloads)
    pull_requests = pull_requests_from_payloads(pull_request_payloads)
    releases = releases_from_payloads(release_payloads)
    team_pull_requests = {
        team: pull_requests_from_payloads(payloads)
        for team, payloads in (team_pull_request_payloads or {}).items()
    }
    logger.info(
        "Collect job: today=%s issues=%d cycles=%d pull_requests=%d releases=%d sink=%s",
        today.isoformat(),
        len(issues),
        len(cycles),
        len(pull_requests),
        len(releases),
        sink,
    )

    rows = compute_all_metrics(
        issues=issues,
        cycles=cycles,
        today=today,
        pull_requests=pull_requests,
        releases=releases,
        team_pull_requests=team_pull_requests,
        config=config,
    )
    log_metrics_summary(rows)

    if want_csv:
        csv_sink = CSVMetricsSink(csv_path)
        if append:
            csv_sink.append_rows(rows)
        else:
            csv_sink.write_rows(rows)

    if want_sqlite:
        sqlite_sink = SQLiteMetricsSink(db_url)
        try:
            logger.info("Ensuring SQLite tables")
            sqlite_sink.ensure_tables()
            sqlite_sink.write_rows(rows)
            logger.info("Wrote %d metric rows to SQLite", len(rows))
        finally:
            sqlite_sink.close()

    return rows


def category_counts(rows: Sequence[MetricRow]) -> Dict[str, int]:
    return dict(Counter(r.category for r in rows))
