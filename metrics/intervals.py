from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable, List, Optional, Sequence

from metrics.utils import SECONDS_PER_DAY, SECONDS_PER_HOUR, parse_datetime
from models.work_items import HistoryEvent

StatePredicate = Callable[[Optional[str]], bool]

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def sorted_history(history: Sequence[HistoryEvent]) -> List[HistoryEvent]:
    """Chronological order; events with unparseable timestamps sort first."""
    return sorted(history, key=lambda e: parse_datetime(e.created_at) or _EPOCH)


def scan_state_intervals(
    history: Sequence[HistoryEvent],
    matches_state: StatePredicate,
    *,
    unit_seconds: float = SECONDS_PER_HOUR,
) -> List[float]:
    """
    Durations spent in the states selected by `matches_state`.

    A single optional entry time is tracked while scanning the sorted history:
    - an event whose destination matches opens an interval when none is open;
    - a later event whose source matches closes the open interval.

    Intervals still open at the end of history are dropped.
    Durations are expressed in `unit_seconds` (hours by default).
    """
    durations: List[float] = []
    entered_at: Optional[datetime] = None

    for event in sorted_history(history):
        occurred_at = parse_datetime(event.created_at)
        if occurred_at is None:
            continue

        if entered_at is None and matches_state(event.to_state_name):
            entered_at = occurred_at
        elif entered_at is not None and matches_state(event.from_state_name):
            durations.append((occurred_at - entered_at).total_seconds() / unit_seconds)
            entered_at = None

    return durations


def blocked_state(marker: str = "blocked") -> StatePredicate:
    def _matches(state_name: Optional[str]) -> bool:
        return bool(state_name) and marker in state_name.lower()

    return _matches


def pattern_state(pattern) -> StatePredicate:
    def _matches(state_name: Optional[str]) -> bool:
        return bool(state_name) and pattern.search(state_name) is not None

    return _matches


def blocked_hours(history: Sequence[HistoryEvent], marker: str = "blocked") -> List[float]:
    return scan_state_intervals(history, blocked_state(marker), unit_seconds=SECONDS_PER_HOUR)


def review_days(history: Sequence[HistoryEvent], pattern) -> List[float]:
    return scan_state_intervals(history, pattern_state(pattern), unit_seconds=SECONDS_PER_DAY)
