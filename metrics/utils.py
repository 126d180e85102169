from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional, Sequence, Union

DateLike = Union[str, date, datetime, None]

SECONDS_PER_HOUR = 3600.0
SECONDS_PER_DAY = 86400.0


def _to_utc(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def parse_datetime(value: DateLike) -> Optional[datetime]:
    """
    Parse an ISO-8601 timestamp into an aware UTC datetime.

    Returns None for missing or unparseable input so callers can skip the one
    derivation that needed it. Plain dates are treated as UTC midnight.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return _to_utc(value)
    if isinstance(value, date):
        return datetime.combine(value, time.min, tzinfo=timezone.utc)
    text = str(value).strip()
    if not text:
        return None
    if text.endswith("Z") or text.endswith("z"):
        text = text[:-1] + "+00:00"
    try:
        return _to_utc(datetime.fromisoformat(text))
    except ValueError:
        return None


def parse_date(value: DateLike) -> Optional[date]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return _to_utc(value).date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    if len(text) >= 10:
        try:
            return date.fromisoformat(text[:10])
        except ValueError:
            pass
    parsed = parse_datetime(text)
    return parsed.date() if parsed else None


def start_of_day(day: date) -> datetime:
    return datetime.combine(day, time.min, tzinfo=timezone.utc)


def days_between(start: DateLike, end: DateLike) -> Optional[float]:
    start_dt = parse_datetime(start)
    end_dt = parse_datetime(end)
    if start_dt is None or end_dt is None:
        return None
    return (end_dt - start_dt).total_seconds() / SECONDS_PER_DAY


def hours_between(start: DateLike, end: DateLike) -> Optional[float]:
    start_dt = parse_datetime(start)
    end_dt = parse_datetime(end)
    if start_dt is None or end_dt is None:
        return None
    return (end_dt - start_dt).total_seconds() / SECONDS_PER_HOUR


def monday_of_week(day: Union[str, date]) -> date:
    """Monday on or before `day` (Sundays belong to the week that ends on them)."""
    if isinstance(day, str):
        parsed = parse_date(day)
        if parsed is None:
            raise ValueError(f"Invalid date '{day}', expected YYYY-MM-DD")
        day = parsed
    if isinstance(day, datetime):
        day = day.date()
    return day - timedelta(days=day.weekday())


def format_week_label(day: date) -> str:
    return day.strftime("%b %d")


def round_half_up(value: float, digits: int = 0) -> float:
    """Round half away from zero (banker's rounding is not wanted for reports)."""
    if not value:
        return 0.0
    quantum = Decimal(1).scaleb(-digits)
    return float(Decimal(repr(float(value))).quantize(quantum, rounding=ROUND_HALF_UP))


def mean(values: Sequence[float]) -> float:
    if not values:
        return 0.0
    return float(sum(values)) / float(len(values))


def safe_average(values: Sequence[float], precision: int = 2) -> float:
    if not values:
        return 0
    return round_half_up(mean(values), precision)


def percentage(numerator: float, denominator: float, precision: int = 1) -> float:
    if not denominator:
        return 0
    return round_half_up((float(numerator) / float(denominator)) * 100.0, precision)


def whole_number(value: float) -> Union[int, float]:
    """`value` as an int when it has no fractional part."""
    return int(value) if float(value).is_integer() else value
