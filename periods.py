import calendar
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from enum import Enum
from typing import Any, Mapping, Sequence, TypeVar, Union

R = TypeVar("R", bound=Mapping[str, Any])

ALL_TIME_START = datetime(2000, 1, 1)


class PeriodName(str, Enum):
    this_month = "this-month"
    last_month = "last-month"
    this_year = "this-year"
    all_time = "all-time"


@dataclass(frozen=True)
class Period:
    slug: PeriodName
    start: datetime
    end: datetime


def parse_period(value: Union[PeriodName, str, None]) -> PeriodName:
    """Map a query-string value onto a period; anything unknown is all-time."""
    if isinstance(value, PeriodName):
        return value
    try:
        return PeriodName(value)
    except ValueError:
        return PeriodName.all_time


def _as_datetime(value: Union[date, datetime]) -> datetime:
    if isinstance(value, datetime):
        return value
    return datetime.combine(value, time.min)


def _end_of_day(day: date) -> datetime:
    return datetime.combine(day, time.max)


def resolve_boundary(
    period: Union[PeriodName, str, None], now: Union[date, datetime]
) -> Period:
    slug = parse_period(period)
    now = _as_datetime(now)
    today_end = _end_of_day(now.date())

    if slug == PeriodName.this_month:
        return Period(slug, datetime(now.year, now.month, 1), today_end)
    if slug == PeriodName.last_month:
        first_this = date(now.year, now.month, 1)
        last_month_end = first_this - timedelta(days=1)
        return Period(
            slug,
            datetime(last_month_end.year, last_month_end.month, 1),
            _end_of_day(last_month_end),
        )
    if slug == PeriodName.this_year:
        return Period(slug, datetime(now.year, 1, 1), today_end)
    return Period(PeriodName.all_time, ALL_TIME_START, today_end)


def period_label(
    period: Union[PeriodName, str, None], now: Union[date, datetime]
) -> str:
    boundary = resolve_boundary(period, now)
    if boundary.slug in (PeriodName.this_month, PeriodName.last_month):
        return f"{calendar.month_name[boundary.start.month]} {boundary.start.year}"
    if boundary.slug == PeriodName.this_year:
        return str(boundary.start.year)
    return "All Time"


def record_datetime(value: Union[date, datetime, str]) -> datetime:
    """Read a record's ``date`` as a naive local datetime.

    Plain ``YYYY-MM-DD`` strings land on local midnight of that calendar day;
    they are never interpreted as UTC. An explicit offset is dropped and the
    wall-clock fields kept. Malformed strings raise ``ValueError``.
    """
    if isinstance(value, str):
        value = datetime.fromisoformat(value.strip())
    return _as_datetime(value).replace(tzinfo=None)


def filter_by_period(
    records: Sequence[R],
    period: Union[PeriodName, str, None],
    now: Union[date, datetime],
) -> list[R]:
    boundary = resolve_boundary(period, now)
    return [
        record
        for record in records
        if boundary.start <= record_datetime(record["date"]) <= boundary.end
    ]
