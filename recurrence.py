import re
from calendar import monthrange
from datetime import date, datetime
from typing import Any, Iterator, Mapping, Optional, Sequence, Union

from periods import PeriodName, filter_by_period, record_datetime, resolve_boundary

MONTHLY = "monthly"

_PROJECTED_ID = re.compile(r"^(?P<original>.+)-(?P<year>\d{4})-(?P<month>\d{2})$")


def days_in_month(year: int, month: int) -> int:
    return monthrange(year, month)[1]


def format_local_date(value: date) -> str:
    # built from the calendar fields, never via a UTC conversion
    return f"{value.year:04d}-{value.month:02d}-{value.day:02d}"


def projected_id(original_id: Any, year: int, month: int) -> str:
    return f"{original_id}-{year}-{month:02d}"


def original_id_of(instance_id: str) -> Optional[str]:
    """Strip a projected-instance suffix; ``None`` when the id carries none."""
    match = _PROJECTED_ID.match(instance_id)
    if match is None or not 1 <= int(match.group("month")) <= 12:
        return None
    return match.group("original")


def is_monthly_recurring(record: Mapping[str, Any]) -> bool:
    return bool(record.get("is_recurring")) and (
        record.get("recurring_frequency") == MONTHLY
    )


def _iter_months(first: date, last: date) -> Iterator[tuple[int, int]]:
    index = first.year * 12 + first.month - 1
    last_index = last.year * 12 + last.month - 1
    while index <= last_index:
        yield index // 12, index % 12 + 1
        index += 1


def _horizon_date(horizon: Union[date, datetime]) -> date:
    if isinstance(horizon, datetime):
        return horizon.date()
    return horizon


def expand_record(
    record: Mapping[str, Any], horizon: Union[date, datetime]
) -> list[dict[str, Any]]:
    """Expand one monthly-recurring record into an instance per month.

    Months run from the record's own month through the horizon's month. The
    day of month is clamped to the month length, so a record on the 31st lands
    on Feb 28 (or 29). Instances dated after the horizon are dropped, and a
    horizon that precedes the record's month yields nothing.
    """
    original_id = record["id"]
    original_date = record_datetime(record["date"]).date()
    limit = _horizon_date(horizon)
    instances: list[dict[str, Any]] = []

    for year, month in _iter_months(original_date, limit):
        day = min(original_date.day, days_in_month(year, month))
        occurrence = date(year, month, day)
        if occurrence > limit:
            continue
        is_projected = occurrence != original_date
        instance = dict(record)
        instance["date"] = format_local_date(occurrence)
        instance["id"] = (
            projected_id(original_id, year, month) if is_projected else original_id
        )
        instance["_is_projected"] = is_projected
        instance["_original_id"] = original_id
        instances.append(instance)
    return instances


def expand_recurring_transactions(
    records: Sequence[Mapping[str, Any]], horizon: Union[date, datetime]
) -> list[Mapping[str, Any]]:
    expanded: list[Mapping[str, Any]] = []
    for record in records:
        if is_monthly_recurring(record):
            expanded.extend(expand_record(record, horizon))
        else:
            expanded.append(record)
    return expanded


def filter_transactions_with_recurring(
    records: Sequence[Mapping[str, Any]],
    period: Union[PeriodName, str, None],
    now: Union[date, datetime],
) -> list[Mapping[str, Any]]:
    # horizon is the period's end, not now
    boundary = resolve_boundary(period, now)
    expanded = expand_recurring_transactions(records, boundary.end)
    return filter_by_period(expanded, boundary.slug, now)
