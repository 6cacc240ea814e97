from datetime import date, datetime

from recurrence import (
    expand_recurring_transactions,
    filter_transactions_with_recurring,
    format_local_date,
    original_id_of,
    projected_id,
)


def _monthly(id_: str, day: str, **extra) -> dict:
    record = {
        "id": id_,
        "date": day,
        "amount": 100,
        "type": "expense",
        "category": "Rent",
        "is_recurring": True,
        "recurring_frequency": "monthly",
    }
    record.update(extra)
    return record


def test_day_31_is_clamped_to_month_end():
    expanded = expand_recurring_transactions(
        [_monthly("t1", "2025-01-31")], date(2025, 4, 30)
    )
    assert [r["date"] for r in expanded] == [
        "2025-01-31",
        "2025-02-28",
        "2025-03-31",
        "2025-04-30",
    ]
    assert [r["id"] for r in expanded] == [
        "t1",
        "t1-2025-02",
        "t1-2025-03",
        "t1-2025-04",
    ]


def test_leap_year_february_gets_the_29th():
    expanded = expand_recurring_transactions(
        [_monthly("t1", "2024-01-31")], date(2024, 2, 29)
    )
    assert expanded[-1]["date"] == "2024-02-29"


def test_origin_instance_is_not_projected():
    first, second = expand_recurring_transactions(
        [_monthly("t1", "2025-01-15")], date(2025, 2, 20)
    )
    assert first["_is_projected"] is False
    assert first["id"] == "t1"
    assert first["_original_id"] == "t1"
    assert second["_is_projected"] is True
    assert second["_original_id"] == "t1"


def test_occurrence_after_horizon_is_dropped():
    expanded = expand_recurring_transactions(
        [_monthly("t1", "2025-01-31")], datetime(2025, 4, 10, 9, 0)
    )
    assert [r["date"] for r in expanded] == ["2025-01-31", "2025-02-28", "2025-03-31"]


def test_horizon_before_origin_yields_nothing():
    assert expand_recurring_transactions(
        [_monthly("t1", "2025-05-01")], date(2025, 4, 30)
    ) == []


def test_non_monthly_records_pass_through_unchanged():
    one_off = {"id": "x", "date": "2025-01-01", "amount": 5, "type": "expense"}
    weekly = _monthly("w", "2025-01-01", recurring_frequency="weekly")
    no_frequency = _monthly("n", "2025-01-01", recurring_frequency=None)
    records = [one_off, weekly, no_frequency]

    expanded = expand_recurring_transactions(records, date(2025, 6, 1))

    assert len(expanded) == 3
    assert all(a is b for a, b in zip(expanded, records))
    assert "_is_projected" not in expanded[0]


def test_expansion_does_not_mutate_input():
    record = _monthly("t1", "2025-01-10")
    snapshot = dict(record)
    expanded = expand_recurring_transactions([record], date(2025, 3, 31))
    expanded[1]["amount"] = 999
    assert record == snapshot


def test_projected_ids_are_stable_across_horizons():
    records = [_monthly("t1", "2025-01-10")]
    short = expand_recurring_transactions(records, date(2025, 3, 5))
    long = expand_recurring_transactions(records, date(2025, 6, 30))

    short_by_month = {r["date"][:7]: r["id"] for r in short}
    long_by_month = {r["date"][:7]: r["id"] for r in long}
    assert list(short_by_month) == ["2025-01", "2025-02", "2025-03"]
    for month, id_ in short_by_month.items():
        assert long_by_month[month] == id_
    assert len(set(long_by_month.values())) == len(long)
    assert projected_id("t1", 2025, 3) == "t1-2025-03"


def test_original_id_of_strips_projection_suffix():
    assert original_id_of("t1-2025-03") == "t1"
    assert original_id_of("9b2f6c1e-8f4d-4a57-9e0b-3f1d2c4b5a69-2025-12") == (
        "9b2f6c1e-8f4d-4a57-9e0b-3f1d2c4b5a69"
    )
    assert original_id_of("9b2f6c1e-8f4d-4a57-9e0b-3f1d2c4b5a69") is None
    assert original_id_of("t1-2025-13") is None


def test_last_month_includes_projection_past_now_day():
    records = [_monthly("t1", "2025-01-31")]
    result = filter_transactions_with_recurring(
        records, "last-month", datetime(2025, 4, 10)
    )
    assert [(r["id"], r["date"]) for r in result] == [("t1-2025-03", "2025-03-31")]


def test_this_month_stops_at_today():
    records = [_monthly("late", "2025-01-20"), _monthly("early", "2025-01-05")]
    result = filter_transactions_with_recurring(
        records, "this-month", datetime(2025, 4, 10)
    )
    assert [r["id"] for r in result] == ["early-2025-04"]


def test_unknown_period_expands_over_all_time():
    records = [
        _monthly("t1", "2025-01-15"),
        {"id": "x", "date": "2010-06-01", "amount": 1, "type": "income"},
    ]
    result = filter_transactions_with_recurring(records, "???", datetime(2025, 3, 20))
    assert [r["id"] for r in result] == ["t1", "t1-2025-02", "t1-2025-03", "x"]


def test_format_local_date_pads_fields():
    assert format_local_date(date(987, 3, 4)) == "0987-03-04"
