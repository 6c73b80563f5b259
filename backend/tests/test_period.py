from __future__ import annotations

from datetime import date

import pytest
from fastapi import HTTPException

from musterroll.period import enumerate_period, month_bounds, period_label, resolve_period


def test_enumerate_period_covers_inclusive_range():
    days = enumerate_period(date(2026, 1, 30), date(2026, 2, 2))

    assert [item.day for item in days] == [30, 31, 1, 2]
    assert days[0].date == date(2026, 1, 30)
    assert days[-1].date == date(2026, 2, 2)


def test_enumerate_period_single_day_and_inverted():
    assert len(enumerate_period(date(2026, 3, 4), date(2026, 3, 4))) == 1
    assert enumerate_period(date(2026, 3, 5), date(2026, 3, 4)) == []


def test_enumerate_period_leap_february():
    assert len(enumerate_period(*month_bounds("02", "2024"))) == 29
    assert len(enumerate_period(*month_bounds(2, 2026))) == 28


def test_resolve_period_from_month_and_year():
    assert resolve_period(month="01", year="2026") == (date(2026, 1, 1), date(2026, 1, 31))


def test_resolve_period_explicit_dates_win():
    start, end = resolve_period(month="01", year="2026", from_date="2026-02-03", to_date="2026-02-10")

    assert (start, end) == (date(2026, 2, 3), date(2026, 2, 10))


def test_resolve_period_fills_missing_end_from_month():
    assert resolve_period(month="01", year="2026", from_date="2026-01-20") == (date(2026, 1, 20), date(2026, 1, 31))


def test_resolve_period_rejects_inverted_range():
    with pytest.raises(HTTPException) as excinfo:
        resolve_period(from_date="2026-01-10", to_date="2026-01-01")

    assert excinfo.value.status_code == 400


@pytest.mark.parametrize(
    "kwargs",
    [
        {},
        {"month": "13", "year": "2026"},
        {"month": "ab", "year": "2026"},
        {"from_date": "01/02/2026"},
    ],
)
def test_resolve_period_rejects_bad_input(kwargs):
    with pytest.raises(HTTPException) as excinfo:
        resolve_period(**kwargs)

    assert excinfo.value.status_code == 400


def test_period_label_full_month_and_custom_range():
    assert period_label(date(2026, 1, 1), date(2026, 1, 31)) == "January 2026"
    assert period_label(date(2026, 1, 5), date(2026, 1, 9)) == "05-01-2026 to 09-01-2026"


@pytest.mark.parametrize(
    ("from_date", "to_date"),
    [
        ("2026-01-15", "2026-02-15"),
        ("2026-01-15", "2026-02-20"),
        ("2025-01-01", "2026-12-31"),
    ],
)
def test_resolve_period_rejects_ranges_repeating_a_day_of_month(from_date, to_date):
    with pytest.raises(HTTPException) as excinfo:
        resolve_period(from_date=from_date, to_date=to_date)

    assert excinfo.value.status_code == 400


def test_resolve_period_accepts_a_range_across_month_end_without_repeats():
    start, end = resolve_period(from_date="2026-01-15", to_date="2026-02-14")

    assert [item.day for item in enumerate_period(start, end)][:2] == [15, 16]
    assert len(enumerate_period(start, end)) == 31
