from __future__ import annotations

import calendar
from datetime import date, datetime, timedelta

from fastapi import HTTPException, status

from .models import PeriodDay


def parse_date(date_value: str, *, field: str = "date") -> date:
    try:
        return datetime.strptime(date_value.strip(), "%Y-%m-%d").date()
    except (AttributeError, ValueError) as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"{field} must be in YYYY-MM-DD format",
        ) from exc


def _parse_month_year(month_value: str | int, year_value: str | int) -> tuple[int, int]:
    try:
        month_int = int(month_value)
        year_int = int(year_value)
    except (TypeError, ValueError) as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="month and year must be numeric (MM, YYYY)",
        ) from exc

    if not 1 <= month_int <= 12:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="month must be between 01 and 12",
        )
    if year_int < 1900 or year_int > 2100:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="year is out of accepted range",
        )
    return month_int, year_int


def month_bounds(month_value: str | int, year_value: str | int) -> tuple[date, date]:
    month_int, year_int = _parse_month_year(month_value, year_value)
    last_day = calendar.monthrange(year_int, month_int)[1]
    return date(year_int, month_int, 1), date(year_int, month_int, last_day)


def enumerate_period(start: date, end: date) -> list[PeriodDay]:
    days: list[PeriodDay] = []
    cursor = start
    while cursor <= end:
        days.append(PeriodDay(day=cursor.day, date=cursor))
        cursor += timedelta(days=1)
    return days


def _repeats_day_of_month(start: date, end: date) -> bool:
    # Grid columns are keyed by day of month.
    if (end - start).days >= 31:
        return True
    days = [item.day for item in enumerate_period(start, end)]
    return len(days) != len(set(days))


def resolve_period(
    *,
    month: str | int | None = None,
    year: str | int | None = None,
    from_date: str | None = None,
    to_date: str | None = None,
) -> tuple[date, date]:
    """Resolve the report window; explicit dates win over month/year.

    A missing explicit end falls back to the matching month bound. An inverted
    range is rejected instead of producing an empty report, and so is one
    long enough to repeat a day of the month.
    """
    start: date | None = parse_date(from_date, field="from_date") if from_date else None
    end: date | None = parse_date(to_date, field="to_date") if to_date else None

    if start is None or end is None:
        if month is None or year is None:
            if start is None and end is None:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail="either month/year or from_date/to_date is required",
                )
            start = start or end
            end = end or start
        else:
            month_start, month_end = month_bounds(month, year)
            start = start or month_start
            end = end or month_end

    if end < start:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="to_date must not be earlier than from_date",
        )
    if _repeats_day_of_month(start, end):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="from_date and to_date must not repeat a day of the month (at most one month long)",
        )
    return start, end


def period_label(start: date, end: date) -> str:
    last_day = calendar.monthrange(start.year, start.month)[1]
    if start.day == 1 and end == date(start.year, start.month, last_day):
        return start.strftime("%B %Y")
    return f"{start.strftime('%d-%m-%Y')} to {end.strftime('%d-%m-%Y')}"
