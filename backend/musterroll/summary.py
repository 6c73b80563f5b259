from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from typing import Callable, Sequence

from .client import AttendanceApiClient
from .errors import ApiError
from .models import PeriodDay, Shift, SummaryDay

logger = logging.getLogger(__name__)

DayLoader = Callable[[date], SummaryDay]


@dataclass(frozen=True)
class DayResult:
    day: date
    value: SummaryDay | None = None
    error: str | None = None

    def to_summary(self) -> SummaryDay:
        if self.value is not None:
            return self.value
        return SummaryDay(date=self.day, error=self.error)


def load_day(loader: DayLoader, day: date) -> DayResult:
    try:
        return DayResult(day=day, value=loader(day))
    except ApiError as exc:
        logger.warning("Summary for %s failed, reporting zero: %s", day.isoformat(), exc)
        return DayResult(day=day, error=str(exc))


def build_summary(loader: DayLoader, period_days: Sequence[PeriodDay]) -> list[SummaryDay]:
    """Load one summary row per day, in order, one day at a time.

    A failing day never aborts the report; it becomes an all-zero row.
    """
    return [load_day(loader, period_day.date).to_summary() for period_day in period_days]


def global_day_loader(client: AttendanceApiClient) -> DayLoader:
    def _load(day: date) -> SummaryDay:
        counts: dict[str, int] = {}
        failed: list[str] = []
        for shift in Shift:
            try:
                counts[shift.value] = client.fetch_present_count(day=day, shift=shift.value)
            except ApiError as exc:
                logger.warning("Present count for %s %s unavailable: %s", day.isoformat(), shift.value, exc)
                counts[shift.value] = 0
                failed.append(shift.value)
        return SummaryDay(
            date=day,
            morning=counts[Shift.MORNING.value],
            evening=counts[Shift.EVENING.value],
            night=counts[Shift.NIGHT.value],
            error=f"unavailable shifts: {', '.join(failed)}" if failed else None,
        )

    return _load


def site_day_loader(client: AttendanceApiClient, site_id: str) -> DayLoader:
    def _load(day: date) -> SummaryDay:
        records = client.fetch_site_attendance(site_id, start_date=day, end_date=day)
        shifts = [(record.shift or "").lower() for record in records]
        return SummaryDay(
            date=day,
            morning=shifts.count(Shift.MORNING.value),
            evening=shifts.count(Shift.EVENING.value),
            night=shifts.count(Shift.NIGHT.value),
        )

    return _load


def summary_totals(rows: Sequence[SummaryDay]) -> dict[str, int]:
    return {
        "morning": sum(row.morning for row in rows),
        "evening": sum(row.evening for row in rows),
        "night": sum(row.night for row in rows),
        "total": sum(row.total for row in rows),
    }
