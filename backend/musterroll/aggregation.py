from __future__ import annotations

import logging
from datetime import datetime
from typing import Iterable, Mapping, Sequence

from .models import (
    CELL_ABSENT,
    CELL_PRESENT,
    CELL_WEEK_OFF,
    NOT_AVAILABLE,
    UNKNOWN_NAME,
    AttendanceRecord,
    AttendanceStatus,
    DayCell,
    EmployeeAttendanceRow,
    EmployeeSummary,
    PeriodDay,
    PeriodTotals,
    Shift,
)

logger = logging.getLogger(__name__)

# Nominal shift start hours; a step-in is late when its clock hour is past these.
LATE_CUTOFF_HOURS = {
    Shift.MORNING.value: 7,
    Shift.EVENING.value: 15,
    Shift.NIGHT.value: 23,
}

STATUS_FILTERS = ("All", "Present", "Absent", "Late", "Working")


def format_time_12h(value: datetime | None) -> str:
    return value.strftime("%I:%M %p") if value else ""


def _roster_lookup(employees: Iterable[EmployeeSummary]) -> dict[str, EmployeeSummary]:
    return {employee.id: employee for employee in employees}


def _first_text(*values: str | None, fallback: str) -> str:
    for value in values:
        if value:
            return value
    return fallback


def _new_row(record: AttendanceRecord, employee_id: str, roster: Mapping[str, EmployeeSummary]) -> EmployeeAttendanceRow:
    embedded = record.embedded
    known = roster.get(employee_id)
    return EmployeeAttendanceRow(
        employee_id=employee_id,
        name=_first_text(embedded and embedded.name, known and known.name, fallback=UNKNOWN_NAME),
        designation=_first_text(
            embedded and embedded.designation,
            known and known.designation,
            fallback=NOT_AVAILABLE,
        ),
        shift=_first_text(
            embedded and embedded.shift,
            known and known.shift,
            record.shift,
            fallback=NOT_AVAILABLE,
        ),
    )


def _roster_row(employee: EmployeeSummary) -> EmployeeAttendanceRow:
    return EmployeeAttendanceRow(
        employee_id=employee.id,
        name=employee.name or UNKNOWN_NAME,
        designation=employee.designation or NOT_AVAILABLE,
        shift=employee.shift or NOT_AVAILABLE,
    )


def _overlay_records(
    rows: dict[str, EmployeeAttendanceRow],
    records: Iterable[AttendanceRecord],
    roster: Mapping[str, EmployeeSummary],
) -> int:
    duplicates = 0
    for record in records:
        employee_id = record.employee_id
        if not employee_id:
            logger.warning("Skipping attendance record %s without employee reference", record.record_id or "<no id>")
            continue

        row = rows.get(employee_id)
        if row is None:
            row = _new_row(record, employee_id, roster)
            rows[employee_id] = row

        if record.step_in is None:
            continue

        day = record.step_in.day
        if day in row.attendance:
            # Last record wins, same as the source ordering; only flag it.
            duplicates += 1
            logger.warning(
                "Duplicate attendance for employee %s on day %s; keeping the later record",
                employee_id,
                day,
            )
        row.attendance[day] = DayCell(
            status=CELL_PRESENT,
            step_in_time=format_time_12h(record.step_in),
            step_out_time=format_time_12h(record.step_out),
        )
    return duplicates


def aggregate_sparse_with_duplicates(
    records: Sequence[AttendanceRecord],
    employees: Sequence[EmployeeSummary],
) -> tuple[list[EmployeeAttendanceRow], int]:
    rows: dict[str, EmployeeAttendanceRow] = {}
    duplicates = _overlay_records(rows, records, _roster_lookup(employees))
    return list(rows.values()), duplicates


def aggregate_dense_with_duplicates(
    records: Sequence[AttendanceRecord],
    employees: Sequence[EmployeeSummary],
    period_days: Sequence[PeriodDay],
) -> tuple[list[EmployeeAttendanceRow], int]:
    rows: dict[str, EmployeeAttendanceRow] = {}
    for employee in employees:
        rows[employee.id] = _roster_row(employee)

    duplicates = _overlay_records(rows, records, _roster_lookup(employees))

    for row in rows.values():
        for period_day in period_days:
            if period_day.day not in row.attendance:
                row.attendance[period_day.day] = DayCell(status=CELL_ABSENT)
    return list(rows.values()), duplicates


def aggregate_sparse(
    records: Sequence[AttendanceRecord],
    employees: Sequence[EmployeeSummary],
) -> list[EmployeeAttendanceRow]:
    return aggregate_sparse_with_duplicates(records, employees)[0]


def aggregate_dense(
    records: Sequence[AttendanceRecord],
    employees: Sequence[EmployeeSummary],
    period_days: Sequence[PeriodDay],
) -> list[EmployeeAttendanceRow]:
    return aggregate_dense_with_duplicates(records, employees, period_days)[0]


def aggregate(
    records: Sequence[AttendanceRecord],
    employees: Sequence[EmployeeSummary],
    *,
    dense: bool = False,
    period_days: Sequence[PeriodDay] | None = None,
) -> list[EmployeeAttendanceRow]:
    if dense:
        if period_days is None:
            raise ValueError("period_days is required for dense aggregation")
        return aggregate_dense(records, employees, period_days)
    return aggregate_sparse(records, employees)


def filter_rows(
    rows: Sequence[EmployeeAttendanceRow],
    query: str | None,
    *,
    match_shift: bool = False,
) -> list[EmployeeAttendanceRow]:
    needle = (query or "").strip().lower()
    if not needle:
        return list(rows)
    return [
        row
        for row in rows
        if needle in row.name.lower() or (match_shift and needle in row.shift.lower())
    ]


def compute_totals(rows: Sequence[EmployeeAttendanceRow], period_days: Sequence[PeriodDay]) -> PeriodTotals:
    days = [period_day.day for period_day in period_days]
    day_totals = {day: sum(1 for row in rows if row.status_on(day) == CELL_PRESENT) for day in days}
    row_totals = {
        index: sum(1 for day in set(days) if row.status_on(day) == CELL_PRESENT)
        for index, row in enumerate(rows)
    }
    return PeriodTotals(
        day_totals=day_totals,
        row_totals=row_totals,
        grand_total=sum(row_totals.values()),
    )


def employee_day_counts(row: EmployeeAttendanceRow, period_days: Sequence[PeriodDay]) -> dict[str, int]:
    counts = {"present": 0, "absent": 0, "week_off": 0}
    for period_day in period_days:
        code = row.status_on(period_day.day)
        if code == CELL_PRESENT:
            counts["present"] += 1
        elif code == CELL_ABSENT:
            counts["absent"] += 1
        elif code == CELL_WEEK_OFF:
            counts["week_off"] += 1
    return counts


def is_late(step_in: datetime | None, shift: str | None) -> bool:
    """Clock-hour lateness check; night shifts crossing midnight are not handled."""
    if step_in is None:
        return False
    cutoff = LATE_CUTOFF_HOURS.get((shift or "").lower())
    if cutoff is None:
        return False
    return step_in.hour > cutoff


def classify_record(record: AttendanceRecord) -> AttendanceStatus:
    if record.step_in is None:
        return AttendanceStatus.ABSENT
    if record.step_out is None:
        return AttendanceStatus.WORKING
    if is_late(record.step_in, record.shift):
        return AttendanceStatus.LATE
    return AttendanceStatus.PRESENT


def matches_status_filter(record: AttendanceRecord, status_filter: str | None) -> bool:
    if not status_filter or status_filter == "All":
        return True
    if status_filter == "Present":
        return record.step_in is not None and record.step_out is not None
    if status_filter == "Absent":
        return record.step_in is None
    if status_filter == "Late":
        return is_late(record.step_in, record.shift)
    if status_filter == "Working":
        return record.step_in is not None and record.step_out is None
    return True


def count_statuses(records: Sequence[AttendanceRecord]) -> dict[str, int]:
    counts = {"total": len(records), "present": 0, "absent": 0, "late": 0, "working": 0}
    for record in records:
        status = classify_record(record)
        if status in (AttendanceStatus.PRESENT, AttendanceStatus.LATE):
            counts["present"] += 1
            if status is AttendanceStatus.LATE:
                counts["late"] += 1
        elif status is AttendanceStatus.ABSENT:
            counts["absent"] += 1
        else:
            counts["working"] += 1
    return counts
