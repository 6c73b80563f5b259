from __future__ import annotations

import logging
import math
import re
from datetime import date, datetime
from typing import Any, Dict, Sequence

from fastapi import HTTPException, status

from .aggregation import (
    STATUS_FILTERS,
    aggregate_dense_with_duplicates,
    aggregate_sparse_with_duplicates,
    classify_record,
    compute_totals,
    count_statuses,
    employee_day_counts,
    filter_rows,
    matches_status_filter,
)
from .client import AttendanceApiClient
from .config import settings
from .errors import ApiError
from .models import (
    NO_RECORD,
    NOT_AVAILABLE,
    UNKNOWN_NAME,
    AttendanceRecord,
    EmployeeAttendanceRow,
    EmployeeSummary,
    PeriodDay,
    PeriodTotals,
    SessionContext,
    SummaryDay,
    report_zone,
)
from .period import enumerate_period, parse_date, period_label, resolve_period
from .summary import build_summary, global_day_loader, site_day_loader, summary_totals

logger = logging.getLogger(__name__)

MUSTER_FIXED_COLUMNS = ("SR", "NAME", "DESIGNATION", "SHIFT")
ATTENDANCE_COLUMNS = ("Employee", "Manager", "Shift", "Step In", "Step Out", "Duration", "Location", "Status")
SUMMARY_COLUMNS = ("Date", "Morning Shift", "Evening Shift", "Night Shift", "Total")
SHIFT_LABELS = {
    "morning": "Morning (7 AM - 3 PM)",
    "evening": "Evening (3 PM - 11 PM)",
    "night": "Night (11 PM - 7 AM)",
}
DEFAULT_PAGE_SIZE = 10
MAX_SUMMARY_DAYS = 366
MAX_PAGE_SIZE = 200

_UNSAFE_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


def resolve_site_id(context: SessionContext, site_id: str) -> str:
    restricted = context.restricted_site_id
    if restricted and restricted != site_id:
        logger.info("Read-only admin pinned to site %s requested site %s", restricted, site_id)
        return restricted
    return site_id


def _fetch_site_info(client: AttendanceApiClient, site_id: str) -> dict[str, Any]:
    try:
        site = client.fetch_site(site_id)
    except ApiError as exc:
        logger.warning("Could not load site %s: %s", site_id, exc)
        site = {}
    return {
        "id": site_id,
        "name": str(site.get("name") or "Site"),
        "location": str(site.get("location") or ""),
    }


def _fetch_site_roster(client: AttendanceApiClient, site_id: str) -> list[EmployeeSummary]:
    try:
        roster = client.fetch_site_employees(site_id)
    except ApiError as exc:
        logger.warning("Could not load roster for site %s, continuing without it: %s", site_id, exc)
        return []
    logger.info("Fetched %s employees for site %s muster roll", len(roster), site_id)
    return roster


def _serialize_period(start: date, end: date, period_days: Sequence[PeriodDay]) -> dict[str, Any]:
    return {
        "from": start.isoformat(),
        "to": end.isoformat(),
        "label": period_label(start, end),
        "year": f"{start.year:04d}",
        "month": f"{start.month:02d}",
        "days": [{"day": item.day, "date": item.date.isoformat()} for item in period_days],
    }


def build_table(
    rows: Sequence[EmployeeAttendanceRow],
    period_days: Sequence[PeriodDay],
    totals: PeriodTotals,
) -> dict[str, Any]:
    days = [item.day for item in period_days]
    table_rows: list[dict[str, Any]] = []
    for index, row in enumerate(rows):
        table_rows.append(
            {
                "sr": index + 1,
                "employee_id": row.employee_id,
                "name": row.name,
                "designation": row.designation,
                "shift": row.shift,
                "attendance": {
                    day: row.attendance[day].as_dict() for day in days if day in row.attendance
                },
                "total": totals.row_totals.get(index, 0),
                "counts": employee_day_counts(row, period_days),
            }
        )
    return {
        "columns": [*MUSTER_FIXED_COLUMNS, *[str(day) for day in days], "TOTAL"],
        "rows": table_rows,
        "total_row": {
            "label": "TOTAL",
            "days": {day: totals.day_totals.get(day, 0) for day in days},
            "total": totals.grand_total,
        },
    }


def day_cell_code(row: dict[str, Any], day: int) -> str:
    cell = row.get("attendance", {}).get(day)
    if cell and cell.get("status") == "P":
        return "P"
    return NO_RECORD


def _muster_report(
    *,
    scope: str,
    rows: list[EmployeeAttendanceRow],
    duplicates: int,
    roster_size: int,
    start: date,
    end: date,
    search: str | None,
    match_shift: bool,
    site: dict[str, Any] | None,
) -> Dict[str, Any]:
    period_days = enumerate_period(start, end)
    all_totals = compute_totals(rows, period_days)
    visible = filter_rows(rows, search, match_shift=match_shift)
    totals = compute_totals(visible, period_days)

    report = {
        "scope": scope,
        "site": site,
        "period": _serialize_period(start, end, period_days),
        "search": (search or "").strip(),
        **build_table(visible, period_days, totals),
        "summary": {
            "total_employees": roster_size,
            "total_present_days": all_totals.grand_total,
            "selected_period": period_label(start, end),
            "duplicate_cells": duplicates,
        },
    }
    return report


def fetch_muster_roll(
    client: AttendanceApiClient,
    *,
    month: str | None = None,
    year: str | None = None,
    from_date: str | None = None,
    to_date: str | None = None,
    search: str | None = None,
) -> Dict[str, Any]:
    start, end = resolve_period(month=month, year=year, from_date=from_date, to_date=to_date)
    employees = client.fetch_employees()
    records = client.fetch_attendance(start_date=start, end_date=end)
    rows, duplicates = aggregate_sparse_with_duplicates(records, employees)
    logger.info("Muster roll %s..%s: %s records, %s rows", start, end, len(records), len(rows))
    return _muster_report(
        scope="global",
        rows=rows,
        duplicates=duplicates,
        roster_size=len(employees),
        start=start,
        end=end,
        search=search,
        match_shift=False,
        site=None,
    )


def fetch_site_muster_roll(
    client: AttendanceApiClient,
    site_id: str,
    *,
    month: str | None = None,
    year: str | None = None,
    from_date: str | None = None,
    to_date: str | None = None,
    search: str | None = None,
) -> Dict[str, Any]:
    start, end = resolve_period(month=month, year=year, from_date=from_date, to_date=to_date)
    site = _fetch_site_info(client, site_id)
    roster = _fetch_site_roster(client, site_id)
    records = client.fetch_site_attendance(site_id, start_date=start, end_date=end)
    rows, duplicates = aggregate_dense_with_duplicates(records, roster, enumerate_period(start, end))
    logger.info("Site %s muster roll %s..%s: %s records, %s rows", site_id, start, end, len(records), len(rows))
    return _muster_report(
        scope="site",
        rows=rows,
        duplicates=duplicates,
        roster_size=len(roster),
        start=start,
        end=end,
        search=search,
        match_shift=True,
        site=site,
    )


def _summary_date_range(from_date: str | None, to_date: str | None) -> tuple[date, date]:
    today = datetime.now(report_zone()).date()
    start = parse_date(from_date, field="from_date") if from_date else today
    end = parse_date(to_date, field="to_date") if to_date else start
    if end < start:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="to_date must not be earlier than from_date",
        )
    if (end - start).days + 1 > MAX_SUMMARY_DAYS:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"summary range must not exceed {MAX_SUMMARY_DAYS} days",
        )
    return start, end


def _serialize_summary_day(row: SummaryDay) -> dict[str, Any]:
    return {
        "date": row.date.isoformat(),
        "display_date": row.date.strftime("%d/%m/%Y"),
        "morning": row.morning,
        "evening": row.evening,
        "night": row.night,
        "total": row.total,
        "error": row.error,
    }


def _summary_report(
    *,
    scope: str,
    rows: Sequence[SummaryDay],
    start: date,
    end: date,
    site: dict[str, Any] | None,
    page: int,
    page_size: int,
) -> Dict[str, Any]:
    serialized = [_serialize_summary_day(row) for row in rows]
    return {
        "scope": scope,
        "site": site,
        "period": {
            "from": start.isoformat(),
            "to": end.isoformat(),
            "label": f"{start.strftime('%d-%m-%Y')} to {end.strftime('%d-%m-%Y')}",
            "days": len(rows),
        },
        "columns": list(SUMMARY_COLUMNS),
        "rows": serialized,
        "totals": summary_totals(rows),
        "failed_days": sum(1 for row in rows if row.error),
        "pagination": paginate(serialized, page=page, page_size=page_size),
    }


def fetch_summary_report(
    client: AttendanceApiClient,
    *,
    from_date: str | None = None,
    to_date: str | None = None,
    page: int = 1,
    page_size: int = DEFAULT_PAGE_SIZE,
) -> Dict[str, Any]:
    start, end = _summary_date_range(from_date, to_date)
    rows = build_summary(global_day_loader(client), enumerate_period(start, end))
    return _summary_report(scope="global", rows=rows, start=start, end=end, site=None, page=page, page_size=page_size)


def fetch_site_summary_report(
    client: AttendanceApiClient,
    site_id: str,
    *,
    from_date: str | None = None,
    to_date: str | None = None,
    page: int = 1,
    page_size: int = DEFAULT_PAGE_SIZE,
) -> Dict[str, Any]:
    start, end = _summary_date_range(from_date, to_date)
    site = _fetch_site_info(client, site_id)
    rows = build_summary(site_day_loader(client, site_id), enumerate_period(start, end))
    return _summary_report(scope="site", rows=rows, start=start, end=end, site=site, page=page, page_size=page_size)


def format_datetime_us(value: datetime | None) -> str:
    return value.strftime("%m/%d/%Y, %I:%M %p") if value else "-"


def format_duration(step_in: datetime | None, step_out: datetime | None) -> str:
    if step_in is None or step_out is None:
        return NOT_AVAILABLE
    minutes = int((step_out - step_in).total_seconds() // 60)
    return f"{minutes // 60}h {minutes % 60}m"


def _employee_name(record: AttendanceRecord, names: dict[str, str]) -> str:
    embedded = record.embedded
    if embedded and embedded.name:
        return embedded.name
    return names.get(record.employee_id or "", UNKNOWN_NAME)


def _serialize_record(record: AttendanceRecord, names: dict[str, str]) -> dict[str, Any]:
    shift = (record.shift or "").strip()
    return {
        "id": record.record_id,
        "employee_id": record.employee_id,
        "employee": _employee_name(record, names),
        "manager": record.manager_name or NOT_AVAILABLE,
        "shift": shift.capitalize() if shift else NOT_AVAILABLE,
        "step_in": format_datetime_us(record.step_in) if record.step_in else "Not stepped in",
        "step_out": format_datetime_us(record.step_out) if record.step_out else "Not stepped out",
        "duration": format_duration(record.step_in, record.step_out),
        "location": record.address or NOT_AVAILABLE,
        "status": classify_record(record).value,
    }


def _filter_lines(
    *,
    employee_id: str | None,
    manager_id: str | None,
    shift: str | None,
    status_filter: str,
    names: dict[str, str],
    records: Sequence[AttendanceRecord],
) -> list[str]:
    lines: list[str] = []
    if employee_id:
        lines.append(f"Employee: {names.get(employee_id, employee_id)}")
    if manager_id:
        manager_name = next(
            (record.manager_name for record in records if record.manager_id == manager_id and record.manager_name),
            manager_id,
        )
        lines.append(f"Manager: {manager_name}")
    if shift:
        lines.append(f"Shift: {SHIFT_LABELS.get(shift, shift)}")
    if status_filter != "All":
        lines.append(f"Status: {status_filter}")
    return lines


def _validate_status_filter(status_filter: str | None) -> str:
    value = (status_filter or "All").strip().capitalize()
    if value not in STATUS_FILTERS:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"status must be one of {', '.join(STATUS_FILTERS)}",
        )
    return value


def fetch_attendance_report(
    client: AttendanceApiClient,
    *,
    site_id: str | None = None,
    from_date: str | None = None,
    to_date: str | None = None,
    employee_id: str | None = None,
    manager_id: str | None = None,
    shift: str | None = None,
    status_filter: str | None = None,
    page: int = 1,
    page_size: int = DEFAULT_PAGE_SIZE,
) -> Dict[str, Any]:
    status_value = _validate_status_filter(status_filter)
    start = parse_date(from_date, field="from_date") if from_date else None
    end = parse_date(to_date, field="to_date") if to_date else None
    if start and end and end < start:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="to_date must not be earlier than from_date",
        )

    site = None
    if site_id:
        site = _fetch_site_info(client, site_id)
        employees = _fetch_site_roster(client, site_id)
        records = client.fetch_site_attendance(
            site_id, start_date=start, end_date=end, employee_id=employee_id, shift=shift
        )
    else:
        employees = client.fetch_employees()
        records = client.fetch_attendance(start_date=start, end_date=end, employee_id=employee_id, shift=shift)

    if manager_id:
        records = [record for record in records if record.manager_id == manager_id]
    records = [record for record in records if matches_status_filter(record, status_value)]

    names = {employee.id: employee.name or UNKNOWN_NAME for employee in employees}
    serialized = [_serialize_record(record, names) for record in records]

    return {
        "scope": "site" if site_id else "global",
        "site": site,
        "period": {
            "from": start.isoformat() if start else None,
            "to": end.isoformat() if end else None,
            "label": (
                f"{start.strftime('%d-%m-%Y')} to {end.strftime('%d-%m-%Y')}" if start and end else "All Records"
            ),
        },
        "filters": {
            "employee_id": employee_id,
            "manager_id": manager_id,
            "shift": shift,
            "status": status_value,
            "lines": _filter_lines(
                employee_id=employee_id,
                manager_id=manager_id,
                shift=shift,
                status_filter=status_value,
                names=names,
                records=records,
            ),
        },
        "columns": list(ATTENDANCE_COLUMNS),
        "rows": serialized,
        "counts": count_statuses(records),
        "pagination": paginate(serialized, page=page, page_size=page_size),
    }


def paginate(items: Sequence[Any], *, page: int = 1, page_size: int = DEFAULT_PAGE_SIZE) -> dict[str, Any]:
    page_size = max(1, min(page_size, MAX_PAGE_SIZE))
    total_items = len(items)
    total_pages = max(1, math.ceil(total_items / page_size))
    page = max(1, min(page, total_pages))
    start_index = (page - 1) * page_size
    return {
        "page": page,
        "page_size": page_size,
        "total_items": total_items,
        "total_pages": total_pages,
        "items": list(items[start_index : start_index + page_size]),
    }


def _safe_name(value: str) -> str:
    cleaned = _UNSAFE_FILENAME_CHARS.sub("_", value.strip()).strip("_")
    return cleaned or "Report"


def scope_prefix(report: dict[str, Any], *, branded: bool) -> str:
    parts: list[str] = []
    if branded:
        parts.append(settings.org_name)
    site = report.get("site")
    if site:
        parts.append(str(site.get("name") or "Site"))
    elif not branded:
        parts.append("All_Sites")
    return _safe_name("_".join(parts))


def muster_roll_filename(report: dict[str, Any], ext: str) -> str:
    period = report["period"]
    branded = ext == "pdf"
    return f"{scope_prefix(report, branded=branded)}_MusterRoll_{period['year']}_{period['month']}.{ext}"


def summary_filename(report: dict[str, Any], ext: str) -> str:
    period = report["period"]
    branded = ext == "pdf"
    return f"{scope_prefix(report, branded=branded)}_SummaryReport_{period['from']}_{period['to']}.{ext}"


def attendance_filename(report: dict[str, Any], ext: str) -> str:
    period = report["period"]
    branded = ext == "pdf"
    return (
        f"{scope_prefix(report, branded=branded)}_AttendanceReport_"
        f"{period['from'] or 'all'}_{period['to'] or 'all'}.{ext}"
    )
