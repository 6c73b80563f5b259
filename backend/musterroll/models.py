from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Mapping, Union
from zoneinfo import ZoneInfo

from .config import settings

UNKNOWN_NAME = "Unknown"
NOT_AVAILABLE = "N/A"


class Shift(str, Enum):
    MORNING = "morning"
    EVENING = "evening"
    NIGHT = "night"


class AttendanceStatus(str, Enum):
    ABSENT = "Absent"
    WORKING = "Working"
    PRESENT = "Present"
    LATE = "Late"


# Grid cell codes. A day with no cell at all renders as NO_RECORD.
CELL_PRESENT = "P"
CELL_ABSENT = "A"
CELL_WEEK_OFF = "W"
NO_RECORD = "-"


@dataclass(frozen=True)
class EmployeeSummary:
    id: str
    name: str | None = None
    designation: str | None = None
    shift: str | None = None

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "EmployeeSummary | None":
        employee_id = _clean_id(payload.get("_id") or payload.get("id"))
        if not employee_id:
            return None
        return cls(
            id=employee_id,
            name=_clean_optional(payload.get("name")),
            designation=_clean_optional(payload.get("designation")),
            shift=_clean_optional(payload.get("shift")),
        )


@dataclass(frozen=True)
class EmployeeId:
    id: str


@dataclass(frozen=True)
class EmbeddedEmployee:
    summary: EmployeeSummary

    @property
    def id(self) -> str:
        return self.summary.id


EmployeeRef = Union[EmployeeId, EmbeddedEmployee]


def employee_ref_from_payload(value: Any) -> EmployeeRef | None:
    if isinstance(value, Mapping):
        summary = EmployeeSummary.from_payload(value)
        return EmbeddedEmployee(summary) if summary else None
    employee_id = _clean_id(value)
    return EmployeeId(employee_id) if employee_id else None


@dataclass(frozen=True)
class AttendanceRecord:
    employee: EmployeeRef | None
    shift: str | None = None
    step_in: datetime | None = None
    step_out: datetime | None = None
    address: str | None = None
    manager_id: str | None = None
    manager_name: str | None = None
    record_id: str | None = None

    @property
    def employee_id(self) -> str | None:
        return self.employee.id if self.employee else None

    @property
    def embedded(self) -> EmployeeSummary | None:
        if isinstance(self.employee, EmbeddedEmployee):
            return self.employee.summary
        return None

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "AttendanceRecord":
        manager = payload.get("managerId")
        if isinstance(manager, Mapping):
            manager_id = _clean_id(manager.get("_id") or manager.get("id"))
            manager_name = _clean_optional(manager.get("name"))
        else:
            manager_id = _clean_id(manager)
            manager_name = None
        return cls(
            employee=employee_ref_from_payload(payload.get("employeeId")),
            shift=_clean_optional(payload.get("shift")),
            step_in=parse_timestamp(payload.get("stepIn")),
            step_out=parse_timestamp(payload.get("stepOut")),
            address=_clean_optional(payload.get("stepInAddress")) or _clean_optional(payload.get("address")),
            manager_id=manager_id or None,
            manager_name=manager_name,
            record_id=_clean_id(payload.get("_id")) or None,
        )


@dataclass(frozen=True)
class DayCell:
    status: str
    step_in_time: str = ""
    step_out_time: str = ""

    def as_dict(self) -> dict[str, str]:
        return {"status": self.status, "stepIn": self.step_in_time, "stepOut": self.step_out_time}


@dataclass
class EmployeeAttendanceRow:
    employee_id: str
    name: str
    designation: str
    shift: str
    attendance: dict[int, DayCell] = field(default_factory=dict)

    def status_on(self, day: int) -> str | None:
        cell = self.attendance.get(day)
        return cell.status if cell else None


@dataclass(frozen=True)
class PeriodDay:
    day: int
    date: date


@dataclass(frozen=True)
class PeriodTotals:
    day_totals: dict[int, int]
    row_totals: dict[int, int]
    grand_total: int


@dataclass(frozen=True)
class SummaryDay:
    date: date
    morning: int = 0
    evening: int = 0
    night: int = 0
    error: str | None = None

    @property
    def total(self) -> int:
        return self.morning + self.evening + self.night


@dataclass(frozen=True)
class SessionContext:
    """Caller identity threaded into report calls instead of read from ambient state."""

    user_type: str = ""
    role: str = ""
    site_id: str = ""
    token: str = ""

    @property
    def restricted_site_id(self) -> str | None:
        # Read-only admins are pinned to the one site they were assigned.
        if self.user_type == "admin" and self.role == "readonly" and self.site_id:
            return self.site_id
        return None

    @property
    def session_key(self) -> str | None:
        # Anonymous callers get no shared view state.
        return self.token or None


def report_zone() -> ZoneInfo:
    return ZoneInfo(settings.report_timezone)


def parse_timestamp(value: Any) -> datetime | None:
    """Parse an API timestamp and express it in the report timezone.

    Naive values are taken as already local; aware values (``Z`` or an offset)
    are converted so day-of-month and hour-of-day match what the site sees.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        text = str(value).strip()
        if not text:
            return None
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(report_zone())
    return parsed


def _clean_optional(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _clean_id(value: Any) -> str:
    if value is None or isinstance(value, Mapping):
        return ""
    return str(value).strip()
