from __future__ import annotations

from datetime import date

import pytest

from musterroll.errors import ApiError
from musterroll.models import AttendanceRecord, EmployeeSummary


class FakeApiClient:
    def __init__(
        self,
        *,
        employees=None,
        records=None,
        site=None,
        site_employees=None,
        site_records=None,
        present_counts=None,
        failing_days=(),
        failing_shifts=(),
    ):
        self.employees = employees or []
        self.records = records or []
        self.site = site if site is not None else {"name": "North Yard", "location": "Pune"}
        self.site_employees = site_employees or []
        self.site_records = site_records or []
        self.present_counts = present_counts or {}
        self.failing_days = set(failing_days)
        self.failing_shifts = set(failing_shifts)
        self.calls = []
        self.closed = False

    def fetch_employees(self):
        self.calls.append(("employees",))
        return list(self.employees)

    def fetch_attendance(self, *, start_date=None, end_date=None, employee_id=None, shift=None):
        self.calls.append(("attendance", start_date, end_date, employee_id, shift))
        return [
            record
            for record in self.records
            if (employee_id is None or record.employee_id == employee_id)
            and (shift is None or record.shift == shift)
        ]

    def fetch_site(self, site_id):
        self.calls.append(("site", site_id))
        return dict(self.site)

    def fetch_site_employees(self, site_id):
        self.calls.append(("site_employees", site_id))
        return list(self.site_employees)

    def fetch_site_attendance(self, site_id, *, start_date=None, end_date=None, employee_id=None, shift=None):
        self.calls.append(("site_attendance", site_id, start_date, end_date))
        if start_date in self.failing_days:
            raise ApiError("HTTP 500: boom", endpoint=f"/site/{site_id}/attendance", status_code=500)
        selected = []
        for record in self.site_records:
            if start_date and end_date and record.step_in:
                if not start_date <= record.step_in.date() <= end_date:
                    continue
            selected.append(record)
        return selected

    def fetch_present_count(self, *, day: date, shift: str) -> int:
        self.calls.append(("present", day, shift))
        if day in self.failing_days or shift in self.failing_shifts:
            raise ApiError("HTTP 503: unavailable", endpoint="/attendence/summary", status_code=503)
        return self.present_counts.get((day, shift), 0)

    def close(self):
        self.closed = True


def record(employee, step_in=None, step_out=None, shift="morning", **extra):
    payload = {"employeeId": employee, "stepIn": step_in, "stepOut": step_out, "shift": shift}
    payload.update(extra)
    return AttendanceRecord.from_payload(payload)


@pytest.fixture
def roster():
    return [
        EmployeeSummary(id="E1", name="Asha Patil", designation="Guard", shift="morning"),
        EmployeeSummary(id="E2", name="Ravi Kumar", designation="Supervisor", shift="evening"),
    ]
