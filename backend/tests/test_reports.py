from __future__ import annotations

from datetime import date, datetime
from zoneinfo import ZoneInfo

import pytest
from fastapi import HTTPException

from conftest import FakeApiClient, record
from musterroll import reports
from musterroll.errors import ApiError
from musterroll.models import SessionContext
from musterroll.reports import (
    attendance_filename,
    fetch_attendance_report,
    fetch_muster_roll,
    fetch_site_muster_roll,
    fetch_site_summary_report,
    fetch_summary_report,
    muster_roll_filename,
    paginate,
    resolve_site_id,
    summary_filename,
)


class SiteDownClient(FakeApiClient):
    def fetch_site(self, site_id):
        raise ApiError("HTTP 404: not found", endpoint=f"/site/{site_id}", status_code=404)

    def fetch_site_employees(self, site_id):
        raise ApiError("HTTP 500: roster", endpoint=f"/site/{site_id}/employees", status_code=500)


def test_global_muster_roll_is_sparse_and_counts_whole_roster(roster):
    client = FakeApiClient(
        employees=roster,
        records=[
            record("E1", "2026-01-05T07:15", "2026-01-05T15:02"),
            record("E1", "2026-01-06T07:00", "2026-01-06T15:00"),
        ],
    )

    report = fetch_muster_roll(client, month="01", year="2026")

    assert report["scope"] == "global"
    assert report["period"]["label"] == "January 2026"
    assert len(report["period"]["days"]) == 31
    assert [row["employee_id"] for row in report["rows"]] == ["E1"]
    assert report["rows"][0]["attendance"][5] == {"status": "P", "stepIn": "07:15 AM", "stepOut": "03:02 PM"}
    assert report["rows"][0]["total"] == 2
    assert report["total_row"]["days"][5] == 1
    assert report["total_row"]["total"] == 2
    assert report["columns"][:4] == ["SR", "NAME", "DESIGNATION", "SHIFT"]
    assert report["columns"][-1] == "TOTAL"
    assert report["summary"]["total_employees"] == 2
    assert report["summary"]["total_present_days"] == 2


def test_site_muster_roll_is_dense_and_search_matches_shift(roster):
    client = FakeApiClient(site_employees=roster, site_records=[record("E2", "2026-01-05T15:05", shift="evening")])

    report = fetch_site_muster_roll(client, "S1", from_date="2026-01-05", to_date="2026-01-07", search="EVEN")

    assert report["site"] == {"id": "S1", "name": "North Yard", "location": "Pune"}
    assert [row["name"] for row in report["rows"]] == ["Ravi Kumar"]
    assert report["rows"][0]["attendance"][6]["status"] == "A"
    assert report["rows"][0]["counts"] == {"present": 1, "absent": 2, "week_off": 0}
    assert report["summary"]["total_employees"] == 2
    assert report["summary"]["selected_period"] == "05-01-2026 to 07-01-2026"


def test_site_muster_roll_degrades_when_site_details_fail():
    client = SiteDownClient(site_records=[record("E9", "2026-01-05T07:00")])

    report = fetch_site_muster_roll(client, "S1", month="1", year="2026")

    assert report["site"]["name"] == "Site"
    assert report["rows"][0]["employee_id"] == "E9"
    assert report["summary"]["total_employees"] == 0


def test_muster_roll_duplicates_are_reported(roster):
    client = FakeApiClient(
        employees=roster,
        records=[record("E1", "2026-01-05T07:00"), record("E1", "2026-01-05T09:00")],
    )

    report = fetch_muster_roll(client, month="01", year="2026")

    assert report["summary"]["duplicate_cells"] == 1
    assert report["rows"][0]["total"] == 1


def test_summary_report_keeps_every_day_when_one_fails():
    client = FakeApiClient(
        present_counts={(date(2026, 1, 1), "morning"): 3, (date(2026, 1, 3), "night"): 2},
        failing_days={date(2026, 1, 2)},
    )

    report = fetch_summary_report(client, from_date="2026-01-01", to_date="2026-01-03", page_size=2)

    assert [row["total"] for row in report["rows"]] == [3, 0, 2]
    assert report["failed_days"] == 1
    assert report["totals"]["total"] == 5
    assert report["rows"][0]["display_date"] == "01/01/2026"
    assert report["pagination"]["total_pages"] == 2
    assert len(report["pagination"]["items"]) == 2


def test_site_summary_report_rejects_inverted_dates():
    with pytest.raises(HTTPException) as excinfo:
        fetch_site_summary_report(FakeApiClient(), "S1", from_date="2026-01-05", to_date="2026-01-01")

    assert excinfo.value.status_code == 400


def test_attendance_report_filters_and_counts(roster):
    records = [
        record("E1", "2026-01-05T07:00", "2026-01-05T15:30", managerId={"_id": "M1", "name": "Kiran"}),
        record("E2", "2026-01-05T16:10", "2026-01-05T23:00", shift="evening", managerId="M2"),
        record("E2", "2026-01-06T15:00", shift="evening", managerId="M2"),
    ]
    client = FakeApiClient(employees=roster, records=records)

    everything = fetch_attendance_report(client, from_date="2026-01-05", to_date="2026-01-06")
    assert everything["counts"] == {"total": 3, "present": 2, "absent": 0, "late": 1, "working": 1}
    first = everything["rows"][0]
    assert first["employee"] == "Asha Patil"
    assert first["manager"] == "Kiran"
    assert first["shift"] == "Morning"
    assert first["step_in"] == "01/05/2026, 07:00 AM"
    assert first["duration"] == "8h 30m"
    assert first["status"] == "Present"
    assert everything["rows"][2]["step_out"] == "Not stepped out"
    assert everything["rows"][2]["duration"] == "N/A"

    late_only = fetch_attendance_report(client, manager_id="M2", status_filter="late")
    assert [row["status"] for row in late_only["rows"]] == ["Late"]
    assert late_only["period"]["label"] == "All Records"
    assert late_only["filters"]["lines"] == ["Manager: M2", "Status: Late"]


def test_attendance_report_rejects_unknown_status():
    with pytest.raises(HTTPException) as excinfo:
        fetch_attendance_report(FakeApiClient(), status_filter="sleeping")

    assert excinfo.value.status_code == 400


def test_read_only_admin_is_pinned_to_assigned_site():
    pinned = SessionContext(user_type="admin", role="readonly", site_id="S1")

    assert resolve_site_id(pinned, "S2") == "S1"
    assert resolve_site_id(SessionContext(user_type="admin", role="full"), "S2") == "S2"


def test_paginate_clamps_page_numbers():
    result = paginate(list(range(25)), page=9, page_size=10)

    assert result["page"] == 3
    assert result["items"] == [20, 21, 22, 23, 24]
    assert paginate([], page=0)["total_pages"] == 1


def test_export_filenames():
    muster = {"site": {"name": "North Yard"}, "period": {"year": "2026", "month": "01"}}
    summary = {"site": None, "period": {"from": "2026-01-01", "to": "2026-01-03"}}
    attendance = {"site": None, "period": {"from": None, "to": None}}

    assert muster_roll_filename(muster, "xlsx") == "North_Yard_MusterRoll_2026_01.xlsx"
    assert muster_roll_filename(muster, "pdf") == "ND_ENTERPRISE_North_Yard_MusterRoll_2026_01.pdf"
    assert summary_filename(summary, "xlsx") == "All_Sites_SummaryReport_2026-01-01_2026-01-03.xlsx"
    assert attendance_filename(attendance, "pdf") == "ND_ENTERPRISE_AttendanceReport_all_all.pdf"


def test_muster_roll_rejects_range_that_repeats_a_day(roster):
    client = FakeApiClient(
        employees=roster,
        records=[record("E1", "2026-01-15T07:00"), record("E1", "2026-02-15T07:00")],
    )

    with pytest.raises(HTTPException) as excinfo:
        fetch_muster_roll(client, from_date="2026-01-15", to_date="2026-02-20")

    assert excinfo.value.status_code == 400
    assert client.calls == []


def test_summary_range_is_capped():
    client = FakeApiClient()

    with pytest.raises(HTTPException) as excinfo:
        fetch_summary_report(client, from_date="1900-01-01", to_date="2100-12-31")

    assert excinfo.value.status_code == 400
    assert client.calls == []
    full_year = fetch_summary_report(client, from_date="2024-01-01", to_date="2024-12-31")
    assert full_year["period"]["days"] == 366


def test_summary_defaults_to_today_in_report_timezone(monkeypatch):
    zone = ZoneInfo("Pacific/Kiritimati")
    monkeypatch.setattr(reports, "report_zone", lambda: zone)

    before = datetime.now(zone).date()
    report = fetch_summary_report(FakeApiClient())
    after = datetime.now(zone).date()

    assert report["period"]["from"] in {before.isoformat(), after.isoformat()}
    assert report["period"]["days"] == 1
