from __future__ import annotations

import threading

import pytest
from fastapi.testclient import TestClient

from conftest import FakeApiClient, record
from musterroll.api import app, get_api_client, views
from musterroll.errors import ApiError


class GatedApiClient(FakeApiClient):
    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.january_started = threading.Event()
        self.release_january = threading.Event()

    def fetch_attendance(self, *, start_date=None, **kwargs):
        if start_date is not None and start_date.month == 1:
            self.january_started.set()
            self.release_january.wait(timeout=5)
        return super().fetch_attendance(start_date=start_date, **kwargs)


class BrokenApiClient(FakeApiClient):
    def fetch_employees(self):
        raise ApiError("Request failed: connection refused", endpoint="/employee/all")


@pytest.fixture
def fake(roster):
    client = FakeApiClient(
        employees=roster,
        records=[record("E1", "2026-01-05T07:15", "2026-01-05T15:02")],
        site_employees=roster,
        site_records=[record("E2", "2026-01-06T15:30", shift="evening")],
    )
    app.dependency_overrides[get_api_client] = lambda: client
    yield client
    app.dependency_overrides.clear()


@pytest.fixture
def http():
    return TestClient(app)


def test_health(http):
    assert http.get("/health").json() == {"status": "ok"}


def test_muster_roll_json(fake, http):
    resp = http.get("/reports/muster-roll", params={"month": "01", "year": "2026"})

    assert resp.status_code == 200
    body = resp.json()
    assert body["period"]["label"] == "January 2026"
    assert body["rows"][0]["attendance"]["5"]["status"] == "P"
    assert body["total_row"]["total"] == 1


def test_bad_period_is_a_client_error(fake, http):
    resp = http.get("/reports/muster-roll", params={"from_date": "2026-02-10", "to_date": "2026-02-01"})

    assert resp.status_code == 400


def test_read_only_admin_is_served_their_own_site(fake, http):
    resp = http.get(
        "/sites/S2/reports/muster-roll",
        params={"month": "01", "year": "2026"},
        headers={"X-User-Type": "admin", "X-User-Role": "readonly", "X-Site-Id": "S1"},
    )

    assert resp.status_code == 200
    assert resp.json()["site"]["id"] == "S1"
    assert ("site", "S1") in fake.calls


def test_muster_roll_exports(fake, http):
    xlsx = http.get("/sites/S1/reports/muster-roll/export.xlsx", params={"month": "01", "year": "2026"})
    pdf = http.get("/sites/S1/reports/muster-roll/export.pdf", params={"month": "01", "year": "2026"})

    assert xlsx.status_code == 200
    assert xlsx.headers["content-type"].startswith("application/vnd.openxmlformats")
    assert 'filename="North_Yard_MusterRoll_2026_01.xlsx"' in xlsx.headers["content-disposition"]
    assert pdf.status_code == 200
    assert pdf.content.startswith(b"%PDF")
    assert 'filename="ND_ENTERPRISE_North_Yard_MusterRoll_2026_01.pdf"' in pdf.headers["content-disposition"]


def test_unknown_export_format(fake, http):
    resp = http.get("/reports/summary/export.csv", params={"from_date": "2026-01-01"})

    assert resp.status_code == 404


def test_summary_and_attendance_json(fake, http):
    summary = http.get("/reports/summary", params={"from_date": "2026-01-01", "to_date": "2026-01-03", "page_size": 2})
    attendance = http.get("/sites/S1/reports/attendance", params={"status": "working"})

    assert summary.status_code == 200
    assert len(summary.json()["rows"]) == 3
    assert summary.json()["pagination"]["total_pages"] == 2
    assert attendance.status_code == 200
    assert attendance.json()["counts"]["working"] == 1
    assert attendance.json()["rows"][0]["employee"] == "Ravi Kumar"


def test_upstream_failure_maps_to_bad_gateway(http):
    app.dependency_overrides[get_api_client] = lambda: BrokenApiClient()
    try:
        resp = http.get("/reports/muster-roll", params={"month": "01", "year": "2026"})
    finally:
        app.dependency_overrides.clear()

    assert resp.status_code == 502
    body = resp.json()
    assert body["endpoint"] == "/employee/all"
    assert "connection refused" in body["detail"]


def test_closing_views_for_a_session(fake, http):
    headers = {"Authorization": "Bearer close-me"}
    http.get("/reports/summary", params={"from_date": "2026-01-01"}, headers=headers)
    http.get("/reports/muster-roll", params={"month": "01", "year": "2026"}, headers=headers)

    resp = http.post("/reports/views/close", headers=headers)

    assert resp.json() == {"closed": 2}


def test_overlapping_requests_each_get_their_own_period(roster, http):
    client = GatedApiClient(employees=roster)
    headers = {"Authorization": "Bearer overlap"}
    results = {}

    def fetch_january():
        results["january"] = http.get("/reports/muster-roll", params={"month": "01", "year": "2026"}, headers=headers)

    app.dependency_overrides[get_api_client] = lambda: client
    worker = threading.Thread(target=fetch_january)
    try:
        worker.start()
        assert client.january_started.wait(timeout=5)
        february = http.get("/reports/muster-roll", params={"month": "02", "year": "2026"}, headers=headers)
        client.release_january.set()
        worker.join(timeout=5)
    finally:
        client.release_january.set()
        app.dependency_overrides.clear()

    assert february.json()["period"]["label"] == "February 2026"
    assert results["january"].json()["period"]["label"] == "January 2026"


def test_anonymous_requests_do_not_share_view_state(fake, http):
    before = len(views)

    http.get("/reports/muster-roll", params={"month": "01", "year": "2026"})
    http.get("/reports/summary", params={"from_date": "2026-01-01"})

    assert len(views) == before
    assert http.post("/reports/views/close").json() == {"closed": 0}
