from __future__ import annotations

import logging
from datetime import date
from typing import Any, Iterable, Mapping

import requests

from .config import settings
from .errors import ApiError
from .models import AttendanceRecord, EmployeeSummary, SessionContext

logger = logging.getLogger(__name__)

_API_TARGET_LOGGED = False


def log_api_target_once(base_url: str) -> None:
    global _API_TARGET_LOGGED
    if _API_TARGET_LOGGED:
        return
    logger.info("API: reading attendance from %s", base_url)
    _API_TARGET_LOGGED = True


def _normalize_params(params: Mapping[str, Any] | None) -> dict[str, str]:
    if not params:
        return {}
    normalized: dict[str, str] = {}
    for key, value in params.items():
        if value is None or value == "":
            continue
        if isinstance(value, date):
            value = value.strftime("%Y-%m-%d")
        normalized[key] = str(value)
    return normalized


def unwrap_list(payload: Any, keys: Iterable[str] = ("data", "attendance")) -> list[dict[str, Any]]:
    """Return the record list from a bare list or a ``{data|attendance: [...]}`` envelope."""
    if isinstance(payload, list):
        return [item for item in payload if isinstance(item, Mapping)]
    if isinstance(payload, Mapping):
        for key in keys:
            value = payload.get(key)
            if isinstance(value, list):
                return [item for item in value if isinstance(item, Mapping)]
    return []


def _employees_from_payload(payload: Any) -> list[EmployeeSummary]:
    employees: list[EmployeeSummary] = []
    for item in unwrap_list(payload, keys=("data", "employees")):
        employee = EmployeeSummary.from_payload(item)
        if employee is not None:
            employees.append(employee)
    return employees


def _records_from_payload(payload: Any) -> list[AttendanceRecord]:
    return [AttendanceRecord.from_payload(item) for item in unwrap_list(payload)]


class AttendanceApiClient:
    def __init__(
        self,
        *,
        base_url: str | None = None,
        token: str | None = None,
        timeout: float | None = None,
        session: requests.Session | None = None,
    ) -> None:
        self.base_url = (base_url or settings.api_base_url).rstrip("/")
        self.token = token if token is not None else settings.api_token
        self.timeout = timeout or settings.api_timeout_seconds
        self._session = session or requests.Session()

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json", "Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def get_json(self, endpoint: str, params: Mapping[str, Any] | None = None) -> Any:
        log_api_target_once(self.base_url)
        url = f"{self.base_url}{endpoint}"
        try:
            resp = self._session.get(
                url,
                headers=self._headers(),
                params=_normalize_params(params),
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            logger.error("API request to %s failed: %s", endpoint, exc)
            raise ApiError(f"Request failed: {exc}", endpoint=endpoint) from exc

        if not resp.ok:
            try:
                message = resp.json().get("message") or resp.reason
            except (ValueError, AttributeError):
                message = resp.reason
            logger.error("API %s answered %s: %s", endpoint, resp.status_code, message)
            raise ApiError(
                f"HTTP {resp.status_code}: {message}",
                endpoint=endpoint,
                status_code=resp.status_code,
            )

        try:
            return resp.json()
        except ValueError as exc:
            raise ApiError("Response is not valid JSON", endpoint=endpoint, status_code=resp.status_code) from exc

    def fetch_attendance(
        self,
        *,
        start_date: date | None = None,
        end_date: date | None = None,
        employee_id: str | None = None,
        shift: str | None = None,
    ) -> list[AttendanceRecord]:
        payload = self.get_json(
            "/attendence/",
            {"startDate": start_date, "endDate": end_date, "employeeId": employee_id, "shift": shift},
        )
        return _records_from_payload(payload)

    def fetch_employees(self) -> list[EmployeeSummary]:
        return _employees_from_payload(self.get_json("/employee/all"))

    def fetch_site(self, site_id: str) -> dict[str, Any]:
        payload = self.get_json(f"/site/{site_id}")
        if isinstance(payload, Mapping):
            site = payload.get("data", payload)
            if isinstance(site, Mapping):
                return dict(site)
        return {}

    def fetch_site_employees(self, site_id: str) -> list[EmployeeSummary]:
        return _employees_from_payload(self.get_json(f"/site/{site_id}/employees"))

    def fetch_site_attendance(
        self,
        site_id: str,
        *,
        start_date: date | None = None,
        end_date: date | None = None,
        employee_id: str | None = None,
        shift: str | None = None,
    ) -> list[AttendanceRecord]:
        payload = self.get_json(
            f"/site/{site_id}/attendance",
            {"startDate": start_date, "endDate": end_date, "employeeId": employee_id, "shift": shift},
        )
        return _records_from_payload(payload)

    def fetch_present_count(self, *, day: date, shift: str) -> int:
        payload = self.get_json("/attendence/summary", {"date": day, "shift": shift})
        if not isinstance(payload, Mapping):
            return 0
        try:
            return max(0, int(payload.get("presentEmployees") or 0))
        except (TypeError, ValueError):
            return 0

    def close(self) -> None:
        self._session.close()


def client_for(context: SessionContext) -> AttendanceApiClient:
    return AttendanceApiClient(token=context.token or None)
