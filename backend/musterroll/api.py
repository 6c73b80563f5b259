from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Iterator

from fastapi import APIRouter, Depends, FastAPI, Header, Query, Request
from fastapi.responses import JSONResponse, Response

from . import excel_exports, pdf_exports, reports
from .client import AttendanceApiClient, client_for
from .config import configure_logging
from .errors import ApiError, ExportError
from .models import SessionContext
from .state import ReportViewRegistry

logger = logging.getLogger(__name__)

views = ReportViewRegistry()


def get_session_context(
    authorization: str | None = Header(default=None),
    x_user_type: str | None = Header(default=None),
    x_user_role: str | None = Header(default=None),
    x_site_id: str | None = Header(default=None),
) -> SessionContext:
    token = ""
    if authorization and authorization.lower().startswith("bearer "):
        token = authorization[7:].strip()
    return SessionContext(
        user_type=(x_user_type or "").strip().lower(),
        role=(x_user_role or "").strip().lower(),
        site_id=(x_site_id or "").strip(),
        token=token,
    )


def get_api_client(context: SessionContext = Depends(get_session_context)) -> Iterator[AttendanceApiClient]:
    client = client_for(context)
    try:
        yield client
    finally:
        client.close()


def _attachment(content: bytes, *, media_type: str, filename: str) -> Response:
    return Response(
        content=content,
        media_type=media_type,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


def _report_key(name: str, params: Dict[str, Any]) -> str:
    query = "&".join(f"{key}={value}" for key, value in sorted(params.items()) if value is not None)
    return f"{name}?{query}"


def _refresh(
    context: SessionContext,
    name: str,
    params: Dict[str, Any],
    loader: Callable[[], Dict[str, Any]],
) -> Dict[str, Any]:
    session_key = context.session_key
    if session_key is None:
        return loader()
    return views.get(session_key, _report_key(name, params)).refresh(loader)


def _attendance_params(
    from_date: str | None,
    to_date: str | None,
    employee_id: str | None,
    manager_id: str | None,
    shift: str | None,
    status: str | None,
    page: int,
    page_size: int,
) -> Dict[str, Any]:
    return {
        "from_date": from_date,
        "to_date": to_date,
        "employee_id": employee_id,
        "manager_id": manager_id,
        "shift": shift,
        "status": status,
        "page": page,
        "page_size": page_size,
    }


router = APIRouter(prefix="", tags=["reports"])


@router.get("/health")
def health() -> Dict[str, str]:
    return {"status": "ok"}


@router.post("/reports/views/close")
def close_views(context: SessionContext = Depends(get_session_context)) -> Dict[str, int]:
    if context.session_key is None:
        return {"closed": 0}
    return {"closed": views.close_session(context.session_key)}


@router.get("/reports/muster-roll")
def muster_roll(
    month: str | None = None,
    year: str | None = None,
    from_date: str | None = None,
    to_date: str | None = None,
    search: str | None = None,
    context: SessionContext = Depends(get_session_context),
    client: AttendanceApiClient = Depends(get_api_client),
) -> Dict[str, Any]:
    return _refresh(
        context,
        "muster-roll",
        {"month": month, "year": year, "from_date": from_date, "to_date": to_date, "search": search},
        lambda: reports.fetch_muster_roll(
            client, month=month, year=year, from_date=from_date, to_date=to_date, search=search
        ),
    )


@router.get("/reports/muster-roll/export.{ext}")
def muster_roll_export(
    ext: str,
    month: str | None = None,
    year: str | None = None,
    from_date: str | None = None,
    to_date: str | None = None,
    search: str | None = None,
    client: AttendanceApiClient = Depends(get_api_client),
) -> Response:
    report = reports.fetch_muster_roll(
        client, month=month, year=year, from_date=from_date, to_date=to_date, search=search
    )
    return _render(report, ext, excel_exports.build_muster_roll_workbook, pdf_exports.generate_muster_roll_pdf, reports.muster_roll_filename)


@router.get("/sites/{site_id}/reports/muster-roll")
def site_muster_roll(
    site_id: str,
    month: str | None = None,
    year: str | None = None,
    from_date: str | None = None,
    to_date: str | None = None,
    search: str | None = None,
    context: SessionContext = Depends(get_session_context),
    client: AttendanceApiClient = Depends(get_api_client),
) -> Dict[str, Any]:
    site_id = reports.resolve_site_id(context, site_id)
    return _refresh(
        context,
        f"site:{site_id}:muster-roll",
        {"month": month, "year": year, "from_date": from_date, "to_date": to_date, "search": search},
        lambda: reports.fetch_site_muster_roll(
            client, site_id, month=month, year=year, from_date=from_date, to_date=to_date, search=search
        ),
    )


@router.get("/sites/{site_id}/reports/muster-roll/export.{ext}")
def site_muster_roll_export(
    site_id: str,
    ext: str,
    month: str | None = None,
    year: str | None = None,
    from_date: str | None = None,
    to_date: str | None = None,
    search: str | None = None,
    context: SessionContext = Depends(get_session_context),
    client: AttendanceApiClient = Depends(get_api_client),
) -> Response:
    report = reports.fetch_site_muster_roll(
        client,
        reports.resolve_site_id(context, site_id),
        month=month,
        year=year,
        from_date=from_date,
        to_date=to_date,
        search=search,
    )
    return _render(report, ext, excel_exports.build_muster_roll_workbook, pdf_exports.generate_muster_roll_pdf, reports.muster_roll_filename)


@router.get("/reports/summary")
def summary_report(
    from_date: str | None = None,
    to_date: str | None = None,
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=reports.DEFAULT_PAGE_SIZE, ge=1, le=reports.MAX_PAGE_SIZE),
    context: SessionContext = Depends(get_session_context),
    client: AttendanceApiClient = Depends(get_api_client),
) -> Dict[str, Any]:
    return _refresh(
        context,
        "summary",
        {"from_date": from_date, "to_date": to_date, "page": page, "page_size": page_size},
        lambda: reports.fetch_summary_report(
            client, from_date=from_date, to_date=to_date, page=page, page_size=page_size
        ),
    )


@router.get("/reports/summary/export.{ext}")
def summary_export(
    ext: str,
    from_date: str | None = None,
    to_date: str | None = None,
    client: AttendanceApiClient = Depends(get_api_client),
) -> Response:
    report = reports.fetch_summary_report(client, from_date=from_date, to_date=to_date)
    return _render(report, ext, excel_exports.build_summary_workbook, pdf_exports.generate_summary_pdf, reports.summary_filename)


@router.get("/sites/{site_id}/reports/summary")
def site_summary_report(
    site_id: str,
    from_date: str | None = None,
    to_date: str | None = None,
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=reports.DEFAULT_PAGE_SIZE, ge=1, le=reports.MAX_PAGE_SIZE),
    context: SessionContext = Depends(get_session_context),
    client: AttendanceApiClient = Depends(get_api_client),
) -> Dict[str, Any]:
    site_id = reports.resolve_site_id(context, site_id)
    return _refresh(
        context,
        f"site:{site_id}:summary",
        {"from_date": from_date, "to_date": to_date, "page": page, "page_size": page_size},
        lambda: reports.fetch_site_summary_report(
            client, site_id, from_date=from_date, to_date=to_date, page=page, page_size=page_size
        ),
    )


@router.get("/sites/{site_id}/reports/summary/export.{ext}")
def site_summary_export(
    site_id: str,
    ext: str,
    from_date: str | None = None,
    to_date: str | None = None,
    context: SessionContext = Depends(get_session_context),
    client: AttendanceApiClient = Depends(get_api_client),
) -> Response:
    report = reports.fetch_site_summary_report(
        client, reports.resolve_site_id(context, site_id), from_date=from_date, to_date=to_date
    )
    return _render(report, ext, excel_exports.build_summary_workbook, pdf_exports.generate_summary_pdf, reports.summary_filename)


@router.get("/reports/attendance")
def attendance_report(
    from_date: str | None = None,
    to_date: str | None = None,
    employee_id: str | None = None,
    manager_id: str | None = None,
    shift: str | None = None,
    status: str | None = None,
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=reports.DEFAULT_PAGE_SIZE, ge=1, le=reports.MAX_PAGE_SIZE),
    context: SessionContext = Depends(get_session_context),
    client: AttendanceApiClient = Depends(get_api_client),
) -> Dict[str, Any]:
    return _refresh(
        context,
        "attendance",
        _attendance_params(from_date, to_date, employee_id, manager_id, shift, status, page, page_size),
        lambda: reports.fetch_attendance_report(
            client,
            from_date=from_date,
            to_date=to_date,
            employee_id=employee_id,
            manager_id=manager_id,
            shift=shift,
            status_filter=status,
            page=page,
            page_size=page_size,
        ),
    )


@router.get("/reports/attendance/export.{ext}")
def attendance_export(
    ext: str,
    from_date: str | None = None,
    to_date: str | None = None,
    employee_id: str | None = None,
    manager_id: str | None = None,
    shift: str | None = None,
    status: str | None = None,
    client: AttendanceApiClient = Depends(get_api_client),
) -> Response:
    report = reports.fetch_attendance_report(
        client,
        from_date=from_date,
        to_date=to_date,
        employee_id=employee_id,
        manager_id=manager_id,
        shift=shift,
        status_filter=status,
    )
    return _render(report, ext, excel_exports.build_attendance_workbook, pdf_exports.generate_attendance_pdf, reports.attendance_filename)


@router.get("/sites/{site_id}/reports/attendance")
def site_attendance_report(
    site_id: str,
    from_date: str | None = None,
    to_date: str | None = None,
    employee_id: str | None = None,
    manager_id: str | None = None,
    shift: str | None = None,
    status: str | None = None,
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=reports.DEFAULT_PAGE_SIZE, ge=1, le=reports.MAX_PAGE_SIZE),
    context: SessionContext = Depends(get_session_context),
    client: AttendanceApiClient = Depends(get_api_client),
) -> Dict[str, Any]:
    site_id = reports.resolve_site_id(context, site_id)
    return _refresh(
        context,
        f"site:{site_id}:attendance",
        _attendance_params(from_date, to_date, employee_id, manager_id, shift, status, page, page_size),
        lambda: reports.fetch_attendance_report(
            client,
            site_id=site_id,
            from_date=from_date,
            to_date=to_date,
            employee_id=employee_id,
            manager_id=manager_id,
            shift=shift,
            status_filter=status,
            page=page,
            page_size=page_size,
        ),
    )


@router.get("/sites/{site_id}/reports/attendance/export.{ext}")
def site_attendance_export(
    site_id: str,
    ext: str,
    from_date: str | None = None,
    to_date: str | None = None,
    employee_id: str | None = None,
    manager_id: str | None = None,
    shift: str | None = None,
    status: str | None = None,
    context: SessionContext = Depends(get_session_context),
    client: AttendanceApiClient = Depends(get_api_client),
) -> Response:
    report = reports.fetch_attendance_report(
        client,
        site_id=reports.resolve_site_id(context, site_id),
        from_date=from_date,
        to_date=to_date,
        employee_id=employee_id,
        manager_id=manager_id,
        shift=shift,
        status_filter=status,
    )
    return _render(report, ext, excel_exports.build_attendance_workbook, pdf_exports.generate_attendance_pdf, reports.attendance_filename)


def _render(
    report: Dict[str, Any],
    ext: str,
    build_xlsx: Callable[[Dict[str, Any]], bytes],
    build_pdf: Callable[[Dict[str, Any]], bytes],
    filename_for: Callable[[Dict[str, Any], str], str],
) -> Response:
    if ext == "xlsx":
        return _attachment(build_xlsx(report), media_type=excel_exports.XLSX_MEDIA_TYPE, filename=filename_for(report, ext))
    if ext == "pdf":
        return _attachment(build_pdf(report), media_type=pdf_exports.PDF_MEDIA_TYPE, filename=filename_for(report, ext))
    return JSONResponse(status_code=404, content={"detail": f"Unsupported export format: {ext}"})


def _api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
    logger.error("Upstream failure on %s: %s", request.url.path, exc)
    return JSONResponse(status_code=502, content=exc.payload())


def _export_error_handler(request: Request, exc: ExportError) -> JSONResponse:
    logger.error("Export failure on %s: %s", request.url.path, exc)
    return JSONResponse(status_code=500, content={"detail": str(exc)})


def create_app() -> FastAPI:
    configure_logging()
    application = FastAPI(title="Muster Roll Reports")
    application.include_router(router)
    application.add_exception_handler(ApiError, _api_error_handler)
    application.add_exception_handler(ExportError, _export_error_handler)
    return application


app = create_app()
