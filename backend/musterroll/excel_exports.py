from __future__ import annotations

import logging
from datetime import datetime
from io import BytesIO
from typing import Any, Sequence

from openpyxl import Workbook
from openpyxl.styles import Alignment, Font, PatternFill
from openpyxl.utils import get_column_letter
from openpyxl.worksheet.worksheet import Worksheet

from .errors import ExportError
from .reports import day_cell_code

logger = logging.getLogger(__name__)

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

_STYLES = {
    "header_fill": PatternFill(start_color="8B5CF6", end_color="8B5CF6", fill_type="solid"),
    "header_font": Font(bold=True, color="FFFFFF"),
    "total_fill": PatternFill(start_color="E5ECF5", end_color="E5ECF5", fill_type="solid"),
    "total_font": Font(bold=True),
    "title_font": Font(bold=True, size=14),
    "label_font": Font(bold=True),
    "center": Alignment(horizontal="center", vertical="center"),
}


def _style_header(ws: Worksheet, row_index: int = 1) -> None:
    for cell in ws[row_index]:
        cell.fill = _STYLES["header_fill"]
        cell.font = _STYLES["header_font"]
        cell.alignment = _STYLES["center"]


def _style_total(ws: Worksheet, row_index: int) -> None:
    for cell in ws[row_index]:
        cell.fill = _STYLES["total_fill"]
        cell.font = _STYLES["total_font"]


def _set_widths(ws: Worksheet, widths: Sequence[int]) -> None:
    for index, width in enumerate(widths, start=1):
        ws.column_dimensions[get_column_letter(index)].width = width


def _append_info_sheet(wb: Workbook, title: str, lines: Sequence[Sequence[Any]], *, index: int | None = None) -> None:
    ws = wb.create_sheet("Report Info", index)
    ws.append([title])
    ws["A1"].font = _STYLES["title_font"]
    ws.append([""])
    for line in lines:
        ws.append(list(line))
        if line and line[0]:
            ws.cell(row=ws.max_row, column=1).font = _STYLES["label_font"]
    _set_widths(ws, [22, 40])


def _save(wb: Workbook, kind: str) -> bytes:
    buffer = BytesIO()
    try:
        wb.save(buffer)
    except (OSError, ValueError, TypeError) as exc:
        logger.error("Excel %s export failed: %s", kind, exc)
        raise ExportError(f"Excel export failed: {exc}") from exc
    return buffer.getvalue()


def build_muster_roll_workbook(report: dict[str, Any]) -> bytes:
    days = [item["day"] for item in report["period"]["days"]]
    wb = Workbook()
    ws = wb.active
    ws.title = "Muster Roll"

    ws.append(["SR", "NAME", "DESIGNATION", "SHIFT", *[str(day) for day in days], "TOTAL"])
    _style_header(ws)

    for row in report["rows"]:
        ws.append(
            [
                row["sr"],
                row["name"],
                row["designation"],
                row["shift"],
                *[day_cell_code(row, day) for day in days],
                row["total"],
            ]
        )

    total_row = report["total_row"]
    ws.append(["TOTAL", "", "", "", *[total_row["days"].get(day, 0) for day in days], total_row["total"]])
    _style_total(ws, ws.max_row)

    _set_widths(ws, [5, 25, 20, 10, *[5] * len(days), 8])
    ws.freeze_panes = "E2"

    site = report.get("site")
    if site:
        summary = report["summary"]
        _append_info_sheet(
            wb,
            f"{site['name']} - Muster Roll Export",
            [
                ["Site:", site["name"]],
                ["Location:", site.get("location") or "N/A"],
                ["Period:", report["period"]["label"]],
                ["Generated on:", datetime.now().strftime("%d %b %Y %I:%M %p")],
                [""],
                ["Total Employees:", summary["total_employees"]],
                ["Total Present Days:", summary["total_present_days"]],
                ["Rows Exported:", len(report["rows"])],
            ],
        )
    return _save(wb, "muster roll")


def build_summary_workbook(report: dict[str, Any]) -> bytes:
    wb = Workbook()
    ws = wb.active
    ws.title = "Summary Report"

    ws.append(list(report["columns"]))
    _style_header(ws)
    for row in report["rows"]:
        ws.append(
            [
                row["display_date"],
                f"{row['morning']}P",
                f"{row['evening']}P",
                f"{row['night']}P",
                f"{row['total']} Total Present",
            ]
        )
    totals = report["totals"]
    ws.append(["TOTAL", f"{totals['morning']}P", f"{totals['evening']}P", f"{totals['night']}P", f"{totals['total']} Total Present"])
    _style_total(ws, ws.max_row)
    _set_widths(ws, [15, 15, 15, 15, 20])
    return _save(wb, "summary")


def build_attendance_workbook(report: dict[str, Any]) -> bytes:
    wb = Workbook()
    ws = wb.active
    ws.title = "Attendance Data"

    ws.append(list(report["columns"]))
    _style_header(ws)
    for row in report["rows"]:
        ws.append(
            [
                row["employee"],
                row["manager"],
                row["shift"],
                row["step_in"],
                row["step_out"],
                row["duration"],
                row["location"],
                row["status"],
            ]
        )
    _set_widths(ws, [25, 20, 12, 20, 20, 15, 40, 15])

    site = report.get("site")
    counts = report["counts"]
    info: list[list[Any]] = [["Generated on:", datetime.now().strftime("%d %b %Y %I:%M %p")], [""]]
    if report["period"]["from"] and report["period"]["to"]:
        info.append(["Period:", f"{report['period']['from']} to {report['period']['to']}"])
    for line in report["filters"]["lines"]:
        label, _, value = line.partition(": ")
        info.append([f"{label}:", value])
    info.extend(
        [
            [""],
            ["Total Records:", counts["total"]],
            ["Present:", counts["present"]],
            ["Absent:", counts["absent"]],
            ["Late:", counts["late"]],
            ["Working:", counts["working"]],
        ]
    )
    title = f"{site['name'] if site else 'All Sites'} - Attendance Report Export"
    _append_info_sheet(wb, title, info, index=0)
    return _save(wb, "attendance")
