from __future__ import annotations

import logging
import os
from datetime import datetime
from io import BytesIO
from typing import Any, Sequence
from xml.sax.saxutils import escape

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4, landscape
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import mm
from reportlab.lib.utils import ImageReader
from reportlab.pdfgen import canvas
from reportlab.platypus import LongTable, Paragraph, SimpleDocTemplate, TableStyle
from reportlab.platypus.doctemplate import LayoutError

from .config import settings
from .errors import ExportError
from .reports import day_cell_code

logger = logging.getLogger(__name__)

PDF_MEDIA_TYPE = "application/pdf"

LEFT_MARGIN = 10 * mm
RIGHT_MARGIN = 10 * mm
BOTTOM_MARGIN = 22 * mm

HEADER_TOP_MARGIN = 10 * mm
HEADER_HEIGHT = 36 * mm
HEADER_LEFT_PADDING = 15 * mm
HEADER_RIGHT_PADDING = 15 * mm
HEADER_LOGO_SIZE = 24 * mm
HEADER_AFTER_GAP = 4 * mm
HEADER_TITLE_FONT_SIZE = 16.0
HEADER_SUBTITLE_FONT_SIZE = 10.0
HEADER_ORG_FONT_SIZE = 16.0

# Muster roll column widths; day columns share what is left of the page width.
SR_COLUMN_WIDTH = 8 * mm
NAME_COLUMN_WIDTH = 28 * mm
DESIGNATION_COLUMN_WIDTH = 12 * mm
SHIFT_COLUMN_WIDTH = 12 * mm
TOTAL_COLUMN_WIDTH = 10 * mm
MIN_DAY_COLUMN_WIDTH = 6 * mm

NAME_CHAR_BUDGET = 25
NAME_TRUNCATED_LENGTH = 22
LOCATION_CHAR_BUDGET = 30

PDF_LOGO_PATH = os.path.join(os.path.dirname(__file__), "assets", "logo.png")

PALETTE = {
    "brand": colors.HexColor("#8B5CF6"),
    "text": colors.HexColor("#0F172A"),
    "muted": colors.HexColor("#64748B"),
    "line": colors.HexColor("#C8C8C8"),
    "stripe_even": colors.white,
    "stripe_odd": colors.HexColor("#F9FAFB"),
    "grid": colors.HexColor("#C8C8C8"),
    "totals": colors.HexColor("#E5ECF5"),
}

_STYLES = getSampleStyleSheet()
TABLE_HEADER_STYLE = ParagraphStyle(
    "table-header",
    parent=_STYLES["BodyText"],
    fontName="Helvetica-Bold",
    fontSize=8,
    leading=10,
    textColor=colors.white,
    alignment=1,
    wordWrap="CJK",
)
TABLE_CELL_STYLE = ParagraphStyle(
    "table-cell",
    parent=_STYLES["BodyText"],
    fontName="Helvetica",
    fontSize=7,
    leading=9,
    textColor=PALETTE["text"],
    wordWrap="CJK",
)
TABLE_TOTAL_STYLE = ParagraphStyle(
    "table-total",
    parent=TABLE_CELL_STYLE,
    fontName="Helvetica-Bold",
)
MUSTER_HEADER_STYLE = ParagraphStyle(
    "muster-header",
    parent=TABLE_HEADER_STYLE,
    fontSize=6,
    leading=7,
)
MUSTER_CELL_STYLE = ParagraphStyle(
    "muster-cell",
    parent=TABLE_CELL_STYLE,
    fontSize=6,
    leading=7,
)
MUSTER_NAME_STYLE = ParagraphStyle(
    "muster-name",
    parent=MUSTER_CELL_STYLE,
    fontSize=5.5,
)
MUSTER_DAY_STYLE = ParagraphStyle(
    "muster-day",
    parent=MUSTER_CELL_STYLE,
    fontSize=4,
    leading=4.8,
    alignment=1,
)
MUSTER_TOTAL_STYLE = ParagraphStyle(
    "muster-total",
    parent=MUSTER_CELL_STYLE,
    fontName="Helvetica-Bold",
    alignment=1,
)


def _safe_text(value: Any, *, fallback: str = "-") -> str:
    if value is None:
        return fallback
    text = str(value).strip()
    return text if text else fallback


def truncate_name(name: str) -> str:
    if len(name) > NAME_CHAR_BUDGET:
        return name[:NAME_TRUNCATED_LENGTH] + "..."
    return name


def day_column_width(available_width: float, day_count: int) -> float:
    if day_count <= 0:
        return MIN_DAY_COLUMN_WIDTH
    return max(MIN_DAY_COLUMN_WIDTH, available_width / day_count)


def resolve_logo_path() -> str | None:
    for candidate in (settings.logo_path, PDF_LOGO_PATH):
        if candidate and os.path.exists(candidate):
            return candidate
    return None


def _fit_text(canv: canvas.Canvas, text: str, *, font_name: str, font_size: float, max_width: float) -> str:
    if max_width <= 0:
        return ""

    cleaned = _safe_text(text, fallback="")
    if not cleaned:
        return ""

    if canv.stringWidth(cleaned, font_name, font_size) <= max_width:
        return cleaned

    suffix = "..."
    clipped = cleaned
    while clipped and canv.stringWidth(clipped + suffix, font_name, font_size) > max_width:
        clipped = clipped[:-1]
    return (clipped + suffix) if clipped else suffix


def _cell_paragraph(value: Any, *, style: ParagraphStyle, fallback: str = "-") -> Paragraph:
    text = _safe_text(value, fallback=fallback)
    return Paragraph(escape(text), style)


def _lines_paragraph(lines: Sequence[str], *, style: ParagraphStyle) -> Paragraph:
    return Paragraph("<br/>".join(escape(line) for line in lines), style)


def _draw_logo(canv: canvas.Canvas, *, logo_path: str | None, x: float, y: float, size: float) -> float:
    """Draw the logo scaled into a square; returns the width used (0 when there is no logo)."""
    if not logo_path:
        return 0.0
    try:
        reader = ImageReader(logo_path)
        image_width, image_height = reader.getSize()
    except OSError as exc:
        logger.warning("Logo %s could not be read, header drawn without it: %s", logo_path, exc)
        return 0.0
    if image_width <= 0 or image_height <= 0:
        return 0.0

    scale = min(size / float(image_width), size / float(image_height))
    draw_w = float(image_width) * scale
    draw_h = float(image_height) * scale
    canv.drawImage(
        reader,
        x,
        y + ((size - draw_h) / 2.0),
        width=draw_w,
        height=draw_h,
        preserveAspectRatio=False,
        mask="auto",
    )
    return draw_w


def draw_header(
    canv: canvas.Canvas,
    page_width: float,
    page_height: float,
    *,
    title: str,
    subtitle_lines: Sequence[str],
    site: dict[str, Any] | None,
    logo_path: str | None,
) -> None:
    header_top = page_height - HEADER_TOP_MARGIN
    header_bottom = header_top - HEADER_HEIGHT

    canv.saveState()
    logo_width = _draw_logo(
        canv,
        logo_path=logo_path,
        x=HEADER_LEFT_PADDING,
        y=header_top - HEADER_LOGO_SIZE,
        size=HEADER_LOGO_SIZE,
    )

    org_x = HEADER_LEFT_PADDING + (logo_width + 10 * mm if logo_width else 0.0)
    org_y = header_top - 8 * mm
    canv.setFillColor(PALETTE["text"])
    canv.setFont("Helvetica-Bold", HEADER_ORG_FONT_SIZE)
    canv.drawString(org_x, org_y, settings.org_name)
    canv.setFillColor(PALETTE["muted"])
    canv.setFont("Helvetica", 9)
    canv.drawString(org_x, org_y - 6 * mm, settings.org_tagline)
    if site:
        canv.setFillColor(PALETTE["text"])
        canv.setFont("Helvetica-Bold", 10)
        canv.drawString(org_x, org_y - 12 * mm, f"Site: {_safe_text(site.get('name'), fallback='N/A')}")
        if site.get("location"):
            canv.setFont("Helvetica", 8)
            canv.drawString(org_x, org_y - 17 * mm, f"Location: {site['location']}")

    max_centered = page_width - (2 * HEADER_RIGHT_PADDING)
    title_text = _fit_text(
        canv,
        _safe_text(title, fallback="Attendance Report"),
        font_name="Helvetica-Bold",
        font_size=HEADER_TITLE_FONT_SIZE,
        max_width=max_centered,
    )
    title_y = header_top - 20 * mm
    canv.setFillColor(PALETTE["text"])
    canv.setFont("Helvetica-Bold", HEADER_TITLE_FONT_SIZE)
    canv.drawCentredString(page_width / 2.0, title_y, title_text)

    canv.setFillColor(PALETTE["muted"])
    canv.setFont("Helvetica", HEADER_SUBTITLE_FONT_SIZE)
    subtitle_y = title_y - 6 * mm
    for line in list(subtitle_lines)[:3]:
        subtitle_text = _fit_text(
            canv,
            line,
            font_name="Helvetica",
            font_size=HEADER_SUBTITLE_FONT_SIZE,
            max_width=max_centered,
        )
        canv.drawCentredString(page_width / 2.0, subtitle_y, subtitle_text)
        subtitle_y -= 5 * mm

    canv.setStrokeColor(PALETTE["brand"])
    canv.setLineWidth(1.2)
    canv.line(HEADER_LEFT_PADDING, header_bottom, page_width - HEADER_RIGHT_PADDING, header_bottom)
    canv.restoreState()


class NumberedCanvas(canvas.Canvas):
    footer_lines: tuple[str, ...] = ()

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self._saved_page_states: list[dict[str, Any]] = []

    def showPage(self) -> None:
        self._saved_page_states.append(dict(self.__dict__))
        self._startPage()

    def save(self) -> None:
        total_pages = len(self._saved_page_states)
        for state in self._saved_page_states:
            self.__dict__.update(state)
            self._draw_footer(total_pages)
            canvas.Canvas.showPage(self)
        canvas.Canvas.save(self)

    def _draw_footer(self, total_pages: int) -> None:
        page_width = self._pagesize[0]
        line_y = 15 * mm
        text_y = 10 * mm

        self.saveState()
        self.setStrokeColor(PALETTE["line"])
        self.setLineWidth(0.5)
        self.line(HEADER_LEFT_PADDING, line_y, page_width - HEADER_RIGHT_PADDING, line_y)

        self.setFillColor(PALETTE["muted"])
        self.setFont("Helvetica", 8)
        for offset, line in enumerate(self.footer_lines[:2]):
            self.drawCentredString(page_width / 2.0, text_y - (offset * 4.5 * mm), line)
        self.drawRightString(
            page_width - HEADER_RIGHT_PADDING,
            text_y - 4.5 * mm,
            f"Page {self._pageNumber} of {total_pages}",
        )
        self.restoreState()


def _canvas_maker(footer_lines: Sequence[str]) -> type[NumberedCanvas]:
    return type("ReportCanvas", (NumberedCanvas,), {"footer_lines": tuple(footer_lines)})


def _footer_lines(site: dict[str, Any] | None, generated_at: datetime) -> list[str]:
    generated = f"Generated on: {generated_at.strftime('%d %b %Y')} at {generated_at.strftime('%I:%M %p')}"
    if site:
        generated = f"Site: {_safe_text(site.get('name'), fallback='N/A')} | {generated}"
    return [f"{settings.org_name} - {settings.org_tagline}", generated]


def _build_table(
    *,
    headers: Sequence[str],
    body_rows: Sequence[Sequence[str]],
    col_widths: Sequence[float],
    total_row: Sequence[str] | None = None,
) -> LongTable:
    header = [_cell_paragraph(cell, style=TABLE_HEADER_STYLE, fallback="") for cell in headers]
    table_data: list[list[Any]] = [header]

    if body_rows:
        for row in body_rows:
            normalized = [_cell_paragraph(cell, style=TABLE_CELL_STYLE, fallback="-") for cell in row]
            table_data.append(normalized[: len(headers)])
    else:
        fallback_row = [_cell_paragraph("No data", style=TABLE_CELL_STYLE)] + [
            _cell_paragraph("", style=TABLE_CELL_STYLE, fallback="")
            for _ in range(len(headers) - 1)
        ]
        table_data.append(fallback_row)

    total_index = -1
    if total_row is not None:
        total_index = len(table_data)
        table_data.append([_cell_paragraph(cell, style=TABLE_TOTAL_STYLE, fallback="") for cell in total_row])

    table = LongTable(table_data, colWidths=list(col_widths), repeatRows=1, hAlign="LEFT")
    style_commands: list[tuple[Any, ...]] = [
        ("BACKGROUND", (0, 0), (-1, 0), PALETTE["brand"]),
        ("GRID", (0, 0), (-1, -1), 0.3, PALETTE["grid"]),
        ("VALIGN", (0, 0), (-1, -1), "MIDDLE"),
        ("LEFTPADDING", (0, 0), (-1, -1), 4),
        ("RIGHTPADDING", (0, 0), (-1, -1), 4),
        ("TOPPADDING", (0, 0), (-1, -1), 3),
        ("BOTTOMPADDING", (0, 0), (-1, -1), 3),
    ]
    body_end = total_index - 1 if total_index >= 0 else len(table_data) - 1
    for row_index in range(1, body_end + 1):
        background = PALETTE["stripe_even"] if row_index % 2 else PALETTE["stripe_odd"]
        style_commands.append(("BACKGROUND", (0, row_index), (-1, row_index), background))
    if total_index >= 0:
        style_commands.append(("BACKGROUND", (0, total_index), (-1, total_index), PALETTE["totals"]))

    table.setStyle(TableStyle(style_commands))
    return table


def _muster_day_lines(row: dict[str, Any], day: int) -> list[str]:
    if day_cell_code(row, day) != "P":
        return ["-"]
    cell = row["attendance"][day]
    step_in = cell.get("stepIn") or ""
    step_out = cell.get("stepOut") or ""
    if step_in and step_out:
        return ["P", step_in, step_out]
    if step_in:
        return ["P", step_in]
    return ["P"]


def _build_muster_table(report: dict[str, Any], *, content_width: float) -> LongTable:
    days = [item["day"] for item in report["period"]["days"]]
    fixed_width = SR_COLUMN_WIDTH + NAME_COLUMN_WIDTH + DESIGNATION_COLUMN_WIDTH + SHIFT_COLUMN_WIDTH + TOTAL_COLUMN_WIDTH
    day_width = day_column_width(content_width - fixed_width, len(days))

    headers = ["SR", "NAME", "DESG", "SHIFT", *[f"{day:02d}" for day in days], "TOT"]
    table_data: list[list[Any]] = [[_cell_paragraph(cell, style=MUSTER_HEADER_STYLE) for cell in headers]]

    for row in report["rows"]:
        shift = _safe_text(row.get("shift"), fallback="N/A")
        table_data.append(
            [
                _cell_paragraph(row["sr"], style=MUSTER_TOTAL_STYLE),
                _cell_paragraph(truncate_name(_safe_text(row.get("name"), fallback="Unknown")), style=MUSTER_NAME_STYLE),
                _cell_paragraph(row.get("designation"), style=MUSTER_CELL_STYLE, fallback="N/A"),
                _cell_paragraph(shift[:3].upper(), style=MUSTER_CELL_STYLE),
                *[_lines_paragraph(_muster_day_lines(row, day), style=MUSTER_DAY_STYLE) for day in days],
                _cell_paragraph(row["total"], style=MUSTER_TOTAL_STYLE, fallback="0"),
            ]
        )

    total_row = report["total_row"]
    table_data.append(
        [
            _cell_paragraph("TOTAL", style=MUSTER_TOTAL_STYLE),
            _cell_paragraph("", style=MUSTER_CELL_STYLE, fallback=""),
            _cell_paragraph("", style=MUSTER_CELL_STYLE, fallback=""),
            _cell_paragraph("", style=MUSTER_CELL_STYLE, fallback=""),
            *[_cell_paragraph(total_row["days"].get(day, 0), style=MUSTER_TOTAL_STYLE) for day in days],
            _cell_paragraph(total_row["total"], style=MUSTER_TOTAL_STYLE),
        ]
    )

    col_widths = [
        SR_COLUMN_WIDTH,
        NAME_COLUMN_WIDTH,
        DESIGNATION_COLUMN_WIDTH,
        SHIFT_COLUMN_WIDTH,
        *[day_width] * len(days),
        TOTAL_COLUMN_WIDTH,
    ]
    table = LongTable(table_data, colWidths=col_widths, repeatRows=1, hAlign="LEFT")

    total_index = len(table_data) - 1
    style_commands: list[tuple[Any, ...]] = [
        ("BACKGROUND", (0, 0), (-1, 0), PALETTE["brand"]),
        ("GRID", (0, 0), (-1, -1), 0.1, PALETTE["grid"]),
        ("VALIGN", (0, 0), (-1, 0), "MIDDLE"),
        ("VALIGN", (0, 1), (-1, -1), "TOP"),
        ("LEFTPADDING", (0, 0), (-1, -1), 1),
        ("RIGHTPADDING", (0, 0), (-1, -1), 1),
        ("TOPPADDING", (0, 0), (-1, -1), 1.5),
        ("BOTTOMPADDING", (0, 0), (-1, -1), 1.5),
        ("LEFTPADDING", (4, 1), (-2, -1), 0.5),
        ("RIGHTPADDING", (4, 1), (-2, -1), 0.5),
        ("SPAN", (0, total_index), (3, total_index)),
        ("BACKGROUND", (0, total_index), (-1, total_index), PALETTE["totals"]),
    ]
    for row_index in range(1, total_index):
        if row_index % 2 == 0:
            style_commands.append(("BACKGROUND", (0, row_index), (-1, row_index), PALETTE["stripe_odd"]))

    table.setStyle(TableStyle(style_commands))
    return table


def _build_text_document(
    *,
    title: str,
    subtitle_lines: Sequence[str],
    lines: Sequence[str],
    footer_lines: Sequence[str],
    pagesize: tuple[float, float],
) -> bytes:
    buffer = BytesIO()
    canv = _canvas_maker(footer_lines)(buffer, pagesize=pagesize)
    page_width, page_height = pagesize
    bottom = BOTTOM_MARGIN + 4 * mm

    def _start_page() -> float:
        canv.setFont("Helvetica-Bold", 14)
        canv.drawString(LEFT_MARGIN, page_height - 15 * mm, f"{settings.org_name} - {title}")
        canv.setFont("Helvetica", 9)
        y = page_height - 21 * mm
        for subtitle in subtitle_lines:
            canv.drawString(LEFT_MARGIN, y, subtitle)
            y -= 5 * mm
        canv.setFont("Courier", 7)
        return y - 3 * mm

    y = _start_page()
    for line in lines:
        if y < bottom:
            canv.showPage()
            y = _start_page()
        canv.drawString(LEFT_MARGIN, y, _fit_text(canv, line, font_name="Courier", font_size=7, max_width=page_width - LEFT_MARGIN - RIGHT_MARGIN))
        y -= 3.6 * mm
    canv.showPage()
    canv.save()
    return buffer.getvalue()


def _build_document(
    *,
    title: str,
    subtitle_lines: Sequence[str],
    story: Sequence[Any],
    site: dict[str, Any] | None,
    pagesize: tuple[float, float],
    fallback_lines: Sequence[str],
) -> bytes:
    buffer = BytesIO()
    logo_path = resolve_logo_path()
    footer_lines = _footer_lines(site, datetime.now())

    def _draw_page_header(canv: canvas.Canvas, doc: SimpleDocTemplate) -> None:
        draw_header(
            canv,
            page_width=doc.pagesize[0],
            page_height=doc.pagesize[1],
            title=title,
            subtitle_lines=subtitle_lines,
            site=site,
            logo_path=logo_path,
        )

    doc = SimpleDocTemplate(
        buffer,
        pagesize=pagesize,
        leftMargin=LEFT_MARGIN,
        rightMargin=RIGHT_MARGIN,
        topMargin=HEADER_TOP_MARGIN + HEADER_HEIGHT + HEADER_AFTER_GAP,
        bottomMargin=BOTTOM_MARGIN,
        title=title,
        author=settings.org_name,
    )

    try:
        doc.build(
            list(story),
            onFirstPage=_draw_page_header,
            onLaterPages=_draw_page_header,
            canvasmaker=_canvas_maker(footer_lines),
        )
    except LayoutError as exc:
        logger.warning("PDF table layout failed for %r, emitting text-only document: %s", title, exc)
        try:
            return _build_text_document(
                title=title,
                subtitle_lines=subtitle_lines,
                lines=fallback_lines,
                footer_lines=footer_lines,
                pagesize=pagesize,
            )
        except Exception as fallback_exc:
            raise ExportError(f"PDF export failed: {fallback_exc}") from fallback_exc
    except Exception as exc:
        logger.error("PDF export failed for %r: %s", title, exc)
        raise ExportError(f"PDF export failed: {exc}") from exc
    return buffer.getvalue()


def _content_width(pagesize: tuple[float, float]) -> float:
    return pagesize[0] - LEFT_MARGIN - RIGHT_MARGIN


def _muster_fallback_lines(report: dict[str, Any]) -> list[str]:
    days = [item["day"] for item in report["period"]["days"]]
    lines = [f"{'SR':>3}  {'NAME':<25} {'SHIFT':<8} DAYS PRESENT"]
    for row in report["rows"]:
        present = ",".join(str(day) for day in days if day_cell_code(row, day) == "P") or "-"
        lines.append(f"{row['sr']:>3}  {truncate_name(row['name']):<25} {row['shift']:<8} {row['total']:>3}  [{present}]")
    lines.append(f"TOTAL present days: {report['total_row']['total']}")
    return lines


def generate_muster_roll_pdf(report: dict[str, Any]) -> bytes:
    pagesize = landscape(A4)
    period = report["period"]
    subtitle_lines = [f"Form XVI-1 | Period: {period['label']}"]
    if report.get("search"):
        subtitle_lines.append(f"Search: {report['search']}")

    story = [_build_muster_table(report, content_width=_content_width(pagesize))]
    return _build_document(
        title="MUSTER ROLL REPORT",
        subtitle_lines=subtitle_lines,
        story=story,
        site=report.get("site"),
        pagesize=pagesize,
        fallback_lines=_muster_fallback_lines(report),
    )


def generate_summary_pdf(report: dict[str, Any]) -> bytes:
    pagesize = A4
    content_width = _content_width(pagesize)
    rows = [
        [row["display_date"], f"{row['morning']}P", f"{row['evening']}P", f"{row['night']}P", f"{row['total']} Total Present"]
        for row in report["rows"]
    ]
    totals = report["totals"]
    story = [
        _build_table(
            headers=report["columns"],
            body_rows=rows,
            col_widths=[content_width * 0.20, content_width * 0.18, content_width * 0.18, content_width * 0.18, content_width * 0.26],
            total_row=["TOTAL", f"{totals['morning']}P", f"{totals['evening']}P", f"{totals['night']}P", f"{totals['total']} Total Present"],
        )
    ]
    return _build_document(
        title="SUMMARY REPORT",
        subtitle_lines=[f"Period: {report['period']['label']}"],
        story=story,
        site=report.get("site"),
        pagesize=pagesize,
        fallback_lines=[" | ".join(row) for row in rows],
    )


def generate_attendance_pdf(report: dict[str, Any]) -> bytes:
    pagesize = landscape(A4)
    rows = []
    for row in report["rows"]:
        location = _safe_text(row.get("location"), fallback="N/A")
        if len(location) > LOCATION_CHAR_BUDGET:
            location = location[:LOCATION_CHAR_BUDGET] + "..."
        rows.append(
            [
                row["employee"],
                row["manager"],
                row["shift"],
                row["step_in"],
                row["step_out"],
                row["duration"],
                location,
                row["status"],
            ]
        )

    widths_mm = (30, 25, 15, 35, 35, 20, 40, 20)
    scale = _content_width(pagesize) / (sum(widths_mm) * mm)
    story = [
        _build_table(
            headers=report["columns"],
            body_rows=rows,
            col_widths=[width * mm * scale for width in widths_mm],
        )
    ]
    subtitle_lines = [
        f"Period: {report['period']['label']}" if report["period"]["from"] else report["period"]["label"]
    ]
    if report["filters"]["lines"]:
        subtitle_lines.append(" | ".join(report["filters"]["lines"]))
    return _build_document(
        title="ATTENDANCE REPORT",
        subtitle_lines=subtitle_lines,
        story=story,
        site=report.get("site"),
        pagesize=pagesize,
        fallback_lines=[" | ".join(row) for row in rows],
    )
