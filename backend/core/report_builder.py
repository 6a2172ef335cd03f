"""
report_builder.py — PDF and Excel report generation.

Generates:
- Report Card PDF        (header with logos, student info grid, subject table
                          grouped by department, comments, signatures)
- Class Results Workbook (all subject rows, per-student summary, one sheet
                          per department)

Both consume compiled reports, so their grades and pass counts match the
preview, print and text channels. PDFs are A4, print-ready with school name /
date footer.
"""

import io
import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Sequence

import httpx
import numpy as np
import pandas as pd
from openpyxl import Workbook
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils.dataframe import dataframe_to_rows
from reportlab.lib import colors
from reportlab.lib.enums import TA_CENTER
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import cm, mm
from reportlab.lib.utils import ImageReader
from reportlab.platypus import Image, Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle
from xml.sax.saxutils import escape as xml_escape

from core.categorizer import Category
from core.compiler import EMPTY_SUBJECTS_MESSAGE, CompiledReport
from core.config import RenderConfig
from core.grading import PASS_MARK, round_half_up
from core.renderers import resolve_asset_url

logger = logging.getLogger(__name__)

ImageLoader = Callable[[str], Optional[bytes]]


# ── Colour palette ──────────────────────────────────────────────────

GRID_GREY = colors.HexColor("#333333")
MUTED = colors.HexColor("#999999")
WHITE = colors.white


# ── Helpers ─────────────────────────────────────────────────────────

def _safe_float(val) -> Optional[float]:
    try:
        v = float(val)
        return None if np.isnan(v) or np.isinf(v) else round(v, 2)
    except (TypeError, ValueError):
        return None


def fetch_asset_bytes(url: str, timeout: float = 5.0) -> Optional[bytes]:
    """Download an image; any failure means the asset is unavailable."""
    try:
        response = httpx.get(url, timeout=timeout, follow_redirects=True)
        response.raise_for_status()
    except httpx.HTTPError as exc:
        logger.warning("Asset %s unavailable: %s", url, exc)
        return None
    return response.content or None


def _asset_image(loader: ImageLoader, url: Optional[str], width: float, height: float) -> Optional[Image]:
    """ReportLab image for an asset URL, or None when it cannot be loaded."""
    if not url:
        return None
    data = loader(url)
    if not data:
        return None
    try:
        ImageReader(io.BytesIO(data)).getSize()
    except Exception as exc:
        logger.warning("Asset %s is not a readable image: %s", url, exc)
        return None
    return Image(io.BytesIO(data), width=width, height=height, kind="proportional")


def _footer(canvas, doc, school_name: str):
    """Draw school name and date in the page footer."""
    canvas.saveState()
    canvas.setFont("Helvetica", 8)
    canvas.setFillColor(colors.grey)
    footer_text = f"{school_name} — Generated {datetime.now().strftime('%d %B %Y, %H:%M')}"
    canvas.drawString(2 * cm, 1.2 * cm, footer_text)
    canvas.drawRightString(A4[0] - 2 * cm, 1.2 * cm, f"Page {doc.page}")
    canvas.restoreState()


def _draw_security_marks(canvas, verification_code: str):
    """Draw faint anti-forgery marks in the background."""
    canvas.saveState()
    canvas.setFillColor(colors.Color(0.75, 0.75, 0.75, alpha=0.16))
    canvas.setFont("Helvetica-Bold", 34)
    canvas.translate(4.5 * cm, 13.5 * cm)
    canvas.rotate(32)
    canvas.drawString(0, 0, "OFFICIAL SCHOOL REPORT")
    canvas.restoreState()

    canvas.saveState()
    canvas.setFillColor(colors.Color(0.65, 0.65, 0.65, alpha=0.14))
    canvas.setFont("Helvetica-Oblique", 8)
    canvas.drawString(2.0 * cm, 2.0 * cm, f"Verification Code: {verification_code}")
    canvas.restoreState()


def _styles(config: RenderConfig):
    """Return custom paragraph styles."""
    ss = getSampleStyleSheet()
    primary = colors.HexColor(config.primary_color)
    return {
        "school": ParagraphStyle(
            "SchoolName", parent=ss["Title"],
            fontSize=16, leading=20, textColor=primary, alignment=TA_CENTER,
        ),
        "title": ParagraphStyle(
            "ReportTitle", parent=ss["Normal"],
            fontSize=11, leading=14, textColor=primary, alignment=TA_CENTER,
            fontName="Helvetica-Bold",
        ),
        "caption": ParagraphStyle(
            "Caption", parent=ss["Normal"],
            fontSize=7, leading=9, alignment=TA_CENTER, fontName="Helvetica-Bold",
        ),
        "label": ParagraphStyle(
            "Label", parent=ss["Normal"],
            fontSize=9, leading=12, textColor=primary, fontName="Helvetica-Bold",
        ),
        "body": ParagraphStyle(
            "CustomBody", parent=ss["Normal"],
            fontSize=9, leading=12, textColor=colors.black,
        ),
        "cell": ParagraphStyle(
            "Cell", parent=ss["Normal"],
            fontSize=7, leading=9,
        ),
        "small": ParagraphStyle(
            "CustomSmall", parent=ss["Normal"],
            fontSize=7, leading=9, textColor=MUTED,
        ),
        "empty": ParagraphStyle(
            "EmptyState", parent=ss["Normal"],
            fontSize=10, leading=14, alignment=TA_CENTER, textColor=colors.grey,
        ),
    }


def _text(value: Any) -> str:
    return xml_escape(str(value if value is not None else ""))


def _pdf_mark(mark: Optional[float]) -> str:
    return "-" if mark is None else str(round_half_up(mark))


# ═══════════════════════════════════════════════════════════════════
# 1. REPORT CARD PDF
# ═══════════════════════════════════════════════════════════════════

def _header_table(compiled: CompiledReport, config: RenderConfig, st, loader: ImageLoader) -> Table:
    assets = compiled.model.assets
    base = config.api_base_url
    school_logo = _asset_image(loader, resolve_asset_url(assets.school_logo, base), 3 * cm, 2 * cm)
    ministry_logo = _asset_image(loader, resolve_asset_url(assets.ministry_logo, base), 3 * cm, 2 * cm)

    left = [school_logo or Paragraph("No Logo", st["small"]), Paragraph(_text(config.school_name), st["caption"])]
    right = [ministry_logo or Paragraph("No Ministry Logo", st["small"]), Paragraph(_text(config.ministry_name), st["caption"])]
    center = [
        Paragraph(_text(config.school_name.upper()), st["school"]),
        Paragraph(_text(config.report_title.upper()), st["title"]),
    ]
    table = Table([[left, center, right]], colWidths=[3.5 * cm, 10 * cm, 3.5 * cm])
    table.setStyle(TableStyle([
        ("VALIGN", (0, 0), (-1, -1), "MIDDLE"),
        ("ALIGN", (0, 0), (-1, -1), "CENTER"),
        ("LINEBELOW", (0, 0), (-1, 0), 2, colors.HexColor(config.primary_color)),
        ("BOTTOMPADDING", (0, 0), (-1, -1), 8),
    ]))
    return table


def _identity_table(compiled: CompiledReport, config: RenderConfig, st) -> Table:
    report = compiled.report

    def field(label, value):
        return Paragraph(f"<font color='{config.primary_color}'><b>{_text(label)}:</b></font> {_text(value)}", st["body"])

    rows = [
        [field("Name of Student", report.student_name), field("Form", f"{report.form} {report.section}".strip()),
         field("Subjects Recorded", compiled.subject_count)],
        [field("No. Passed", compiled.pass_count), field("Year", report.academic_year), field("Term", report.term)],
    ]
    table = Table(rows, colWidths=[6 * cm, 5.5 * cm, 5.5 * cm])
    table.setStyle(TableStyle([
        ("LINEBELOW", (0, 0), (-1, -1), 0.5, colors.HexColor("#cccccc")),
        ("VALIGN", (0, 0), (-1, -1), "MIDDLE"),
        ("TOPPADDING", (0, 0), (-1, -1), 4),
        ("BOTTOMPADDING", (0, 0), (-1, -1), 4),
    ]))
    return table


def _subject_table(compiled: CompiledReport, config: RenderConfig, st, loader: ImageLoader) -> Table:
    primary = colors.HexColor(config.primary_color)
    secondary = colors.HexColor(config.secondary_color)
    data: List[List[Any]] = [
        ["SUBJECT", "COURSE WORK MARK", "", "EXAM MARK", "", "SUBJECT T'R's COMMENT", "TEACHER'S SIGNATURE"],
        ["", "%", "GR", "%", "GR", "", ""],
    ]
    style_cmds = [
        ("SPAN", (0, 0), (0, 1)),
        ("SPAN", (1, 0), (2, 0)),
        ("SPAN", (3, 0), (4, 0)),
        ("SPAN", (5, 0), (5, 1)),
        ("SPAN", (6, 0), (6, 1)),
        ("BACKGROUND", (0, 0), (-1, 1), primary),
        ("TEXTCOLOR", (0, 0), (-1, 1), WHITE),
        ("FONTNAME", (0, 0), (-1, 1), "Helvetica-Bold"),
        ("FONTSIZE", (0, 0), (-1, -1), 7),
        ("ALIGN", (0, 0), (-1, -1), "CENTER"),
        ("VALIGN", (0, 0), (-1, -1), "MIDDLE"),
        ("GRID", (0, 0), (-1, -1), 0.5, GRID_GREY),
        ("TOPPADDING", (0, 0), (-1, -1), 3),
        ("BOTTOMPADDING", (0, 0), (-1, -1), 3),
    ]

    for group in compiled.groups:
        row_idx = len(data)
        data.append([group.category.value.upper(), "", "", "", "", "", ""])
        style_cmds += [
            ("SPAN", (0, row_idx), (-1, row_idx)),
            ("BACKGROUND", (0, row_idx), (-1, row_idx), secondary),
            ("FONTNAME", (0, row_idx), (-1, row_idx), "Helvetica-Bold"),
            ("ALIGN", (0, row_idx), (-1, row_idx), "LEFT"),
        ]
        for item in group.subjects:
            s = item.subject
            signature = _asset_image(
                loader, resolve_asset_url(s.teacher_signature_url, config.api_base_url), 1.4 * cm, 0.5 * cm
            )
            comment = (s.comment or "").strip()
            data.append([
                Paragraph(_text(s.subject_name), st["cell"]),
                _pdf_mark(s.coursework_mark),
                item.coursework_grade,
                _pdf_mark(s.exam_mark),
                item.exam_grade,
                Paragraph(_text(comment), st["cell"]) if comment else Paragraph("No comment", st["small"]),
                signature or Paragraph("No signature", st["small"]),
            ])

    table = Table(
        data,
        colWidths=[3.4 * cm, 1.3 * cm, 1.1 * cm, 1.3 * cm, 1.1 * cm, 5.3 * cm, 2.5 * cm],
        repeatRows=2,
    )
    table.setStyle(TableStyle(style_cmds))
    return table


def _signature_block(compiled: CompiledReport, config: RenderConfig, st, loader: ImageLoader) -> Table:
    assets = compiled.model.assets
    base = config.api_base_url

    def signature(ref):
        img = _asset_image(loader, resolve_asset_url(ref, base), 2.2 * cm, 0.8 * cm)
        return img or Paragraph("No signature uploaded", st["small"])

    rows = [
        [Paragraph("Form Teacher's Comments:", st["label"]), Paragraph(_text(compiled.report.overall_comment or ""), st["body"]), "SCHOOL\nSTAMP"],
        [Paragraph("Form Teacher's Signature:", st["label"]), signature(assets.class_teacher_signature), ""],
        [Paragraph("Principal's Signature:", st["label"]), signature(assets.principal_signature), ""],
        [Paragraph("Parent's Signature:", st["label"]), "___________________________", ""],
    ]
    table = Table(rows, colWidths=[4.2 * cm, 8 * cm, 4.8 * cm], rowHeights=[None, 1.1 * cm, 1.1 * cm, 1.1 * cm])
    table.setStyle(TableStyle([
        ("LINEBELOW", (0, 0), (1, -1), 0.5, GRID_GREY),
        ("VALIGN", (0, 0), (-1, -1), "MIDDLE"),
        ("SPAN", (2, 0), (2, -1)),
        ("BOX", (2, 0), (2, -1), 1.5, GRID_GREY),
        ("ALIGN", (2, 0), (2, -1), "CENTER"),
        ("FONTNAME", (2, 0), (2, -1), "Helvetica-Bold"),
        ("FONTSIZE", (0, 0), (-1, -1), 9),
    ]))
    return table


def generate_report_card_pdf(
    output_path: str,
    compiled: CompiledReport,
    config: RenderConfig,
    image_loader: Optional[ImageLoader] = None,
):
    """Generate a one-report A4 report card PDF laid out like the print document."""
    st = _styles(config)
    loader = image_loader or (lambda url: fetch_asset_bytes(url, timeout=config.backend_timeout_seconds))
    report = compiled.report
    story = []

    story.append(_header_table(compiled, config, st, loader))
    story.append(Spacer(1, 5 * mm))
    story.append(_identity_table(compiled, config, st))
    story.append(Spacer(1, 5 * mm))

    if compiled.is_empty:
        story.append(Spacer(1, 6 * mm))
        story.append(Paragraph(EMPTY_SUBJECTS_MESSAGE, st["empty"]))
        story.append(Spacer(1, 6 * mm))
    else:
        story.append(_subject_table(compiled, config, st, loader))
    story.append(Spacer(1, 8 * mm))

    story.append(_signature_block(compiled, config, st, loader))
    story.append(Spacer(1, 4 * mm))
    status = "Official Report" if report.finalized else "Draft Report"
    story.append(Paragraph(
        _text(f"{report.student_name} - {report.term} {report.academic_year} • {status}"),
        st["small"],
    ))

    verification_code = f"{report.id or report.student_id or 'R'}-{datetime.now().strftime('%Y%m%d')}"

    def _page_decor(c, d):
        _draw_security_marks(c, verification_code)
        _footer(c, d, config.school_name)

    doc = SimpleDocTemplate(
        output_path, pagesize=A4,
        leftMargin=2 * cm, rightMargin=2 * cm,
        topMargin=1.5 * cm, bottomMargin=2.5 * cm,
        title=f"Report Card - {report.student_name}",
    )
    doc.build(story, onFirstPage=_page_decor, onLaterPages=_page_decor)


# ═══════════════════════════════════════════════════════════════════
# 2. CLASS RESULTS WORKBOOK
# ═══════════════════════════════════════════════════════════════════

SUBJECT_COLUMNS = [
    "Student", "Form", "Term", "Academic Year", "Category", "Subject",
    "Coursework", "CW Grade", "Exam", "Exam Grade", "Total", "Total Grade", "Passed",
]
SUMMARY_COLUMNS = ["Student", "Form", "Term", "Academic Year", "Subjects", "Passed", "Mean Total", "Status"]


def _subject_rows(compiled_reports: Sequence[CompiledReport]) -> List[Dict[str, Any]]:
    rows = []
    for compiled in compiled_reports:
        report = compiled.report
        for group in compiled.groups:
            for item in group.subjects:
                s = item.subject
                rows.append({
                    "Student": report.student_name,
                    "Form": f"{report.form} {report.section}".strip(),
                    "Term": report.term,
                    "Academic Year": report.academic_year,
                    "Category": group.category.value,
                    "Subject": s.subject_name,
                    "Coursework": s.coursework_mark,
                    "CW Grade": item.coursework_grade,
                    "Exam": s.exam_mark,
                    "Exam Grade": item.exam_grade,
                    "Total": item.total,
                    "Total Grade": item.total_grade,
                    "Passed": "Yes" if item.passed else "No",
                })
    return rows


def _summary_rows(compiled_reports: Sequence[CompiledReport]) -> List[Dict[str, Any]]:
    rows = []
    for compiled in compiled_reports:
        report = compiled.report
        totals = pd.to_numeric(pd.Series([s.total for s in compiled.subjects], dtype=object), errors="coerce")
        mean_total = _safe_float(totals.mean()) if len(totals) else None
        rows.append({
            "Student": report.student_name,
            "Form": f"{report.form} {report.section}".strip(),
            "Term": report.term,
            "Academic Year": report.academic_year,
            "Subjects": compiled.subject_count,
            "Passed": compiled.pass_count,
            "Mean Total": mean_total,
            "Status": "Official Report" if report.finalized else "Draft Report",
        })
    return rows


def _frame(rows: List[Dict[str, Any]], columns: List[str]) -> pd.DataFrame:
    df = pd.DataFrame(rows, columns=columns)
    # Missing marks stay empty cells rather than NaN.
    return df.astype(object).where(pd.notna(df), None)


def generate_class_results_workbook(
    output_path: str,
    compiled_reports: Sequence[CompiledReport],
    config: RenderConfig,
):
    """Export compiled reports to Excel: all rows, per-student summary, per-department sheets."""
    subjects_df = _frame(_subject_rows(compiled_reports), SUBJECT_COLUMNS)
    summary_df = _frame(_summary_rows(compiled_reports), SUMMARY_COLUMNS)

    # Styling definitions
    header_font = Font(bold=True, color="FFFFFF", size=11)
    header_fill = PatternFill(
        start_color=config.primary_color.lstrip("#"), end_color=config.primary_color.lstrip("#"), fill_type="solid"
    )
    red_fill = PatternFill(start_color="fadbd8", end_color="fadbd8", fill_type="solid")
    green_fill = PatternFill(start_color="d5f5e3", end_color="d5f5e3", fill_type="solid")
    yellow_fill = PatternFill(start_color="fef9e7", end_color="fef9e7", fill_type="solid")
    thin_border = Border(
        left=Side(style="thin"), right=Side(style="thin"),
        top=Side(style="thin"), bottom=Side(style="thin"),
    )

    def _style_sheet(ws, dataframe, score_column):
        """Apply formatting to a worksheet."""
        for cell in ws[1]:
            cell.font = header_font
            cell.fill = header_fill
            cell.alignment = Alignment(horizontal="center")
            cell.border = thin_border

        score_idx = list(dataframe.columns).index(score_column) + 1 if score_column in dataframe.columns else None

        for row in ws.iter_rows(min_row=2, max_row=ws.max_row):
            for cell in row:
                cell.border = thin_border
                cell.alignment = Alignment(horizontal="center")

            if score_idx and row[score_idx - 1].value is not None:
                try:
                    val = float(row[score_idx - 1].value)
                    fill = green_fill if val >= 70 else (yellow_fill if val >= PASS_MARK else red_fill)
                    for cell in row:
                        cell.fill = fill
                except (ValueError, TypeError):
                    pass

        ws.freeze_panes = "A2"

        for col_cells in ws.columns:
            max_len = max(len(str(cell.value or "")) for cell in col_cells)
            ws.column_dimensions[col_cells[0].column_letter].width = min(max_len + 4, 30)

    wb = Workbook()

    # ── Sheet 1: All Subjects ───────────────────────────────────────
    ws_all = wb.active
    ws_all.title = "All Subjects"
    ws_all.sheet_properties.tabColor = config.primary_color.lstrip("#")
    for row in dataframe_to_rows(subjects_df, index=False, header=True):
        ws_all.append(row)
    _style_sheet(ws_all, subjects_df, "Total")

    # ── Sheet 2: Summary ────────────────────────────────────────────
    ws_summary = wb.create_sheet(title="Summary")
    for row in dataframe_to_rows(summary_df, index=False, header=True):
        ws_summary.append(row)
    _style_sheet(ws_summary, summary_df, "Mean Total")

    # ── Per-department sheets ───────────────────────────────────────
    tab_colors = ["0f3460", "e94560", "2ecc71", "f39c12"]
    for i, category in enumerate(Category):
        cat_df = subjects_df[subjects_df["Category"] == category.value]
        if cat_df.empty:
            continue
        ws = wb.create_sheet(title=category.value.replace("&", "and")[:28])
        ws.sheet_properties.tabColor = tab_colors[i % len(tab_colors)]
        for row in dataframe_to_rows(cat_df, index=False, header=True):
            ws.append(row)
        _style_sheet(ws, cat_df, "Total")

    wb.save(output_path)
