"""
renderers.py — Preview, print and text-export output for compiled reports.

- Preview: HTML fragment for the in-app scrollable report view
- Print:   complete, self-contained HTML document (single or staggered batch)
- Text:    fixed-width plain-text report card for download

Every channel formats the same CompiledReport, so grades, pass counts and
department grouping are identical across them. The text export grades the
displayed total; preview and print grade coursework and exam separately.
"""

import asyncio
import logging
import re
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional

from jinja2 import Environment, FileSystemLoader, select_autoescape

from core.compiler import EMPTY_SUBJECTS_MESSAGE, CompiledReport, CompiledSubject
from core.config import RenderConfig
from core.grading import format_mark, round_half_up

logger = logging.getLogger(__name__)

TEMPLATES_DIR = Path(__file__).resolve().parent.parent / "templates"

_env = Environment(
    loader=FileSystemLoader(str(TEMPLATES_DIR)),
    autoescape=select_autoescape(["html"]),
    trim_blocks=True,
    lstrip_blocks=True,
)

TEXT_WIDTH = 60
TEXT_COLUMNS = (("Subject", 20), ("Coursework", 12), ("Exam", 8), ("Total", 8))


# ── Helpers ─────────────────────────────────────────────────────────

def resolve_asset_url(ref: Optional[str], base_url: str) -> Optional[str]:
    """Absolute URLs pass through; relative paths are joined to the configured host."""
    if not ref or not str(ref).strip():
        return None
    ref = str(ref).strip()
    if re.match(r"^(https?:)?//", ref) or ref.startswith("data:"):
        return ref
    return f"{base_url.rstrip('/')}/{ref.lstrip('/')}"


def _rounded(mark: Optional[float]) -> str:
    return "-" if mark is None else str(round_half_up(mark))


def _status_label(compiled: CompiledReport) -> str:
    return "Official Report" if compiled.report.finalized else "Draft Report"


def _contact_line(config: RenderConfig) -> str:
    return " • ".join(p for p in (config.school_name, config.school_address, config.school_phone) if p)


def _row_context(item: CompiledSubject, base_url: str) -> Dict[str, Any]:
    s = item.subject
    return {
        "subject": s.subject_name,
        "coursework": _rounded(s.coursework_mark),
        "coursework_grade": item.coursework_grade,
        "exam": _rounded(s.exam_mark),
        "exam_grade": item.exam_grade,
        "comment": (s.comment or "").strip() or None,
        "signature": resolve_asset_url(s.teacher_signature_url, base_url),
    }


def _view_context(compiled: CompiledReport, config: RenderConfig, scope: str) -> Dict[str, Any]:
    """Template context shared by the preview and print channels."""
    report = compiled.report
    assets = compiled.model.assets
    base = config.api_base_url
    return {
        "scope": scope,
        "primary_color": config.primary_color,
        "secondary_color": config.secondary_color,
        "school_name": config.school_name,
        "ministry_name": config.ministry_name,
        "report_title": config.report_title,
        "school_logo": resolve_asset_url(assets.school_logo, base),
        "ministry_logo": resolve_asset_url(assets.ministry_logo, base),
        "watermark": resolve_asset_url(assets.watermark, base),
        "student_name": report.student_name,
        "term": report.term,
        "academic_year": report.academic_year,
        "info_fields": [
            ("Name of Student", report.student_name),
            ("Form", f"{report.form} {report.section}".strip()),
            ("Subjects Recorded", compiled.subject_count),
            ("No. Passed", compiled.pass_count),
            ("Year", report.academic_year),
            ("Term", report.term),
        ],
        "groups": [
            {
                "label": group.category.value.upper(),
                "rows": [_row_context(item, base) for item in group.subjects],
            }
            for group in compiled.groups
        ],
        "empty_message": EMPTY_SUBJECTS_MESSAGE if compiled.is_empty else None,
        "overall_comment": report.overall_comment,
        "class_teacher_signature": resolve_asset_url(assets.class_teacher_signature, base),
        "principal_signature": resolve_asset_url(assets.principal_signature, base),
        "status_label": _status_label(compiled),
        "contact_line": _contact_line(config),
    }


# ── Preview channel ─────────────────────────────────────────────────

def render_preview(compiled: CompiledReport, config: RenderConfig) -> str:
    """HTML fragment for the in-app report viewer."""
    template = _env.get_template("preview.html")
    return template.render(**_view_context(compiled, config, scope=".report-preview"))


# ── Print channel ───────────────────────────────────────────────────

def render_print(compiled: CompiledReport, config: RenderConfig) -> str:
    """Complete HTML document ready for a print window; the caller presents it."""
    template = _env.get_template("print.html")
    return template.render(**_view_context(compiled, config, scope="body"))


async def render_print_batch(
    reports: Iterable[CompiledReport],
    config: RenderConfig,
    delay: Optional[float] = None,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> List[str]:
    """
    Render print documents one after another with a pause between items.

    The pause keeps hosts that open one print window per document from
    throttling or blocking the batch. No pause precedes the first item.
    """
    pause = config.print_stagger_seconds if delay is None else max(0.0, delay)
    documents: List[str] = []
    for index, compiled in enumerate(reports):
        if index and pause:
            await sleep(pause)
        documents.append(render_print(compiled, config))
    logger.info("Rendered %d print documents", len(documents))
    return documents


# ── Text-export channel ─────────────────────────────────────────────

def _text_row(item: CompiledSubject) -> str:
    s = item.subject
    total = item.total
    grade = item.total_grade if total is not None else "N/A"
    cells = (
        s.subject_name,
        format_mark(s.coursework_mark, missing="N/A"),
        format_mark(s.exam_mark, missing="N/A"),
        format_mark(total, missing="N/A"),
    )
    # Long names are cut so the following columns stay aligned.
    return "".join(cell[: width - 1].ljust(width) for cell, (_, width) in zip(cells, TEXT_COLUMNS)) + grade


def _report_date(compiled: CompiledReport) -> str:
    created = compiled.report.created_at
    return created.strftime("%d %B %Y") if created else "N/A"


def render_text(compiled: CompiledReport, config: RenderConfig) -> str:
    """Fixed-width plain-text report card."""
    report = compiled.report
    banner = "=" * TEXT_WIDTH
    rule = "-" * TEXT_WIDTH
    lines: List[str] = [
        banner,
        config.school_name.upper().center(TEXT_WIDTH).rstrip(),
        "ACADEMIC REPORT CARD".center(TEXT_WIDTH).rstrip(),
        banner,
        "",
        f"Student Name: {report.student_name}",
        f"Form: {report.form} {report.section}".rstrip(),
        f"Term: {report.term} {report.academic_year}".rstrip(),
        f"Report Date: {_report_date(compiled)}",
        f"Subjects Passed: {compiled.pass_count} of {compiled.subject_count}",
        "",
        "SUBJECT RESULTS:",
        rule,
    ]

    if compiled.is_empty:
        lines += [EMPTY_SUBJECTS_MESSAGE, ""]
    else:
        lines.append("".join(name.ljust(width) for name, width in TEXT_COLUMNS) + "Grade")
        lines.append(rule)
        for group in compiled.groups:
            lines.append(f"[{group.category.value.upper()}]")
            lines += [_text_row(item) for item in group.subjects]
        lines.append("")

        lines += ["TEACHER COMMENTS:", rule]
        for item in compiled.subjects:
            comment = (item.subject.comment or "").strip()
            if comment:
                lines += [f"{item.subject.subject_name}:", f"  {comment}", ""]

    if report.overall_comment and report.overall_comment.strip():
        lines += ["CLASS TEACHER'S COMMENT:", rule, report.overall_comment.strip(), ""]

    lines += [banner, config.school_name]
    contact = " • ".join(p for p in (config.school_address, config.school_phone) if p)
    if contact:
        lines.append(contact)
    lines += [f"Report Status: {_status_label(compiled)}", banner]
    return "\n".join(lines) + "\n"


def safe_token(value: str, fallback: str = "item") -> str:
    """Create filesystem-safe token for filenames."""
    token = re.sub(r"[^A-Za-z0-9._-]+", "_", str(value)).strip("._-")
    return token or fallback


def text_export_filename(compiled: CompiledReport) -> str:
    report = compiled.report
    parts = (
        safe_token(report.student_name, fallback="student"),
        safe_token(report.term, fallback="term"),
        safe_token(report.academic_year, fallback="year"),
    )
    return "_".join(parts) + "_Report.txt"
