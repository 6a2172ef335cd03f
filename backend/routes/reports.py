"""
Report routes — compile and render report cards through every output channel.
"""

import uuid
from pathlib import Path
from typing import AsyncIterator, List

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import FileResponse, HTMLResponse, PlainTextResponse
from pydantic import ValidationError
from starlette.background import BackgroundTask

from core.aggregator import (
    SchoolBackend,
    SourceFetchError,
    aggregate_class_reports,
    aggregate_report,
)
from core.compiler import CompiledReport, compile_report, compiled_to_dict
from core.config import RenderConfig, load_render_config
from core.grading import get_all_grade_thresholds
from core.models import ReportModel
from core.renderers import (
    render_preview,
    render_print,
    render_print_batch,
    render_text,
    safe_token,
    text_export_filename,
)
from core.report_builder import generate_class_results_workbook, generate_report_card_pdf

router = APIRouter()

UPLOAD_DIR = Path(__file__).resolve().parent.parent / "uploads"
REPORTS_DIR = UPLOAD_DIR / "reports"

CHANNELS = ("compile", "preview", "print", "text")
SOURCE_UNAVAILABLE = "Unable to load reports right now. Please try again later."


# ── Dependencies ────────────────────────────────────────────────────

def get_render_config() -> RenderConfig:
    return load_render_config()


async def get_backend(config: RenderConfig = Depends(get_render_config)) -> AsyncIterator[SchoolBackend]:
    async with SchoolBackend(config.backend_api_url, timeout=config.backend_timeout_seconds) as backend:
        yield backend


# ── Helpers ─────────────────────────────────────────────────────────

def _safe_unlink(path: str):
    """Best-effort file deletion after response is sent."""
    try:
        Path(path).unlink(missing_ok=True)
    except OSError:
        pass


def _validate_model(item: dict) -> ReportModel:
    if not isinstance(item, dict) or not item.get("report"):
        raise HTTPException(400, "No report provided.")
    try:
        return ReportModel.model_validate(item)
    except ValidationError as exc:
        raise HTTPException(422, f"Invalid report data: {exc.error_count()} error(s).") from exc


def _compile_payload(payload: dict, config: RenderConfig) -> CompiledReport:
    return compile_report(_validate_model(payload), fallback_category=config.fallback_category)


def _compile_many(payload: dict, config: RenderConfig) -> List[CompiledReport]:
    items = payload.get("reports")
    if not items:
        raise HTTPException(400, "No reports provided.")
    return [_compile_payload(item, config) for item in items]


def _text_response(compiled: CompiledReport, config: RenderConfig) -> PlainTextResponse:
    filename = text_export_filename(compiled)
    return PlainTextResponse(
        render_text(compiled, config),
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


def _channel_response(channel: str, compiled: CompiledReport, config: RenderConfig):
    if channel == "preview":
        return HTMLResponse(render_preview(compiled, config))
    if channel == "print":
        return HTMLResponse(render_print(compiled, config))
    if channel == "text":
        return _text_response(compiled, config)
    return compiled_to_dict(compiled)


# ── Payload endpoints ───────────────────────────────────────────────

@router.post("/compile")
async def compile_endpoint(payload: dict, config: RenderConfig = Depends(get_render_config)):
    """Grades, pass count and department grouping for one report."""
    return compiled_to_dict(_compile_payload(payload, config))


@router.post("/preview", response_class=HTMLResponse)
async def preview_endpoint(payload: dict, config: RenderConfig = Depends(get_render_config)):
    """HTML fragment for the in-app report viewer."""
    return HTMLResponse(render_preview(_compile_payload(payload, config), config))


@router.post("/print", response_class=HTMLResponse)
async def print_endpoint(payload: dict, config: RenderConfig = Depends(get_render_config)):
    """Self-contained HTML print document."""
    return HTMLResponse(render_print(_compile_payload(payload, config), config))


@router.post("/print-batch")
async def print_batch_endpoint(payload: dict, config: RenderConfig = Depends(get_render_config)):
    """Print documents for several reports, rendered one after another."""
    documents = await render_print_batch(_compile_many(payload, config), config)
    return {"count": len(documents), "documents": documents}


@router.post("/text", response_class=PlainTextResponse)
async def text_endpoint(payload: dict, config: RenderConfig = Depends(get_render_config)):
    """Plain-text report card as a download."""
    return _text_response(_compile_payload(payload, config), config)


@router.post("/pdf")
async def pdf_endpoint(payload: dict, config: RenderConfig = Depends(get_render_config)):
    """Report card PDF laid out like the print document."""
    compiled = _compile_payload(payload, config)
    REPORTS_DIR.mkdir(parents=True, exist_ok=True)
    report_id = str(uuid.uuid4())[:8]
    student_token = safe_token(compiled.report.student_name, fallback="student")
    output_path = REPORTS_DIR / f"report_card_{student_token}_{report_id}.pdf"

    generate_report_card_pdf(str(output_path), compiled, config)

    return FileResponse(
        str(output_path),
        media_type="application/pdf",
        filename=f"Report_Card_{student_token}_{safe_token(compiled.report.term, 'term')}.pdf",
        background=BackgroundTask(_safe_unlink, str(output_path)),
    )


@router.post("/class-workbook")
async def class_workbook_endpoint(payload: dict, config: RenderConfig = Depends(get_render_config)):
    """Excel workbook of compiled results for a set of reports."""
    compiled_reports = _compile_many(payload, config)
    REPORTS_DIR.mkdir(parents=True, exist_ok=True)
    report_id = str(uuid.uuid4())[:8]
    output_path = REPORTS_DIR / f"class_results_{report_id}.xlsx"

    generate_class_results_workbook(str(output_path), compiled_reports, config)

    return FileResponse(
        str(output_path),
        media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        filename=f"Class_Results_{report_id}.xlsx",
        background=BackgroundTask(_safe_unlink, str(output_path)),
    )


@router.get("/grade-scale")
async def grade_scale():
    """Grade bands for legends."""
    return {"pass_mark": 50, "grades": get_all_grade_thresholds()}


# ── Backend-sourced endpoints ───────────────────────────────────────

@router.get("/class/{form}/{section}/{term}/{year}/print")
async def class_print_endpoint(
    form: str,
    section: str,
    term: str,
    year: str,
    config: RenderConfig = Depends(get_render_config),
    backend: SchoolBackend = Depends(get_backend),
):
    """Print documents for every finalized report of a class."""
    try:
        models = await aggregate_class_reports(backend, form, section, term, year)
    except SourceFetchError as exc:
        raise HTTPException(502, SOURCE_UNAVAILABLE) from exc

    finalized = [
        compile_report(m, fallback_category=config.fallback_category)
        for m in models if m.report.finalized
    ]
    documents = await render_print_batch(finalized, config)
    return {"count": len(documents), "documents": documents}


@router.get("/{report_id}/{channel}")
async def report_channel_endpoint(
    report_id: int,
    channel: str,
    config: RenderConfig = Depends(get_render_config),
    backend: SchoolBackend = Depends(get_backend),
):
    """Aggregate a report from the school backend and render it in one channel."""
    if channel not in CHANNELS:
        raise HTTPException(404, f"Unknown channel '{channel}'. Use one of: {', '.join(CHANNELS)}.")
    try:
        model = await aggregate_report(backend, report_id)
    except SourceFetchError as exc:
        raise HTTPException(502, SOURCE_UNAVAILABLE) from exc
    compiled = compile_report(model, fallback_category=config.fallback_category)
    return _channel_response(channel, compiled, config)
