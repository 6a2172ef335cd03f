"""
Listing routes — report lists with search, term and year filters.
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import ValidationError

from core.aggregator import SchoolBackend, SourceFetchError, fetch_student_reports
from core.listing import build_listing, parse_viewer
from core.models import Report
from routes.reports import SOURCE_UNAVAILABLE, get_backend

router = APIRouter()


def _summary(report: Report) -> dict:
    return {
        "id": report.id,
        "studentId": report.student_id,
        "studentName": report.student_name,
        "form": report.form,
        "section": report.section,
        "term": report.term,
        "academicYear": report.academic_year,
        "finalized": report.finalized,
        "subjectCount": len(report.subject_reports),
        "hasOverallComment": bool((report.overall_comment or "").strip()),
    }


def _listing_response(listing: dict) -> dict:
    listing["reports"] = [_summary(r) for r in listing["reports"]]
    return listing


@router.post("/filter")
async def filter_endpoint(payload: dict):
    """Filter a report collection supplied by the caller."""
    items = payload.get("reports")
    if items is None:
        raise HTTPException(400, "No reports provided.")
    try:
        reports = [Report.model_validate(item) for item in items]
    except ValidationError as exc:
        raise HTTPException(422, f"Invalid report data: {exc.error_count()} error(s).") from exc

    listing = build_listing(
        reports,
        search=payload.get("search"),
        term=payload.get("term"),
        academic_year=payload.get("academic_year") or payload.get("academicYear"),
        viewer=parse_viewer(payload.get("viewer")),
    )
    return _listing_response(listing)


@router.get("/student/{student_id}")
async def student_reports(
    student_id: int,
    search: Optional[str] = None,
    term: Optional[str] = None,
    year: Optional[str] = None,
    viewer: Optional[str] = None,
    backend: SchoolBackend = Depends(get_backend),
):
    """A student's reports from the school backend, finalized only for students and parents."""
    try:
        reports = await fetch_student_reports(backend, student_id)
    except SourceFetchError as exc:
        raise HTTPException(502, SOURCE_UNAVAILABLE) from exc

    listing = build_listing(reports, search=search, term=term, academic_year=year, viewer=parse_viewer(viewer))
    return _listing_response(listing)
