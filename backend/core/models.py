"""
models.py — Report records as delivered by the school backend.

The backend speaks camelCase JSON (studentName, courseworkMark, ...); the
models accept either that or snake_case field names and are frozen once
built, so an aggregated report can be shared by every renderer unchanged.
"""

from datetime import datetime
from typing import Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class _Record(BaseModel):
    model_config = ConfigDict(
        frozen=True,
        populate_by_name=True,
        alias_generator=to_camel,
        extra="ignore",
    )


class SubjectReport(_Record):
    """One subject's result within a report."""

    id: Optional[int] = None
    subject_id: Optional[int] = None
    subject_name: str
    subject_code: Optional[str] = None
    coursework_mark: Optional[float] = Field(default=None, ge=0, le=100)
    exam_mark: Optional[float] = Field(default=None, ge=0, le=100)
    final_mark: Optional[float] = Field(default=None, ge=0, le=100)
    comment: Optional[str] = None
    teacher_signature_url: Optional[str] = None
    teacher_name: Optional[str] = None


class Report(_Record):
    """One student's result for one (term, academic year) pair."""

    id: Optional[int] = None
    student_id: Optional[int] = None
    student_name: str = ""
    form: str = ""
    section: str = ""
    term: str = ""
    academic_year: str = ""
    overall_comment: Optional[str] = None
    finalized: bool = False
    class_teacher_signature_url: Optional[str] = None
    created_at: Optional[datetime] = None
    subject_reports: Tuple[SubjectReport, ...] = ()

    @field_validator("academic_year", "form", "section", "term", mode="before")
    @classmethod
    def _as_text(cls, value):
        if value is None:
            return ""
        return str(value)

    @field_validator("subject_reports", mode="before")
    @classmethod
    def _no_null_rows(cls, value):
        return () if value is None else value


class ReportAssets(_Record):
    """Signature and logo references; None means the asset could not be resolved."""

    principal_signature: Optional[str] = None
    class_teacher_signature: Optional[str] = None
    school_logo: Optional[str] = None
    ministry_logo: Optional[str] = None
    watermark: Optional[str] = None


class ReportModel(_Record):
    """A report together with every asset needed to render it."""

    report: Report
    assets: ReportAssets = ReportAssets()
