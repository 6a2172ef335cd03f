"""
compiler.py — Turns an aggregated report into the values every channel shows.

Grades, totals, pass flags and department grouping are computed once here;
the preview, print, text and PDF renderers only format what they are given,
so they cannot disagree with each other.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple, Union

from core.categorizer import Category, DEFAULT_CATEGORY, categorize_subjects
from core.grading import grade_for, is_passed, total_mark
from core.models import Report, ReportModel, SubjectReport


EMPTY_SUBJECTS_MESSAGE = "No subject results available for this report."


@dataclass(frozen=True)
class CompiledSubject:
    subject: SubjectReport
    category: Category
    coursework_grade: str
    exam_grade: str
    total: Optional[Union[int, float]]
    # Grade of the displayed total (text export); the other channels show
    # coursework_grade / exam_grade.
    total_grade: str
    passed: bool


@dataclass(frozen=True)
class CategoryGroup:
    category: Category
    subjects: Tuple[CompiledSubject, ...]


@dataclass(frozen=True)
class CompiledReport:
    model: ReportModel
    subjects: Tuple[CompiledSubject, ...]
    groups: Tuple[CategoryGroup, ...]
    pass_count: int

    @property
    def report(self) -> Report:
        return self.model.report

    @property
    def subject_count(self) -> int:
        return len(self.subjects)

    @property
    def is_empty(self) -> bool:
        return not self.subjects


def compile_subject(subject: SubjectReport, category: Category) -> CompiledSubject:
    total = total_mark(subject)
    return CompiledSubject(
        subject=subject,
        category=category,
        coursework_grade=grade_for(subject.coursework_mark),
        exam_grade=grade_for(subject.exam_mark),
        total=total,
        total_grade=grade_for(total),
        passed=is_passed(subject),
    )


def compile_report(model: ReportModel, fallback_category: Category = DEFAULT_CATEGORY) -> CompiledReport:
    """Grade, total and group every subject row of an aggregated report."""
    rows = model.report.subject_reports
    categorized = categorize_subjects(rows, fallback=fallback_category)

    by_row: Dict[int, CompiledSubject] = {}
    groups: List[CategoryGroup] = []
    for category, members in categorized.items():
        compiled_members = []
        for subject in members:
            compiled = compile_subject(subject, category)
            by_row[id(subject)] = compiled
            compiled_members.append(compiled)
        groups.append(CategoryGroup(category=category, subjects=tuple(compiled_members)))

    subjects = tuple(by_row[id(subject)] for subject in rows)
    return CompiledReport(
        model=model,
        subjects=subjects,
        groups=tuple(groups),
        pass_count=sum(1 for s in subjects if s.passed),
    )


def _subject_dict(item: CompiledSubject) -> Dict[str, Any]:
    s = item.subject
    return {
        "subjectName": s.subject_name,
        "category": item.category.value,
        "courseworkMark": s.coursework_mark,
        "courseworkGrade": item.coursework_grade,
        "examMark": s.exam_mark,
        "examGrade": item.exam_grade,
        "total": item.total,
        "totalGrade": item.total_grade,
        "passed": item.passed,
    }


def compiled_to_dict(compiled: CompiledReport) -> Dict[str, Any]:
    """JSON-safe {grades, passCount, categorized} view of a compiled report."""
    report = compiled.report
    return {
        "reportId": report.id,
        "studentName": report.student_name,
        "term": report.term,
        "academicYear": report.academic_year,
        "finalized": report.finalized,
        "subjectCount": compiled.subject_count,
        "passCount": compiled.pass_count,
        "grades": [_subject_dict(s) for s in compiled.subjects],
        "categorized": [
            {
                "category": group.category.value,
                "subjects": [s.subject.subject_name for s in group.subjects],
            }
            for group in compiled.groups
        ],
        "emptyMessage": EMPTY_SUBJECTS_MESSAGE if compiled.is_empty else None,
    }
