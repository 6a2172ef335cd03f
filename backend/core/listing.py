"""
listing.py — Report search and filters for report lists.

Students and parents only ever see finalized reports; that restriction is
applied before any filter and cannot be switched off by filter values.
"""

from enum import Enum
from typing import Any, Dict, Iterable, List, Optional


class Viewer(str, Enum):
    STUDENT = "student"
    PARENT = "parent"
    STAFF = "staff"


def parse_viewer(value: Optional[str]) -> Viewer:
    """Unknown or missing viewer types are treated as students."""
    try:
        return Viewer(str(value or "").strip().lower())
    except ValueError:
        return Viewer.STUDENT


def visible_reports(reports: Iterable, viewer: Viewer = Viewer.STUDENT) -> List:
    if viewer == Viewer.STAFF:
        return list(reports)
    return [r for r in reports if r.finalized]


def _criterion(value: Any) -> Optional[str]:
    """Filter values arrive as query strings or JSON; numbers compare as text."""
    if value is None:
        return None
    return str(value).strip() or None


def filter_reports(
    reports: Iterable,
    search: Optional[str] = None,
    term: Optional[str] = None,
    academic_year: Optional[str] = None,
    viewer: Viewer = Viewer.STUDENT,
) -> List:
    """Return the visible reports matching every non-empty criterion."""
    filtered = visible_reports(reports, viewer)
    search, term, academic_year = (_criterion(v) for v in (search, term, academic_year))

    if search:
        needle = search.lower()
        filtered = [
            r for r in filtered
            if needle in r.term.lower() or needle in r.academic_year.lower()
        ]

    if term:
        filtered = [r for r in filtered if r.term == term]

    if academic_year:
        filtered = [r for r in filtered if r.academic_year == academic_year]

    return filtered


def build_listing(
    reports: Iterable,
    search: Optional[str] = None,
    term: Optional[str] = None,
    academic_year: Optional[str] = None,
    viewer: Viewer = Viewer.STUDENT,
) -> Dict[str, Any]:
    """Filtered reports plus the counts and filter options a report list shows."""
    visible = visible_reports(reports, viewer)
    matching = filter_reports(visible, search, term, academic_year, viewer=Viewer.STAFF)

    if not visible:
        state = "no_reports_published"
    elif not matching:
        state = "no_matches"
    else:
        state = "ok"

    return {
        "state": state,
        "total": len(visible),
        "matching": len(matching),
        "terms": sorted({r.term for r in visible}),
        "years": sorted({r.academic_year for r in visible}, reverse=True),
        "reports": matching,
    }
