"""
grading.py — Mark → letter grade, displayed totals and pass determination.

Grade bands (A-F) apply to any single mark: a coursework mark, an exam mark
or a displayed subject total. A missing mark is never graded "F"; it shows
as "-" and takes no part in the pass count.
"""

import math
from typing import Any, Dict, Iterable, List, Optional, Union


# Grade bands (min_mark, label, description), ordered high to low.
GRADE_BANDS = [
    (80.0, "A", "Excellent"),
    (70.0, "B", "Very Good"),
    (60.0, "C", "Good"),
    (50.0, "D", "Satisfactory"),
    (0.0, "F", "Fail"),
]

PASS_MARK = 50
NO_GRADE = "-"

Number = Union[int, float]


def _coerce_mark(mark: Any) -> Optional[float]:
    if mark is None or isinstance(mark, bool):
        return None
    try:
        value = float(mark)
    except (TypeError, ValueError):
        return None
    if math.isnan(value) or math.isinf(value):
        return None
    return value


def round_half_up(value: float) -> int:
    """Round .5 away from zero for positive marks (47.5 -> 48, 48.5 -> 49)."""
    return int(math.floor(value + 0.5))


def format_mark(value: Optional[Number], missing: str = NO_GRADE) -> str:
    """Whole numbers without decimals, fractional marks as given."""
    mark = _coerce_mark(value)
    if mark is None:
        return missing
    if mark == int(mark):
        return str(int(mark))
    return str(round(mark, 2))


def grade_for(mark: Optional[Number]) -> str:
    """Return the letter grade for a 0-100 mark, "-" when the mark is absent."""
    value = _coerce_mark(mark)
    if value is None:
        return NO_GRADE
    for min_mark, label, _ in GRADE_BANDS:
        if value >= min_mark:
            return label
    return "F"


def get_grade_info(mark: Optional[Number]) -> Dict[str, Any]:
    """Return grade label and description for a mark."""
    value = _coerce_mark(mark)
    if value is None:
        return {"label": NO_GRADE, "description": "No mark", "mark": None}
    label = grade_for(value)
    description = next(desc for _, lbl, desc in GRADE_BANDS if lbl == label)
    return {"label": label, "description": description, "mark": round(value, 1)}


def get_all_grade_thresholds() -> List[Dict[str, Any]]:
    """Return the full grade scale for legend/reference."""
    thresholds = []
    for idx, (min_mark, label, desc) in enumerate(GRADE_BANDS):
        max_mark = 100.0 if idx == 0 else GRADE_BANDS[idx - 1][0] - 0.01
        thresholds.append(
            {
                "min": min_mark,
                "max": round(max_mark, 2),
                "label": label,
                "description": desc,
            }
        )
    return thresholds


def total_mark(subject) -> Optional[Number]:
    """
    Displayed subject total.

    Both component marks present: their half-up rounded average. Otherwise
    the recorded final mark, if any.
    """
    coursework = _coerce_mark(subject.coursework_mark)
    exam = _coerce_mark(subject.exam_mark)
    if coursework is not None and exam is not None:
        return round_half_up((coursework + exam) / 2)
    final = _coerce_mark(subject.final_mark)
    if final is None:
        return None
    return int(final) if final == int(final) else final


def is_passed(subject) -> bool:
    """A subject counts as passed when either component mark reaches the pass mark."""
    coursework = _coerce_mark(subject.coursework_mark)
    exam = _coerce_mark(subject.exam_mark)
    return (coursework is not None and coursework >= PASS_MARK) or (
        exam is not None and exam >= PASS_MARK
    )


def count_passed(subjects: Iterable) -> int:
    return sum(1 for s in subjects if is_passed(s))
