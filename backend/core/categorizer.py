"""
categorizer.py — Groups subject rows into academic departments.

Matching is a case-insensitive substring test in both directions (subject
name contains a keyword, or a keyword contains the subject name) so that
"Eng", "English Language" and "Literature in English" all land in the same
department. The first department in declaration order wins.
"""

from enum import Enum
from typing import Dict, Iterable, List, Optional, Sequence, Tuple


class Category(str, Enum):
    LANGUAGES_HUMANITIES = "Languages & Humanities"
    COMMERCIALS = "Commercials"
    SCIENCES = "Sciences"
    OTHER = "Other Subjects"


CATEGORY_KEYWORDS: Tuple[Tuple[Category, Tuple[str, ...]], ...] = (
    (
        Category.LANGUAGES_HUMANITIES,
        ("English", "Indigenous Language", "History", "Heritage Studies", "Literature in English"),
    ),
    (
        Category.COMMERCIALS,
        ("Principles of Accounting", "Commerce", "Business Enterprise Skills", "Economics"),
    ),
    (
        Category.SCIENCES,
        ("Mathematics", "Combined Science", "Biology", "Chemistry", "Physics", "Geography"),
    ),
)

# Unmatched subjects have always been filed under Sciences.
DEFAULT_CATEGORY = Category.SCIENCES


def parse_category(value: Optional[str], default: Category = DEFAULT_CATEGORY) -> Category:
    """Resolve a category from its label or member name, e.g. "Other Subjects" or "OTHER"."""
    if not value:
        return default
    text = str(value).strip()
    for category in Category:
        if text.lower() in (category.value.lower(), category.name.lower()):
            return category
    return default


def match_category(
    subject_name: str,
    keywords: Sequence[Tuple[Category, Sequence[str]]] = CATEGORY_KEYWORDS,
) -> Optional[Category]:
    """Return the first category whose keywords match the subject name, else None."""
    name = (subject_name or "").strip().lower()
    if not name:
        return None
    for category, words in keywords:
        for word in words:
            keyword = word.lower()
            if keyword in name or name in keyword:
                return category
    return None


def categorize_subjects(
    subjects: Iterable,
    fallback: Category = DEFAULT_CATEGORY,
) -> Dict[Category, List]:
    """
    Map every subject row to exactly one category.

    Categories come back in declaration order, rows keep their original order
    within a category, and categories without rows are left out.
    """
    buckets: Dict[Category, List] = {category: [] for category in Category}
    for subject in subjects:
        category = match_category(subject.subject_name) or fallback
        buckets[category].append(subject)
    return {category: rows for category, rows in buckets.items() if rows}
