"""
Tests for core/categorizer.py — department grouping of subject rows.
"""

import os
import sys
import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from core.categorizer import (
    Category,
    categorize_subjects,
    match_category,
    parse_category,
)
from core.models import SubjectReport


def _rows(*names):
    return [SubjectReport(subject_name=n) for n in names]


class TestMatchCategory:
    @pytest.mark.parametrize("name,expected", [
        ("English", Category.LANGUAGES_HUMANITIES),
        ("History", Category.LANGUAGES_HUMANITIES),
        ("Commerce", Category.COMMERCIALS),
        ("Principles of Accounting", Category.COMMERCIALS),
        ("Combined Science", Category.SCIENCES),
        ("Geography", Category.SCIENCES),
    ])
    def test_known_subjects(self, name, expected):
        assert match_category(name) == expected

    def test_case_insensitive(self):
        assert match_category("english") == Category.LANGUAGES_HUMANITIES
        assert match_category("MATHEMATICS") == Category.SCIENCES

    def test_subject_name_contains_keyword(self):
        assert match_category("English Language") == Category.LANGUAGES_HUMANITIES
        assert match_category("Applied Mathematics") == Category.SCIENCES

    def test_keyword_contains_subject_name(self):
        assert match_category("Eng") == Category.LANGUAGES_HUMANITIES
        assert match_category("Accounting") == Category.COMMERCIALS

    def test_first_category_wins(self):
        # Matches both "English" and "Commerce".
        assert match_category("English for Commerce") == Category.LANGUAGES_HUMANITIES
        table = ((Category.COMMERCIALS, ("Commerce",)), (Category.LANGUAGES_HUMANITIES, ("English",)))
        assert match_category("English for Commerce", keywords=table) == Category.COMMERCIALS

    def test_unmatched_and_blank(self):
        assert match_category("Art") is None
        assert match_category("") is None
        assert match_category("   ") is None

    def test_custom_keyword_table(self):
        table = ((Category.OTHER, ("Art",)),)
        assert match_category("Art", keywords=table) == Category.OTHER


class TestCategorizeSubjects:
    def test_every_row_in_exactly_one_category(self):
        rows = _rows("English", "Commerce", "Physics", "Art", "History", "")
        result = categorize_subjects(rows)
        placed = [id(r) for members in result.values() for r in members]
        assert len(placed) == len(rows)
        assert len(set(placed)) == len(rows)

    def test_fallback_is_sciences_by_default(self):
        result = categorize_subjects(_rows("Art"))
        assert list(result) == [Category.SCIENCES]

    def test_configurable_fallback(self):
        result = categorize_subjects(_rows("Art", "Music"), fallback=Category.OTHER)
        assert [r.subject_name for r in result[Category.OTHER]] == ["Art", "Music"]

    def test_blank_name_goes_to_fallback(self):
        result = categorize_subjects(_rows(""), fallback=Category.OTHER)
        assert Category.OTHER in result

    def test_declaration_order_and_empty_categories_omitted(self):
        result = categorize_subjects(_rows("Physics", "English"))
        assert list(result) == [Category.LANGUAGES_HUMANITIES, Category.SCIENCES]
        assert Category.COMMERCIALS not in result

    def test_row_order_kept_within_category(self):
        result = categorize_subjects(_rows("Physics", "Biology", "Chemistry"))
        assert [r.subject_name for r in result[Category.SCIENCES]] == ["Physics", "Biology", "Chemistry"]

    def test_empty_input(self):
        assert categorize_subjects([]) == {}


class TestParseCategory:
    def test_label_and_name(self):
        assert parse_category("Other Subjects") == Category.OTHER
        assert parse_category("other") == Category.OTHER
        assert parse_category("commercials") == Category.COMMERCIALS

    def test_unknown_uses_default(self):
        assert parse_category("Sports") == Category.SCIENCES
        assert parse_category(None, default=Category.OTHER) == Category.OTHER
