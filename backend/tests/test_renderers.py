"""
Tests for core/renderers.py — preview, print and text-export channels.
"""

import asyncio
import json
import os
import re
import sys
import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from core.compiler import EMPTY_SUBJECTS_MESSAGE, compile_report
from core.config import RenderConfig
from core.models import Report, ReportAssets, ReportModel, SubjectReport
from core.renderers import (
    render_preview,
    render_print,
    render_print_batch,
    render_text,
    resolve_asset_url,
    text_export_filename,
)

SAMPLE_JSON = os.path.join(os.path.dirname(__file__), "..", "sample_data", "sample_reports.json")
CONFIG = RenderConfig(school_name="Test School", school_address="1 Main Rd", school_phone="555-0100")


@pytest.fixture
def sample_reports():
    with open(SAMPLE_JSON, encoding="utf-8") as f:
        return {item["id"]: Report.model_validate(item) for item in json.load(f)}


@pytest.fixture
def compiled(sample_reports):
    assets = ReportAssets(
        principal_signature="/uploads/signatures/principal.png",
        school_logo="https://cdn.example.com/logo.png",
    )
    return compile_report(ReportModel(report=sample_reports[101], assets=assets))


@pytest.fixture
def empty_compiled(sample_reports):
    return compile_report(ReportModel(report=sample_reports[104]))


def _grade_cells(html):
    return re.findall(r'<td class="grade">([^<]*)</td>', html)


class TestResolveAssetUrl:
    def test_relative_path_joined_to_host(self):
        assert resolve_asset_url("/uploads/a.png", "http://localhost:8080") == "http://localhost:8080/uploads/a.png"
        assert resolve_asset_url("uploads/a.png", "http://localhost:8080/") == "http://localhost:8080/uploads/a.png"

    def test_absolute_urls_pass_through(self):
        assert resolve_asset_url("https://x.org/a.png", "http://h") == "https://x.org/a.png"
        assert resolve_asset_url("data:image/png;base64,AAA", "http://h") == "data:image/png;base64,AAA"

    def test_missing(self):
        assert resolve_asset_url(None, "http://h") is None
        assert resolve_asset_url("  ", "http://h") is None


class TestPreview:
    def test_is_fragment(self, compiled):
        html = render_preview(compiled, CONFIG)
        assert html.lstrip().startswith('<div class="report-preview"')
        assert "<html" not in html

    def test_grades_and_pass_count(self, compiled):
        html = render_preview(compiled, CONFIG)
        assert _grade_cells(html) == ["B", "C", "F", "D"]
        assert 'data-field="No. Passed">2<' in html
        assert 'data-field="Subjects Recorded">2<' in html

    def test_category_headers(self, compiled):
        html = render_preview(compiled, CONFIG)
        assert "LANGUAGES &amp; HUMANITIES" in html
        assert "SCIENCES" in html

    def test_assets_and_placeholders(self, compiled):
        html = render_preview(compiled, CONFIG)
        assert "http://localhost:8080/uploads/signatures/principal.png" in html
        assert "https://cdn.example.com/logo.png" in html
        assert "No Ministry Logo" in html
        assert "No signature uploaded" in html
        assert "http://localhost:8080/uploads/signatures/english.png" in html

    def test_uses_configured_colours(self, compiled):
        html = render_preview(compiled, CONFIG.with_overrides(primary_color="#112233"))
        assert "#112233" in html

    def test_status_label(self, compiled):
        assert "Official Report" in render_preview(compiled, CONFIG)

    def test_empty_state(self, empty_compiled):
        html = render_preview(empty_compiled, CONFIG)
        assert EMPTY_SUBJECTS_MESSAGE in html
        assert "subject-row" not in html


class TestPrint:
    def test_full_document(self, compiled):
        html = render_print(compiled, CONFIG)
        assert html.lstrip().startswith("<!DOCTYPE html>")
        assert "<title>" in html
        assert "Tariro Moyo" in html
        assert "window.print()" in html

    def test_same_grades_as_preview(self, compiled):
        assert _grade_cells(render_print(compiled, CONFIG)) == _grade_cells(render_preview(compiled, CONFIG))

    def test_escapes_user_text(self, sample_reports):
        report = sample_reports[101].model_copy(update={"overall_comment": "<script>alert(1)</script>"})
        html = render_print(compile_report(ReportModel(report=report)), CONFIG)
        assert "<script>alert(1)</script>" not in html
        assert "&lt;script&gt;" in html

    def test_empty_state(self, empty_compiled):
        assert EMPTY_SUBJECTS_MESSAGE in render_print(empty_compiled, CONFIG)


class TestPrintBatch:
    def test_staggered_without_leading_pause(self, compiled, empty_compiled):
        pauses = []

        async def fake_sleep(seconds):
            pauses.append(seconds)

        documents = asyncio.run(
            render_print_batch([compiled, empty_compiled, compiled], CONFIG, sleep=fake_sleep)
        )
        assert len(documents) == 3
        assert pauses == [0.5, 0.5]

    def test_custom_delay(self, compiled):
        pauses = []

        async def fake_sleep(seconds):
            pauses.append(seconds)

        asyncio.run(render_print_batch([compiled, compiled], CONFIG, delay=0.1, sleep=fake_sleep))
        assert pauses == [0.1]

    def test_single_item_no_pause(self, compiled):
        pauses = []

        async def fake_sleep(seconds):
            pauses.append(seconds)

        asyncio.run(render_print_batch([compiled], CONFIG, sleep=fake_sleep))
        assert pauses == []


class TestTextExport:
    def test_header_block(self, compiled):
        text = render_text(compiled, CONFIG)
        assert "TEST SCHOOL" in text
        assert "ACADEMIC REPORT CARD" in text
        assert "Student Name: Tariro Moyo" in text
        assert "Term: Term 1 2024" in text
        assert "Report Date: 12 April 2024" in text
        assert "Subjects Passed: 2 of 2" in text

    def test_subject_column_is_twenty_wide(self, compiled):
        lines = render_text(compiled, CONFIG).splitlines()
        english = next(line for line in lines if line.startswith("English"))
        assert english[:20] == "English".ljust(20)
        assert english[20:32] == "72".ljust(12)
        assert english[32:40] == "68".ljust(8)
        assert english[40:48] == "70".ljust(8)
        assert english[48:] == "B"

    def test_long_subject_name_keeps_columns_aligned(self, sample_reports):
        row = dict(sample_reports[101].subject_reports[0].model_dump(), subject_name="Business Enterprise Skills")
        report = sample_reports[101].model_copy(update={"subject_reports": (SubjectReport(**row),)})
        lines = render_text(compile_report(ReportModel(report=report)), CONFIG).splitlines()
        line = next(line for line in lines if line.startswith("Business"))
        assert line[:20] == "Business Enterprise "
        assert line[20:32] == "72".ljust(12)
        assert line[48:] == "B"

    def test_grade_comes_from_total(self, compiled):
        lines = render_text(compiled, CONFIG).splitlines()
        science = next(line for line in lines if line.startswith("Combined Science"))
        assert science.endswith("D")

    def test_category_headers_precede_rows(self, compiled):
        lines = render_text(compiled, CONFIG).splitlines()
        assert lines.index("[LANGUAGES & HUMANITIES]") < lines.index("[SCIENCES]")

    def test_missing_marks_show_na(self, sample_reports):
        compiled = compile_report(ReportModel(report=sample_reports[102]))
        text = render_text(compiled, CONFIG)
        row = next(line for line in text.splitlines() if line.startswith("English"))
        assert row[32:40] == "N/A".ljust(8)
        assert row.endswith("N/A")
        assert "Report Status: Draft Report" in text

    def test_comments(self, compiled):
        text = render_text(compiled, CONFIG)
        assert "English:\n  Good essay structure." in text
        assert "Combined Science:" not in text
        assert "CLASS TEACHER'S COMMENT:" in text

    def test_footer(self, compiled):
        text = render_text(compiled, CONFIG)
        assert "1 Main Rd • 555-0100" in text
        assert "Report Status: Official Report" in text

    def test_empty_state(self, empty_compiled):
        text = render_text(empty_compiled, CONFIG)
        assert EMPTY_SUBJECTS_MESSAGE in text
        assert "Subjects Passed: 0 of 0" in text
        assert "CLASS TEACHER'S COMMENT:" not in text

    def test_filename(self, compiled):
        assert text_export_filename(compiled) == "Tariro_Moyo_Term_1_2024_Report.txt"
