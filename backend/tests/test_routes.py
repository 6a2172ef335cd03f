"""
Tests for the HTTP layer — routes/reports.py, routes/listing.py and main.py.
"""

import json
import os
import sys
import pytest
import httpx
from fastapi.testclient import TestClient

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from core.aggregator import SchoolBackend
from core.config import RenderConfig
from main import app
from routes.reports import get_backend, get_render_config

SAMPLE_JSON = os.path.join(os.path.dirname(__file__), "..", "sample_data", "sample_reports.json")
CONFIG = RenderConfig(school_name="Test School", print_stagger_seconds=0.0)


@pytest.fixture
def payloads():
    with open(SAMPLE_JSON, encoding="utf-8") as f:
        return {item["id"]: item for item in json.load(f)}


def _backend_override(routes):
    def handler(request):
        path = request.url.path[len("/api"):]
        for prefix, body in routes.items():
            if path.startswith(prefix):
                if isinstance(body, int):
                    return httpx.Response(body)
                return httpx.Response(200, json=body)
        return httpx.Response(404)

    async def _backend():
        async with SchoolBackend("http://school.test/api", transport=httpx.MockTransport(handler)) as backend:
            yield backend

    return _backend


@pytest.fixture
def client(payloads):
    routes = {
        "/reports/class/": [payloads[101], payloads[102]],
        "/reports/": payloads[101],
        "/student/reports/": list(payloads.values()),
        "/signatures/principal": {"signatureUrl": "/uploads/p.png"},
        "/school/config": {"configured": True, "school": {"logoPath": "/uploads/logo.png"}},
    }
    app.dependency_overrides[get_render_config] = lambda: CONFIG
    app.dependency_overrides[get_backend] = _backend_override(routes)
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def failing_client():
    app.dependency_overrides[get_render_config] = lambda: CONFIG
    app.dependency_overrides[get_backend] = _backend_override({"/": 500})
    yield TestClient(app)
    app.dependency_overrides.clear()


class TestPayloadEndpoints:
    def test_compile(self, client, payloads):
        res = client.post("/api/reports/compile", json={"report": payloads[101]})
        assert res.status_code == 200
        data = res.json()
        assert data["passCount"] == 2
        assert [g["totalGrade"] for g in data["grades"]] == ["B", "D"]

    def test_missing_report(self, client):
        res = client.post("/api/reports/compile", json={})
        assert res.status_code == 400

    def test_invalid_mark(self, client, payloads):
        report = dict(payloads[101])
        report["subjectReports"] = [dict(report["subjectReports"][0], courseworkMark=150)]
        res = client.post("/api/reports/compile", json={"report": report})
        assert res.status_code == 422

    def test_preview(self, client, payloads):
        res = client.post("/api/reports/preview", json={"report": payloads[101]})
        assert res.status_code == 200
        assert res.headers["content-type"].startswith("text/html")
        assert 'class="report-preview"' in res.text

    def test_print(self, client, payloads):
        res = client.post("/api/reports/print", json={"report": payloads[101]})
        assert res.status_code == 200
        assert res.text.lstrip().startswith("<!DOCTYPE html>")

    def test_print_batch(self, client, payloads):
        body = {"reports": [{"report": payloads[101]}, {"report": payloads[104]}]}
        res = client.post("/api/reports/print-batch", json=body)
        assert res.status_code == 200
        assert res.json()["count"] == 2

    def test_print_batch_needs_reports(self, client):
        assert client.post("/api/reports/print-batch", json={"reports": []}).status_code == 400

    def test_text_download(self, client, payloads):
        res = client.post("/api/reports/text", json={"report": payloads[101]})
        assert res.status_code == 200
        assert "Tariro_Moyo_Term_1_2024_Report.txt" in res.headers["content-disposition"]
        assert "Subjects Passed: 2 of 2" in res.text

    def test_pdf(self, client, payloads):
        res = client.post("/api/reports/pdf", json={"report": payloads[103]})
        assert res.status_code == 200
        assert res.headers["content-type"] == "application/pdf"
        assert res.content[:5] == b"%PDF-"

    def test_class_workbook(self, client, payloads):
        body = {"reports": [{"report": payloads[101]}, {"report": payloads[103]}]}
        res = client.post("/api/reports/class-workbook", json=body)
        assert res.status_code == 200
        assert res.content[:2] == b"PK"

    def test_grade_scale(self, client):
        data = client.get("/api/reports/grade-scale").json()
        assert data["pass_mark"] == 50
        assert data["grades"][0]["label"] == "A"


class TestBackendEndpoints:
    def test_compile_channel(self, client):
        res = client.get("/api/reports/101/compile")
        assert res.status_code == 200
        assert res.json()["passCount"] == 2

    def test_preview_channel_includes_assets(self, client):
        res = client.get("/api/reports/101/preview")
        assert res.status_code == 200
        assert "http://localhost:8080/uploads/logo.png" in res.text
        assert "http://localhost:8080/uploads/p.png" in res.text

    def test_text_channel(self, client):
        res = client.get("/api/reports/101/text")
        assert res.status_code == 200
        assert "ACADEMIC REPORT CARD" in res.text

    def test_unknown_channel(self, client):
        assert client.get("/api/reports/101/fax").status_code == 404

    def test_source_failure(self, failing_client):
        res = failing_client.get("/api/reports/101/compile")
        assert res.status_code == 502

    def test_class_print_finalized_only(self, client):
        res = client.get("/api/reports/class/Form 3/A/Term 1/2024/print")
        assert res.status_code == 200
        assert res.json()["count"] == 1


class TestListingEndpoints:
    def test_filter(self, client, payloads):
        body = {"reports": list(payloads.values()), "search": "2023"}
        data = client.post("/api/listing/filter", json=body).json()
        assert data["state"] == "ok"
        assert [r["id"] for r in data["reports"]] == [103, 104]

    def test_filter_numeric_values(self, client, payloads):
        body = {"reports": list(payloads.values()), "search": 2024, "academicYear": 2024}
        res = client.post("/api/listing/filter", json=body)
        assert res.status_code == 200
        assert [r["id"] for r in res.json()["reports"]] == [101]

    def test_filter_staff_sees_drafts(self, client, payloads):
        body = {"reports": list(payloads.values()), "viewer": "staff"}
        assert client.post("/api/listing/filter", json=body).json()["total"] == 4

    def test_student_listing(self, client):
        data = client.get("/api/listing/student/7", params={"term": "Term 1"}).json()
        assert data["total"] == 3
        assert data["matching"] == 1
        assert data["reports"][0]["subjectCount"] == 2

    def test_student_listing_source_failure(self, failing_client):
        res = failing_client.get("/api/listing/student/7")
        assert res.status_code == 502
        assert "Unable to load reports" in res.json()["detail"]


class TestAppEndpoints:
    def test_health(self, client):
        data = client.get("/api/health").json()
        assert data["status"] == "ok"
        assert data["pass_mark"] == 50
