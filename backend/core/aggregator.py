"""
aggregator.py — Collects a report and its signature/logo assets from the school backend.

Report records are required: if they cannot be fetched a SourceFetchError is
raised. Assets are optional: every lookup runs concurrently, and a lookup
that fails or finds nothing leaves that asset as None so the renderers can
show a placeholder.
"""

import asyncio
import logging
from typing import Any, Awaitable, Dict, List, Optional, Sequence, TypeVar

import httpx

from core.models import Report, ReportAssets, ReportModel, SubjectReport

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SourceFetchError(Exception):
    """Report list or report detail could not be loaded from the backend."""


class SchoolBackend:
    """
    Async client for the school administration REST API.

    Use as ``async with SchoolBackend(url) as backend``. A transport can be
    injected (e.g. ``httpx.MockTransport``) for tests.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            transport=transport,
        )

    async def __aenter__(self) -> "SchoolBackend":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _get_json(self, path: str) -> Any:
        response = await self._client.get(path)
        response.raise_for_status()
        if not response.content:
            return None
        return response.json()

    # ── Report source ───────────────────────────────────────────────

    async def list_student_reports(self, student_id: int) -> List[Report]:
        data = await self._get_json(f"/student/reports/{student_id}")
        return [Report.model_validate(item) for item in data or []]

    async def list_class_reports(self, form: str, section: str, term: str, academic_year: str) -> List[Report]:
        data = await self._get_json(f"/reports/class/{form}/{section}/{term}/{academic_year}")
        return [Report.model_validate(item) for item in data or []]

    async def get_report(self, report_id: int) -> Report:
        data = await self._get_json(f"/reports/{report_id}")
        if not data:
            raise ValueError(f"Report {report_id} returned no data.")
        return Report.model_validate(data)

    # ── Signature source ────────────────────────────────────────────

    @staticmethod
    def _signature_url(data: Any) -> Optional[str]:
        if isinstance(data, dict):
            return _asset_ref("signatureUrl", data.get("signatureUrl"))
        return None

    async def get_principal_signature(self) -> Optional[str]:
        return self._signature_url(await self._get_json("/signatures/principal"))

    async def get_class_teacher_signature(self, form: str, section: str) -> Optional[str]:
        return self._signature_url(await self._get_json(f"/signatures/class-teacher/{form}/{section}"))

    async def get_subject_teacher_signature(self, subject_id: int, form: str, section: str) -> Optional[str]:
        return self._signature_url(
            await self._get_json(f"/signatures/subject-teacher/{subject_id}/{form}/{section}")
        )

    # ── Logo source ─────────────────────────────────────────────────

    async def get_school_profile(self) -> Dict[str, Any]:
        """School branding record; both logo paths come from this one call."""
        data = await self._get_json("/school/config")
        if isinstance(data, dict) and isinstance(data.get("school"), dict):
            return data["school"]
        return {}

    async def get_school_logo(self) -> Optional[str]:
        return _asset_ref("logoPath", (await self.get_school_profile()).get("logoPath"))

    async def get_background_watermark(self) -> Optional[str]:
        return _asset_ref("backgroundPath", (await self.get_school_profile()).get("backgroundPath"))

    async def get_ministry_logo(self) -> Optional[str]:
        data = await self._get_json("/ministry-logo/current")
        return _asset_ref("ministry_logo", data)


# ── Asset resolution ────────────────────────────────────────────────

def _asset_ref(key: Any, value: Any) -> Optional[str]:
    """Only a non-blank string is a usable asset reference."""
    if isinstance(value, str):
        return value.strip() or None
    if value is not None:
        logger.warning("Asset %s unavailable: unexpected value %r", key, value)
    return None


async def _gather_optional(lookups: Dict[Any, Awaitable[Any]]) -> Dict[Any, Any]:
    """Run every lookup concurrently; failed lookups resolve to None."""
    keys = list(lookups)
    results = await asyncio.gather(*(lookups[k] for k in keys), return_exceptions=True)
    resolved: Dict[Any, Any] = {}
    for key, result in zip(keys, results):
        if isinstance(result, Exception):
            logger.warning("Asset lookup %s failed: %s", key, result)
            resolved[key] = None
        else:
            resolved[key] = result
    return resolved


async def _resolve_assets(backend: SchoolBackend, reports: Sequence[Report]) -> List[ReportModel]:
    """
    Attach assets to already-fetched reports with one concurrent round of lookups.

    School-wide lookups are issued once for the whole batch and the
    class-teacher lookup once per (form, section). The subject-teacher lookup
    runs only for rows that have a subject_id but no stored signature.
    """
    if not reports:
        return []

    lookups: Dict[Any, Awaitable[Any]] = {}
    for r_idx, report in enumerate(reports):
        for idx, row in enumerate(report.subject_reports):
            if not row.teacher_signature_url and row.subject_id is not None:
                lookups[("subject_signature", r_idx, idx)] = backend.get_subject_teacher_signature(
                    row.subject_id, report.form, report.section
                )
    lookups["principal_signature"] = backend.get_principal_signature()
    lookups["ministry_logo"] = backend.get_ministry_logo()
    lookups["school_profile"] = backend.get_school_profile()
    for form, section in dict.fromkeys((r.form, r.section) for r in reports):
        lookups[("class_teacher_signature", form, section)] = backend.get_class_teacher_signature(form, section)

    found = await _gather_optional(lookups)
    profile = found["school_profile"] or {}
    shared = ReportAssets(
        principal_signature=_asset_ref("principal_signature", found["principal_signature"]),
        school_logo=_asset_ref("school_logo", profile.get("logoPath")),
        ministry_logo=_asset_ref("ministry_logo", found["ministry_logo"]),
        watermark=_asset_ref("watermark", profile.get("backgroundPath")),
    )

    models = []
    for r_idx, report in enumerate(reports):
        rows = []
        for idx, row in enumerate(report.subject_reports):
            key = ("subject_signature", r_idx, idx)
            signature = _asset_ref(key, found.get(key))
            rows.append(row.model_copy(update={"teacher_signature_url": signature}) if signature else row)

        # A signature stored on the report wins over the class lookup.
        class_key = ("class_teacher_signature", report.form, report.section)
        class_signature = _asset_ref("class_teacher_signature", report.class_teacher_signature_url) or _asset_ref(
            class_key, found.get(class_key)
        )
        models.append(ReportModel(
            report=report.model_copy(update={"subject_reports": tuple(rows)}),
            assets=shared.model_copy(update={"class_teacher_signature": class_signature}),
        ))
    return models


async def _fetch(source: Awaitable[T], what: str) -> T:
    try:
        return await source
    except (httpx.HTTPError, ValueError) as exc:
        logger.error("Failed to load %s: %s", what, exc)
        raise SourceFetchError(f"Unable to load {what}.") from exc


async def aggregate_report(backend: SchoolBackend, report_id: int) -> ReportModel:
    """Fetch one report and resolve every asset it needs."""
    report = await _fetch(backend.get_report(report_id), f"report {report_id}")
    return (await _resolve_assets(backend, [report]))[0]


async def aggregate_reports(backend: SchoolBackend, reports: Sequence[Report]) -> List[ReportModel]:
    """Aggregate already-fetched reports, sharing school-wide lookups between them."""
    return await _resolve_assets(backend, list(reports))


async def fetch_student_reports(backend: SchoolBackend, student_id: int) -> List[Report]:
    """A student's report records, without assets, for listings."""
    return await _fetch(backend.list_student_reports(student_id), f"reports for student {student_id}")


async def aggregate_student_reports(backend: SchoolBackend, student_id: int) -> List[ReportModel]:
    reports = await fetch_student_reports(backend, student_id)
    return await aggregate_reports(backend, reports)


async def aggregate_class_reports(
    backend: SchoolBackend, form: str, section: str, term: str, academic_year: str
) -> List[ReportModel]:
    reports = await _fetch(
        backend.list_class_reports(form, section, term, academic_year),
        f"reports for {form} {section} ({term} {academic_year})",
    )
    return await aggregate_reports(backend, reports)


class ViewGuard:
    """
    Drops results that finish after the view that asked for them has gone.

    Each ``run`` supersedes the previous one; ``close`` marks the view torn
    down. A superseded or closed run returns None instead of its result.

    The HTTP routes answer each request once and have no use for it; it is
    the hook for interactive clients that embed the aggregator, e.g.::

        guard = ViewGuard()
        model = await guard.run(aggregate_report(backend, report_id))
        if model is None:
            return  # the user already moved to another report
    """

    def __init__(self):
        self._generation = 0
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def begin(self) -> int:
        self._generation += 1
        return self._generation

    def is_current(self, token: int) -> bool:
        return not self._closed and token == self._generation

    def close(self) -> None:
        self._closed = True

    async def run(self, work: Awaitable[T]) -> Optional[T]:
        token = self.begin()
        result = await work
        if not self.is_current(token):
            logger.debug("Discarding stale result for view generation %s", token)
            return None
        return result
