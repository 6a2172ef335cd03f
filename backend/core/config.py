"""
config.py — Rendering and backend settings.

Settings come from the environment (optionally a .env file) and are handed
to every render call as an explicit RenderConfig value.
"""

import os
import re
from dataclasses import dataclass, replace
from typing import Any, List

from dotenv import load_dotenv

from core.categorizer import Category, DEFAULT_CATEGORY, parse_category


DEFAULT_PRIMARY_COLOR = "#4B0082"
DEFAULT_SECONDARY_COLOR = "#F4A460"
_HEX_COLOR = re.compile(r"^#[0-9a-fA-F]{6}$")


@dataclass(frozen=True)
class RenderConfig:
    api_base_url: str = "http://localhost:8080"
    backend_api_url: str = "http://localhost:8080/api"
    backend_timeout_seconds: float = 10.0
    primary_color: str = DEFAULT_PRIMARY_COLOR
    secondary_color: str = DEFAULT_SECONDARY_COLOR
    school_name: str = "My School"
    school_address: str = ""
    school_phone: str = ""
    ministry_name: str = "Ministry of Primary & Secondary Education"
    report_title: str = "Student's Monthly Progress Report"
    fallback_category: Category = DEFAULT_CATEGORY
    print_stagger_seconds: float = 0.5

    def with_overrides(self, **changes: Any) -> "RenderConfig":
        return replace(self, **changes)


def _safe_color(value: str, default: str) -> str:
    """Only plain hex colours reach the stylesheet."""
    value = (value or "").strip()
    return value if _HEX_COLOR.match(value) else default


def _float_env(name: str, default: float) -> float:
    try:
        return float(os.getenv(name, str(default)))
    except ValueError:
        return default


def allowed_origins() -> List[str]:
    # Comma-separated allowed origins, e.g. http://localhost:5173,https://app.example.com
    raw = os.getenv("CORS_ORIGINS", "http://localhost:5173,http://localhost:3000")
    return [o.strip() for o in raw.split(",") if o.strip()]


def load_render_config() -> RenderConfig:
    """Build a RenderConfig from the current environment."""
    load_dotenv()
    api_base_url = os.getenv("API_BASE_URL", RenderConfig.api_base_url).rstrip("/")
    return RenderConfig(
        api_base_url=api_base_url,
        backend_api_url=os.getenv("BACKEND_API_URL", f"{api_base_url}/api").rstrip("/"),
        backend_timeout_seconds=_float_env("BACKEND_TIMEOUT_SECONDS", 10.0),
        primary_color=_safe_color(os.getenv("PRIMARY_COLOR", ""), DEFAULT_PRIMARY_COLOR),
        secondary_color=_safe_color(os.getenv("SECONDARY_COLOR", ""), DEFAULT_SECONDARY_COLOR),
        school_name=os.getenv("SCHOOL_NAME", RenderConfig.school_name),
        school_address=os.getenv("SCHOOL_ADDRESS", ""),
        school_phone=os.getenv("SCHOOL_PHONE", ""),
        ministry_name=os.getenv("MINISTRY_NAME", RenderConfig.ministry_name),
        report_title=os.getenv("REPORT_TITLE", RenderConfig.report_title),
        fallback_category=parse_category(os.getenv("SUBJECT_FALLBACK_CATEGORY")),
        print_stagger_seconds=max(0.0, _float_env("PRINT_STAGGER_SECONDS", 0.5)),
    )
