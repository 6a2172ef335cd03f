"""
ReportForge — Report Compilation & Multi-Channel Rendering Engine
FastAPI backend entry point.
"""

import logging
import os
from pathlib import Path

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from core.config import allowed_origins, load_render_config
from core.grading import PASS_MARK
from routes.listing import router as listing_router
from routes.reports import router as reports_router

# Load environment
load_dotenv()

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

# Keep generated file path stable regardless of where uvicorn is started.
UPLOAD_DIR = Path(__file__).resolve().parent / "uploads"
UPLOAD_DIR.mkdir(exist_ok=True)

app = FastAPI(
    title="ReportForge API",
    description=(
        "Compiles student report cards from the school backend and renders "
        "them as preview HTML, print documents, plain text, PDF and Excel."
    ),
    version="1.0.0",
)

# CORS for the frontend dev server
app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Register route modules
app.include_router(reports_router, prefix="/api/reports", tags=["Reports"])
app.include_router(listing_router, prefix="/api/listing", tags=["Listing"])


@app.get("/api/health")
async def health_check():
    config = load_render_config()
    return {
        "status": "ok",
        "school_name": config.school_name,
        "pass_mark": PASS_MARK,
    }


@app.get("/api/config")
async def get_config():
    """Return rendering configuration to the frontend."""
    config = load_render_config()
    return {
        "school_name": config.school_name,
        "pass_mark": PASS_MARK,
        "api_base_url": config.api_base_url,
        "primary_color": config.primary_color,
        "secondary_color": config.secondary_color,
        "fallback_category": config.fallback_category.value,
        "print_stagger_seconds": config.print_stagger_seconds,
    }
