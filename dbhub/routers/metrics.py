"""Prometheus metrics endpoint router.

Exposes /metrics for Prometheus scraping.
"""

import sqlite3

import duckdb
import structlog
from fastapi import APIRouter
from fastapi.responses import PlainTextResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from dbhub.config import settings
from dbhub.metrics import set_service_info

logger = structlog.get_logger()

router = APIRouter(tags=["metrics"])


@router.get(
    "/metrics",
    response_class=PlainTextResponse,
    summary="Prometheus metrics endpoint",
    description="Returns metrics in Prometheus text format for scraping.",
)
async def get_metrics():
    """
    Expose Prometheus metrics.

    Not authenticated, so Prometheus can scrape without credentials.
    """
    set_service_info(
        version=settings.api_version,
        duckdb_version=duckdb.__version__,
        sqlite_version=sqlite3.sqlite_version,
    )

    return PlainTextResponse(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST,
    )
