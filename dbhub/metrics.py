"""Prometheus metrics definitions for the DBHub Content API.

This module defines all Prometheus metrics used for observability:
- HTTP request metrics (count, duration, in-flight)
- Cache metrics per tier (hits, misses, errors)
- Object storage fetch metrics
- Extraction metrics (duration, rows returned)
"""

import platform
import time

from prometheus_client import Counter, Gauge, Histogram, Info
from prometheus_client import ProcessCollector

# ProcessCollector only works on Linux (uses /proc filesystem)
if platform.system() == "Linux":
    try:
        ProcessCollector()
    except ValueError:
        pass  # Already registered

# =============================================================================
# Service Health Metrics
# =============================================================================

SERVICE_UP = Gauge(
    "dbhub_api_up",
    "Whether the DBHub API service is up (1) or down (0)"
)

SERVICE_START_TIME = Gauge(
    "dbhub_api_start_time_seconds",
    "Unix timestamp when the service started"
)

SERVICE_START_TIME.set(time.time())
SERVICE_UP.set(1)

SERVICE_INFO = Info(
    "dbhub_api",
    "DBHub API service information"
)

# =============================================================================
# HTTP Request Metrics
# =============================================================================

REQUEST_COUNT = Counter(
    "dbhub_api_requests_total",
    "Total number of HTTP requests",
    ["method", "endpoint", "status_code"]
)

REQUEST_DURATION = Histogram(
    "dbhub_api_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint"],
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0]
)

REQUEST_IN_FLIGHT = Gauge(
    "dbhub_api_requests_in_flight",
    "Number of HTTP requests currently being processed",
    ["method"]
)

# =============================================================================
# Error Metrics
# =============================================================================

ERROR_COUNT = Counter(
    "dbhub_api_errors_total",
    "Total number of errors by type",
    ["type", "endpoint"]
)

# =============================================================================
# Cache Metrics
# =============================================================================

CACHE_HITS = Counter(
    "dbhub_cache_hits_total",
    "Cache hits by tier",
    ["tier"]
)

CACHE_MISSES = Counter(
    "dbhub_cache_misses_total",
    "Cache misses by tier",
    ["tier"]
)

CACHE_ERRORS = Counter(
    "dbhub_cache_errors_total",
    "Cache errors (always non-fatal) by operation",
    ["operation"]
)

# =============================================================================
# Object Storage Metrics
# =============================================================================

OBJECT_FETCHES_TOTAL = Counter(
    "dbhub_object_fetches_total",
    "Total number of object storage fetches",
    ["status"]
)

OBJECT_FETCH_BYTES_TOTAL = Counter(
    "dbhub_object_fetch_bytes_total",
    "Total bytes copied from object storage"
)

RAW_DOWNLOADS_TOTAL = Counter(
    "dbhub_raw_downloads_total",
    "Total number of whole-file downloads",
    ["status"]
)

# =============================================================================
# Extraction Metrics
# =============================================================================

EXTRACTION_DURATION = Histogram(
    "dbhub_extraction_duration_seconds",
    "Time spent reading rows from a materialized database",
    ["mode"],
    buckets=[0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 5.0, 30.0]
)

ROWS_RETURNED = Histogram(
    "dbhub_rows_returned",
    "Number of rows returned per extraction",
    ["mode"],
    buckets=[0, 1, 10, 50, 100, 500, 1000, 2500]
)

METADATA_QUERIES_TOTAL = Counter(
    "dbhub_metadata_queries_total",
    "Total number of metadata database queries",
    ["operation"]
)

METADATA_QUERY_DURATION = Histogram(
    "dbhub_metadata_query_duration_seconds",
    "Metadata database query duration in seconds",
    ["operation"],
    buckets=[0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0]
)

METADATA_CONNECTIONS_ACTIVE = Gauge(
    "dbhub_metadata_connections_active",
    "Number of open metadata database connections"
)


def set_service_info(version: str, duckdb_version: str, sqlite_version: str) -> None:
    """Set service information labels."""
    SERVICE_INFO.info({
        "version": version,
        "duckdb_version": duckdb_version,
        "sqlite_version": sqlite_version,
        "python_version": platform.python_version(),
    })
