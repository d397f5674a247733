"""Prometheus metrics middleware for HTTP request instrumentation.

Collects HTTP request metrics:
- Request count by method, endpoint, status code
- Request duration histogram
- In-flight requests gauge
"""

import time

import structlog
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from dbhub.metrics import (
    REQUEST_COUNT,
    REQUEST_DURATION,
    REQUEST_IN_FLIGHT,
)

logger = structlog.get_logger()

# /x/{route}/{owner}/{db_name}
CONTENT_ROUTES = {"table", "visdata", "downloadcsv", "download"}


def normalize_path(path: str) -> str:
    """
    Normalize path for metrics labels to avoid high cardinality.

    Replaces owner and database names with placeholders.

    Examples:
        /x/table/alice/chinook.sqlite -> /x/table/{owner}/{db_name}
        /x/download/bob/a.db -> /x/download/{owner}/{db_name}
        /health -> /health
    """
    parts = path.strip("/").split("/")

    if len(parts) >= 2 and parts[0] == "x" and parts[1] in CONTENT_ROUTES:
        normalized = ["x", parts[1]]
        if len(parts) > 2:
            normalized.append("{owner}")
        if len(parts) > 3:
            normalized.append("{db_name}")
        return "/" + "/".join(normalized)

    return "/" + "/".join(p for p in parts if p) if any(parts) else "/"


class MetricsMiddleware(BaseHTTPMiddleware):
    """
    Middleware that collects Prometheus metrics for HTTP requests.

    Metrics collected:
    - dbhub_api_requests_total: Counter by method, endpoint, status_code
    - dbhub_api_request_duration_seconds: Histogram by method, endpoint
    - dbhub_api_requests_in_flight: Gauge by method
    """

    # Endpoints to skip (internal/debug endpoints)
    SKIP_PATHS = {"/metrics", "/docs", "/redoc", "/openapi.json"}

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        method = request.method

        if request.url.path in self.SKIP_PATHS:
            return await call_next(request)

        endpoint = normalize_path(request.url.path)

        REQUEST_IN_FLIGHT.labels(method=method).inc()
        start_time = time.perf_counter()

        try:
            response = await call_next(request)
            status_code = str(response.status_code)
        except Exception:
            status_code = "500"
            raise
        finally:
            duration = time.perf_counter() - start_time
            REQUEST_DURATION.labels(method=method, endpoint=endpoint).observe(duration)
            REQUEST_COUNT.labels(
                method=method,
                endpoint=endpoint,
                status_code=status_code
            ).inc()
            REQUEST_IN_FLIGHT.labels(method=method).dec()

        return response
