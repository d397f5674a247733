"""DBHub Content API - FastAPI application."""

import logging
import time
import uuid
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from dbhub.config import settings
from dbhub.database import metadata_db
from dbhub.errors import DBHubError
from dbhub.metrics import ERROR_COUNT
from dbhub.middleware.metrics import MetricsMiddleware, normalize_path
from dbhub.routers import backend, content, metrics


def setup_logging() -> None:
    """Configure structured logging."""
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer() if not settings.debug else structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.INFO if not settings.debug else logging.DEBUG
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    logger = structlog.get_logger()
    logger.info(
        "application_startup",
        version=settings.api_version,
        debug=settings.debug,
        data_dir=str(settings.data_dir),
        object_store_backend=settings.object_store_backend,
        cache_enabled=settings.cache_enabled,
    )

    try:
        metadata_db.initialize()
        logger.info("metadata_db_initialized", path=str(settings.metadata_db_path))
    except Exception as e:
        logger.error("metadata_db_init_failed", error=str(e), exc_info=True)
        raise

    if settings.object_store_backend == "local":
        settings.objects_dir.mkdir(parents=True, exist_ok=True)

    yield

    logger.info("application_shutdown")


# Setup logging before creating app
setup_logging()
logger = structlog.get_logger()

app = FastAPI(
    title=settings.api_title,
    version=settings.api_version,
    description="""
DBHub Content API.

Serves the contents of user-uploaded SQLite databases:
- Table views and visualisation data as JSON
- Table export as CSV
- Whole-file download

Requests are anonymous unless they carry `Authorization: Bearer <api key>`.
Owners see their newest version; everyone else sees the newest public one.
A private database is reported exactly like a missing one.
    """,
    lifespan=lifespan,
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Prometheus request instrumentation
app.add_middleware(MetricsMiddleware)


@app.middleware("http")
async def request_logging_middleware(request: Request, call_next):
    """Log all requests with timing and request ID."""
    request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(request_id=request_id)

    start_time = time.perf_counter()

    logger.info(
        "request_started",
        method=request.method,
        path=request.url.path,
    )

    response = await call_next(request)

    duration_ms = (time.perf_counter() - start_time) * 1000

    logger.info(
        "request_completed",
        method=request.method,
        path=request.url.path,
        status_code=response.status_code,
        duration_ms=round(duration_ms, 2),
    )

    response.headers["X-Request-ID"] = request_id
    return response


@app.exception_handler(DBHubError)
async def dbhub_error_handler(request: Request, exc: DBHubError):
    """Map pipeline errors to status codes; 5xx responses never echo internals."""
    endpoint = normalize_path(request.url.path)
    ERROR_COUNT.labels(type=exc.error_code, endpoint=endpoint).inc()

    logger.info(
        "content_error_response",
        path=request.url.path,
        status_code=exc.status_code,
        error_code=exc.error_code,
    )
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.error_code, "message": exc.client_message()},
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Handle uncaught exceptions."""
    endpoint = normalize_path(request.url.path)
    error_type = type(exc).__name__
    ERROR_COUNT.labels(type=error_type, endpoint=endpoint).inc()

    logger.error(
        "unhandled_exception",
        method=request.method,
        path=request.url.path,
        error=str(exc),
        error_type=error_type,
        exc_info=True,
    )
    return JSONResponse(
        status_code=500,
        content={
            "error": "internal_server_error",
            "message": str(exc) if settings.debug else "An internal error occurred",
        },
    )


app.include_router(backend.router)
app.include_router(content.router)
app.include_router(metrics.router)


@app.get("/", include_in_schema=False)
async def root():
    """Root endpoint - points at the health check."""
    return {
        "service": settings.api_title,
        "version": settings.api_version,
        "health": "/health",
        "docs": "/docs" if settings.debug else None,
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "dbhub.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )
