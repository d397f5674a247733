"""Health check endpoint."""

from pathlib import Path

import structlog
from fastapi import APIRouter, HTTPException, status

from dbhub.config import settings
from dbhub.models.responses import ErrorResponse, HealthResponse

logger = structlog.get_logger()
router = APIRouter(tags=["backend"])


def _check_path_accessible(path: Path) -> bool:
    """Check if a path exists and is accessible."""
    try:
        return path.exists() and path.is_dir()
    except (OSError, PermissionError):
        return False


@router.get(
    "/health",
    response_model=HealthResponse,
    responses={503: {"model": ErrorResponse}},
    summary="Health check",
    description="Check if the service is healthy and storage is accessible.",
)
async def health_check() -> HealthResponse:
    """
    Perform health check.

    Validates:
    - Service is running
    - Local storage paths are accessible
    """
    path_status = {}
    all_healthy = True

    for name, path in settings.storage_paths.items():
        is_accessible = _check_path_accessible(path)
        path_status[name] = is_accessible
        if not is_accessible:
            all_healthy = False

    logger.info(
        "health_check",
        status="healthy" if all_healthy else "unhealthy",
        path_status=path_status,
    )

    if not all_healthy:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={
                "error": "storage_unavailable",
                "message": "One or more storage paths are not accessible",
                "details": path_status,
            },
        )

    return HealthResponse(
        status="healthy",
        version=settings.api_version,
        storage_available=True,
        details=path_status,
    )
