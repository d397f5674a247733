"""FastAPI dependencies for the acting identity and the shared pipeline.

Content endpoints are readable anonymously. A request may carry a bearer
API key; when it does, the key must be valid and the request acts as the
key's user:

    @router.get("/x/table/{owner}/{db_name}")
    def table_view(
        acting_user: Annotated[str, Depends(get_acting_user)],
        pipeline: Annotated[ContentPipeline, Depends(get_pipeline)],
        ...
    ):
        ...

An anonymous request acts as "" (the empty username).
"""

import threading
from typing import Annotated

import duckdb
import structlog
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from dbhub.auth import get_key_prefix, username_from_key, verify_key_hash
from dbhub.cache import TieredCache
from dbhub.config import settings
from dbhub.database import metadata_db
from dbhub.object_store import build_object_store
from dbhub.pipeline import ContentPipeline

logger = structlog.get_logger(__name__)

# Security scheme for Swagger UI; a missing header is allowed
security = HTTPBearer(
    scheme_name="Bearer Auth",
    description="Optional user API key (user_{username}_{random})",
    auto_error=False,
)


class AuthenticationError(HTTPException):
    """Raised when a supplied API key is not valid."""

    def __init__(self, detail: str = "Invalid API key"):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"error": "unauthorized", "message": detail},
            headers={"WWW-Authenticate": "Bearer"},
        )


def resolve_api_key(api_key: str) -> str:
    """
    Resolve a raw API key to the username it authenticates.

    Raises:
        AuthenticationError: Unknown, revoked or mismatched key
    """
    key_prefix = get_key_prefix(api_key)
    key_record = metadata_db.get_api_key_by_prefix(key_prefix)

    if not key_record:
        logger.warning("auth_key_not_found", key_prefix=key_prefix)
        raise AuthenticationError()

    if not verify_key_hash(api_key, key_record["key_hash"]):
        logger.warning("auth_key_mismatch", key_prefix=key_prefix)
        raise AuthenticationError()

    if username_from_key(api_key) != key_record["username"]:
        logger.warning("auth_key_user_mismatch", key_prefix=key_prefix)
        raise AuthenticationError()

    try:
        metadata_db.update_api_key_last_used(key_record["id"])
    except duckdb.Error as e:
        # Concurrent requests with one key can conflict on this update
        logger.warning("auth_update_last_used_failed", key_prefix=key_prefix, error=str(e))

    return key_record["username"]


def get_acting_user(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
) -> str:
    """
    Username the request acts as, or "" when no key was sent.

    Raises:
        AuthenticationError: If a key was sent and is invalid
    """
    if not credentials or not credentials.credentials:
        return ""

    username = resolve_api_key(credentials.credentials)
    logger.debug("auth_resolved", username=username)
    return username


def get_max_rows(acting_user: Annotated[str, Depends(get_acting_user)]) -> int:
    """Row limit for table views: the user's preference, else the default."""
    if not acting_user:
        return settings.default_max_rows

    preference = metadata_db.get_user_max_rows(acting_user)
    if preference is None or preference <= 0:
        return settings.default_max_rows
    return preference


_pipeline: ContentPipeline | None = None
_pipeline_lock = threading.Lock()


def get_pipeline() -> ContentPipeline:
    """
    Shared ContentPipeline built from settings on first use.

    Tests replace it through app.dependency_overrides.
    """
    global _pipeline
    if _pipeline is None:
        with _pipeline_lock:
            if _pipeline is None:
                _pipeline = ContentPipeline(
                    metadata=metadata_db,
                    store=build_object_store(),
                    cache=TieredCache.from_settings(),
                    temp_dir=settings.temp_dir,
                )
    return _pipeline
