"""Best-effort Redis cache shared by the metadata and output tiers.

Cache failures never fail a request. A read error is reported as a miss and
a write error is logged and dropped; either way the caller falls back to the
authoritative path (metadata store + object storage + extraction).

Values are stored whole and overwritten whole: bytes for rendered responses,
JSON for structured values such as storage locations.
"""

import json
from typing import Any

import redis
import structlog
from redis.exceptions import RedisError

from dbhub.config import settings
from dbhub import metrics

logger = structlog.get_logger()

TIER_METADATA = "metadata"
TIER_OUTPUT = "output"


class TieredCache:
    """
    Key/value cache with per-entry expiration.

    Attributes:
        client: Redis client (anything with get/set(ex=...)), or None to
            disable caching entirely
    """

    def __init__(self, client: "redis.Redis | None"):
        self.client = client

    @classmethod
    def from_settings(cls) -> "TieredCache":
        """Build a cache from configuration. Connection is lazy."""
        if not settings.cache_enabled:
            logger.info("cache_disabled")
            return cls(None)

        client = redis.Redis.from_url(
            settings.redis_url,
            socket_timeout=settings.redis_socket_timeout,
            socket_connect_timeout=settings.redis_socket_timeout,
        )
        logger.info("cache_configured", redis_url=settings.redis_url)
        return cls(client)

    @property
    def enabled(self) -> bool:
        return self.client is not None

    def get(self, key: str, tier: str = TIER_OUTPUT) -> tuple[bytes | None, bool]:
        """
        Look up a key.

        Returns:
            (value, found). Errors are logged and reported as (None, False).
        """
        if self.client is None:
            return None, False

        try:
            value = self.client.get(key)
        except RedisError as e:
            metrics.CACHE_ERRORS.labels(operation="get").inc()
            logger.warning("cache_get_failed", key=key, tier=tier, error=str(e))
            return None, False

        if value is None:
            metrics.CACHE_MISSES.labels(tier=tier).inc()
            logger.debug("cache_miss", key=key, tier=tier)
            return None, False

        metrics.CACHE_HITS.labels(tier=tier).inc()
        logger.debug("cache_hit", key=key, tier=tier)
        if isinstance(value, str):
            value = value.encode("utf-8")
        return value, True

    def put(self, key: str, value: bytes, ttl_seconds: int, tier: str = TIER_OUTPUT) -> bool:
        """
        Store a value with a TTL.

        Returns:
            True if stored, False if the cache is disabled or the write failed
        """
        if self.client is None:
            return False

        try:
            self.client.set(key, value, ex=ttl_seconds)
        except RedisError as e:
            metrics.CACHE_ERRORS.labels(operation="put").inc()
            logger.warning("cache_put_failed", key=key, tier=tier, error=str(e))
            return False

        logger.debug("cache_put", key=key, tier=tier, ttl=ttl_seconds, size=len(value))
        return True

    def get_json(self, key: str, tier: str = TIER_METADATA) -> tuple[Any, bool]:
        """Look up a JSON value. Undecodable entries count as misses."""
        raw, found = self.get(key, tier=tier)
        if not found:
            return None, False

        try:
            return json.loads(raw), True
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            metrics.CACHE_ERRORS.labels(operation="decode").inc()
            logger.warning("cache_entry_corrupt", key=key, tier=tier, error=str(e))
            return None, False

    def put_json(self, key: str, value: Any, ttl_seconds: int, tier: str = TIER_METADATA) -> bool:
        """Store a JSON-serializable value with a TTL."""
        return self.put(key, json.dumps(value).encode("utf-8"), ttl_seconds, tier=tier)
