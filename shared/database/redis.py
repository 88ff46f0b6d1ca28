"""
Redis Client
============

Async Redis client backing the shared match cache.

Version: 0.1.0
"""

import json
import time
from typing import Any

import redis.asyncio as aioredis
from redis.asyncio import Redis

from shared.config import settings
from shared.logging import get_logger

logger = get_logger(__name__)

DELETE_BATCH_SIZE = 500


class RedisClient:
    """
    Async Redis client wrapper.

    Provides JSON caching utilities and connection management.
    """

    _client: Redis | None = None  # type: ignore[type-arg]

    @classmethod
    def get_client(cls) -> Redis:  # type: ignore[type-arg]
        """Get or create the async client."""
        if cls._client is None:
            cls._client = aioredis.from_url(
                settings.redis.url,
                encoding="utf-8",
                decode_responses=True,
                max_connections=50,
            )
            logger.info(
                "redis_client_created",
                host=settings.redis.host,
            )
        return cls._client

    @classmethod
    async def close(cls) -> None:
        """Close the client and release all connections."""
        if cls._client is not None:
            await cls._client.aclose()
            cls._client = None
            logger.info("redis_client_closed")

    @classmethod
    async def health_check(cls) -> dict[str, Any]:
        """
        Check Redis health.

        Returns:
            dict with status and server info
        """
        try:
            start = time.perf_counter()
            client = cls.get_client()
            pong = await client.ping()
            latency_ms = (time.perf_counter() - start) * 1000

            info = await client.info("server")

            return {
                "status": "healthy" if pong else "unhealthy",
                "latency_ms": round(latency_ms, 2),
                "redis_version": info.get("redis_version", "unknown"),
            }
        except Exception as e:
            logger.error("redis_health_check_failed", error=str(e))
            return {
                "status": "unhealthy",
                "error": str(e),
            }

    # =========================================================================
    # Caching Utilities
    # =========================================================================

    @classmethod
    async def get_cached(
        cls,
        key: str,
        default: Any = None,
    ) -> Any:
        """
        Get a cached JSON value.

        Args:
            key: Cache key
            default: Default value if not found

        Returns:
            Decoded value or default
        """
        client = cls.get_client()
        value = await client.get(key)

        if value is None:
            return default

        try:
            return json.loads(value)
        except json.JSONDecodeError:
            logger.warning("redis_value_not_json", key=key)
            return default

    @classmethod
    async def set_cached(
        cls,
        key: str,
        value: Any,
        ttl_seconds: int = 3600,
    ) -> bool:
        """
        Set a cached value.

        Args:
            key: Cache key
            value: Value to cache (dicts and lists are JSON serialized)
            ttl_seconds: Time to live in seconds

        Returns:
            True if successful
        """
        client = cls.get_client()

        if isinstance(value, (dict, list)):
            value = json.dumps(value)

        return bool(await client.setex(key, ttl_seconds, value))

    @classmethod
    async def delete_cached(cls, key: str) -> bool:
        """Delete a cached value."""
        client = cls.get_client()
        return await client.delete(key) > 0

    @classmethod
    async def delete_pattern(cls, pattern: str) -> int:
        """
        Delete all keys matching a pattern.

        Args:
            pattern: Redis key pattern (e.g., "applicability:match:org-1:*")

        Returns:
            Number of keys deleted
        """
        client = cls.get_client()
        deleted = 0
        batch: list[str] = []
        async for key in client.scan_iter(match=pattern, count=DELETE_BATCH_SIZE):
            batch.append(key)
            if len(batch) >= DELETE_BATCH_SIZE:
                deleted += await client.delete(*batch)
                batch.clear()

        if batch:
            deleted += await client.delete(*batch)
        return deleted

