"""
Database Module
===============

Async clients for the engine's backing stores.

Clients:
- Redis (redis.asyncio) for the shared match cache

Usage:
    from shared.database import RedisClient

    await RedisClient.set_cached("key", {"a": 1}, ttl_seconds=60)
"""

from shared.database.redis import RedisClient


__all__ = [
    "RedisClient",
]
