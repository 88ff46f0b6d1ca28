"""
Match Cache
===========

Memoizes pipeline results by profile fingerprint so progressive edits
don't rescan the register on every keystroke.

Implementations:
- InMemoryMatchCache: per-process map with TTL, size bound and
  stampede collapse
- RedisMatchCache: shared cache through the Redis client
- NullMatchCache: always recomputes

The cache is an optimization only. Every hit is validated against the
current plan signature and store version; a failed validation is a miss.

Version: 0.1.0
"""

import asyncio
import time
from abc import ABC, abstractmethod
from collections import OrderedDict
from collections.abc import Awaitable, Callable
from dataclasses import asdict, dataclass
from typing import Any

from pydantic import ValidationError

from services.applicability.errors import StaleCacheError
from shared.database.redis import RedisClient
from shared.logging import get_logger
from shared.models.matching import MatchResult


logger = get_logger(__name__)

ComputeFn = Callable[[], Awaitable[MatchResult]]

HOUR = 3600


def cache_key(organization_id: str | None, location_id: str | None, fingerprint: str) -> str:
    """Key layout: '<organization>:<location or org>:<fingerprint>'."""
    return f"{organization_id or 'adhoc'}:{location_id or 'org'}:{fingerprint}"


def ttl_for_size(
    employee_count: int | None,
    base_ttl: int,
    max_ttl: int,
    size_scaled: bool = True,
) -> int:
    """
    Larger organizations change their profile less often, so they keep
    results longer.
    """
    if not size_scaled or employee_count is None:
        return min(base_ttl, max_ttl)
    if employee_count > 1000:
        ttl = 24 * HOUR
    elif employee_count > 100:
        ttl = 8 * HOUR
    elif employee_count > 10:
        ttl = 4 * HOUR
    else:
        ttl = 2 * HOUR
    return min(ttl, max_ttl)


@dataclass
class CacheStats:
    """Counters exposed on the cache stats endpoint."""

    backend: str
    entries: int = 0
    hits: int = 0
    misses: int = 0
    expirations: int = 0
    stale_rejections: int = 0
    collisions: int = 0
    evictions: int = 0
    coalesced: int = 0
    errors: int = 0

    @property
    def hit_rate(self) -> float:
        lookups = self.hits + self.misses + self.coalesced
        return round((self.hits + self.coalesced) / lookups, 4) if lookups else 0.0

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["hit_rate"] = self.hit_rate
        return data


@dataclass
class CacheEntry:
    """Cached result plus what it must be validated against."""

    result: MatchResult
    plan_signature: str
    store_version: str
    organization_id: str | None
    expires_at: float

    def validate(self, key: str, plan_signature: str, store_version: str, now: float) -> None:
        if now >= self.expires_at:
            raise StaleCacheError(key, "expired")
        if self.store_version != store_version:
            raise StaleCacheError(key, "store_version_changed")
        if self.plan_signature != plan_signature:
            raise StaleCacheError(key, "plan_mismatch")


class MatchCache(ABC):
    """Injectable cache abstraction used by the engine."""

    @abstractmethod
    async def get_or_compute(
        self,
        key: str,
        plan_signature: str,
        store_version: str,
        compute: ComputeFn,
        ttl_seconds: int | None = None,
    ) -> MatchResult:
        """Return a valid cached result or compute, store and return one."""

    @abstractmethod
    async def peek(self, key: str) -> MatchResult | None:
        """Last stored result for a key, without validation."""

    @abstractmethod
    async def invalidate(self, key: str) -> bool:
        """Drop one key."""

    @abstractmethod
    async def invalidate_organization(self, organization_id: str) -> int:
        """Drop every key belonging to an organization."""

    @abstractmethod
    async def clear(self) -> int:
        """Drop everything."""

    @abstractmethod
    def stats(self) -> CacheStats:
        """Current counters."""


# =============================================================================
# In-flight coalescing
# =============================================================================


FlightKey = tuple[str, str, str]


def flight_key(key: str, plan_signature: str, store_version: str) -> FlightKey:
    return (key, plan_signature, store_version)


class _InFlight:
    """
    Futures for computations in progress, so concurrent misses share one
    computation.

    A computation is only shared between callers asking for the same key,
    plan signature and store version.
    """

    def __init__(self, stats: CacheStats) -> None:
        self._pending: dict[FlightKey, asyncio.Future[MatchResult]] = {}
        self._stats = stats

    def waiting(self, flight: FlightKey) -> asyncio.Future[MatchResult] | None:
        return self._pending.get(flight)

    async def run(
        self,
        flight: FlightKey,
        compute: ComputeFn,
        store: Callable[[MatchResult], Awaitable[None]],
    ) -> MatchResult:
        key = flight[0]
        while True:
            pending = self._pending.get(flight)
            if pending is None:
                break
            self._stats.coalesced += 1
            logger.debug("match_cache_coalesced", key=key)
            try:
                return await asyncio.shield(pending)
            except asyncio.CancelledError:
                task = asyncio.current_task()
                # Owner was cancelled, not us: take over the computation.
                if pending.cancelled() and task is not None and not task.cancelling():
                    continue
                raise

        future: asyncio.Future[MatchResult] = asyncio.get_running_loop().create_future()
        self._pending[flight] = future
        try:
            result = await compute()
            await store(result)
        except asyncio.CancelledError:
            future.cancel()
            raise
        except Exception as e:
            future.set_exception(e)
            # The owner re-raises; mark the future's exception retrieved.
            future.exception()
            raise
        else:
            future.set_result(result)
            return result
        finally:
            self._pending.pop(flight, None)


# =============================================================================
# In-memory
# =============================================================================


class InMemoryMatchCache(MatchCache):
    """
    Process-local cache.

    Lookup and insert for a key never straddle an await, so per-key
    updates are atomic on the event loop.
    """

    def __init__(
        self,
        max_entries: int = 10_000,
        default_ttl_seconds: int = 2 * HOUR,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.max_entries = max_entries
        self.default_ttl_seconds = default_ttl_seconds
        self._clock = clock
        self._entries: OrderedDict[str, CacheEntry] = OrderedDict()
        self._stats = CacheStats(backend="memory")
        self._inflight = _InFlight(self._stats)

    async def get_or_compute(
        self,
        key: str,
        plan_signature: str,
        store_version: str,
        compute: ComputeFn,
        ttl_seconds: int | None = None,
    ) -> MatchResult:
        entry = self._entries.get(key)
        if entry is not None:
            try:
                entry.validate(key, plan_signature, store_version, self._clock())
            except StaleCacheError as e:
                self._reject(entry, e, plan_signature)
            else:
                self._stats.hits += 1
                logger.debug("match_cache_hit", key=key)
                return entry.result

        flight = flight_key(key, plan_signature, store_version)
        if self._inflight.waiting(flight) is None:
            self._stats.misses += 1
            logger.debug("match_cache_miss", key=key)

        ttl = ttl_seconds or self.default_ttl_seconds

        async def store(result: MatchResult) -> None:
            self._put(key, result, plan_signature, store_version, ttl)

        return await self._inflight.run(flight, compute, store)

    def _reject(self, entry: CacheEntry, error: StaleCacheError, plan_signature: str) -> None:
        self._entries.pop(error.key, None)
        if error.reason == "expired":
            self._stats.expirations += 1
        elif error.reason == "plan_mismatch":
            self._stats.collisions += 1
            logger.warning(
                "match_cache_fingerprint_collision",
                key=error.key,
                cached_plan=entry.plan_signature,
                requested_plan=plan_signature,
            )
        else:
            self._stats.stale_rejections += 1
            logger.info("match_cache_stale", key=error.key, reason=error.reason)

    def _put(
        self,
        key: str,
        result: MatchResult,
        plan_signature: str,
        store_version: str,
        ttl_seconds: int,
    ) -> None:
        self._entries[key] = CacheEntry(
            result=result,
            plan_signature=plan_signature,
            store_version=store_version,
            organization_id=result.organization_id,
            expires_at=self._clock() + ttl_seconds,
        )
        self._entries.move_to_end(key)
        while len(self._entries) > self.max_entries:
            evicted, _ = self._entries.popitem(last=False)
            self._stats.evictions += 1
            logger.debug("match_cache_evicted", key=evicted)

    async def peek(self, key: str) -> MatchResult | None:
        entry = self._entries.get(key)
        return entry.result if entry is not None else None

    async def invalidate(self, key: str) -> bool:
        return self._entries.pop(key, None) is not None

    async def invalidate_organization(self, organization_id: str) -> int:
        keys = [
            key for key, entry in self._entries.items()
            if entry.organization_id == organization_id
        ]
        for key in keys:
            del self._entries[key]
        logger.info("match_cache_org_invalidated", organization_id=organization_id, removed=len(keys))
        return len(keys)

    async def clear(self) -> int:
        removed = len(self._entries)
        self._entries.clear()
        logger.info("match_cache_cleared", removed=removed)
        return removed

    def stats(self) -> CacheStats:
        self._stats.entries = len(self._entries)
        return self._stats


# =============================================================================
# Null
# =============================================================================


class NullMatchCache(MatchCache):
    """No caching; every lookup computes."""

    def __init__(self) -> None:
        self._stats = CacheStats(backend="none")

    async def get_or_compute(
        self,
        key: str,
        plan_signature: str,
        store_version: str,
        compute: ComputeFn,
        ttl_seconds: int | None = None,
    ) -> MatchResult:
        self._stats.misses += 1
        return await compute()

    async def peek(self, key: str) -> MatchResult | None:
        return None

    async def invalidate(self, key: str) -> bool:
        return False

    async def invalidate_organization(self, organization_id: str) -> int:
        return 0

    async def clear(self) -> int:
        return 0

    def stats(self) -> CacheStats:
        return self._stats


# =============================================================================
# Redis
# =============================================================================


class RedisMatchCache(MatchCache):
    """
    Cache shared across processes through Redis.

    Redis failures degrade to recomputation; they never fail a request.
    """

    def __init__(
        self,
        client: Any = RedisClient,
        key_prefix: str = "applicability",
        default_ttl_seconds: int = 2 * HOUR,
    ) -> None:
        self.client = client
        self.key_prefix = key_prefix
        self.default_ttl_seconds = default_ttl_seconds
        self._stats = CacheStats(backend="redis")
        self._inflight = _InFlight(self._stats)

    def _redis_key(self, key: str) -> str:
        return f"{self.key_prefix}:match:{key}"

    async def _load(self, key: str) -> dict[str, Any] | None:
        try:
            payload = await self.client.get_cached(self._redis_key(key))
        except Exception as e:
            self._stats.errors += 1
            logger.warning("match_cache_redis_read_failed", key=key, error=str(e))
            return None
        return payload if isinstance(payload, dict) else None

    async def get_or_compute(
        self,
        key: str,
        plan_signature: str,
        store_version: str,
        compute: ComputeFn,
        ttl_seconds: int | None = None,
    ) -> MatchResult:
        flight = flight_key(key, plan_signature, store_version)
        if self._inflight.waiting(flight) is None:
            payload = await self._load(key)
            if payload is not None:
                result = self._validated(key, payload, plan_signature, store_version)
                if result is not None:
                    self._stats.hits += 1
                    logger.debug("match_cache_hit", key=key, backend="redis")
                    return result
            self._stats.misses += 1

        ttl = ttl_seconds or self.default_ttl_seconds

        async def store(result: MatchResult) -> None:
            await self._store(key, result, plan_signature, store_version, ttl)

        return await self._inflight.run(flight, compute, store)

    def _validated(
        self,
        key: str,
        payload: dict[str, Any],
        plan_signature: str,
        store_version: str,
    ) -> MatchResult | None:
        try:
            if payload.get("store_version") != store_version:
                raise StaleCacheError(key, "store_version_changed")
            if payload.get("plan_signature") != plan_signature:
                raise StaleCacheError(key, "plan_mismatch")
            return MatchResult.model_validate(payload["result"])
        except StaleCacheError as e:
            if e.reason == "plan_mismatch":
                self._stats.collisions += 1
                logger.warning("match_cache_fingerprint_collision", key=key, backend="redis")
            else:
                self._stats.stale_rejections += 1
                logger.info("match_cache_stale", key=key, reason=e.reason, backend="redis")
        except (KeyError, ValidationError) as e:
            self._stats.errors += 1
            logger.warning("match_cache_entry_corrupt", key=key, error=str(e))
        return None

    async def _store(
        self,
        key: str,
        result: MatchResult,
        plan_signature: str,
        store_version: str,
        ttl_seconds: int,
    ) -> None:
        payload = {
            "result": result.model_dump(mode="json"),
            "plan_signature": plan_signature,
            "store_version": store_version,
        }
        try:
            await self.client.set_cached(self._redis_key(key), payload, ttl_seconds=ttl_seconds)
        except Exception as e:
            self._stats.errors += 1
            logger.warning("match_cache_redis_write_failed", key=key, error=str(e))

    async def peek(self, key: str) -> MatchResult | None:
        payload = await self._load(key)
        if payload is None or "result" not in payload:
            return None
        try:
            return MatchResult.model_validate(payload["result"])
        except ValidationError:
            return None

    async def invalidate(self, key: str) -> bool:
        try:
            return bool(await self.client.delete_cached(self._redis_key(key)))
        except Exception as e:
            self._stats.errors += 1
            logger.warning("match_cache_redis_delete_failed", key=key, error=str(e))
            return False

    async def invalidate_organization(self, organization_id: str) -> int:
        try:
            removed = await self.client.delete_pattern(self._redis_key(f"{organization_id}:*"))
        except Exception as e:
            self._stats.errors += 1
            logger.warning(
                "match_cache_redis_delete_failed",
                organization_id=organization_id,
                error=str(e),
            )
            return 0
        logger.info("match_cache_org_invalidated", organization_id=organization_id, removed=removed, backend="redis")
        return removed

    async def clear(self) -> int:
        """Drop every entry under the prefix; a Redis failure removes nothing."""
        try:
            return await self.client.delete_pattern(self._redis_key("*"))
        except Exception as e:
            self._stats.errors += 1
            logger.warning("match_cache_redis_clear_failed", error=str(e))
            return 0

    def stats(self) -> CacheStats:
        return self._stats


def create_match_cache(cache_settings: Any) -> MatchCache:
    """Cache for the configured backend (CacheSettings)."""
    backend = getattr(cache_settings.backend, "value", cache_settings.backend)
    if backend == "redis":
        return RedisMatchCache(
            key_prefix=cache_settings.key_prefix,
            default_ttl_seconds=cache_settings.ttl_seconds,
        )
    if backend == "none":
        return NullMatchCache()
    return InMemoryMatchCache(
        max_entries=cache_settings.max_entries,
        default_ttl_seconds=cache_settings.ttl_seconds,
    )
