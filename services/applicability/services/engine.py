"""
Applicability Engine
====================

Async orchestration of the matching pipeline:

- Builds screening subjects from stored profiles
- Runs the pipeline through the match cache, off the event loop
- Evaluates locations concurrently under a bounded semaphore
- Aggregates per-location and organization-level results
- Keeps per-location result history and the latest report per organization

Version: 0.1.0
"""

import asyncio
from collections import deque
from typing import Any

from services.applicability.errors import RegulationStoreUnavailableError
from services.applicability.services.aggregation import AggregationEngine
from services.applicability.services.cache import (
    MatchCache,
    NullMatchCache,
    cache_key,
    ttl_for_size,
)
from services.applicability.services.pipeline import MatchingPipeline
from services.applicability.services.profile_store import ProfileStore
from services.applicability.services.query_builder import ScreeningSubject
from services.applicability.services.regulation_store import (
    RegulationSnapshot,
    RegulationStore,
)
from services.applicability.services.sessions import ProgressiveSessionManager
from shared.logging import get_logger
from shared.models.matching import (
    AggregateReport,
    LocationFailure,
    MatchResult,
    ResultDiff,
)
from shared.models.organization import OrganizationProfile


logger = get_logger(__name__)

# Failure entry id for the organization-level run of an aggregate
ORGANIZATION_LEVEL = "organization"

HISTORY_DEPTH = 20


class ApplicabilityEngine:
    """
    Entry point for matching queries.

    Args:
        regulations: Versioned regulation store
        profiles: Organization profile store
        cache: Match cache (defaults to no caching)
        pipeline: Matching pipeline
        max_concurrent_locations: Bound on concurrent location evaluations
        allow_stale_on_unavailable: Default for serving stale cached results
            when the regulation store is unavailable
        base_ttl_seconds / max_ttl_seconds / size_scaled_ttl: cache TTL policy
        session_idle_seconds: How long an idle progressive session keeps its
            last delivered result
    """

    def __init__(
        self,
        regulations: RegulationStore,
        profiles: ProfileStore,
        cache: MatchCache | None = None,
        pipeline: MatchingPipeline | None = None,
        max_concurrent_locations: int = 8,
        allow_stale_on_unavailable: bool = False,
        base_ttl_seconds: int = 7200,
        max_ttl_seconds: int = 86400,
        size_scaled_ttl: bool = True,
        session_idle_seconds: int = 7200,
    ) -> None:
        self.regulations = regulations
        self.profiles = profiles
        self.cache = cache or NullMatchCache()
        self.pipeline = pipeline or MatchingPipeline()
        self.aggregator = AggregationEngine()
        self.sessions = ProgressiveSessionManager(idle_ttl_seconds=session_idle_seconds)
        self.max_concurrent_locations = max_concurrent_locations
        self.allow_stale_on_unavailable = allow_stale_on_unavailable
        self.base_ttl_seconds = base_ttl_seconds
        self.max_ttl_seconds = max_ttl_seconds
        self.size_scaled_ttl = size_scaled_ttl

        self._history: dict[tuple[str, str], deque[MatchResult]] = {}
        self._reports: dict[str, AggregateReport] = {}
        self._background: set[asyncio.Task] = set()

        regulations.subscribe(self._on_store_version)
        profiles.subscribe(self._on_profile_change)

    # =========================================================================
    # Listeners
    # =========================================================================

    def _on_store_version(self, previous: str | None, current: str) -> None:
        self._reports.clear()
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No loop: entries are still rejected by version validation.
            return
        task = loop.create_task(self.cache.clear())
        self._background.add(task)
        task.add_done_callback(self._on_flush_done)
        logger.info("match_cache_flush_scheduled", previous=previous, current=current)

    def _on_flush_done(self, task: asyncio.Task) -> None:
        self._background.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error("match_cache_flush_failed", error=str(error), error_type=type(error).__name__)

    def _on_profile_change(self, organization_id: str, changed: set[str]) -> None:
        self._reports.pop(organization_id, None)

    # =========================================================================
    # Core run
    # =========================================================================

    def _ttl(self, profile: OrganizationProfile | None) -> int:
        employees = profile.total_employees if profile is not None else None
        return ttl_for_size(
            employees,
            self.base_ttl_seconds,
            self.max_ttl_seconds,
            self.size_scaled_ttl,
        )

    def _resolve_stale(self, allow_stale: bool | None) -> bool:
        return self.allow_stale_on_unavailable if allow_stale is None else allow_stale

    async def _run(
        self,
        subject: ScreeningSubject,
        snapshot: RegulationSnapshot | None,
        ttl_seconds: int,
        allow_stale: bool,
    ) -> MatchResult:
        plan = self.pipeline.plan(subject)
        key = cache_key(subject.organization_id, subject.location_id, plan.fingerprint)

        if snapshot is None:
            try:
                snapshot = self.regulations.snapshot()
            except RegulationStoreUnavailableError:
                if allow_stale:
                    cached = await self.cache.peek(key)
                    if cached is not None:
                        logger.warning(
                            "serving_stale_result",
                            organization_id=subject.organization_id,
                            location_id=subject.location_id,
                            store_version=cached.store_version,
                        )
                        return cached.model_copy(update={"stale": True})
                raise

        current = snapshot

        async def compute() -> MatchResult:
            return await asyncio.to_thread(self.pipeline.run, subject, current, True, plan)

        return await self.cache.get_or_compute(
            key,
            plan.signature,
            current.version,
            compute,
            ttl_seconds,
        )

    def _take_snapshot(self, allow_stale: bool) -> RegulationSnapshot | None:
        """Snapshot for a multi-run query; None defers to per-run stale handling."""
        try:
            return self.regulations.snapshot()
        except RegulationStoreUnavailableError:
            if allow_stale:
                return None
            raise

    def _record(self, result: MatchResult) -> None:
        if result.organization_id is None or result.location_id is None:
            return
        history = self._history.setdefault(
            (result.organization_id, result.location_id),
            deque(maxlen=HISTORY_DEPTH),
        )
        if history and history[-1] is result:
            return
        history.append(result)

    # =========================================================================
    # Queries
    # =========================================================================

    async def match_location(
        self,
        organization_id: str,
        location_id: str,
        allow_stale: bool | None = None,
    ) -> MatchResult:
        """Current result for one location (active or not)."""
        profile = self.profiles.get(organization_id)
        location = self.profiles.get_location(organization_id, location_id)
        sole_active = [loc.location_id for loc in profile.active_locations] == [location_id]
        subject = ScreeningSubject.for_location(
            profile,
            location,
            include_organization_scope=sole_active,
        )
        stale_ok = self._resolve_stale(allow_stale)
        result = await self._run(
            subject,
            self._take_snapshot(stale_ok),
            self._ttl(profile),
            stale_ok,
        )
        self._record(result)
        return result

    async def match_organization_level(
        self,
        organization_id: str,
        allow_stale: bool | None = None,
    ) -> MatchResult:
        """Entity-wide duties evaluated against aggregate attributes."""
        profile = self.profiles.get(organization_id)
        stale_ok = self._resolve_stale(allow_stale)
        return await self._run(
            ScreeningSubject.for_organization(profile),
            self._take_snapshot(stale_ok),
            self._ttl(profile),
            stale_ok,
        )

    async def aggregate(
        self,
        organization_id: str,
        allow_stale: bool | None = None,
    ) -> AggregateReport:
        """Organization-wide report; the latest one is retained."""
        profile = self.profiles.get(organization_id)
        report = await self._aggregate_profile(profile, self._resolve_stale(allow_stale))
        self._reports[organization_id] = report
        return report

    async def match_profile(
        self,
        profile: OrganizationProfile,
        allow_stale: bool | None = None,
    ) -> AggregateReport:
        """Aggregate report for an ad hoc profile that is not stored."""
        return await self._aggregate_profile(
            profile,
            self._resolve_stale(allow_stale),
            record=False,
        )

    async def _aggregate_profile(
        self,
        profile: OrganizationProfile,
        allow_stale: bool,
        record: bool = True,
    ) -> AggregateReport:
        snapshot = self._take_snapshot(allow_stale)
        ttl = self._ttl(profile)
        active = sorted(profile.active_locations, key=lambda loc: loc.location_id)
        inactive_ids = [loc.location_id for loc in profile.inactive_locations]

        if not active:
            result = await self._run(
                ScreeningSubject.for_headquarters(profile),
                snapshot,
                ttl,
                allow_stale,
            )
            return self.aggregator.merge(
                profile.organization_id,
                {},
                organization_result=result,
                inactive_location_ids=inactive_ids,
            )

        if len(active) == 1:
            location = active[0]
            subject = ScreeningSubject.for_location(
                profile,
                location,
                include_organization_scope=True,
            )
            try:
                result = await self._run(subject, snapshot, ttl, allow_stale)
            except Exception as e:
                logger.error(
                    "location_evaluation_failed",
                    organization_id=profile.organization_id,
                    location_id=location.location_id,
                    error=str(e),
                )
                return self.aggregator.merge(
                    profile.organization_id,
                    {},
                    inactive_location_ids=inactive_ids,
                    failures=[_failure(location.location_id, e)],
                )
            if record:
                self._record(result)
            return self.aggregator.relabel(
                profile.organization_id,
                location.location_id,
                result,
                inactive_location_ids=inactive_ids,
            )

        semaphore = asyncio.Semaphore(self.max_concurrent_locations)

        async def evaluate(subject: ScreeningSubject) -> MatchResult:
            async with semaphore:
                return await self._run(subject, snapshot, ttl, allow_stale)

        subjects = [ScreeningSubject.for_location(profile, loc) for loc in active]
        subjects.append(ScreeningSubject.for_organization(profile))

        outcomes = await asyncio.gather(
            *(evaluate(subject) for subject in subjects),
            return_exceptions=True,
        )

        location_results: dict[str, MatchResult] = {}
        organization_result: MatchResult | None = None
        failures: list[LocationFailure] = []

        for subject, outcome in zip(subjects, outcomes):
            target = subject.location_id or ORGANIZATION_LEVEL
            if isinstance(outcome, Exception):
                logger.error(
                    "location_evaluation_failed",
                    organization_id=profile.organization_id,
                    location_id=target,
                    error=str(outcome),
                )
                failures.append(_failure(target, outcome))
                continue
            if isinstance(outcome, BaseException):
                raise outcome
            if subject.location_id is None:
                organization_result = outcome
            else:
                location_results[subject.location_id] = outcome
                if record:
                    self._record(outcome)

        return self.aggregator.merge(
            profile.organization_id,
            location_results,
            organization_result=organization_result,
            inactive_location_ids=inactive_ids,
            failures=failures,
        )

    async def progressive(
        self,
        session_id: str,
        organization_id: str,
        location_id: str | None = None,
    ) -> tuple[MatchResult, ResultDiff]:
        """
        Progressive re-query for a data-entry session.

        A newer call for the same session supersedes this one.
        """

        async def work() -> MatchResult:
            profile = self.profiles.get(organization_id)
            target = location_id or (
                profile.primary_location.location_id if profile.primary_location else None
            )
            if target is not None:
                return await self.match_location(organization_id, target)
            return await self._run(
                ScreeningSubject.for_headquarters(profile),
                self._take_snapshot(self.allow_stale_on_unavailable),
                self._ttl(profile),
                self.allow_stale_on_unavailable,
            )

        result = await self.sessions.submit(session_id, work)
        return result, self.sessions.deliver(session_id, result)

    # =========================================================================
    # Cache control, history and reports
    # =========================================================================

    async def invalidate_organization(self, organization_id: str) -> int:
        self._reports.pop(organization_id, None)
        return await self.cache.invalidate_organization(organization_id)

    async def invalidate_all(self) -> int:
        self._reports.clear()
        return await self.cache.clear()

    async def warm_cache(self, organization_ids: list[str]) -> dict[str, Any]:
        """Pre-compute reports for a batch of organizations; failures are skipped."""
        warmed: list[str] = []
        failed: dict[str, str] = {}
        for organization_id in organization_ids:
            try:
                await self.aggregate(organization_id)
            except Exception as e:
                logger.warning("cache_warm_failed", organization_id=organization_id, error=str(e))
                failed[organization_id] = str(e)
            else:
                warmed.append(organization_id)
        logger.info("cache_warmed", warmed=len(warmed), failed=len(failed))
        return {"warmed": warmed, "failed": failed}

    def location_history(self, organization_id: str, location_id: str) -> list[MatchResult]:
        self.profiles.get_location(organization_id, location_id)
        return list(self._history.get((organization_id, location_id), ()))

    def latest_report(self, organization_id: str) -> AggregateReport | None:
        return self._reports.get(organization_id)

    async def report_for(self, organization_id: str) -> AggregateReport:
        """Latest retained report, regenerated if it has been dropped."""
        report = self._reports.get(organization_id)
        if report is None:
            report = await self.aggregate(organization_id)
        return report


def _failure(location_id: str, error: Exception) -> LocationFailure:
    return LocationFailure(
        location_id=location_id,
        error_code=getattr(error, "error_code", type(error).__name__),
        message=str(error),
    )
