"""
Service Dependencies
====================

Process-wide engine wiring for the API, built from settings.

Usage:
    @router.get("/report")
    async def report(engine: ApplicabilityEngine = Depends(get_engine)):
        ...

Version: 0.1.0
"""

from fastapi import Depends

from services.applicability.services.cache import create_match_cache
from services.applicability.services.engine import ApplicabilityEngine
from services.applicability.services.pipeline import MatchingPipeline
from services.applicability.services.profile_analyzer import ProfileAnalyzer
from services.applicability.services.profile_store import ProfileStore
from services.applicability.services.query_builder import QueryBuilder
from services.applicability.services.regulation_store import RegulationStore
from services.applicability.services.similarity import SimilarProfileService
from services.applicability.services.stakeholder import StakeholderMatcher
from shared.config import Settings, settings


_engine: ApplicabilityEngine | None = None


def build_engine(config: Settings = settings) -> ApplicabilityEngine:
    """Engine with empty stores and the configured cache backend."""
    matcher = StakeholderMatcher(semantic_threshold=config.matching.semantic_threshold)
    return ApplicabilityEngine(
        regulations=RegulationStore(),
        profiles=ProfileStore(),
        cache=create_match_cache(config.cache),
        pipeline=MatchingPipeline(builder=QueryBuilder(matcher)),
        max_concurrent_locations=config.matching.max_concurrent_locations,
        allow_stale_on_unavailable=config.matching.allow_stale_on_unavailable,
        base_ttl_seconds=config.cache.ttl_seconds,
        max_ttl_seconds=config.cache.max_ttl_seconds,
        size_scaled_ttl=config.cache.size_scaled_ttl,
        session_idle_seconds=config.cache.ttl_seconds,
    )


def get_engine() -> ApplicabilityEngine:
    """Get or create the process-wide engine."""
    global _engine
    if _engine is None:
        _engine = build_engine()
    return _engine


def reset_engine() -> None:
    global _engine
    _engine = None


def get_similarity_service(
    engine: ApplicabilityEngine = Depends(get_engine),
) -> SimilarProfileService:
    return SimilarProfileService(
        engine,
        min_similarity=settings.similarity.min_similarity,
        min_cohort_size=settings.similarity.min_cohort_size,
    )


def get_profile_analyzer() -> ProfileAnalyzer:
    return ProfileAnalyzer()
