"""
Applicability Services
======================

Business logic for applicability matching.

Services:
- RegulationStore: Versioned regulation snapshots
- ProfileStore: Organization profiles and locations
- QueryBuilder / StakeholderMatcher / ConfidenceScorer: The matching pipeline
- MatchCache: Result memoization
- AggregationEngine: Multi-location reports
- ApplicabilityEngine: Async orchestration
- SimilarProfileService: Anonymized cohort statistics

Version: 0.1.0
"""

from services.applicability.services.aggregation import AggregationEngine
from services.applicability.services.cache import (
    CacheStats,
    InMemoryMatchCache,
    MatchCache,
    NullMatchCache,
    RedisMatchCache,
    create_match_cache,
)
from services.applicability.services.engine import ApplicabilityEngine
from services.applicability.services.pipeline import MatchingPipeline, diff_match_results
from services.applicability.services.profile_analyzer import ProfileAnalysis, ProfileAnalyzer
from services.applicability.services.profile_store import InterfaceMode, ProfileStore
from services.applicability.services.query_builder import (
    FilterPlan,
    QueryBuilder,
    ScreeningSubject,
)
from services.applicability.services.regulation_store import (
    HttpRegulationSource,
    JsonFileRegulationSource,
    RegulationSnapshot,
    RegulationSource,
    RegulationStore,
    source_from_settings,
)
from services.applicability.services.scorer import (
    ConfidenceScorer,
    ConfidenceWeights,
    ContentMatcher,
)
from services.applicability.services.sessions import ProgressiveSessionManager
from services.applicability.services.similarity import SimilarProfileService
from services.applicability.services.stakeholder import (
    NullSemanticMatcher,
    SemanticMatcher,
    StakeholderMatcher,
)


__all__ = [
    # Stores
    "RegulationStore",
    "RegulationSnapshot",
    "RegulationSource",
    "JsonFileRegulationSource",
    "HttpRegulationSource",
    "source_from_settings",
    "ProfileStore",
    "InterfaceMode",
    # Pipeline
    "ScreeningSubject",
    "FilterPlan",
    "QueryBuilder",
    "StakeholderMatcher",
    "SemanticMatcher",
    "NullSemanticMatcher",
    "ConfidenceScorer",
    "ConfidenceWeights",
    "ContentMatcher",
    "MatchingPipeline",
    "diff_match_results",
    # Cache
    "MatchCache",
    "InMemoryMatchCache",
    "NullMatchCache",
    "RedisMatchCache",
    "CacheStats",
    "create_match_cache",
    # Orchestration
    "AggregationEngine",
    "ApplicabilityEngine",
    "ProgressiveSessionManager",
    "ProfileAnalyzer",
    "ProfileAnalysis",
    "SimilarProfileService",
]
