"""
Confidence Scorer
=================

Composite applicability score from weighted sub-scores.

Default weights:
- Sector match: 30%
- Role match: 25%
- Geography match: 20%
- Status/lifecycle match: 15%
- Content match: 10%

A sub-score is 0 when its dimension's data is unavailable, so an
incomplete profile ranks lower instead of matching at full confidence.

Version: 0.1.0
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass

from services.applicability.services.query_builder import (
    Candidate,
    FilterPlan,
    ScreeningSubject,
)
from shared.logging import get_logger
from shared.models.matching import MatchTier, QueryLayer, RoleMatch, ScoreBreakdown
from shared.models.regulation import Regulation


logger = get_logger(__name__)


@dataclass
class ConfidenceWeights:
    """Sub-score weights; must sum to 1.0."""

    sector: float = 0.30
    role: float = 0.25
    geography: float = 0.20
    status: float = 0.15
    content: float = 0.10

    def __post_init__(self) -> None:
        weights = [self.sector, self.role, self.geography, self.status, self.content]
        if any(w < 0 for w in weights):
            raise ValueError("weights must be non-negative")
        total = sum(weights)
        if abs(total - 1.0) > 0.001:
            raise ValueError(f"weights must sum to 1.0, got {total}")


# Tier credit for role matches
HIERARCHICAL_ROLE_SCORE = 0.8

# Geography credit drops per level of broadness, down to the floor
GEOGRAPHY_STEP = 0.1
GEOGRAPHY_FLOOR = 0.7


class ContentMatcher(ABC):
    """Extension point for description/content similarity."""

    @abstractmethod
    def score(self, regulation: Regulation, subject: ScreeningSubject) -> float:
        """Similarity in [0, 1]."""


class NullContentMatcher(ContentMatcher):
    """Default: no content signal."""

    def score(self, regulation: Regulation, subject: ScreeningSubject) -> float:
        return 0.0


def _clamp(value: float) -> float:
    return min(max(value, 0.0), 1.0)


def role_score(role_match: RoleMatch | None) -> float:
    if role_match is None or role_match.best is None:
        return 0.0
    if role_match.tier == MatchTier.EXACT:
        return 1.0
    if role_match.tier == MatchTier.HIERARCHICAL:
        return HIERARCHICAL_ROLE_SCORE
    return _clamp(role_match.best.similarity or 0.0)


def geography_score(extent_rank: int | None) -> float:
    if extent_rank is None:
        return 0.0
    return max(GEOGRAPHY_FLOOR, 1.0 - GEOGRAPHY_STEP * extent_rank)


class ConfidenceScorer:
    """Scores pipeline candidates."""

    def __init__(
        self,
        weights: ConfidenceWeights | None = None,
        content_matcher: ContentMatcher | None = None,
    ) -> None:
        self.weights = weights or ConfidenceWeights()
        self.content_matcher = content_matcher or NullContentMatcher()

    def score(
        self,
        candidate: Candidate,
        plan: FilterPlan,
        subject: ScreeningSubject,
    ) -> ScoreBreakdown:
        regulation = candidate.regulation
        satisfied = set(candidate.satisfied)
        profile_known = plan.has_profile_layer

        sector = 1.0 if QueryLayer.SECTOR in satisfied else 0.0
        role = role_score(candidate.role_match) if QueryLayer.STAKEHOLDER in satisfied else 0.0
        geography = (
            geography_score(candidate.extent_rank)
            if QueryLayer.GEOGRAPHY in satisfied
            else 0.0
        )
        status = (
            1.0
            if profile_known and regulation.is_in_force and regulation.is_duty_creating
            else 0.0
        )
        content = (
            _clamp(self.content_matcher.score(regulation, subject))
            if profile_known
            else 0.0
        )

        composite = (
            sector * self.weights.sector
            + role * self.weights.role
            + geography * self.weights.geography
            + status * self.weights.status
            + content * self.weights.content
        )

        return ScoreBreakdown(
            sector=round(sector, 4),
            role=round(role, 4),
            geography=round(geography, 4),
            status=round(status, 4),
            content=round(content, 4),
            composite=round(_clamp(composite), 4),
        )
