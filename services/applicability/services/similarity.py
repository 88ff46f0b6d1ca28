"""
Similar Profile Lookup
======================

Privacy-preserving onboarding aid: anonymized law-profile statistics of
existing organizations similar to a new one.

Similarity weights:
- Sector: 40%
- Region: 20%
- Size bracket: 20%
- Entity type: 20%

Organizations sharing the requester's email domain never count, and no
statistics are returned for a cohort smaller than the minimum size.

Version: 0.1.0
"""

import statistics
from collections import Counter
from dataclasses import dataclass

from services.applicability.services.engine import ApplicabilityEngine
from services.applicability.services.taxonomy import (
    BRACKET_ORDER,
    employee_bracket,
    family_key,
    families_for_sector,
    normalize_token,
    region_key,
)
from shared.logging import get_logger
from shared.models.matching import SimilarProfileQuery, SimilarProfileStats
from shared.models.organization import OrganizationProfile


logger = get_logger(__name__)


@dataclass
class SimilarityWeights:
    sector: float = 0.4
    region: float = 0.2
    size: float = 0.2
    entity_type: float = 0.2


def _domain(value: str | None) -> str | None:
    if not value:
        return None
    return value.strip().lstrip("@").casefold() or None


def _sector_score(query: str | None, candidate: str | None) -> float:
    if not query or not candidate:
        return 0.0
    if region_key(query) == region_key(candidate):
        return 1.0
    if families_for_sector(query) & families_for_sector(candidate):
        return 1.0
    return 0.0


def _size_score(query: str | None, candidate: str | None) -> float:
    if not query or not candidate:
        return 0.0
    query = normalize_token(query)
    if query == candidate:
        return 1.0
    if query in BRACKET_ORDER and abs(BRACKET_ORDER.index(query) - BRACKET_ORDER.index(candidate)) == 1:
        return 0.5
    return 0.0


def _exact(query: str | None, candidate: str | None) -> float:
    if not query or not candidate:
        return 0.0
    return 1.0 if region_key(query) == region_key(candidate) else 0.0


class SimilarProfileService:
    """Cohort statistics over stored organizations."""

    def __init__(
        self,
        engine: ApplicabilityEngine,
        min_similarity: float = 0.6,
        min_cohort_size: int = 3,
        weights: SimilarityWeights | None = None,
    ):
        self.engine = engine
        self.min_similarity = min_similarity
        self.min_cohort_size = min_cohort_size
        self.weights = weights or SimilarityWeights()

    def similarity(self, query: SimilarProfileQuery, profile: OrganizationProfile) -> float:
        score = (
            _sector_score(query.sector, profile.core.sector) * self.weights.sector
            + _exact(query.region, profile.core.headquarters_region) * self.weights.region
            + _size_score(query.size_bracket, employee_bracket(profile.total_employees))
            * self.weights.size
            + _exact(query.entity_type, profile.core.entity_type) * self.weights.entity_type
        )
        return round(score, 4)

    def cohort(self, query: SimilarProfileQuery) -> list[OrganizationProfile]:
        requester_domain = _domain(query.email_domain)
        members = []
        for profile in self.engine.profiles.list_organizations():
            if requester_domain and _domain(profile.email_domain) == requester_domain:
                continue
            if self.similarity(query, profile) >= self.min_similarity:
                members.append(profile)
        return members

    async def lookup(self, query: SimilarProfileQuery) -> SimilarProfileStats:
        members = self.cohort(query)

        if len(members) < self.min_cohort_size:
            logger.info(
                "similar_profile_cohort_suppressed",
                cohort_size=len(members),
                min_cohort_size=self.min_cohort_size,
            )
            return SimilarProfileStats(
                cohort_size=0,
                suppressed=True,
                min_similarity=self.min_similarity,
            )

        counts: list[int] = []
        families: Counter[str] = Counter()
        for profile in members:
            report = await self.engine.report_for(profile.organization_id)
            counts.append(report.total_count)
            for match in report.matches:
                families[family_key(match.family).upper() if match.family else "UNCATEGORIZED"] += 1

        cohort_size = len(members)
        stats = SimilarProfileStats(
            cohort_size=cohort_size,
            suppressed=False,
            min_similarity=self.min_similarity,
            mean_regulation_count=round(statistics.fmean(counts), 2),
            median_regulation_count=float(statistics.median(counts)),
            family_breakdown={
                family: round(total / cohort_size, 2)
                for family, total in sorted(families.items())
            },
        )
        logger.info("similar_profile_lookup", cohort_size=cohort_size)
        return stats
