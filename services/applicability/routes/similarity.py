"""
Similar Profile Routes
======================

Anonymized statistics from organizations similar to one being onboarded.

Version: 0.1.0
"""

from fastapi import APIRouter, Depends

from services.applicability.dependencies import get_similarity_service
from services.applicability.services.similarity import SimilarProfileService
from shared.models.matching import SimilarProfileQuery, SimilarProfileStats


router = APIRouter()


@router.post("", response_model=SimilarProfileStats)
async def similar_profiles(
    request: SimilarProfileQuery,
    service: SimilarProfileService = Depends(get_similarity_service),
) -> SimilarProfileStats:
    """
    Cohort statistics: counts and family breakdowns only, never
    identifiers. Returns an empty, suppressed result for small cohorts.
    """
    return await service.lookup(request)
