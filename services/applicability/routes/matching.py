"""
Matching Routes
===============

Query API: location results, organization reports, ad hoc profiles and
progressive data-entry sessions.

Version: 0.1.0
"""

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field

from services.applicability.dependencies import get_engine
from services.applicability.services.engine import ApplicabilityEngine
from services.applicability.services.profile_store import ProfileStore
from shared.logging import bind_context, get_logger
from shared.models.matching import AggregateReport, MatchResult, ResultDiff
from shared.models.organization import (
    AttributeWrite,
    CoreAttributesUpdate,
    OrganizationCreate,
)


logger = get_logger(__name__)

router = APIRouter()


# =============================================================================
# Request/Response Models
# =============================================================================


class ProgressiveEditRequest(BaseModel):
    """An attribute edit followed by a re-query of the session's subject."""

    organization_id: str = Field(..., min_length=1)
    location_id: str | None = Field(None, description="Defaults to the primary location")
    core: CoreAttributesUpdate | None = None
    attributes: dict[str, AttributeWrite] = Field(default_factory=dict)


class ProgressiveMatchResponse(BaseModel):
    """Current result plus what changed since the session's previous result."""

    session_id: str
    result: MatchResult
    diff: ResultDiff


# =============================================================================
# Routes
# =============================================================================


@router.get(
    "/organizations/{organization_id}/locations/{location_id}",
    response_model=MatchResult,
)
async def match_location(
    organization_id: str,
    location_id: str,
    allow_stale: bool | None = Query(None, description="Serve a cached result if the register is unavailable"),
    engine: ApplicabilityEngine = Depends(get_engine),
) -> MatchResult:
    return await engine.match_location(organization_id, location_id, allow_stale=allow_stale)


@router.get(
    "/organizations/{organization_id}/locations/{location_id}/history",
    response_model=list[MatchResult],
)
async def location_history(
    organization_id: str,
    location_id: str,
    engine: ApplicabilityEngine = Depends(get_engine),
) -> list[MatchResult]:
    """Retained results for a location, including after it was closed."""
    return engine.location_history(organization_id, location_id)


@router.get(
    "/organizations/{organization_id}/organization-level",
    response_model=MatchResult,
)
async def match_organization_level(
    organization_id: str,
    allow_stale: bool | None = Query(None),
    engine: ApplicabilityEngine = Depends(get_engine),
) -> MatchResult:
    return await engine.match_organization_level(organization_id, allow_stale=allow_stale)


@router.get(
    "/organizations/{organization_id}/report",
    response_model=AggregateReport,
)
async def aggregate_report(
    organization_id: str,
    allow_stale: bool | None = Query(None),
    engine: ApplicabilityEngine = Depends(get_engine),
) -> AggregateReport:
    """
    Organization-wide report.

    Failed locations do not fail the request: the report is returned
    with partial=true and the failures listed.
    """
    report = await engine.aggregate(organization_id, allow_stale=allow_stale)
    logger.info(
        "aggregate_report_served",
        organization_id=organization_id,
        total=report.total_count,
        partial=report.partial,
        stale=report.stale,
    )
    return report


@router.post("/profile", response_model=AggregateReport)
async def match_adhoc_profile(
    request: OrganizationCreate,
    engine: ApplicabilityEngine = Depends(get_engine),
) -> AggregateReport:
    """Screen a profile without storing it."""
    profile = ProfileStore().register(request)
    return await engine.match_profile(profile)


@router.post(
    "/sessions/{session_id}",
    response_model=ProgressiveMatchResponse,
)
async def progressive_match(
    session_id: str,
    request: ProgressiveEditRequest,
    engine: ApplicabilityEngine = Depends(get_engine),
) -> ProgressiveMatchResponse:
    """
    Apply an edit and re-query.

    Returns 409 if a newer request for the same session arrived first.
    """
    bind_context(session_id=session_id, organization_id=request.organization_id)

    if request.core is not None:
        engine.profiles.update_core(request.organization_id, request.core)
    for key, write in request.attributes.items():
        engine.profiles.set_attribute(request.organization_id, key, write)

    result, diff = await engine.progressive(
        session_id,
        request.organization_id,
        request.location_id,
    )
    return ProgressiveMatchResponse(session_id=session_id, result=result, diff=diff)


@router.delete("/sessions/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
async def end_session(
    session_id: str,
    engine: ApplicabilityEngine = Depends(get_engine),
) -> None:
    engine.sessions.end(session_id)
