"""
Organization Profile Routes
===========================

Registration and progressive updates of organizations and locations.

Version: 0.1.0
"""

from typing import Any

from fastapi import APIRouter, Depends, Query, status

from services.applicability.dependencies import get_engine, get_profile_analyzer
from services.applicability.services.engine import ApplicabilityEngine
from services.applicability.services.profile_analyzer import ProfileAnalyzer
from services.applicability.services.taxonomy import (
    supported_entity_types,
    supported_regions,
    supported_sectors,
)
from shared.models.common import PaginatedResponse
from shared.models.organization import (
    AttributeProposal,
    AttributeWrite,
    CoreAttributesUpdate,
    LocationCreate,
    LocationUpdate,
    OrganizationCreate,
    OrganizationProfile,
)


router = APIRouter()


@router.post(
    "",
    response_model=OrganizationProfile,
    status_code=status.HTTP_201_CREATED,
)
async def register_organization(
    request: OrganizationCreate,
    engine: ApplicabilityEngine = Depends(get_engine),
) -> OrganizationProfile:
    """Register an organization with any initial locations."""
    return engine.profiles.register(request)


@router.get("", response_model=PaginatedResponse[OrganizationProfile])
async def list_organizations(
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    engine: ApplicabilityEngine = Depends(get_engine),
) -> PaginatedResponse[OrganizationProfile]:
    profiles = engine.profiles.list_organizations()
    start = (page - 1) * page_size
    return PaginatedResponse[OrganizationProfile](
        items=profiles[start:start + page_size],
        total=len(profiles),
        page=page,
        page_size=page_size,
    )


@router.get("/vocabulary")
async def get_vocabulary() -> dict[str, list[str]]:
    """Accepted sector, region and entity type codes for profile forms."""
    return {
        "sectors": supported_sectors(),
        "regions": supported_regions(),
        "entity_types": supported_entity_types(),
    }


@router.get("/{organization_id}", response_model=OrganizationProfile)
async def get_organization(
    organization_id: str,
    engine: ApplicabilityEngine = Depends(get_engine),
) -> OrganizationProfile:
    return engine.profiles.get(organization_id)


@router.patch("/{organization_id}/core", response_model=OrganizationProfile)
async def update_core_attributes(
    organization_id: str,
    request: CoreAttributesUpdate,
    engine: ApplicabilityEngine = Depends(get_engine),
) -> OrganizationProfile:
    """Partial update of sector, headquarters region and entity type."""
    return engine.profiles.update_core(organization_id, request)


@router.put("/{organization_id}/attributes/{key}", response_model=OrganizationProfile)
async def set_attribute(
    organization_id: str,
    key: str,
    request: AttributeWrite,
    engine: ApplicabilityEngine = Depends(get_engine),
) -> OrganizationProfile:
    """Directly entered extended attribute."""
    return engine.profiles.set_attribute(organization_id, key, request)


@router.post("/{organization_id}/proposals", response_model=OrganizationProfile)
async def apply_proposal(
    organization_id: str,
    request: AttributeProposal,
    engine: ApplicabilityEngine = Depends(get_engine),
) -> OrganizationProfile:
    """Attribute value proposed by the gap-filling advisor."""
    return engine.profiles.apply_proposal(organization_id, request)


@router.post(
    "/{organization_id}/locations",
    response_model=OrganizationProfile,
    status_code=status.HTTP_201_CREATED,
)
async def add_location(
    organization_id: str,
    request: LocationCreate,
    engine: ApplicabilityEngine = Depends(get_engine),
) -> OrganizationProfile:
    return engine.profiles.add_location(organization_id, request)


@router.patch(
    "/{organization_id}/locations/{location_id}",
    response_model=OrganizationProfile,
)
async def update_location(
    organization_id: str,
    location_id: str,
    request: LocationUpdate,
    engine: ApplicabilityEngine = Depends(get_engine),
) -> OrganizationProfile:
    return engine.profiles.update_location(organization_id, location_id, request)


@router.delete(
    "/{organization_id}/locations/{location_id}",
    response_model=OrganizationProfile,
)
async def close_location(
    organization_id: str,
    location_id: str,
    engine: ApplicabilityEngine = Depends(get_engine),
) -> OrganizationProfile:
    """
    Close a location.

    The location is kept with status 'inactive' so its screening history
    stays available.
    """
    return engine.profiles.close_location(organization_id, location_id)


@router.get("/{organization_id}/completeness")
async def get_completeness(
    organization_id: str,
    engine: ApplicabilityEngine = Depends(get_engine),
    analyzer: ProfileAnalyzer = Depends(get_profile_analyzer),
) -> dict[str, Any]:
    """Profile completeness and recommended screening level."""
    profile = engine.profiles.get(organization_id)
    analysis = analyzer.analyze(profile).to_dict()
    analysis["interface_mode"] = engine.profiles.interface_mode(organization_id).value
    return analysis
