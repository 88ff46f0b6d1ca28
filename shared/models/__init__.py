"""
Shared Models
=============

Pydantic models shared across the engine, its routes and its tests.

Models:
- Regulation models (Regulation, StakeholderFields, SizeThreshold)
- Organization models (OrganizationProfile, Location, ProfileAttribute)
- Matching models (MatchResult, AggregateReport, RegulationMatch)
- Common models (ErrorResponse, HealthResponse, PaginatedResponse)
"""

from shared.models.common import (
    ErrorResponse,
    HealthResponse,
    PaginatedResponse,
)
from shared.models.matching import (
    AggregateReport,
    LayerStatus,
    LocationFailure,
    MatchResult,
    MatchScope,
    MatchTier,
    QueryLayer,
    RegulationMatch,
    ResultDiff,
    RoleHit,
    RoleMatch,
    ScoreBreakdown,
    SimilarProfileQuery,
    SimilarProfileStats,
)
from shared.models.organization import (
    AttributeProposal,
    AttributeSource,
    AttributeType,
    AttributeWrite,
    CoreAttributes,
    CoreAttributesUpdate,
    Location,
    LocationCreate,
    LocationType,
    LocationUpdate,
    OperationalStatus,
    OrganizationCreate,
    OrganizationProfile,
    ProfileAttribute,
)
from shared.models.regulation import (
    Regulation,
    RegulationFunction,
    RegulationScope,
    RegulationStatus,
    RegulationVersionInfo,
    SizeThreshold,
    StakeholderField,
    StakeholderFields,
)

__all__ = [
    # Regulation
    "Regulation",
    "RegulationFunction",
    "RegulationScope",
    "RegulationStatus",
    "RegulationVersionInfo",
    "SizeThreshold",
    "StakeholderField",
    "StakeholderFields",
    # Organization
    "AttributeProposal",
    "AttributeSource",
    "AttributeType",
    "AttributeWrite",
    "CoreAttributes",
    "CoreAttributesUpdate",
    "Location",
    "LocationCreate",
    "LocationType",
    "LocationUpdate",
    "OperationalStatus",
    "OrganizationCreate",
    "OrganizationProfile",
    "ProfileAttribute",
    # Matching
    "AggregateReport",
    "LayerStatus",
    "LocationFailure",
    "MatchResult",
    "MatchScope",
    "MatchTier",
    "QueryLayer",
    "RegulationMatch",
    "ResultDiff",
    "RoleHit",
    "RoleMatch",
    "ScoreBreakdown",
    "SimilarProfileQuery",
    "SimilarProfileStats",
    # Common
    "ErrorResponse",
    "HealthResponse",
    "PaginatedResponse",
]
