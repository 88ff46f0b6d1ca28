"""
Organization Profile Models
===========================

Organizations, their operating locations, and the typed attribute bag
that holds progressively discovered profile data.

Version: 0.1.0
"""

from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator


class AttributeType(str, Enum):
    """Value types permitted in the extended attribute bag."""

    STRING = "string"
    INTEGER = "integer"
    NUMBER = "number"
    BOOLEAN = "boolean"
    STRING_LIST = "string_list"


class AttributeSource(str, Enum):
    """Where an attribute value came from."""

    USER = "user"
    ADVISORY = "advisory"
    IMPORT = "import"
    INFERRED = "inferred"


class OperationalStatus(str, Enum):
    """Location operational status."""

    ACTIVE = "active"
    INACTIVE = "inactive"
    SEASONAL = "seasonal"
    UNDER_CONSTRUCTION = "under_construction"
    CLOSING = "closing"


class LocationType(str, Enum):
    """Kinds of operating site."""

    HEADQUARTERS = "headquarters"
    BRANCH_OFFICE = "branch_office"
    WAREHOUSE = "warehouse"
    MANUFACTURING_SITE = "manufacturing_site"
    RETAIL_OUTLET = "retail_outlet"
    PROJECT_SITE = "project_site"
    TEMPORARY_LOCATION = "temporary_location"
    HOME_OFFICE = "home_office"
    OTHER = "other"


def _value_matches_type(value: Any, attribute_type: AttributeType) -> bool:
    if attribute_type == AttributeType.STRING:
        return isinstance(value, str)
    if attribute_type == AttributeType.INTEGER:
        return isinstance(value, int) and not isinstance(value, bool)
    if attribute_type == AttributeType.NUMBER:
        return isinstance(value, (int, float)) and not isinstance(value, bool)
    if attribute_type == AttributeType.BOOLEAN:
        return isinstance(value, bool)
    if attribute_type == AttributeType.STRING_LIST:
        return isinstance(value, list) and all(isinstance(v, str) for v in value)
    return False


class ProfileAttribute(BaseModel):
    """A single typed, versioned value in the extended profile."""

    value: Any
    type: AttributeType
    source: AttributeSource = AttributeSource.USER
    confidence: float = Field(default=1.0, ge=0.0, le=1.0)
    provenance: str | None = Field(
        default=None,
        description="Free-form origin tag, e.g. the advisory component that proposed it",
    )
    version: int = Field(default=1, ge=1)
    recorded_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @model_validator(mode="after")
    def check_value_type(self) -> "ProfileAttribute":
        if not _value_matches_type(self.value, self.type):
            raise ValueError(
                f"value {self.value!r} is not of declared type {self.type.value}"
            )
        return self


class CoreAttributes(BaseModel):
    """Mandatory profile attributes; any may still be unknown while onboarding."""

    sector: str | None = Field(default=None, description="Industry sector code")
    headquarters_region: str | None = Field(default=None, description="HQ jurisdiction")
    entity_type: str | None = Field(default=None, description="Legal form")

    @field_validator("sector", "headquarters_region", "entity_type")
    @classmethod
    def blank_to_none(cls, v: str | None) -> str | None:
        if v is None:
            return None
        v = v.strip()
        return v or None

    @property
    def is_complete(self) -> bool:
        return all(
            value is not None
            for value in (self.sector, self.headquarters_region, self.entity_type)
        )


class Location(BaseModel):
    """A place of operation owned by exactly one organization."""

    location_id: str = Field(..., min_length=1)
    organization_id: str = Field(..., min_length=1)
    name: str = "Headquarters"
    location_type: LocationType = LocationType.BRANCH_OFFICE
    geographic_region: str | None = None
    operational_status: OperationalStatus = OperationalStatus.ACTIVE
    employee_count: int | None = Field(default=None, ge=0)
    annual_turnover: float | None = Field(default=None, ge=0)
    industry_activities: list[str] = Field(default_factory=list)
    roles: list[str] = Field(
        default_factory=list,
        description="Stakeholder roles held at this site, e.g. 'Site Manager'",
    )
    environmental_factors: dict[str, Any] = Field(default_factory=dict)
    health_safety_profile: dict[str, Any] = Field(default_factory=dict)
    is_primary: bool = False

    @property
    def is_active(self) -> bool:
        return self.operational_status == OperationalStatus.ACTIVE


class OrganizationProfile(BaseModel):
    """Organization with its core/extended attributes and locations."""

    organization_id: str = Field(..., min_length=1)
    name: str = Field(default="", max_length=500)
    email_domain: str | None = Field(
        default=None,
        description="Identifying domain, excluded from similar-profile cohorts",
    )
    core: CoreAttributes = Field(default_factory=CoreAttributes)
    extended: dict[str, ProfileAttribute] = Field(default_factory=dict)
    locations: list[Location] = Field(default_factory=list)
    revision: int = 0
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @model_validator(mode="after")
    def check_locations(self) -> "OrganizationProfile":
        primaries = [loc for loc in self.locations if loc.is_primary]
        if len(primaries) > 1:
            raise ValueError("an organization can only have one primary location")
        seen: set[str] = set()
        for loc in self.locations:
            if loc.organization_id != self.organization_id:
                raise ValueError(
                    f"location {loc.location_id} belongs to {loc.organization_id}"
                )
            if loc.location_id in seen:
                raise ValueError(f"duplicate location id {loc.location_id}")
            seen.add(loc.location_id)
        return self

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    def attribute_value(self, key: str, default: Any = None) -> Any:
        attribute = self.extended.get(key)
        return attribute.value if attribute is not None else default

    @property
    def roles(self) -> list[str]:
        return list(self.attribute_value("roles", []) or [])

    @property
    def active_locations(self) -> list[Location]:
        return [loc for loc in self.locations if loc.is_active]

    @property
    def inactive_locations(self) -> list[Location]:
        return [loc for loc in self.locations if not loc.is_active]

    @property
    def primary_location(self) -> Location | None:
        """The marked primary location, or the sole location."""
        for loc in self.locations:
            if loc.is_primary:
                return loc
        if len(self.locations) == 1:
            return self.locations[0]
        return None

    def get_location(self, location_id: str) -> Location | None:
        for loc in self.locations:
            if loc.location_id == location_id:
                return loc
        return None

    @property
    def total_employees(self) -> int | None:
        """Explicit total headcount, else the sum over active locations."""
        explicit = self.attribute_value("total_employees")
        if explicit is not None:
            return int(explicit)
        counts = [
            loc.employee_count
            for loc in self.active_locations
            if loc.employee_count is not None
        ]
        return sum(counts) if counts else None

    @property
    def total_turnover(self) -> float | None:
        """Explicit annual turnover, else the sum over active locations."""
        explicit = self.attribute_value("annual_turnover")
        if explicit is not None:
            return float(explicit)
        values = [
            loc.annual_turnover
            for loc in self.active_locations
            if loc.annual_turnover is not None
        ]
        return sum(values) if values else None


# =============================================================================
# Update payloads
# =============================================================================


class CoreAttributesUpdate(BaseModel):
    """Partial update of core attributes; omitted fields are unchanged."""

    sector: str | None = None
    headquarters_region: str | None = None
    entity_type: str | None = None


class AttributeWrite(BaseModel):
    """Direct entry of an extended attribute."""

    value: Any
    type: AttributeType
    confidence: float = 1.0
    provenance: str | None = None


class AttributeProposal(BaseModel):
    """A value proposed by the gap-filling advisory collaborator."""

    key: str = Field(..., min_length=1)
    value: Any
    type: AttributeType
    confidence: float
    provenance: str = Field(..., min_length=1)


class LocationCreate(BaseModel):
    """Payload for registering an operating site."""

    location_id: str = Field(..., min_length=1)
    name: str = "Site"
    location_type: LocationType = LocationType.BRANCH_OFFICE
    geographic_region: str | None = None
    employee_count: int | None = None
    annual_turnover: float | None = None
    industry_activities: list[str] = Field(default_factory=list)
    roles: list[str] = Field(default_factory=list)
    environmental_factors: dict[str, Any] = Field(default_factory=dict)
    health_safety_profile: dict[str, Any] = Field(default_factory=dict)
    is_primary: bool = False


class LocationUpdate(BaseModel):
    """Partial location update; omitted fields are unchanged."""

    name: str | None = None
    location_type: LocationType | None = None
    geographic_region: str | None = None
    operational_status: OperationalStatus | None = None
    employee_count: int | None = None
    annual_turnover: float | None = None
    industry_activities: list[str] | None = None
    roles: list[str] | None = None
    environmental_factors: dict[str, Any] | None = None
    health_safety_profile: dict[str, Any] | None = None
    is_primary: bool | None = None


class OrganizationCreate(BaseModel):
    """Payload for registering an organization."""

    organization_id: str = Field(..., min_length=1)
    name: str = ""
    email_domain: str | None = None
    core: CoreAttributes = Field(default_factory=CoreAttributes)
    locations: list[LocationCreate] = Field(default_factory=list)
