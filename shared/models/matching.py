"""
Matching Models
===============

Results produced by the applicability pipeline and the aggregation
engine, with enough attribution for a UI to explain why a regulation
applies.

Version: 0.1.0
"""

from datetime import UTC, datetime
from enum import Enum

from pydantic import BaseModel, Field

from shared.models.regulation import StakeholderField


class QueryLayer(str, Enum):
    """Filter layers, in the order the query builder applies them."""

    DUTY = "duty"
    GEOGRAPHY = "geography"
    SECTOR = "sector"
    STAKEHOLDER = "stakeholder"
    THRESHOLD = "threshold"


class LayerStatus(str, Enum):
    """Whether a layer took part in a plan."""

    APPLIED = "applied"
    SKIPPED = "skipped"


class MatchScope(str, Enum):
    """Which regulation scopes a pipeline run evaluates."""

    LOCATION = "location"
    ORGANIZATION = "organization"
    COMBINED = "combined"


class MatchTier(str, Enum):
    """How a stakeholder role was matched."""

    EXACT = "exact"
    HIERARCHICAL = "hierarchical"
    SEMANTIC = "semantic"


class RoleHit(BaseModel):
    """One successful role match against a stakeholder field."""

    role: str
    matched_value: str
    field: StakeholderField
    tier: MatchTier
    similarity: float | None = None


class RoleMatch(BaseModel):
    """Outcome of stakeholder matching for one regulation."""

    matched: bool = False
    best: RoleHit | None = None
    hits: list[RoleHit] = Field(default_factory=list)

    @property
    def tier(self) -> MatchTier | None:
        return self.best.tier if self.best else None

    @property
    def field(self) -> StakeholderField | None:
        return self.best.field if self.best else None


class ScoreBreakdown(BaseModel):
    """Weighted sub-scores behind a composite confidence."""

    sector: float = 0.0
    role: float = 0.0
    geography: float = 0.0
    status: float = 0.0
    content: float = 0.0
    composite: float = 0.0


class RegulationMatch(BaseModel):
    """A candidate regulation with its attribution."""

    regulation_id: str
    name: str | None = None
    family: str | None = None
    confidence_score: float = Field(..., ge=0.0, le=1.0)
    matched_dimensions: list[QueryLayer] = Field(default_factory=list)
    role_match: RoleMatch | None = None
    score_breakdown: ScoreBreakdown = Field(default_factory=ScoreBreakdown)


class MatchResult(BaseModel):
    """Pipeline output for one subject (a location, or the organization)."""

    profile_fingerprint: str
    organization_id: str | None = None
    location_id: str | None = Field(
        default=None,
        description="None means organization-level",
    )
    scope: MatchScope = MatchScope.LOCATION
    matches: list[RegulationMatch] = Field(default_factory=list)
    layers: dict[QueryLayer, LayerStatus] = Field(default_factory=dict)
    store_version: str
    computed_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    stale: bool = False

    @property
    def regulation_ids(self) -> list[str]:
        return [m.regulation_id for m in self.matches]

    @property
    def skipped_layers(self) -> list[QueryLayer]:
        return [
            layer for layer, status in self.layers.items()
            if status == LayerStatus.SKIPPED
        ]

    @property
    def applied_layers(self) -> list[QueryLayer]:
        return [
            layer for layer, status in self.layers.items()
            if status == LayerStatus.APPLIED
        ]

    @property
    def is_partial_profile(self) -> bool:
        return bool(self.skipped_layers)


class LocationFailure(BaseModel):
    """A location that could not be evaluated during aggregation."""

    location_id: str
    error_code: str
    message: str


class AggregateReport(BaseModel):
    """Organization-wide, deduplicated view of applicable regulations."""

    organization_id: str
    matches: list[RegulationMatch] = Field(default_factory=list)
    per_location_breakdown: dict[str, list[str]] = Field(default_factory=dict)
    organization_level_ids: list[str] = Field(default_factory=list)
    inactive_location_ids: list[str] = Field(default_factory=list)
    partial: bool = False
    failed_locations: list[LocationFailure] = Field(default_factory=list)
    stale: bool = False
    store_version: str | None = None
    generated_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @property
    def total_count(self) -> int:
        return len(self.matches)

    @property
    def regulation_ids(self) -> list[str]:
        return [m.regulation_id for m in self.matches]


class ResultDiff(BaseModel):
    """Change between two successive results for the same subject."""

    added: list[str] = Field(default_factory=list)
    removed: list[str] = Field(default_factory=list)
    unchanged_count: int = 0

    @property
    def total_changes(self) -> int:
        return len(self.added) + len(self.removed)


class SimilarProfileQuery(BaseModel):
    """Non-confidential attributes of an organization being onboarded."""

    sector: str | None = None
    size_bracket: str | None = None
    region: str | None = None
    entity_type: str | None = None
    email_domain: str | None = None


class SimilarProfileStats(BaseModel):
    """Anonymized law-profile statistics for a cohort of similar organizations."""

    cohort_size: int = 0
    suppressed: bool = False
    min_similarity: float
    mean_regulation_count: float | None = None
    median_regulation_count: float | None = None
    family_breakdown: dict[str, float] = Field(default_factory=dict)
