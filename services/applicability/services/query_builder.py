"""
Query Builder
=============

Builds a layered filter plan from whatever profile attributes are known
and executes it against a regulation snapshot.

Layer order:
1. Duty: in force and duty-creating ('making')
2. Geography: regulation extent intersects the subject's jurisdictions
3. Sector: regulation family is one of the subject's families
4. Stakeholder: delegated to StakeholderMatcher
5. Threshold: size bounds, once employee count or turnover is known

A layer whose attribute is missing is skipped, never failed, so an
incomplete profile yields a coarser, over-inclusive candidate set.

Version: 0.1.0
"""

import hashlib
import json
from dataclasses import dataclass, field
from typing import Any

from services.applicability.services.regulation_store import RegulationSnapshot
from services.applicability.services.stakeholder import StakeholderMatcher
from services.applicability.services.taxonomy import (
    extents_for_region,
    families_for,
    family_key,
    normalize_token,
)
from shared.logging import get_logger
from shared.models.matching import LayerStatus, MatchScope, QueryLayer, RoleMatch
from shared.models.organization import Location, OrganizationProfile
from shared.models.regulation import Regulation, RegulationScope


logger = get_logger(__name__)

PROFILE_LAYERS = (
    QueryLayer.GEOGRAPHY,
    QueryLayer.SECTOR,
    QueryLayer.STAKEHOLDER,
    QueryLayer.THRESHOLD,
)


# =============================================================================
# Screening Subject
# =============================================================================


def _merge_roles(*groups: list[str]) -> tuple[str, ...]:
    merged: list[str] = []
    seen: set[str] = set()
    for group in groups:
        for role in group:
            key = normalize_token(role)
            if key and key not in seen:
                seen.add(key)
                merged.append(role)
    return tuple(merged)


@dataclass(frozen=True)
class ScreeningSubject:
    """Flattened attributes evaluated by one pipeline run."""

    organization_id: str | None = None
    location_id: str | None = None
    sector: str | None = None
    entity_type: str | None = None
    region: str | None = None
    roles: tuple[str, ...] = ()
    employee_count: int | None = None
    annual_turnover: float | None = None
    activities: tuple[str, ...] = ()
    scope: MatchScope = MatchScope.LOCATION

    @classmethod
    def for_location(
        cls,
        profile: OrganizationProfile,
        location: Location,
        include_organization_scope: bool = False,
    ) -> "ScreeningSubject":
        """Location attributes over the organization's core profile."""
        return cls(
            organization_id=profile.organization_id,
            location_id=location.location_id,
            sector=profile.core.sector,
            entity_type=profile.core.entity_type,
            region=location.geographic_region or profile.core.headquarters_region,
            roles=_merge_roles(location.roles, profile.roles),
            employee_count=location.employee_count,
            annual_turnover=location.annual_turnover,
            activities=tuple(location.industry_activities),
            scope=MatchScope.COMBINED if include_organization_scope else MatchScope.LOCATION,
        )

    @classmethod
    def for_organization(cls, profile: OrganizationProfile) -> "ScreeningSubject":
        """Entity-level view: HQ jurisdiction and aggregate size."""
        activities: list[str] = []
        for location in profile.active_locations:
            activities.extend(location.industry_activities)
        return cls(
            organization_id=profile.organization_id,
            location_id=None,
            sector=profile.core.sector,
            entity_type=profile.core.entity_type,
            region=profile.core.headquarters_region,
            roles=_merge_roles(profile.roles),
            employee_count=profile.total_employees,
            annual_turnover=profile.total_turnover,
            activities=tuple(sorted(set(activities))),
            scope=MatchScope.ORGANIZATION,
        )

    @classmethod
    def for_headquarters(cls, profile: OrganizationProfile) -> "ScreeningSubject":
        """Implicit single subject for an organization with no locations."""
        subject = cls.for_organization(profile)
        return cls(
            organization_id=subject.organization_id,
            location_id=None,
            sector=subject.sector,
            entity_type=subject.entity_type,
            region=subject.region,
            roles=subject.roles,
            employee_count=subject.employee_count,
            annual_turnover=subject.annual_turnover,
            activities=subject.activities,
            scope=MatchScope.COMBINED,
        )


# =============================================================================
# Filter Plan
# =============================================================================


@dataclass(frozen=True)
class FilterPlan:
    """Executable plan: which layers apply and the values they consume."""

    layers: dict[QueryLayer, LayerStatus]
    scope: MatchScope
    extents: tuple[str, ...] = ()
    families: frozenset[str] = frozenset()
    roles: tuple[str, ...] = ()
    employee_count: int | None = None
    annual_turnover: float | None = None
    include_duty_filter: bool = True

    def is_applied(self, layer: QueryLayer) -> bool:
        return self.layers.get(layer) == LayerStatus.APPLIED

    @property
    def applied_layers(self) -> list[QueryLayer]:
        return [layer for layer in QueryLayer if self.is_applied(layer)]

    @property
    def has_profile_layer(self) -> bool:
        return any(self.is_applied(layer) for layer in PROFILE_LAYERS)

    @property
    def signature(self) -> str:
        """Compact identity of the plan shape, stored with cache entries."""
        applied = ",".join(layer.value for layer in self.applied_layers)
        return f"{self.scope.value}|{applied}"

    def consumed_attributes(self) -> dict[str, Any]:
        """Normalized attributes the applied layers read, and nothing else."""
        consumed: dict[str, Any] = {
            "scope": self.scope.value,
            "layers": [layer.value for layer in self.applied_layers],
        }
        if self.is_applied(QueryLayer.GEOGRAPHY):
            consumed["extents"] = [normalize_token(e) for e in self.extents]
        if self.is_applied(QueryLayer.SECTOR):
            consumed["families"] = sorted(self.families)
        if self.is_applied(QueryLayer.STAKEHOLDER):
            consumed["roles"] = sorted({normalize_token(r) for r in self.roles})
        if self.is_applied(QueryLayer.THRESHOLD):
            consumed["employee_count"] = self.employee_count
            consumed["annual_turnover"] = self.annual_turnover
        return consumed

    @property
    def fingerprint(self) -> str:
        payload = json.dumps(self.consumed_attributes(), sort_keys=True)
        return hashlib.sha256(payload.encode("utf-8")).hexdigest()


@dataclass
class Candidate:
    """A regulation that passed every applied layer."""

    regulation: Regulation
    satisfied: list[QueryLayer] = field(default_factory=list)
    role_match: RoleMatch | None = None
    extent_rank: int | None = None


# =============================================================================
# Query Builder
# =============================================================================


class QueryBuilder:
    """Stateless plan builder and executor."""

    def __init__(self, matcher: StakeholderMatcher | None = None) -> None:
        self.matcher = matcher or StakeholderMatcher()

    def build(
        self,
        subject: ScreeningSubject,
        include_duty_filter: bool = True,
    ) -> FilterPlan:
        """Plan for the subject's currently known attributes."""
        extents = extents_for_region(subject.region)
        families = frozenset(
            family_key(f) for f in families_for(subject.sector, subject.activities)
        )
        roles = tuple(r for r in subject.roles if normalize_token(r))
        has_size = subject.employee_count is not None or subject.annual_turnover is not None

        def status(available: bool) -> LayerStatus:
            return LayerStatus.APPLIED if available else LayerStatus.SKIPPED

        layers = {
            QueryLayer.DUTY: status(include_duty_filter),
            QueryLayer.GEOGRAPHY: status(bool(extents)),
            QueryLayer.SECTOR: status(bool(families)),
            QueryLayer.STAKEHOLDER: status(bool(roles)),
            QueryLayer.THRESHOLD: status(has_size),
        }

        return FilterPlan(
            layers=layers,
            scope=subject.scope,
            extents=extents,
            families=families,
            roles=roles,
            employee_count=subject.employee_count,
            annual_turnover=subject.annual_turnover,
            include_duty_filter=include_duty_filter,
        )

    def execute(
        self,
        plan: FilterPlan,
        snapshot: RegulationSnapshot,
    ) -> list[Candidate]:
        """Run the plan over every record of one snapshot."""
        extent_rank = {normalize_token(e): i for i, e in enumerate(plan.extents)}
        scopes = _scopes_for(plan.scope)

        candidates: list[Candidate] = []
        for regulation in snapshot.records:
            if regulation.scope not in scopes:
                continue
            candidate = self._evaluate(regulation, plan, extent_rank)
            if candidate is not None:
                candidates.append(candidate)

        logger.debug(
            "filter_plan_executed",
            signature=plan.signature,
            store_version=snapshot.version,
            scanned=len(snapshot.records),
            candidates=len(candidates),
        )
        return candidates

    def _evaluate(
        self,
        regulation: Regulation,
        plan: FilterPlan,
        extent_rank: dict[str, int],
    ) -> Candidate | None:
        satisfied: list[QueryLayer] = []

        if plan.is_applied(QueryLayer.DUTY):
            if not (regulation.is_in_force and regulation.is_duty_creating):
                return None
            satisfied.append(QueryLayer.DUTY)

        rank: int | None = None
        if plan.is_applied(QueryLayer.GEOGRAPHY):
            ranks = [
                extent_rank[key]
                for key in (normalize_token(e) for e in regulation.geo_extent)
                if key in extent_rank
            ]
            if not ranks:
                return None
            rank = min(ranks)
            satisfied.append(QueryLayer.GEOGRAPHY)

        if plan.is_applied(QueryLayer.SECTOR):
            if not regulation.family or family_key(regulation.family) not in plan.families:
                return None
            satisfied.append(QueryLayer.SECTOR)

        role_match: RoleMatch | None = None
        if plan.is_applied(QueryLayer.STAKEHOLDER):
            role_match = self.matcher.match(plan.roles, regulation.stakeholders)
            if not role_match.matched:
                return None
            satisfied.append(QueryLayer.STAKEHOLDER)

        if plan.is_applied(QueryLayer.THRESHOLD) and regulation.threshold is not None:
            within = regulation.threshold.evaluate(plan.employee_count, plan.annual_turnover)
            if within is False:
                return None
            if within:
                satisfied.append(QueryLayer.THRESHOLD)

        return Candidate(
            regulation=regulation,
            satisfied=satisfied,
            role_match=role_match,
            extent_rank=rank,
        )


def _scopes_for(scope: MatchScope) -> frozenset[RegulationScope]:
    if scope == MatchScope.LOCATION:
        return frozenset({RegulationScope.SITE})
    if scope == MatchScope.ORGANIZATION:
        return frozenset({RegulationScope.ORGANIZATION})
    return frozenset(RegulationScope)
