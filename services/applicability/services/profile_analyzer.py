"""
Profile Analyzer
================

Completeness and screening-readiness assessment of an organization
profile. Drives which questions a UI asks next; it never changes what
the matcher returns.

Category weights:
- Basic identification: 40%
- Operational details: 30%
- Compliance context: 20%
- Risk: 10%

Version: 0.1.0
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from services.applicability.services.taxonomy import (
    BRACKET_ORDER,
    employee_bracket,
    turnover_bracket,
)
from shared.logging import get_logger
from shared.models.organization import OrganizationProfile


logger = get_logger(__name__)


class CompletenessLevel(str, Enum):
    EXCELLENT = "excellent"
    GOOD = "good"
    ADEQUATE = "adequate"
    BASIC = "basic"
    INSUFFICIENT = "insufficient"


class ScreeningLevel(str, Enum):
    COMPREHENSIVE = "comprehensive"
    ENHANCED = "enhanced"
    BASIC = "basic"
    INSUFFICIENT_DATA = "insufficient_data"


BASIC_FIELDS = ("organization_name", "entity_type", "headquarters_region", "sector")
OPERATIONAL_FIELDS = ("total_employees", "annual_turnover", "operational_regions", "business_activities")
COMPLIANCE_FIELDS = ("compliance_requirements", "risk_profile", "primary_sic_code")
RISK_FIELDS = ("special_circumstances", "risk_profile")
ENHANCED_READINESS_FIELDS = ("total_employees", "operational_regions", "business_activities")

# Minimum category scores for comprehensive screening
COMPREHENSIVE_THRESHOLDS = {
    "basic_identification": 0.9,
    "operational_details": 0.7,
    "compliance_context": 0.5,
    "risk_assessment": 0.3,
}


@dataclass
class CategoryWeights:
    basic_identification: float = 0.4
    operational_details: float = 0.3
    compliance_context: float = 0.2
    risk_assessment: float = 0.1


@dataclass
class ProfileAnalysis:
    """Result of analyzing one profile."""

    organization_id: str
    completeness_score: float
    completeness_level: CompletenessLevel
    category_scores: dict[str, float]
    missing_critical_fields: list[str]
    missing_operational_fields: list[str]
    recommended_screening_level: ScreeningLevel
    coherence_issues: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "organization_id": self.organization_id,
            "completeness_score": self.completeness_score,
            "completeness_level": self.completeness_level.value,
            "category_scores": self.category_scores,
            "missing_critical_fields": self.missing_critical_fields,
            "missing_operational_fields": self.missing_operational_fields,
            "recommended_screening_level": self.recommended_screening_level.value,
            "coherence_issues": self.coherence_issues,
        }


def _has_value(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    if isinstance(value, bool):
        return True
    if isinstance(value, (int, float)):
        return value > 0
    if isinstance(value, (list, tuple, set, dict)):
        return len(value) > 0
    return True


def completeness_level(score: float) -> CompletenessLevel:
    if score >= 0.9:
        return CompletenessLevel.EXCELLENT
    if score >= 0.7:
        return CompletenessLevel.GOOD
    if score >= 0.5:
        return CompletenessLevel.ADEQUATE
    if score >= 0.3:
        return CompletenessLevel.BASIC
    return CompletenessLevel.INSUFFICIENT


class ProfileAnalyzer:
    """Weighted completeness and readiness scoring."""

    def __init__(self, weights: CategoryWeights | None = None):
        self.weights = weights or CategoryWeights()

    def flatten(self, profile: OrganizationProfile) -> dict[str, Any]:
        """Field view the analyzer scores: core, derived totals and extended values."""
        regions = {
            loc.geographic_region
            for loc in profile.active_locations
            if loc.geographic_region
        }
        activities = {
            activity
            for loc in profile.active_locations
            for activity in loc.industry_activities
        }
        flat: dict[str, Any] = {
            key: attribute.value for key, attribute in profile.extended.items()
        }
        flat.update(
            {
                "organization_name": profile.name,
                "entity_type": profile.core.entity_type,
                "headquarters_region": profile.core.headquarters_region,
                "sector": profile.core.sector,
                "total_employees": profile.total_employees,
                "annual_turnover": profile.total_turnover,
                "operational_regions": sorted(regions) or flat.get("operational_regions"),
                "business_activities": sorted(activities) or flat.get("business_activities"),
            }
        )
        return flat

    def _field_completeness(self, flat: dict[str, Any], fields: tuple[str, ...]) -> float:
        if not fields:
            return 1.0
        return sum(1 for f in fields if _has_value(flat.get(f))) / len(fields)

    def analyze(self, profile: OrganizationProfile) -> ProfileAnalysis:
        flat = self.flatten(profile)

        categories = {
            "basic_identification": self._field_completeness(flat, BASIC_FIELDS),
            "operational_details": self._field_completeness(flat, OPERATIONAL_FIELDS),
            "compliance_context": self._field_completeness(flat, COMPLIANCE_FIELDS),
            "risk_assessment": self._field_completeness(flat, RISK_FIELDS),
        }
        score = sum(
            categories[name] * getattr(self.weights, name) for name in categories
        )

        analysis = ProfileAnalysis(
            organization_id=profile.organization_id,
            completeness_score=round(score, 4),
            completeness_level=completeness_level(score),
            category_scores={k: round(v, 4) for k, v in categories.items()},
            missing_critical_fields=[f for f in BASIC_FIELDS if not _has_value(flat.get(f))],
            missing_operational_fields=[
                f for f in OPERATIONAL_FIELDS if not _has_value(flat.get(f))
            ],
            recommended_screening_level=self._screening_level(flat, categories),
            coherence_issues=self._coherence_issues(flat),
        )

        logger.debug(
            "profile_analyzed",
            organization_id=profile.organization_id,
            completeness=analysis.completeness_score,
            level=analysis.completeness_level.value,
        )
        return analysis

    def _screening_level(
        self,
        flat: dict[str, Any],
        categories: dict[str, float],
    ) -> ScreeningLevel:
        basic = categories["basic_identification"]

        comprehensive_ready = all(
            categories[name] >= minimum
            for name, minimum in COMPREHENSIVE_THRESHOLDS.items()
        ) and sum(categories.values()) / len(categories) >= 0.7
        if comprehensive_ready:
            return ScreeningLevel.COMPREHENSIVE

        enhanced = self._field_completeness(flat, ENHANCED_READINESS_FIELDS)
        if basic * 0.6 + enhanced * 0.4 >= 0.6 and basic >= 0.75:
            return ScreeningLevel.ENHANCED

        if basic >= 0.75:
            return ScreeningLevel.BASIC
        return ScreeningLevel.INSUFFICIENT_DATA

    def _coherence_issues(self, flat: dict[str, Any]) -> list[str]:
        issues: list[str] = []
        employees = flat.get("total_employees")
        turnover = flat.get("annual_turnover")
        if employees and turnover:
            by_staff = BRACKET_ORDER.index(employee_bracket(employees))
            by_turnover = BRACKET_ORDER.index(turnover_bracket(turnover))
            if abs(by_staff - by_turnover) > 1:
                issues.append("Employee count and turnover suggest different company sizes")
        return issues
