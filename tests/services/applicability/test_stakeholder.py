"""
Stakeholder Matcher Tests
=========================

Tests for exact, hierarchical and semantic role matching.

Version: 0.1.0
"""

import pytest

from services.applicability.services.stakeholder import SemanticMatcher, StakeholderMatcher
from shared.models.matching import MatchTier
from shared.models.regulation import StakeholderField, StakeholderFields


class KeywordMatcher(SemanticMatcher):
    """Scores 0.9 when both strings mention the same keyword."""

    def __init__(self, keyword: str) -> None:
        self.keyword = keyword

    def similarity(self, role: str, candidate: str) -> float:
        if self.keyword in role.lower() and self.keyword in candidate.lower():
            return 0.9
        return 0.1


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def matcher() -> StakeholderMatcher:
    return StakeholderMatcher()


@pytest.fixture
def stakeholders() -> StakeholderFields:
    return StakeholderFields(
        duty_holder=("Employer", "Manager"),
        role=("Inspector",),
        rights_holder=("Employee", "Inspector"),
    )


# =============================================================================
# Tiers
# =============================================================================


class TestExactMatch:
    """Exact, case-insensitive matches."""

    def test_case_insensitive(self, matcher: StakeholderMatcher, stakeholders: StakeholderFields) -> None:
        result = matcher.match(["employer"], stakeholders)

        assert result.matched is True
        assert result.tier == MatchTier.EXACT
        assert result.field == StakeholderField.DUTY_HOLDER
        assert result.best.matched_value == "Employer"

    def test_first_field_in_order_is_reported(
        self,
        matcher: StakeholderMatcher,
        stakeholders: StakeholderFields,
    ) -> None:
        """'Inspector' is in role and rights_holder; role comes first."""
        result = matcher.match(["Inspector"], stakeholders)

        assert result.field == StakeholderField.ROLE

    def test_exact_beats_hierarchical(self, matcher: StakeholderMatcher, stakeholders: StakeholderFields) -> None:
        result = matcher.match(["Site Manager", "Manager"], stakeholders)

        assert result.tier == MatchTier.EXACT
        assert result.best.role == "Manager"
        assert {hit.tier for hit in result.hits} == {MatchTier.EXACT, MatchTier.HIERARCHICAL}

    def test_duplicate_roles_counted_once(self, matcher: StakeholderMatcher, stakeholders: StakeholderFields) -> None:
        result = matcher.match(["Employer", "EMPLOYER", " employer "], stakeholders)

        assert len(result.hits) == 1


class TestHierarchicalMatch:
    """Matches through broader roles."""

    def test_site_manager_matches_manager(self, matcher: StakeholderMatcher, stakeholders: StakeholderFields) -> None:
        result = matcher.match(["Site Manager"], stakeholders)

        assert result.tier == MatchTier.HIERARCHICAL
        assert result.best.matched_value == "Manager"
        assert result.best.role == "Site Manager"

    def test_custom_hierarchy(self, stakeholders: StakeholderFields) -> None:
        matcher = StakeholderMatcher(hierarchy={"Foreman": ["Manager"]})

        assert matcher.match(["foreman"], stakeholders).tier == MatchTier.HIERARCHICAL
        assert matcher.match(["Site Manager"], stakeholders).matched is False


class TestSemanticMatch:
    """Injected similarity strategy."""

    def test_no_semantic_matcher_no_match(self, matcher: StakeholderMatcher, stakeholders: StakeholderFields) -> None:
        assert matcher.match(["Building Inspector"], stakeholders).matched is False

    def test_semantic_hit_above_threshold(self, stakeholders: StakeholderFields) -> None:
        matcher = StakeholderMatcher(semantic=KeywordMatcher("inspector"))

        result = matcher.match(["Building Inspector"], stakeholders)

        assert result.tier == MatchTier.SEMANTIC
        assert result.best.similarity == pytest.approx(0.9)
        assert result.best.matched_value == "Inspector"

    def test_semantic_below_threshold(self, stakeholders: StakeholderFields) -> None:
        matcher = StakeholderMatcher(
            semantic=KeywordMatcher("inspector"),
            semantic_threshold=0.95,
        )

        assert matcher.match(["Building Inspector"], stakeholders).matched is False


class TestEdgeCases:
    """Empty inputs."""

    def test_regulation_without_stakeholders(self, matcher: StakeholderMatcher) -> None:
        result = matcher.match(["Employer"], StakeholderFields())

        assert result.matched is False
        assert result.best is None

    def test_no_roles(self, matcher: StakeholderMatcher, stakeholders: StakeholderFields) -> None:
        result = matcher.match([], stakeholders)

        assert result.matched is False
        assert result.hits == []
