"""
Stakeholder Matcher
===================

Decides whether a profile's roles apply to a regulation's five
stakeholder fields.

Tiers, first success wins per role:
1. Exact: the role is a value of any field
2. Hierarchical: a broader role the role expands to is a value of any field
3. Semantic: an injected matcher scores similarity above a threshold

Roles are matched independently and their hits unioned; the strongest
hit is reported as the regulation's match.

Version: 0.1.0
"""

from abc import ABC, abstractmethod
from collections.abc import Iterable, Mapping
from functools import lru_cache

from services.applicability.services.taxonomy import (
    ROLE_HIERARCHY,
    expand_role,
    normalize_token,
)
from shared.logging import get_logger
from shared.models.matching import MatchTier, RoleHit, RoleMatch
from shared.models.regulation import StakeholderField, StakeholderFields


logger = get_logger(__name__)

_TIER_RANK = {
    MatchTier.EXACT: 0,
    MatchTier.HIERARCHICAL: 1,
    MatchTier.SEMANTIC: 2,
}
_FIELD_RANK = {f: i for i, f in enumerate(StakeholderField)}


class SemanticMatcher(ABC):
    """Extension point for similarity-based role matching."""

    @abstractmethod
    def similarity(self, role: str, candidate: str) -> float:
        """Similarity in [0, 1] between a profile role and a field value."""


class NullSemanticMatcher(SemanticMatcher):
    """Default: semantic tier never matches."""

    def similarity(self, role: str, candidate: str) -> float:
        return 0.0


@lru_cache(maxsize=65536)
def _field_index(
    stakeholders: StakeholderFields,
) -> dict[str, tuple[StakeholderField, str]]:
    """Normalized value -> (first field holding it, original spelling)."""
    index: dict[str, tuple[StakeholderField, str]] = {}
    for stakeholder_field, values in stakeholders.iter_fields():
        for value in values:
            index.setdefault(normalize_token(value), (stakeholder_field, value))
    return index


def _hit_rank(hit: RoleHit) -> tuple[int, float, int, str]:
    return (
        _TIER_RANK[hit.tier],
        -(hit.similarity or 0.0),
        _FIELD_RANK[hit.field],
        normalize_token(hit.role),
    )


class StakeholderMatcher:
    """
    Role matcher over the fixed five-field stakeholder schema.

    Args:
        hierarchy: role -> broader roles (keys compared case-insensitively)
        semantic: optional similarity strategy
        semantic_threshold: minimum similarity for a semantic hit
    """

    def __init__(
        self,
        hierarchy: Mapping[str, Iterable[str]] | None = None,
        semantic: SemanticMatcher | None = None,
        semantic_threshold: float = 0.75,
    ) -> None:
        source = hierarchy if hierarchy is not None else ROLE_HIERARCHY
        self.hierarchy = {normalize_token(k): tuple(v) for k, v in source.items()}
        self.semantic = semantic or NullSemanticMatcher()
        self.semantic_threshold = semantic_threshold

    def match(
        self,
        roles: Iterable[str],
        stakeholders: StakeholderFields,
    ) -> RoleMatch:
        """Match every role against one regulation's stakeholder fields."""
        index = _field_index(stakeholders)
        if not index:
            return RoleMatch()

        hits: list[RoleHit] = []
        seen_roles: set[str] = set()
        for role in roles:
            key = normalize_token(role)
            if not key or key in seen_roles:
                continue
            seen_roles.add(key)
            hit = self._match_role(role, index)
            if hit is not None:
                hits.append(hit)

        if not hits:
            return RoleMatch()

        hits.sort(key=_hit_rank)
        return RoleMatch(matched=True, best=hits[0], hits=hits)

    def _match_role(
        self,
        role: str,
        index: dict[str, tuple[StakeholderField, str]],
    ) -> RoleHit | None:
        exact = index.get(normalize_token(role))
        if exact is not None:
            return RoleHit(
                role=role,
                matched_value=exact[1],
                field=exact[0],
                tier=MatchTier.EXACT,
            )

        for broader in expand_role(role, self.hierarchy):
            found = index.get(normalize_token(broader))
            if found is not None:
                return RoleHit(
                    role=role,
                    matched_value=found[1],
                    field=found[0],
                    tier=MatchTier.HIERARCHICAL,
                )

        best: tuple[float, StakeholderField, str] | None = None
        for stakeholder_field, value in index.values():
            score = self.semantic.similarity(role, value)
            if score >= self.semantic_threshold and (best is None or score > best[0]):
                best = (score, stakeholder_field, value)
        if best is not None:
            logger.debug(
                "semantic_role_match",
                role=role,
                matched_value=best[2],
                similarity=best[0],
            )
            return RoleHit(
                role=role,
                matched_value=best[2],
                field=best[1],
                tier=MatchTier.SEMANTIC,
                similarity=round(min(max(best[0], 0.0), 1.0), 4),
            )
        return None
