"""
Matching Pipeline
=================

Pure, synchronous evaluation of one screening subject against one
regulation snapshot: plan, filter, match roles, score, rank.

Version: 0.1.0
"""

from services.applicability.services.query_builder import (
    FilterPlan,
    QueryBuilder,
    ScreeningSubject,
)
from services.applicability.services.regulation_store import RegulationSnapshot
from services.applicability.services.scorer import ConfidenceScorer
from shared.logging import get_logger
from shared.models.matching import MatchResult, RegulationMatch, ResultDiff


logger = get_logger(__name__)


class MatchingPipeline:
    """Query builder + stakeholder matcher + confidence scorer."""

    def __init__(
        self,
        builder: QueryBuilder | None = None,
        scorer: ConfidenceScorer | None = None,
    ) -> None:
        self.builder = builder or QueryBuilder()
        self.scorer = scorer or ConfidenceScorer()

    def plan(
        self,
        subject: ScreeningSubject,
        include_duty_filter: bool = True,
    ) -> FilterPlan:
        return self.builder.build(subject, include_duty_filter=include_duty_filter)

    def run(
        self,
        subject: ScreeningSubject,
        snapshot: RegulationSnapshot,
        include_duty_filter: bool = True,
        plan: FilterPlan | None = None,
    ) -> MatchResult:
        """
        Evaluate a subject.

        Results are sorted by composite score descending, then regulation id,
        so repeated runs over the same snapshot are identical.
        """
        plan = plan or self.plan(subject, include_duty_filter)
        candidates = self.builder.execute(plan, snapshot)

        matches: list[RegulationMatch] = []
        for candidate in candidates:
            breakdown = self.scorer.score(candidate, plan, subject)
            regulation = candidate.regulation
            matches.append(
                RegulationMatch(
                    regulation_id=regulation.id,
                    name=regulation.name,
                    family=regulation.family,
                    confidence_score=breakdown.composite,
                    matched_dimensions=list(candidate.satisfied),
                    role_match=candidate.role_match,
                    score_breakdown=breakdown,
                )
            )

        matches.sort(key=lambda m: (-m.confidence_score, m.regulation_id))

        result = MatchResult(
            profile_fingerprint=plan.fingerprint,
            organization_id=subject.organization_id,
            location_id=subject.location_id,
            scope=subject.scope,
            matches=matches,
            layers=dict(plan.layers),
            store_version=snapshot.version,
        )

        logger.debug(
            "pipeline_completed",
            organization_id=subject.organization_id,
            location_id=subject.location_id,
            scope=subject.scope.value,
            matches=len(matches),
            skipped_layers=[layer.value for layer in result.skipped_layers],
        )
        return result


def diff_match_results(
    previous: MatchResult | None,
    current: MatchResult,
) -> ResultDiff:
    """Regulation ids added and removed between two results for one subject."""
    before = set(previous.regulation_ids) if previous is not None else set()
    after = set(current.regulation_ids)
    return ResultDiff(
        added=sorted(after - before),
        removed=sorted(before - after),
        unchanged_count=len(before & after),
    )
