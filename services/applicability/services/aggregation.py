"""
Aggregation Engine
==================

Combines per-location match results into an organization-wide report.

- One active location: the report is that location's result, relabeled
- Several: union across active locations, each regulation once, with
  per-location attribution kept in the breakdown
- The same regulation at several locations keeps its highest score
- Organization-level matches are unioned in once
- Inactive locations are excluded; their history stays with the engine

Version: 0.1.0
"""

from collections.abc import Iterable, Mapping

from shared.logging import get_logger
from shared.models.matching import (
    AggregateReport,
    LocationFailure,
    MatchResult,
    RegulationMatch,
)


logger = get_logger(__name__)


def _ranked(matches: Iterable[RegulationMatch]) -> list[RegulationMatch]:
    return sorted(matches, key=lambda m: (-m.confidence_score, m.regulation_id))


class AggregationEngine:
    """Pure merge of match results; performs no matching itself."""

    def relabel(
        self,
        organization_id: str,
        location_id: str,
        result: MatchResult,
        inactive_location_ids: Iterable[str] = (),
    ) -> AggregateReport:
        """Single-location report: the location's own result, unchanged."""
        return AggregateReport(
            organization_id=organization_id,
            matches=list(result.matches),
            per_location_breakdown={location_id: result.regulation_ids},
            inactive_location_ids=sorted(inactive_location_ids),
            stale=result.stale,
            store_version=result.store_version,
            generated_at=result.computed_at,
        )

    def merge(
        self,
        organization_id: str,
        location_results: Mapping[str, MatchResult],
        organization_result: MatchResult | None = None,
        inactive_location_ids: Iterable[str] = (),
        failures: Iterable[LocationFailure] = (),
    ) -> AggregateReport:
        """
        Deduplicating union for multi-location organizations.

        Locations are visited in id order and a later location only
        replaces a match on a strictly higher score, so ties resolve the
        same way on every run.
        """
        failed = sorted(failures, key=lambda f: f.location_id)
        best: dict[str, RegulationMatch] = {}
        breakdown: dict[str, list[str]] = {}
        results = [location_results[loc] for loc in sorted(location_results)]

        for location_id in sorted(location_results):
            result = location_results[location_id]
            breakdown[location_id] = sorted(result.regulation_ids)
            for match in result.matches:
                self._keep_strongest(best, match)

        organization_level_ids: list[str] = []
        if organization_result is not None:
            results.append(organization_result)
            organization_level_ids = sorted(organization_result.regulation_ids)
            for match in organization_result.matches:
                self._keep_strongest(best, match)

        versions = {r.store_version for r in results}
        if len(versions) > 1:
            logger.warning(
                "aggregate_mixed_store_versions",
                organization_id=organization_id,
                versions=sorted(versions),
            )

        report = AggregateReport(
            organization_id=organization_id,
            matches=_ranked(best.values()),
            per_location_breakdown=breakdown,
            organization_level_ids=organization_level_ids,
            inactive_location_ids=sorted(inactive_location_ids),
            partial=bool(failed),
            failed_locations=failed,
            stale=any(r.stale for r in results),
            store_version=max(versions) if versions else None,
        )

        logger.info(
            "aggregate_report_built",
            organization_id=organization_id,
            locations=len(location_results),
            total=report.total_count,
            organization_level=len(organization_level_ids),
            partial=report.partial,
        )
        return report

    @staticmethod
    def _keep_strongest(best: dict[str, RegulationMatch], match: RegulationMatch) -> None:
        current = best.get(match.regulation_id)
        if current is None or match.confidence_score > current.confidence_score:
            best[match.regulation_id] = match
