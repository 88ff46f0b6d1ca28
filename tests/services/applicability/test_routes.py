"""
Applicability API Tests
=======================

Tests for the HTTP surface: envelopes, status codes and wiring.

Version: 0.1.0
"""

import pytest
from httpx import AsyncClient

from services.applicability.services.engine import ApplicabilityEngine


SINGLE_SITE = {
    "organization_id": "org-api",
    "name": "API Builders Ltd",
    "email_domain": "api.example",
    "core": {"sector": "construction", "headquarters_region": "England"},
    "locations": [{"location_id": "site-1", "geographic_region": "England"}],
}


async def register(client: AsyncClient, payload: dict = SINGLE_SITE) -> dict:
    response = await client.post("/api/v1/organizations", json=payload)
    assert response.status_code == 201
    return response.json()


# =============================================================================
# Health
# =============================================================================


class TestHealth:
    @pytest.mark.asyncio
    async def test_health_reports_register_version(self, applicability_client: AsyncClient) -> None:
        response = await applicability_client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["service"] == "applicability"
        assert data["components"]["regulation_store"]["version"] == "2024.1"
        assert data["status"] == "healthy"

    @pytest.mark.asyncio
    async def test_root(self, applicability_client: AsyncClient) -> None:
        response = await applicability_client.get("/")

        assert response.json()["service"] == "Applicability Matching Service"


# =============================================================================
# Organizations
# =============================================================================


class TestOrganizationRoutes:
    @pytest.mark.asyncio
    async def test_register_and_fetch(self, applicability_client: AsyncClient) -> None:
        created = await register(applicability_client)

        response = await applicability_client.get("/api/v1/organizations/org-api")

        assert created["locations"][0]["is_primary"] is True
        assert response.json()["organization_id"] == "org-api"

    @pytest.mark.asyncio
    async def test_list_organizations(self, applicability_client: AsyncClient) -> None:
        await register(applicability_client)

        response = await applicability_client.get("/api/v1/organizations", params={"page_size": 10})

        data = response.json()
        assert data["total"] == 1
        assert data["items"][0]["organization_id"] == "org-api"

    @pytest.mark.asyncio
    async def test_unknown_organization_is_404(self, applicability_client: AsyncClient) -> None:
        response = await applicability_client.get("/api/v1/organizations/org-missing")

        assert response.status_code == 404
        data = response.json()
        assert data["success"] is False
        assert data["error_code"] == "organization_not_found"

    @pytest.mark.asyncio
    async def test_invalid_attribute_is_422(self, applicability_client: AsyncClient) -> None:
        await register(applicability_client)

        response = await applicability_client.put(
            "/api/v1/organizations/org-api/attributes/roles",
            json={"value": "Employer", "type": "string"},
        )

        assert response.status_code == 422
        data = response.json()
        assert data["error_code"] == "invalid_attribute"
        assert data["details"]["field"] == "roles"

    @pytest.mark.asyncio
    async def test_location_lifecycle(self, applicability_client: AsyncClient) -> None:
        await register(applicability_client)

        added = await applicability_client.post(
            "/api/v1/organizations/org-api/locations",
            json={"location_id": "site-2", "geographic_region": "Scotland"},
        )
        closed = await applicability_client.delete("/api/v1/organizations/org-api/locations/site-2")

        assert added.status_code == 201
        assert closed.status_code == 200
        statuses = {loc["location_id"]: loc["operational_status"] for loc in closed.json()["locations"]}
        assert statuses == {"site-1": "active", "site-2": "inactive"}

    @pytest.mark.asyncio
    async def test_negative_employee_count_is_422(self, applicability_client: AsyncClient) -> None:
        await register(applicability_client)

        response = await applicability_client.patch(
            "/api/v1/organizations/org-api/locations/site-1",
            json={"employee_count": -3},
        )

        assert response.status_code == 422
        assert response.json()["details"]["field"] == "employee_count"

    @pytest.mark.asyncio
    async def test_vocabulary(self, applicability_client: AsyncClient) -> None:
        response = await applicability_client.get("/api/v1/organizations/vocabulary")

        assert response.status_code == 200
        data = response.json()
        assert "construction" in data["sectors"]
        assert "scotland" in data["regions"]
        assert "sole_trader" in data["entity_types"]

    @pytest.mark.asyncio
    async def test_completeness(self, applicability_client: AsyncClient) -> None:
        await register(applicability_client)

        response = await applicability_client.get("/api/v1/organizations/org-api/completeness")

        data = response.json()
        assert data["interface_mode"] == "single_location"
        assert "entity_type" in data["missing_critical_fields"]


# =============================================================================
# Matching
# =============================================================================


class TestMatchingRoutes:
    @pytest.mark.asyncio
    async def test_location_match(self, applicability_client: AsyncClient) -> None:
        await register(applicability_client)

        response = await applicability_client.get("/api/v1/matches/organizations/org-api/locations/site-1")

        assert response.status_code == 200
        data = response.json()
        assert data["matches"][0]["regulation_id"] == "R-CONSTRUCT-ENG"
        assert data["layers"]["stakeholder"] == "skipped"
        assert data["store_version"] == "2024.1"

    @pytest.mark.asyncio
    async def test_report(self, applicability_client: AsyncClient) -> None:
        await register(applicability_client)

        response = await applicability_client.get("/api/v1/matches/organizations/org-api/report")

        data = response.json()
        assert data["partial"] is False
        assert list(data["per_location_breakdown"]) == ["site-1"]

    @pytest.mark.asyncio
    async def test_adhoc_profile_is_not_stored(
        self,
        applicability_client: AsyncClient,
        engine: ApplicabilityEngine,
    ) -> None:
        response = await applicability_client.post("/api/v1/matches/profile", json=SINGLE_SITE)

        assert response.status_code == 200
        assert len(response.json()["matches"]) == 4
        assert engine.profiles.list_organizations() == []

    @pytest.mark.asyncio
    async def test_progressive_session(self, applicability_client: AsyncClient) -> None:
        await register(applicability_client)

        first = await applicability_client.post(
            "/api/v1/matches/sessions/s-1",
            json={"organization_id": "org-api"},
        )
        second = await applicability_client.post(
            "/api/v1/matches/sessions/s-1",
            json={
                "organization_id": "org-api",
                "attributes": {"roles": {"value": ["Site Manager"], "type": "string_list"}},
            },
        )

        assert len(first.json()["diff"]["added"]) == 4
        diff = second.json()["diff"]
        assert diff["added"] == []
        assert diff["unchanged_count"] == 1
        assert second.json()["result"]["matches"][0]["role_match"]["best"]["tier"] == "hierarchical"

        ended = await applicability_client.delete("/api/v1/matches/sessions/s-1")
        assert ended.status_code == 204

    @pytest.mark.asyncio
    async def test_store_unavailable_is_503(
        self,
        applicability_client: AsyncClient,
        engine: ApplicabilityEngine,
    ) -> None:
        await register(applicability_client)
        engine.regulations.mark_unavailable("maintenance")

        response = await applicability_client.get("/api/v1/matches/organizations/org-api/report")

        assert response.status_code == 503
        assert response.json()["retryable"] is True


# =============================================================================
# Regulations, cache and similar profiles
# =============================================================================


class TestAdministrationRoutes:
    @pytest.mark.asyncio
    async def test_commit_version(self, applicability_client: AsyncClient) -> None:
        payload = {
            "version": "2024.2",
            "regulations": [
                {
                    "id": "R-NEW",
                    "family": "CONSTRUCTION",
                    "function": "making",
                    "status": "in_force",
                    "geo_extent": ["England"],
                    "duty_holder": ["Employer"],
                }
            ],
        }

        created = await applicability_client.post("/api/v1/regulations/versions", json=payload)
        duplicate = await applicability_client.post("/api/v1/regulations/versions", json=payload)
        current = await applicability_client.get("/api/v1/regulations/version")

        assert created.status_code == 201
        assert created.json()["record_count"] == 1
        assert duplicate.status_code == 409
        assert current.json()["version"] == "2024.2"

    @pytest.mark.asyncio
    async def test_commit_version_with_repeated_id(self, applicability_client: AsyncClient) -> None:
        record = {
            "id": "R-TWICE",
            "family": "CONSTRUCTION",
            "function": "making",
            "status": "in_force",
            "geo_extent": ["England"],
            "duty_holder": ["Employer"],
        }

        response = await applicability_client.post(
            "/api/v1/regulations/versions",
            json={"version": "2024.2", "regulations": [record, record]},
        )
        current = await applicability_client.get("/api/v1/regulations/version")

        assert response.status_code == 422
        assert response.json()["error_code"] == "duplicate_regulation_id"
        assert response.json()["details"]["regulation_id"] == "R-TWICE"
        assert current.json()["version"] != "2024.2"

    @pytest.mark.asyncio
    async def test_cache_stats_and_invalidate(self, applicability_client: AsyncClient) -> None:
        await register(applicability_client)
        await applicability_client.get("/api/v1/matches/organizations/org-api/locations/site-1")

        stats = await applicability_client.get("/api/v1/cache/stats")
        invalidated = await applicability_client.post(
            "/api/v1/cache/invalidate",
            json={"organization_id": "org-api"},
        )

        assert stats.json()["backend"] == "memory"
        assert stats.json()["entries"] == 1
        assert invalidated.json() == {"success": True, "scope": "organization", "removed": 1}

    @pytest.mark.asyncio
    async def test_warm(self, applicability_client: AsyncClient) -> None:
        await register(applicability_client)

        response = await applicability_client.post(
            "/api/v1/cache/warm",
            json={"organization_ids": ["org-api"]},
        )

        assert response.json()["warmed"] == ["org-api"]

    @pytest.mark.asyncio
    async def test_similar_profiles_suppressed_for_small_cohort(self, applicability_client: AsyncClient) -> None:
        await register(applicability_client)

        response = await applicability_client.post(
            "/api/v1/similar-profiles",
            json={"sector": "construction", "region": "England"},
        )

        data = response.json()
        assert data["suppressed"] is True
        assert data["cohort_size"] == 0
