"""
Test Configuration
==================

Pytest fixtures for the applicability engine tests.
"""

import os
from collections.abc import AsyncGenerator
from typing import Any

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

# Set test environment
os.environ["ENVIRONMENT"] = "testing"
os.environ["CACHE_BACKEND"] = "memory"

from services.applicability.services.cache import InMemoryMatchCache, NullMatchCache
from services.applicability.services.engine import ApplicabilityEngine
from services.applicability.services.profile_store import ProfileStore
from services.applicability.services.regulation_store import RegulationStore
from shared.models.organization import (
    CoreAttributes,
    LocationCreate,
    OrganizationCreate,
)
from shared.models.regulation import Regulation


REGISTER_VERSION = "2024.1"


def make_regulation(regulation_id: str, **overrides: Any) -> Regulation:
    """Duty-creating, in-force construction regulation for England unless overridden."""
    data: dict[str, Any] = {
        "id": regulation_id,
        "name": regulation_id.replace("-", " ").title(),
        "family": "CONSTRUCTION",
        "function": "making",
        "status": "in_force",
        "geo_extent": ["England"],
        "duty_holder": ["Employer"],
    }
    data.update(overrides)
    return Regulation.model_validate(data)


def sample_register() -> list[Regulation]:
    """
    Small register covering every filter layer.

    Construction duties for England ('R-CONSTRUCT-ENG', decorated family tag),
    Great Britain ('R-CONSTRUCT-GB', held by 'Manager'), Scotland and Wales;
    non-duty records (amending, not in force); a size-conditional duty;
    a health-sector duty; and an organization-scope reporting duty.
    """
    return [
        make_regulation("R-CONSTRUCT-ENG", family="💙 CONSTRUCTION"),
        make_regulation("R-CONSTRUCT-GB", geo_extent=["Great Britain"], duty_holder=["Manager"]),
        make_regulation("R-CONSTRUCT-SCOT", geo_extent=["Scotland"]),
        make_regulation("R-CONSTRUCT-WALES", geo_extent=["Wales"]),
        make_regulation("R-CONSTRUCT-AMEND", function="amending"),
        make_regulation("R-CONSTRUCT-REVOKED", status="not_in_force"),
        make_regulation(
            "R-CONSTRUCT-LARGE",
            threshold={"min_employees": 250},
        ),
        make_regulation("R-HEALTH-ENG", family="HEALTH"),
        make_regulation(
            "R-CORP-REPORTING",
            geo_extent=["United Kingdom"],
            duty_holder=["Director"],
            scope="organization",
            threshold={"min_employees": 250},
        ),
    ]


# =============================================================================
# Stores and engines
# =============================================================================


@pytest.fixture
def register() -> list[Regulation]:
    return sample_register()


@pytest.fixture
def regulation_store(register: list[Regulation]) -> RegulationStore:
    store = RegulationStore()
    store.commit(register, REGISTER_VERSION)
    return store


@pytest.fixture
def profile_store() -> ProfileStore:
    return ProfileStore()


@pytest.fixture
def engine(regulation_store: RegulationStore, profile_store: ProfileStore) -> ApplicabilityEngine:
    """Engine with an in-memory cache."""
    return ApplicabilityEngine(
        regulations=regulation_store,
        profiles=profile_store,
        cache=InMemoryMatchCache(),
    )


@pytest.fixture
def uncached_engine(register: list[Regulation]) -> ApplicabilityEngine:
    """Independent engine with caching disabled."""
    store = RegulationStore()
    store.commit(register, REGISTER_VERSION)
    return ApplicabilityEngine(
        regulations=store,
        profiles=ProfileStore(),
        cache=NullMatchCache(),
    )


# =============================================================================
# Profiles
# =============================================================================


@pytest.fixture
def single_site_org() -> OrganizationCreate:
    """Construction firm with one site in England and nothing else known."""
    return OrganizationCreate(
        organization_id="org-single",
        name="Single Site Builders Ltd",
        email_domain="singlesite.example",
        core=CoreAttributes(sector="construction", headquarters_region="England"),
        locations=[
            LocationCreate(location_id="site-1", name="Yard", geographic_region="England"),
        ],
    )


@pytest.fixture
def multi_site_org() -> OrganizationCreate:
    """Construction firm with two English sites and one Scottish site."""
    return OrganizationCreate(
        organization_id="org-multi",
        name="Multi Site Builders plc",
        email_domain="multisite.example",
        core=CoreAttributes(
            sector="construction",
            headquarters_region="England",
            entity_type="public_limited_company",
        ),
        locations=[
            LocationCreate(
                location_id="site-a",
                geographic_region="England",
                roles=["Employer"],
                is_primary=True,
            ),
            LocationCreate(location_id="site-b", geographic_region="England"),
            LocationCreate(location_id="site-c", geographic_region="Scotland"),
        ],
    )


# =============================================================================
# API client
# =============================================================================


@pytest_asyncio.fixture
async def applicability_client(
    engine: ApplicabilityEngine,
) -> AsyncGenerator[AsyncClient, None]:
    """Test client for the Applicability service wired to the test engine."""
    from services.applicability.dependencies import get_engine
    from services.applicability.main import app

    app.dependency_overrides[get_engine] = lambda: engine
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as client:
        yield client
    app.dependency_overrides.clear()
