"""
Profile Store Tests
===================

Tests for organization registration, validated updates and locations.

Version: 0.1.0
"""

import pytest

from services.applicability.errors import (
    InvalidAttributeError,
    LocationNotFoundError,
    OrganizationNotFoundError,
)
from services.applicability.services.profile_store import InterfaceMode, ProfileStore
from shared.models.organization import (
    AttributeProposal,
    AttributeSource,
    AttributeType,
    AttributeWrite,
    CoreAttributesUpdate,
    LocationCreate,
    LocationUpdate,
    OperationalStatus,
    OrganizationCreate,
)


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def store(single_site_org: OrganizationCreate) -> ProfileStore:
    profile_store = ProfileStore()
    profile_store.register(single_site_org)
    return profile_store


# =============================================================================
# Registration
# =============================================================================


class TestRegistration:
    """Registering organizations."""

    def test_register_assigns_primary(self, store: ProfileStore) -> None:
        profile = store.get("org-single")

        assert profile.primary_location.location_id == "site-1"
        assert profile.locations[0].organization_id == "org-single"
        assert store.interface_mode("org-single") == InterfaceMode.SINGLE_LOCATION

    def test_duplicate_organization_rejected(
        self,
        store: ProfileStore,
        single_site_org: OrganizationCreate,
    ) -> None:
        with pytest.raises(InvalidAttributeError) as exc_info:
            store.register(single_site_org)

        assert exc_info.value.field == "organization_id"

    def test_two_primary_locations_rejected(self, profile_store: ProfileStore) -> None:
        payload = OrganizationCreate(
            organization_id="org-x",
            locations=[
                LocationCreate(location_id="a", is_primary=True),
                LocationCreate(location_id="b", is_primary=True),
            ],
        )

        with pytest.raises(InvalidAttributeError) as exc_info:
            profile_store.register(payload)

        assert exc_info.value.field == "is_primary"

    def test_negative_employee_count_rejected(self, profile_store: ProfileStore) -> None:
        payload = OrganizationCreate(
            organization_id="org-x",
            locations=[LocationCreate(location_id="a", employee_count=-5)],
        )

        with pytest.raises(InvalidAttributeError) as exc_info:
            profile_store.register(payload)

        assert exc_info.value.field == "employee_count"

    def test_unknown_organization(self, profile_store: ProfileStore) -> None:
        with pytest.raises(OrganizationNotFoundError):
            profile_store.get("org-missing")

    def test_list_is_sorted(self, profile_store: ProfileStore) -> None:
        for organization_id in ("org-b", "org-a", "org-c"):
            profile_store.register(OrganizationCreate(organization_id=organization_id))

        assert [p.organization_id for p in profile_store.list_organizations()] == [
            "org-a",
            "org-b",
            "org-c",
        ]


# =============================================================================
# Attributes
# =============================================================================


class TestAttributes:
    """Core and extended attribute updates."""

    def test_partial_core_update(self, store: ProfileStore) -> None:
        profile = store.update_core("org-single", CoreAttributesUpdate(entity_type="limited_company"))

        assert profile.core.entity_type == "limited_company"
        assert profile.core.sector == "construction"
        assert profile.revision == 1

    def test_set_attribute_versions_value(self, store: ProfileStore) -> None:
        store.set_attribute("org-single", "roles", AttributeWrite(value=["Employer"], type=AttributeType.STRING_LIST))
        profile = store.set_attribute(
            "org-single",
            "roles",
            AttributeWrite(value=["Employer", "Site Manager"], type=AttributeType.STRING_LIST),
        )

        assert profile.roles == ["Employer", "Site Manager"]
        assert profile.extended["roles"].version == 2
        assert profile.extended["roles"].source == AttributeSource.USER

    def test_value_must_match_declared_type(self, store: ProfileStore) -> None:
        with pytest.raises(InvalidAttributeError) as exc_info:
            store.set_attribute("org-single", "headcount_note", AttributeWrite(value="ten", type=AttributeType.INTEGER))

        assert exc_info.value.field == "headcount_note"

    def test_reserved_key_type_enforced(self, store: ProfileStore) -> None:
        with pytest.raises(InvalidAttributeError) as exc_info:
            store.set_attribute("org-single", "roles", AttributeWrite(value="Employer", type=AttributeType.STRING))

        assert exc_info.value.field == "roles"

    def test_negative_total_rejected(self, store: ProfileStore) -> None:
        with pytest.raises(InvalidAttributeError):
            store.set_attribute("org-single", "total_employees", AttributeWrite(value=-1, type=AttributeType.INTEGER))

    def test_confidence_out_of_range(self, store: ProfileStore) -> None:
        with pytest.raises(InvalidAttributeError) as exc_info:
            store.set_attribute(
                "org-single",
                "website",
                AttributeWrite(value="x", type=AttributeType.STRING, confidence=1.5),
            )

        assert exc_info.value.field == "confidence"

    def test_failed_update_leaves_profile_unchanged(self, store: ProfileStore) -> None:
        before = store.get("org-single")

        with pytest.raises(InvalidAttributeError):
            store.set_attribute("org-single", "roles", AttributeWrite(value=[1, 2], type=AttributeType.STRING_LIST))

        assert store.get("org-single") is before

    def test_proposal_keeps_confidence_and_provenance(self, store: ProfileStore) -> None:
        profile = store.apply_proposal(
            "org-single",
            AttributeProposal(
                key="total_employees",
                value=35,
                type=AttributeType.INTEGER,
                confidence=0.6,
                provenance="companies-house-lookup",
            ),
        )

        attribute = profile.extended["total_employees"]
        assert attribute.source == AttributeSource.ADVISORY
        assert attribute.confidence == 0.6
        assert attribute.provenance == "companies-house-lookup"
        assert profile.total_employees == 35

    def test_listeners_receive_changed_keys(self, store: ProfileStore) -> None:
        seen: list[tuple[str, set[str]]] = []
        store.subscribe(lambda org, keys: seen.append((org, keys)))

        store.set_attribute("org-single", "website", AttributeWrite(value="x", type=AttributeType.STRING))

        assert seen == [("org-single", {"extended.website"})]


# =============================================================================
# Locations
# =============================================================================


class TestLocations:
    """Location lifecycle."""

    def test_add_location_switches_interface_mode(self, store: ProfileStore) -> None:
        store.add_location("org-single", LocationCreate(location_id="site-2", geographic_region="Wales"))

        assert store.interface_mode("org-single") == InterfaceMode.MULTI_LOCATION
        assert store.get_location("org-single", "site-2").is_primary is False

    def test_first_location_becomes_primary(self, profile_store: ProfileStore) -> None:
        profile_store.register(OrganizationCreate(organization_id="org-x"))
        assert profile_store.interface_mode("org-x") == InterfaceMode.NO_LOCATIONS

        profile = profile_store.add_location("org-x", LocationCreate(location_id="a"))

        assert profile.primary_location.location_id == "a"
        assert profile.locations[0].is_primary is True

    def test_duplicate_location_rejected(self, store: ProfileStore) -> None:
        with pytest.raises(InvalidAttributeError) as exc_info:
            store.add_location("org-single", LocationCreate(location_id="site-1"))

        assert exc_info.value.field == "location_id"

    def test_second_primary_rejected(self, store: ProfileStore) -> None:
        store.add_location("org-single", LocationCreate(location_id="site-2"))

        with pytest.raises(InvalidAttributeError):
            store.update_location("org-single", "site-2", LocationUpdate(is_primary=True))

    def test_update_location_validates_counts(self, store: ProfileStore) -> None:
        with pytest.raises(InvalidAttributeError) as exc_info:
            store.update_location("org-single", "site-1", LocationUpdate(annual_turnover=-10.0))

        assert exc_info.value.field == "annual_turnover"

    def test_unknown_location(self, store: ProfileStore) -> None:
        with pytest.raises(LocationNotFoundError):
            store.update_location("org-single", "site-9", LocationUpdate(name="Depot"))

    def test_close_location_is_soft_delete(self, store: ProfileStore) -> None:
        profile = store.close_location("org-single", "site-1")

        location = profile.get_location("site-1")
        assert location is not None
        assert location.operational_status == OperationalStatus.INACTIVE
        assert profile.active_locations == []
        assert store.interface_mode("org-single") == InterfaceMode.NO_LOCATIONS
