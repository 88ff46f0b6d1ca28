"""
Organization Profile Store
==========================

In-memory store of organizations, their locations and the typed
extended attribute bag.

Every mutation validates at the boundary, replaces the stored profile
with a new object (readers never observe a half-applied edit), bumps the
revision and notifies listeners with the changed attribute keys.

Version: 0.1.0
"""

from collections.abc import Callable, Iterable
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import ValidationError

from services.applicability.errors import (
    InvalidAttributeError,
    LocationNotFoundError,
    OrganizationNotFoundError,
)
from shared.logging import get_logger
from shared.models.organization import (
    AttributeProposal,
    AttributeSource,
    AttributeType,
    AttributeWrite,
    CoreAttributesUpdate,
    Location,
    LocationCreate,
    LocationUpdate,
    OperationalStatus,
    OrganizationCreate,
    OrganizationProfile,
    ProfileAttribute,
)


logger = get_logger(__name__)

ProfileListener = Callable[[str, set[str]], None]

# Extended keys the engine reads, and the type each must have
RESERVED_ATTRIBUTE_TYPES: dict[str, AttributeType] = {
    "roles": AttributeType.STRING_LIST,
    "total_employees": AttributeType.INTEGER,
    "annual_turnover": AttributeType.NUMBER,
}


class InterfaceMode(str, Enum):
    """How a UI should present an organization's sites."""

    SINGLE_LOCATION = "single_location"
    MULTI_LOCATION = "multi_location"
    NO_LOCATIONS = "no_locations"


def _validation_to_attribute_error(error: ValidationError) -> InvalidAttributeError:
    first = error.errors()[0]
    field = ".".join(str(part) for part in first.get("loc", ())) or "profile"
    return InvalidAttributeError(field, first.get("msg", "invalid value"))


def _check_non_negative(field: str, value: float | None) -> None:
    if value is not None and value < 0:
        raise InvalidAttributeError(field, "must not be negative")


def _check_confidence(confidence: float) -> None:
    if not 0.0 <= confidence <= 1.0:
        raise InvalidAttributeError("confidence", "must be between 0 and 1")


class ProfileStore:
    """Organization profiles keyed by organization id."""

    def __init__(self) -> None:
        self._profiles: dict[str, OrganizationProfile] = {}
        self._listeners: list[ProfileListener] = []

    def subscribe(self, listener: ProfileListener) -> None:
        """Register a callback invoked as listener(organization_id, changed_keys)."""
        self._listeners.append(listener)

    # =========================================================================
    # Reads
    # =========================================================================

    def get(self, organization_id: str) -> OrganizationProfile:
        profile = self._profiles.get(organization_id)
        if profile is None:
            raise OrganizationNotFoundError(organization_id)
        return profile

    def list_organizations(self) -> list[OrganizationProfile]:
        return [self._profiles[key] for key in sorted(self._profiles)]

    def get_location(self, organization_id: str, location_id: str) -> Location:
        location = self.get(organization_id).get_location(location_id)
        if location is None:
            raise LocationNotFoundError(organization_id, location_id)
        return location

    def interface_mode(self, organization_id: str) -> InterfaceMode:
        active = len(self.get(organization_id).active_locations)
        if active == 0:
            return InterfaceMode.NO_LOCATIONS
        if active == 1:
            return InterfaceMode.SINGLE_LOCATION
        return InterfaceMode.MULTI_LOCATION

    # =========================================================================
    # Writes
    # =========================================================================

    def register(self, payload: OrganizationCreate | OrganizationProfile) -> OrganizationProfile:
        """Add a new organization with its initial locations."""
        if payload.organization_id in self._profiles:
            raise InvalidAttributeError("organization_id", "organization already registered")

        if isinstance(payload, OrganizationProfile):
            profile = payload
            for location in profile.locations:
                _check_non_negative("employee_count", location.employee_count)
                _check_non_negative("annual_turnover", location.annual_turnover)
        else:
            primaries = [loc for loc in payload.locations if loc.is_primary]
            if len(primaries) > 1:
                raise InvalidAttributeError("is_primary", "only one location may be primary")
            locations = [
                self._build_location(payload.organization_id, loc)
                for loc in payload.locations
            ]
            if locations and not primaries:
                locations[0] = locations[0].model_copy(update={"is_primary": True})
            try:
                profile = OrganizationProfile(
                    organization_id=payload.organization_id,
                    name=payload.name,
                    email_domain=payload.email_domain,
                    core=payload.core,
                    locations=locations,
                )
            except ValidationError as e:
                raise _validation_to_attribute_error(e) from e

        self._profiles[profile.organization_id] = profile
        logger.info(
            "organization_registered",
            organization_id=profile.organization_id,
            locations=len(profile.locations),
        )
        self._notify(profile.organization_id, {"core", "locations"})
        return profile

    def update_core(
        self,
        organization_id: str,
        update: CoreAttributesUpdate,
    ) -> OrganizationProfile:
        """Apply the fields present in the update; omitted fields are unchanged."""
        changes = update.model_dump(exclude_unset=True)
        profile = self.get(organization_id)
        core = profile.core.model_dump()
        core.update(changes)
        return self._replace(
            profile,
            {"core": core},
            {f"core.{key}" for key in changes},
        )

    def set_attribute(
        self,
        organization_id: str,
        key: str,
        write: AttributeWrite,
        source: AttributeSource = AttributeSource.USER,
    ) -> OrganizationProfile:
        """Direct entry of an extended attribute."""
        return self._write_attribute(
            organization_id,
            key,
            value=write.value,
            attribute_type=write.type,
            confidence=write.confidence,
            provenance=write.provenance,
            source=source,
        )

    def apply_proposal(
        self,
        organization_id: str,
        proposal: AttributeProposal,
    ) -> OrganizationProfile:
        """
        Store a value proposed by the advisory collaborator.

        Treated exactly like direct entry for matching; the confidence and
        provenance are kept for display.
        """
        logger.info(
            "attribute_proposal_applied",
            organization_id=organization_id,
            key=proposal.key,
            confidence=proposal.confidence,
            provenance=proposal.provenance,
        )
        return self._write_attribute(
            organization_id,
            proposal.key,
            value=proposal.value,
            attribute_type=proposal.type,
            confidence=proposal.confidence,
            provenance=proposal.provenance,
            source=AttributeSource.ADVISORY,
        )

    def add_location(
        self,
        organization_id: str,
        payload: LocationCreate,
    ) -> OrganizationProfile:
        profile = self.get(organization_id)
        if profile.get_location(payload.location_id) is not None:
            raise InvalidAttributeError("location_id", "location id already in use")
        if payload.is_primary and any(loc.is_primary for loc in profile.locations):
            raise InvalidAttributeError("is_primary", "organization already has a primary location")

        location = self._build_location(organization_id, payload)
        if not profile.locations:
            location = location.model_copy(update={"is_primary": True})

        locations = [loc.model_dump() for loc in profile.locations]
        locations.append(location.model_dump())
        return self._replace(
            profile,
            {"locations": locations},
            {f"locations.{payload.location_id}"},
        )

    def update_location(
        self,
        organization_id: str,
        location_id: str,
        update: LocationUpdate,
    ) -> OrganizationProfile:
        changes = update.model_dump(exclude_unset=True)
        _check_non_negative("employee_count", changes.get("employee_count"))
        _check_non_negative("annual_turnover", changes.get("annual_turnover"))

        profile = self.get(organization_id)
        self.get_location(organization_id, location_id)

        if changes.get("is_primary"):
            others = [
                loc for loc in profile.locations
                if loc.is_primary and loc.location_id != location_id
            ]
            if others:
                raise InvalidAttributeError(
                    "is_primary",
                    f"location {others[0].location_id} is already primary",
                )

        locations = []
        for loc in profile.locations:
            data = loc.model_dump()
            if loc.location_id == location_id:
                data.update(changes)
            locations.append(data)

        return self._replace(
            profile,
            {"locations": locations},
            {f"locations.{location_id}.{key}" for key in changes},
        )

    def close_location(self, organization_id: str, location_id: str) -> OrganizationProfile:
        """Soft delete: the location stays, marked inactive, for screening history."""
        profile = self.update_location(
            organization_id,
            location_id,
            LocationUpdate(operational_status=OperationalStatus.INACTIVE),
        )
        logger.info("location_closed", organization_id=organization_id, location_id=location_id)
        return profile

    # =========================================================================
    # Internals
    # =========================================================================

    def _build_location(self, organization_id: str, payload: LocationCreate) -> Location:
        _check_non_negative("employee_count", payload.employee_count)
        _check_non_negative("annual_turnover", payload.annual_turnover)
        try:
            return Location(organization_id=organization_id, **payload.model_dump())
        except ValidationError as e:
            raise _validation_to_attribute_error(e) from e

    def _write_attribute(
        self,
        organization_id: str,
        key: str,
        value: Any,
        attribute_type: AttributeType,
        confidence: float,
        provenance: str | None,
        source: AttributeSource,
    ) -> OrganizationProfile:
        key = key.strip()
        if not key:
            raise InvalidAttributeError("key", "attribute key must not be empty")
        _check_confidence(confidence)

        expected = RESERVED_ATTRIBUTE_TYPES.get(key)
        if expected is not None and attribute_type != expected:
            raise InvalidAttributeError(key, f"must be of type {expected.value}")
        if key in ("total_employees", "annual_turnover") and isinstance(value, (int, float)):
            _check_non_negative(key, value)

        profile = self.get(organization_id)
        previous = profile.extended.get(key)
        try:
            attribute = ProfileAttribute(
                value=value,
                type=attribute_type,
                source=source,
                confidence=confidence,
                provenance=provenance,
                version=previous.version + 1 if previous else 1,
            )
        except ValidationError as e:
            raise InvalidAttributeError(key, e.errors()[0].get("msg", "invalid value")) from e

        extended = {k: v.model_dump() for k, v in profile.extended.items()}
        extended[key] = attribute.model_dump()
        return self._replace(profile, {"extended": extended}, {f"extended.{key}"})

    def _replace(
        self,
        profile: OrganizationProfile,
        changes: dict[str, Any],
        changed_keys: Iterable[str],
    ) -> OrganizationProfile:
        data = profile.model_dump()
        data.update(changes)
        data["revision"] = profile.revision + 1
        data["updated_at"] = datetime.now(UTC)
        try:
            updated = OrganizationProfile.model_validate(data)
        except ValidationError as e:
            raise _validation_to_attribute_error(e) from e

        self._profiles[updated.organization_id] = updated
        keys = set(changed_keys)
        logger.debug(
            "organization_profile_updated",
            organization_id=updated.organization_id,
            revision=updated.revision,
            changed=sorted(keys),
        )
        self._notify(updated.organization_id, keys)
        return updated

    def _notify(self, organization_id: str, changed_keys: set[str]) -> None:
        for listener in list(self._listeners):
            listener(organization_id, changed_keys)
