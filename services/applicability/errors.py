"""
Applicability Errors
====================

Error taxonomy for the matching engine.

Incomplete profiles and partial aggregations are not errors: they are
reported through layer status and the report's ``partial`` flag.

Version: 0.1.0
"""

from typing import Any


class ApplicabilityError(Exception):
    """Base class for errors surfaced to callers."""

    error_code = "applicability_error"
    retryable = False

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}


class InvalidAttributeError(ApplicabilityError):
    """A profile attribute failed type or range validation."""

    error_code = "invalid_attribute"

    def __init__(self, field: str, reason: str) -> None:
        super().__init__(
            f"Invalid value for '{field}': {reason}",
            details={"field": field, "reason": reason},
        )
        self.field = field
        self.reason = reason


class RegulationStoreUnavailableError(ApplicabilityError):
    """The regulation dataset cannot be loaded or queried."""

    error_code = "regulation_store_unavailable"
    retryable = True


class DuplicateRegulationIdError(ApplicabilityError):
    """A register version lists the same regulation id more than once."""

    error_code = "duplicate_regulation_id"

    def __init__(self, version: str, regulation_id: str) -> None:
        super().__init__(
            f"Version {version} lists regulation {regulation_id} more than once",
            details={"version": version, "regulation_id": regulation_id},
        )


class OrganizationNotFoundError(ApplicabilityError):
    """No organization with the given id."""

    error_code = "organization_not_found"

    def __init__(self, organization_id: str) -> None:
        super().__init__(
            f"Organization not found: {organization_id}",
            details={"organization_id": organization_id},
        )


class LocationNotFoundError(ApplicabilityError):
    """No location with the given id in the organization."""

    error_code = "location_not_found"

    def __init__(self, organization_id: str, location_id: str) -> None:
        super().__init__(
            f"Location {location_id} not found in organization {organization_id}",
            details={"organization_id": organization_id, "location_id": location_id},
        )


class SupersededRequestError(ApplicabilityError):
    """A newer progressive request for the same session replaced this one."""

    error_code = "superseded"

    def __init__(self, session_id: str) -> None:
        super().__init__(
            f"Request superseded by a newer edit in session {session_id}",
            details={"session_id": session_id},
        )


class StaleCacheError(Exception):
    """
    A cache entry failed validation.

    Internal only: the cache converts it into a recomputation.
    """

    def __init__(self, key: str, reason: str) -> None:
        super().__init__(f"{key}: {reason}")
        self.key = key
        self.reason = reason
