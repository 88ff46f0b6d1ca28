"""
Regulation Store
================

Read-mostly, versioned holder of the legal register.

A committed version is an immutable snapshot; committing a new version
swaps a single reference, so a reader that took a snapshot keeps seeing
one consistent version for the whole query.

Sources:
- JsonFileRegulationSource: exported register file
- HttpRegulationSource: register export endpoint (retried with backoff)

Version: 0.1.0
"""

import json
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import httpx
from pydantic import ValidationError
from tenacity import (
    AsyncRetrying,
    RetryError,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from services.applicability.errors import (
    DuplicateRegulationIdError,
    RegulationStoreUnavailableError,
)
from shared.config.settings import RegulationSourceSettings
from shared.logging import get_logger
from shared.models.regulation import Regulation, RegulationVersionInfo


logger = get_logger(__name__)

VersionListener = Callable[[str | None, str], None]


@dataclass(frozen=True)
class RegulationSnapshot:
    """One committed version of the register."""

    version: str
    records: tuple[Regulation, ...]
    committed_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    by_id: dict[str, Regulation] = field(default_factory=dict, compare=False)

    @classmethod
    def build(cls, version: str, records: Iterable[Regulation]) -> "RegulationSnapshot":
        ordered = tuple(sorted(records, key=lambda r: r.id))
        index: dict[str, Regulation] = {}
        for regulation in ordered:
            if regulation.id in index:
                raise DuplicateRegulationIdError(version, regulation.id)
            index[regulation.id] = regulation
        return cls(version=version, records=ordered, by_id=index)

    def get(self, regulation_id: str) -> Regulation | None:
        return self.by_id.get(regulation_id)

    @property
    def duty_creating_count(self) -> int:
        return sum(1 for r in self.records if r.is_duty_creating)

    def info(self) -> RegulationVersionInfo:
        return RegulationVersionInfo(
            version=self.version,
            record_count=len(self.records),
            duty_creating_count=self.duty_creating_count,
            committed_at=self.committed_at,
        )


class RegulationStore:
    """
    Holder of the currently committed register version.

    Readers call ``snapshot()`` once per query. Writers only ever call
    ``commit()`` with a complete version; partial writes are never visible.
    """

    def __init__(self) -> None:
        self._snapshot: RegulationSnapshot | None = None
        self._unavailable_reason: str | None = None
        self._listeners: list[VersionListener] = []

    def snapshot(self) -> RegulationSnapshot:
        """
        Return the committed snapshot.

        Raises:
            RegulationStoreUnavailableError: nothing committed, or the
                store has been marked unavailable.
        """
        if self._unavailable_reason is not None:
            raise RegulationStoreUnavailableError(
                f"Regulation store unavailable: {self._unavailable_reason}",
                details={"reason": self._unavailable_reason},
            )
        current = self._snapshot
        if current is None:
            raise RegulationStoreUnavailableError(
                "No regulation version has been committed",
                details={"reason": "not_loaded"},
            )
        return current

    @property
    def version(self) -> str | None:
        return self._snapshot.version if self._snapshot else None

    @property
    def is_available(self) -> bool:
        return self._snapshot is not None and self._unavailable_reason is None

    def commit(self, records: Iterable[Regulation], version: str) -> RegulationSnapshot:
        """
        Atomically replace the committed version.

        Args:
            records: Complete record set for the new version
            version: Version label (must differ from the current one)

        Returns:
            The new snapshot

        Raises:
            DuplicateRegulationIdError: the record set repeats an id.
            ValueError: the version label is already committed.
        """
        new_snapshot = RegulationSnapshot.build(version, records)
        previous = self.version
        if previous == version:
            raise ValueError(f"version {version} is already committed")

        self._snapshot = new_snapshot
        self._unavailable_reason = None

        logger.info(
            "regulation_version_committed",
            version=version,
            previous_version=previous,
            records=len(new_snapshot.records),
            duty_creating=new_snapshot.duty_creating_count,
        )

        for listener in list(self._listeners):
            listener(previous, version)

        return new_snapshot

    def mark_unavailable(self, reason: str) -> None:
        """Flag the backing dataset as unreachable; queries fail fast."""
        self._unavailable_reason = reason
        logger.warning("regulation_store_marked_unavailable", reason=reason)

    def mark_available(self) -> None:
        self._unavailable_reason = None

    def subscribe(self, listener: VersionListener) -> None:
        """Register a callback invoked as listener(previous_version, new_version)."""
        self._listeners.append(listener)

    async def load_from(self, source: "RegulationSource") -> RegulationSnapshot:
        """Fetch a complete version from a source and commit it."""
        version, records = await source.fetch()
        return self.commit(records, version)


# =============================================================================
# Sources
# =============================================================================


def parse_register_payload(
    payload: Any,
    default_version: str,
) -> tuple[str, list[Regulation]]:
    """
    Parse a register export.

    Accepts either ``{"version": ..., "regulations": [...]}`` or a bare list.
    """
    if isinstance(payload, dict):
        version = str(payload.get("version") or default_version)
        raw_records = payload.get("regulations", [])
    elif isinstance(payload, list):
        version = default_version
        raw_records = payload
    else:
        raise RegulationStoreUnavailableError(
            "Register payload must be an object or a list",
            details={"reason": "malformed_payload"},
        )

    try:
        records = [Regulation.model_validate(item) for item in raw_records]
    except ValidationError as e:
        raise RegulationStoreUnavailableError(
            "Register payload failed validation",
            details={"reason": "invalid_records", "errors": e.error_count()},
        ) from e

    return version, records


class RegulationSource(ABC):
    """A place a complete register version can be fetched from."""

    @abstractmethod
    async def fetch(self) -> tuple[str, list[Regulation]]:
        """Return (version, records) or raise RegulationStoreUnavailableError."""


class JsonFileRegulationSource(RegulationSource):
    """Register export stored as a JSON file."""

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)

    async def fetch(self) -> tuple[str, list[Regulation]]:
        try:
            payload = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logger.error("regulation_file_load_failed", path=str(self.path), error=str(e))
            raise RegulationStoreUnavailableError(
                f"Cannot read register file {self.path}",
                details={"reason": "file_unreadable"},
            ) from e

        stat = self.path.stat()
        default_version = f"file-{int(stat.st_mtime)}"
        return parse_register_payload(payload, default_version)


class HttpRegulationSource(RegulationSource):
    """Register export served over HTTP."""

    def __init__(
        self,
        url: str,
        timeout_seconds: int = 30,
        max_retries: int = 3,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.url = url
        self.timeout_seconds = timeout_seconds
        self.max_retries = max_retries
        self._client = client

    async def fetch(self) -> tuple[str, list[Regulation]]:
        try:
            async for attempt in AsyncRetrying(
                retry=retry_if_exception_type(httpx.TransportError),
                stop=stop_after_attempt(self.max_retries),
                wait=wait_exponential(multiplier=1, min=1, max=30),
                reraise=False,
            ):
                with attempt:
                    payload, etag = await self._get()
        except RetryError as e:
            logger.error(
                "regulation_fetch_failed",
                url=self.url,
                attempts=self.max_retries,
                error=str(e.last_attempt.exception()),
            )
            raise RegulationStoreUnavailableError(
                f"Register endpoint unreachable after {self.max_retries} attempts",
                details={"reason": "fetch_failed", "url": self.url},
            ) from e
        except httpx.HTTPStatusError as e:
            logger.error(
                "regulation_fetch_rejected",
                url=self.url,
                status_code=e.response.status_code,
            )
            raise RegulationStoreUnavailableError(
                f"Register endpoint returned {e.response.status_code}",
                details={"reason": "bad_status", "status_code": e.response.status_code},
            ) from e

        return parse_register_payload(payload, default_version=etag or "http-unversioned")

    async def _get(self) -> tuple[Any, str | None]:
        if self._client is not None:
            response = await self._client.get(self.url)
        else:
            async with httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout_seconds)
            ) as client:
                response = await client.get(self.url)
        response.raise_for_status()
        try:
            payload = response.json()
        except ValueError as e:
            logger.error("regulation_fetch_malformed", url=self.url, error=str(e))
            raise RegulationStoreUnavailableError(
                "Register endpoint returned a malformed payload",
                details={"reason": "malformed_payload", "url": self.url},
            ) from e
        etag = response.headers.get("etag")
        return payload, etag.strip('"') if etag else None


def source_from_settings(config: RegulationSourceSettings) -> RegulationSource | None:
    """Configured register source; the URL wins over a file path."""
    if config.url:
        return HttpRegulationSource(
            config.url,
            timeout_seconds=config.timeout_seconds,
            max_retries=config.max_retries,
        )
    if config.path:
        return JsonFileRegulationSource(config.path)
    return None
