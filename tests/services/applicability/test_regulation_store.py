"""
Regulation Store Tests
======================

Tests for versioned snapshots and register sources.

Version: 0.1.0
"""

import json
from pathlib import Path

import httpx
import pytest

from services.applicability.errors import (
    DuplicateRegulationIdError,
    RegulationStoreUnavailableError,
)
from services.applicability.services.regulation_store import (
    HttpRegulationSource,
    JsonFileRegulationSource,
    RegulationStore,
    parse_register_payload,
    source_from_settings,
)
from shared.config.settings import RegulationSourceSettings
from shared.models.regulation import Regulation, RegulationScope, StakeholderField
from tests.conftest import REGISTER_VERSION, make_regulation


EXPORT_RECORD = {
    "id": "UK_uksi_2015_51",
    "name": "Construction (Design and Management) Regulations 2015",
    "family": "💙 CONSTRUCTION",
    "function": "making",
    "status": "in_force",
    "geo_extent": "Great Britain",
    "duty_holder": ["Client", "Principal Contractor"],
    "responsibility_holder": ["Principal Designer"],
}


# =============================================================================
# Records
# =============================================================================


class TestRegulationRecord:
    """Register export parsing."""

    def test_top_level_stakeholder_fields_are_lifted(self) -> None:
        regulation = Regulation.model_validate(EXPORT_RECORD)

        assert regulation.geo_extent == frozenset({"Great Britain"})
        assert regulation.stakeholders.duty_holder == ("Client", "Principal Contractor")
        fields = [f for f, values in regulation.stakeholders.iter_fields() if values]
        assert fields == [StakeholderField.DUTY_HOLDER, StakeholderField.RESPONSIBILITY_HOLDER]
        assert regulation.scope == RegulationScope.SITE

    def test_threshold_evaluation(self) -> None:
        regulation = make_regulation("R-1", threshold={"min_employees": 50, "max_turnover": 1_000_000})

        assert regulation.threshold.evaluate(None, None) is None
        assert regulation.threshold.evaluate(60, None) is True
        assert regulation.threshold.evaluate(20, None) is False
        assert regulation.threshold.evaluate(60, 2_000_000) is False


# =============================================================================
# Store
# =============================================================================


class TestRegulationStore:
    """Version commits and availability."""

    def test_nothing_committed_is_unavailable(self) -> None:
        store = RegulationStore()

        with pytest.raises(RegulationStoreUnavailableError) as exc_info:
            store.snapshot()

        assert exc_info.value.details["reason"] == "not_loaded"
        assert store.is_available is False

    def test_snapshot_is_sorted_and_indexed(self, regulation_store: RegulationStore) -> None:
        snapshot = regulation_store.snapshot()

        ids = [r.id for r in snapshot.records]
        assert ids == sorted(ids)
        assert snapshot.get("R-CONSTRUCT-ENG").family == "💙 CONSTRUCTION"
        assert snapshot.info().record_count == 9
        assert snapshot.info().duty_creating_count == 8

    def test_commit_swaps_version_for_new_readers_only(self, regulation_store: RegulationStore) -> None:
        held = regulation_store.snapshot()

        regulation_store.commit([make_regulation("R-ONLY")], "2024.2")

        assert held.version == REGISTER_VERSION
        assert len(held.records) == 9
        assert regulation_store.snapshot().version == "2024.2"
        assert regulation_store.version == "2024.2"

    def test_same_version_rejected(self, regulation_store: RegulationStore) -> None:
        with pytest.raises(ValueError):
            regulation_store.commit([make_regulation("R-1")], REGISTER_VERSION)

    def test_duplicate_ids_keep_previous_version(self, regulation_store: RegulationStore) -> None:
        with pytest.raises(DuplicateRegulationIdError) as exc_info:
            regulation_store.commit([make_regulation("R-1"), make_regulation("R-1")], "2024.2")

        assert exc_info.value.details == {"version": "2024.2", "regulation_id": "R-1"}
        assert regulation_store.version == REGISTER_VERSION

    def test_listeners_notified(self, regulation_store: RegulationStore) -> None:
        seen: list[tuple[str | None, str]] = []
        regulation_store.subscribe(lambda previous, current: seen.append((previous, current)))

        regulation_store.commit([make_regulation("R-1")], "2024.2")

        assert seen == [(REGISTER_VERSION, "2024.2")]

    def test_mark_unavailable_and_recover(self, regulation_store: RegulationStore) -> None:
        regulation_store.mark_unavailable("upstream timeout")

        with pytest.raises(RegulationStoreUnavailableError) as exc_info:
            regulation_store.snapshot()
        assert exc_info.value.retryable is True

        regulation_store.mark_available()
        assert regulation_store.snapshot().version == REGISTER_VERSION


# =============================================================================
# Sources
# =============================================================================


class TestSources:
    """Loading a version from a file or an HTTP endpoint."""

    def test_parse_bare_list(self) -> None:
        version, records = parse_register_payload([EXPORT_RECORD], default_version="fallback")

        assert version == "fallback"
        assert records[0].id == "UK_uksi_2015_51"

    def test_parse_invalid_record(self) -> None:
        with pytest.raises(RegulationStoreUnavailableError) as exc_info:
            parse_register_payload({"regulations": [{"id": "R-1"}]}, default_version="v")

        assert exc_info.value.details["reason"] == "invalid_records"

    @pytest.mark.asyncio
    async def test_json_file_source(self, tmp_path: Path) -> None:
        path = tmp_path / "register.json"
        path.write_text(json.dumps({"version": "2024.3", "regulations": [EXPORT_RECORD]}), encoding="utf-8")
        store = RegulationStore()

        snapshot = await store.load_from(JsonFileRegulationSource(path))

        assert snapshot.version == "2024.3"
        assert store.snapshot().get("UK_uksi_2015_51") is not None

    @pytest.mark.asyncio
    async def test_unreadable_file(self, tmp_path: Path) -> None:
        path = tmp_path / "register.json"
        path.write_text("{not json", encoding="utf-8")

        with pytest.raises(RegulationStoreUnavailableError):
            await JsonFileRegulationSource(path).fetch()

    @pytest.mark.asyncio
    async def test_http_source_uses_etag_as_version(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json=[EXPORT_RECORD], headers={"etag": "abc123"})

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            source = HttpRegulationSource("http://register.test/export", client=client)
            version, records = await source.fetch()

        assert version == "abc123"
        assert [r.id for r in records] == ["UK_uksi_2015_51"]

    @pytest.mark.asyncio
    async def test_http_error_status(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(503)

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            source = HttpRegulationSource("http://register.test/export", client=client)
            with pytest.raises(RegulationStoreUnavailableError) as exc_info:
                await source.fetch()

        assert exc_info.value.details["status_code"] == 503

    @pytest.mark.asyncio
    async def test_http_malformed_body(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, text="<html>maintenance</html>")

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            source = HttpRegulationSource("http://register.test/export", client=client)
            with pytest.raises(RegulationStoreUnavailableError) as exc_info:
                await source.fetch()

        assert exc_info.value.details["reason"] == "malformed_payload"
        assert exc_info.value.retryable is True

    @pytest.mark.asyncio
    async def test_http_unreachable(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            source = HttpRegulationSource("http://register.test/export", max_retries=1, client=client)
            with pytest.raises(RegulationStoreUnavailableError) as exc_info:
                await source.fetch()

        assert exc_info.value.details["reason"] == "fetch_failed"

    def test_source_from_settings_prefers_url(self, tmp_path: Path) -> None:
        both = RegulationSourceSettings(url="http://register.test/export", path=tmp_path / "r.json")
        file_only = RegulationSourceSettings(path=tmp_path / "r.json")

        assert isinstance(source_from_settings(both), HttpRegulationSource)
        assert isinstance(source_from_settings(file_only), JsonFileRegulationSource)
        assert source_from_settings(RegulationSourceSettings()) is None
