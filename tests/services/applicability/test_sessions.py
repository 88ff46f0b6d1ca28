"""
Progressive Session Tests
=========================

Tests for request supersession and result diffs.

Version: 0.1.0
"""

import asyncio

import pytest

from services.applicability.errors import SupersededRequestError
from services.applicability.services.sessions import ProgressiveSessionManager
from shared.models.matching import MatchResult, RegulationMatch


def result_with(*regulation_ids: str) -> MatchResult:
    return MatchResult(
        profile_fingerprint="fp",
        store_version="v1",
        matches=[RegulationMatch(regulation_id=rid, confidence_score=0.5) for rid in regulation_ids],
    )


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def sessions() -> ProgressiveSessionManager:
    return ProgressiveSessionManager()


class TestSupersession:
    """Only the newest request per session returns."""

    @pytest.mark.asyncio
    async def test_single_request_returns(self, sessions: ProgressiveSessionManager) -> None:
        async def work() -> str:
            return "done"

        assert await sessions.submit("s1", work) == "done"

    @pytest.mark.asyncio
    async def test_newer_request_cancels_older(self, sessions: ProgressiveSessionManager) -> None:
        started = asyncio.Event()

        async def slow() -> str:
            started.set()
            await asyncio.sleep(10)
            return "old"

        async def fast() -> str:
            return "new"

        older = asyncio.create_task(sessions.submit("s1", slow))
        await started.wait()

        assert await sessions.submit("s1", fast) == "new"
        with pytest.raises(SupersededRequestError):
            await older

    @pytest.mark.asyncio
    async def test_sessions_are_independent(self, sessions: ProgressiveSessionManager) -> None:
        gate = asyncio.Event()

        async def gated() -> str:
            await gate.wait()
            return "first"

        async def quick() -> str:
            return "second"

        first = asyncio.create_task(sessions.submit("s1", gated))
        await asyncio.sleep(0)
        assert await sessions.submit("s2", quick) == "second"

        gate.set()
        assert await first == "first"

    @pytest.mark.asyncio
    async def test_work_errors_propagate(self, sessions: ProgressiveSessionManager) -> None:
        async def failing() -> str:
            raise ValueError("bad edit")

        with pytest.raises(ValueError):
            await sessions.submit("s1", failing)

    @pytest.mark.asyncio
    async def test_end_cancels_in_flight(self, sessions: ProgressiveSessionManager) -> None:
        started = asyncio.Event()

        async def slow() -> str:
            started.set()
            await asyncio.sleep(10)
            return "never"

        pending = asyncio.create_task(sessions.submit("s1", slow))
        await started.wait()

        sessions.end("s1")

        with pytest.raises(SupersededRequestError):
            await pending
        assert sessions.active_sessions == 0


class TestDiffs:
    """Diffs between delivered results."""

    def test_first_delivery_adds_everything(self, sessions: ProgressiveSessionManager) -> None:
        diff = sessions.deliver("s1", result_with("R-1", "R-2"))

        assert diff.added == ["R-1", "R-2"]
        assert diff.removed == []
        assert diff.total_changes == 2

    def test_subsequent_delivery(self, sessions: ProgressiveSessionManager) -> None:
        sessions.deliver("s1", result_with("R-1", "R-2"))

        diff = sessions.deliver("s1", result_with("R-2", "R-3"))

        assert diff.added == ["R-3"]
        assert diff.removed == ["R-1"]
        assert diff.unchanged_count == 1


class TestIdleExpiry:
    """Idle sessions are forgotten after the idle TTL."""

    @pytest.fixture
    def clock(self) -> FakeClock:
        return FakeClock()

    @pytest.fixture
    def expiring(self, clock: FakeClock) -> ProgressiveSessionManager:
        return ProgressiveSessionManager(idle_ttl_seconds=60, clock=clock)

    @pytest.mark.asyncio
    async def test_idle_session_is_forgotten(
        self,
        expiring: ProgressiveSessionManager,
        clock: FakeClock,
    ) -> None:
        async def work() -> str:
            return "done"

        await expiring.submit("s1", work)
        expiring.deliver("s1", result_with("R-1"))

        clock.now += 61
        await expiring.submit("s2", work)
        expiring.deliver("s2", result_with("R-2"))

        assert expiring.active_sessions == 1
        assert expiring.deliver("s1", result_with("R-1")).added == ["R-1"]

    def test_recent_session_is_kept(
        self,
        expiring: ProgressiveSessionManager,
        clock: FakeClock,
    ) -> None:
        expiring.deliver("s1", result_with("R-1"))

        clock.now += 30
        expiring.deliver("s2", result_with("R-2"))
        clock.now += 40
        expiring.deliver("s1", result_with("R-1", "R-3"))

        assert expiring.deliver("s2", result_with("R-2")).added == []

    @pytest.mark.asyncio
    async def test_in_flight_session_is_not_expired(
        self,
        expiring: ProgressiveSessionManager,
        clock: FakeClock,
    ) -> None:
        started = asyncio.Event()
        gate = asyncio.Event()

        async def gated() -> str:
            started.set()
            await gate.wait()
            return "slow"

        async def quick() -> str:
            return "quick"

        pending = asyncio.create_task(expiring.submit("s1", gated))
        await started.wait()

        clock.now += 120
        await expiring.submit("s2", quick)

        gate.set()
        assert await pending == "slow"
