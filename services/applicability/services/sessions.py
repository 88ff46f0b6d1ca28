"""
Progressive Sessions
====================

Supersession for progressive re-querying: each attribute edit starts a
new request for its session, the previous in-flight request is
cancelled, and a request that finishes after a newer one started never
returns its (stale) result.

Version: 0.1.0
"""

import asyncio
import itertools
import time
from collections import OrderedDict
from collections.abc import Awaitable, Callable
from typing import TypeVar

from services.applicability.errors import SupersededRequestError
from services.applicability.services.pipeline import diff_match_results
from shared.logging import get_logger
from shared.models.matching import MatchResult, ResultDiff


logger = get_logger(__name__)

T = TypeVar("T")


class ProgressiveSessionManager:
    """
    Tracks the newest request token and last delivered result per session.

    Sessions idle for longer than ``idle_ttl_seconds`` are forgotten; the
    next request for a forgotten session diffs against nothing.
    """

    def __init__(
        self,
        idle_ttl_seconds: float = 7200,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.idle_ttl_seconds = idle_ttl_seconds
        self._clock = clock
        self._tokens = itertools.count(1)
        self._latest: dict[str, int] = {}
        self._tasks: dict[str, asyncio.Task] = {}
        self._delivered: dict[str, MatchResult] = {}
        self._last_seen: OrderedDict[str, float] = OrderedDict()

    def is_current(self, session_id: str, token: int) -> bool:
        return self._latest.get(session_id) == token

    def _touch(self, session_id: str) -> None:
        now = self._clock()
        self._last_seen[session_id] = now
        self._last_seen.move_to_end(session_id)
        self._expire(now)

    def _expire(self, now: float) -> None:
        """Forget idle sessions, oldest first; sessions with work in flight are kept."""
        cutoff = now - self.idle_ttl_seconds
        expired = []
        for session_id, seen in self._last_seen.items():
            if seen > cutoff:
                break
            task = self._tasks.get(session_id)
            if task is None or task.done():
                expired.append(session_id)
        for session_id in expired:
            self.end(session_id)
        if expired:
            logger.debug("progressive_sessions_expired", count=len(expired))

    async def submit(self, session_id: str, work: Callable[[], Awaitable[T]]) -> T:
        """
        Run work as the session's newest request.

        Raises:
            SupersededRequestError: a newer request for the session started
                before this one finished.
        """
        token = next(self._tokens)
        self._latest[session_id] = token
        self._touch(session_id)

        previous = self._tasks.get(session_id)
        if previous is not None and not previous.done():
            previous.cancel()
            logger.debug("progressive_request_cancelled", session_id=session_id)

        task = asyncio.ensure_future(work())
        self._tasks[session_id] = task
        try:
            result = await task
        except asyncio.CancelledError:
            if not self.is_current(session_id, token):
                raise SupersededRequestError(session_id) from None
            raise
        finally:
            if self._tasks.get(session_id) is task:
                del self._tasks[session_id]

        if not self.is_current(session_id, token):
            logger.info("progressive_result_discarded", session_id=session_id, token=token)
            raise SupersededRequestError(session_id)
        return result

    def deliver(self, session_id: str, result: MatchResult) -> ResultDiff:
        """Record the result sent to the session and diff it against the last one."""
        diff = diff_match_results(self._delivered.get(session_id), result)
        self._delivered[session_id] = result
        self._touch(session_id)
        return diff

    def end(self, session_id: str) -> None:
        task = self._tasks.pop(session_id, None)
        if task is not None and not task.done():
            task.cancel()
        self._latest.pop(session_id, None)
        self._delivered.pop(session_id, None)
        self._last_seen.pop(session_id, None)

    @property
    def active_sessions(self) -> int:
        return len(self._latest)
