"""
In-flight query deduplication.

When several requests ask for the same data at the same time (role lookups
on page load are the usual case) only one backend call runs; every caller
awaits the same task and gets the same result or the same exception.
"""

import asyncio
from typing import Any, Awaitable, Callable, Dict, TypeVar

import structlog

logger = structlog.get_logger(__name__)

T = TypeVar("T")


class QueryDeduplicator:
    def __init__(self) -> None:
        self._pending: Dict[str, asyncio.Future[Any]] = {}

    async def deduplicate(self, key: str, query_fn: Callable[[], Awaitable[T]]) -> T:
        existing = self._pending.get(key)
        if existing is not None:
            logger.debug("Query deduplicated - using existing request", key=key)
            # shield so one cancelled waiter does not cancel the shared call
            return await asyncio.shield(existing)

        task = asyncio.ensure_future(query_fn())
        self._pending[key] = task
        task.add_done_callback(lambda _: self._release(key, task))
        return await asyncio.shield(task)

    def _release(self, key: str, task: "asyncio.Future[Any]") -> None:
        if self._pending.get(key) is task:
            del self._pending[key]
        if not task.cancelled() and task.exception() is not None:
            logger.debug("Deduplicated query failed", key=key, error=str(task.exception()))

    def is_pending(self, key: str) -> bool:
        return key in self._pending

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def clear(self, key: str) -> None:
        self._pending.pop(key, None)

    def clear_all(self) -> None:
        self._pending.clear()
