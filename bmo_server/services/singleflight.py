"""Collapse concurrent identical upstream calls into one."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SingleFlight(Generic[T]):
    """At most one running producer per key; every concurrent caller shares its outcome.

    The producer runs as its own task, so a caller that goes away does not
    cancel the upstream call for the others. The registry entry is dropped by
    a done-callback attached before anyone awaits the task, which means it is
    gone by the time any waiter resumes — success or failure.
    """

    def __init__(self, name: str = "singleflight") -> None:
        self._name = name
        self._calls: dict[str, asyncio.Task[T]] = {}

    @property
    def in_flight(self) -> int:
        return len(self._calls)

    def is_in_flight(self, key: str) -> bool:
        return key in self._calls

    async def run(self, key: str, producer: Callable[[], Awaitable[T]]) -> tuple[T, bool]:
        """Run *producer* for *key* unless a call is already in flight.

        Returns ``(value, joined)`` where *joined* is True when this caller
        attached to a call started by someone else. Exceptions raised by the
        producer propagate to every caller.
        """
        task = self._calls.get(key)
        joined = task is not None
        if task is None:
            task = asyncio.ensure_future(producer())
            self._calls[key] = task
            task.add_done_callback(lambda t: self._finish(key, t))
        else:
            logger.debug("%s: joining in-flight call %s", self._name, key[:16])
        value = await asyncio.shield(task)
        return value, joined

    def _finish(self, key: str, task: asyncio.Task[T]) -> None:
        if self._calls.get(key) is task:
            del self._calls[key]
        if not task.cancelled():
            # Mark the exception retrieved in case every caller was cancelled.
            task.exception()
