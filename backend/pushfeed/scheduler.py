"""Explicit next-tick task queue used for all debouncing."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable

logger = logging.getLogger(__name__)

Task = Callable[[], None]


class TickScheduler:
    """Single-threaded queue of tasks that run once before the next tick.

    A task is held at most once while pending, so any number of
    ``schedule(flush)`` calls made between two ticks result in a single
    ``flush()``. The pending set is cleared before the tasks run; a task
    scheduled while a drain is in progress waits for the following tick.

    With ``autorun`` and a running asyncio loop, the scheduler requests one
    drain per tick through ``loop.call_soon``. Without a loop (or with
    ``autorun=False``) the owner drives it by calling ``run_pending()``.
    """

    def __init__(
        self,
        loop: asyncio.AbstractEventLoop | None = None,
        autorun: bool = True,
    ) -> None:
        self._loop = loop
        self._autorun = autorun
        self._pending: dict[Task, None] = {}  # Ordered set
        self._drain_requested = False

    def schedule(self, task: Task) -> bool:
        """Queue a task for the next tick. Returns False if already pending."""
        if task in self._pending:
            return False
        self._pending[task] = None
        self._request_drain()
        return True

    @property
    def pending(self) -> int:
        return len(self._pending)

    def run_pending(self) -> int:
        """Run one tick: every task pending right now. Returns the count run."""
        self._drain_requested = False
        tasks = list(self._pending)
        self._pending.clear()
        for task in tasks:
            try:
                task()
            except Exception:
                logger.exception("Scheduled task %r failed", task)
        if self._pending:
            self._request_drain()
        return len(tasks)

    def run_until_idle(self, max_ticks: int = 100) -> int:
        """Run ticks until nothing is pending. Returns the number of ticks."""
        ticks = 0
        while self._pending and ticks < max_ticks:
            self.run_pending()
            ticks += 1
        if self._pending:
            logger.warning("Scheduler still busy after %d ticks", ticks)
        return ticks

    def _request_drain(self) -> None:
        if self._drain_requested or not self._autorun:
            return
        loop = self._loop
        if loop is None:
            try:
                loop = asyncio.get_running_loop()
            except RuntimeError:
                return  # No loop: drained manually via run_pending()
        self._drain_requested = True
        loop.call_soon(self.run_pending)
