"""Consumer-facing subscription handles."""

from __future__ import annotations

import logging
import math
from collections.abc import Callable, Iterable
from enum import Enum
from typing import TYPE_CHECKING, Any

from .models import EventRecord
from .symbols import normalize_symbols

if TYPE_CHECKING:
    from .registry import SubscriptionRegistry

logger = logging.getLogger(__name__)

EventCallback = Callable[[list[EventRecord]], None]


class HandleState(str, Enum):
    ACTIVE = "active"
    CLOSED = "closed"


class Subscription:
    """One logical consumer interest: a set of symbols for fixed event types.

    Symbol mutations are forwarded to the registry, which merges them with
    every other handle's interest. Records routed to this handle are
    accumulated per tick (latest record per symbol wins) and handed to
    ``on_event`` as one list, at most once per tick.

    After ``close()`` the handle is inert: every mutating method is a no-op.
    """

    time_series = False

    def __init__(self, registry: SubscriptionRegistry, types: Iterable[str]) -> None:
        self._registry = registry
        self.types: tuple[str, ...] = tuple(dict.fromkeys(types))
        self.on_event: EventCallback | None = None
        self._symbols: set[str] = set()
        self._queue: dict[tuple, EventRecord] = {}
        self._state = HandleState.ACTIVE

    @property
    def symbols(self) -> frozenset[str]:
        return frozenset(self._symbols)

    @property
    def closed(self) -> bool:
        return self._state is HandleState.CLOSED

    def add_symbols(self, *symbols: str | Iterable[str]) -> None:
        if self.closed:
            return
        self._registry.add_symbols(self, normalize_symbols(*symbols))

    def remove_symbols(self, *symbols: str | Iterable[str]) -> None:
        if self.closed:
            return
        self._registry.remove_symbols(self, normalize_symbols(*symbols))

    def set_symbols(self, *symbols: str | Iterable[str]) -> None:
        if self.closed:
            return
        self._registry.set_symbols(self, normalize_symbols(*symbols))

    def close(self) -> None:
        """Remove all symbols and make the handle inert. Idempotent."""
        if self.closed:
            return
        self._registry.remove_symbols(self, list(self._symbols))
        self._state = HandleState.CLOSED
        self._queue.clear()
        logger.debug("Closed subscription to %s", ", ".join(self.types))

    # --- Registry side ---

    def _accepts(self, record: EventRecord) -> bool:
        return True

    def _queue_key(self, record: EventRecord) -> tuple:
        return (record.event_type, record.symbol)

    def _process_event(self, record: EventRecord) -> None:
        """Accumulate a routed record for delivery on the next tick."""
        if not self._accepts(record):
            return
        self._queue[self._queue_key(record)] = record
        self._registry.scheduler.schedule(self._notify)

    def _drop_queued(self, event_type: str, symbol: str) -> None:
        for key in [k for k in self._queue if k[0] == event_type and k[1] == symbol]:
            del self._queue[key]

    def _notify(self) -> None:
        batch = list(self._queue.values())
        self._queue.clear()
        if not batch:
            return
        callback = self.on_event
        if callback is None:
            logger.debug("No callback for %d events on %r", len(batch), self)
            return
        try:
            callback(batch)
        except Exception:
            logger.exception("Event callback failed for %r", self)

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(types={list(self.types)}, "
            f"symbols={sorted(self._symbols)}, state={self._state.value})"
        )


class TimeSeriesSubscription(Subscription):
    """Subscription to time-ordered events from a lower time bound.

    Until ``set_from_time`` is called the bound is infinite and no records
    are delivered. Records are accumulated per (symbol, index) and filtered
    against this handle's own bound, which may be stricter than the
    aggregate bound shared with other handles.
    """

    time_series = True

    def __init__(self, registry: SubscriptionRegistry, types: Iterable[str]) -> None:
        super().__init__(registry, types)
        self.from_time: float = math.inf

    def set_from_time(self, time: Any) -> None:
        """Move the lower bound. Accepts epoch ms, ISO strings, or datetimes.

        An invalid value is logged and leaves the current bound unchanged.
        """
        if self.closed:
            return
        self._registry.set_from_time(self, time)

    def _accepts(self, record: EventRecord) -> bool:
        return record.time is not None and record.time >= self.from_time

    def _queue_key(self, record: EventRecord) -> tuple:
        return (record.event_type, record.symbol, record.index)
