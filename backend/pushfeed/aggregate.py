"""Aggregate subscription table: merged interest of all handles per (type, symbol)."""

from __future__ import annotations

import math
from collections.abc import Iterator
from typing import TYPE_CHECKING

from .models import EventRecord, SubKey

if TYPE_CHECKING:
    from .subscription import Subscription


class AggregateItem:
    """Merged interest in one regular (type, symbol) pair.

    ``listeners`` maps each interested handle to the fromTime it requested;
    its size is the reference count. ``last_event`` caches the latest record
    for instant replay to late joiners.
    """

    __slots__ = ("listeners", "last_event")

    def __init__(self) -> None:
        self.listeners: dict[Subscription, float] = {}
        self.last_event: EventRecord | None = None

    def store(self, record: EventRecord) -> None:
        self.last_event = record

    def cached_events(self) -> list[EventRecord]:
        return [self.last_event] if self.last_event is not None else []


class TimeSeriesAggregateItem(AggregateItem):
    """Merged interest in one time-series (type, symbol) pair.

    ``from_time`` is always the minimum fromTime over the listeners.
    ``events`` caches records by index; the last write per index wins.
    """

    __slots__ = ("events", "from_time")

    def __init__(self) -> None:
        super().__init__()
        self.events: dict[int, EventRecord] = {}
        self.from_time: float = math.inf

    def store(self, record: EventRecord) -> None:
        self.events[record.index] = record

    def cached_events(self) -> list[EventRecord]:
        return list(self.events.values())

    def recompute_bound(self) -> float:
        """Minimum fromTime over the current listeners (inf if none)."""
        return min(self.listeners.values(), default=math.inf)

    def prune(self, bound: float) -> int:
        """Drop cached events older than bound. Returns the number dropped."""
        stale = [i for i, e in self.events.items() if e.time is None or e.time < bound]
        for index in stale:
            del self.events[index]
        return len(stale)


class SubscriptionTable:
    """Aggregate items keyed by SubKey. One table per subscription kind."""

    def __init__(self, time_series: bool = False) -> None:
        self.time_series = time_series
        self._items: dict[SubKey, AggregateItem] = {}

    def get(self, key: SubKey) -> AggregateItem | None:
        return self._items.get(key)

    def create(self, key: SubKey) -> AggregateItem:
        item = TimeSeriesAggregateItem() if self.time_series else AggregateItem()
        self._items[key] = item
        return item

    def remove(self, key: SubKey) -> None:
        self._items.pop(key, None)

    def items(self) -> Iterator[tuple[SubKey, AggregateItem]]:
        return iter(list(self._items.items()))

    def by_type(self) -> dict[str, dict[str, AggregateItem]]:
        """Two-level view: type -> symbol -> item."""
        result: dict[str, dict[str, AggregateItem]] = {}
        for key, item in self._items.items():
            result.setdefault(key.event_type, {})[key.symbol] = item
        return result

    def __contains__(self, key: SubKey) -> bool:
        return key in self._items

    def __len__(self) -> int:
        return len(self._items)
