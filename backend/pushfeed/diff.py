"""Pending subscription diff and outbound ``sub`` message building."""

from __future__ import annotations

import math
from typing import Any

from .aggregate import SubscriptionTable, TimeSeriesAggregateItem
from .models import SubKey


def wire_time(from_time: float) -> int | None:
    """fromTime as sent on the wire; an unbounded request goes out as null."""
    return None if math.isinf(from_time) else int(from_time)


def _symbols_by_type(keys) -> dict[str, list[str]]:
    result: dict[str, list[str]] = {}
    for key in keys:
        result.setdefault(key.event_type, []).append(key.symbol)
    return {t: sorted(symbols) for t, symbols in result.items()}


def _time_series_by_type(bounds: dict[SubKey, float]) -> dict[str, list[dict[str, Any]]]:
    result: dict[str, list[dict[str, Any]]] = {}
    for key in sorted(bounds, key=lambda k: (k.event_type, k.symbol)):
        result.setdefault(key.event_type, []).append(
            {"symbol": key.symbol, "fromTime": wire_time(bounds[key])}
        )
    return result


class PendingDiff:
    """Accumulated add/remove changes since the last flush.

    A key is never in both an add and a remove set of the same kind: a later
    mutation cancels the earlier pending one.
    """

    def __init__(self) -> None:
        self.add: set[SubKey] = set()
        self.remove: set[SubKey] = set()
        self.add_time_series: dict[SubKey, float] = {}
        self.remove_time_series: set[SubKey] = set()

    def mark_add(self, key: SubKey, time_series: bool = False, from_time: float = math.inf) -> None:
        if time_series:
            self.add_time_series[key] = from_time
            self.remove_time_series.discard(key)
        else:
            self.add.add(key)
            self.remove.discard(key)

    def mark_remove(self, key: SubKey, time_series: bool = False) -> None:
        if time_series:
            self.remove_time_series.add(key)
            self.add_time_series.pop(key, None)
        else:
            self.remove.add(key)
            self.add.discard(key)

    @property
    def is_empty(self) -> bool:
        return not (self.add or self.remove or self.add_time_series or self.remove_time_series)

    def clear(self) -> None:
        self.add = set()
        self.remove = set()
        self.add_time_series = {}
        self.remove_time_series = set()

    def to_message(self) -> dict[str, Any]:
        """Message with only the non-empty sets; empty dict if nothing changed."""
        message: dict[str, Any] = {}
        if self.add:
            message["add"] = _symbols_by_type(self.add)
        if self.remove:
            message["remove"] = _symbols_by_type(self.remove)
        if self.add_time_series:
            message["addTimeSeries"] = _time_series_by_type(self.add_time_series)
        if self.remove_time_series:
            message["removeTimeSeries"] = _symbols_by_type(self.remove_time_series)
        return message


def build_reset_message(
    regular: SubscriptionTable,
    time_series: SubscriptionTable,
) -> dict[str, Any]:
    """Full-table message replacing everything the server holds."""
    message: dict[str, Any] = {"reset": True}
    regular_keys = [key for key, _ in regular.items()]
    if regular_keys:
        message["add"] = _symbols_by_type(regular_keys)
    bounds = {
        key: item.from_time
        for key, item in time_series.items()
        if isinstance(item, TimeSeriesAggregateItem)
    }
    if bounds:
        message["addTimeSeries"] = _time_series_by_type(bounds)
    return message
