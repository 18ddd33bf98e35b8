"""Subscription registry: merges handle interest, syncs it with the server, fans out events."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Any

from .aggregate import SubscriptionTable, TimeSeriesAggregateItem
from .diff import PendingDiff, build_reset_message, wire_time
from .interface import CONTROL_CHANNEL, SUB_CHANNEL, FeedTransport
from .models import EventRecord, SubKey, parse_time
from .scheduler import TickScheduler
from .schema import FeedDataError, SchemaCache
from .state import FeedState
from .subscription import Subscription, TimeSeriesSubscription

logger = logging.getLogger(__name__)


class SubscriptionRegistry:
    """Aggregate subscription table shared by all handles of one feed.

    Owns three cycles, all driven by the TickScheduler:

    - Diff flush: handle mutations mark pending add/remove entries; once per
      tick the minimal ``sub`` message is published. After a (re)connect the
      whole table is sent as a ``reset`` message instead and pending entries
      are discarded.
    - Event fan-out: decoded records update the cached state of their
      aggregate item and are routed to every handle on it.
    - Replay control: local replay/speed intent is mirrored to the server
      and reissued after a reconnect.
    """

    def __init__(self, transport: FeedTransport, scheduler: TickScheduler | None = None) -> None:
        self.transport = transport
        self.scheduler = scheduler or TickScheduler()
        self.state = FeedState()
        self.schemas = SchemaCache()
        self._tables = {
            False: SubscriptionTable(time_series=False),
            True: SubscriptionTable(time_series=True),
        }
        self._diff = PendingDiff()
        self._resync = False

        transport.on_state_change = self._on_state_change
        transport.on_data = self._on_data

    def table(self, time_series: bool = False) -> SubscriptionTable:
        return self._tables[time_series]

    @property
    def pending_diff(self) -> PendingDiff:
        return self._diff

    # --- Per-pair primitives ---

    def subscribe(self, handle: Subscription, event_type: str, symbol: str) -> None:
        """Register handle interest in (event_type, symbol).

        Time-series handles subscribe at their current ``from_time``.
        """
        time_series = handle.time_series
        key = SubKey(event_type, symbol)
        table = self._tables[time_series]
        item = table.get(key)
        if item is not None and handle in item.listeners:
            return

        updated = False
        if item is None:
            item = table.create(key)
            updated = True
        from_time = handle.from_time if isinstance(handle, TimeSeriesSubscription) else 0
        item.listeners[handle] = from_time
        if isinstance(item, TimeSeriesAggregateItem) and from_time < item.from_time:
            item.from_time = from_time
            updated = True

        if updated:
            if isinstance(item, TimeSeriesAggregateItem):
                self._diff.mark_add(key, True, item.from_time)
            else:
                self._diff.mark_add(key)
            self.scheduler.schedule(self._flush)

        for record in item.cached_events():
            self._deliver(handle, record)

    def unsubscribe(self, handle: Subscription, event_type: str, symbol: str) -> None:
        """Drop handle interest in (event_type, symbol)."""
        time_series = handle.time_series
        key = SubKey(event_type, symbol)
        table = self._tables[time_series]
        handle._drop_queued(event_type, symbol)
        item = table.get(key)
        if item is None or handle not in item.listeners:
            return
        del item.listeners[handle]

        if not item.listeners:
            table.remove(key)
            self._diff.mark_remove(key, time_series)
            self.scheduler.schedule(self._flush)
        elif isinstance(item, TimeSeriesAggregateItem):
            bound = item.recompute_bound()
            if bound != item.from_time:
                item.from_time = bound
                self._diff.mark_add(key, True, bound)
                dropped = item.prune(bound)
                logger.debug(
                    "%s %s bound raised to %s, dropped %d cached events",
                    event_type,
                    symbol,
                    wire_time(bound),
                    dropped,
                )
                self.scheduler.schedule(self._flush)

    # --- Handle operations ---

    def add_symbols(self, handle: Subscription, symbols: Iterable[str]) -> None:
        for symbol in symbols:
            if symbol in handle._symbols:
                continue
            handle._symbols.add(symbol)
            for event_type in handle.types:
                self.subscribe(handle, event_type, symbol)

    def remove_symbols(self, handle: Subscription, symbols: Iterable[str]) -> None:
        for symbol in symbols:
            if symbol not in handle._symbols:
                continue
            handle._symbols.discard(symbol)
            for event_type in handle.types:
                self.unsubscribe(handle, event_type, symbol)

    def set_symbols(self, handle: Subscription, symbols: Iterable[str]) -> None:
        """Replace the handle's symbol set: removals first, then additions."""
        wanted = dict.fromkeys(symbols)
        removed = [s for s in handle._symbols if s not in wanted]
        added = [s for s in wanted if s not in handle._symbols]
        self.remove_symbols(handle, removed)
        self.add_symbols(handle, added)

    def set_from_time(self, handle: TimeSeriesSubscription, time: Any) -> None:
        """Re-subscribe every symbol of a time-series handle at a new bound."""
        from_time = parse_time(time)
        if from_time is None:
            logger.warning("setFromTime is ignored because of invalid time %r", time)
            return
        symbols = list(handle._symbols)
        self.remove_symbols(handle, symbols)
        handle.from_time = from_time
        self.add_symbols(handle, symbols)

    # --- Diff flush ---

    def _flush(self) -> None:
        self.transport.connect_if_needed()
        if not self.transport.connected:
            return  # Pending diff is kept; a reset supersedes it on connect
        if self._resync:
            self._resync = False
            self._diff.clear()
            self._restore_control()
            message = build_reset_message(self._tables[False], self._tables[True])
        else:
            message = self._diff.to_message()
            self._diff.clear()
        if message:
            self.transport.publish(SUB_CHANNEL, message)

    # --- Inbound ---

    def _on_state_change(self, patch: dict[str, Any]) -> None:
        if patch.get("connected"):
            self._resync = True
            self.scheduler.schedule(self._flush)
        self.state.apply(patch)

    def _on_data(self, batch: Any, time_series: bool) -> None:
        try:
            event_type, records = self.schemas.decode(batch, time_series)
        except FeedDataError as e:
            logger.warning("Dropping data batch: %s", e)
            return
        table = self._tables[time_series]
        for record in records:
            item = table.get(record.key)
            if item is None:
                continue
            try:
                item.store(record)
            except Exception:
                logger.exception("Failed to apply %s event for %s", event_type, record.symbol)
                continue
            for handle in list(item.listeners):
                self._deliver(handle, record)

    def _deliver(self, handle: Subscription, record: EventRecord) -> None:
        try:
            handle._process_event(record)
        except Exception:
            logger.exception("Failed to deliver %s event to %r", record.event_type, handle)

    # --- Replay control ---

    def replay(self, time: Any, speed: float = 1) -> None:
        when = parse_time(time)
        if when is None:
            logger.warning("replay is ignored because of invalid time %r", time)
            return
        self._change_state({"replay": True, "clear": False, "time": when, "speed": speed})

    def set_speed(self, speed: float) -> None:
        self._change_state({"replay": True, "clear": False, "speed": speed})

    def pause(self) -> None:
        self.set_speed(0)

    def stop_and_resume(self) -> None:
        self._change_state({"replay": False, "clear": False, "speed": 0})

    def stop_and_clear(self) -> None:
        self._change_state({"replay": False, "clear": True, "speed": 0})

    def _change_state(self, patch: dict[str, Any]) -> None:
        self._on_state_change(patch)
        self._send_control_for(patch, signal_resume=True)

    def _restore_control(self) -> None:
        """Reissue the last intended replay state after a (re)connect."""
        self._send_control_for(self.state.snapshot(), signal_resume=False)

    def _send_control_for(self, patch: dict[str, Any], signal_resume: bool) -> None:
        state = self.state
        if state.clear:
            self._send_control("stopAndClear")
        elif state.replay:
            if "time" in patch:
                self._send_control("replay", state.time, state.speed)
            else:
                self._send_control("setSpeed", state.speed)
        elif signal_resume:
            self._send_control("stopAndResume")

    def _send_control(self, op: str, *args: Any) -> None:
        self.transport.connect_if_needed()
        if not self.transport.connected:
            logger.debug("Control %s deferred until connected", op)
            return
        self.transport.publish(CONTROL_CHANNEL, {"op": op, "args": list(args)})
