"""Public feed object."""

from __future__ import annotations

import logging
from typing import Any

from .interface import FeedTransport
from .registry import SubscriptionRegistry
from .scheduler import TickScheduler
from .state import FeedState
from .subscription import Subscription, TimeSeriesSubscription
from .symbols import normalize_symbols

logger = logging.getLogger(__name__)

PACKAGE_LOGGER = "pushfeed"


class Feed:
    """Entry point for consumers of the push feed.

    Usage:
        feed = create_feed()
        sub = feed.create_subscription("Quote", "Trade")
        sub.on_event = lambda events: ...
        sub.add_symbols("AAPL", "MSFT")     # connects lazily on first flush
        ...
        sub.close()
        feed.disconnect()
    """

    def __init__(self, transport: FeedTransport, scheduler: TickScheduler | None = None) -> None:
        self._transport = transport
        self._registry = SubscriptionRegistry(transport, scheduler)

    @property
    def state(self) -> FeedState:
        return self._registry.state

    @property
    def registry(self) -> SubscriptionRegistry:
        return self._registry

    @property
    def transport(self) -> FeedTransport:
        return self._transport

    @property
    def scheduler(self) -> TickScheduler:
        return self._registry.scheduler

    def set_log_level(self, level: int | str) -> None:
        """Set the level of all pushfeed loggers ("debug" logs every payload)."""
        if isinstance(level, str):
            level = level.upper()
        try:
            logging.getLogger(PACKAGE_LOGGER).setLevel(level)
        except (ValueError, TypeError):
            logger.warning("Ignoring invalid log level %r", level)

    def connect(self, config: Any = None) -> None:
        self._transport.connect(config)

    def disconnect(self) -> None:
        self._transport.disconnect()

    def create_subscription(self, *types: str) -> Subscription:
        return Subscription(self._registry, normalize_symbols(*types))

    def create_time_series_subscription(self, *types: str) -> TimeSeriesSubscription:
        return TimeSeriesSubscription(self._registry, normalize_symbols(*types))

    # --- Replay control ---

    def replay(self, time: Any, speed: float = 1) -> None:
        """Replay history from ``time`` at ``speed`` (1 = real time)."""
        self._registry.replay(time, speed)

    def pause(self) -> None:
        self._registry.pause()

    def set_speed(self, speed: float) -> None:
        self._registry.set_speed(speed)

    def stop_and_resume(self) -> None:
        """Leave replay and return to live data."""
        self._registry.stop_and_resume()

    def stop_and_clear(self) -> None:
        """Leave replay and stop all data until the next replay or resume."""
        self._registry.stop_and_clear()
