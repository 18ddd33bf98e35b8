"""Factory for creating feeds and their transports."""

from __future__ import annotations

import logging

from .config import FeedConfig
from .feed import Feed
from .interface import FeedTransport
from .scheduler import TickScheduler

logger = logging.getLogger(__name__)


def create_transport(config: FeedConfig) -> FeedTransport:
    """Create the transport selected by the configuration.

    - url set and non-empty -> WebSocketTransport (real push bus)
    - otherwise -> SimulatorTransport (in-process GBM feed)

    Returns an unconnected transport; it connects on first use.
    """
    if config.url:
        from .websocket_client import WebSocketTransport

        logger.info("Feed transport: websocket %s", config.url)
        return WebSocketTransport(config)
    else:
        from .simulator import SimulatorTransport

        logger.info("Feed transport: GBM simulator")
        return SimulatorTransport(interval=config.sim_interval)


def create_feed(config: FeedConfig | None = None, scheduler: TickScheduler | None = None) -> Feed:
    """Create a feed configured from ``config`` or the environment."""
    config = config or FeedConfig.from_env()
    feed = Feed(create_transport(config), scheduler)
    if config.log_level:
        feed.set_log_level(config.log_level)
    return feed
