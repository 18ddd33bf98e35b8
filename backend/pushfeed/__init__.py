"""Client-side subscription multiplexing for a real-time market data push feed.

Public API:
    Feed                     - Entry point: subscriptions, connection, replay control
    create_feed              - Factory that selects the websocket or simulator transport
    FeedConfig               - Connection settings (from environment by default)
    Subscription             - Handle for regular events of a symbol set
    TimeSeriesSubscription   - Handle for time-series events from a lower time bound
    EventRecord              - Immutable decoded event
    FeedState / ReplayMode   - Observable connection and replay state
    FeedTransport            - Abstract interface for push-bus transports
    TickScheduler            - Next-tick task queue used for debouncing
    change_attribute         - Symbol attribute mini-format helper
    create_stream_router     - FastAPI router factory for the SSE endpoint
"""

from .config import FeedConfig
from .factory import create_feed, create_transport
from .feed import Feed
from .interface import ConnectionState, FeedTransport, TransportError
from .models import EventRecord, SubKey
from .scheduler import TickScheduler
from .state import FeedState, ReplayMode
from .stream import create_stream_router
from .subscription import Subscription, TimeSeriesSubscription
from .symbols import change_attribute

__all__ = [
    "ConnectionState",
    "EventRecord",
    "Feed",
    "FeedConfig",
    "FeedState",
    "FeedTransport",
    "ReplayMode",
    "SubKey",
    "Subscription",
    "TickScheduler",
    "TimeSeriesSubscription",
    "TransportError",
    "change_attribute",
    "create_feed",
    "create_stream_router",
    "create_transport",
]
