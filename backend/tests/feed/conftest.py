"""Fixtures for feed tests.

``RecordingTransport`` stands in for the push bus: it records every
published message and lets tests drive connection transitions and inbound
data by hand. The scheduler runs in manual mode so each test decides where
tick boundaries are.
"""

import copy

import pytest

from pushfeed.feed import Feed
from pushfeed.interface import BaseTransport, ConnectionState
from pushfeed.scheduler import TickScheduler


class RecordingTransport(BaseTransport):
    """In-memory transport that records outbound traffic."""

    def __init__(self, auto_connect: bool = True) -> None:
        super().__init__()
        self.auto_connect = auto_connect
        self.sent: list[tuple[str, dict]] = []
        self.connect_calls = 0

    def connect(self, config=None) -> None:
        self._connect_called = True
        self.connect_calls += 1
        if self.auto_connect:
            self.go_online()

    def disconnect(self) -> None:
        self._set_connection_state(ConnectionState.DISCONNECTED)

    def go_online(self) -> None:
        self._set_connection_state(ConnectionState.CONNECTING)
        self.handle_message("control", {"successful": True})

    def drop(self) -> None:
        self._set_connection_state(ConnectionState.DISCONNECTED)

    def _send(self, channel: str, payload: dict) -> None:
        self.sent.append((channel, copy.deepcopy(payload)))

    def messages(self, channel: str = "sub") -> list[dict]:
        return [payload for c, payload in self.sent if c == channel]

    def push(self, header, rows, time_series: bool = False) -> None:
        """Deliver one inbound data batch built from row lists."""
        values = [value for row in rows for value in row]
        channel = "timeSeriesData" if time_series else "data"
        self.handle_message(channel, [header, values])


class Collector:
    """Event callback that records every batch it receives."""

    def __init__(self) -> None:
        self.calls: list[list] = []

    def __call__(self, batch) -> None:
        self.calls.append(batch)

    @property
    def records(self) -> list:
        return [record for batch in self.calls for record in batch]


@pytest.fixture
def scheduler():
    return TickScheduler(autorun=False)


@pytest.fixture
def transport():
    return RecordingTransport()


@pytest.fixture
def feed(transport, scheduler):
    return Feed(transport, scheduler)


@pytest.fixture
def connected_feed(feed, transport, scheduler):
    """Feed that has connected and sent its initial reset; recorded traffic cleared."""
    feed.connect()
    scheduler.run_until_idle()
    transport.sent.clear()
    return feed


@pytest.fixture
def collector():
    return Collector()


@pytest.fixture
def lazy_transport():
    """Transport that stays disconnected until the test calls go_online()."""
    return RecordingTransport(auto_connect=False)
