"""Abstract interface for push-bus transports."""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from collections.abc import Callable
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)

# Inbound channels
CONTROL_CHANNEL = "control"
STATE_CHANNEL = "state"
DATA_CHANNEL = "data"
TIME_SERIES_DATA_CHANNEL = "timeSeriesData"

# Outbound channels (CONTROL_CHANNEL also carries replay commands out)
SUB_CHANNEL = "sub"

StateChangeHandler = Callable[[dict[str, Any]], None]
DataHandler = Callable[[Any, bool], None]


class TransportError(RuntimeError):
    """Raised when a transport is used in a state that does not allow it."""


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


class FeedTransport(ABC):
    """Contract for the connection to the push bus.

    The registry attaches itself through ``on_state_change`` (receives
    partial state patches, including ``{"connected": bool}`` transitions)
    and ``on_data`` (receives ``(batch, time_series)``).

    Lifecycle:
        transport.on_state_change = registry_state_handler
        transport.on_data = registry_data_handler
        transport.connect_if_needed()   # or connect(config) explicitly
        if transport.connected:
            transport.publish("sub", {...})
        transport.disconnect()

    There is no retry or backoff at this layer. A failed or lost connection
    surfaces as a transition to ``connected == False``.
    """

    on_state_change: StateChangeHandler | None = None
    on_data: DataHandler | None = None

    @abstractmethod
    def connect(self, config: Any = None) -> None:
        """Start connecting. Idempotent; ``config`` may update settings."""

    @abstractmethod
    def disconnect(self) -> None:
        """Drop the connection. Safe to call when not connected."""

    @abstractmethod
    def connect_if_needed(self) -> None:
        """Call ``connect()`` unless a connect was already requested."""

    @property
    @abstractmethod
    def connected(self) -> bool:
        """True once the handshake was acknowledged and until the connection drops."""

    @abstractmethod
    def publish(self, channel: str, payload: dict[str, Any]) -> None:
        """Send a message. Requires ``connected``; raises TransportError otherwise."""


class BaseTransport(FeedTransport):
    """Connection-state bookkeeping and inbound dispatch shared by transports.

    Subclasses move through DISCONNECTED -> CONNECTING -> CONNECTED ->
    DISCONNECTED via ``_set_connection_state`` and feed inbound envelopes
    to ``handle_message``; they implement ``_send`` for outbound traffic.
    """

    def __init__(self) -> None:
        self.on_state_change = None
        self.on_data = None
        self._state = ConnectionState.DISCONNECTED
        self._connect_called = False
        self._ever_connected = False
        self.reconnect_count = 0

    @property
    def connection_state(self) -> ConnectionState:
        return self._state

    @property
    def connected(self) -> bool:
        return self._state is ConnectionState.CONNECTED

    def connect_if_needed(self) -> None:
        if not self._connect_called:
            self.connect()

    def publish(self, channel: str, payload: dict[str, Any]) -> None:
        if not self.connected:
            raise TransportError(f"Cannot publish to {channel}: not connected")
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug("Publishing to %s: %s", channel, json.dumps(payload))
        self._send(channel, payload)

    @abstractmethod
    def _send(self, channel: str, payload: dict[str, Any]) -> None:
        """Deliver an outbound message. Called only while connected."""

    # --- Inbound ---

    def handle_message(self, channel: str, data: Any) -> None:
        """Route one inbound message by channel."""
        if channel == CONTROL_CHANNEL:
            self._on_control(data)
        elif channel == STATE_CHANNEL:
            logger.debug("Received state %s", data)
            if isinstance(data, dict):
                self._notify_state(data)
            else:
                logger.warning("Ignoring non-object state message: %r", data)
        elif channel == DATA_CHANNEL:
            logger.debug("Received data %s", data)
            self._notify_data(data, False)
        elif channel == TIME_SERIES_DATA_CHANNEL:
            logger.debug("Received time series data %s", data)
            self._notify_data(data, True)
        else:
            logger.warning("Ignoring message on unknown channel %r", channel)

    def _on_control(self, data: Any) -> None:
        """Handshake/connect acknowledgement: ``{"successful": bool}``."""
        successful = isinstance(data, dict) and data.get("successful") is True
        if not successful:
            logger.info("Handshake rejected or connection unsuccessful: %s", data)
        if successful:
            self._set_connection_state(ConnectionState.CONNECTED)
        elif self._state is not ConnectionState.DISCONNECTED:
            self._set_connection_state(ConnectionState.DISCONNECTED)

    # --- State transitions ---

    def _set_connection_state(self, state: ConnectionState) -> None:
        previous = self._state
        if previous is state:
            return
        self._state = state
        logger.debug("Transport state %s -> %s", previous.value, state.value)
        if state is ConnectionState.CONNECTED:
            if self._ever_connected:
                self.reconnect_count += 1
                logger.info("Connection re-established, resync required")
            else:
                logger.info("Connection established")
            self._ever_connected = True
            self._notify_state({"connected": True})
        elif previous is ConnectionState.CONNECTED:
            logger.info("Connection lost")
            self._notify_state({"connected": False})

    def _notify_state(self, patch: dict[str, Any]) -> None:
        if self.on_state_change is not None:
            self.on_state_change(patch)

    def _notify_data(self, data: Any, time_series: bool) -> None:
        if self.on_data is not None:
            self.on_data(data, time_series)
