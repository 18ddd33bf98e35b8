"""Observable feed state: connection flag plus replay/speed control."""

from __future__ import annotations

import logging
from collections.abc import Callable
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)

StateListener = Callable[[dict[str, Any]], None]

# Wire key -> attribute name
_WIRE_KEYS: dict[str, str] = {
    "connected": "connected",
    "replaySupported": "replay_supported",
    "replay": "replay",
    "clear": "clear",
    "time": "time",
    "speed": "speed",
}


class ReplayMode(str, Enum):
    LIVE = "live"
    REPLAYING = "replaying"
    PAUSED = "paused"
    CLEARED = "cleared"


class FeedState:
    """Locally observable state of a feed.

    Updated by partial patches with merge semantics: keys present in a
    patch overwrite, absent keys are retained. Patches come from the
    transport (connection flag, server ``state`` channel) and from the
    local replay control operations.
    """

    def __init__(self) -> None:
        self.connected: bool = False
        self.replay_supported: bool | None = None  # Announced by the server after connect
        self.replay: bool = False
        self.clear: bool = False
        self.time: int = 0
        self.speed: float = 0
        self.on_change: StateListener | None = None
        self._listeners: list[StateListener] = []

    @property
    def mode(self) -> ReplayMode:
        if self.clear:
            return ReplayMode.CLEARED
        if self.replay:
            return ReplayMode.REPLAYING if self.speed > 0 else ReplayMode.PAUSED
        return ReplayMode.LIVE

    def add_listener(self, listener: StateListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: StateListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def apply(self, patch: dict[str, Any]) -> None:
        """Merge a wire-form patch and notify observers with it."""
        for key, value in patch.items():
            attr = _WIRE_KEYS.get(key)
            if attr is None:
                logger.debug("Ignoring unknown state key %r", key)
                continue
            setattr(self, attr, value)

        observers = list(self._listeners)
        if self.on_change is not None:
            observers.insert(0, self.on_change)
        for observer in observers:
            try:
                observer(patch)
            except Exception:
                logger.exception("State listener failed")

    def snapshot(self) -> dict[str, Any]:
        """Current state in wire form."""
        return {key: getattr(self, attr) for key, attr in _WIRE_KEYS.items()}

    def __repr__(self) -> str:
        return f"FeedState({self.snapshot()!r}, mode={self.mode.value})"
