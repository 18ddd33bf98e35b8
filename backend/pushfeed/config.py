"""Feed configuration from environment variables."""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass, replace
from typing import Any

logger = logging.getLogger(__name__)

DEFAULT_MAX_MESSAGE_SIZE = 2**22
DEFAULT_SIM_INTERVAL = 0.5


@dataclass(frozen=True, slots=True)
class FeedConfig:
    """Connection settings.

    - url: push-bus websocket URL; empty means use the in-process simulator
    - auth_token: sent with the handshake when set
    - log_level: level for the pushfeed loggers, None leaves logging alone
    - max_message_size: websocket frame limit in bytes
    - sim_interval: simulator tick interval in seconds
    """

    url: str = ""
    auth_token: str | None = None
    log_level: str | None = None
    max_message_size: int = DEFAULT_MAX_MESSAGE_SIZE
    sim_interval: float = DEFAULT_SIM_INTERVAL

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> FeedConfig:
        env = os.environ if environ is None else environ
        return cls(
            url=env.get("PUSHFEED_URL", "").strip(),
            auth_token=env.get("PUSHFEED_AUTH_TOKEN", "").strip() or None,
            log_level=env.get("PUSHFEED_LOG_LEVEL", "").strip() or None,
            max_message_size=_number(env, "PUSHFEED_MAX_MESSAGE_SIZE", int, DEFAULT_MAX_MESSAGE_SIZE),
            sim_interval=_number(env, "PUSHFEED_SIM_INTERVAL", float, DEFAULT_SIM_INTERVAL),
        )

    def merged(self, overrides: Any) -> FeedConfig:
        """Apply ``connect()`` arguments: a URL string or a mapping of fields."""
        if overrides is None:
            return self
        if isinstance(overrides, str):
            return replace(self, url=overrides)
        if isinstance(overrides, FeedConfig):
            return overrides
        if isinstance(overrides, Mapping):
            known = {k: v for k, v in overrides.items() if k in self.__dataclass_fields__}
            unknown = set(overrides) - set(known)
            if unknown:
                logger.warning("Ignoring unknown config keys: %s", ", ".join(sorted(unknown)))
            return replace(self, **known)
        logger.warning("Ignoring config of unsupported type %s", type(overrides).__name__)
        return self


def _number(env: Mapping[str, str], name: str, kind: type, default: Any) -> Any:
    raw = env.get(name, "").strip()
    if not raw:
        return default
    try:
        return kind(raw)
    except ValueError:
        logger.warning("Invalid %s=%r, using %s", name, raw, default)
        return default
