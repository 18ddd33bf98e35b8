"""Websocket transport to a real push bus."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

from .config import FeedConfig
from .interface import BaseTransport, ConnectionState

logger = logging.getLogger(__name__)

HANDSHAKE_CHANNEL = "handshake"
AUTH_TOKEN_EXT = "com.devexperts.auth.AuthToken"


class WebSocketTransport(BaseTransport):
    """FeedTransport over a websocket carrying JSON envelopes.

    Every frame is ``{"channel": <name>, "data": <payload>}``. After the
    socket opens a ``handshake`` envelope is sent; the server acknowledges
    it on the ``control`` channel with ``{"successful": true}``, which moves
    the transport to CONNECTED. Outbound messages go through a queue drained
    by a single writer task, so publish() never blocks and keeps order.

    No reconnection: when the socket fails or closes the transport reports
    DISCONNECTED and stays there until connect() is called again.
    """

    def __init__(self, config: FeedConfig | None = None) -> None:
        super().__init__()
        self._config = config or FeedConfig()
        self._task: asyncio.Task | None = None
        self._closing: asyncio.Task | None = None
        self._outbox: asyncio.Queue | None = None

    @property
    def config(self) -> FeedConfig:
        return self._config

    def connect(self, config: Any = None) -> None:
        self._connect_called = True
        self._config = self._config.merged(config)
        if not self._config.url:
            logger.warning("No feed URL configured, working without connection")
            return
        if self._task is not None and not self._task.done():
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning("No running event loop, working without connection")
            return
        logger.info("Connecting with url: %s", self._config.url)
        self._outbox = asyncio.Queue()
        self._set_connection_state(ConnectionState.CONNECTING)
        self._task = loop.create_task(self._run(), name="pushfeed-websocket")

    def disconnect(self) -> None:
        if self._task is not None:
            logger.info("Disconnecting")
            self._task.cancel()
            self._closing, self._task = self._task, None
        self._outbox = None
        self._set_connection_state(ConnectionState.DISCONNECTED)

    async def wait_closed(self) -> None:
        """Wait for the connection task to finish (after disconnect or a failure)."""
        for task in (self._closing, self._task):
            if task is not None:
                await asyncio.gather(task, return_exceptions=True)
        self._closing = None

    def _send(self, channel: str, payload: dict[str, Any]) -> None:
        if self._outbox is None:
            raise RuntimeError("Websocket outbox is not available")
        self._outbox.put_nowait(_encode(channel, payload))

    # --- Internal ---

    async def _run(self) -> None:
        # Lazy import: websockets is only needed when talking to a real server.
        import websockets

        try:
            async with websockets.connect(
                self._config.url,
                max_size=self._config.max_message_size,
                ping_interval=20,
                ping_timeout=20,
                close_timeout=5,
            ) as ws:
                writer = asyncio.create_task(self._write_loop(ws), name="pushfeed-writer")
                writer.add_done_callback(self._on_writer_done)
                try:
                    await ws.send(_encode(HANDSHAKE_CHANNEL, self._handshake()))
                    async for raw in ws:
                        self._on_frame(raw)
                finally:
                    writer.cancel()
                    await asyncio.gather(writer, return_exceptions=True)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error("Websocket connection failed: %s", e)
        finally:
            # After disconnect() the task is detached and state is already reset
            if self._task is asyncio.current_task():
                self._task = None
                self._outbox = None
                self._set_connection_state(ConnectionState.DISCONNECTED)

    async def _write_loop(self, ws: Any) -> None:
        outbox = self._outbox
        while outbox is not None:
            text = await outbox.get()
            await ws.send(text)

    def _on_writer_done(self, writer: asyncio.Task) -> None:
        if writer.cancelled() or writer.exception() is None:
            return
        logger.error("Websocket write failed: %s", writer.exception())
        # Nothing drains the outbox any more; end the connection
        if self._task is not None:
            self._task.cancel()

    def _handshake(self) -> dict[str, Any]:
        if self._config.auth_token is None:
            return {}
        logger.debug("Using auth token")
        return {"ext": {AUTH_TOKEN_EXT: self._config.auth_token}}

    def _on_frame(self, raw: str | bytes) -> None:
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8")
        try:
            envelope = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Dropping non-JSON frame")
            return
        if not isinstance(envelope, dict) or "channel" not in envelope:
            logger.warning("Dropping frame without channel: %.200s", raw)
            return
        try:
            self.handle_message(envelope["channel"], envelope.get("data"))
        except Exception:
            logger.exception("Failed to handle message on %s", envelope["channel"])


def _encode(channel: str, payload: Any) -> str:
    return json.dumps({"channel": channel, "data": payload}, separators=(",", ":"))
