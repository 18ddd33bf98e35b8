"""In-process simulated push server driven by a GBM price model."""

from __future__ import annotations

import asyncio
import logging
import math
import time
from collections import deque
from typing import Any

import numpy as np

from .interface import (
    CONTROL_CHANNEL,
    DATA_CHANNEL,
    STATE_CHANNEL,
    SUB_CHANNEL,
    TIME_SERIES_DATA_CHANNEL,
    BaseTransport,
    ConnectionState,
)
from .seed_prices import (
    DEFAULT_PARAMS,
    EVENT_SCHEMAS,
    HALF_SPREAD,
    HISTORY_LIMIT,
    SEED_PRICES,
    SYMBOL_PARAMS,
    TIME_SERIES_TYPES,
)

logger = logging.getLogger(__name__)


def _now_ms() -> int:
    return int(time.time() * 1000)


class GBMSimulator:
    """Geometric Brownian Motion prices driven by one common market factor.

    Math:
        S(t+dt) = S(t) * exp((mu - sigma^2/2) * dt + sigma * sqrt(dt) * Z)
        Z       = beta * M + sqrt(1 - beta^2) * E

    Where M is the market draw shared by all symbols in a step and E is the
    symbol's own draw, so two symbols correlate by beta_i * beta_j.
    """

    # 500ms expressed as a fraction of a trading year
    TRADING_SECONDS_PER_YEAR = 252 * 6.5 * 3600
    DEFAULT_DT = 0.5 / TRADING_SECONDS_PER_YEAR

    def __init__(
        self,
        dt: float = DEFAULT_DT,
        event_probability: float = 0.001,
        seed: int | None = None,
    ) -> None:
        self._dt = dt
        self._event_prob = event_probability
        self._rng = np.random.default_rng(seed)
        self._prices: dict[str, float] = {}
        self._params: dict[str, dict[str, float]] = {}

    @property
    def rng(self) -> np.random.Generator:
        return self._rng

    def add_symbol(self, symbol: str) -> None:
        if symbol in self._prices:
            return
        self._prices[symbol] = SEED_PRICES.get(symbol, float(self._rng.uniform(50.0, 300.0)))
        self._params[symbol] = SYMBOL_PARAMS.get(symbol, dict(DEFAULT_PARAMS))

    def remove_symbol(self, symbol: str) -> None:
        self._prices.pop(symbol, None)
        self._params.pop(symbol, None)

    def get_price(self, symbol: str) -> float | None:
        return self._prices.get(symbol)

    def symbols(self) -> list[str]:
        return list(self._prices)

    def step(self, symbols: list[str] | None = None) -> dict[str, float]:
        """Advance the given symbols (default: all) by one step. Returns new prices."""
        symbols = self.symbols() if symbols is None else symbols
        for symbol in symbols:
            self.add_symbol(symbol)
        n = len(symbols)
        if n == 0:
            return {}

        mu = np.array([self._params[s]["mu"] for s in symbols])
        sigma = np.array([self._params[s]["sigma"] for s in symbols])
        beta = np.clip(np.array([self._params[s]["beta"] for s in symbols]), 0.0, 1.0)

        market = self._rng.standard_normal()
        z = beta * market + np.sqrt(1.0 - beta**2) * self._rng.standard_normal(n)
        growth = np.exp((mu - 0.5 * sigma**2) * self._dt + sigma * math.sqrt(self._dt) * z)

        # Occasional 2-5% jump
        shocks = self._rng.random(n) < self._event_prob
        if shocks.any():
            magnitude = self._rng.uniform(0.02, 0.05, n) * self._rng.choice([-1.0, 1.0], n)
            growth = np.where(shocks, growth * (1.0 + magnitude), growth)

        result: dict[str, float] = {}
        for i, symbol in enumerate(symbols):
            self._prices[symbol] *= float(growth[i])
            result[symbol] = round(self._prices[symbol], 2)
        return result


class SimulatorTransport(BaseTransport):
    """FeedTransport that plays the push server in-process.

    Honours ``sub`` messages (reset, add, remove, time-series add with
    fromTime, time-series remove) and ``control`` replay commands, and
    generates Quote/Trade snapshots plus TimeAndSale time series for the
    subscribed symbols. Every data type is announced with its inline schema
    the first time it is sent on a connection.

    A background task calls ``emit_tick()`` every ``interval`` seconds when
    connected inside a running event loop; tests call it directly.
    """

    def __init__(
        self,
        interval: float = 0.5,
        simulator: GBMSimulator | None = None,
        clock=_now_ms,
    ) -> None:
        super().__init__()
        self._interval = interval
        self._sim = simulator or GBMSimulator()
        self._clock = clock
        self._task: asyncio.Task | None = None
        # Server-side subscription: type -> symbols / type -> symbol -> fromTime
        self._regular: dict[str, set[str]] = {}
        self._time_series: dict[str, dict[str, float]] = {}
        self._announced: set[str] = set()
        self._history: dict[tuple[str, str], deque[list[Any]]] = {}
        self._day_volume: dict[str, float] = {}
        self._next_index = 0
        # Replay state
        self._replay = False
        self._clear = False
        self._speed = 0.0
        self._replay_time: float = 0.0

    @property
    def simulator(self) -> GBMSimulator:
        return self._sim

    def subscribed(self, time_series: bool = False) -> dict[str, set[str]]:
        """Server-side view of the current subscription: type -> symbols."""
        if time_series:
            return {t: set(s) for t, s in self._time_series.items() if s}
        return {t: set(s) for t, s in self._regular.items() if s}

    def from_time(self, event_type: str, symbol: str) -> float | None:
        return self._time_series.get(event_type, {}).get(symbol)

    def connect(self, config: Any = None) -> None:
        self._connect_called = True
        if self._state is not ConnectionState.DISCONNECTED:
            return
        self._set_connection_state(ConnectionState.CONNECTING)
        self._regular.clear()
        self._time_series.clear()
        self._announced.clear()
        # A new session starts live
        self._replay, self._clear, self._speed = False, False, 0.0
        self.handle_message(CONTROL_CHANNEL, {"successful": True})
        self.handle_message(STATE_CHANNEL, {"replaySupported": True})
        self._start_loop()

    def disconnect(self) -> None:
        self._stop_loop()
        if self._state is not ConnectionState.DISCONNECTED:
            logger.info("Simulator disconnected")
        self._set_connection_state(ConnectionState.DISCONNECTED)

    def drop_connection(self) -> None:
        """Simulate a lost connection; a later connect() starts a fresh session."""
        self._stop_loop()
        self._set_connection_state(ConnectionState.DISCONNECTED)

    def _send(self, channel: str, payload: dict[str, Any]) -> None:
        if channel == SUB_CHANNEL:
            self._on_sub(payload)
        elif channel == CONTROL_CHANNEL:
            self._on_command(payload)
        else:
            logger.warning("Simulator ignores channel %s", channel)

    # --- Subscription handling ---

    def _on_sub(self, message: dict[str, Any]) -> None:
        if message.get("reset"):
            self._regular.clear()
            self._time_series.clear()
        for event_type, symbols in (message.get("remove") or {}).items():
            self._regular.get(event_type, set()).difference_update(symbols)
        for event_type, symbols in (message.get("removeTimeSeries") or {}).items():
            entries = self._time_series.get(event_type, {})
            for symbol in symbols:
                entries.pop(symbol, None)

        for event_type, symbols in (message.get("add") or {}).items():
            if event_type not in EVENT_SCHEMAS or event_type in TIME_SERIES_TYPES:
                logger.debug("Simulator has no regular %s events", event_type)
                continue
            self._regular.setdefault(event_type, set()).update(symbols)
            self._send_snapshot(event_type, symbols)
        for event_type, entries in (message.get("addTimeSeries") or {}).items():
            if event_type not in TIME_SERIES_TYPES:
                logger.debug("Simulator has no time series %s events", event_type)
                continue
            for entry in entries:
                symbol = entry.get("symbol")
                from_time = entry.get("fromTime")
                bound = math.inf if from_time is None else float(from_time)
                self._time_series.setdefault(event_type, {})[symbol] = bound
                self._send_history(event_type, symbol, bound)

    def _send_snapshot(self, event_type: str, symbols: list[str]) -> None:
        now = self._now()
        rows = []
        for symbol in symbols:
            self._sim.add_symbol(symbol)
            rows.append(self._make_row(event_type, symbol, self._sim.get_price(symbol), now))
        self._emit(event_type, rows)

    def _send_history(self, event_type: str, symbol: str, bound: float) -> None:
        history = self._history.get((event_type, symbol), ())
        rows = [row for row in history if row[1] >= bound]
        if rows:
            self._emit(event_type, rows)

    # --- Replay commands ---

    def _on_command(self, payload: dict[str, Any]) -> None:
        op = payload.get("op")
        args = payload.get("args") or []
        try:
            if op == "replay":
                replay_time = float(args[0])
                speed = float(args[1]) if len(args) > 1 else 1.0
                self._replay, self._clear = True, False
                self._replay_time, self._speed = replay_time, speed
                patch = {"replay": True, "clear": False, "time": int(replay_time), "speed": speed}
            elif op == "setSpeed":
                speed = float(args[0])
                self._replay, self._clear, self._speed = True, False, speed
                patch = {"replay": True, "clear": False, "speed": speed}
            elif op == "stopAndResume":
                self._replay, self._clear, self._speed = False, False, 0.0
                patch = {"replay": False, "clear": False, "speed": 0}
            elif op == "stopAndClear":
                self._replay, self._clear, self._speed = False, True, 0.0
                patch = {"replay": False, "clear": True, "speed": 0}
            else:
                logger.warning("Simulator ignores unknown control op %r", op)
                return
        except (IndexError, TypeError, ValueError, OverflowError) as e:
            logger.warning("Bad arguments for %s: %s", op, e)
            return
        logger.info("Simulator control: %s%s", op, tuple(args))
        self.handle_message(STATE_CHANNEL, patch)

    # --- Data generation ---

    def emit_tick(self) -> int:
        """Generate one round of events for all subscribed symbols. Returns rows sent."""
        if not self.connected or self._clear or (self._replay and self._speed == 0):
            return 0
        symbols = sorted(
            {s for syms in self._regular.values() for s in syms}
            | {s for entries in self._time_series.values() for s in entries}
        )
        if not symbols:
            return 0
        prices = self._sim.step(symbols)
        now = self._advance_clock()

        sent = 0
        for event_type, subscribed in self._regular.items():
            rows = [self._make_row(event_type, s, prices[s], now) for s in sorted(subscribed)]
            sent += self._emit(event_type, rows)
        for event_type, entries in self._time_series.items():
            rows = []
            for symbol in sorted(entries):
                row = self._make_row(event_type, symbol, prices[symbol], now)
                history = self._history.setdefault((event_type, symbol), deque(maxlen=HISTORY_LIMIT))
                history.append(row)
                if row[1] >= entries[symbol]:
                    rows.append(row)
            sent += self._emit(event_type, rows)
        return sent

    def _make_row(self, event_type: str, symbol: str, price: float, now: int) -> list[Any]:
        rng = self._sim.rng
        if event_type == "Quote":
            half = max(round(price * HALF_SPREAD, 2), 0.01)
            return [symbol, now, round(price - half, 2), int(rng.integers(1, 50)) * 100,
                    round(price + half, 2), int(rng.integers(1, 50)) * 100]
        if event_type == "Trade":
            size = int(rng.integers(1, 20)) * 100
            volume = self._day_volume.get(symbol, 0.0) + size
            self._day_volume[symbol] = volume
            return [symbol, now, price, size, volume]
        # TimeAndSale
        self._next_index += 1
        side = "BUY" if rng.random() < 0.5 else "SELL"
        return [symbol, now, self._next_index, price, int(rng.integers(1, 20)) * 100, side]

    def _emit(self, event_type: str, rows: list[list[Any]]) -> int:
        if not rows:
            return 0
        if event_type in self._announced:
            header: Any = event_type
        else:
            header = [event_type, EVENT_SCHEMAS[event_type]]
            self._announced.add(event_type)
        values = [value for row in rows for value in row]
        channel = TIME_SERIES_DATA_CHANNEL if event_type in TIME_SERIES_TYPES else DATA_CHANNEL
        self.handle_message(channel, [header, values])
        return len(rows)

    def _now(self) -> int:
        return int(self._replay_time) if self._replay else self._clock()

    def _advance_clock(self) -> int:
        if self._replay:
            self._replay_time += self._interval * 1000 * self._speed
        return self._now()

    # --- Background loop ---

    def _start_loop(self) -> None:
        if self._interval <= 0 or (self._task is not None and not self._task.done()):
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running event loop; call emit_tick() to generate data")
            return
        self._task = loop.create_task(self._run_loop(), name="simulator-feed")
        logger.info("Simulator started, %.2fs interval", self._interval)

    def _stop_loop(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    async def _run_loop(self) -> None:
        """Core loop: emit one tick, sleep."""
        while True:
            try:
                self.emit_tick()
            except Exception:
                logger.exception("Simulator tick failed")
            await asyncio.sleep(self._interval)
