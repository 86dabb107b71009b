"""Trailing-edge throttle for high-frequency tick streams."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable

from .models import Tick

logger = logging.getLogger(__name__)

DEFAULT_THROTTLE_INTERVAL = 0.25  # seconds


class Throttler:
    """Collapse bursts of ticks into at most one emission per symbol per interval.

    The first tick for a symbol opens a window of ``interval`` seconds. Every
    tick for that symbol arriving inside the window replaces the pending one.
    When the window closes the pending tick (the last one seen) is emitted
    exactly once. Windows are fixed-length: new ticks never push the
    emission back, so a continuous stream still produces one emission per
    interval.

    Must be fed from inside a running event loop; emissions are scheduled with
    ``loop.call_later`` and therefore run on that loop, in the order the
    windows were opened.
    """

    def __init__(
        self,
        on_emit: Callable[[Tick], None],
        interval: float = DEFAULT_THROTTLE_INTERVAL,
    ) -> None:
        if interval <= 0:
            raise ValueError("interval must be positive")
        self._on_emit = on_emit
        self._interval = interval
        self._pending: dict[str, Tick] = {}
        self._timers: dict[str, asyncio.TimerHandle] = {}

    @property
    def interval(self) -> float:
        return self._interval

    @property
    def pending(self) -> int:
        """Number of symbols with an open window."""
        return len(self._timers)

    def push(self, tick: Tick) -> None:
        """Offer a tick. It will be emitted at the end of its symbol's window
        unless a newer tick for the same symbol arrives first."""
        symbol = tick.symbol
        self._pending[symbol] = tick
        if symbol not in self._timers:
            loop = asyncio.get_running_loop()
            self._timers[symbol] = loop.call_later(self._interval, self._flush, symbol)

    def cancel(self) -> None:
        """Drop all pending ticks and timers. No emission happens afterwards."""
        for handle in self._timers.values():
            handle.cancel()
        self._timers.clear()
        self._pending.clear()

    def _flush(self, symbol: str) -> None:
        self._timers.pop(symbol, None)
        tick = self._pending.pop(symbol, None)
        if tick is None:
            return
        try:
            self._on_emit(tick)
        except Exception:
            logger.exception("Throttled emit failed for %s", symbol)
