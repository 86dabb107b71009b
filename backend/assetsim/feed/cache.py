"""Thread-safe in-memory price cache."""

from __future__ import annotations

from collections.abc import Mapping
from threading import Lock
from types import MappingProxyType

from .models import Tick


class PriceCache:
    """Latest Tick per symbol.

    Writer: the FeedService, from the Throttler's emissions or an emulator seed.
    Readers: order entry, SSE stream, anything holding the feed.
    """

    def __init__(self) -> None:
        self._ticks: dict[str, Tick] = {}
        self._lock = Lock()
        self._version: int = 0  # Monotonically increasing; bumped on every mutation

    def set(self, tick: Tick) -> None:
        """Record a tick, overwriting whatever was held for its symbol."""
        with self._lock:
            self._ticks[tick.symbol] = tick
            self._version += 1

    def get(self, symbol: str) -> Tick | None:
        """Latest tick for a symbol, or None if unknown."""
        with self._lock:
            return self._ticks.get(symbol)

    def get_price(self, symbol: str):
        """Convenience: just the Decimal price, or None."""
        tick = self.get(symbol)
        return tick.price if tick else None

    def all(self) -> Mapping[str, Tick]:
        """Read-only snapshot of all ticks. Later writes do not show through."""
        with self._lock:
            return MappingProxyType(dict(self._ticks))

    def clear(self) -> None:
        with self._lock:
            if self._ticks:
                self._ticks.clear()
                self._version += 1

    @property
    def version(self) -> int:
        """Current version counter. Useful for SSE change detection."""
        return self._version

    def __len__(self) -> int:
        with self._lock:
            return len(self._ticks)

    def __contains__(self, symbol: str) -> bool:
        with self._lock:
            return symbol in self._ticks
