"""Random-walk price emulator for running without a live feed."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Iterable, Mapping
from datetime import datetime, timedelta, timezone
from decimal import ROUND_HALF_EVEN, Decimal

import numpy as np

from .cache import PriceCache
from .models import Tick
from .seed_prices import (
    DEFAULT_MAX_STEP_PERCENT,
    DEFAULT_SYMBOLS,
    INITIAL_VOLUME_MAX,
    PRICE_FLOOR,
    SEED_PRICES,
    UNSEEDED_PRICE_RANGE,
    VOLUME_INCREMENT_MAX,
)

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")
PERCENT_QUANTUM = Decimal("0.0001")
HUNDRED = Decimal("100")


class RandomWalkSimulator:
    """Bounded random walk over a fixed symbol universe.

    Each step moves every price by a uniform random percentage in
    [-max_step_percent, +max_step_percent]:

        change    = round_to_cent(price * pct / 100)
        new_price = max(price + change, PRICE_FLOOR)

    All money arithmetic stays in Decimal so long sessions do not accumulate
    binary rounding drift. Only the random draws come from numpy; they are
    converted to a 4-decimal percentage before touching a price.

    Volume is cumulative and grows by a random positive amount per step.
    Timestamps are strictly increasing per symbol even if the wall clock
    does not advance between two steps.
    """

    def __init__(
        self,
        symbols: Iterable[str],
        base_prices: Mapping[str, Decimal | float | int | str] | None = None,
        max_step_percent: Decimal | float | str = DEFAULT_MAX_STEP_PERCENT,
        seed: int | None = None,
    ) -> None:
        self._rng = np.random.default_rng(seed)
        self._max_step = float(max_step_percent)
        if self._max_step <= 0:
            raise ValueError("max_step_percent must be positive")

        self._symbols: list[str] = []
        self._prices: dict[str, Decimal] = {}
        self._volumes: dict[str, int] = {}
        self._last_ts: dict[str, datetime] = {}

        overrides = dict(base_prices or {})
        for symbol in symbols:
            if symbol in self._prices:
                continue
            self._symbols.append(symbol)
            self._prices[symbol] = self._base_price(symbol, overrides.get(symbol))
            self._volumes[symbol] = int(self._rng.integers(0, INITIAL_VOLUME_MAX))

    # --- Public API ---

    @property
    def symbols(self) -> list[str]:
        return list(self._symbols)

    def get_price(self, symbol: str) -> Decimal | None:
        """Current price for a symbol, or None if not emulated."""
        return self._prices.get(symbol)

    def seed(self, venue_id: str) -> list[Tick]:
        """One flat tick per symbol at its current price."""
        return [
            Tick(
                venue_id=venue_id,
                symbol=symbol,
                price=self._prices[symbol],
                volume=self._volumes[symbol],
                timestamp=self._next_timestamp(symbol),
            )
            for symbol in self._symbols
        ]

    def step(self, venue_id: str) -> list[Tick]:
        """Advance every symbol by one period. Returns the new ticks in universe order."""
        n = len(self._symbols)
        if n == 0:
            return []

        draws = self._rng.uniform(-self._max_step, self._max_step, size=n)
        increments = self._rng.integers(1, VOLUME_INCREMENT_MAX, size=n)

        ticks: list[Tick] = []
        for i, symbol in enumerate(self._symbols):
            price = self._prices[symbol]
            pct = Decimal(f"{draws[i]:.4f}")
            change = (price * pct / HUNDRED).quantize(CENT, rounding=ROUND_HALF_EVEN)
            new_price = price + change
            if new_price < PRICE_FLOOR:
                new_price = PRICE_FLOOR
                change = new_price - price
                logger.debug("Price floor hit on %s (was %s)", symbol, price)

            self._prices[symbol] = new_price
            self._volumes[symbol] += int(increments[i])

            ticks.append(
                Tick(
                    venue_id=venue_id,
                    symbol=symbol,
                    price=new_price,
                    change=change,
                    change_percent=(change / price * HUNDRED).quantize(PERCENT_QUANTUM),
                    volume=self._volumes[symbol],
                    timestamp=self._next_timestamp(symbol),
                )
            )
        return ticks

    # --- Internals ---

    def _base_price(self, symbol: str, override: Decimal | float | int | str | None) -> Decimal:
        if override is not None:
            price = Decimal(str(override)).quantize(CENT)
        elif symbol in SEED_PRICES:
            price = SEED_PRICES[symbol]
        else:
            low, high = UNSEEDED_PRICE_RANGE
            price = Decimal(f"{self._rng.uniform(low, high):.2f}")
        if price < PRICE_FLOOR:
            raise ValueError(f"base price for {symbol} must be at least {PRICE_FLOOR}")
        return price

    def _next_timestamp(self, symbol: str) -> datetime:
        now = datetime.now(timezone.utc)
        prev = self._last_ts.get(symbol)
        if prev is not None and now <= prev:
            now = prev + timedelta(microseconds=1)
        self._last_ts[symbol] = now
        return now


class EmulationEngine:
    """Synthetic feed backed by RandomWalkSimulator.

    start() seeds the PriceCache directly so readers see a full universe as
    soon as it returns. After that a background asyncio task calls
    RandomWalkSimulator.step() every ``period`` seconds and hands each tick to
    ``on_tick``, the same path live ticks take.
    """

    def __init__(
        self,
        price_cache: PriceCache,
        on_tick: Callable[[Tick], None],
        symbols: Iterable[str] | None = None,
        base_prices: Mapping[str, Decimal | float | int | str] | None = None,
        period: float = 1.0,
        max_step_percent: Decimal | float | str = DEFAULT_MAX_STEP_PERCENT,
        seed: int | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        if period <= 0:
            raise ValueError("period must be positive")
        if symbols is None:
            symbols = list(base_prices) if base_prices else DEFAULT_SYMBOLS
        self._cache = price_cache
        self._on_tick = on_tick
        self._symbols = list(symbols)
        self._base_prices = dict(base_prices or {})
        self._period = period
        self._max_step = max_step_percent
        self._seed = seed
        self._log = logger or logging.getLogger(__name__)
        self._sim: RandomWalkSimulator | None = None
        self._task: asyncio.Task | None = None
        self._venue_id: str | None = None

    @property
    def symbols(self) -> list[str]:
        return list(self._symbols)

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self, venue_id: str) -> None:
        if self.running:
            await self.stop()
        self._venue_id = venue_id
        self._sim = RandomWalkSimulator(
            symbols=self._symbols,
            base_prices=self._base_prices,
            max_step_percent=self._max_step,
            seed=self._seed,
        )
        # Seed the cache so readers have data before the first period elapses
        for tick in self._sim.seed(venue_id):
            self._cache.set(tick)
        self._task = asyncio.create_task(self._run_loop(), name=f"emulator-{venue_id}")
        self._log.info(
            "Emulation started for venue %s: %d symbols, %.3fs period",
            venue_id,
            len(self._symbols),
            self._period,
        )

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        if not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._log.info("Emulation stopped for venue %s", self._venue_id)

    async def _run_loop(self) -> None:
        """Sleep one period, step, hand ticks on. The seed covered t=0."""
        while True:
            await asyncio.sleep(self._period)
            try:
                if self._sim and self._venue_id:
                    for tick in self._sim.step(self._venue_id):
                        self._on_tick(tick)
            except Exception:
                self._log.exception("Emulation step failed")
