"""
Configuration for the price feed.

Immutable, validated settings. Live mode is selected by the presence of a hub
URL, so a bare local environment runs the emulator.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation

from .errors import ConfigurationError
from .seed_prices import DEFAULT_MAX_STEP_PERCENT, PRICE_FLOOR

ENV_HUB_URL = "FEED_HUB_URL"
ENV_THROTTLE_MS = "FEED_THROTTLE_MS"
ENV_EMULATION_PERIOD_MS = "FEED_EMULATION_PERIOD_MS"
ENV_CONNECT_TIMEOUT_S = "FEED_CONNECT_TIMEOUT_S"
ENV_MAX_RECONNECT_ATTEMPTS = "FEED_MAX_RECONNECT_ATTEMPTS"


@dataclass(frozen=True)
class FeedConfig:
    """Settings for one FeedService.

    Example:
        config = FeedConfig(hub_url="wss://feed.example.com/market-data")
        config = FeedConfig(base_prices={"AAPL": 150, "MSFT": 300})  # emulates AAPL and MSFT
    """

    # Live transport; empty means emulation
    hub_url: str = ""
    connect_timeout_s: float = 15.0
    max_reconnect_attempts: int | None = None  # None retries forever

    # Downstream rate limit
    throttle_interval_s: float = 0.25

    # Emulation
    symbols: tuple[str, ...] | None = None  # None: base_prices keys, else DEFAULT_SYMBOLS
    base_prices: Mapping[str, Decimal | float | int | str] = field(default_factory=dict)
    emulation_period_s: float = 1.0
    max_step_percent: Decimal = DEFAULT_MAX_STEP_PERCENT
    emulation_seed: int | None = None

    def __post_init__(self) -> None:
        if self.connect_timeout_s <= 0:
            raise ConfigurationError(
                "connect_timeout_s must be positive",
                field="connect_timeout_s",
                value=self.connect_timeout_s,
            )
        if self.max_reconnect_attempts is not None and self.max_reconnect_attempts < 0:
            raise ConfigurationError(
                "max_reconnect_attempts must be non-negative",
                field="max_reconnect_attempts",
                value=self.max_reconnect_attempts,
            )
        if self.throttle_interval_s <= 0:
            raise ConfigurationError(
                "throttle_interval_s must be positive",
                field="throttle_interval_s",
                value=self.throttle_interval_s,
            )
        if self.emulation_period_s <= 0:
            raise ConfigurationError(
                "emulation_period_s must be positive",
                field="emulation_period_s",
                value=self.emulation_period_s,
            )
        if self.symbols is not None and not self.symbols:
            raise ConfigurationError("At least one emulated symbol is required", field="symbols")
        if not (0 < Decimal(str(self.max_step_percent)) < 100):
            raise ConfigurationError(
                "max_step_percent must be between 0 and 100",
                field="max_step_percent",
                value=self.max_step_percent,
            )
        for symbol, price in self.base_prices.items():
            try:
                cents = Decimal(str(price)).quantize(PRICE_FLOOR)
            except InvalidOperation as e:
                raise ConfigurationError(
                    f"base price for {symbol} is not a number",
                    field="base_prices",
                    value=price,
                ) from e
            # The emulator works in whole cents and never goes below the floor
            if cents < PRICE_FLOOR:
                raise ConfigurationError(
                    f"base price for {symbol} must be at least {PRICE_FLOOR}",
                    field="base_prices",
                    value=price,
                )
        # Normalise the hub URL once so mode selection is a plain truth test
        object.__setattr__(self, "hub_url", self.hub_url.strip())
        if self.symbols is not None:
            object.__setattr__(self, "symbols", tuple(self.symbols))

    @property
    def live(self) -> bool:
        """True when a live hub is configured."""
        return bool(self.hub_url)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> FeedConfig:
        """Build a config from environment variables.

        - FEED_HUB_URL set and non-empty → live transport
        - Otherwise → emulation
        """
        env = os.environ if environ is None else environ
        kwargs: dict = {"hub_url": env.get(ENV_HUB_URL, "")}

        throttle_ms = _number(env, ENV_THROTTLE_MS)
        if throttle_ms is not None:
            kwargs["throttle_interval_s"] = throttle_ms / 1000.0
        period_ms = _number(env, ENV_EMULATION_PERIOD_MS)
        if period_ms is not None:
            kwargs["emulation_period_s"] = period_ms / 1000.0
        timeout_s = _number(env, ENV_CONNECT_TIMEOUT_S)
        if timeout_s is not None:
            kwargs["connect_timeout_s"] = timeout_s
        attempts = _number(env, ENV_MAX_RECONNECT_ATTEMPTS)
        if attempts is not None:
            kwargs["max_reconnect_attempts"] = int(attempts)

        return cls(**kwargs)


def _number(env: Mapping[str, str], name: str) -> float | None:
    raw = env.get(name, "").strip()
    if not raw:
        return None
    try:
        return float(raw)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be a number", field=name, value=raw) from e
