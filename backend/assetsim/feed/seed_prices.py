"""Seed prices and defaults for the emulated feed."""

from decimal import Decimal

# Realistic starting prices for the emulated symbol universe
SEED_PRICES: dict[str, Decimal] = {
    "AAPL": Decimal("190.00"),
    "GOOGL": Decimal("175.00"),
    "MSFT": Decimal("420.00"),
    "AMZN": Decimal("185.00"),
    "TSLA": Decimal("250.00"),
    "NVDA": Decimal("800.00"),
    "META": Decimal("500.00"),
    "JPM": Decimal("195.00"),
    "V": Decimal("280.00"),
    "NFLX": Decimal("600.00"),
}

# Symbols emulated when no universe is configured
DEFAULT_SYMBOLS: tuple[str, ...] = ("AAPL", "MSFT", "GOOGL", "AMZN", "TSLA")

# Symbols without a seed start uniformly inside this range
UNSEEDED_PRICE_RANGE: tuple[float, float] = (100.0, 200.0)

# Largest per-period move, in percent either way
DEFAULT_MAX_STEP_PERCENT = Decimal("2")

# Prices never fall below one cent
PRICE_FLOOR = Decimal("0.01")

# Starting cumulative volume is drawn from [0, this)
INITIAL_VOLUME_MAX = 1_000_000

# Per-period volume increment is drawn from [1, this)
VOLUME_INCREMENT_MAX = 10_000
