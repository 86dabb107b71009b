"""Data models for the price feed."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any

from .errors import MessageParseError

# Name of the live message carrying a tick
PRICE_UPDATE = "PriceUpdate"


def channel_name(venue_id: str) -> str:
    """Channel (server-side group) that scopes ticks for a venue."""
    return f"ticker:{venue_id}"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ConnectionState(str, Enum):
    """Connection state of a FeedService."""

    DISCONNECTED = "Disconnected"
    CONNECTING = "Connecting"
    CONNECTED = "Connected"
    RECONNECTING = "Reconnecting"
    FAILED = "Failed"


class ChannelMembership(str, Enum):
    """Whether the ticker channel subscription is known to be in effect."""

    NONE = "none"
    JOINED = "joined"
    UNVERIFIED = "unverified"


@dataclass(frozen=True, slots=True)
class Tick:
    """Immutable price observation for one symbol at an instant."""

    venue_id: str
    symbol: str
    price: Decimal
    change: Decimal = Decimal("0")
    change_percent: Decimal = Decimal("0")
    volume: int = 0
    timestamp: datetime = field(default_factory=_utcnow)

    def __post_init__(self) -> None:
        if self.price <= 0:
            raise ValueError(f"price must be positive, got {self.price}")
        if self.volume < 0:
            raise ValueError(f"volume must be non-negative, got {self.volume}")

    @property
    def direction(self) -> str:
        """'up', 'down', or 'flat'."""
        if self.change > 0:
            return "up"
        elif self.change < 0:
            return "down"
        return "flat"

    @classmethod
    def from_message(cls, payload: Mapping[str, Any]) -> Tick:
        """Build a Tick from a decoded PriceUpdate payload.

        Numbers may arrive as ints, floats or strings; they go through str()
        so a float like 190.1 becomes Decimal('190.1') rather than its binary
        expansion.
        """
        if not isinstance(payload, Mapping):
            raise MessageParseError(
                f"PriceUpdate payload must be an object, got {type(payload).__name__}"
            )
        try:
            venue_id = str(payload["venueId"])
            symbol = str(payload["symbol"])
        except KeyError as e:
            raise MessageParseError(f"PriceUpdate missing {e.args[0]}", field=e.args[0]) from e

        def _decimal(key: str, default: Any = None) -> Decimal:
            raw = payload.get(key, default)
            if raw is None or isinstance(raw, bool):
                raise MessageParseError(f"PriceUpdate has invalid {key}: {raw!r}", field=key)
            try:
                value = Decimal(str(raw))
            except InvalidOperation as e:
                raise MessageParseError(f"PriceUpdate has invalid {key}: {raw!r}", field=key) from e
            if not value.is_finite():
                raise MessageParseError(f"PriceUpdate has invalid {key}: {raw!r}", field=key)
            return value

        price = _decimal("price")
        change = _decimal("change", 0)
        change_percent = _decimal("changePercent", 0)

        raw_volume = _decimal("volume", 0)
        if raw_volume != raw_volume.to_integral_value():
            raise MessageParseError(
                f"PriceUpdate has non-integral volume: {raw_volume}", field="volume"
            )
        volume = int(raw_volume)

        timestamp = _parse_timestamp(payload.get("timestamp"))

        try:
            return cls(
                venue_id=venue_id,
                symbol=symbol,
                price=price,
                change=change,
                change_percent=change_percent,
                volume=volume,
                timestamp=timestamp,
            )
        except ValueError as e:
            raise MessageParseError(str(e)) from e

    def to_dict(self) -> dict:
        """Serialize in the PriceUpdate wire shape for JSON / SSE transmission."""
        return {
            "venueId": self.venue_id,
            "symbol": self.symbol,
            "price": str(self.price),
            "change": str(self.change),
            "changePercent": str(self.change_percent),
            "volume": self.volume,
            "timestamp": self.timestamp.isoformat(),
            "direction": self.direction,
        }


def _parse_timestamp(raw: Any) -> datetime:
    if raw is None:
        raise MessageParseError("PriceUpdate missing timestamp", field="timestamp")
    if isinstance(raw, datetime):
        ts = raw
    else:
        try:
            ts = datetime.fromisoformat(str(raw).replace("Z", "+00:00"))
        except ValueError as e:
            raise MessageParseError(
                f"PriceUpdate has invalid timestamp: {raw!r}", field="timestamp"
            ) from e
    # Naive timestamps are taken as UTC
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts


@dataclass(frozen=True, slots=True)
class FeedStatus:
    """Point-in-time view of a FeedService for health endpoints and UIs."""

    state: ConnectionState
    venue_id: str | None
    mode: str | None  # "live", "emulated" or None when disconnected
    membership: ChannelMembership
    symbols: int
    last_update_at: datetime | None
    reconnect_count: int

    def to_dict(self) -> dict:
        return {
            "state": self.state.value,
            "venueId": self.venue_id,
            "mode": self.mode,
            "membership": self.membership.value,
            "symbols": self.symbols,
            "lastUpdateAt": self.last_update_at.isoformat() if self.last_update_at else None,
            "reconnectCount": self.reconnect_count,
        }
