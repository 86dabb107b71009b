"""
Live connection management for a venue's ticker channel.

Owns one Transport session at a time:
- Initial connect (no retry; failure raises ConnectionError)
- Reconnect backoff schedule handed to the transport's own reconnect loop
- Channel (re-)subscription, with the server-managed membership gap surfaced
- Idempotent teardown that never raises
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from functools import partial
from typing import Any

from .errors import (
    CapabilityGapWarning,
    ConnectionError,
    MessageParseError,
    TeardownError,
    TransportError,
)
from .models import PRICE_UPDATE, ChannelMembership, ConnectionState, Tick, channel_name
from .transport import RetryPolicy, Transport


# Delay before reconnect attempt N (N = consecutive failures so far).
# Counts past the end reuse the last value.
RECONNECT_SCHEDULE_MS: tuple[int, ...] = (0, 2_000, 10_000, 30_000, 60_000)

TransportFactory = Callable[[str, RetryPolicy], Transport]


def reconnect_delay_ms(retry_count: int) -> int:
    """Backoff delay in milliseconds for a consecutive-failure count."""
    if retry_count < 0:
        raise ValueError("retry_count must be non-negative")
    return RECONNECT_SCHEDULE_MS[min(retry_count, len(RECONNECT_SCHEDULE_MS) - 1)]


class ConnectionManager:
    """
    Manages a single live transport session subscribed to ``ticker:{venue_id}``.

    The manager does not own the connection state; it reports transitions it
    observes (RECONNECTING, CONNECTED after a reconnect, FAILED, DISCONNECTED)
    through ``on_state_change`` and hands decoded ticks to ``on_tick``.
    Callbacks from a transport that has since been replaced or stopped are
    ignored.

    Usage:
        manager = ConnectionManager(
            transport_factory=lambda url, policy: WebSocketTransport(url, policy),
            on_tick=throttler.push,
            on_state_change=service._set_state,
        )
        await manager.connect("venue-1", "wss://feed.example.com/market-data")
        # ... later ...
        await manager.disconnect()
    """

    def __init__(
        self,
        transport_factory: TransportFactory,
        on_tick: Callable[[Tick], None],
        on_state_change: Callable[[ConnectionState], None],
        max_reconnect_attempts: int | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        """
        Args:
            transport_factory: Builds a transport for (url, retry_policy)
            on_tick: Receives every well-formed PriceUpdate as a Tick
            on_state_change: Receives state transitions observed on the session
            max_reconnect_attempts: Stop reconnecting after this many failed
                attempts in a row; None retries forever
            logger: Logger to report on; defaults to this module's logger
        """
        if max_reconnect_attempts is not None and max_reconnect_attempts < 0:
            raise ValueError("max_reconnect_attempts must be non-negative")
        self._transport_factory = transport_factory
        self._on_tick = on_tick
        self._on_state_change = on_state_change
        self._max_reconnect_attempts = max_reconnect_attempts
        self._log = logger or logging.getLogger(__name__)

        self._transport: Transport | None = None
        self._venue_id: str | None = None
        self._channel: str | None = None
        self._connected = False
        self._membership = ChannelMembership.NONE
        self._last_gap: CapabilityGapWarning | None = None
        self._reconnect_count = 0

    # --- Read-only state ---

    def is_connected(self) -> bool:
        return self._connected

    @property
    def channel(self) -> str | None:
        return self._channel

    @property
    def connection_id(self) -> str | None:
        return self._transport.connection_id if self._transport else None

    @property
    def membership(self) -> ChannelMembership:
        return self._membership

    @property
    def last_capability_gap(self) -> CapabilityGapWarning | None:
        """Most recent unverifiable (re-)subscription, if any."""
        return self._last_gap

    @property
    def reconnect_count(self) -> int:
        """Successful automatic reconnects since the last connect()."""
        return self._reconnect_count

    # --- Lifecycle ---

    def next_retry_delay(self, retry_count: int) -> float | None:
        """Retry policy handed to the transport: seconds to wait, or None to give up."""
        if self._max_reconnect_attempts is not None and retry_count >= self._max_reconnect_attempts:
            return None
        return reconnect_delay_ms(retry_count) / 1000.0

    async def connect(self, venue_id: str, channel_url: str) -> None:
        """
        Open a session to ``channel_url`` and subscribe to the venue's channel.

        Raises:
            ConnectionError: If the handshake fails or times out. Not retried.
        """
        if self._transport is not None:
            await self.disconnect()

        transport = self._transport_factory(channel_url, self.next_retry_delay)
        transport.on(PRICE_UPDATE, partial(self._handle_price_update, transport))
        transport.on_reconnecting(partial(self._handle_reconnecting, transport))
        transport.on_reconnected(partial(self._handle_reconnected, transport))
        transport.on_close(partial(self._handle_close, transport))

        self._transport = transport
        self._venue_id = venue_id
        self._channel = channel_name(venue_id)
        self._reconnect_count = 0
        self._last_gap = None

        try:
            await transport.start()
        except Exception as e:
            if self._transport is transport:
                self._transport = None
            self._log.error("Failed to connect to %s for venue %s: %s", channel_url, venue_id, e)
            await self._stop_quietly(transport)
            raise ConnectionError(
                f"Failed to connect to price feed: {e}",
                venue_id=venue_id,
                url=channel_url,
                component="ConnectionManager",
            ) from e

        await self._ensure_current(transport, venue_id, channel_url)
        await self._subscribe_channel(transport, reconnect=False)
        # A disconnect may also land while joining the channel
        await self._ensure_current(transport, venue_id, channel_url)
        self._connected = True
        self._log.info(
            "Connected to venue %s on %s (connection %s)",
            venue_id,
            channel_url,
            transport.connection_id,
        )

    async def disconnect(self) -> None:
        """Stop the transport. Idempotent; stop failures are logged, never raised."""
        transport, self._transport = self._transport, None
        self._connected = False
        self._membership = ChannelMembership.NONE
        if transport is None:
            return
        try:
            await transport.stop()
        except Exception as e:
            err = TeardownError(f"Failed to stop transport: {e}", component="ConnectionManager")
            self._log.warning("%s", err)
        self._log.info("Disconnected from venue %s", self._venue_id)

    # --- Transport callbacks ---

    def _handle_price_update(self, transport: Transport, payload: Any = None, *_: Any) -> None:
        if transport is not self._transport:
            return
        try:
            tick = Tick.from_message(payload)
        except MessageParseError as e:
            self._log.warning("Skipping malformed PriceUpdate: %s", e)
            return
        self._on_tick(tick)

    def _handle_reconnecting(self, transport: Transport, error: BaseException | None) -> None:
        if transport is not self._transport:
            return
        self._connected = False
        self._membership = ChannelMembership.NONE
        err = TransportError(
            f"Connection lost: {error or 'closed by server'}",
            component="ConnectionManager",
        )
        self._log.info("Reconnecting to venue %s: %s", self._venue_id, err)
        self._on_state_change(ConnectionState.RECONNECTING)

    async def _handle_reconnected(self, transport: Transport, connection_id: str | None) -> None:
        if transport is not self._transport:
            return
        self._reconnect_count += 1
        await self._subscribe_channel(transport, reconnect=True)
        # A stop() may have landed while re-subscribing
        if transport is not self._transport:
            return
        self._connected = True
        self._log.info(
            "Reconnected to venue %s (connection %s, reconnect #%d)",
            self._venue_id,
            connection_id,
            self._reconnect_count,
        )
        self._on_state_change(ConnectionState.CONNECTED)

    def _handle_close(self, transport: Transport, error: BaseException | None) -> None:
        if transport is not self._transport:
            return
        self._connected = False
        self._membership = ChannelMembership.NONE
        if error is not None:
            self._log.warning("Price feed for venue %s closed: %s", self._venue_id, error)
            self._on_state_change(ConnectionState.FAILED)
        else:
            self._log.info("Price feed for venue %s closed", self._venue_id)
            self._on_state_change(ConnectionState.DISCONNECTED)

    # --- Internal ---

    async def _subscribe_channel(self, transport: Transport, reconnect: bool) -> None:
        """Join the venue channel, or record that membership cannot be verified."""
        channel = self._channel or ""
        if transport.supports_group_join:
            try:
                await transport.join_group(channel)
            except Exception as e:
                reason = f"join failed: {e}"
            else:
                if transport is not self._transport:
                    return
                self._membership = ChannelMembership.JOINED
                self._log.info("Subscribed to %s", channel)
                return
        else:
            reason = "group membership is managed server-side and cannot be requested by the client"

        if transport is not self._transport:
            return
        gap = CapabilityGapWarning(
            f"Subscription to {channel} unverified after {'reconnect' if reconnect else 'connect'}: {reason}",
            channel=channel,
            connection_id=transport.connection_id,
            reconnect=reconnect,
            component="ConnectionManager",
        )
        self._membership = ChannelMembership.UNVERIFIED
        self._last_gap = gap
        self._log.warning("%s", gap)

    async def _ensure_current(self, transport: Transport, venue_id: str, channel_url: str) -> None:
        """Raise if disconnect() or another connect() replaced ``transport`` mid-handshake."""
        if transport is self._transport:
            return
        self._log.info("Connect to venue %s superseded; closing its session", venue_id)
        await self._stop_quietly(transport)
        raise ConnectionError(
            "Connect superseded by disconnect or a newer connect",
            venue_id=venue_id,
            url=channel_url,
            component="ConnectionManager",
        )

    async def _stop_quietly(self, transport: Transport) -> None:
        try:
            await transport.stop()
        except Exception as e:
            self._log.debug("Ignoring stop failure after failed connect: %s", e)
