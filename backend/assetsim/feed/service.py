"""Price feed façade: mode selection, state machine and the public read API."""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import datetime, timezone

from .cache import PriceCache
from .config import FeedConfig
from .connection import ConnectionManager, TransportFactory
from .errors import ConnectionError, TeardownError
from .events import Subject, Unsubscribe
from .models import ChannelMembership, ConnectionState, FeedStatus, Tick, channel_name
from .simulator import EmulationEngine
from .throttle import Throttler
from .transport import RetryPolicy, Transport, WebSocketTransport


@dataclass(frozen=True)
class LiveMode:
    """Ticks come from a live transport session."""

    manager: ConnectionManager
    channel: str

    name = "live"

    @property
    def producer(self) -> object:
        return self.manager

    async def stop(self) -> None:
        await self.manager.disconnect()


@dataclass(frozen=True)
class EmulatedMode:
    """Ticks come from the local emulator."""

    engine: EmulationEngine
    symbols: tuple[str, ...]

    name = "emulated"

    @property
    def producer(self) -> object:
        return self.engine

    async def stop(self) -> None:
        await self.engine.stop()


Mode = LiveMode | EmulatedMode


class FeedService:
    """Real-time price feed for one venue at a time.

    State machine:
        DISCONNECTED → CONNECTING → CONNECTED ⇄ RECONNECTING
        CONNECTING / CONNECTED / RECONNECTING → FAILED (unrecoverable)
        any → DISCONNECTED via disconnect()

    There is no automatic way out of FAILED; call connect() again.

    Exactly one Mode is active at a time. connect() fully stops the previous
    Mode before starting the next, and ticks from a Mode that is no longer
    active are dropped, so the cache only ever has one writer. All ticks go
    through the Throttler before reaching the cache (the emulator's initial
    seed is the one exception, so the cache is populated as soon as connect()
    returns).

    Usage:
        feed = FeedService(FeedConfig.from_env())
        unsubscribe = feed.subscribe_prices(lambda tick: print(tick.symbol, tick.price))
        await feed.connect("venue-1")
        feed.get_price("AAPL")
        await feed.disconnect()
    """

    def __init__(
        self,
        config: FeedConfig | None = None,
        *,
        transport_factory: TransportFactory | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._config = config or FeedConfig()
        self._transport_factory = transport_factory or self._default_transport_factory
        self._log = logger or logging.getLogger(__name__)

        self._cache = PriceCache()
        self._throttler = Throttler(self._apply_tick, interval=self._config.throttle_interval_s)
        self._state = ConnectionState.DISCONNECTED
        self._mode: Mode | None = None
        self._venue_id: str | None = None
        self._last_update_at: datetime | None = None

        self._price_updates: Subject[Tick] = Subject("price update")
        self._state_changes: Subject[ConnectionState] = Subject("state change")

    @property
    def config(self) -> FeedConfig:
        return self._config

    # --- Commands ---

    async def connect(self, venue_id: str) -> None:
        """Start receiving prices for ``venue_id``.

        Raises:
            ConnectionError: If venue_id is empty, or the live handshake or the
                emulator fails to start (state becomes FAILED). Also raised when
                disconnect() or a newer connect() supersedes this one mid-handshake;
                the state is then left to the call that superseded it.
        """
        if not isinstance(venue_id, str) or not venue_id.strip():
            raise ConnectionError("Venue id is required to connect", component="FeedService")

        if self._mode is not None:
            await self._dispose_mode()
        self._cache.clear()
        self._venue_id = venue_id
        self._set_state(ConnectionState.CONNECTING)

        if self._config.live:
            await self._connect_live(venue_id)
        else:
            await self._connect_emulated(venue_id)

    async def disconnect(self) -> None:
        """Stop the active Mode and clear all state. Idempotent; never raises."""
        had_mode = self._mode is not None
        await self._dispose_mode()
        self._cache.clear()
        self._venue_id = None
        self._last_update_at = None
        self._set_state(ConnectionState.DISCONNECTED)
        if had_mode:
            self._log.info("Price feed disconnected")

    async def aclose(self) -> None:
        await self.disconnect()

    async def __aenter__(self) -> FeedService:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.disconnect()

    # --- Reads ---

    def get_price(self, symbol: str) -> Tick | None:
        return self._cache.get(symbol)

    def latest_prices(self) -> Mapping[str, Tick]:
        """Read-only snapshot of the latest tick per symbol."""
        return self._cache.all()

    def is_connected(self) -> bool:
        return self._state is ConnectionState.CONNECTED

    def connection_state(self) -> ConnectionState:
        return self._state

    def current_venue(self) -> str | None:
        return self._venue_id

    def channel_membership(self) -> ChannelMembership:
        """Whether the live channel subscription is known to be in effect."""
        if isinstance(self._mode, LiveMode):
            return self._mode.manager.membership
        return ChannelMembership.NONE

    @property
    def version(self) -> int:
        """Price cache version; changes whenever the cache does."""
        return self._cache.version

    def status(self) -> FeedStatus:
        mode = self._mode
        return FeedStatus(
            state=self._state,
            venue_id=self._venue_id,
            mode=mode.name if mode else None,
            membership=self.channel_membership(),
            symbols=len(self._cache),
            last_update_at=self._last_update_at,
            reconnect_count=mode.manager.reconnect_count if isinstance(mode, LiveMode) else 0,
        )

    # --- Subscriptions ---

    def subscribe_prices(self, callback: Callable[[Tick], object]) -> Unsubscribe:
        """Be told about every tick written to the cache."""
        return self._price_updates.subscribe(callback)

    def subscribe_state(self, callback: Callable[[ConnectionState], object]) -> Unsubscribe:
        """Be told about every connection state transition."""
        return self._state_changes.subscribe(callback)

    # --- Modes ---

    def _default_transport_factory(self, url: str, retry_policy: RetryPolicy) -> Transport:
        return WebSocketTransport(url, retry_policy, connect_timeout=self._config.connect_timeout_s)

    async def _connect_live(self, venue_id: str) -> None:
        manager = ConnectionManager(
            transport_factory=self._transport_factory,
            on_tick=lambda tick: self._accept(manager, tick),
            on_state_change=lambda state: self._on_live_state(manager, state),
            max_reconnect_attempts=self._config.max_reconnect_attempts,
            logger=self._log,
        )
        mode = LiveMode(manager=manager, channel=channel_name(venue_id))
        self._mode = mode
        try:
            await manager.connect(venue_id, self._config.hub_url)
        except ConnectionError:
            if self._mode is mode:
                self._mode = None
                self._set_state(ConnectionState.FAILED)
            raise
        if self._mode is mode:
            self._set_state(ConnectionState.CONNECTED)

    async def _connect_emulated(self, venue_id: str) -> None:
        engine = EmulationEngine(
            self._cache,
            on_tick=lambda tick: self._accept(engine, tick),
            symbols=self._config.symbols,
            base_prices=self._config.base_prices,
            period=self._config.emulation_period_s,
            max_step_percent=self._config.max_step_percent,
            seed=self._config.emulation_seed,
            logger=self._log,
        )
        mode = EmulatedMode(engine=engine, symbols=tuple(engine.symbols))
        self._mode = mode
        self._log.info("No live hub configured; emulating venue %s", venue_id)
        try:
            await engine.start(venue_id)
        except Exception as e:
            self._log.error("Emulation failed to start for venue %s: %s", venue_id, e)
            if self._mode is mode:
                self._mode = None
                self._cache.clear()
                self._set_state(ConnectionState.FAILED)
            raise ConnectionError(
                f"Failed to start emulation: {e}",
                venue_id=venue_id,
                component="FeedService",
            ) from e
        self._last_update_at = datetime.now(timezone.utc)
        self._set_state(ConnectionState.CONNECTED)
        for tick in self._cache.all().values():
            self._price_updates.publish(tick)

    async def _dispose_mode(self) -> None:
        mode, self._mode = self._mode, None
        self._throttler.cancel()
        if mode is None:
            return
        try:
            await mode.stop()
        except Exception as e:
            err = TeardownError(f"Failed to stop {mode.name} mode: {e}", component="FeedService")
            self._log.warning("%s", err)

    # --- Tick path ---

    def _is_active(self, producer: object) -> bool:
        return self._mode is not None and self._mode.producer is producer

    def _accept(self, producer: object, tick: Tick) -> None:
        """Entry point for ticks from any Mode; forwards to the Throttler."""
        if not self._is_active(producer):
            return
        if tick.venue_id != self._venue_id:
            self._log.debug(
                "Dropping tick for venue %s while on %s", tick.venue_id, self._venue_id
            )
            return
        self._throttler.push(tick)

    def _apply_tick(self, tick: Tick) -> None:
        """Throttler output: write to the cache and notify subscribers."""
        if self._mode is None or tick.venue_id != self._venue_id:
            return
        self._cache.set(tick)
        self._last_update_at = datetime.now(timezone.utc)
        self._log.debug("Price update %s %s (%s)", tick.symbol, tick.price, tick.change)
        self._price_updates.publish(tick)

    # --- State ---

    def _on_live_state(self, manager: ConnectionManager, state: ConnectionState) -> None:
        if self._is_active(manager):
            self._set_state(state)

    def _set_state(self, state: ConnectionState) -> None:
        if state is self._state:
            return
        previous, self._state = self._state, state
        self._log.debug("Feed state: %s -> %s", previous.value, state.value)
        self._state_changes.publish(state)
