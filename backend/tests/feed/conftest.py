"""Fixtures for price feed tests.

FakeTransport stands in for a live session: tests drive messages, drops,
reconnects and closes by hand instead of through a socket.
"""

import asyncio
from datetime import datetime, timezone

import pytest

from assetsim.feed.models import PRICE_UPDATE
from assetsim.feed.transport import Transport


class FakeTransport(Transport):
    """In-memory Transport whose session events are triggered by the test."""

    def __init__(
        self,
        url,
        retry_policy,
        fail_start: BaseException | None = None,
        fail_stop: BaseException | None = None,
        group_join: bool = False,
        fail_join: BaseException | None = None,
        gate: asyncio.Event | None = None,
        join_gate: asyncio.Event | None = None,
    ):
        super().__init__()
        self.url = url
        self.retry_policy = retry_policy
        self.fail_start = fail_start
        self.fail_stop = fail_stop
        self.group_join = group_join
        self.fail_join = fail_join
        self.gate = gate
        self.join_gate = join_gate
        self.started = False
        self.stop_calls = 0
        self.joined: list[str] = []
        self._connection_id: str | None = None

    @property
    def connection_id(self):
        return self._connection_id

    @property
    def supports_group_join(self):
        return self.group_join

    async def start(self):
        # Holds the handshake open until the test sets the gate
        if self.gate is not None:
            await self.gate.wait()
        if self.fail_start is not None:
            raise self.fail_start
        self.started = True
        self._connection_id = "conn-1"

    async def stop(self):
        self.stop_calls += 1
        self.started = False
        if self.fail_stop is not None:
            raise self.fail_stop

    async def join_group(self, group):
        if self.join_gate is not None:
            await self.join_gate.wait()
        if self.fail_join is not None:
            raise self.fail_join
        self.joined.append(group)

    # --- Test drivers ---

    async def deliver(self, payload):
        await self._dispatch(PRICE_UPDATE, [payload])

    async def drop(self, error: BaseException | None = None):
        await self._emit(self._reconnecting, error)

    async def restore(self, connection_id: str = "conn-2"):
        self._connection_id = connection_id
        await self._emit(self._reconnected, connection_id)

    async def close(self, error: BaseException | None = None):
        await self._emit(self._closed, error)


class FakeTransportFactory:
    """Transport factory that remembers every transport it built."""

    def __init__(self, **options):
        self.options = options
        self.created: list[FakeTransport] = []

    def __call__(self, url, retry_policy):
        transport = FakeTransport(url, retry_policy, **self.options)
        self.created.append(transport)
        return transport

    @property
    def last(self) -> FakeTransport:
        return self.created[-1]


@pytest.fixture
def make_factory():
    """Build a FakeTransportFactory with the given FakeTransport options."""
    return FakeTransportFactory


@pytest.fixture
def make_payload():
    """Build a PriceUpdate wire payload."""

    def _make(
        symbol="AAPL",
        price="190.50",
        venue_id="venue-1",
        change="0.50",
        change_percent="0.2632",
        volume=1000,
        timestamp=None,
    ):
        return {
            "venueId": venue_id,
            "symbol": symbol,
            "price": price,
            "change": change,
            "changePercent": change_percent,
            "volume": volume,
            "timestamp": timestamp or datetime.now(timezone.utc).isoformat(),
        }

    return _make
