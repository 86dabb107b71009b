"""Tests for WebSocketTransport framing and its reconnect loop (socket mocked out)."""

import asyncio
from unittest.mock import MagicMock

import aiohttp
import pytest

from assetsim.feed.transport import RECORD_SEPARATOR, WebSocketTransport

URL = "ws://feed.test/hub"


def _transport(retry_policy=lambda n: 0.0):
    return WebSocketTransport(URL, retry_policy, connect_timeout=1.0)


def _fake_receive(results):
    """_receive replacement: return each queued result, then block like an idle socket."""

    async def receive():
        if results:
            return results.pop(0)
        await asyncio.Event().wait()

    return receive


@pytest.mark.asyncio
class TestFraming:
    """Decoding text frames into handler calls."""

    async def test_dispatches_by_target(self):
        transport = _transport()
        seen = []
        transport.on("PriceUpdate", seen.append)

        await transport._handle_text('{"target": "PriceUpdate", "arguments": [{"symbol": "AAPL"}]}')

        assert seen == [{"symbol": "AAPL"}]

    async def test_multiple_messages_per_frame(self):
        transport = _transport()
        seen = []
        transport.on("PriceUpdate", seen.append)
        frame = RECORD_SEPARATOR.join(
            [
                '{"target": "PriceUpdate", "arguments": [1]}',
                '{"type": 6}',
                '{"target": "PriceUpdate", "arguments": [2]}',
                "",
            ]
        )

        await transport._handle_text(frame)

        assert seen == [1, 2]

    async def test_bad_frame_skipped(self):
        transport = _transport()
        seen = []
        transport.on("PriceUpdate", seen.append)

        await transport._handle_text(
            "{not json" + RECORD_SEPARATOR + '{"target": "PriceUpdate", "arguments": [3]}'
        )

        assert seen == [3]

    async def test_coroutine_handlers_awaited(self):
        transport = _transport()
        seen = []

        async def handler(payload):
            await asyncio.sleep(0)
            seen.append(payload)

        transport.on("PriceUpdate", handler)
        await transport._handle_text('{"target": "PriceUpdate", "arguments": ["x"]}')

        assert seen == ["x"]

    async def test_failing_handler_does_not_stop_others(self):
        transport = _transport()
        seen = []

        def broken(payload):
            raise RuntimeError("boom")

        transport.on("PriceUpdate", broken)
        transport.on("PriceUpdate", seen.append)
        await transport._handle_text('{"target": "PriceUpdate", "arguments": ["y"]}')

        assert seen == ["y"]

    async def test_no_group_join(self):
        transport = _transport()
        assert transport.supports_group_join is False
        with pytest.raises(NotImplementedError):
            await transport.join_group("ticker:venue-1")


@pytest.mark.asyncio
class TestReconnectLoop:
    """Reconnect behaviour with _open and _receive replaced."""

    async def test_start_failure_propagates(self):
        transport = _transport()

        async def refuse():
            raise asyncio.TimeoutError()

        transport._open = refuse
        with pytest.raises(asyncio.TimeoutError):
            await transport.start()
        await transport.stop()

    async def test_drop_then_reconnect(self):
        transport = _transport()
        dropped, restored = [], []
        transport.on_reconnecting(dropped.append)
        transport.on_reconnected(restored.append)

        error = ConnectionResetError("reset")
        transport._receive = _fake_receive([error])

        opens = []

        async def open_ok():
            opens.append(1)
            transport._connection_id = f"conn-{len(opens)}"
            return MagicMock(closed=True)

        transport._open = open_ok

        await transport.start()
        await asyncio.sleep(0.05)

        assert dropped == [error]
        assert restored == ["conn-2"]
        await transport.stop()
        assert transport.connection_id is None

    async def test_failed_attempts_follow_policy(self):
        attempts = []

        def policy(retry_count):
            attempts.append(retry_count)
            return 0.0

        transport = _transport(policy)
        restored = []
        transport.on_reconnected(restored.append)
        transport._receive = _fake_receive([None])

        opens = []

        async def flaky_open():
            opens.append(1)
            # First open is start(); the next two reconnect attempts fail
            if len(opens) in (2, 3):
                raise aiohttp.ClientConnectionError("refused")
            return MagicMock(closed=True)

        transport._open = flaky_open

        await transport.start()
        await asyncio.sleep(0.05)

        assert attempts == [0, 1, 2]
        assert len(restored) == 1
        await transport.stop()

    async def test_gives_up_when_policy_returns_none(self):
        transport = _transport(lambda n: None)
        closed = []
        transport.on_close(closed.append)

        error = ConnectionResetError("reset")
        transport._receive = _fake_receive([error])

        async def open_ok():
            return MagicMock(closed=True)

        transport._open = open_ok

        await transport.start()
        await asyncio.sleep(0.05)

        assert closed == [error]
        assert transport.connection_id is None
        await transport.stop()

    async def test_stop_is_idempotent(self):
        transport = _transport()
        transport._receive = _fake_receive([])

        async def open_ok():
            return MagicMock(closed=True)

        transport._open = open_ok

        await transport.start()
        await transport.stop()
        await transport.stop()
