"""Live transport abstraction and the aiohttp WebSocket implementation."""

from __future__ import annotations

import asyncio
import inspect
import json
import logging
import uuid
from abc import ABC, abstractmethod
from collections import defaultdict
from collections.abc import Callable
from typing import Any

import aiohttp

logger = logging.getLogger(__name__)

# Seconds to wait before retry number `retry_count`, or None to give up
RetryPolicy = Callable[[int], float | None]

# Separates messages inside one text frame (JSON hub protocol convention)
RECORD_SEPARATOR = "\x1e"


class Transport(ABC):
    """Contract for a live, decoded message channel.

    A transport owns its socket and its own reconnect loop. Consumers register
    handlers before start() and are told about session changes through the
    reconnecting / reconnected / close hooks. Handlers may be plain functions
    or coroutine functions; the transport awaits the latter.

    Lifecycle:
        transport = WebSocketTransport(url, retry_policy)
        transport.on("PriceUpdate", handle)
        transport.on_reconnecting(...)
        await transport.start()      # raises if the handshake fails; no retry
        # ... drops are retried per retry_policy ...
        await transport.stop()       # close hooks fire with error=None
    """

    def __init__(self) -> None:
        self._handlers: dict[str, list[Callable[..., Any]]] = defaultdict(list)
        self._reconnecting: list[Callable[[BaseException | None], Any]] = []
        self._reconnected: list[Callable[[str | None], Any]] = []
        self._closed: list[Callable[[BaseException | None], Any]] = []

    # --- Registration ---

    def on(self, target: str, handler: Callable[..., Any]) -> None:
        """Call handler(*arguments) for every message named ``target``."""
        self._handlers[target].append(handler)

    def on_reconnecting(self, handler: Callable[[BaseException | None], Any]) -> None:
        self._reconnecting.append(handler)

    def on_reconnected(self, handler: Callable[[str | None], Any]) -> None:
        self._reconnected.append(handler)

    def on_close(self, handler: Callable[[BaseException | None], Any]) -> None:
        self._closed.append(handler)

    # --- Lifecycle ---

    @abstractmethod
    async def start(self) -> None:
        """Open the session. Returns once open; raises on handshake failure or timeout."""

    @abstractmethod
    async def stop(self) -> None:
        """Close the session and cancel any reconnect loop. Safe to call repeatedly."""

    @property
    @abstractmethod
    def connection_id(self) -> str | None:
        """Identifier of the current session, if any."""

    # --- Group membership ---

    @property
    def supports_group_join(self) -> bool:
        """Whether join_group() is available from the client side.

        Transports whose group membership is managed by the server return
        False; callers then cannot restore membership after a reconnect.
        """
        return False

    async def join_group(self, group: str) -> None:
        raise NotImplementedError(f"{type(self).__name__} cannot join groups from the client")

    # --- Dispatch helpers for implementations ---

    async def _dispatch(self, target: str, arguments: list[Any]) -> None:
        handlers = self._handlers.get(target)
        if not handlers:
            logger.debug("No handler for message %r", target)
            return
        for handler in list(handlers):
            try:
                await _maybe_await(handler(*arguments))
            except Exception:
                logger.exception("Handler for %r failed", target)

    async def _emit(self, hooks: list[Callable[[Any], Any]], value: Any) -> None:
        for hook in list(hooks):
            try:
                await _maybe_await(hook(value))
            except Exception:
                logger.exception("Transport hook failed")


async def _maybe_await(result: Any) -> Any:
    if inspect.isawaitable(result):
        return await result
    return result


class WebSocketTransport(Transport):
    """Transport over an aiohttp WebSocket carrying JSON invocation messages.

    Each text frame holds one or more JSON objects, separated by
    RECORD_SEPARATOR, of the form ``{"target": "PriceUpdate", "arguments":
    [payload, ...]}``. Frames without a target (pings, acks) are ignored.

    Group membership is managed server-side, so supports_group_join is False.
    """

    def __init__(
        self,
        url: str,
        retry_policy: RetryPolicy,
        connect_timeout: float = 15.0,
        heartbeat: float | None = 30.0,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        super().__init__()
        self._url = url
        self._retry_policy = retry_policy
        self._connect_timeout = connect_timeout
        self._heartbeat = heartbeat
        self._session = session
        self._owns_session = session is None
        self._ws: aiohttp.ClientWebSocketResponse | None = None
        self._task: asyncio.Task | None = None
        self._connection_id: str | None = None
        self._stopping = False

    @property
    def url(self) -> str:
        return self._url

    @property
    def connection_id(self) -> str | None:
        return self._connection_id

    async def start(self) -> None:
        self._stopping = False
        try:
            self._ws = await self._open()
        except BaseException:
            if self._owns_session and self._session is not None:
                await self._session.close()
                self._session = None
            raise
        self._task = asyncio.create_task(self._run(), name="ws-transport")

    async def stop(self) -> None:
        self._stopping = True
        task, self._task = self._task, None
        if task and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        try:
            if self._ws is not None and not self._ws.closed:
                await self._ws.close()
        finally:
            self._ws = None
            if self._owns_session and self._session is not None:
                await self._session.close()
                self._session = None
        self._connection_id = None

    # --- Internal ---

    async def _open(self) -> aiohttp.ClientWebSocketResponse:
        """One handshake attempt, bounded by connect_timeout."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        logger.info("Connecting to %s", self._url)
        ws = await asyncio.wait_for(
            self._session.ws_connect(self._url, heartbeat=self._heartbeat),
            timeout=self._connect_timeout,
        )
        self._connection_id = uuid.uuid4().hex
        logger.info("Connected to %s (connection %s)", self._url, self._connection_id)
        return ws

    async def _run(self) -> None:
        """Receive until the socket drops, then reconnect per the retry policy."""
        while True:
            error = await self._receive()
            if self._stopping:
                return

            logger.warning("Connection to %s lost: %s", self._url, error or "closed by server")
            await self._emit(self._reconnecting, error)

            retry_count = 0
            while True:
                delay = self._retry_policy(retry_count)
                if delay is None:
                    logger.error("Giving up on %s after %d retries", self._url, retry_count)
                    self._ws = None
                    self._connection_id = None
                    await self._emit(self._closed, error or ConnectionResetError("connection lost"))
                    return
                if delay > 0:
                    await asyncio.sleep(delay)
                try:
                    self._ws = await self._open()
                    break
                except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as e:
                    error = e
                    retry_count += 1
                    logger.info(
                        "Reconnect attempt %d to %s failed: %s", retry_count, self._url, e
                    )

            await self._emit(self._reconnected, self._connection_id)

    async def _receive(self) -> BaseException | None:
        ws = self._ws
        if ws is None:
            return None
        try:
            async for msg in ws:
                if msg.type == aiohttp.WSMsgType.TEXT:
                    await self._handle_text(msg.data)
                elif msg.type == aiohttp.WSMsgType.ERROR:
                    return ws.exception()
                elif msg.type in (aiohttp.WSMsgType.CLOSE, aiohttp.WSMsgType.CLOSED):
                    break
                else:
                    logger.debug("Ignoring %s frame", msg.type)
        except (aiohttp.ClientError, OSError) as e:
            return e
        return ws.exception()

    async def _handle_text(self, data: str) -> None:
        for frame in data.split(RECORD_SEPARATOR):
            if not frame.strip():
                continue
            try:
                message = json.loads(frame)
            except json.JSONDecodeError as e:
                logger.warning("Dropping undecodable frame: %s", e)
                continue
            if not isinstance(message, dict) or "target" not in message:
                continue
            arguments = message.get("arguments") or []
            if not isinstance(arguments, list):
                arguments = [arguments]
            await self._dispatch(str(message["target"]), arguments)
