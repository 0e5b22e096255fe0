"""
aiohttp-backed connection to the DTN daemon.

aiohttp is asyncio-only while the bridge runs on plain threads, so the client
session lives on a private event loop thread. Reader and dispatcher threads
block on futures scheduled onto that loop; no protocol logic runs there.
"""

from __future__ import annotations

import asyncio
import enum
import logging
import threading
from collections.abc import Coroutine
from dataclasses import dataclass
from typing import Any, TypeVar

import aiohttp

from .constants import HTTP_NODE_ID, HTTP_REGISTER, HTTP_UNREGISTER, WS_PATH
from .errors import TransportError

T = TypeVar("T")


class FrameKind(enum.Enum):
    TEXT = "text"
    BINARY = "binary"
    CLOSED = "closed"
    ERROR = "error"


@dataclass(frozen=True)
class Frame:
    kind: FrameKind
    data: str | bytes | None = None


def _host_for_url(host: str) -> str:
    if ":" in host and not host.startswith("["):
        return f"[{host}]"
    return host


class EventLoopThread:
    def __init__(self, name: str = "dtnchat-aiohttp") -> None:
        self._loop = asyncio.new_event_loop()
        self._thread = threading.Thread(target=self._run, name=name, daemon=True)
        self._thread.start()

    def _run(self) -> None:
        asyncio.set_event_loop(self._loop)
        self._loop.run_forever()

    def run(self, coro: Coroutine[Any, Any, T], timeout: float | None = None) -> T:
        fut = asyncio.run_coroutine_threadsafe(coro, self._loop)
        return fut.result(timeout)

    def stop(self) -> None:
        if self._loop.is_running():
            self._loop.call_soon_threadsafe(self._loop.stop)
        self._thread.join(timeout=2.0)


class DaemonClient:
    """REST helpers plus the WebSocket factory for one daemon."""

    def __init__(
        self, host: str, port: int, *, timeout: float = 10.0, loop: EventLoopThread | None = None
    ) -> None:
        self.host = host
        self.port = int(port)
        self.timeout = float(timeout)
        self.log = logging.getLogger("dtnchat.transport")
        self._loop = loop or EventLoopThread()
        self._session: aiohttp.ClientSession | None = None

    @property
    def base_url(self) -> str:
        return f"http://{_host_for_url(self.host)}:{self.port}"

    @property
    def ws_url(self) -> str:
        return f"ws://{_host_for_url(self.host)}:{self.port}{WS_PATH}"

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=None, connect=self.timeout)
            )
        return self._session

    async def _get_text(self, path: str) -> str:
        session = await self._get_session()
        url = f"{self.base_url}{path}"
        async with session.get(
            url, timeout=aiohttp.ClientTimeout(total=self.timeout)
        ) as resp:
            body = await resp.text()
            if resp.status >= 400:
                raise TransportError(f"HTTP {resp.status} for {path}: {body[:200]}")
            return body

    def _request(self, path: str) -> str:
        try:
            return self._loop.run(self._get_text(path), timeout=self.timeout + 1.0)
        except TransportError:
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError, TimeoutError, OSError) as e:
            raise TransportError(f"request {path} failed: {e}") from e

    def local_node_id(self) -> str:
        node_id = self._request(HTTP_NODE_ID).strip()
        self.log.debug("Daemon node id=%s", node_id)
        return node_id

    def register_endpoint(self, endpoint: object) -> str:
        reply = self._request(f"{HTTP_REGISTER}?{endpoint}")
        self.log.debug("Registered endpoint=%s reply=%r", endpoint, reply)
        return reply

    def unregister_endpoint(self, endpoint: object) -> str:
        reply = self._request(f"{HTTP_UNREGISTER}?{endpoint}")
        self.log.debug("Unregistered endpoint=%s reply=%r", endpoint, reply)
        return reply

    def ws(self) -> WebSocketTransport:
        async def _connect() -> aiohttp.ClientWebSocketResponse:
            session = await self._get_session()
            return await session.ws_connect(self.ws_url, autoping=True)

        try:
            ws = self._loop.run(_connect(), timeout=self.timeout + 1.0)
        except (aiohttp.ClientError, asyncio.TimeoutError, TimeoutError, OSError) as e:
            raise TransportError(f"cannot connect to {self.ws_url}: {e}") from e

        self.log.info("Connected url=%s", self.ws_url)
        return WebSocketTransport(ws, self._loop)

    def close(self) -> None:
        async def _close() -> None:
            if self._session is not None and not self._session.closed:
                await self._session.close()

        try:
            self._loop.run(_close(), timeout=2.0)
        except Exception:
            self.log.debug("Error closing HTTP session", exc_info=True)
        self._loop.stop()


class WebSocketTransport:
    """
    The physical duplex connection.

    ``send_text``/``send_binary`` are called from a single writer thread;
    ``receive`` from a single reader thread.
    """

    def __init__(self, ws: aiohttp.ClientWebSocketResponse, loop: EventLoopThread) -> None:
        self._ws = ws
        self._loop = loop
        self.log = logging.getLogger("dtnchat.transport")

    @property
    def closed(self) -> bool:
        return self._ws.closed

    def send_text(self, text: str) -> None:
        if self.log.isEnabledFor(logging.DEBUG):
            self.log.debug("TX text=%r", text)
        try:
            self._loop.run(self._ws.send_str(text))
        except (aiohttp.ClientError, ConnectionError, RuntimeError) as e:
            raise TransportError(f"send failed: {e}") from e

    def send_binary(self, data: bytes) -> None:
        if self.log.isEnabledFor(logging.DEBUG):
            self.log.debug("TX binary bytes=%s", len(data))
        try:
            self._loop.run(self._ws.send_bytes(bytes(data)))
        except (aiohttp.ClientError, ConnectionError, RuntimeError) as e:
            raise TransportError(f"send failed: {e}") from e

    def receive(self) -> Frame:
        try:
            msg = self._loop.run(self._ws.receive())
        except (aiohttp.ClientError, ConnectionError, RuntimeError) as e:
            return Frame(FrameKind.ERROR, str(e))

        if msg.type == aiohttp.WSMsgType.TEXT:
            return Frame(FrameKind.TEXT, msg.data)
        if msg.type == aiohttp.WSMsgType.BINARY:
            return Frame(FrameKind.BINARY, msg.data)
        if msg.type == aiohttp.WSMsgType.ERROR:
            return Frame(FrameKind.ERROR, str(self._ws.exception()))
        # CLOSE, CLOSING, CLOSED
        return Frame(FrameKind.CLOSED, msg.extra if isinstance(msg.extra, str) else None)

    def close(self) -> None:
        try:
            self._loop.run(self._ws.close(), timeout=2.0)
        except Exception:
            self.log.debug("Error closing websocket", exc_info=True)
