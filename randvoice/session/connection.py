"""Connection handles: the transport-facing side of a session."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import TYPE_CHECKING, Any, Protocol

from aiohttp import WSCloseCode

from randvoice.errors import TransportError
from randvoice.protocol import encode_frame

if TYPE_CHECKING:
    from aiohttp import web

logger = logging.getLogger(__name__)


class Connection(Protocol):
    """What the matchmaking core needs from a transport connection.

    ``emit`` and ``close`` never block: the core mutates shared state and
    notifies clients inside one synchronous step.
    """

    @property
    def connected(self) -> bool: ...

    def emit(self, event: str, data: Any = None) -> None: ...

    def close(self) -> None: ...

    async def wait_closed(self) -> None: ...


_CLOSE = object()


class WebSocketConnection:
    """``Connection`` backed by an aiohttp WebSocket.

    Outbound frames go through a queue drained by a single writer task so
    that ``emit`` is a synchronous enqueue and frames keep their order, even
    when ``close`` is requested right after a final notification.
    """

    def __init__(self, ws: web.WebSocketResponse) -> None:
        self._ws = ws
        self._outbox: asyncio.Queue[object] = asyncio.Queue()
        self._closing = False
        self._writer: asyncio.Task[None] | None = None

    @property
    def connected(self) -> bool:
        return not self._closing and not self._ws.closed

    def start(self) -> None:
        """Start the writer task. Must be called from the event loop."""
        if self._writer is None:
            self._writer = asyncio.create_task(self._write_loop())

    def emit(self, event: str, data: Any = None) -> None:
        if not self.connected:
            logger.debug("Dropping %s for closed connection", event)
            return
        self._outbox.put_nowait(encode_frame(event, data))

    def close(self) -> None:
        """Flush already queued frames, then close the socket."""
        if self._closing:
            return
        self._closing = True
        self._outbox.put_nowait(_CLOSE)

    async def wait_closed(self) -> None:
        """Wait until the writer has flushed and the socket is closed."""
        if self._writer is None:
            if not self._ws.closed:
                await self._ws.close(code=WSCloseCode.GOING_AWAY)
            return
        with contextlib.suppress(asyncio.CancelledError):
            await asyncio.shield(self._writer)

    async def _write_loop(self) -> None:
        try:
            while True:
                item = await self._outbox.get()
                if item is _CLOSE:
                    break
                assert isinstance(item, str)
                try:
                    await self._send(item)
                except TransportError as exc:
                    logger.warning("Transport fault: %s", exc)
                    self._closing = True
                    break
        finally:
            if not self._ws.closed:
                with contextlib.suppress(ConnectionError, RuntimeError):
                    await self._ws.close(code=WSCloseCode.GOING_AWAY)

    async def _send(self, frame: str) -> None:
        try:
            await self._ws.send_str(frame)
        except (ConnectionError, RuntimeError) as exc:
            msg = f"send failed: {exc}"
            raise TransportError(msg) from exc
