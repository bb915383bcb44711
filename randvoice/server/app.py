"""Signaling server: aiohttp app with a WebSocket endpoint and a plain-text status route."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any

from aiohttp import WSCloseCode, WSMsgType, web

from randvoice import protocol
from randvoice.errors import ProtocolError
from randvoice.log_context import set_log_context
from randvoice.session.connection import WebSocketConnection

if TYPE_CHECKING:
    from randvoice.config import TransportConfig
    from randvoice.matchmaking.context import MatchmakingContext
    from randvoice.matchmaking.pairing import PairingEngine
    from randvoice.matchmaking.relay import SignalingRelay

logger = logging.getLogger(__name__)

STATUS_TEXT = "Random Voice Chat Server Running"

_CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
}

EventHandler = Callable[[str, Any], None]
Handler = Callable[[web.Request], Awaitable[web.StreamResponse]]


@web.middleware
async def cors_middleware(request: web.Request, handler: Handler) -> web.StreamResponse:
    """Answer preflight requests and stamp CORS headers on plain HTTP responses."""
    if request.method == "OPTIONS":
        return web.Response(status=200, headers=_CORS_HEADERS)
    response = await handler(request)
    if not isinstance(response, web.WebSocketResponse):
        response.headers.update(_CORS_HEADERS)
    return response


class SignalingServer:
    """HTTP listener hosting the signaling WebSocket.

    Routes:
    - ``GET <transport.path>`` -- WebSocket upgrade, one session per socket.
    - ``GET /{anything}``      -- Plain-text liveness probe.

    Inbound frames are decoded and dispatched to synchronous handlers, so
    each event mutates the matchmaking state in one uninterrupted step.
    """

    def __init__(
        self,
        config: TransportConfig,
        ctx: MatchmakingContext,
        pairing: PairingEngine,
        relay: SignalingRelay,
    ) -> None:
        self._config = config
        self._ctx = ctx
        self._pairing = pairing
        self._relay = relay
        self._runner: web.AppRunner | None = None
        self._handlers: dict[str, EventHandler] = {
            protocol.FIND_RANDOM: self._on_find_random,
            protocol.REQUEST_MATCH: self._on_find_random,
            protocol.WEBRTC_OFFER: self._on_signal(protocol.WEBRTC_OFFER),
            protocol.WEBRTC_ANSWER: self._on_signal(protocol.WEBRTC_ANSWER),
            protocol.ICE_CANDIDATE: self._on_signal(protocol.ICE_CANDIDATE),
            protocol.END_CALL: self._on_end_call,
            protocol.HEARTBEAT: self._on_heartbeat,
        }

    @property
    def port(self) -> int | None:
        """Actual bound port (useful when configured with port 0)."""
        if self._runner is None or not self._runner.addresses:
            return None
        address = self._runner.addresses[0]
        return int(address[1])

    def build_app(self) -> web.Application:
        app = web.Application(middlewares=[cors_middleware])
        app.router.add_get(self._config.path, self._handle_socket)
        app.router.add_get("/{tail:.*}", self._handle_status)
        app.router.add_post("/{tail:.*}", self._handle_status)
        return app

    async def start(self) -> None:
        """Create the aiohttp app and start listening."""
        self._runner = web.AppRunner(self.build_app(), access_log=None)
        await self._runner.setup()
        site = web.TCPSite(self._runner, self._config.host, self._config.port)
        await site.start()
        logger.info(
            "Signaling server listening on %s:%d%s",
            self._config.host,
            self.port or self._config.port,
            self._config.path,
        )

    async def stop(self) -> None:
        """Close the listener."""
        if self._runner:
            await self._runner.cleanup()
            self._runner = None
        logger.info("Signaling server stopped")

    # -- HTTP handlers --

    async def _handle_status(self, _request: web.Request) -> web.Response:
        return web.Response(text=STATUS_TEXT, content_type="text/plain")

    async def _handle_socket(self, request: web.Request) -> web.StreamResponse:
        origin = request.headers.get("Origin")
        if not self._config.origin_allowed(origin):
            logger.warning("WebSocket rejected: origin %s not allowed", origin)
            return web.Response(status=403, text="Origin not allowed")
        if self._ctx.shutting_down:
            return web.Response(status=503, text="Server is shutting down")

        ws = web.WebSocketResponse(
            heartbeat=self._config.ping_interval_seconds,
            max_msg_size=self._config.max_message_bytes,
        )
        await ws.prepare(request)
        if self._ctx.shutting_down:
            # Shutdown began while the handshake was in flight.
            await ws.close(code=WSCloseCode.GOING_AWAY, message=b"Server is shutting down")
            return ws

        connection = WebSocketConnection(ws)
        connection.start()
        session_id = self._ctx.connect(connection)
        set_log_context(operation="ws", session_id=session_id)

        reason = "client disconnect"
        try:
            async for msg in ws:
                if msg.type == WSMsgType.TEXT:
                    self._dispatch(session_id, msg.data)
                elif msg.type == WSMsgType.ERROR:
                    reason = "transport error"
                    logger.warning("Socket error for session %s: %s", session_id, ws.exception())
                else:
                    logger.debug("Ignoring %s frame", msg.type.name)
        finally:
            if ws.close_code == WSCloseCode.ABNORMAL_CLOSURE and reason == "client disconnect":
                reason = "transport close"
            connection.close()
            self._ctx.disconnect(session_id, reason)
            await connection.wait_closed()
        return ws

    # -- Event dispatch --

    def _dispatch(self, session_id: str, raw: str) -> None:
        try:
            event, data = protocol.decode_frame(raw)
        except ProtocolError as exc:
            logger.warning("Bad frame from %s: %s", session_id, exc)
            return
        handler = self._handlers.get(event)
        if handler is None:
            logger.debug("Unknown event %r from %s", event, session_id)
            return
        handler(session_id, data)

    def _on_find_random(self, session_id: str, _data: Any) -> None:
        logger.info("Session %s looking for random match", session_id)
        self._pairing.request_match(session_id)

    def _on_signal(self, event: str) -> EventHandler:
        field = protocol.SIGNAL_FIELDS[event]

        def handle(session_id: str, data: Any) -> None:
            payload = data.get(field) if isinstance(data, dict) else None
            self._relay.relay(session_id, event, payload)

        return handle

    def _on_end_call(self, session_id: str, _data: Any) -> None:
        self._relay.end_call(session_id)

    def _on_heartbeat(self, session_id: str, _data: Any) -> None:
        self._ctx.heartbeat(session_id)
