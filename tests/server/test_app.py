"""Tests for the aiohttp signaling server."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from typing import Any
from unittest.mock import AsyncMock, patch

import pytest
from aiohttp import ClientWebSocketResponse, WSCloseCode, WSMsgType, web
from aiohttp.test_utils import TestClient, TestServer

from randvoice.config import TransportConfig
from randvoice.matchmaking.context import MatchmakingContext
from randvoice.matchmaking.pairing import PairingEngine
from randvoice.matchmaking.relay import SignalingRelay
from randvoice.server.app import STATUS_TEXT, SignalingServer
from randvoice.shutdown import EXIT_CLEAN, ShutdownCoordinator

_ALLOWED = "http://localhost:3000"


async def _next(ws: ClientWebSocketResponse, event: str) -> Any:
    """Read frames until *event* arrives and return its data."""
    while True:
        frame = await ws.receive_json(timeout=2)
        if frame["event"] == event:
            return frame.get("data")


async def _join(ws: ClientWebSocketResponse) -> str:
    info = await _next(ws, "connect-info")
    return info["userId"]


@pytest.fixture
def ctx() -> MatchmakingContext:
    return MatchmakingContext()


@pytest.fixture
async def client(ctx: MatchmakingContext) -> AsyncIterator[TestClient[Any, Any]]:
    config = TransportConfig(allowed_origins=[_ALLOWED])
    server = SignalingServer(
        config, ctx, PairingEngine(ctx, grace_delay=0.01), SignalingRelay(ctx)
    )
    test_client = TestClient(TestServer(server.build_app()))
    await test_client.start_server()
    yield test_client
    await test_client.close()


# ---------------------------------------------------------------------------
# Plain HTTP
# ---------------------------------------------------------------------------


class TestHttp:
    async def test_status_text(self, client: TestClient[Any, Any]) -> None:
        resp = await client.get("/")
        assert resp.status == 200
        assert await resp.text() == STATUS_TEXT
        assert resp.headers["Access-Control-Allow-Origin"] == "*"

    async def test_any_path_serves_status(self, client: TestClient[Any, Any]) -> None:
        resp = await client.get("/health/whatever")
        assert resp.status == 200
        assert await resp.text() == STATUS_TEXT

    async def test_preflight(self, client: TestClient[Any, Any]) -> None:
        resp = await client.options("/anything")
        assert resp.status == 200
        assert resp.headers["Access-Control-Allow-Methods"] == "GET, POST, OPTIONS"
        assert resp.headers["Access-Control-Allow-Headers"] == "Content-Type"

    async def test_forbidden_origin(self, client: TestClient[Any, Any]) -> None:
        resp = await client.get("/socket", headers={"Origin": "https://evil.example"})
        assert resp.status == 403

    async def test_refuses_sockets_during_shutdown(
        self, client: TestClient[Any, Any], ctx: MatchmakingContext
    ) -> None:
        ctx.begin_shutdown()
        resp = await client.get("/socket")
        assert resp.status == 503


# ---------------------------------------------------------------------------
# WebSocket sessions
# ---------------------------------------------------------------------------


class TestSocket:
    async def test_connect_greeting(self, client: TestClient[Any, Any]) -> None:
        async with client.ws_connect("/socket", origin=_ALLOWED) as ws:
            first = await ws.receive_json(timeout=2)
            second = await ws.receive_json(timeout=2)
            assert first == {"event": "online-count", "data": 1}
            assert second["event"] == "connect-info"
            assert second["data"]["onlineCount"] == 1

    async def test_heartbeat_ack(self, client: TestClient[Any, Any]) -> None:
        async with client.ws_connect("/socket") as ws:
            await _join(ws)
            await ws.send_json({"event": "heartbeat"})
            assert await _next(ws, "heartbeat-ack") is None

    async def test_bad_frames_are_ignored(self, client: TestClient[Any, Any]) -> None:
        async with client.ws_connect("/socket") as ws:
            await _join(ws)
            await ws.send_str("not json")
            await ws.send_json([1, 2, 3])
            await ws.send_json({"event": "chat", "data": "hi"})
            await ws.send_json({"event": "heartbeat"})
            await _next(ws, "heartbeat-ack")
            assert not ws.closed

    async def test_match_and_relay(self, client: TestClient[Any, Any]) -> None:
        async with (
            client.ws_connect("/socket") as ws_a,
            client.ws_connect("/socket") as ws_b,
        ):
            a = await _join(ws_a)
            b = await _join(ws_b)

            await ws_a.send_json({"event": "find-random"})
            await _next(ws_a, "waiting-for-match")
            await ws_b.send_json({"event": "request-match"})

            assert await _next(ws_b, "match-found") == {"partnerId": a, "initiator": True}
            assert await _next(ws_a, "match-found") == {"partnerId": b, "initiator": False}

            offer = {"type": "offer", "sdp": "v=0"}
            await ws_b.send_json({"event": "webrtc-offer", "data": {"offer": offer}})
            assert await _next(ws_a, "webrtc-offer") == {"from": b, "offer": offer}

            await ws_a.send_json({"event": "ice-candidate", "data": {"candidate": "c1"}})
            assert await _next(ws_b, "ice-candidate") == {"from": a, "candidate": "c1"}

    async def test_end_call_notifies_both(self, client: TestClient[Any, Any]) -> None:
        async with (
            client.ws_connect("/socket") as ws_a,
            client.ws_connect("/socket") as ws_b,
        ):
            await _join(ws_a)
            await _join(ws_b)
            await ws_a.send_json({"event": "find-random"})
            await ws_b.send_json({"event": "find-random"})
            await _next(ws_a, "match-found")
            await _next(ws_b, "match-found")

            await ws_a.send_json({"event": "end-call"})
            assert await _next(ws_a, "call-ended") is None
            assert await _next(ws_b, "call-ended") is None

    async def test_partner_disconnect(
        self, client: TestClient[Any, Any], ctx: MatchmakingContext
    ) -> None:
        async with client.ws_connect("/socket") as ws_b:
            await _join(ws_b)
            async with client.ws_connect("/socket") as ws_a:
                await _join(ws_a)
                await ws_a.send_json({"event": "find-random"})
                await ws_b.send_json({"event": "find-random"})
                await _next(ws_a, "match-found")
                await _next(ws_b, "match-found")

            # ws_a closed: b hears call-ended, then the new count.
            assert await _next(ws_b, "call-ended") is None
            assert await _next(ws_b, "online-count") == 1
            assert len(ctx.active) == 0
            assert ctx.online_count() == 1

    async def test_handshake_in_flight_during_shutdown(
        self, client: TestClient[Any, Any], ctx: MatchmakingContext
    ) -> None:
        entered = asyncio.Event()
        release = asyncio.Event()
        original_prepare = web.WebSocketResponse.prepare

        async def held_prepare(ws: web.WebSocketResponse, request: web.Request) -> Any:
            entered.set()
            await release.wait()
            return await original_prepare(ws, request)

        async def open_socket() -> ClientWebSocketResponse:
            return await client.ws_connect("/socket")

        with patch.object(web.WebSocketResponse, "prepare", held_prepare):
            connecting = asyncio.create_task(open_socket())
            await asyncio.wait_for(entered.wait(), timeout=2)

            assert await ShutdownCoordinator(ctx, AsyncMock()).shutdown() == EXIT_CLEAN
            release.set()
            ws = await asyncio.wait_for(connecting, timeout=2)

        msg = await ws.receive(timeout=2)
        assert msg.type == WSMsgType.CLOSE
        assert msg.data == WSCloseCode.GOING_AWAY
        await ws.close()
        assert len(ctx.registry) == 0
