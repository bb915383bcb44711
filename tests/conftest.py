"""Shared test fixtures."""

from __future__ import annotations

import itertools
from collections.abc import Callable
from typing import Any

import pytest

from randvoice.matchmaking.context import MatchmakingContext


class FakeConnection:
    """In-memory ``Connection`` that records everything sent to it."""

    def __init__(self) -> None:
        self.connected = True
        self.sent: list[tuple[str, Any]] = []
        self.close_calls = 0

    def emit(self, event: str, data: Any = None) -> None:
        if hasattr(data, "to_wire"):
            data = data.to_wire()
        self.sent.append((event, data))

    def close(self) -> None:
        self.close_calls += 1
        self.connected = False

    async def wait_closed(self) -> None:
        return None

    def drop(self) -> None:
        """Simulate the transport dying without a disconnect notification."""
        self.connected = False

    def events(self) -> list[str]:
        return [event for event, _ in self.sent]

    def last(self, event: str) -> Any:
        for name, data in reversed(self.sent):
            if name == event:
                return data
        msg = f"{event} was never sent"
        raise AssertionError(msg)

    def clear(self) -> None:
        self.sent.clear()


class FakeClock:
    """Settable monotonic clock for ``last_seen`` arithmetic."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def assert_consistent(ctx: MatchmakingContext) -> None:
    """The three structures agree with each other."""
    for sid in ctx.active:
        partner = ctx.active.partner(sid)
        assert partner is not None
        assert ctx.active.partner(partner) == sid
        assert sid in ctx.registry
        assert sid not in ctx.waiting
    for sid in ctx.waiting:
        assert sid in ctx.registry


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def ctx(clock: FakeClock) -> MatchmakingContext:
    counter = itertools.count(1)
    return MatchmakingContext(clock=clock, id_factory=lambda: f"user{next(counter)}")


@pytest.fixture
def connect(ctx: MatchmakingContext) -> Callable[[], tuple[str, FakeConnection]]:
    """Register a new FakeConnection and return ``(session_id, connection)``."""

    def _connect() -> tuple[str, FakeConnection]:
        conn = FakeConnection()
        sid = ctx.connect(conn)
        conn.clear()
        return sid, conn

    return _connect
