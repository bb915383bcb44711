"""Tests for the connection registry."""

from __future__ import annotations

import re
from datetime import UTC, datetime

import pytest
import time_machine

from randvoice.session.registry import ConnectionRegistry, generate_session_id
from tests.conftest import FakeClock, FakeConnection


class TestGenerateSessionId:
    def test_format(self) -> None:
        sid = generate_session_id()
        assert re.fullmatch(r"[0-9a-z]{10,}", sid)

    def test_unique(self) -> None:
        assert len({generate_session_id() for _ in range(200)}) == 200


class TestRegistry:
    def test_register_and_lookup(self, clock: FakeClock) -> None:
        reg = ConnectionRegistry(clock)
        conn = FakeConnection()
        entry = reg.register("a", conn)
        assert entry.last_seen == clock.now
        assert reg.lookup("a") is conn
        assert "a" in reg
        assert len(reg) == 1

    def test_duplicate_id_rejected(self) -> None:
        reg = ConnectionRegistry()
        reg.register("a", FakeConnection())
        with pytest.raises(ValueError, match="already registered"):
            reg.register("a", FakeConnection())

    def test_lookup_missing_returns_none(self) -> None:
        assert ConnectionRegistry().lookup("nope") is None

    def test_is_connected_follows_transport(self) -> None:
        reg = ConnectionRegistry()
        conn = FakeConnection()
        reg.register("a", conn)
        assert reg.is_connected("a") is True
        conn.drop()
        # Still registered, but no longer live.
        assert "a" in reg
        assert reg.is_connected("a") is False

    def test_is_connected_unknown_id(self) -> None:
        assert ConnectionRegistry().is_connected("ghost") is False

    def test_touch_advances_last_seen(self, clock: FakeClock) -> None:
        reg = ConnectionRegistry(clock)
        reg.register("a", FakeConnection())
        clock.advance(42)
        reg.touch("a")
        assert reg.last_seen("a") == clock.now

    def test_touch_never_moves_backwards(self, clock: FakeClock) -> None:
        reg = ConnectionRegistry(clock)
        reg.register("a", FakeConnection())
        before = reg.last_seen("a")
        clock.advance(-30)
        reg.touch("a")
        assert reg.last_seen("a") == before

    def test_touch_unknown_is_noop(self) -> None:
        reg = ConnectionRegistry()
        reg.touch("ghost")
        assert reg.last_seen("ghost") is None

    def test_remove_is_idempotent(self) -> None:
        reg = ConnectionRegistry()
        reg.register("a", FakeConnection())
        assert reg.remove("a") is not None
        assert reg.remove("a") is None
        assert len(reg) == 0

    def test_ids_snapshot_allows_removal_while_iterating(self) -> None:
        reg = ConnectionRegistry()
        for sid in ("a", "b", "c"):
            reg.register(sid, FakeConnection())
        for sid in reg.ids():
            reg.remove(sid)
        assert len(reg) == 0

    def test_default_clock_ignores_wall_clock_steps(self) -> None:
        reg = ConnectionRegistry()
        moment = datetime(2026, 1, 15, 14, 0, tzinfo=UTC)
        with time_machine.travel(moment, tick=False) as traveller:
            reg.register("a", FakeConnection())
            start = reg.last_seen("a")
            # A wall-clock step leaves the liveness clock alone.
            traveller.shift(-3600)
            reg.touch("a")
            assert reg.now() >= start
            assert reg.now() - start < 60
            assert reg.last_seen("a") >= start
