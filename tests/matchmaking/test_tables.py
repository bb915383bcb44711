"""Tests for the waiting queue and the active session table."""

from __future__ import annotations

import pytest

from randvoice.matchmaking.tables import ActiveSessionTable, WaitingQueue


class TestWaitingQueue:
    def test_add_is_set_like(self) -> None:
        q = WaitingQueue()
        q.add("a")
        q.add("a")
        assert len(q) == 1
        assert "a" in q

    def test_discard_missing_is_noop(self) -> None:
        q = WaitingQueue()
        q.discard("ghost")
        assert len(q) == 0

    def test_snapshot_is_independent_copy(self) -> None:
        q = WaitingQueue()
        q.add("a")
        snap = q.snapshot()
        q.discard("a")
        assert snap == ["a"]


class TestActiveSessionTable:
    def test_pair_is_symmetric(self) -> None:
        t = ActiveSessionTable()
        t.pair("a", "b")
        assert t.partner("a") == "b"
        assert t.partner("b") == "a"
        assert len(t) == 2
        assert t.pair_count() == 1

    def test_unpair_removes_both_directions(self) -> None:
        t = ActiveSessionTable()
        t.pair("a", "b")
        assert t.unpair("b") == "a"
        assert "a" not in t
        assert "b" not in t

    def test_unpair_twice_is_noop(self) -> None:
        t = ActiveSessionTable()
        t.pair("a", "b")
        t.unpair("a")
        assert t.unpair("a") is None
        assert t.unpair("b") is None

    def test_self_pair_rejected(self) -> None:
        with pytest.raises(ValueError, match="itself"):
            ActiveSessionTable().pair("a", "a")

    def test_double_pair_rejected(self) -> None:
        t = ActiveSessionTable()
        t.pair("a", "b")
        with pytest.raises(ValueError, match="already paired"):
            t.pair("b", "c")
        # The failed pairing left nothing behind.
        assert "c" not in t
        assert t.partner("b") == "a"
