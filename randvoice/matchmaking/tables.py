"""Waiting queue and the symmetric active-session table."""

from __future__ import annotations

from collections.abc import Iterator


class WaitingQueue:
    """Session ids currently looking for a partner.

    Membership is what matters; no ordering is kept or promised.
    """

    def __init__(self) -> None:
        self._ids: set[str] = set()

    def add(self, session_id: str) -> None:
        self._ids.add(session_id)

    def discard(self, session_id: str) -> None:
        self._ids.discard(session_id)

    def snapshot(self) -> list[str]:
        """Indexable copy of the members, for random selection and safe iteration."""
        return list(self._ids)

    def clear(self) -> None:
        self._ids.clear()

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._ids

    def __len__(self) -> int:
        return len(self._ids)

    def __iter__(self) -> Iterator[str]:
        return iter(self.snapshot())


class ActiveSessionTable:
    """Undirected pairings stored as two directed entries.

    Both directions are written and removed together, so
    ``partner(partner(x)) == x`` holds whenever ``partner(x)`` is defined.
    """

    def __init__(self) -> None:
        self._partners: dict[str, str] = {}

    def pair(self, a: str, b: str) -> None:
        if a == b:
            msg = f"cannot pair a session with itself: {a}"
            raise ValueError(msg)
        for sid in (a, b):
            if sid in self._partners:
                msg = f"session already paired: {sid}"
                raise ValueError(msg)
        self._partners[a] = b
        self._partners[b] = a

    def partner(self, session_id: str) -> str | None:
        return self._partners.get(session_id)

    def unpair(self, session_id: str) -> str | None:
        """Remove *session_id*'s pairing. Returns the former partner, or None if unpaired."""
        partner = self._partners.pop(session_id, None)
        if partner is not None and self._partners.get(partner) == session_id:
            del self._partners[partner]
        return partner

    def pair_count(self) -> int:
        return len(self._partners) // 2

    def clear(self) -> None:
        self._partners.clear()

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._partners

    def __len__(self) -> int:
        """Number of directed entries (twice the number of pairs)."""
        return len(self._partners)

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._partners))
