"""Connection registry: session id -> connection handle + liveness timestamp."""

from __future__ import annotations

import logging
import secrets
import time
from collections.abc import Callable, Iterator
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from randvoice.session.connection import Connection

logger = logging.getLogger(__name__)

_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"


def _to_base36(value: int) -> str:
    if value == 0:
        return "0"
    digits: list[str] = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def generate_session_id() -> str:
    """Nine random base-36 characters followed by the millisecond clock in base 36."""
    prefix = "".join(secrets.choice(_BASE36) for _ in range(9))
    return prefix + _to_base36(time.time_ns() // 1_000_000)


@dataclass(slots=True)
class SessionEntry:
    """One registered participant."""

    session_id: str
    connection: Connection
    last_seen: float


class ConnectionRegistry:
    """Owns the mapping from session id to connection and its ``last_seen`` time.

    Pure bookkeeping: no notifications, no cleanup of other structures.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._entries: dict[str, SessionEntry] = {}

    def now(self) -> float:
        return self._clock()

    def register(self, session_id: str, connection: Connection) -> SessionEntry:
        if session_id in self._entries:
            msg = f"session id already registered: {session_id}"
            raise ValueError(msg)
        entry = SessionEntry(session_id=session_id, connection=connection, last_seen=self._clock())
        self._entries[session_id] = entry
        return entry

    def lookup(self, session_id: str) -> Connection | None:
        entry = self._entries.get(session_id)
        return entry.connection if entry else None

    def is_connected(self, session_id: str) -> bool:
        """True only if registered *and* the transport still reports the connection live."""
        entry = self._entries.get(session_id)
        return entry is not None and entry.connection.connected

    def touch(self, session_id: str) -> None:
        entry = self._entries.get(session_id)
        if entry is not None:
            entry.last_seen = max(entry.last_seen, self._clock())

    def last_seen(self, session_id: str) -> float | None:
        entry = self._entries.get(session_id)
        return entry.last_seen if entry else None

    def remove(self, session_id: str) -> SessionEntry | None:
        return self._entries.pop(session_id, None)

    def ids(self) -> list[str]:
        """Snapshot of registered ids, safe to iterate while removing."""
        return list(self._entries)

    def entries(self) -> list[SessionEntry]:
        return list(self._entries.values())

    def clear(self) -> None:
        self._entries.clear()

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[str]:
        return iter(self.ids())
