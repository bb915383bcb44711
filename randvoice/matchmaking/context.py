"""Matchmaking context: the single owner of registry, waiting queue and pairings.

One instance per process, passed by reference to the server, the pairing
engine, the relay, the liveness monitor and the shutdown coordinator.

Every method here is synchronous. Handlers run on one event loop and never
``await`` between reading and writing shared state, so each inbound event is
applied atomically with respect to all others.
"""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING, Any

from randvoice import protocol
from randvoice.matchmaking.tables import ActiveSessionTable, WaitingQueue
from randvoice.session.registry import ConnectionRegistry, generate_session_id

if TYPE_CHECKING:
    from collections.abc import Callable

    from randvoice.session.connection import Connection

logger = logging.getLogger(__name__)


class MatchmakingContext:
    """Shared matchmaking state plus the lifecycle operations over it."""

    def __init__(
        self,
        *,
        clock: Callable[[], float] = time.monotonic,
        id_factory: Callable[[], str] = generate_session_id,
    ) -> None:
        self.registry = ConnectionRegistry(clock)
        self.waiting = WaitingQueue()
        self.active = ActiveSessionTable()
        self._id_factory = id_factory
        self._started = time.monotonic()
        self._shutting_down = False

    # -- Lifecycle --

    @property
    def shutting_down(self) -> bool:
        return self._shutting_down

    def begin_shutdown(self) -> None:
        self._shutting_down = True

    def connect(self, connection: Connection) -> str:
        """Register a freshly accepted connection and greet it.

        Broadcasts the new ``online-count`` to everyone, then sends
        ``connect-info`` to the newcomer.
        """
        session_id = self._id_factory()
        while session_id in self.registry:
            session_id = self._id_factory()
        self.registry.register(session_id, connection)
        online = len(self.registry)
        logger.info("Session %s connected (total=%d)", session_id, online)

        self.broadcast(protocol.ONLINE_COUNT, online)
        connection.emit(
            protocol.CONNECT_INFO,
            protocol.ConnectInfo(
                user_id=session_id,
                server_time=protocol.utc_timestamp(),
                online_count=online,
            ),
        )
        return session_id

    def disconnect(self, session_id: str, reason: str = "") -> None:
        """Transport reported the connection closed."""
        logger.info("Session %s disconnected: %s", session_id, reason or "unknown")
        known = session_id in self.registry
        self.destroy_session(session_id)
        if known:
            self.broadcast(protocol.ONLINE_COUNT, len(self.registry))

    def destroy_session(self, session_id: str) -> bool:
        """Remove *session_id* from all three structures. Safe to call repeatedly.

        A current partner is notified via ``end_session``. Returns False when
        the session was already gone.
        """
        partner = self.active.partner(session_id)
        if partner is not None:
            self.end_session(session_id, partner)
        self.waiting.discard(session_id)
        removed = self.registry.remove(session_id) is not None
        if removed:
            logger.debug("Session %s cleaned up", session_id)
        return removed

    def end_session(self, a: str, b: str) -> bool:
        """Dissolve the pairing between *a* and *b* and tell whoever is still live.

        Idempotent: when neither side has a table entry any more, nothing is
        removed and nobody is notified. Returns True if a pairing was removed.
        """
        removed = False
        for sid in (a, b):
            if self.active.unpair(sid) is not None:
                removed = True
        if not removed:
            return False

        for sid in (a, b):
            conn = self.registry.lookup(sid)
            if conn is not None and conn.connected:
                conn.emit(protocol.CALL_ENDED)
        logger.info("Ended call between %s and %s", a, b)
        return True

    # -- Notifications --

    def notify(self, session_id: str, event: str, data: Any = None) -> bool:
        """Send to one session if it is registered and live."""
        conn = self.registry.lookup(session_id)
        if conn is None or not conn.connected:
            return False
        conn.emit(event, data)
        return True

    def broadcast(self, event: str, data: Any = None) -> int:
        """Send to every live session. Returns the number of recipients."""
        sent = 0
        for entry in self.registry.entries():
            if entry.connection.connected:
                entry.connection.emit(event, data)
                sent += 1
        return sent

    def heartbeat(self, session_id: str) -> None:
        self.registry.touch(session_id)
        self.notify(session_id, protocol.HEARTBEAT_ACK)

    # -- Sweeps --

    def reap_inactive(self, timeout: float) -> list[str]:
        """Force-close and destroy sessions idle for longer than *timeout* seconds."""
        now = self.registry.now()
        reaped: list[str] = []
        for entry in self.registry.entries():
            idle = now - entry.last_seen
            if idle <= timeout:
                continue
            logger.info("Reaping inactive session %s (idle %.0fs)", entry.session_id, idle)
            if entry.connection.connected:
                entry.connection.close()
            self.destroy_session(entry.session_id)
            reaped.append(entry.session_id)
        return reaped

    def sweep_stale(self) -> list[str]:
        """Destroy registered sessions whose transport already reports them closed."""
        stale = [e.session_id for e in self.registry.entries() if not e.connection.connected]
        for session_id in stale:
            logger.info("Cleaning up stale connection for session %s", session_id)
            self.destroy_session(session_id)
        return stale

    def stats(self) -> protocol.ServerStats:
        return protocol.ServerStats(
            total_users=len(self.registry),
            waiting_users=len(self.waiting),
            active_connections=self.active.pair_count(),
            server_time=protocol.utc_timestamp(),
            uptime=round(time.monotonic() - self._started, 3),
        )

    def online_count(self) -> int:
        return len(self.registry)

    def clear(self) -> None:
        self.waiting.clear()
        self.active.clear()
        self.registry.clear()
