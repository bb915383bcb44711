"""Shutdown coordinator: drain every session, then close the listener, within a deadline."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any

from randvoice import protocol
from randvoice.errors import ShutdownError
from randvoice.log_context import set_log_context

if TYPE_CHECKING:
    from randvoice.liveness.observer import LivenessMonitor
    from randvoice.matchmaking.context import MatchmakingContext

logger = logging.getLogger(__name__)

EXIT_CLEAN = 0
EXIT_FAILURE = 1

_DEFAULT_MESSAGE = "Server is shutting down. Please reconnect later."


class ShutdownCoordinator:
    """Runs the coordinated shutdown exactly once, however many times it is requested.

    Sequence: stop sweeps, broadcast ``server-shutdown``, send ``call-ended``
    and close every live connection, destroy every session, clear the tables,
    close the listener. Exceeding ``timeout`` yields ``EXIT_FAILURE``.
    """

    def __init__(
        self,
        ctx: MatchmakingContext,
        close_listener: Callable[[], Awaitable[None]],
        *,
        monitor: LivenessMonitor | None = None,
        timeout: float = 10.0,
        message: str = _DEFAULT_MESSAGE,
    ) -> None:
        self._ctx = ctx
        self._close_listener = close_listener
        self._monitor = monitor
        self._timeout = timeout
        self._message = message
        self._task: asyncio.Task[int] | None = None
        self._requested = asyncio.Event()

    @property
    def requested(self) -> bool:
        return self._requested.is_set()

    def request(self, reason: str) -> None:
        """Start shutdown in the background. Later calls are no-ops."""
        if self._task is not None:
            logger.debug("Shutdown already in progress (ignoring %s)", reason)
            return
        logger.info("%s received, shutting down gracefully", reason)
        self._task = asyncio.get_running_loop().create_task(self._run())
        self._requested.set()

    async def shutdown(self, reason: str = "shutdown") -> int:
        self.request(reason)
        return await self.wait()

    async def wait(self) -> int:
        """Block until shutdown has been requested and finished; return the exit code."""
        await self._requested.wait()
        assert self._task is not None
        return await asyncio.shield(self._task)

    def handle_loop_exception(
        self,
        loop: asyncio.AbstractEventLoop,
        context: dict[str, Any],
    ) -> None:
        """Event loop exception handler: an unhandled fault triggers coordinated shutdown."""
        exc = context.get("exception")
        logger.error("Unhandled fault: %s", context.get("message", "unknown"), exc_info=exc)
        if loop.is_running() and not loop.is_closed():
            self.request("Process fault")

    async def _run(self) -> int:
        set_log_context(operation="shutdown")
        try:
            await asyncio.wait_for(self._drain(), timeout=self._timeout)
        except TimeoutError:
            logger.error("Forceful shutdown: did not finish within %.0fs", self._timeout)
            return EXIT_FAILURE
        except ShutdownError:
            logger.exception("Shutdown failed")
            return EXIT_FAILURE
        logger.info("Shutdown complete")
        return EXIT_CLEAN

    async def _drain(self) -> None:
        ctx = self._ctx
        ctx.begin_shutdown()
        if self._monitor is not None:
            await self._monitor.stop()

        ctx.broadcast(
            protocol.SERVER_SHUTDOWN,
            protocol.ServerShutdown(message=self._message, timestamp=protocol.utc_timestamp()),
        )

        connections = [entry.connection for entry in ctx.registry.entries()]
        for conn in connections:
            if conn.connected:
                conn.emit(protocol.CALL_ENDED)
                conn.close()
        for session_id in ctx.registry.ids():
            ctx.destroy_session(session_id)
        ctx.clear()
        logger.info("Drained %d session(s)", len(connections))

        await asyncio.gather(*(conn.wait_closed() for conn in connections))

        try:
            await self._close_listener()
        except Exception as exc:
            msg = f"closing listener failed: {exc}"
            raise ShutdownError(msg) from exc
