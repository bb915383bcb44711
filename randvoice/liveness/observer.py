"""Liveness observers: inactivity reaper and periodic stats/stale sweep."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import TYPE_CHECKING

from randvoice import protocol
from randvoice.log_context import set_log_context

if TYPE_CHECKING:
    from randvoice.config import LivenessConfig
    from randvoice.matchmaking.context import MatchmakingContext

logger = logging.getLogger(__name__)


class _PeriodicObserver:
    """Runs ``_tick`` every ``interval`` seconds in a background task.

    ``start()`` / ``stop()`` own the task. A failing tick is logged and the
    loop keeps going.
    """

    name = "observer"
    operation = ""

    def __init__(self, ctx: MatchmakingContext, interval: float) -> None:
        self._ctx = ctx
        self._interval = interval
        self._task: asyncio.Task[None] | None = None
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        if self._task is not None:
            return
        self._running = True
        self._task = asyncio.create_task(self._loop())
        self._task.add_done_callback(self._log_task_crash)
        logger.info("%s started (every %.0fs)", self.name, self._interval)

    async def stop(self) -> None:
        self._running = False
        if self._task:
            task = self._task
            self._task = None
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        logger.info("%s stopped", self.name)

    async def _loop(self) -> None:
        """Sleep -> tick -> repeat."""
        set_log_context(operation=self.operation)
        try:
            while self._running:
                await asyncio.sleep(self._interval)
                if not self._running:
                    continue
                try:
                    self._tick()
                except Exception:
                    logger.exception("%s tick failed (continuing)", self.name)
        except asyncio.CancelledError:
            logger.debug("%s loop cancelled", self.name)

    def _tick(self) -> None:
        raise NotImplementedError

    def _log_task_crash(self, task: asyncio.Task[None]) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("%s loop crashed: %s", self.name, exc, exc_info=exc)


class InactivityReaper(_PeriodicObserver):
    """Force-disconnects sessions that sent nothing for ``timeout`` seconds."""

    name = "Inactivity reaper"
    operation = "reap"

    def __init__(self, ctx: MatchmakingContext, interval: float, timeout: float) -> None:
        super().__init__(ctx, interval)
        self._timeout = timeout

    def _tick(self) -> None:
        reaped = self._ctx.reap_inactive(self._timeout)
        if reaped:
            logger.info("Reaped %d inactive session(s)", len(reaped))
            self._ctx.broadcast(protocol.ONLINE_COUNT, self._ctx.online_count())


class StatsSweep(_PeriodicObserver):
    """Broadcasts ``server-stats`` and drops registry entries whose transport died.

    The stale scan catches sessions whose disconnect notification never arrived.
    """

    name = "Stats sweep"
    operation = "stats"

    def _tick(self) -> None:
        stats = self._ctx.stats()
        logger.info("Stats: %s", stats.to_wire())
        self._ctx.broadcast(protocol.SERVER_STATS, stats)
        stale = self._ctx.sweep_stale()
        if stale:
            logger.info("Removed %d stale session(s)", len(stale))


class LivenessMonitor:
    """Both sweeps, started and stopped together but scheduled independently."""

    def __init__(self, ctx: MatchmakingContext, config: LivenessConfig) -> None:
        self.reaper = InactivityReaper(
            ctx,
            interval=config.reaper_interval_seconds,
            timeout=config.inactivity_timeout_seconds,
        )
        self.stats = StatsSweep(ctx, interval=config.stats_interval_seconds)

    async def start(self) -> None:
        await self.reaper.start()
        await self.stats.start()

    async def stop(self) -> None:
        await self.reaper.stop()
        await self.stats.stop()
