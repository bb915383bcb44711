"""Pairing engine: random partner selection with a delayed, revalidated commit."""

from __future__ import annotations

import asyncio
import enum
import logging
import random
from typing import TYPE_CHECKING

from randvoice import protocol
from randvoice.log_context import set_log_context

if TYPE_CHECKING:
    from randvoice.matchmaking.context import MatchmakingContext

logger = logging.getLogger(__name__)


class MatchOutcome(enum.Enum):
    """Result of one pairing step, for logging and tests."""

    WAITING = "waiting"  # requester queued, nobody eligible
    PENDING = "pending"  # candidate chosen, confirmation scheduled
    ABANDONED = "abandoned"  # requester was already gone
    MATCHED = "matched"  # confirmation committed the pair
    RACE_LOST = "race_lost"  # confirmation found the state changed


class PairingEngine:
    """Turns match requests into committed pairings.

    A chosen candidate is not paired immediately. The commit runs as a
    ``call_later`` continuation after ``grace_delay`` seconds, carrying only
    the two ids; it re-reads the live state when it fires because other
    requests may have claimed either side in the meantime. Continuations are
    never cancelled, only neutralized by that check.
    """

    def __init__(
        self,
        ctx: MatchmakingContext,
        grace_delay: float = 2.0,
        rng: random.Random | None = None,
    ) -> None:
        self._ctx = ctx
        self._grace_delay = grace_delay
        self._rng = rng or random.Random()  # noqa: S311

    def request_match(self, requester_id: str) -> MatchOutcome:
        ctx = self._ctx
        ctx.registry.touch(requester_id)

        if not ctx.registry.is_connected(requester_id):
            logger.info("Session %s gone before matching", requester_id)
            ctx.destroy_session(requester_id)
            return MatchOutcome.ABANDONED

        partner = ctx.active.partner(requester_id)
        if partner is not None:
            ctx.end_session(requester_id, partner)

        ctx.waiting.discard(requester_id)

        candidates = [
            sid
            for sid in ctx.waiting.snapshot()
            if sid != requester_id
            and sid in ctx.registry
            and sid not in ctx.active
            and ctx.registry.is_connected(sid)
        ]
        if not candidates:
            self._requeue(requester_id)
            logger.info("Session %s waiting (queue=%d)", requester_id, len(ctx.waiting))
            return MatchOutcome.WAITING

        # Sort first so the draw depends only on the rng, not on set iteration order.
        candidates.sort()
        candidate_id = self._rng.choice(candidates)

        if not ctx.registry.is_connected(candidate_id):
            logger.info("Candidate %s went stale, discarding", candidate_id)
            ctx.destroy_session(candidate_id)
            self._requeue(requester_id)
            return MatchOutcome.WAITING

        loop = asyncio.get_running_loop()
        loop.call_later(self._grace_delay, self._fire_confirmation, requester_id, candidate_id)
        logger.debug(
            "Tentative match %s -> %s, confirming in %.1fs",
            requester_id,
            candidate_id,
            self._grace_delay,
        )
        return MatchOutcome.PENDING

    def confirm_match(self, requester_id: str, candidate_id: str) -> MatchOutcome:
        """Commit a tentative match if both sides are still live and unpaired."""
        ctx = self._ctx
        if (
            ctx.registry.is_connected(requester_id)
            and ctx.registry.is_connected(candidate_id)
            and requester_id not in ctx.active
            and candidate_id not in ctx.active
        ):
            ctx.waiting.discard(requester_id)
            ctx.waiting.discard(candidate_id)
            ctx.active.pair(requester_id, candidate_id)
            logger.info("Matched %s with %s", requester_id, candidate_id)
            ctx.notify(
                requester_id,
                protocol.MATCH_FOUND,
                protocol.MatchFound(partner_id=candidate_id, initiator=True),
            )
            ctx.notify(
                candidate_id,
                protocol.MATCH_FOUND,
                protocol.MatchFound(partner_id=requester_id, initiator=False),
            )
            return MatchOutcome.MATCHED

        logger.info("Match aborted: %s / %s not ready", requester_id, candidate_id)
        if not ctx.registry.is_connected(requester_id):
            ctx.destroy_session(requester_id)
        elif requester_id not in ctx.active:
            self._requeue(requester_id)
        return MatchOutcome.RACE_LOST

    def _fire_confirmation(self, requester_id: str, candidate_id: str) -> None:
        if self._ctx.shutting_down:
            return
        set_log_context(operation="match", session_id=requester_id)
        self.confirm_match(requester_id, candidate_id)

    def _requeue(self, session_id: str) -> None:
        self._ctx.waiting.add(session_id)
        self._ctx.notify(session_id, protocol.WAITING_FOR_MATCH)
