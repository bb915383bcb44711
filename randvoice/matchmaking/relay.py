"""Signaling relay: forwards offer/answer/candidate payloads to the current partner."""

from __future__ import annotations

import enum
import logging
from typing import TYPE_CHECKING, Any

from randvoice.protocol import SIGNAL_FIELDS

if TYPE_CHECKING:
    from randvoice.matchmaking.context import MatchmakingContext

logger = logging.getLogger(__name__)


class RelayOutcome(enum.Enum):
    DELIVERED = "delivered"
    DROPPED = "dropped"  # sender is not paired
    ENDED = "ended"  # partner was dead, pairing torn down instead


class SignalingRelay:
    """Forwards signaling messages verbatim; never inspects the payload."""

    def __init__(self, ctx: MatchmakingContext) -> None:
        self._ctx = ctx

    def relay(self, from_id: str, event: str, payload: Any) -> RelayOutcome:
        """Forward *payload* under *event* to *from_id*'s partner as ``{from, <field>}``."""
        field = SIGNAL_FIELDS.get(event)
        if field is None:
            msg = f"not a signaling event: {event}"
            raise ValueError(msg)

        ctx = self._ctx
        ctx.registry.touch(from_id)
        partner_id = ctx.active.partner(from_id)
        if partner_id is None or partner_id not in ctx.registry:
            logger.debug("Dropped %s from unpaired session %s", event, from_id)
            return RelayOutcome.DROPPED

        partner = ctx.registry.lookup(partner_id)
        if partner is None or not partner.connected:
            logger.info("Partner %s of %s is gone, ending call", partner_id, from_id)
            ctx.end_session(from_id, partner_id)
            return RelayOutcome.ENDED

        partner.emit(event, {"from": from_id, field: payload})
        return RelayOutcome.DELIVERED

    def end_call(self, from_id: str) -> bool:
        """Explicit hang-up. Returns True if a pairing was dissolved."""
        ctx = self._ctx
        ctx.registry.touch(from_id)
        logger.info("Session %s ended call", from_id)
        partner_id = ctx.active.partner(from_id)
        if partner_id is None:
            return False
        return ctx.end_session(from_id, partner_id)
