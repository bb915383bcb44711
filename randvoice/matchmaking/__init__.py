"""Matchmaking core: shared tables, pairing engine, signaling relay."""

from randvoice.matchmaking.context import MatchmakingContext
from randvoice.matchmaking.pairing import MatchOutcome, PairingEngine
from randvoice.matchmaking.relay import RelayOutcome, SignalingRelay

__all__ = ["MatchOutcome", "MatchmakingContext", "PairingEngine", "RelayOutcome", "SignalingRelay"]
