"""Signaling server: aiohttp HTTP/WebSocket ingress."""

from randvoice.server.app import SignalingServer

__all__ = ["SignalingServer"]
