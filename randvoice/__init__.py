"""randvoice: anonymous one-to-one matchmaking and WebRTC signaling relay."""

__version__ = "0.1.0"
