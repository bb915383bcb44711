"""Project-level exception hierarchy."""


class RandVoiceError(Exception):
    """Base for all randvoice exceptions."""


class ConfigError(RandVoiceError):
    """Configuration could not be loaded or validated."""


class ProtocolError(RandVoiceError):
    """Inbound frame is not a well-formed event."""


class TransportError(RandVoiceError):
    """Sending to or closing a client connection failed."""


class ShutdownError(RandVoiceError):
    """Coordinated shutdown did not complete cleanly."""
