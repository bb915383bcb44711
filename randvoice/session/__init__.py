"""Sessions: connection handles and the connection registry."""

from randvoice.session.connection import Connection as Connection
from randvoice.session.connection import WebSocketConnection as WebSocketConnection
from randvoice.session.registry import ConnectionRegistry as ConnectionRegistry
from randvoice.session.registry import SessionEntry as SessionEntry

__all__ = ["Connection", "ConnectionRegistry", "SessionEntry", "WebSocketConnection"]
