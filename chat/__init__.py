"""WebSocket chat client core: connection lifecycle and message session."""

from .connection import ConnectionManager
from .session import MessageSession, is_own_message
from .state import ChatSnapshot, ConnectionState

__all__ = [
    "ChatSnapshot",
    "ConnectionManager",
    "ConnectionState",
    "MessageSession",
    "is_own_message",
]
