from __future__ import annotations
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple

from common.message import Message


class ConnectionState(str, Enum):
    """Connection lifecycle. Sending is permitted only while CONNECTED."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


@dataclass(frozen=True)
class ChatSnapshot:
    """Read-only view of a session handed to the presentation layer."""
    state: ConnectionState
    last_error: Optional[str]
    username: str
    draft: str
    messages: Tuple[Message, ...]

    @property
    def is_connected(self) -> bool:
        return self.state is ConnectionState.CONNECTED

    def can_send(self) -> bool:
        return self.is_connected and bool(self.draft.strip())
