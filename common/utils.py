from __future__ import annotations
import uuid
from urllib.parse import urlsplit

# ========================================
#           INPUT VALIDATION HELPERS
# ========================================
"""
Helpers the connection manager and the wire codec call to decide whether
an endpoint or an identifier is usable.
"""

_WS_SCHEMES = frozenset({"ws", "wss"})


def is_uuid_v4(s: str) -> bool:
    """
    True if ``s`` is a UUIDv4 in canonical (lowercase, hyphenated) string form.
    """
    try:
        u = uuid.UUID(s)
        return u.version == 4 and str(u) == s.lower()
    except (AttributeError, TypeError, ValueError):
        return False


def new_message_id() -> str:
    return str(uuid.uuid4())


def is_ws_url(url: object) -> bool:
    """
    Accepts 'ws://host[:port]/path' and 'wss://host[:port]/path'.

    - scheme must be ws or wss (case-insensitive)
    - a hostname must be present
    - an explicit port must parse and be between 1 and 65535
    - no whitespace anywhere in the string

    Examples: "wss://chat.example.com/ws", "ws://127.0.0.1:8765"
    """
    if not isinstance(url, str) or not url or any(c.isspace() for c in url):
        return False
    try:
        parts = urlsplit(url)
        port = parts.port
    except ValueError:
        return False
    if parts.scheme.lower() not in _WS_SCHEMES:
        return False
    if not parts.hostname:
        return False
    if port is not None and not 0 < port <= 65535:
        return False
    return True
