from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional
import json

from common.errors import DecodeError
from common.utils import new_message_id

DEFAULT_USERNAME = "Anon"

_WIRE_FIELDS = ("id", "user", "text", "timestamp")
_TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%SZ"


@dataclass(frozen=True)
class Message:
    """
    A single chat message, immutable once created.

    Wire format (one JSON object per text frame):
    {
    "id":        "STRING (UUID textual form for locally created messages)",
    "user":      "STRING",
    "text":      "STRING",
    "timestamp": "ISO-8601, e.g. 2024-01-01T00:00:00Z"
    }

    Keys beyond these four are ignored on decode.
    """
    id: str
    user: str
    text: str
    timestamp: datetime

    @classmethod
    def create(cls, user: str, text: str, *, timestamp: Optional[datetime] = None,
               message_id: Optional[str] = None) -> 'Message':
        """Build an outgoing message with a fresh id and the current UTC time (whole seconds)."""
        if timestamp is None:
            timestamp = datetime.now(timezone.utc).replace(microsecond=0)
        return cls(
            id=message_id or new_message_id(),
            user=_display_name(user),
            text=text,
            timestamp=_as_utc(timestamp),
        )

    @classmethod
    def from_json(cls, json_str: str) -> 'Message':
        """Parse a JSON text frame into a Message, validating structure"""
        try:
            data = json.loads(json_str)
        except (json.JSONDecodeError, TypeError, RecursionError) as e:
            raise DecodeError(f"Invalid JSON: {e}") from e

        return cls.from_dict(data)

    @classmethod
    def from_dict(cls, data: Any) -> 'Message':
        """Create a Message from a decoded JSON object, validating required fields"""
        if not isinstance(data, dict):
            raise DecodeError(f"Expected a JSON object, got {type(data).__name__}")

        missing = set(_WIRE_FIELDS) - set(data.keys())
        if missing:
            raise DecodeError(f"Missing required fields: {sorted(missing)}")

        for name in _WIRE_FIELDS:
            if not isinstance(data[name], str):
                raise DecodeError(f"'{name}' must be a string")

        if not data['id']:
            raise DecodeError("'id' must not be empty")

        return cls(
            id=data['id'],
            user=_display_name(data['user']),
            text=data['text'],
            timestamp=parse_timestamp(data['timestamp']),
        )

    def to_dict(self) -> Dict[str, str]:
        return {
            'id': self.id,
            'user': self.user,
            'text': self.text,
            'timestamp': format_timestamp(self.timestamp),
        }

    def to_json(self) -> str:
        """Serialize to the compact JSON text frame sent over the socket"""
        return json.dumps(self.to_dict(), separators=(',', ':'), sort_keys=True)


def format_timestamp(ts: datetime) -> str:
    """ISO-8601 in UTC with a 'Z' suffix and whole-second precision."""
    return _as_utc(ts).strftime(_TIMESTAMP_FORMAT)


def parse_timestamp(value: str) -> datetime:
    """
    Parse an ISO-8601 timestamp into an aware UTC datetime.

    Accepts a 'Z' suffix or a numeric offset, and fractional seconds.
    Timestamps without an offset are read as UTC.
    """
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError as e:
        raise DecodeError(f"Invalid ISO-8601 timestamp: {value!r}") from e
    try:
        return _as_utc(parsed)
    except (ValueError, OverflowError) as e:
        raise DecodeError(f"Timestamp out of range: {value!r}") from e


def _as_utc(ts: datetime) -> datetime:
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


def _display_name(user: str) -> str:
    return user if user.strip() else DEFAULT_USERNAME
