from __future__ import annotations


class ChatError(Exception):
    """Base class for errors raised by the chat core."""
    pass


class InvalidEndpointError(ChatError):
    """Raised when the endpoint URL is not a usable ws:// or wss:// URL. Not retried."""
    pass


class TransportError(ChatError):
    """Raised when a frame cannot be sent or the connection is lost."""
    pass


class DecodeError(ChatError):
    """Raised when an inbound frame is not a valid wire-format message."""
    pass


class ConfigError(ChatError):
    """Raised when a configuration value is present but unusable."""
    pass
