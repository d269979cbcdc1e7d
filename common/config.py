"""
Client configuration.

Values come from, in increasing priority: built-in defaults, an optional YAML
file (``~/.wschat/config.yaml`` unless another path is given), and WSCHAT_*
environment variables. Command-line options are applied on top by the CLI.

Example config.yaml:

    endpoint: wss://chat.example.com/ws
    username: Alice
    reconnect_delay: 3
"""

from __future__ import annotations

import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

from common.errors import ConfigError
from common.log import get_logger
from common.message import DEFAULT_USERNAME

logger = get_logger(__name__)

DEFAULT_ENDPOINT = "wss://temple-chat-backend.onrender.com/ws"
DEFAULT_RECONNECT_DELAY = 5.0
DEFAULT_CONFIG_PATH = Path.home() / ".wschat" / "config.yaml"

_ENV_OVERRIDES = {
    "WSCHAT_ENDPOINT": "endpoint",
    "WSCHAT_USERNAME": "username",
    "WSCHAT_RECONNECT_DELAY": "reconnect_delay",
    "WSCHAT_LOG_LEVEL": "log_level",
}


@dataclass(frozen=True)
class ChatConfig:
    endpoint: str = DEFAULT_ENDPOINT
    username: str = DEFAULT_USERNAME
    reconnect_delay: float = DEFAULT_RECONNECT_DELAY
    ping_interval: Optional[float] = 15.0
    ping_timeout: Optional[float] = 45.0
    log_level: str = "INFO"

    def merged(self, **overrides: Any) -> "ChatConfig":
        """Return a copy with every non-None override applied and validated."""
        values = {k: v for k, v in overrides.items() if v is not None}
        return _validated(replace(self, **_coerce(values)))


def load_config(path: Optional[Path] = None, env: Optional[Mapping[str, str]] = None) -> ChatConfig:
    """
    Build a ChatConfig from the YAML file at ``path`` and environment overrides.

    A missing or unreadable file is logged and skipped. Values that are present
    but unusable raise ConfigError.
    """
    env = os.environ if env is None else env
    config_path = path or DEFAULT_CONFIG_PATH

    values: Dict[str, Any] = {}
    values.update(_read_yaml(config_path))

    for var, key in _ENV_OVERRIDES.items():
        if env.get(var):
            values[key] = env[var]

    return _validated(ChatConfig(**_coerce(values)))


def _read_yaml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        logger.debug("No config file at %s; using defaults", path)
        return {}
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        logger.error("Error reading %s: %s", path, e)
        return {}

    if not isinstance(data, dict):
        logger.error("Ignoring %s: top level must be a mapping", path)
        return {}

    known = {f.name for f in fields(ChatConfig)}
    unknown = set(data) - known
    if unknown:
        logger.warning("Ignoring unknown config keys in %s: %s", path, sorted(unknown))
    return {k: v for k, v in data.items() if k in known}


def _coerce(values: Dict[str, Any]) -> Dict[str, Any]:
    out = dict(values)
    for key in ("reconnect_delay", "ping_interval", "ping_timeout"):
        if key in out and out[key] is not None:
            try:
                out[key] = float(out[key])
            except (TypeError, ValueError):
                raise ConfigError(f"{key} must be a number, got {out[key]!r}")
    for key in ("endpoint", "username", "log_level"):
        if key in out and out[key] is not None:
            out[key] = str(out[key])
    return out


def _validated(config: ChatConfig) -> ChatConfig:
    if config.reconnect_delay < 0:
        raise ConfigError("reconnect_delay must not be negative")
    if not config.username.strip():
        config = replace(config, username=DEFAULT_USERNAME)
    return config
