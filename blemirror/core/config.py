"""
Core configuration settings for blemirror.

Module-level paths and log categories follow the XDG layout; the runtime knobs
(timeouts, poll budgets, grace delay) live in :class:`ClientConfig` and can be
overridden from a YAML file.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml

from blemirror.core.policies import RetryPolicy

# Base paths
DATA_DIR = Path(os.getenv("XDG_DATA_HOME", Path.home() / ".local/share")) / "blemirror"
CONFIG_DIR = Path(os.getenv("XDG_CONFIG_HOME", Path.home() / ".config")) / "blemirror"

# Logging configuration
LOG_DIR = Path(os.getenv("BLEMIRROR_LOG_DIR", DATA_DIR / "logs"))

# Log types
LOG__GENERAL = "GENERAL"
LOG__DEBUG = "DEBUG"
LOG__USER = "USERMODE"

# Default configuration file (optional)
DEFAULT_CONFIG_FILE = CONFIG_DIR / "config.yaml"
CONFIG_ENV_VAR = "BLEMIRROR_CONFIG"

# Bus call timeouts in seconds; None means "bus default"
CONNECT_TIMEOUT = 30.0
PAIR_TIMEOUT = 30.0
DISCONNECT_TIMEOUT = 10.0
READ_TIMEOUT = 10.0
WRITE_TIMEOUT = 10.0
NOTIFY_TIMEOUT = 10.0

# Seconds between "Connected" and the deferred service enumeration
SERVICES_GRACE_DELAY = 2.0

_POLICY_FIELDS = ("connect_poll", "disconnect_poll", "services_poll", "power_poll")


@dataclass
class ClientConfig:
    """Runtime knobs shared by the manager and every mirror it creates."""

    adapter_name: Optional[str] = None
    connect_timeout: Optional[float] = CONNECT_TIMEOUT
    pair_timeout: Optional[float] = PAIR_TIMEOUT
    disconnect_timeout: Optional[float] = DISCONNECT_TIMEOUT
    read_timeout: Optional[float] = READ_TIMEOUT
    write_timeout: Optional[float] = WRITE_TIMEOUT
    notify_timeout: Optional[float] = NOTIFY_TIMEOUT
    discovery_timeout: Optional[float] = None
    property_timeout: Optional[float] = None
    services_grace_delay: float = SERVICES_GRACE_DELAY
    connect_poll: RetryPolicy = field(default_factory=lambda: RetryPolicy(50, 0.1))
    disconnect_poll: RetryPolicy = field(default_factory=lambda: RetryPolicy(30, 0.1))
    services_poll: RetryPolicy = field(default_factory=lambda: RetryPolicy(100, 0.1))
    power_poll: RetryPolicy = field(default_factory=lambda: RetryPolicy(10, 0.1))

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ClientConfig":
        """Build a config from a plain mapping (e.g. parsed YAML).

        Retry policies are given as ``{"attempts": int, "interval": float}``.
        """
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ValueError(f"Unknown configuration keys: {', '.join(sorted(unknown))}")

        kwargs: Dict[str, Any] = {}
        for key, value in data.items():
            if key in _POLICY_FIELDS:
                if not isinstance(value, dict):
                    raise ValueError(f"{key} must be a mapping with attempts/interval")
                kwargs[key] = RetryPolicy(
                    attempts=int(value.get("attempts", 1)),
                    interval=float(value.get("interval", 0.0)),
                )
            else:
                kwargs[key] = value
        return cls(**kwargs)


def load_config(path: Union[str, Path, None] = None) -> ClientConfig:
    """Load :class:`ClientConfig` from YAML.

    Resolution order: explicit *path*, ``$BLEMIRROR_CONFIG``, the per-user
    default file.  Missing default file yields the built-in defaults; an
    explicitly requested file that does not exist raises ``FileNotFoundError``.
    """
    explicit = path or os.getenv(CONFIG_ENV_VAR)
    config_path = Path(explicit) if explicit else DEFAULT_CONFIG_FILE

    if not config_path.exists():
        if explicit:
            raise FileNotFoundError(f"Configuration file not found: {config_path}")
        return ClientConfig()

    with open(config_path, "r", encoding="utf-8") as fh:
        data = yaml.safe_load(fh) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Configuration root must be a mapping: {config_path}")
    return ClientConfig.from_dict(data)
