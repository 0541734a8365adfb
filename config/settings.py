"""
Configuration loader for flowgate.
Reads channel and poller settings from a YAML file with environment variable substitution.

Example:
    channels:
      orders:   {type: queue, capacity: 500}
      rejected: {type: queue}
      errors:   {type: queue}
    default_poller: orders
    pollers:
      orders:
        fixed_delay: 0.5
        max_messages_per_poll: 10
        receive_timeout: 1.0
        send_timeout: 5.0
        concurrency: 4
        error_channel: errors
"""
from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import yaml


@dataclass
class ChannelSettings:
    type: str = "queue"                 # "queue" | "direct" | "null"
    capacity: Optional[int] = None      # queue channels only; None = unbounded


@dataclass
class PollerSettings:
    fixed_delay: float = 1.0            # seconds between polls
    fixed_rate: bool = False            # measure the period from start instead of completion
    initial_delay: float = 0.0
    max_messages_per_poll: int = -1     # -1 = drain until empty
    receive_timeout: float = 1.0
    send_timeout: Optional[float] = None
    concurrency: int = 0                # 0 = process inline on the polling task
    error_channel: str = ""             # publish errors here instead of only logging them


@dataclass
class Settings:
    app_name: str = "flowgate"
    debug: bool = False
    channels: dict[str, ChannelSettings] = field(default_factory=dict)
    pollers: dict[str, PollerSettings] = field(default_factory=dict)
    default_poller: str = ""

    def poller(self, name: str = "") -> PollerSettings:
        """Settings for the named poller, falling back to the default poller, then to defaults."""
        name = name or self.default_poller
        return self.pollers.get(name) or self.pollers.get(self.default_poller) or PollerSettings()


_settings: Optional[Settings] = None


def _substitute_env_vars(value: str) -> str:
    """Replace ${VAR_NAME} patterns with environment variable values."""
    pattern = re.compile(r'\$\{(\w+)\}')
    def replacer(match):
        var_name = match.group(1)
        return os.environ.get(var_name, match.group(0))
    return pattern.sub(replacer, value)


def _process_values(obj: Any) -> Any:
    """Recursively substitute env vars in all string values."""
    if isinstance(obj, str):
        return _substitute_env_vars(obj)
    elif isinstance(obj, dict):
        return {k: _process_values(v) for k, v in obj.items()}
    elif isinstance(obj, list):
        return [_process_values(v) for v in obj]
    return obj


def _optional_float(value: Any) -> Optional[float]:
    if value is None or value == "":
        return None
    return float(value)


def _parse_poller(raw: dict[str, Any]) -> PollerSettings:
    defaults = PollerSettings()
    return PollerSettings(
        fixed_delay=float(raw.get("fixed_delay", defaults.fixed_delay)),
        fixed_rate=bool(raw.get("fixed_rate", defaults.fixed_rate)),
        initial_delay=float(raw.get("initial_delay", defaults.initial_delay)),
        max_messages_per_poll=int(raw.get("max_messages_per_poll", defaults.max_messages_per_poll)),
        receive_timeout=float(raw.get("receive_timeout", defaults.receive_timeout)),
        send_timeout=_optional_float(raw.get("send_timeout")),
        concurrency=int(raw.get("concurrency", defaults.concurrency)),
        error_channel=raw.get("error_channel", defaults.error_channel),
    )


def load_settings(config_path: str = None) -> Settings:
    """Load settings from YAML file."""
    global _settings

    if config_path is None:
        config_path = os.environ.get(
            "FLOWGATE_CONFIG",
            str(Path(__file__).parent / "settings.yaml"),
        )

    settings = Settings()

    if Path(config_path).exists():
        with open(config_path) as f:
            raw = yaml.safe_load(f) or {}
        raw = _process_values(raw)

        settings.app_name = raw.get("app_name", settings.app_name)
        settings.debug = raw.get("debug", settings.debug)
        settings.default_poller = raw.get("default_poller", settings.default_poller)

        for ch_name, ch_data in (raw.get("channels") or {}).items():
            ch_data = ch_data or {}
            capacity = ch_data.get("capacity")
            settings.channels[ch_name] = ChannelSettings(
                type=ch_data.get("type", "queue"),
                capacity=int(capacity) if capacity is not None else None,
            )

        for poller_name, poller_data in (raw.get("pollers") or {}).items():
            settings.pollers[poller_name] = _parse_poller(poller_data or {})

    _settings = settings
    return settings


def get_settings() -> Settings:
    """Return cached settings or load from default path."""
    global _settings
    if _settings is None:
        _settings = load_settings()
    return _settings
