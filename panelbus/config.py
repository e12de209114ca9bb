"""Runtime settings read from the environment (and .env, loaded by the server)."""

import os
from dataclasses import dataclass
from typing import Optional

from panelbus.pattern import MatchMode
from panelbus.remote_control import DEFAULT_QUEUE_MAX_SIZE

DEFAULT_HEARTBEAT_INTERVAL_SEC = 30.0


def _env_float(name: str, default: float) -> float:
    try:
        return float(os.environ.get(name, default))
    except (ValueError, TypeError):
        return default


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.environ.get(name, default))
    except (ValueError, TypeError):
        return default


@dataclass
class Settings:
    api_key: Optional[str] = None
    heartbeat_interval_sec: float = DEFAULT_HEARTBEAT_INTERVAL_SEC
    queue_max_size: int = DEFAULT_QUEUE_MAX_SIZE
    match_mode: MatchMode = MatchMode.SEARCH
    panel_name: str = "panel"

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from API_KEY, HEARTBEAT_INTERVAL_SEC, SUBSCRIBER_QUEUE_MAX_SIZE,
        PANELBUS_MATCH_MODE and PANEL_NAME. Bad numbers fall back to defaults."""
        try:
            mode = MatchMode.parse(os.environ.get("PANELBUS_MATCH_MODE", "search"))
        except ValueError:
            mode = MatchMode.SEARCH
        return cls(
            api_key=(os.environ.get("API_KEY") or "").strip() or None,
            heartbeat_interval_sec=_env_float("HEARTBEAT_INTERVAL_SEC", DEFAULT_HEARTBEAT_INTERVAL_SEC),
            queue_max_size=_env_int("SUBSCRIBER_QUEUE_MAX_SIZE", DEFAULT_QUEUE_MAX_SIZE),
            match_mode=mode,
            panel_name=(os.environ.get("PANEL_NAME") or "panel").strip() or "panel",
        )
