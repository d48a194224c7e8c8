"""
AT-Log Viewer - Configuration Management

Handles loading, saving, and validating viewer settings.
Settings persist to ~/.config/at-log-viewer/settings.json

The port and auth key mirror the AT WebServer's own ``websocket_port`` and
``websocket_auth_key`` options. The key is read from this file in plain
text; keep the file private (it is saved with mode 0600).
"""

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

DEFAULT_CONFIG: Dict[str, Any] = {
    "host": "127.0.0.1",
    "websocket_port": 8765,
    "websocket_auth_key": "",
    "max_lines": 1000,
    "flush_interval_ms": 200,
    "reconnect_delay": 5.0,
}

# Valid ranges for numeric settings: key -> (min, max)
_NUMERIC_LIMITS: Dict[str, tuple] = {
    "websocket_port": (1, 65535),
    "max_lines": (1, 1_000_000),
    "flush_interval_ms": (0, 60_000),
    "reconnect_delay": (0.0, 3600.0),
}


def default_config_path() -> Path:
    return Path.home() / ".config" / "at-log-viewer" / "settings.json"


class ViewerConfig:
    """Configuration manager for the log viewer."""

    def __init__(self, config_path: Optional[Path] = None):
        self._config_path = config_path or default_config_path()
        self._settings: Dict[str, Any] = dict(DEFAULT_CONFIG)
        self.load()

    @property
    def path(self) -> Path:
        return self._config_path

    def load(self) -> None:
        """Load settings from disk, falling back to defaults."""
        if self._config_path.exists():
            try:
                with open(self._config_path, "r") as f:
                    saved = json.load(f)
                if not isinstance(saved, dict):
                    raise ValueError("settings file must contain a JSON object")
                for key, value in saved.items():
                    self.set(key, value)
                logger.info("Loaded settings from %s", self._config_path)
            except (ValueError, OSError) as e:
                logger.warning("Failed to load settings: %s, using defaults", e)
        else:
            logger.info("No settings file found, using defaults")

    def save(self) -> None:
        """Persist current settings to disk."""
        self._config_path.parent.mkdir(parents=True, exist_ok=True)
        try:
            with open(self._config_path, "w") as f:
                json.dump(self._settings, f, indent=2)
            os.chmod(self._config_path, 0o600)
            logger.info("Saved settings to %s", self._config_path)
        except OSError as e:
            logger.error("Failed to save settings: %s", e)

    def get(self, key: str, default: Any = None) -> Any:
        return self._settings.get(key, default)

    def set(self, key: str, value: Any) -> None:
        """Set a known key. Unknown keys and out-of-range numbers are ignored."""
        if key not in DEFAULT_CONFIG:
            logger.debug("Ignoring unknown setting %r", key)
            return
        if key in _NUMERIC_LIMITS:
            try:
                value = type(DEFAULT_CONFIG[key])(value)
            except (TypeError, ValueError):
                logger.warning("Invalid value for %s: %r", key, value)
                return
            lo, hi = _NUMERIC_LIMITS[key]
            if not lo <= value <= hi:
                logger.warning("%s=%r out of range [%s, %s]", key, value, lo, hi)
                return
        elif value is None:
            value = DEFAULT_CONFIG[key]
        self._settings[key] = value

    def update(self, settings: Dict[str, Any]) -> None:
        for key, value in settings.items():
            self.set(key, value)

    def to_dict(self) -> Dict[str, Any]:
        return dict(self._settings)

    # -- Derived values --

    def websocket_url(self) -> str:
        return f"ws://{self._settings['host']}:{self._settings['websocket_port']}"

    def auth_key(self) -> Optional[str]:
        """The configured key, or None when authentication is disabled."""
        key = self._settings.get("websocket_auth_key") or ""
        return str(key) if key else None

    def flush_interval(self) -> float:
        return self._settings["flush_interval_ms"] / 1000.0
