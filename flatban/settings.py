# Flatban runtime settings for `flatban serve`.
# Board-level settings live in .flatban/config.yaml (see config.py);
# these cover how the server and watcher run. Precedence, low to high:
# defaults < settings.yaml < FLATBAN_* environment < CLI flags.

import logging
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Optional

import yaml

logger = logging.getLogger(__name__)

SETTINGS_PATH = Path("~/.config/flatban/settings.yaml")

ENV_OVERRIDES = {
    "FLATBAN_BOARD": "board_root",
    "FLATBAN_HOST": "host",
    "FLATBAN_PORT": "port",
    "FLATBAN_LOG_LEVEL": "log_level",
}


@dataclass
class Settings:
    """Runtime configuration for the live viewer."""

    board_root: str = "."
    host: str = "127.0.0.1"
    port: int = 3847

    # Watcher
    debounce_ms: int = 100

    # Event stream
    listener_queue_size: int = 100
    sse_keepalive_secs: float = 15.0

    log_level: str = "INFO"

    def apply_env(self, environ=None):
        environ = os.environ if environ is None else environ
        for var, attr in ENV_OVERRIDES.items():
            if environ.get(var):
                self._set(attr, environ[var])

    def _set(self, attr: str, value):
        current = getattr(self, attr)
        try:
            if attr == "log_level":
                value = str(value).upper()
                if not isinstance(logging.getLevelName(value), int):
                    raise ValueError(f"unknown log level {value}")
            elif isinstance(current, bool):
                value = str(value).lower() in ("1", "true", "yes")
            elif isinstance(current, int):
                value = int(value)
            elif isinstance(current, float):
                value = float(value)
            else:
                value = str(value)
        except (TypeError, ValueError):
            logger.warning(f"Ignoring invalid value for {attr}: {value!r}")
            return
        setattr(self, attr, value)

    @classmethod
    def load(cls, path: Optional[str] = None, environ=None) -> "Settings":
        """Load settings from YAML, falling back to defaults, then apply env overrides."""
        cfg = cls()
        cfg_path = Path(path).expanduser() if path else SETTINGS_PATH.expanduser()
        if cfg_path.exists():
            try:
                with open(cfg_path, "r") as f:
                    data = yaml.safe_load(f) or {}
                known = {f.name for f in fields(cls)}
                for key, value in data.items():
                    if key in known:
                        cfg._set(key, value)
            except (OSError, yaml.YAMLError, AttributeError) as e:
                logger.warning(f"Could not read settings from {cfg_path}: {e}")
        cfg.apply_env(environ)
        return cfg
