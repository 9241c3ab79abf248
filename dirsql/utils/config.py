"""Configuration management for the dirsql shell."""
from __future__ import annotations
from typing import Dict, Any, Optional
import copy
import os
import json
import logging

from dirsql.core.errors import ConfigError
from dirsql.utils.constants import DEFAULT_OUTPUT_MODE, SUPPORTED_OUTPUT_MODES

logger = logging.getLogger(__name__)

APP_NAME = "dirsql"


def _xdg_dir(env: str, fallback: str) -> str:
    base = os.environ.get(env) or os.path.expanduser(fallback)
    return os.path.join(base, APP_NAME)


def default_config_path() -> str:
    return os.path.join(_xdg_dir("XDG_CONFIG_HOME", "~/.config"), "config.json")


def default_history_path() -> str:
    return os.path.join(_xdg_dir("XDG_DATA_HOME", "~/.local/share"), "history")


# Default configuration
DEFAULT_CONFIG: Dict[str, Any] = {
    "data_dir": ".",
    "ignores": [".git"],
    "output_mode": DEFAULT_OUTPUT_MODE,
    "display_limit": 200,
    "max_col_width": 50,
    "null_marker": "NULL",
    "workers": 4,
    "collision_policy": "suffix",
    "history_file": None,
    "history_size": 1000,
}

# Environment variable -> (key, converter)
ENV_OVERRIDES = {
    "DIRSQL_OUTPUT_MODE": ("output_mode", str),
    "DIRSQL_MAX_COL_WIDTH": ("max_col_width", int),
    "DIRSQL_DISPLAY_LIMIT": ("display_limit", int),
}


class Config:
    """Configuration manager for dirsql settings."""

    def __init__(self, config_file: Optional[str] = None, apply_env: bool = True):
        self.settings: Dict[str, Any] = copy.deepcopy(DEFAULT_CONFIG)
        self.explicit = config_file is not None
        self.config_file = os.path.expanduser(config_file) if config_file else default_config_path()
        self._load_config()
        if apply_env:
            self._apply_env()
        self._validate()

    def _load_config(self) -> None:
        """Load configuration from file if it exists."""
        if not os.path.exists(self.config_file):
            if self.explicit:
                raise ConfigError(f"config file not found: {self.config_file}")
            return
        try:
            with open(self.config_file, 'r', encoding='utf-8') as f:
                loaded = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise ConfigError(f"cannot read config {self.config_file}: {e}") from e
        if not isinstance(loaded, dict):
            raise ConfigError(f"config {self.config_file} must contain a JSON object")
        for key in loaded:
            if key not in DEFAULT_CONFIG:
                logger.warning("Unknown config key '%s' in %s", key, self.config_file)
        self.settings.update(loaded)

    def _apply_env(self) -> None:
        for env, (key, conv) in ENV_OVERRIDES.items():
            raw = os.getenv(env)
            if not raw:
                continue
            try:
                self.settings[key] = conv(raw)
            except ValueError:
                logger.warning("Ignoring %s=%r (not a valid %s)", env, raw, conv.__name__)

    def _validate(self) -> None:
        mode = str(self.settings.get("output_mode", DEFAULT_OUTPUT_MODE)).lower()
        if mode not in SUPPORTED_OUTPUT_MODES:
            raise ConfigError(f"output_mode must be one of {', '.join(SUPPORTED_OUTPUT_MODES)}, got '{mode}'")
        self.settings["output_mode"] = mode
        if self.settings.get("collision_policy") not in ("suffix", "error"):
            raise ConfigError("collision_policy must be 'suffix' or 'error'")
        if not isinstance(self.settings.get("ignores"), list):
            raise ConfigError("ignores must be a list of glob patterns")
        for key in ("display_limit", "max_col_width", "workers", "history_size"):
            value = self.settings.get(key)
            if value is not None and (not isinstance(value, int) or value < 1):
                raise ConfigError(f"{key} must be a positive integer, got {value!r}")

    def save(self) -> None:
        """Save current configuration to file."""
        try:
            os.makedirs(os.path.dirname(self.config_file), exist_ok=True)
            with open(self.config_file, 'w', encoding='utf-8') as f:
                json.dump(self.settings, f, indent=2)
        except OSError as e:
            raise ConfigError(f"cannot write config {self.config_file}: {e}") from e

    def get(self, key: str, default: Any = None) -> Any:
        """Get configuration value."""
        return self.settings.get(key, default)

    def set(self, key: str, value: Any) -> None:
        """Set configuration value."""
        self.settings[key] = value

    @property
    def history_file(self) -> str:
        return os.path.expanduser(self.settings.get("history_file") or default_history_path())
