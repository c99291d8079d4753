"""
Tool configuration module.

Manages updata settings: log level, traceback output, JSON indentation and
the manifest lock timeout. Configuration can be loaded from a YAML file in
the platform config directory and overridden with environment variables.
"""

import os
from pathlib import Path
from typing import Iterable, Optional

import yaml
from platformdirs import user_config_dir


# ============================================================================
# Constants
# ============================================================================

APP_NAME = "updata"
CONFIG_FILENAME = "updata-config.yaml"

# Environment variable names
ENV_LOG_LEVEL = "UPDATA_LOG_LEVEL"
ENV_TRACEBACK = "UPDATA_TRACEBACK"
ENV_CONFIG_PATH = "UPDATA_CONFIG_PATH"

# Default values
DEFAULT_LOG_LEVEL = "INFO"
DEFAULT_JSON_INDENT = 2
DEFAULT_LOCK_TIMEOUT_SECONDS = 10.0

CONFIG_KEYS = ("log_level", "show_traceback", "json_indent", "lock_timeout_seconds")
VALID_LOG_LEVELS = frozenset(["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"])
TRUTHY = frozenset(["1", "true", "yes", "on"])


# ============================================================================
# Exceptions
# ============================================================================


class ConfigError(Exception):
    """Base exception for configuration errors."""

    pass


class ConfigValidationError(ConfigError):
    """Raised when configuration validation fails."""

    pass


# ============================================================================
# Helper Functions
# ============================================================================


def get_default_config_dir() -> Path:
    """
    Get the default configuration directory for the current platform.

    Returns:
        Path to the platform-appropriate config directory
    """
    return Path(user_config_dir(APP_NAME))


def get_default_config_path() -> Path:
    """Get the default configuration file path."""
    return get_default_config_dir() / CONFIG_FILENAME


# ============================================================================
# UpdataConfig Class
# ============================================================================


class UpdataConfig:
    """
    Tool configuration manager.

    Configuration sources (in priority order):
    1. Environment variables
    2. Configuration file
    3. Default values

    Attributes:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        show_traceback: Print a traceback alongside error messages
        json_indent: Indentation of written manifest files
        lock_timeout_seconds: How long to wait for another process's manifest lock
    """

    def __init__(self, config_path: Optional[Path] = None):
        """
        Initialize configuration.

        Args:
            config_path: Explicit path to config file (takes precedence over
                UPDATA_CONFIG_PATH and the platform default)
        """
        if config_path:
            self._config_path = Path(config_path)
        else:
            env_path = os.environ.get(ENV_CONFIG_PATH)
            if env_path:
                self._config_path = Path(env_path)
            else:
                self._config_path = get_default_config_path()

        # Initialize with defaults
        self._log_level: str = DEFAULT_LOG_LEVEL
        self._show_traceback: bool = False
        self._json_indent: int = DEFAULT_JSON_INDENT
        self._lock_timeout_seconds: float = DEFAULT_LOCK_TIMEOUT_SECONDS

        self._load()

    @property
    def config_path(self) -> Path:
        """Get the configuration file path."""
        return self._config_path

    # -------------------------------------------------------------------------
    # Configuration Properties
    # -------------------------------------------------------------------------

    @property
    def log_level(self) -> str:
        """Get the log level, upper-cased when it is a string."""
        value = os.environ.get(ENV_LOG_LEVEL, self._log_level)
        return value.upper() if isinstance(value, str) else value

    @log_level.setter
    def log_level(self, value: str) -> None:
        self._log_level = value

    @property
    def show_traceback(self) -> bool:
        """Whether error output includes the traceback."""
        env_value = os.environ.get(ENV_TRACEBACK)
        if env_value is not None:
            return env_value.strip().lower() in TRUTHY
        return self._show_traceback

    @show_traceback.setter
    def show_traceback(self, value: bool) -> None:
        self._show_traceback = value

    @property
    def json_indent(self) -> int:
        return self._json_indent

    @json_indent.setter
    def json_indent(self, value: int) -> None:
        self._json_indent = value

    @property
    def lock_timeout_seconds(self) -> float:
        return self._lock_timeout_seconds

    @lock_timeout_seconds.setter
    def lock_timeout_seconds(self, value: float) -> None:
        self._lock_timeout_seconds = value

    # -------------------------------------------------------------------------
    # Configuration Management
    # -------------------------------------------------------------------------

    def _load(self) -> None:
        """Load configuration from file."""
        if not self._config_path.exists():
            return

        try:
            with open(self._config_path) as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Failed to parse config file: {e}")

        if not isinstance(data, dict):
            raise ConfigError(
                f"Config file {self._config_path} must contain a mapping"
            )

        self._log_level = data.get("log_level", DEFAULT_LOG_LEVEL)
        self._show_traceback = bool(data.get("show_traceback", False))
        self._json_indent = data.get("json_indent", DEFAULT_JSON_INDENT)
        self._lock_timeout_seconds = data.get(
            "lock_timeout_seconds", DEFAULT_LOCK_TIMEOUT_SECONDS
        )

    def save(self) -> None:
        """Save configuration to file."""
        self._config_path.parent.mkdir(parents=True, exist_ok=True)

        data = {
            "log_level": self._log_level,
            "show_traceback": self._show_traceback,
            "json_indent": self._json_indent,
            "lock_timeout_seconds": self._lock_timeout_seconds,
        }

        with open(self._config_path, "w") as f:
            yaml.dump(data, f, default_flow_style=False)

    def validate(self, keys: Optional[Iterable[str]] = None) -> None:
        """
        Validate the current configuration.

        Args:
            keys: Only check these settings (defaults to all of them)

        Raises:
            ConfigValidationError: If configuration is invalid
        """
        keys = set(CONFIG_KEYS if keys is None else keys)

        if "log_level" in keys and (
            not isinstance(self.log_level, str) or self.log_level not in VALID_LOG_LEVELS
        ):
            raise ConfigValidationError(
                f"log_level must be one of {sorted(VALID_LOG_LEVELS)}, got: {self.log_level}"
            )

        if "show_traceback" in keys and not isinstance(self._show_traceback, bool):
            raise ConfigValidationError(
                f"show_traceback must be true or false, got: {self._show_traceback}"
            )

        if "json_indent" in keys and (
            isinstance(self.json_indent, bool)
            or not isinstance(self.json_indent, int)
            or self.json_indent < 0
        ):
            raise ConfigValidationError(
                f"json_indent must be a non-negative integer, got: {self.json_indent}"
            )

        if "lock_timeout_seconds" in keys and (
            isinstance(self.lock_timeout_seconds, bool)
            or not isinstance(self.lock_timeout_seconds, (int, float))
            or self.lock_timeout_seconds <= 0
        ):
            raise ConfigValidationError(
                f"lock_timeout_seconds must be positive, got: {self.lock_timeout_seconds}"
            )
