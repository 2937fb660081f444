"""
Configuration management and singleton pattern.

This module provides the main configuration loading and management interface,
implementing a singleton pattern to ensure configuration is loaded only once,
and the parameterless "configuration changed" signal that long-lived
components subscribe to.
"""

import logging
from pathlib import Path
from typing import Callable, List, Optional

from ..models.config import AppConfig
from ..validation import handle_config_error, ErrorSeverity
from .loader import load_main_config
from .validators import validate_app_config

logger = logging.getLogger(__name__)


class ConfigChangedSignal:
    """
    A parameterless signal emitted whenever the configuration is reloaded.

    Listeners are called synchronously in subscription order; a failing
    listener is logged and does not prevent the others from running.
    """

    def __init__(self) -> None:
        self._listeners: List[Callable[[], None]] = []

    def connect(self, listener: Callable[[], None]) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def disconnect(self, listener: Callable[[], None]) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def emit(self) -> None:
        for listener in list(self._listeners):
            try:
                listener()
            except Exception as e:
                logger.error(f"Configuration change listener {listener!r} failed: {e}", exc_info=True)

    @property
    def listener_count(self) -> int:
        return len(self._listeners)


config_changed = ConfigChangedSignal()

# --- Global Singleton for Configuration ---

_CONFIG: Optional[AppConfig] = None

# Defaults to buildsync.toml in the working directory; the CLI overrides it.
_CONFIG_FILE_PATH = Path("buildsync.toml")


def set_config_path(config_path: Path) -> None:
    """
    Set a custom configuration file path.

    Args:
        config_path: Path to the buildsync.toml file
    """
    global _CONFIG_FILE_PATH, _CONFIG
    _CONFIG_FILE_PATH = Path(config_path)
    _CONFIG = None
    logger.info(f"Configuration path set to: {config_path}")


def get_config_path() -> Path:
    return _CONFIG_FILE_PATH


def clear_config_cache() -> None:
    """
    Clear the cached configuration, forcing a reload on next access.
    """
    global _CONFIG
    _CONFIG = None
    logger.debug("Configuration cache cleared")


def load_config(config_path: Path) -> AppConfig:
    """
    Load and validate the configuration file at ``config_path``.

    Relative paths inside the file are anchored at its directory.

    Raises:
        FileNotFoundError: If the configuration file is missing
        ValidationError: If configuration validation fails
        tomllib.TOMLDecodeError: If the file is malformed
    """
    config_path = Path(config_path).resolve()
    try:
        data = load_main_config(config_path)
        app_config = validate_app_config(data, config_path.parent)
        app_config.config_path = config_path
        logger.info(
            f"Successfully loaded configuration with {len(app_config.sync.packages)} package entries"
        )
        return app_config
    except FileNotFoundError as e:
        handle_config_error(
            error=e,
            context="loading configuration file",
            severity=ErrorSeverity.CRITICAL,
            reraise=True,
            logger=logger
        )
        raise
    except Exception as e:
        handle_config_error(
            error=e,
            context="processing configuration",
            severity=ErrorSeverity.ERROR,
            reraise=True,
            logger=logger
        )
        raise


def get_config() -> AppConfig:
    """
    Get the global application configuration, loading it if necessary.

    Returns:
        The singleton AppConfig instance
    """
    global _CONFIG
    if _CONFIG is None:
        _CONFIG = load_config(_CONFIG_FILE_PATH)
    return _CONFIG


def reload_config() -> AppConfig:
    """
    Reload the configuration file and notify `config_changed` listeners.

    If loading fails the previous configuration stays active and no signal
    is emitted.
    """
    global _CONFIG
    new_config = load_config(_CONFIG_FILE_PATH)
    _CONFIG = new_config
    config_changed.emit()
    return new_config


def is_config_loaded() -> bool:
    """Check if configuration has been loaded and cached."""
    return _CONFIG is not None


def get_config_info() -> dict:
    """
    Get information about the current configuration state.
    """
    return {
        "config_loaded": is_config_loaded(),
        "config_path": str(get_config_path()),
        "packages_count": len(_CONFIG.sync.packages) if _CONFIG else 0,
        "listeners": config_changed.listener_count,
    }
