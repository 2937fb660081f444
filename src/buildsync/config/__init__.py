"""
Configuration management for the buildsync package.

This module provides a clean interface for loading, validating, and accessing
configuration data from a TOML file with singleton pattern management, plus
the configuration-changed signal.
"""

from .manager import (
    ConfigChangedSignal,
    clear_config_cache,
    config_changed,
    get_config,
    get_config_info,
    get_config_path,
    is_config_loaded,
    load_config,
    reload_config,
    set_config_path,
)

from .loader import load_main_config, load_toml_file
from .validators import (
    validate_app_config,
    validate_build_tool_config,
    validate_importer_config,
    validate_packages_config,
    validate_project_config,
    validate_sync_settings,
)

__all__ = [
    # Main interface
    "ConfigChangedSignal",
    "clear_config_cache",
    "config_changed",
    "get_config",
    "get_config_info",
    "get_config_path",
    "is_config_loaded",
    "load_config",
    "reload_config",
    "set_config_path",
    # Advanced interface
    "load_main_config",
    "load_toml_file",
    "validate_app_config",
    "validate_build_tool_config",
    "validate_importer_config",
    "validate_packages_config",
    "validate_project_config",
    "validate_sync_settings",
]
