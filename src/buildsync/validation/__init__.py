"""
Validation and error handling for the buildsync package.

This module provides the error taxonomy, consistent error reporting and the
input validation used by the configuration layer.
"""

from .exceptions import (
    ErrorSeverity,
    ImporterBusyError,
    PathResolutionError,
    ProcessExitError,
    ProcessSpawnError,
    SyncError,
    SyncIOError,
    ValidationError,
    handle_cli_error,
    handle_config_error,
    handle_error,
    handle_file_error,
    handle_subprocess_error,
)

from .strategies import async_retry

from .validators import (
    KNOWN_PLACEHOLDERS,
    find_unknown_placeholders,
    validate_bool,
    validate_enum_choice,
    validate_output_pattern,
    validate_positive_float,
    validate_positive_integer,
    validate_string_list,
)

__all__ = [
    # Errors
    "ErrorSeverity",
    "ImporterBusyError",
    "PathResolutionError",
    "ProcessExitError",
    "ProcessSpawnError",
    "SyncError",
    "SyncIOError",
    "ValidationError",
    # Handlers
    "handle_cli_error",
    "handle_config_error",
    "handle_error",
    "handle_file_error",
    "handle_subprocess_error",
    # Strategies
    "async_retry",
    # Validators
    "KNOWN_PLACEHOLDERS",
    "find_unknown_placeholders",
    "validate_bool",
    "validate_enum_choice",
    "validate_output_pattern",
    "validate_positive_float",
    "validate_positive_integer",
    "validate_string_list",
]
