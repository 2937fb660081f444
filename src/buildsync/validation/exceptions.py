"""
Exception types and error handling helpers.

This module defines the error taxonomy shared by every component and the
helpers used to log and optionally re-raise failures consistently.
"""

import logging
import sys
from enum import Enum
from typing import Any, Optional, Union

logger = logging.getLogger(__name__)


class ErrorSeverity(Enum):
    """Severity levels for error handling."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class ValidationError(Exception):
    """
    Exception raised when configuration validation fails.
    """

    def __init__(self, message: str, field_name: Optional[str] = None,
                 value: Any = None, severity: ErrorSeverity = ErrorSeverity.ERROR):
        super().__init__(message)
        self.field_name = field_name
        self.value = value
        self.severity = severity


class SyncError(Exception):
    """Base class for failures raised while driving builds and copying outputs."""


class ProcessSpawnError(SyncError):
    """The external executable could not be started at all."""

    def __init__(self, program: str, reason: str):
        super().__init__(f"Failed to start '{program}': {reason}")
        self.program = program
        self.reason = reason


class ProcessExitError(SyncError):
    """An external command exited with a non-zero status."""

    def __init__(self, command: str, returncode: int, stderr: str = ""):
        message = f"'{command}' exited with code {returncode}"
        if stderr.strip():
            message = f"{message}: {stderr.strip().splitlines()[-1]}"
        super().__init__(message)
        self.command = command
        self.returncode = returncode
        self.stderr = stderr


class PathResolutionError(SyncError):
    """A raw output path could not be mapped to a destination."""

    def __init__(self, raw_path: str, reason: str):
        super().__init__(f"Cannot resolve '{raw_path}': {reason}")
        self.raw_path = raw_path
        self.reason = reason


class SyncIOError(SyncError):
    """Copying a single artifact failed."""

    def __init__(self, source: str, destination: str, reason: str):
        super().__init__(f"Cannot copy '{source}' to '{destination}': {reason}")
        self.source = source
        self.destination = destination
        self.reason = reason


class ImporterBusyError(SyncError):
    """The consuming import step cannot accept a refresh request right now."""


def handle_error(
    error: Exception,
    context: str,
    severity: Union[ErrorSeverity, str] = ErrorSeverity.ERROR,
    reraise: bool = True,
    logger: Optional[logging.Logger] = None
) -> None:
    """
    Handle errors with consistent logging and optional re-raising.

    Args:
        error: The exception that occurred
        context: Context description of where the error occurred
        severity: Severity level for logging
        reraise: Whether to re-raise the exception after logging
        logger: Logger instance to use (defaults to module logger)
    """
    effective_logger = logger or globals()['logger']

    error_msg = f"Error in {context}: {error}"

    if isinstance(severity, str):
        severity_str = severity.lower()
    else:
        severity_str = severity.value

    if severity_str == "debug":
        effective_logger.debug(error_msg, exc_info=True)
    elif severity_str == "info":
        effective_logger.info(error_msg)
    elif severity_str == "warning":
        effective_logger.warning(error_msg)
    elif severity_str == "error":
        effective_logger.error(error_msg)
    elif severity_str == "critical":
        effective_logger.critical(error_msg, exc_info=True)

    if reraise:
        raise error


def handle_config_error(error: Exception, context: str, **kwargs) -> None:
    """Handle configuration-related errors."""
    handle_error(error, f"config {context}", **kwargs)


def handle_file_error(error: Exception, context: str, **kwargs) -> None:
    """Handle file-related errors."""
    handle_error(error, f"file {context}", **kwargs)


def handle_subprocess_error(error: Exception, command: str, **kwargs) -> None:
    """Handle subprocess-related errors."""
    handle_error(error, f"subprocess command '{command}'", **kwargs)


def handle_cli_error(error: Exception, context: str, **kwargs) -> None:
    """Handle CLI-related errors and exit."""
    exit_code = kwargs.pop('exit_code', 1)
    kwargs.pop('include_traceback', None)

    severity = kwargs.pop('severity', ErrorSeverity.ERROR)
    handle_error(error, f"CLI {context}", severity=severity, reraise=False, **kwargs)

    sys.exit(exit_code)
