"""
Exception hierarchy and error handling for the triforge package.

Every failure that reaches the top level is wrapped into a ``TriforgeError``
so that presentation is uniform regardless of where the error originated.
The subclasses follow the orchestrator's error taxonomy:

- ConfigurationError: invalid project config, duplicate target id, missing
  package, manifest or entry file. Always fatal.
- BuildError: bundler diagnostics. Fatal for a one-shot build, reported and
  ignored by a watch session.
- ProcessError: spawn failure or an unexpected exit of the supervised process.
- PackagingError: manifest invariant violation or packager failure.
"""

import logging
import sys
import traceback
from enum import Enum
from typing import Any, List, Optional, Union

logger = logging.getLogger(__name__)


class ErrorSeverity(Enum):
    """Severity levels for error handling."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class TriforgeError(Exception):
    """
    Base error carrying a user-facing message and an optional detail string.

    The detail (usually a stack trace or raw tool output) is only shown when
    debugging is enabled.
    """

    def __init__(self, message: str, detail: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.detail = detail

    def formatted(self, debug: bool = False) -> str:
        """
        Render the error for display.

        Args:
            debug: Include the detail string when True

        Returns:
            A single line in normal mode, message plus detail in debug mode
        """
        if debug and self.detail:
            return f"{self.message}\n{self.detail}"
        return self.message

    @classmethod
    def from_exception(cls, error: BaseException) -> "TriforgeError":
        """
        Wrap an arbitrary exception into the structured error form.

        Instances of TriforgeError are returned unchanged.
        """
        if isinstance(error, TriforgeError):
            return error
        detail = "".join(traceback.format_exception(type(error), error, error.__traceback__))
        message = str(error) or type(error).__name__
        return cls(message, detail=detail)


class ConfigurationError(TriforgeError):
    """Raised when the project configuration or a target definition is invalid."""


class ValidationError(ConfigurationError):
    """
    Exception raised when a configuration value fails validation.

    This is the main exception type used by the validators.
    """

    def __init__(self, message: str, field_name: Optional[str] = None,
                 value: Any = None, severity: ErrorSeverity = ErrorSeverity.ERROR):
        super().__init__(message)
        self.field_name = field_name
        self.value = value
        self.severity = severity


class PackageNotFoundError(ConfigurationError):
    """Raised when a target's package reference resolves to nothing."""


class NoEntryFileError(ConfigurationError):
    """Raised when a target has no usable entry file."""


class DuplicateTargetError(ConfigurationError):
    """Raised when two targets of the same kind share an id."""


class BuildError(TriforgeError):
    """Raised when the bundler reports diagnostics for a build."""

    def __init__(self, message: str, diagnostics: Optional[List[str]] = None,
                 exit_code: Optional[int] = None):
        diagnostics = list(diagnostics or [])
        super().__init__(message, detail="\n".join(diagnostics) or None)
        self.diagnostics = diagnostics
        self.exit_code = exit_code

    def formatted(self, debug: bool = False) -> str:
        # The first diagnostic is the useful part even outside debug mode
        if not debug and self.diagnostics:
            return f"{self.message}: {self.diagnostics[0]}"
        return super().formatted(debug)


class ProcessError(TriforgeError):
    """Raised when the supervised process cannot be spawned or dies unexpectedly."""

    def __init__(self, message: str, exit_code: Optional[int] = None, detail: Optional[str] = None):
        super().__init__(message, detail=detail)
        self.exit_code = exit_code


class PackagingError(TriforgeError):
    """Raised when the merged manifest is invalid or the packager fails."""


def handle_error(
    error: Exception,
    context: str,
    severity: Union[ErrorSeverity, str] = ErrorSeverity.ERROR,
    reraise: bool = True,
    logger: Optional[logging.Logger] = None,
    debug: bool = False,
) -> None:
    """
    Handle errors with consistent logging and optional re-raising.

    Args:
        error: The exception that occurred
        context: Context description of where the error occurred
        severity: Severity level for logging
        reraise: Whether to re-raise the exception after logging
        logger: Logger instance to use (defaults to module logger)
        debug: Include the structured detail in the log line
    """
    effective_logger = logger or globals()['logger']

    wrapped = TriforgeError.from_exception(error)
    error_msg = f"Error in {context}: {wrapped.formatted(debug)}"

    if isinstance(severity, str):
        severity_str = severity.lower()
    else:
        severity_str = severity.value

    if severity_str == "debug":
        effective_logger.debug(error_msg)
    elif severity_str == "info":
        effective_logger.info(error_msg)
    elif severity_str == "warning":
        effective_logger.warning(error_msg)
    elif severity_str == "error":
        effective_logger.error(error_msg)
    elif severity_str == "critical":
        effective_logger.critical(error_msg)

    if reraise:
        raise error


def handle_config_error(error: Exception, context: str, **kwargs) -> None:
    """Handle configuration-related errors."""
    handle_error(error, f"config {context}", **kwargs)


def handle_cli_error(error: Exception, context: str, **kwargs) -> None:
    """
    Log a fatal error as one formatted line and exit the process.

    Keyword Args:
        exit_code: Process exit status (default 1)
        debug: Show the structured detail
        logger: Logger instance to use
    """
    exit_code = kwargs.pop('exit_code', 1)
    debug = kwargs.pop('debug', False)

    severity = kwargs.pop('severity', ErrorSeverity.ERROR)
    handle_error(error, f"CLI {context}", severity=severity, reraise=False, debug=debug, **kwargs)

    sys.exit(exit_code)
