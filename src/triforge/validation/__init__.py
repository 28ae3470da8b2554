"""
Validation and error handling for the triforge package.

This module provides the structured error taxonomy, uniform error logging,
and the validators used when reading the project configuration.
"""

from .exceptions import (
    BuildError,
    ConfigurationError,
    DuplicateTargetError,
    ErrorSeverity,
    NoEntryFileError,
    PackageNotFoundError,
    PackagingError,
    ProcessError,
    TriforgeError,
    ValidationError,
    handle_cli_error,
    handle_config_error,
    handle_error,
)
from .validators import (
    validate_enum_choice,
    validate_filter_pattern,
    validate_non_empty_string,
    validate_positive_float,
    validate_string_list,
    validate_target_id,
)

__all__ = [
    # Errors
    "TriforgeError",
    "ConfigurationError",
    "ValidationError",
    "PackageNotFoundError",
    "NoEntryFileError",
    "DuplicateTargetError",
    "BuildError",
    "ProcessError",
    "PackagingError",
    "ErrorSeverity",
    # Handlers
    "handle_error",
    "handle_config_error",
    "handle_cli_error",
    # Validators
    "validate_enum_choice",
    "validate_filter_pattern",
    "validate_non_empty_string",
    "validate_positive_float",
    "validate_string_list",
    "validate_target_id",
]
