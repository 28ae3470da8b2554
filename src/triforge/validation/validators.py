"""
Validation functions for raw configuration values.

Each validator either returns the normalized value or raises ValidationError
naming the offending field.
"""

import re
from typing import Any, Dict, List, Optional, Union

from .exceptions import DuplicateTargetError, ValidationError


def validate_positive_float(
    value: Any,
    min_value: float = 0.0,
    max_value: Optional[float] = None,
    field_name: str = "value"
) -> float:
    """
    Validate that a value is a number within bounds.

    Args:
        value: Value to validate
        min_value: Minimum allowed value (inclusive)
        max_value: Maximum allowed value (inclusive), None for no limit
        field_name: Name of the field being validated

    Returns:
        Validated float value

    Raises:
        ValidationError: If validation fails
    """
    if isinstance(value, bool):
        raise ValidationError(
            f"{field_name} must be a valid number, got {value}",
            field_name=field_name,
            value=value
        )
    try:
        float_value = float(value)
    except (ValueError, TypeError):
        raise ValidationError(
            f"{field_name} must be a valid number, got {value}",
            field_name=field_name,
            value=value
        )
    if float_value < min_value:
        raise ValidationError(
            f"{field_name} must be >= {min_value}, got {float_value}",
            field_name=field_name,
            value=value
        )
    if max_value is not None and float_value > max_value:
        raise ValidationError(
            f"{field_name} must be <= {max_value}, got {float_value}",
            field_name=field_name,
            value=value
        )
    return float_value


def validate_non_empty_string(value: Any, field_name: str = "value") -> str:
    """
    Validate that a value is a non-blank string.

    Raises:
        ValidationError: If value is not a string or is blank
    """
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(
            f"{field_name} must be a non-empty string",
            field_name=field_name,
            value=value
        )
    return value


def validate_enum_choice(
    value: Any,
    choices: List[str],
    field_name: str = "value",
    case_sensitive: bool = True
) -> str:
    """
    Validate that a value is one of the allowed choices.

    Args:
        value: Value to validate
        choices: List of allowed choices
        field_name: Name of the field being validated
        case_sensitive: Whether the comparison should be case-sensitive

    Returns:
        Validated choice, in the spelling used by ``choices``

    Raises:
        ValidationError: If value is not in choices
    """
    str_value = str(value)

    if case_sensitive:
        if str_value not in choices:
            raise ValidationError(
                f"{field_name} must be one of {choices}, got {value}",
                field_name=field_name,
                value=value
            )
        return str_value

    lower_choices = [choice.lower() for choice in choices]
    lower_value = str_value.lower()
    if lower_value not in lower_choices:
        raise ValidationError(
            f"{field_name} must be one of {choices}, got {value}",
            field_name=field_name,
            value=value
        )
    return choices[lower_choices.index(lower_value)]


def validate_target_id(
    target_id: Any,
    existing_ids: Optional[List[str]] = None,
    field_name: str = "id"
) -> str:
    """
    Validate a Bridge or UI target id.

    Args:
        target_id: Id to validate
        existing_ids: Ids already taken by targets of the same kind
        field_name: Name of the field being validated

    Returns:
        Validated id

    Raises:
        ValidationError: If the id is missing or malformed
        DuplicateTargetError: If the id is already taken
    """
    if target_id is None:
        raise ValidationError(
            f"{field_name} is required",
            field_name=field_name,
            value=target_id
        )
    if not isinstance(target_id, str) or not target_id:
        raise ValidationError(
            f"{field_name} must be a non-empty string",
            field_name=field_name,
            value=target_id
        )

    if not re.match(r'^[a-zA-Z0-9_-]+$', target_id):
        raise ValidationError(
            f"{field_name} must contain only alphanumeric characters, underscores, and hyphens: {target_id}",
            field_name=field_name,
            value=target_id
        )

    if existing_ids and target_id in existing_ids:
        raise DuplicateTargetError(
            f"{field_name} must be unique, '{target_id}' already exists"
        )

    return target_id


def validate_string_list(
    value: Any,
    field_name: str = "value",
    allow_empty: bool = True
) -> List[str]:
    """
    Validate a string or a list of strings, returning a list.

    Raises:
        ValidationError: If any element is not a string
    """
    if isinstance(value, str):
        items = [value]
    elif isinstance(value, (list, tuple)):
        items = list(value)
    else:
        raise ValidationError(
            f"{field_name} must be a string or a list of strings, got {type(value).__name__}",
            field_name=field_name,
            value=value
        )

    for i, item in enumerate(items):
        if not isinstance(item, str) or not item:
            raise ValidationError(
                f"{field_name}[{i}] must be a non-empty string",
                field_name=field_name,
                value=value
            )

    if not allow_empty and not items:
        raise ValidationError(
            f"{field_name} must not be empty",
            field_name=field_name,
            value=value
        )
    return items


def validate_filter_pattern(
    value: Any,
    field_name: str = "merge_dependencies"
) -> Union[bool, Dict[str, List[str]]]:
    """
    Validate a dependency merge rule.

    A rule is either a boolean or a table with optional ``include`` and
    ``exclude`` glob patterns (each a string or a list of strings).

    Returns:
        The boolean, or a dict with normalized ``include``/``exclude`` lists

    Raises:
        ValidationError: If the rule has the wrong shape
    """
    if isinstance(value, bool):
        return value

    if not isinstance(value, dict):
        raise ValidationError(
            f"{field_name} must be a boolean or a table with include/exclude patterns",
            field_name=field_name,
            value=value
        )

    unknown = set(value) - {"include", "exclude"}
    if unknown:
        raise ValidationError(
            f"{field_name} has unknown keys: {sorted(unknown)}",
            field_name=field_name,
            value=value
        )

    # An absent include list means every package is a candidate
    return {
        key: validate_string_list(value[key], f"{field_name}.{key}")
        for key in ("include", "exclude")
        if key in value
    }
