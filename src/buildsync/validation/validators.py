"""
Simplified validation functions.

Small, reusable checks used when turning raw TOML data into configuration
objects.
"""

import re
from typing import Any, List, Optional

from .exceptions import ValidationError

_PLACEHOLDER_PATTERN = re.compile(r"\{([A-Z_]+)\}")

KNOWN_PLACEHOLDERS = ("FILEPATH", "FILENAME", "EXTNAME")


def validate_positive_integer(
    value: Any,
    min_value: int = 1,
    max_value: Optional[int] = None,
    field_name: str = "value"
) -> int:
    """
    Validate that a value is an integer within bounds.

    Raises:
        ValidationError: If validation fails
    """
    if isinstance(value, bool):
        raise ValidationError(
            f"{field_name} must be a valid integer, got {value}",
            field_name=field_name,
            value=value
        )
    try:
        int_value = int(value)
    except (ValueError, TypeError):
        raise ValidationError(
            f"{field_name} must be a valid integer, got {value}",
            field_name=field_name,
            value=value
        )
    if int_value < min_value:
        raise ValidationError(
            f"{field_name} must be >= {min_value}, got {int_value}",
            field_name=field_name,
            value=value
        )
    if max_value is not None and int_value > max_value:
        raise ValidationError(
            f"{field_name} must be <= {max_value}, got {int_value}",
            field_name=field_name,
            value=value
        )
    return int_value


def validate_positive_float(
    value: Any,
    min_value: float = 0.0,
    max_value: Optional[float] = None,
    field_name: str = "value"
) -> float:
    """
    Validate that a value is a float within bounds.

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


def validate_enum_choice(
    value: Any,
    valid_choices: List[str],
    field_name: str = "value",
    case_sensitive: bool = False
) -> str:
    """
    Validate that a value is one of the allowed choices.

    Returns:
        The matching choice as spelled in ``valid_choices``

    Raises:
        ValidationError: If validation fails
    """
    if not isinstance(value, str):
        raise ValidationError(
            f"{field_name} must be a string, got {type(value).__name__}",
            field_name=field_name,
            value=value
        )

    for choice in valid_choices:
        if value == choice or (not case_sensitive and value.lower() == choice.lower()):
            return choice

    raise ValidationError(
        f"{field_name} must be one of {valid_choices}, got '{value}'",
        field_name=field_name,
        value=value
    )


def validate_bool(value: Any, field_name: str = "value") -> bool:
    """Validate that a value is a real boolean."""
    if not isinstance(value, bool):
        raise ValidationError(
            f"{field_name} must be a boolean, got {value!r}",
            field_name=field_name,
            value=value
        )
    return value


def validate_string_list(value: Any, field_name: str = "value") -> List[str]:
    """Validate that a value is a list of strings."""
    if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
        raise ValidationError(
            f"{field_name} must be a list of strings, got {value!r}",
            field_name=field_name,
            value=value
        )
    return list(value)


def validate_output_pattern(value: Any, field_name: str = "output_path") -> str:
    """
    Validate an output path template.

    An empty pattern is allowed here (it means "use the default pattern");
    unknown ``{PLACEHOLDER}`` tokens are rejected.
    """
    if not isinstance(value, str):
        raise ValidationError(
            f"{field_name} must be a string, got {type(value).__name__}",
            field_name=field_name,
            value=value
        )

    unknown = [
        name for name in _PLACEHOLDER_PATTERN.findall(value)
        if name not in KNOWN_PLACEHOLDERS
    ]
    if unknown:
        raise ValidationError(
            f"{field_name} uses unknown placeholder(s) {unknown}; "
            f"supported: {list(KNOWN_PLACEHOLDERS)}",
            field_name=field_name,
            value=value
        )
    return value


def find_unknown_placeholders(path: str) -> List[str]:
    """Return placeholder names left in ``path`` after substitution."""
    return _PLACEHOLDER_PATTERN.findall(path)
