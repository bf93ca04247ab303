"""
Input validation functions.

Each validator returns the normalized value or raises ``ValidationError``
naming the offending field, so a bad ``config.toml`` entry or CLI flag is
reported by name.
"""

import re
from typing import Any, Callable, Iterable, List, Optional, Union

from packaging.version import InvalidVersion, Version

from .exceptions import ValidationError

# UBT platform identifiers are plain identifiers such as "Win64" or "LinuxArm64".
_PLATFORM_NAME_PATTERN = re.compile(r'^[A-Za-z][A-Za-z0-9_]*$')


def _fail(field_name: str, value: Any, requirement: str) -> ValidationError:
    return ValidationError(f"{field_name} {requirement}", field_name=field_name, value=value)


def _check_bounds(number, value: Any, min_value, max_value, field_name: str):
    if number < min_value:
        raise _fail(field_name, value, f"must be >= {min_value}, got {number}")
    if max_value is not None and number > max_value:
        raise _fail(field_name, value, f"must be <= {max_value}, got {number}")
    return number


def validate_positive_integer(
    value: Any,
    min_value: int = 1,
    max_value: Optional[int] = None,
    field_name: str = "value"
) -> int:
    """
    Validate that a value is an integer within ``[min_value, max_value]``.

    Strings such as the CLI's ``-j 4`` are accepted; booleans are not.
    """
    if isinstance(value, bool):
        raise _fail(field_name, value, f"must be a valid integer, got {value}")
    try:
        number = int(value)
    except (ValueError, TypeError):
        raise _fail(field_name, value, f"must be a valid integer, got {value}") from None
    return _check_bounds(number, value, min_value, max_value, field_name)


def validate_positive_float(
    value: Any,
    min_value: float = 0.0,
    max_value: Optional[float] = None,
    field_name: str = "value"
) -> float:
    try:
        number = float(value)
    except (ValueError, TypeError):
        raise _fail(field_name, value, f"must be a valid number, got {value}") from None
    return _check_bounds(number, value, min_value, max_value, field_name)


def validate_boolean(value: Any, field_name: str = "value") -> bool:
    if not isinstance(value, bool):
        raise _fail(field_name, value, f"must be a boolean, got {value!r}")
    return value


def validate_enum_choice(
    value: Any,
    valid_choices: List[str],
    field_name: str = "value",
    case_sensitive: bool = True
) -> str:
    """Return the entry of ``valid_choices`` matching ``value``."""
    text = str(value)
    for choice in valid_choices:
        if choice == text or (not case_sensitive and choice.lower() == text.lower()):
            return choice
    raise _fail(field_name, value, f"must be one of {valid_choices}, got {value}")


def validate_engine_version(value: Any, field_name: str = "engine_version") -> str:
    """
    Validate an engine version identifier such as "5.3" or "4.27".

    The identifier must parse as ``packaging.version.Version`` so that jobs
    can be ordered semantically ("5.10" sorts after "5.9"). The stripped
    string is returned, not the parsed version.
    """
    if not isinstance(value, str) or not value.strip():
        raise _fail(field_name, value, "must be a non-empty string")
    version_str = value.strip()
    try:
        Version(version_str)
    except InvalidVersion:
        raise _fail(field_name, value, f"is not a valid engine version: {version_str}") from None
    return version_str


def validate_platform_name(value: Any, field_name: str = "platform") -> str:
    if not isinstance(value, str) or not _PLATFORM_NAME_PATTERN.match(value.strip()):
        raise _fail(field_name, value, f"must be a platform identifier such as 'Win64', got {value!r}")
    return value.strip()


def validate_name_list(
    values: Union[str, Iterable[str]],
    field_name: str,
    item_validator: Optional[Callable[..., str]] = None,
) -> List[str]:
    """
    Normalize a comma-separated string or an iterable of such strings.

    Duplicates are dropped, keeping first-seen order. ``item_validator`` is
    called on each entry with ``field_name="<field_name>[<index>]"``.

    Raises:
        ValidationError: If the list is empty or an entry is invalid
    """
    chunks = [values] if isinstance(values, str) else list(values)
    items: List[str] = []
    for chunk in chunks:
        if not isinstance(chunk, str):
            raise _fail(field_name, chunk, f"entries must be strings, got {chunk!r}")
        items.extend(part.strip() for part in chunk.split(",") if part.strip())

    if not items:
        raise _fail(field_name, values, "cannot be empty")

    validated: List[str] = []
    for index, item in enumerate(items):
        if item_validator is not None:
            item = item_validator(item, field_name=f"{field_name}[{index}]")
        if item not in validated:
            validated.append(item)
    return validated
