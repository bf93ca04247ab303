"""
Validation and error reporting used across pluginbuilder.

Validators normalize configuration values and CLI arguments; the
``handle_*`` helpers log failures in one format before re-raising or exiting.
"""

from .exceptions import (
    ErrorSeverity,
    ValidationError,
    handle_error,
    handle_config_error,
    handle_file_error,
    handle_subprocess_error,
    handle_cli_error,
)
from .validators import (
    validate_boolean,
    validate_engine_version,
    validate_enum_choice,
    validate_name_list,
    validate_platform_name,
    validate_positive_float,
    validate_positive_integer,
)

__all__ = [
    "ErrorSeverity",
    "ValidationError",
    "handle_error",
    "handle_config_error",
    "handle_file_error",
    "handle_subprocess_error",
    "handle_cli_error",
    "validate_boolean",
    "validate_engine_version",
    "validate_enum_choice",
    "validate_name_list",
    "validate_platform_name",
    "validate_positive_float",
    "validate_positive_integer",
]
