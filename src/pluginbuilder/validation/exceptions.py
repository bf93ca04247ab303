"""
Error reporting helpers shared by all pluginbuilder components.

Components route unexpected exceptions through ``handle_error`` or one of
its context wrappers, so every failure is logged in one format with one
severity mapping. ``handle_cli_error`` additionally ends the process.
"""

import logging
import sys
from enum import Enum
from typing import Any, Optional, Union

logger = logging.getLogger(__name__)


class ErrorSeverity(Enum):
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


# Log level per severity, and whether the traceback is attached.
_LOG_LEVELS = {
    "debug": (logging.DEBUG, True),
    "info": (logging.INFO, False),
    "warning": (logging.WARNING, False),
    "error": (logging.ERROR, False),
    "critical": (logging.CRITICAL, True),
}


class ValidationError(Exception):
    """
    Raised when user input or configuration fails validation.

    Carries the offending field name and value so the CLI can point the user
    at the exact setting or argument to fix.
    """

    def __init__(self, message: str, field_name: Optional[str] = None,
                 value: Any = None, severity: ErrorSeverity = ErrorSeverity.ERROR):
        super().__init__(message)
        self.field_name = field_name
        self.value = value
        self.severity = severity


def handle_error(
    error: Exception,
    context: str,
    severity: Union[ErrorSeverity, str] = ErrorSeverity.ERROR,
    reraise: bool = True,
    logger: Optional[logging.Logger] = None
) -> None:
    """
    Log ``error`` as "Error in <context>: <error>" and optionally re-raise it.

    Args:
        error: The exception that occurred
        context: What was being done, e.g. "running job 5.3/Win64"
        severity: An ErrorSeverity or its string value
        reraise: Re-raise ``error`` after logging
        logger: Logger to write to; defaults to this module's logger
    """
    target = logger or globals()['logger']
    name = severity.lower() if isinstance(severity, str) else severity.value
    level, with_traceback = _LOG_LEVELS.get(name, (logging.ERROR, False))

    message = f"Error in {context}: {error}"
    if isinstance(error, ValidationError) and error.field_name:
        message += f" [{error.field_name}]"
    target.log(level, message, exc_info=with_traceback)

    if reraise:
        raise error


def handle_config_error(error: Exception, context: str, **kwargs) -> None:
    handle_error(error, f"config {context}", **kwargs)


def handle_file_error(error: Exception, context: str, **kwargs) -> None:
    handle_error(error, f"file {context}", **kwargs)


def handle_subprocess_error(error: Exception, command: str, **kwargs) -> None:
    handle_error(error, f"subprocess command '{command}'", **kwargs)


def handle_cli_error(error: Exception, context: str, **kwargs) -> None:
    """Log a CLI-level error and exit with ``exit_code`` (default 2)."""
    exit_code = kwargs.pop('exit_code', 2)
    kwargs.setdefault('severity', ErrorSeverity.ERROR)
    handle_error(error, f"CLI {context}", reraise=False, **kwargs)
    sys.exit(exit_code)
