"""
Exception types raised by the build orchestrator.

Resolution errors (unsupported platform or engine version) are raised before
a session starts. Contract violations on the session API (``AlreadyStarted``,
``SessionNotTerminal``, ``InvalidTransition``) are programming errors and are
never retried. ``FatalJobError`` subclasses end a single job immediately.
``PackagingIOError`` is recorded against one engine version and does not
stop the others.
"""

from typing import Optional

from .models.job import FailureKind, FailureReason
from .validation import ValidationError


class PluginBuilderError(Exception):
    """Base class for orchestrator errors."""


class UnsupportedPlatform(ValidationError, PluginBuilderError):
    def __init__(self, platform: str, supported):
        super().__init__(
            f"Platform '{platform}' is not supported by the plugin "
            f"(supported: {', '.join(supported) or 'none'})",
            field_name="platform",
            value=platform,
        )
        self.platform = platform


class UnsupportedEngineVersion(ValidationError, PluginBuilderError):
    def __init__(self, engine_version: str, supported):
        super().__init__(
            f"Engine version '{engine_version}' is not supported by the plugin "
            f"(supported: {', '.join(supported) or 'none'})",
            field_name="engine_version",
            value=engine_version,
        )
        self.engine_version = engine_version


class AlreadyStarted(PluginBuilderError):
    """``start()`` was called on a session that already has jobs."""


class SessionNotTerminal(PluginBuilderError):
    """A report was requested before the session finished."""


class InvalidTransition(PluginBuilderError):
    """A job state change not allowed by the job state machine."""


class FatalJobError(PluginBuilderError):
    """
    A job prerequisite is missing; the job fails without retry.
    """

    kind = FailureKind.RUNNER_ERROR

    def __init__(self, message: str, path: Optional[str] = None):
        super().__init__(message)
        self.path = path

    def to_reason(self) -> FailureReason:
        return FailureReason(kind=self.kind, message=str(self))


class MissingExecutableError(FatalJobError):
    """The build tool for an engine version cannot be found or launched."""

    kind = FailureKind.MISSING_EXECUTABLE


class WorkingDirectoryError(FatalJobError):
    """The job's working or output directory cannot be created."""

    kind = FailureKind.WORKDIR_UNAVAILABLE


class PackagingIOError(PluginBuilderError):
    """Merging job outputs or writing an archive failed."""

    def __init__(self, engine_version: str, message: str):
        super().__init__(f"Packaging engine version {engine_version} failed: {message}")
        self.engine_version = engine_version
