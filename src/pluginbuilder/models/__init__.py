"""
Data models for the plugin build orchestrator.

Configuration Models:
- Builder behaviour, storage settings and installed engines

Plugin and Job Models:
- The plugin descriptor being packaged
- Job identity, lifecycle states, failure reasons and state-change events
- Terminal outcomes of a single build tool invocation

Runtime Models:
- Session directory layout and per-job invocations

Report Models:
- The immutable build report and its per-job and per-engine-version entries
"""

from .config import AppConfig, BuilderConfig, EngineInstallation, StorageConfig
from .plugin import PluginDescriptor
from .job import (
    BuildJob,
    FailureKind,
    FailureReason,
    JobKey,
    JobState,
    StateChangeEvent,
    TERMINAL_STATES,
)
from .outcomes import Cancelled, Failed, RunOutcome, Succeeded, TimedOut
from .runtime import Invocation, SessionLayout
from .report import (
    BuildReport,
    EngineVersionReport,
    EngineVersionStatus,
    JobReportEntry,
)

__all__ = [
    # Configuration
    "AppConfig",
    "BuilderConfig",
    "EngineInstallation",
    "StorageConfig",
    # Plugin and jobs
    "PluginDescriptor",
    "BuildJob",
    "FailureKind",
    "FailureReason",
    "JobKey",
    "JobState",
    "StateChangeEvent",
    "TERMINAL_STATES",
    # Outcomes
    "Cancelled",
    "Failed",
    "RunOutcome",
    "Succeeded",
    "TimedOut",
    # Runtime
    "Invocation",
    "SessionLayout",
    # Reports
    "BuildReport",
    "EngineVersionReport",
    "EngineVersionStatus",
    "JobReportEntry",
]
