"""
PluginBuilder: build a plugin against several engine versions and platforms.

The package is organized into specialized modules:
- config: Configuration loading and validation
- models: Data structures (descriptor, jobs, events, reports)
- validation: Input validation and error handling
- system: Engine discovery, build tool commands, CPU parallelism
- executor: Process runner and worker pool
- orchestration: Job resolution, build session, scheduler and BuildRunner
- archiving: Merging per-platform outputs and writing archives
- storage: Report and event log persistence
- cli: Command-line interface

Usage:
    From command line:
        pluginbuilder --plugin path/to/MyPlugin.uplugin -e 5.3,5.4 -p Win64

    Programmatically:
        from pluginbuilder import BuildRunner, get_config, load_plugin_descriptor
        config = get_config()
        runner = BuildRunner(config)
        session = runner.create_session(descriptor, [("5.3", "Win64")])
        report = runner.run(session)
"""

# Main interfaces
from .config import get_config, clear_config_cache, set_config_path
from .descriptor import find_uplugin_file, load_plugin_descriptor
from .orchestration import BuildRunner, BuildSession, JobScheduler, resolve_jobs
from .archiving import OutputPackager
from .cli import main_cli

# Model classes for external use
from .models import (
    AppConfig,
    BuilderConfig,
    BuildJob,
    BuildReport,
    EngineVersionReport,
    EngineVersionStatus,
    FailureKind,
    FailureReason,
    JobKey,
    JobState,
    PluginDescriptor,
    StateChangeEvent,
)

# Errors
from .errors import (
    AlreadyStarted,
    FatalJobError,
    PackagingIOError,
    PluginBuilderError,
    SessionNotTerminal,
    UnsupportedEngineVersion,
    UnsupportedPlatform,
)
from .validation import ValidationError

# Storage
from .storage import ReportWriter, load_report

__version__ = "0.3.0"

__all__ = [
    # Main interfaces
    "get_config",
    "clear_config_cache",
    "set_config_path",
    "find_uplugin_file",
    "load_plugin_descriptor",
    "BuildRunner",
    "BuildSession",
    "JobScheduler",
    "resolve_jobs",
    "OutputPackager",
    "main_cli",
    # Models
    "AppConfig",
    "BuilderConfig",
    "BuildJob",
    "BuildReport",
    "EngineVersionReport",
    "EngineVersionStatus",
    "FailureKind",
    "FailureReason",
    "JobKey",
    "JobState",
    "PluginDescriptor",
    "StateChangeEvent",
    # Errors
    "AlreadyStarted",
    "FatalJobError",
    "PackagingIOError",
    "PluginBuilderError",
    "SessionNotTerminal",
    "UnsupportedEngineVersion",
    "UnsupportedPlatform",
    "ValidationError",
    # Storage
    "ReportWriter",
    "load_report",
]
