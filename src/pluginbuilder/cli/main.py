"""
Command-line interface for PluginBuilder.

Builds one plugin for every requested (engine version, platform) pair,
packages each fully built engine version and prints the resulting report.
"""

import argparse
import dataclasses
import logging
import signal
import sys
import threading
from pathlib import Path
from typing import List, Optional

from ..config import get_config, set_config_path
from ..descriptor import load_plugin_descriptor
from ..models.config import AppConfig
from ..models.report import BuildReport
from ..orchestration import BuildRunner, BuildSession, expand_matrix
from ..system.engines import EngineLocator
from ..validation import (
    ValidationError,
    handle_cli_error,
    validate_engine_version,
    validate_name_list,
    validate_platform_name,
    validate_positive_integer,
)

# --- Logging Setup ---
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)-5.5s] %(name)s:%(filename)s:%(lineno)d\t %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
    stream=sys.stdout,
)
logger = logging.getLogger(__name__)

EXIT_SUCCESS = 0
EXIT_FAILED = 1
EXIT_INVALID_INPUT = 2
EXIT_CANCELLED = 130


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pluginbuilder",
        description="Build a plugin for several engine versions and platforms and package the results.",
    )
    parser.add_argument("--plugin", required=True, type=str,
                        help="Path to the .uplugin file or the directory containing it.")
    parser.add_argument("-e", "--engine", action="append", default=[],
                        help="Engine version to build against (repeatable or comma separated). "
                             "Defaults to every installed engine.")
    parser.add_argument("-p", "--platform", action="append", default=[],
                        help="Target platform (repeatable or comma separated). "
                             "Defaults to the plugin's supported platforms.")
    parser.add_argument("-o", "--output", type=str,
                        help="Output root directory. Overrides [builder.general] output_root.")
    parser.add_argument("-j", "--max-concurrency", type=str,
                        help="Maximum number of concurrent builds. 0 uses every available core.")
    parser.add_argument("--config", type=str, help="Path to an alternative config.toml.")
    parser.add_argument("--no-zip", action="store_true", help="Build only; do not create archives.")
    return parser


def _split_values(values: List[str]) -> List[str]:
    return [item.strip() for value in values for item in value.split(",") if item.strip()]


def apply_overrides(app_config: AppConfig, args: argparse.Namespace) -> AppConfig:
    """Return a copy of ``app_config`` with command-line overrides applied."""
    changes = {}
    if args.output:
        changes["output_root"] = Path(args.output).resolve()
    if args.max_concurrency is not None:
        changes["max_concurrency"] = validate_positive_integer(
            args.max_concurrency,
            min_value=0,
            field_name="--max-concurrency",
        )
    if args.no_zip:
        changes["zip_up"] = False
    if not changes:
        return app_config
    return dataclasses.replace(app_config, builder=dataclasses.replace(app_config.builder, **changes))


def exit_code_for(report: BuildReport) -> int:
    if report.was_cancelled:
        return EXIT_CANCELLED
    return EXIT_SUCCESS if report.is_success else EXIT_FAILED


def _follow_progress(session: BuildSession) -> threading.Thread:
    """Log one line per job state change until the session completes."""

    def follow():
        total = len(session.snapshot())
        for event in session.subscribe():
            if event.snapshot:
                continue
            counts = session.progress()
            done = counts["succeeded"] + counts["failed"] + counts["cancelled"]
            logger.info(f"[{done}/{total}] {event.key}: {event.new_state.value} (attempt {event.attempt})")

    thread = threading.Thread(target=follow, name="ProgressFollower", daemon=True)
    thread.start()
    return thread


def print_report(report: BuildReport) -> None:
    print(f"\nPlugin {report.plugin_name} {report.plugin_version} (session {report.session_id})")
    print(f"  {report.succeeded} succeeded, {report.failed} failed, {report.cancelled} cancelled")
    for entry in report.jobs:
        line = f"  {entry.engine_version:<8} {entry.platform:<12} {entry.state.value:<10} attempts={entry.attempts}"
        if entry.error is not None:
            line += f"  {'[fatal] ' if entry.fatal else ''}{entry.error}"
        print(line)
    for entry in report.engine_versions:
        print(f"  Engine {entry.engine_version}: {entry.status.value}"
              + (f" -> {entry.archive_path}" if entry.archive_path else ""))
        if entry.error:
            print(f"    {entry.error}")


def run_cli(argv: Optional[List[str]] = None) -> int:
    """Parse ``argv``, run the build and return the process exit code."""
    args = build_parser().parse_args(argv)

    if args.config:
        set_config_path(Path(args.config).resolve())
    try:
        app_config = apply_overrides(get_config(), args)
    except (FileNotFoundError, KeyError, ValueError, ValidationError) as e:
        handle_cli_error(error=e, context="configuration loading", exit_code=EXIT_INVALID_INPUT, logger=logger)

    locator = EngineLocator(app_config.engines)
    installed = locator.installed_versions()

    try:
        engines = validate_name_list(
            _split_values(args.engine) or installed,
            field_name="--engine",
            item_validator=validate_engine_version,
        )
        descriptor = load_plugin_descriptor(
            args.plugin,
            engine_versions=installed,
            use_friendly_name=app_config.builder.use_friendly_name,
        )
        platforms = validate_name_list(
            _split_values(args.platform) or list(descriptor.supported_platforms),
            field_name="--platform",
            item_validator=validate_platform_name,
        )
        runner = BuildRunner(app_config, locator=locator)
        session = runner.create_session(descriptor, expand_matrix(engines, platforms))
    except ValidationError as e:
        handle_cli_error(error=e, context="input validation", exit_code=EXIT_INVALID_INPUT, logger=logger)

    def signal_handler(signum, frame):
        if session.cancel_requested:
            logger.warning("Cancellation already in progress. Please be patient.")
            return
        logger.info(f"Signal {signal.strsignal(signum)} received. Cancelling build...")
        session.cancel()

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    follower = _follow_progress(session)
    report = runner.run(session)
    follower.join(timeout=1.0)

    print_report(report)
    return exit_code_for(report)


def main_cli() -> None:
    """Entry point of the ``pluginbuilder`` console script."""
    sys.exit(run_cli())


if __name__ == "__main__":
    main_cli()
