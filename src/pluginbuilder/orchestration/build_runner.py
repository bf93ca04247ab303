"""
High-level entry point wiring resolver, session, scheduler and packager.

``BuildRunner`` is what the CLI (or any other front end) talks to: create a
session for a plugin and a set of (engine version, platform) pairs, hand
the session to the UI for ``subscribe()``/``cancel()``, then ``run()`` it
to obtain the final report.
"""

import logging
import time
from typing import Callable, Iterable, Optional, Tuple

from ..archiving import OutputPackager
from ..executor.base import AbstractProcessRunner, OutputObserver
from ..executor.process_runner import SubprocessRunner
from ..models.config import AppConfig, BuilderConfig
from ..models.plugin import PluginDescriptor
from ..models.report import BuildReport, summarize_engine_versions
from ..models.runtime import SessionLayout
from ..storage import ReportWriter
from ..system.commands import UATCommandBuilder
from ..system.engines import EngineLocator
from .resolver import resolve_jobs
from .scheduler import CommandBuilder, JobScheduler
from .session import BuildSession, new_session_id

logger = logging.getLogger(__name__)


class BuildRunner:
    """
    Runs build sessions for one application configuration.

    Args:
        app_config: Builder settings and installed engines
        runner: Process runner; defaults to a SubprocessRunner built from config
        locator: Engine locator; defaults to the engines in ``app_config``
        command_builder_factory: Builds the per-job command builder for a
            session; defaults to ``UATCommandBuilder``
        observer: Optional sink for build tool output lines
        report_writer: Persists reports; None disables persistence
    """

    def __init__(
        self,
        app_config: AppConfig,
        runner: Optional[AbstractProcessRunner] = None,
        locator: Optional[EngineLocator] = None,
        command_builder_factory: Optional[Callable[[BuildSession], CommandBuilder]] = None,
        observer: Optional[OutputObserver] = None,
        report_writer: Optional[ReportWriter] = None,
        persist_reports: bool = True,
        clock: Callable[[], float] = time.monotonic,
        time_source: Callable[[], float] = time.time,
    ):
        self.app_config = app_config
        builder = app_config.builder
        self.runner = runner or SubprocessRunner(
            poll_interval=builder.poll_interval,
            grace_period=builder.cancel_grace_period,
            tail_lines=builder.output_tail_lines,
        )
        self.locator = locator or EngineLocator(app_config.engines)
        self.command_builder_factory = command_builder_factory or self._uat_command_builder
        self.observer = observer
        self.report_writer = report_writer
        if self.report_writer is None and persist_reports:
            self.report_writer = ReportWriter(builder.storage)
        self.clock = clock
        self.time_source = time_source

    @property
    def config(self) -> BuilderConfig:
        return self.app_config.builder

    def create_session(
        self,
        descriptor: PluginDescriptor,
        requested: Iterable[Tuple[str, str]],
        session_id: Optional[str] = None,
    ) -> BuildSession:
        """
        Resolve ``requested`` into jobs and return a started session.

        Raises:
            UnsupportedEngineVersion: If a requested version is not supported
            UnsupportedPlatform: If a requested platform is not supported
        """
        layout = SessionLayout(
            output_root=self.config.output_root,
            session_id=session_id or new_session_id(self.time_source),
        )
        jobs = resolve_jobs(descriptor, requested, layout)
        session = BuildSession(
            descriptor,
            self.config,
            layout,
            packaging_expected=True,
            time_source=self.time_source,
        )
        session.start(jobs)
        return session

    def run(self, session: BuildSession) -> BuildReport:
        """
        Execute every job of ``session``, package the outputs and report.

        Blocks until the session is complete. Cancelling the session from
        another thread makes this return early with a cancelled report.
        """
        logger.info(f"Building {session.descriptor.name} {session.descriptor.version} "
                    f"in session {session.session_id}")
        scheduler = JobScheduler(
            session,
            self.runner,
            self.command_builder_factory(session),
            session.config,
            clock=self.clock,
            observer=self.observer,
        )
        scheduler.run()

        jobs = session.snapshot()
        if session.cancel_requested or not session.config.zip_up:
            entries = summarize_engine_versions(jobs, cancelled=session.cancel_requested)
        else:
            packager = OutputPackager(session.descriptor, session.config,
                                      session.layout.packaged_plugins_dir)
            entries = packager.package(jobs)
        session.seal(entries)

        report = session.report()
        if self.report_writer is not None:
            self.report_writer.save(session.layout, report, session.events())
        self._log_summary(report)
        return report

    def build(
        self,
        descriptor: PluginDescriptor,
        requested: Iterable[Tuple[str, str]],
        session_id: Optional[str] = None,
    ) -> BuildReport:
        """Create and run a session in one call."""
        return self.run(self.create_session(descriptor, requested, session_id))

    def _uat_command_builder(self, session: BuildSession) -> CommandBuilder:
        return UATCommandBuilder(session.descriptor, session.config, self.locator)

    @staticmethod
    def _log_summary(report: BuildReport) -> None:
        logger.info(
            f"Session {report.session_id}: {report.succeeded} succeeded, "
            f"{report.failed} failed, {report.cancelled} cancelled of {report.total} jobs"
        )
        for entry in report.engine_versions:
            if entry.archive_path:
                logger.info(f"  {entry.engine_version}: {entry.status.value} -> {entry.archive_path}")
            else:
                logger.info(f"  {entry.engine_version}: {entry.status.value}")
            for failure in entry.failures:
                logger.info(f"    {failure}")
