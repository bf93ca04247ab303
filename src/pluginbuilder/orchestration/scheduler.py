"""
Job scheduler: drives every job of a session to a terminal state.

A fixed pool of workers pulls ready jobs in resolver order. A job is ready
when it is Pending and its retry backoff (``not_before``) has elapsed. Each
worker keeps pulling until every job is terminal or the session is
cancelled, so a job re-enqueued for retry is picked up by whichever worker
becomes free first.
"""

import logging
import shutil
import threading
import time
from typing import Callable, Optional, Sequence

from ..errors import FatalJobError, WorkingDirectoryError
from ..executor.base import AbstractProcessRunner, OutputObserver
from ..executor.thread_pool import ManagedThreadPoolExecutor, WorkerPoolConfig
from ..models.config import BuilderConfig
from ..models.job import BuildJob, FailureKind, FailureReason, JobState
from ..models.outcomes import Cancelled, RunOutcome, Succeeded
from ..models.runtime import Invocation
from ..system.cpu import resolve_worker_count
from ..validation import ErrorSeverity, handle_error
from .retry import RetryPolicy, failure_reason_from_outcome, plan_retry
from .session import BuildSession

logger = logging.getLogger(__name__)

# Builds the argv for a job; may raise FatalJobError.
CommandBuilder = Callable[[BuildJob], Sequence[str]]


class JobScheduler:
    """
    Runs the jobs of one session on a bounded worker pool.

    Args:
        session: The started session whose jobs are executed
        runner: Process runner used for every attempt
        command_builder: Callable returning the build tool argv for a job
        config: Concurrency, timeout and retry settings
        clock: Monotonic clock used for retry backoff
        observer: Optional sink for build tool output lines
    """

    def __init__(
        self,
        session: BuildSession,
        runner: AbstractProcessRunner,
        command_builder: CommandBuilder,
        config: BuilderConfig,
        clock: Callable[[], float] = time.monotonic,
        observer: Optional[OutputObserver] = None,
    ):
        self.session = session
        self.runner = runner
        self.command_builder = command_builder
        self.config = config
        self.clock = clock
        self.observer = observer
        self.policy = RetryPolicy.from_config(config)

        self._wakeup = threading.Condition()

    def run(self) -> None:
        """
        Execute jobs until every job is terminal. Blocks the caller.

        When the session is cancelled, pending jobs are already Cancelled by
        the session; this call returns once the running ones have stopped.
        """
        job_count = len(self.session.snapshot())
        if job_count == 0:
            logger.info("No jobs to schedule")
            return

        workers = resolve_worker_count(self.config.max_concurrency, job_count)
        logger.info(f"Scheduling {job_count} jobs on {workers} workers")

        self.session.add_cancel_listener(self._wake_all)
        try:
            with ManagedThreadPoolExecutor(WorkerPoolConfig(max_workers=workers)) as pool:
                pool.run_workers(self._worker_loop, workers)
            logger.debug(f"Worker pool stats: {pool.get_stats()}")
        finally:
            self.session.remove_cancel_listener(self._wake_all)

    # ------------------------------------------------------------------

    def _worker_loop(self, index: int) -> None:
        logger.debug(f"Worker {index} started")
        while True:
            job = self._next_job()
            if job is None:
                break
            self._run_job(job)
            self._wake_all()
        logger.debug(f"Worker {index} finished")

    def _next_job(self) -> Optional[BuildJob]:
        """
        Claim the next ready job, waiting for backoff or running jobs.

        Returns None once nothing is left to do.
        """
        while True:
            if self.session.cancel_requested:
                return None

            jobs = self.session.snapshot()
            pending = [job for job in jobs if job.state is JobState.PENDING]
            running = any(job.state is JobState.RUNNING for job in jobs)
            if not pending and not running:
                return None

            now = self.clock()
            for job in pending:
                if job.not_before is None or job.not_before <= now:
                    claimed = self.session.try_begin(job.key)
                    if claimed is not None:
                        return claimed

            # Nothing ready: a retry is backing off or another worker may re-enqueue.
            waits = [job.not_before - now for job in pending if job.not_before is not None]
            delay = min([self.config.poll_interval] + [w for w in waits if w > 0])
            with self._wakeup:
                self._wakeup.wait(timeout=delay)

    def _wake_all(self) -> None:
        with self._wakeup:
            self._wakeup.notify_all()

    def _prepare(self, job: BuildJob) -> Invocation:
        # Each attempt starts from an empty output directory, so files left by
        # a failed attempt never count as output of the next one.
        try:
            if job.output_dir.exists():
                shutil.rmtree(job.output_dir)
            for directory in (job.working_dir, job.output_dir):
                directory.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise WorkingDirectoryError(
                f"Cannot prepare directories for {job.key}: {e}", path=str(job.output_dir)
            ) from e

        args = self.command_builder(job)
        return Invocation(
            key=job.key,
            args=tuple(str(arg) for arg in args),
            working_dir=job.working_dir,
            output_dir=job.output_dir,
            timeout=self.config.job_timeout,
            log_file=job.log_file,
        )

    def _run_job(self, job: BuildJob) -> None:
        logger.info(f"Job {job.key}: attempt {job.attempts}/{self.policy.limit}")
        try:
            invocation = self._prepare(job)
            outcome = self.runner.run(invocation, self.session.cancel_event, self.observer)
            self._record_outcome(job, outcome)
        except FatalJobError as e:
            logger.error(f"Job {job.key} cannot run: {e}")
            self.session.transition(job.key, JobState.FAILED, e.to_reason())
        except Exception as e:
            handle_error(
                error=e,
                context=f"running job {job.key}",
                severity=ErrorSeverity.ERROR,
                reraise=False,
                logger=logger,
            )
            # The outcome may already have been recorded before the error.
            if self.session.get_job(job.key).state is JobState.RUNNING:
                reason = FailureReason(kind=FailureKind.RUNNER_ERROR, message=f"{type(e).__name__}: {e}")
                self.session.transition(job.key, JobState.FAILED, reason)

    def _record_outcome(self, job: BuildJob, outcome: RunOutcome) -> None:
        if isinstance(outcome, Succeeded):
            self.session.transition(job.key, JobState.SUCCEEDED)
            return
        if isinstance(outcome, Cancelled):
            self.session.transition(job.key, JobState.CANCELLED)
            return

        reason = failure_reason_from_outcome(outcome)
        decision = plan_retry(job.attempts, reason, self.policy, self.clock())
        if decision.retry:
            logger.info(f"Job {job.key} will retry in {decision.delay:g}s")
            if not self.session.schedule_retry(job.key, reason, decision.not_before):
                logger.info(f"Job {job.key} not retried: session cancelled")
            return
        self.session.transition(job.key, JobState.FAILED, reason)
