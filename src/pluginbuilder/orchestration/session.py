"""
The build session: aggregate root of one build action.

The session owns the job table and the append-only event log. The job table
is the only shared mutable state of a build; it is mutated exclusively
through the transition calls below (used by the scheduler), all serialized
by one lock. Everyone else reads consistent copies through ``snapshot()``,
``get_job()``, ``events()`` or the ``subscribe()`` feed.

Every state change appends a ``StateChangeEvent`` with a global, strictly
increasing sequence number. A subscriber first receives a snapshot of the
current job states and then replays the log from that point on, so a
subscriber that attaches late never misses or double-counts a change.
"""

import copy
import logging
import threading
import time
from typing import Callable, Dict, Iterator, List, Optional, Sequence

from ..errors import AlreadyStarted, InvalidTransition, PluginBuilderError, SessionNotTerminal
from ..models.config import BuilderConfig
from ..models.job import (
    BuildJob,
    FailureReason,
    JobKey,
    JobState,
    StateChangeEvent,
    is_legal_transition,
)
from ..models.plugin import PluginDescriptor
from ..models.report import BuildReport, EngineVersionReport, summarize_engine_versions
from ..models.runtime import SessionLayout
from ..validation import ErrorSeverity, handle_error

logger = logging.getLogger(__name__)


def new_session_id(time_source: Callable[[], float] = time.time) -> str:
    """Session ids follow the run directory naming: ``session_YYYYmmdd_HHMMSS_mmm``."""
    now = time_source()
    return time.strftime("session_%Y%m%d_%H%M%S", time.localtime(now)) + f"_{int(now * 1000) % 1000:03d}"


class BuildSession:
    """
    Holds every job of one build action, their states and the event log.

    Args:
        descriptor: The plugin being built
        config: Builder settings; the session keeps its own deep copy
        layout: Directory layout of this session
        packaging_expected: When True, ``report()`` waits for ``seal()``
            from the packaging step; otherwise the session seals itself once
            every job is terminal
        time_source: Wall clock for event timestamps
    """

    def __init__(
        self,
        descriptor: PluginDescriptor,
        config: BuilderConfig,
        layout: SessionLayout,
        packaging_expected: bool = False,
        time_source: Callable[[], float] = time.time,
    ):
        self.descriptor = descriptor
        self.config = copy.deepcopy(config)
        self.layout = layout
        self.packaging_expected = packaging_expected
        self._time = time_source

        self._lock = threading.RLock()
        self._changed = threading.Condition(self._lock)
        self._jobs: Dict[JobKey, BuildJob] = {}
        self._order: List[JobKey] = []
        self._events: List[StateChangeEvent] = []
        self._sequence = 0
        self._started = False
        self._sealed = False
        self._engine_entries: List[EngineVersionReport] = []
        self._report: Optional[BuildReport] = None

        self._cancel_event = threading.Event()
        self._cancel_listeners: List[Callable[[], None]] = []

    # ------------------------------------------------------------------
    # Read access
    # ------------------------------------------------------------------

    @property
    def session_id(self) -> str:
        return self.layout.session_id

    @property
    def cancel_event(self) -> threading.Event:
        """Set once ``cancel()`` is called; shared with every process runner."""
        return self._cancel_event

    @property
    def cancel_requested(self) -> bool:
        return self._cancel_event.is_set()

    @property
    def is_started(self) -> bool:
        with self._lock:
            return self._started

    @property
    def is_sealed(self) -> bool:
        with self._lock:
            return self._sealed

    @property
    def is_complete(self) -> bool:
        """Every job is terminal and no packaging step is outstanding."""
        with self._lock:
            return self._is_complete_locked()

    @property
    def last_sequence(self) -> int:
        with self._lock:
            return self._sequence

    def all_jobs_terminal(self) -> bool:
        with self._lock:
            return self._all_terminal_locked()

    def snapshot(self) -> List[BuildJob]:
        """Copies of all jobs in resolver order."""
        with self._lock:
            return [self._jobs[key].copy() for key in self._order]

    def get_job(self, key: JobKey) -> BuildJob:
        with self._lock:
            return self._require_job(key).copy()

    def pending_jobs(self) -> List[BuildJob]:
        with self._lock:
            return [
                self._jobs[key].copy()
                for key in self._order
                if self._jobs[key].state is JobState.PENDING
            ]

    def events(self) -> List[StateChangeEvent]:
        """The full event log so far."""
        with self._lock:
            return list(self._events)

    def progress(self) -> Dict[str, int]:
        """Number of jobs per state, plus the total."""
        with self._lock:
            counts = {state.value: 0 for state in JobState}
            for job in self._jobs.values():
                counts[job.state.value] += 1
            counts["total"] = len(self._jobs)
            return counts

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self, jobs: Sequence[BuildJob]) -> None:
        """
        Register the session's jobs. The job list is fixed from here on.

        Raises:
            AlreadyStarted: If the session was already started
            ValueError: If two jobs share a key or a job is not Pending
        """
        with self._lock:
            if self._started:
                raise AlreadyStarted(f"Session {self.session_id} was already started")

            table: Dict[JobKey, BuildJob] = {}
            for job in jobs:
                if job.key in table:
                    raise ValueError(f"Duplicate job key {job.key}")
                if job.state is not JobState.PENDING:
                    raise ValueError(f"Job {job.key} must be pending to start, got {job.state.value}")
                table[job.key] = job.copy()

            self._jobs = table
            self._order = [job.key for job in sorted(table.values(), key=lambda j: j.order)]
            self._started = True
            logger.info(f"Session {self.session_id} started with {len(table)} jobs")

            # A cancel that arrived before start still applies.
            if self.cancel_requested:
                self._cancel_pending_locked()
            self._changed.notify_all()

    def cancel(self) -> None:
        """
        Cancel the build. Idempotent; a no-op once the session is complete.

        Pending jobs become Cancelled immediately; running jobs see the
        shared cancel event and report Cancelled once their process is gone.
        """
        with self._lock:
            if self.cancel_requested or (self._started and self._all_terminal_locked()):
                return
            self._cancel_event.set()
            cancelled = self._cancel_pending_locked()
            listeners = list(self._cancel_listeners)
            logger.warning(
                f"Session {self.session_id} cancelled: {cancelled} pending jobs cancelled"
            )

        for listener in listeners:
            try:
                listener()
            except Exception as e:
                handle_error(
                    error=e,
                    context="cancel listener",
                    severity=ErrorSeverity.WARNING,
                    reraise=False,
                    logger=logger,
                )

    def add_cancel_listener(self, listener: Callable[[], None]) -> None:
        with self._lock:
            self._cancel_listeners.append(listener)

    def remove_cancel_listener(self, listener: Callable[[], None]) -> None:
        with self._lock:
            if listener in self._cancel_listeners:
                self._cancel_listeners.remove(listener)

    def seal(self, engine_entries: Sequence[EngineVersionReport]) -> None:
        """
        Attach the packaging results and complete the session.

        Raises:
            SessionNotTerminal: If a job is still pending or running
        """
        with self._lock:
            if not self._started or not self._all_terminal_locked():
                raise SessionNotTerminal(
                    f"Session {self.session_id} cannot be sealed while jobs are still active"
                )
            if self._sealed:
                raise PluginBuilderError(f"Session {self.session_id} is already sealed")
            self._seal_locked(engine_entries)

    def report(self) -> BuildReport:
        """
        The final build report. Repeated calls return the same object.

        Raises:
            SessionNotTerminal: If a job is not terminal yet, or packaging
                is expected and has not finished
        """
        with self._lock:
            if self._report is not None:
                return self._report
            if not self._started or not self._all_terminal_locked():
                raise SessionNotTerminal(
                    f"Session {self.session_id} has jobs that are not finished"
                )
            if not self._sealed:
                if self.packaging_expected:
                    raise SessionNotTerminal(
                        f"Session {self.session_id} is still packaging outputs"
                    )
                self._seal_locked(
                    summarize_engine_versions(list(self._jobs.values()), self.cancel_requested)
                )

            self._report = BuildReport.from_session_state(
                session_id=self.session_id,
                plugin_name=self.descriptor.name,
                plugin_version=self.descriptor.version,
                jobs=[self._jobs[key].copy() for key in self._order],
                engine_versions=self._engine_entries,
                was_cancelled=self.cancel_requested,
                last_sequence=self._sequence,
                created_at=self._time(),
            )
            return self._report

    def subscribe(self, timeout: Optional[float] = None) -> Iterator[StateChangeEvent]:
        """
        Feed of state changes: a snapshot of every job, then live events.

        The feed ends once the session is complete. Until then it blocks
        waiting for the next event; with ``timeout`` set, a wait longer than
        ``timeout`` seconds raises ``TimeoutError``.
        """
        with self._lock:
            now = self._time()
            snapshot = [
                StateChangeEvent(
                    sequence=self._sequence,
                    key=job.key,
                    old_state=None,
                    new_state=job.state,
                    timestamp=now,
                    attempt=job.attempts,
                    reason=job.last_error,
                    snapshot=True,
                )
                for job in (self._jobs[key] for key in self._order)
            ]
            cursor = len(self._events)
            done = self._is_complete_locked()

        yield from snapshot
        if done:
            return

        while True:
            with self._changed:
                while cursor >= len(self._events) and not self._is_complete_locked():
                    if not self._changed.wait(timeout=timeout):
                        raise TimeoutError(
                            f"No event from session {self.session_id} within {timeout}s"
                        )
                batch = self._events[cursor:]
                cursor = len(self._events)
                done = self._is_complete_locked()
            yield from batch
            if done:
                return

    # ------------------------------------------------------------------
    # Transitions (used by the scheduler)
    # ------------------------------------------------------------------

    def try_begin(self, key: JobKey) -> Optional[BuildJob]:
        """
        Claim a pending job: Pending -> Running, attempts + 1.

        Returns the claimed job, or None if the job is no longer pending or
        the session was cancelled.
        """
        with self._lock:
            job = self._require_job(key)
            if self.cancel_requested or job.state is not JobState.PENDING:
                return None
            job.attempts += 1
            job.not_before = None
            if job.started_at is None:
                job.started_at = self._time()
            self._apply_locked(job, JobState.RUNNING)
            return job.copy()

    def transition(
        self, key: JobKey, new_state: JobState, reason: Optional[FailureReason] = None
    ) -> StateChangeEvent:
        """
        Move a job to ``new_state``.

        Raises:
            InvalidTransition: If the change is not allowed by the job state machine
        """
        with self._lock:
            job = self._require_job(key)
            if new_state is JobState.PENDING:
                raise InvalidTransition(f"Job {key} can only return to pending through a retry")
            if not is_legal_transition(job.state, new_state):
                raise InvalidTransition(
                    f"Job {key} cannot move from {job.state.value} to {new_state.value}"
                )
            if new_state is JobState.FAILED and reason is None:
                raise InvalidTransition(f"Job {key} cannot fail without a reason")
            return self._apply_locked(job, new_state, reason)

    def schedule_retry(self, key: JobKey, reason: FailureReason, not_before: float) -> bool:
        """
        Record a failed attempt and re-enqueue the job.

        Emits Running -> Failed and Failed -> Pending as one atomic step. If
        the session was cancelled meanwhile, the job stays Failed.

        Returns:
            True if the job was re-enqueued
        """
        with self._lock:
            job = self._require_job(key)
            if job.state is not JobState.RUNNING:
                raise InvalidTransition(
                    f"Job {key} cannot be retried from {job.state.value}"
                )
            self._apply_locked(job, JobState.FAILED, reason)
            if self.cancel_requested:
                return False
            job.not_before = not_before
            job.finished_at = None
            self._apply_locked(job, JobState.PENDING, reason)
            return True

    # ------------------------------------------------------------------
    # Internals (lock held)
    # ------------------------------------------------------------------

    def _require_job(self, key: JobKey) -> BuildJob:
        try:
            return self._jobs[key]
        except KeyError:
            raise KeyError(f"Unknown job {key} in session {self.session_id}") from None

    def _all_terminal_locked(self) -> bool:
        return all(job.state.is_terminal for job in self._jobs.values())

    def _is_complete_locked(self) -> bool:
        if not self._started or not self._all_terminal_locked():
            return False
        return self._sealed or not self.packaging_expected

    def _apply_locked(
        self, job: BuildJob, new_state: JobState, reason: Optional[FailureReason] = None
    ) -> StateChangeEvent:
        old_state = job.state
        now = self._time()
        job.state = new_state
        if new_state is JobState.FAILED:
            job.last_error = reason
        if new_state.is_terminal:
            job.finished_at = now

        self._sequence += 1
        event = StateChangeEvent(
            sequence=self._sequence,
            key=job.key,
            old_state=old_state,
            new_state=new_state,
            timestamp=now,
            attempt=job.attempts,
            reason=reason,
        )
        self._events.append(event)
        self._changed.notify_all()

        if new_state is JobState.FAILED:
            logger.warning(f"Job {job.key} attempt {job.attempts} failed: {reason}")
        else:
            logger.info(f"Job {job.key}: {old_state.value} -> {new_state.value}")
        return event

    def _cancel_pending_locked(self) -> int:
        count = 0
        for key in self._order:
            job = self._jobs[key]
            if job.state is JobState.PENDING:
                self._apply_locked(job, JobState.CANCELLED)
                count += 1
        return count

    def _seal_locked(self, engine_entries: Sequence[EngineVersionReport]) -> None:
        self._engine_entries = list(engine_entries)
        self._sealed = True
        self._changed.notify_all()
        logger.info(f"Session {self.session_id} sealed")
