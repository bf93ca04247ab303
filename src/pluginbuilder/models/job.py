"""
Build job data models.

This module defines the per-job state machine vocabulary shared by the
resolver, the scheduler, the session and the report:

- ``JobKey``: the (engine version, platform) pair identifying a job
- ``JobState``: lifecycle states and the legal transitions between them
- ``FailureReason``: why a job failed and whether retrying can help
- ``BuildJob``: the mutable record the session keeps for each job
- ``StateChangeEvent``: one entry of the session's append-only event log
"""

import dataclasses
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Dict, FrozenSet, Optional, Tuple


@dataclass(frozen=True)
class JobKey:
    """Unique identity of a job within a session."""

    engine_version: str
    platform: str

    @property
    def slug(self) -> str:
        """Filesystem-safe name used for the job's directories."""
        return f"{self.engine_version}_{self.platform}"

    def __str__(self) -> str:
        return f"{self.engine_version}/{self.platform}"


class JobState(Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATES


TERMINAL_STATES: FrozenSet[JobState] = frozenset(
    {JobState.SUCCEEDED, JobState.FAILED, JobState.CANCELLED}
)

# FAILED -> PENDING is only legal as part of a scheduled retry.
LEGAL_TRANSITIONS: Dict[JobState, FrozenSet[JobState]] = {
    JobState.PENDING: frozenset({JobState.RUNNING, JobState.CANCELLED}),
    JobState.RUNNING: frozenset({JobState.SUCCEEDED, JobState.FAILED, JobState.CANCELLED}),
    JobState.FAILED: frozenset({JobState.PENDING}),
    JobState.SUCCEEDED: frozenset(),
    JobState.CANCELLED: frozenset(),
}


def is_legal_transition(old_state: JobState, new_state: JobState) -> bool:
    return new_state in LEGAL_TRANSITIONS[old_state]


class FailureKind(Enum):
    """Categories of job failure."""

    EXIT_CODE = "exit_code"
    TIMED_OUT = "timed_out"
    INCOMPLETE_OUTPUT = "incomplete_output"
    MISSING_EXECUTABLE = "missing_executable"
    WORKDIR_UNAVAILABLE = "workdir_unavailable"
    RUNNER_ERROR = "runner_error"


# Retrying cannot fix a missing prerequisite.
FATAL_FAILURE_KINDS: FrozenSet[FailureKind] = frozenset(
    {FailureKind.MISSING_EXECUTABLE, FailureKind.WORKDIR_UNAVAILABLE, FailureKind.RUNNER_ERROR}
)


@dataclass(frozen=True)
class FailureReason:
    """
    Why a job attempt failed.

    ``fatal`` reasons point at the environment (missing engine, unwritable
    output root) and are never retried; the others are treated as transient.
    """

    kind: FailureKind
    message: str
    exit_code: Optional[int] = None
    output_tail: Tuple[str, ...] = ()

    @property
    def fatal(self) -> bool:
        return self.kind in FATAL_FAILURE_KINDS

    @property
    def retryable(self) -> bool:
        return not self.fatal

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "message": self.message,
            "exit_code": self.exit_code,
            "output_tail": list(self.output_tail),
            "fatal": self.fatal,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FailureReason":
        return cls(
            kind=FailureKind(data["kind"]),
            message=data.get("message", ""),
            exit_code=data.get("exit_code"),
            output_tail=tuple(data.get("output_tail", ())),
        )

    def __str__(self) -> str:
        if self.exit_code is not None and self.kind is FailureKind.EXIT_CODE:
            return f"{self.message} (exit code {self.exit_code})"
        return self.message


@dataclass
class BuildJob:
    """
    The session's record for one (engine version, platform) job.

    Instances handed out by the session are copies; mutating them has no
    effect on the session.
    """

    key: JobKey
    # Resolver position; workers pick pending jobs in this order.
    order: int
    working_dir: Path
    output_dir: Path
    log_file: Optional[Path] = None
    state: JobState = JobState.PENDING
    # Number of runs started so far.
    attempts: int = 0
    last_error: Optional[FailureReason] = None
    started_at: Optional[float] = None
    finished_at: Optional[float] = None
    # Scheduler clock value before which a retried job must not start.
    not_before: Optional[float] = None

    @property
    def engine_version(self) -> str:
        return self.key.engine_version

    @property
    def platform(self) -> str:
        return self.key.platform

    def copy(self) -> "BuildJob":
        return dataclasses.replace(self)


@dataclass(frozen=True)
class StateChangeEvent:
    """
    One state change of one job.

    ``sequence`` is global and strictly increasing across the session, so the
    event log can be replayed in a consistent order. Snapshot events are
    synthesized for new subscribers; they carry the sequence number of the
    last real event and ``old_state`` is None.
    """

    sequence: int
    key: JobKey
    old_state: Optional[JobState]
    new_state: JobState
    timestamp: float
    attempt: int
    reason: Optional[FailureReason] = None
    snapshot: bool = False

    def to_record(self) -> Dict[str, Any]:
        """Flatten the event into a row for tabular storage."""
        return {
            "sequence": self.sequence,
            "engine_version": self.key.engine_version,
            "platform": self.key.platform,
            "old_state": self.old_state.value if self.old_state else None,
            "new_state": self.new_state.value,
            "timestamp": self.timestamp,
            "attempt": self.attempt,
            "reason_kind": self.reason.kind.value if self.reason else None,
            "reason_message": self.reason.message if self.reason else None,
        }
