"""
Build report data models.

The report is an immutable snapshot derived from a terminated session. It is
the single source of truth for what the user sees after a build: per-job
outcomes (with fatal failures told apart from transient ones), one entry per
engine version describing what happened to its archive, and the list of
archives produced.

Reports serialize to a plain dictionary with ``to_dict`` so they can be
persisted as JSON and reloaded with ``from_dict``.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from packaging.version import Version

from .job import BuildJob, FailureReason, JobState


class EngineVersionStatus(Enum):
    # Every job succeeded and the archive was written.
    PACKAGED = "packaged"
    # At least one job for this version did not succeed; no archive.
    PARTIAL = "partial"
    # Every job succeeded but merging or writing the archive failed.
    PACKAGING_FAILED = "packaging_failed"
    # Every job succeeded and packaging is disabled.
    NOT_PACKAGED = "not_packaged"
    # The session was cancelled before packaging.
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class JobReportEntry:
    engine_version: str
    platform: str
    state: JobState
    attempts: int
    output_dir: str
    started_at: Optional[float] = None
    finished_at: Optional[float] = None
    error: Optional[FailureReason] = None

    @property
    def fatal(self) -> bool:
        return self.error is not None and self.error.fatal

    @classmethod
    def from_job(cls, job: BuildJob) -> "JobReportEntry":
        return cls(
            engine_version=job.key.engine_version,
            platform=job.key.platform,
            state=job.state,
            attempts=job.attempts,
            output_dir=str(job.output_dir),
            started_at=job.started_at,
            finished_at=job.finished_at,
            error=job.last_error if job.state is JobState.FAILED else None,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "engine_version": self.engine_version,
            "platform": self.platform,
            "state": self.state.value,
            "attempts": self.attempts,
            "output_dir": self.output_dir,
            "started_at": self.started_at,
            "finished_at": self.finished_at,
            "error": self.error.to_dict() if self.error else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "JobReportEntry":
        error = data.get("error")
        return cls(
            engine_version=data["engine_version"],
            platform=data["platform"],
            state=JobState(data["state"]),
            attempts=data["attempts"],
            output_dir=data["output_dir"],
            started_at=data.get("started_at"),
            finished_at=data.get("finished_at"),
            error=FailureReason.from_dict(error) if error else None,
        )


@dataclass(frozen=True)
class EngineVersionReport:
    engine_version: str
    status: EngineVersionStatus
    archive_path: Optional[str] = None
    # "<platform>: <reason>" for each job that kept this version from packaging.
    failures: Tuple[str, ...] = ()
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "engine_version": self.engine_version,
            "status": self.status.value,
            "archive_path": self.archive_path,
            "failures": list(self.failures),
            "error": self.error,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EngineVersionReport":
        return cls(
            engine_version=data["engine_version"],
            status=EngineVersionStatus(data["status"]),
            archive_path=data.get("archive_path"),
            failures=tuple(data.get("failures", ())),
            error=data.get("error"),
        )


def group_jobs_by_engine_version(jobs: Iterable[BuildJob]) -> Dict[str, List[BuildJob]]:
    """Group jobs by engine version, versions in ascending semantic order."""
    groups: Dict[str, List[BuildJob]] = {}
    for job in sorted(jobs, key=lambda j: j.order):
        groups.setdefault(job.key.engine_version, []).append(job)
    return {version: groups[version] for version in sorted(groups, key=Version)}


def describe_failures(jobs: Iterable[BuildJob]) -> Tuple[str, ...]:
    failures = []
    for job in jobs:
        if job.state is JobState.SUCCEEDED:
            continue
        if job.last_error is not None and job.state is JobState.FAILED:
            failures.append(f"{job.key.platform}: {job.last_error}")
        else:
            failures.append(f"{job.key.platform}: {job.state.value}")
    return tuple(failures)


def summarize_engine_versions(
    jobs: Sequence[BuildJob], cancelled: bool = False
) -> List[EngineVersionReport]:
    """
    Engine version entries for a session whose outputs were not packaged.

    Used when no packaging step ran: complete versions are reported as
    NOT_PACKAGED, incomplete ones as PARTIAL with their failures.
    """
    entries = []
    for version, group in group_jobs_by_engine_version(jobs).items():
        if cancelled:
            status = EngineVersionStatus.CANCELLED
        elif all(job.state is JobState.SUCCEEDED for job in group):
            status = EngineVersionStatus.NOT_PACKAGED
        else:
            status = EngineVersionStatus.PARTIAL
        entries.append(
            EngineVersionReport(
                engine_version=version,
                status=status,
                failures=describe_failures(group),
            )
        )
    return entries


@dataclass(frozen=True)
class BuildReport:
    """
    Immutable outcome of one build session.
    """

    session_id: str
    plugin_name: str
    plugin_version: str
    succeeded: int
    failed: int
    cancelled: int
    jobs: Tuple[JobReportEntry, ...]
    engine_versions: Tuple[EngineVersionReport, ...]
    archives: Tuple[str, ...]
    was_cancelled: bool
    last_sequence: int
    created_at: float

    @property
    def total(self) -> int:
        return len(self.jobs)

    @property
    def fatal_failures(self) -> Tuple[JobReportEntry, ...]:
        return tuple(entry for entry in self.jobs if entry.fatal)

    @property
    def is_success(self) -> bool:
        """All jobs succeeded and no engine version failed to package."""
        return (
            self.succeeded == self.total
            and not self.was_cancelled
            and all(
                entry.status in (EngineVersionStatus.PACKAGED, EngineVersionStatus.NOT_PACKAGED)
                for entry in self.engine_versions
            )
        )

    def engine_version(self, version: str) -> Optional[EngineVersionReport]:
        for entry in self.engine_versions:
            if entry.engine_version == version:
                return entry
        return None

    @classmethod
    def from_session_state(
        cls,
        session_id: str,
        plugin_name: str,
        plugin_version: str,
        jobs: Sequence[BuildJob],
        engine_versions: Sequence[EngineVersionReport],
        was_cancelled: bool,
        last_sequence: int,
        created_at: float,
    ) -> "BuildReport":
        ordered = sorted(jobs, key=lambda j: j.order)
        return cls(
            session_id=session_id,
            plugin_name=plugin_name,
            plugin_version=plugin_version,
            succeeded=sum(1 for j in ordered if j.state is JobState.SUCCEEDED),
            failed=sum(1 for j in ordered if j.state is JobState.FAILED),
            cancelled=sum(1 for j in ordered if j.state is JobState.CANCELLED),
            jobs=tuple(JobReportEntry.from_job(j) for j in ordered),
            engine_versions=tuple(engine_versions),
            archives=tuple(e.archive_path for e in engine_versions if e.archive_path),
            was_cancelled=was_cancelled,
            last_sequence=last_sequence,
            created_at=created_at,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "session_id": self.session_id,
            "plugin_name": self.plugin_name,
            "plugin_version": self.plugin_version,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "cancelled": self.cancelled,
            "jobs": [entry.to_dict() for entry in self.jobs],
            "engine_versions": [entry.to_dict() for entry in self.engine_versions],
            "archives": list(self.archives),
            "was_cancelled": self.was_cancelled,
            "last_sequence": self.last_sequence,
            "created_at": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BuildReport":
        return cls(
            session_id=data["session_id"],
            plugin_name=data["plugin_name"],
            plugin_version=data["plugin_version"],
            succeeded=data["succeeded"],
            failed=data["failed"],
            cancelled=data["cancelled"],
            jobs=tuple(JobReportEntry.from_dict(j) for j in data["jobs"]),
            engine_versions=tuple(
                EngineVersionReport.from_dict(e) for e in data["engine_versions"]
            ),
            archives=tuple(data.get("archives", ())),
            was_cancelled=data.get("was_cancelled", False),
            last_sequence=data.get("last_sequence", 0),
            created_at=data.get("created_at", 0.0),
        )
