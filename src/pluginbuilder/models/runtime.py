"""
Runtime data models.

This module contains data structures used while a build session is running:
the on-disk layout of a session and the per-job invocation handed to the
process runner.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional, Tuple

from .job import JobKey


@dataclass(frozen=True)
class SessionLayout:
    """
    All generated paths for one build session.

    Deriving a path never touches the filesystem; directories are created by
    the scheduler right before a job runs.
    """

    # Root shared by every session (config [builder.general] output_root).
    output_root: Path
    # Unique id of this session, used as its directory name.
    session_id: str

    @property
    def session_dir(self) -> Path:
        return self.output_root / self.session_id

    @property
    def built_plugins_dir(self) -> Path:
        return self.session_dir / "BuiltPlugins"

    @property
    def work_dir(self) -> Path:
        return self.session_dir / "Work"

    @property
    def packaged_plugins_dir(self) -> Path:
        return self.output_root / "PackagedPlugins"

    @property
    def report_file(self) -> Path:
        return self.session_dir / "report.json"

    def job_output_dir(self, plugin_name: str, key: JobKey) -> Path:
        return self.built_plugins_dir / f"{plugin_name}_{key.slug}"

    def job_working_dir(self, key: JobKey) -> Path:
        return self.work_dir / key.slug

    def job_log_file(self, key: JobKey) -> Path:
        return self.job_working_dir(key) / "uat.log"


@dataclass(frozen=True)
class Invocation:
    """
    Everything the process runner needs for one build tool call.
    """

    key: JobKey
    # Full argv, executable first.
    args: Tuple[str, ...]
    working_dir: Path
    output_dir: Path
    # Seconds before the process tree is terminated.
    timeout: float
    # Receives every output line when set.
    log_file: Optional[Path] = None
    env: Optional[Dict[str, str]] = field(default=None, compare=False)

    @property
    def command_line(self) -> str:
        return " ".join(self.args)
