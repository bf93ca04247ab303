"""
Terminal outcomes of a single build tool invocation.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Tuple, Union


@dataclass(frozen=True)
class Succeeded:
    output_dir: Path


@dataclass(frozen=True)
class Failed:
    exit_code: int
    output_tail: Tuple[str, ...] = ()
    # Exit code was 0 but the output directory was missing or empty.
    incomplete_output: bool = False


@dataclass(frozen=True)
class TimedOut:
    timeout: float
    output_tail: Tuple[str, ...] = ()


@dataclass(frozen=True)
class Cancelled:
    pass


RunOutcome = Union[Succeeded, Failed, TimedOut, Cancelled]
