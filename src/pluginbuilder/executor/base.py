"""
Abstract base class for process runners.

The process runner is the only component that touches the external build
tool. Everything else depends on the outcome contract defined here, which
lets tests substitute a deterministic fake.
"""

import threading
from abc import ABC, abstractmethod
from typing import Callable, Optional

from ..models.job import JobKey
from ..models.outcomes import RunOutcome
from ..models.runtime import Invocation

# Receives (job key, stream name, line) for every output line.
OutputObserver = Callable[[JobKey, str, str], None]


class AbstractProcessRunner(ABC):
    """Runs one build tool invocation to a terminal outcome."""

    @abstractmethod
    def run(
        self,
        invocation: Invocation,
        cancel_event: threading.Event,
        observer: Optional[OutputObserver] = None,
    ) -> RunOutcome:
        """
        Execute ``invocation`` and block until it ends.

        Args:
            invocation: Command, directories and timeout for the job
            cancel_event: Set by the session when the build is cancelled
            observer: Optional callback receiving output lines as they arrive

        Returns:
            Succeeded, Failed, TimedOut or Cancelled

        Raises:
            MissingExecutableError: If the command cannot be launched at all
        """
        pass
