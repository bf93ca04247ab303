"""
Subprocess-backed process runner.

Launches one build tool invocation, streams its output line by line, enforces
the per-job timeout and honours cancellation. Only a bounded tail of the
output is kept in memory; the full output goes to the job's log file.
"""

import logging
import os
import subprocess
import threading
import time
from collections import deque
from pathlib import Path
from typing import IO, Deque, Optional

from ..errors import MissingExecutableError
from ..models.outcomes import Cancelled, Failed, RunOutcome, Succeeded, TimedOut
from ..models.runtime import Invocation
from ..validation import ErrorSeverity, handle_error, handle_subprocess_error
from .base import AbstractProcessRunner, OutputObserver
from .process_tree import terminate_process_tree

logger = logging.getLogger(__name__)
toolchain_logger = logging.getLogger("pluginbuilder.toolchain")

# Upper bound for reader threads to drain pipes after the process exits.
READER_JOIN_TIMEOUT = 5.0


def has_output(output_dir: Path) -> bool:
    """Whether the build tool left anything in its output directory."""
    try:
        return output_dir.is_dir() and any(output_dir.iterdir())
    except OSError:
        return False


class SubprocessRunner(AbstractProcessRunner):
    """
    Runs build tool invocations with ``subprocess.Popen``.

    The child is started in its own session (process group on Windows) so
    that the whole tree can be terminated on timeout or cancellation.
    """

    def __init__(self, poll_interval: float = 0.5, grace_period: float = 10.0, tail_lines: int = 50):
        """
        Args:
            poll_interval: Seconds between checks for cancellation and timeout
            grace_period: Seconds between SIGTERM and SIGKILL when stopping a tree
            tail_lines: Output lines kept per stream for failure reports
        """
        self.poll_interval = poll_interval
        self.grace_period = grace_period
        self.tail_lines = tail_lines

    def run(
        self,
        invocation: Invocation,
        cancel_event: threading.Event,
        observer: Optional[OutputObserver] = None,
    ) -> RunOutcome:
        if cancel_event.is_set():
            return Cancelled()

        stdout_tail: Deque[str] = deque(maxlen=self.tail_lines)
        stderr_tail: Deque[str] = deque(maxlen=self.tail_lines)
        log_lock = threading.Lock()
        log_handle = self._open_log(invocation)

        try:
            process = self._launch(invocation)
            logger.info(f"[{invocation.key}] Started PID {process.pid}: {invocation.command_line}")

            readers = [
                threading.Thread(
                    target=self._pump,
                    args=(invocation, process.stdout, "stdout", stdout_tail, observer, log_handle, log_lock),
                    name=f"OutputReader-{invocation.key.slug}-stdout",
                    daemon=True,
                ),
                threading.Thread(
                    target=self._pump,
                    args=(invocation, process.stderr, "stderr", stderr_tail, observer, log_handle, log_lock),
                    name=f"OutputReader-{invocation.key.slug}-stderr",
                    daemon=True,
                ),
            ]
            for reader in readers:
                reader.start()

            outcome = self._wait(invocation, process, cancel_event)

            for reader in readers:
                reader.join(timeout=READER_JOIN_TIMEOUT)
        finally:
            if log_handle is not None:
                log_handle.close()

        if outcome is not None:
            return self._with_tail(outcome, stdout_tail, stderr_tail)

        exit_code = process.returncode
        tail = tuple(stderr_tail) or tuple(stdout_tail)
        if exit_code != 0:
            logger.error(f"[{invocation.key}] Build tool exited with code {exit_code}")
            return Failed(exit_code=exit_code, output_tail=tail)
        if not has_output(invocation.output_dir):
            logger.error(f"[{invocation.key}] Output directory missing or empty: {invocation.output_dir}")
            return Failed(exit_code=0, output_tail=tail, incomplete_output=True)

        logger.info(f"[{invocation.key}] Output directory: {invocation.output_dir}")
        return Succeeded(output_dir=invocation.output_dir)

    def _launch(self, invocation: Invocation) -> subprocess.Popen:
        popen_kwargs = {}
        if os.name == "nt":
            popen_kwargs["creationflags"] = subprocess.CREATE_NEW_PROCESS_GROUP
        else:
            popen_kwargs["start_new_session"] = True
        try:
            return subprocess.Popen(
                list(invocation.args),
                cwd=invocation.working_dir,
                env=invocation.env,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                encoding="utf-8",
                errors="replace",
                bufsize=1,
                **popen_kwargs,
            )
        except (FileNotFoundError, PermissionError) as e:
            handle_subprocess_error(
                error=e,
                command=invocation.command_line,
                severity=ErrorSeverity.ERROR,
                reraise=False,
                logger=logger,
            )
            raise MissingExecutableError(
                f"Cannot launch build tool {invocation.args[0]}: {e}",
                path=invocation.args[0],
            ) from e

    def _wait(
        self, invocation: Invocation, process: subprocess.Popen, cancel_event: threading.Event
    ) -> Optional[RunOutcome]:
        """
        Block until the process exits, times out or the job is cancelled.

        Returns None when the process exited by itself.
        """
        deadline = time.monotonic() + invocation.timeout
        while True:
            if cancel_event.is_set():
                logger.warning(f"[{invocation.key}] Cancellation requested, stopping build tool")
                self._stop(invocation, process)
                return Cancelled()

            remaining = deadline - time.monotonic()
            if remaining <= 0:
                logger.error(f"[{invocation.key}] Timed out after {invocation.timeout}s")
                self._stop(invocation, process)
                return TimedOut(timeout=invocation.timeout)

            try:
                process.wait(timeout=min(self.poll_interval, remaining))
                return None
            except subprocess.TimeoutExpired:
                continue

    def _stop(self, invocation: Invocation, process: subprocess.Popen) -> None:
        terminate_process_tree(process.pid, self.grace_period, name=f"build tool for {invocation.key}")
        try:
            process.wait(timeout=self.grace_period + 1.0)
        except subprocess.TimeoutExpired:
            logger.error(f"[{invocation.key}] PID {process.pid} did not exit after termination")

    @staticmethod
    def _with_tail(outcome: RunOutcome, stdout_tail: Deque[str], stderr_tail: Deque[str]) -> RunOutcome:
        if isinstance(outcome, TimedOut):
            return TimedOut(timeout=outcome.timeout, output_tail=tuple(stderr_tail) or tuple(stdout_tail))
        return outcome

    @staticmethod
    def _open_log(invocation: Invocation) -> Optional[IO[str]]:
        if invocation.log_file is None:
            return None
        invocation.log_file.parent.mkdir(parents=True, exist_ok=True)
        handle = open(invocation.log_file, "a", encoding="utf-8")
        handle.write(f"$ {invocation.command_line}\n")
        return handle

    @staticmethod
    def _pump(
        invocation: Invocation,
        stream: IO[str],
        stream_name: str,
        tail: Deque[str],
        observer: Optional[OutputObserver],
        log_handle: Optional[IO[str]],
        log_lock: threading.Lock,
    ) -> None:
        """Forward one output stream line by line until EOF."""
        try:
            for raw_line in iter(stream.readline, ""):
                line = raw_line.rstrip("\r\n")
                tail.append(line)
                toolchain_logger.info(f"[{invocation.key}] {line}")
                if log_handle is not None:
                    with log_lock:
                        log_handle.write(f"{line}\n")
                if observer is not None:
                    try:
                        observer(invocation.key, stream_name, line)
                    except Exception as e:
                        handle_error(
                            error=e,
                            context=f"output observer for {invocation.key}",
                            severity=ErrorSeverity.WARNING,
                            reraise=False,
                            logger=logger,
                        )
        except ValueError:
            # Stream closed while reading.
            pass
        finally:
            stream.close()
