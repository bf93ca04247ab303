"""
Process tree termination.

The build tool spawns a deep tree (RunUAT -> dotnet AutomationTool -> UBT ->
compilers), so stopping a job means stopping every descendant, not just the
direct child. Termination escalates from SIGTERM to SIGKILL and never waits
longer than the grace period before killing.
"""

import logging
import os
import signal
from typing import List

import psutil

logger = logging.getLogger(__name__)

# Time allowed for processes to disappear after SIGKILL.
KILL_WAIT_TIMEOUT = 2.0


def _is_process_alive(process: psutil.Process) -> bool:
    """Safely check if a process is still alive and not a zombie."""
    try:
        if not process.is_running():
            return False
        return process.status() not in (psutil.STATUS_ZOMBIE, psutil.STATUS_DEAD)
    except (psutil.NoSuchProcess, psutil.AccessDenied):
        return False


def _get_process_children(parent: psutil.Process) -> List[psutil.Process]:
    """Living descendants of a process, tolerating processes that exit meanwhile."""
    try:
        return [child for child in parent.children(recursive=True) if _is_process_alive(child)]
    except (psutil.NoSuchProcess, psutil.AccessDenied):
        return []


def _signal_processes(processes: List[psutil.Process], force: bool) -> List[psutil.Process]:
    signalled = []
    for process in processes:
        try:
            if force:
                process.kill()
            else:
                process.terminate()
            signalled.append(process)
        except psutil.NoSuchProcess:
            continue
        except psutil.AccessDenied:
            logger.warning(f"Access denied signalling PID {process.pid}")
    return signalled


def _wait_for_termination(processes: List[psutil.Process], timeout: float) -> List[psutil.Process]:
    """Wait for processes to exit; return the ones still alive."""
    if not processes:
        return []
    _, still_alive = psutil.wait_procs(processes, timeout=timeout)
    return [p for p in still_alive if _is_process_alive(p)]


def _kill_process_group(pid: int) -> None:
    # Runner processes are started in their own session, so their pid is
    # also the process group id.
    if os.name == "nt":
        return
    try:
        os.killpg(pid, signal.SIGKILL)
        logger.debug(f"Sent SIGKILL to process group {pid}")
    except (ProcessLookupError, PermissionError):
        pass


def terminate_process_tree(pid: int, grace_period: float, name: str = "process") -> bool:
    """
    Terminate a process and all of its descendants.

    Sends SIGTERM to the whole tree, waits up to ``grace_period`` seconds,
    then SIGKILLs whatever is left (including the process group on POSIX).

    Args:
        pid: Root process id
        grace_period: Seconds to wait between SIGTERM and SIGKILL
        name: Label used in log messages

    Returns:
        True if no process of the tree is left alive
    """
    if pid <= 0:
        logger.warning(f"Invalid PID {pid} for {name}, skipping termination")
        return True

    try:
        parent = psutil.Process(pid)
    except psutil.NoSuchProcess:
        logger.debug(f"{name} (PID: {pid}) already exited")
        return True

    # Children are collected before signalling the parent, since they are
    # reparented once it exits.
    processes = [parent] + _get_process_children(parent)
    logger.info(f"Terminating {name} (PID: {pid}) and {len(processes) - 1} descendants")

    remaining = _wait_for_termination(_signal_processes(processes, force=False), grace_period)
    if remaining:
        logger.warning(
            f"{len(remaining)} processes of {name} still alive after {grace_period}s, killing"
        )
        remaining = _wait_for_termination(
            _signal_processes(remaining, force=True), KILL_WAIT_TIMEOUT
        )

    _kill_process_group(pid)

    if remaining:
        for process in remaining:
            logger.error(f"Could not terminate PID {process.pid} of {name}")
        return False
    return True
