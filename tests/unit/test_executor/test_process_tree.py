"""
Unit tests for process tree termination.
"""

import os
import subprocess
import sys
import time

import psutil
import pytest

from pluginbuilder.executor.process_tree import terminate_process_tree

SPAWN_CHILD = """
import subprocess, sys, time
child = subprocess.Popen([sys.executable, "-c", "import time; time.sleep(60)"])
print(child.pid, flush=True)
time.sleep(60)
"""

IGNORE_TERM = """
import signal, time
signal.signal(signal.SIGTERM, signal.SIG_IGN)
print("ready", flush=True)
time.sleep(60)
"""


def _start(script):
    return subprocess.Popen(
        [sys.executable, "-c", script],
        stdout=subprocess.PIPE,
        text=True,
        start_new_session=(os.name != "nt"),
    )


def _gone(pid):
    try:
        return psutil.Process(pid).status() == psutil.STATUS_ZOMBIE
    except psutil.NoSuchProcess:
        return True


@pytest.mark.unit
class TestTerminateProcessTree:
    def test_terminates_descendants(self):
        parent = _start(SPAWN_CHILD)
        child_pid = int(parent.stdout.readline())

        assert terminate_process_tree(parent.pid, grace_period=2.0, name="test tree")
        parent.wait(timeout=5.0)

        deadline = time.monotonic() + 5.0
        while not _gone(child_pid) and time.monotonic() < deadline:
            time.sleep(0.05)
        assert _gone(child_pid)

    @pytest.mark.skipif(os.name == "nt", reason="SIGTERM cannot be ignored on Windows")
    def test_escalates_to_kill_after_grace_period(self):
        process = _start(IGNORE_TERM)
        assert process.stdout.readline().strip() == "ready"

        start = time.monotonic()
        assert terminate_process_tree(process.pid, grace_period=0.5, name="stubborn")
        process.wait(timeout=5.0)

        assert time.monotonic() - start < 5.0
        assert _gone(process.pid)

    def test_already_exited(self):
        process = subprocess.Popen([sys.executable, "-c", "pass"])
        process.wait()
        assert terminate_process_tree(process.pid, grace_period=0.5)

    def test_invalid_pid(self):
        assert terminate_process_tree(0, grace_period=0.5)
