"""
Build tool execution: process runners, process tree termination and the
worker thread pool.
"""

from .base import AbstractProcessRunner, OutputObserver
from .process_runner import SubprocessRunner, has_output
from .process_tree import terminate_process_tree
from .thread_pool import ManagedThreadPoolExecutor, WorkerPoolConfig

__all__ = [
    "AbstractProcessRunner",
    "OutputObserver",
    "SubprocessRunner",
    "has_output",
    "terminate_process_tree",
    "ManagedThreadPoolExecutor",
    "WorkerPoolConfig",
]
