"""
Thread pool hosting the scheduler's build workers.

A session runs a fixed number of long-lived worker loops. ``run_workers``
starts them all on the pool, waits for every one of them and re-raises the
first exception a worker let escape, after the others have finished.
"""

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from ..validation import handle_error, ErrorSeverity

logger = logging.getLogger(__name__)


@dataclass
class WorkerPoolConfig:
    max_workers: int = 4
    thread_name_prefix: str = "BuildWorker"


class ManagedThreadPoolExecutor:
    """
    ``ThreadPoolExecutor`` with an explicit start/shutdown lifecycle and
    counters for submitted, finished and crashed worker tasks.

    Use it as a context manager; leaving the block waits for every task.
    """

    def __init__(self, config: WorkerPoolConfig):
        self.config = config
        self.executor: Optional[ThreadPoolExecutor] = None
        self.is_shutdown = False
        self._lock = threading.Lock()
        self._pending = 0
        self.stats = {
            "tasks_submitted": 0,
            "tasks_completed": 0,
            "tasks_failed": 0,
            "threads_created": 0,
        }

    def start(self) -> None:
        """
        Raises:
            RuntimeError: If the pool is already running or has no workers
        """
        if self.executor is not None:
            raise RuntimeError("Thread pool already started")
        if self.config.max_workers < 1:
            raise RuntimeError(f"Thread pool needs at least one worker, got {self.config.max_workers}")

        self.executor = ThreadPoolExecutor(
            max_workers=self.config.max_workers,
            thread_name_prefix=self.config.thread_name_prefix,
            initializer=self._count_thread,
        )
        self.is_shutdown = False
        logger.debug(f"Worker pool started with {self.config.max_workers} threads")

    def submit(self, fn: Callable, *args, **kwargs) -> Future:
        if self.executor is None:
            raise RuntimeError("Thread pool not started")
        if self.is_shutdown:
            raise RuntimeError("Thread pool is shutdown")

        future = self.executor.submit(fn, *args, **kwargs)
        with self._lock:
            self.stats["tasks_submitted"] += 1
            self._pending += 1
        future.add_done_callback(self._record_result)
        return future

    def run_workers(self, worker: Callable[[int], Any], count: int) -> List[Any]:
        """
        Run ``worker(index)`` for ``count`` indices and wait for all of them.

        Returns:
            The workers' return values, by index

        Raises:
            Exception: The first worker exception, once every worker is done
        """
        futures = [self.submit(worker, index) for index in range(count)]
        wait(futures)
        for index, future in enumerate(futures):
            error = future.exception()
            if error is not None:
                logger.error(f"Worker {index} crashed: {error}")
                raise error
        return [future.result() for future in futures]

    def shutdown(self, wait: bool = True) -> None:
        if self.executor is None or self.is_shutdown:
            return
        self.is_shutdown = True
        try:
            self.executor.shutdown(wait=wait)
        except RuntimeError as e:
            handle_error(
                error=e,
                context="shutting down worker pool",
                severity=ErrorSeverity.WARNING,
                reraise=False,
                logger=logger,
            )
        finally:
            self.executor = None

    def get_stats(self) -> Dict[str, Any]:
        with self._lock:
            stats = dict(self.stats)
            stats["active_tasks"] = self._pending
        stats["is_shutdown"] = self.is_shutdown
        return stats

    def _count_thread(self) -> None:
        with self._lock:
            self.stats["threads_created"] += 1

    def _record_result(self, future: Future) -> None:
        with self._lock:
            self._pending -= 1
            if future.cancelled():
                return
            key = "tasks_failed" if future.exception() is not None else "tasks_completed"
            self.stats[key] += 1

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.shutdown(wait=True)
