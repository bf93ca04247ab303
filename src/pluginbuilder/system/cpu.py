"""
Available parallelism for the build worker pool.
"""

import logging

import psutil

logger = logging.getLogger(__name__)

_FALLBACK_PARALLELISM = 4


def get_available_parallelism() -> int:
    """
    Number of cores this process may run on.

    Prefers the process CPU affinity (which honours taskset/cgroup limits)
    and falls back to the logical core count.
    """
    try:
        affinity = psutil.Process().cpu_affinity()
        if affinity:
            return len(affinity)
    except (AttributeError, NotImplementedError, psutil.Error) as e:
        # cpu_affinity() is not available on macOS.
        logger.debug(f"CPU affinity unavailable, using core count: {e}")

    try:
        count = psutil.cpu_count(logical=True)
    except Exception as e:
        logger.warning(f"Failed to get CPU count: {e}")
        count = None
    return count or _FALLBACK_PARALLELISM


def resolve_worker_count(max_concurrency: int, job_count: int) -> int:
    """
    Size of the worker pool for a session.

    ``max_concurrency`` of 0 means one worker per available core. The pool is
    never larger than the number of jobs and never smaller than one.
    """
    requested = max_concurrency if max_concurrency > 0 else get_available_parallelism()
    return max(1, min(requested, job_count))
