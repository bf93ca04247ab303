"""
Build orchestration: job resolution, the session state machine, scheduling
with retries, and the BuildRunner facade.
"""

from .build_runner import BuildRunner
from .resolver import engine_versions_of, expand_matrix, job_sort_key, resolve_jobs
from .retry import RetryDecision, RetryPolicy, backoff_delay, failure_reason_from_outcome, plan_retry
from .scheduler import JobScheduler
from .session import BuildSession, new_session_id

__all__ = [
    "BuildRunner",
    "BuildSession",
    "JobScheduler",
    "RetryDecision",
    "RetryPolicy",
    "backoff_delay",
    "engine_versions_of",
    "expand_matrix",
    "failure_reason_from_outcome",
    "job_sort_key",
    "new_session_id",
    "plan_retry",
    "resolve_jobs",
]
