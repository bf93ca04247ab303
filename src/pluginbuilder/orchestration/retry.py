"""
Retry policy as a pure state-machine step.

``plan_retry`` decides, from a job's attempt count and the reason its last
attempt failed, whether the job goes back to Pending and when it may start
again. It takes the current clock value as an argument, so it can be tested
without timers.
"""

from dataclasses import dataclass
from typing import Optional

from ..models.config import BuilderConfig
from ..models.job import FailureKind, FailureReason
from ..models.outcomes import Failed, RunOutcome, TimedOut


@dataclass(frozen=True)
class RetryPolicy:
    # Maximum attempts per job, first run included.
    limit: int
    backoff_base: float
    backoff_max: float

    @classmethod
    def from_config(cls, config: BuilderConfig) -> "RetryPolicy":
        return cls(
            limit=config.retry_limit,
            backoff_base=config.retry_backoff_base,
            backoff_max=config.retry_backoff_max,
        )


@dataclass(frozen=True)
class RetryDecision:
    retry: bool
    delay: float = 0.0
    # Clock value before which the job must not start again.
    not_before: Optional[float] = None


def backoff_delay(attempts: int, policy: RetryPolicy) -> float:
    """Delay after the ``attempts``-th failed run: base * 2^(n-1), capped."""
    exponent = max(0, attempts - 1)
    return min(policy.backoff_max, policy.backoff_base * (2 ** exponent))


def plan_retry(attempts: int, reason: FailureReason, policy: RetryPolicy, now: float) -> RetryDecision:
    """
    Decide what happens to a job whose latest attempt failed.

    Args:
        attempts: Runs started so far, including the one that just failed
        reason: Why the attempt failed
        policy: Retry limit and backoff bounds
        now: Current scheduler clock value

    Returns:
        A decision to re-enqueue the job at ``not_before``, or to finalize it
    """
    if reason.fatal or attempts >= policy.limit:
        return RetryDecision(retry=False)
    delay = backoff_delay(attempts, policy)
    return RetryDecision(retry=True, delay=delay, not_before=now + delay)


def failure_reason_from_outcome(outcome: RunOutcome) -> FailureReason:
    """Translate a Failed or TimedOut outcome into a failure reason."""
    if isinstance(outcome, TimedOut):
        return FailureReason(
            kind=FailureKind.TIMED_OUT,
            message=f"Build tool timed out after {outcome.timeout:g}s",
            output_tail=outcome.output_tail,
        )
    if isinstance(outcome, Failed):
        if outcome.incomplete_output:
            return FailureReason(
                kind=FailureKind.INCOMPLETE_OUTPUT,
                message="Build tool exited successfully but produced no output",
                exit_code=outcome.exit_code,
                output_tail=outcome.output_tail,
            )
        return FailureReason(
            kind=FailureKind.EXIT_CODE,
            message="Build tool failed",
            exit_code=outcome.exit_code,
            output_tail=outcome.output_tail,
        )
    raise TypeError(f"Outcome {outcome!r} is not a failure")
