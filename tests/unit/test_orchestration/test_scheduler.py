"""
Unit tests for the job scheduler: concurrency, retries, fatal failures and
cancellation.
"""

import dataclasses
import sys
import threading

import pytest

from pluginbuilder.errors import MissingExecutableError
from pluginbuilder.executor.base import AbstractProcessRunner
from pluginbuilder.executor.process_runner import SubprocessRunner
from pluginbuilder.models.job import FailureKind, JobState
from pluginbuilder.models.runtime import SessionLayout
from pluginbuilder.orchestration.resolver import expand_matrix, resolve_jobs
from pluginbuilder.orchestration.scheduler import JobScheduler
from pluginbuilder.orchestration.session import BuildSession

MATRIX = expand_matrix(["5.3", "5.4"], ["Win64", "Linux"])


@pytest.fixture
def make_session(descriptor, builder_config):
    def make(config=None, requested=MATRIX):
        config = config or builder_config
        layout = SessionLayout(output_root=config.output_root, session_id="session_sched")
        session = BuildSession(descriptor, config, layout)
        session.start(resolve_jobs(descriptor, requested, layout))
        return session

    return make


def _run(session, runner, command_builder):
    JobScheduler(session, runner, command_builder(session), session.config).run()
    return {job.key: job for job in session.snapshot()}


@pytest.mark.unit
class TestScheduling:
    def test_all_jobs_succeed(self, make_session, make_fake_runner, fake_command_builder):
        session = make_session()
        runner = make_fake_runner()

        jobs = _run(session, runner, fake_command_builder)

        assert all(job.state is JobState.SUCCEEDED for job in jobs.values())
        assert all(job.attempts == 1 for job in jobs.values())
        assert len(runner.calls) == 4
        assert session.all_jobs_terminal()

    def test_concurrency_bound(self, make_session, make_fake_runner, fake_command_builder, builder_config):
        config = dataclasses.replace(builder_config, max_concurrency=2)
        session = make_session(config)
        runner = make_fake_runner(delay=0.05)

        _run(session, runner, fake_command_builder)

        assert 1 <= runner.max_running <= 2

    def test_single_worker_runs_in_resolver_order(self, make_session, make_fake_runner, fake_command_builder,
                                                  builder_config):
        config = dataclasses.replace(builder_config, max_concurrency=1)
        session = make_session(config)
        runner = make_fake_runner()

        _run(session, runner, fake_command_builder)

        assert runner.max_running == 1
        assert [str(k) for k in runner.calls] == ["5.3/Linux", "5.3/Win64", "5.4/Linux", "5.4/Win64"]

    def test_invocation_carries_job_paths_and_timeout(self, make_session, make_fake_runner, fake_command_builder):
        session = make_session(requested=[("5.3", "Win64")])
        runner = make_fake_runner()

        _run(session, runner, fake_command_builder)

        (invocation,) = runner.invocations
        job = session.snapshot()[0]
        assert invocation.output_dir == job.output_dir
        assert invocation.working_dir == job.working_dir
        assert invocation.log_file == job.log_file
        assert invocation.timeout == session.config.job_timeout
        assert job.working_dir.is_dir()


@pytest.mark.unit
class TestRetries:
    def test_transient_failure_then_success(self, make_session, make_fake_runner, fake_command_builder):
        session = make_session(requested=[("5.3", "Win64")])
        runner = make_fake_runner(scripts={("5.3", "Win64"): ["fail", "succeed"]})

        jobs = _run(session, runner, fake_command_builder)

        (job,) = jobs.values()
        assert job.state is JobState.SUCCEEDED
        assert job.attempts == 2
        transitions = [(e.old_state, e.new_state) for e in session.events()]
        assert (JobState.FAILED, JobState.PENDING) in transitions

    def test_retries_stop_at_limit(self, make_session, make_fake_runner, fake_command_builder):
        session = make_session(requested=[("5.3", "Win64")])
        runner = make_fake_runner(default="timeout")

        (job,) = _run(session, runner, fake_command_builder).values()

        assert job.state is JobState.FAILED
        assert job.attempts == session.config.retry_limit
        assert job.last_error.kind is FailureKind.TIMED_OUT
        assert runner.attempts_for("5.3", "Win64") == session.config.retry_limit

    def test_backoff_delays_next_attempt(self, make_session, make_fake_runner, fake_command_builder,
                                         builder_config):
        config = dataclasses.replace(builder_config, retry_backoff_base=0.2, retry_backoff_max=0.2)
        session = make_session(config, requested=[("5.3", "Win64")])
        runner = make_fake_runner(scripts={("5.3", "Win64"): ["fail", "succeed"]})

        _run(session, runner, fake_command_builder)

        first, second = runner.call_times
        assert second - first >= 0.2

    def test_incomplete_output_is_retried(self, make_session, make_fake_runner, fake_command_builder):
        session = make_session(requested=[("5.3", "Win64")])
        runner = make_fake_runner(scripts={("5.3", "Win64"): ["empty", "succeed"]})

        (job,) = _run(session, runner, fake_command_builder).values()

        assert job.state is JobState.SUCCEEDED
        assert job.attempts == 2

    def test_stale_output_is_cleared_between_attempts(self, make_session):
        # First attempt leaves a partial file and fails; the second exits 0 without output.
        scripts = {
            1: "import pathlib, sys; (pathlib.Path(sys.argv[1]) / \"partial.obj\").write_text(\"x\"); sys.exit(3)",
            2: "import sys; sys.exit(0)",
        }
        session = make_session(requested=[("5.3", "Win64")])
        runner = SubprocessRunner(poll_interval=0.05, grace_period=1.0, tail_lines=5)

        def command_builder(job):
            return [sys.executable, "-c", scripts[job.attempts], str(job.output_dir)]

        JobScheduler(session, runner, command_builder, session.config).run()
        (job,) = session.snapshot()

        assert job.state is JobState.FAILED
        assert job.attempts == 2
        assert job.last_error.kind is FailureKind.INCOMPLETE_OUTPUT
        assert list(job.output_dir.iterdir()) == []


@pytest.mark.unit
class TestFatalFailures:
    def test_missing_executable_not_retried(self, make_session, make_fake_runner, fake_command_builder):
        session = make_session(requested=[("5.3", "Win64"), ("5.4", "Win64")])
        runner = make_fake_runner(scripts={("5.3", "Win64"): ["missing"]})

        jobs = _run(session, runner, fake_command_builder)

        failed = [j for j in jobs.values() if j.state is JobState.FAILED]
        assert len(failed) == 1
        assert failed[0].attempts == 1
        assert failed[0].last_error.kind is FailureKind.MISSING_EXECUTABLE
        assert failed[0].last_error.fatal
        assert sum(1 for j in jobs.values() if j.state is JobState.SUCCEEDED) == 1

    def test_command_builder_error_is_fatal(self, make_session, make_fake_runner):
        session = make_session(requested=[("5.3", "Win64")])
        runner = make_fake_runner()

        def no_engine(_session):
            def build(job):
                raise MissingExecutableError(f"engine {job.key.engine_version} not installed")
            return build

        (job,) = _run(session, runner, no_engine).values()

        assert job.state is JobState.FAILED
        assert job.last_error.kind is FailureKind.MISSING_EXECUTABLE
        assert runner.calls == []

    def test_unexpected_runner_error(self, make_session, make_fake_runner, fake_command_builder):
        session = make_session(requested=[("5.3", "Win64")])
        runner = make_fake_runner(scripts={("5.3", "Win64"): [RuntimeError("pipe broke")]})

        (job,) = _run(session, runner, fake_command_builder).values()

        assert job.state is JobState.FAILED
        assert job.attempts == 1
        assert job.last_error.kind is FailureKind.RUNNER_ERROR
        assert "pipe broke" in job.last_error.message

    def test_unwritable_output_root(self, make_session, make_fake_runner, fake_command_builder,
                                    builder_config, temp_dir):
        blocker = temp_dir / "not_a_dir"
        blocker.write_text("")
        config = dataclasses.replace(builder_config, output_root=blocker)
        session = make_session(config, requested=[("5.3", "Win64")])
        runner = make_fake_runner()

        (job,) = _run(session, runner, fake_command_builder).values()

        assert job.state is JobState.FAILED
        assert job.last_error.kind is FailureKind.WORKDIR_UNAVAILABLE
        assert job.attempts == 1
        assert runner.calls == []

    def test_unrecognized_outcome_fails_job(self, make_session, fake_command_builder, builder_config):
        class NoOutcomeRunner(AbstractProcessRunner):
            def run(self, invocation, cancel_event, observer=None):
                return None

        config = dataclasses.replace(builder_config, max_concurrency=2)
        session = make_session(config, requested=[("5.3", "Win64"), ("5.3", "Linux"), ("5.4", "Win64")])

        jobs = _run(session, NoOutcomeRunner(), fake_command_builder)

        assert session.all_jobs_terminal()
        for job in jobs.values():
            assert job.state is JobState.FAILED
            assert job.last_error.kind is FailureKind.RUNNER_ERROR
            assert "TypeError" in job.last_error.message


@pytest.mark.unit
class TestCancellation:
    def test_cancel_stops_running_and_pending(self, make_session, make_fake_runner, fake_command_builder,
                                              builder_config):
        config = dataclasses.replace(builder_config, max_concurrency=2)
        session = make_session(config)
        runner = make_fake_runner(default="block")

        worker = threading.Thread(target=_run, args=(session, runner, fake_command_builder))
        worker.start()
        assert runner.started.wait(timeout=5.0)
        session.cancel()
        worker.join(timeout=10.0)

        assert not worker.is_alive()
        states = [job.state for job in session.snapshot()]
        assert all(state is JobState.CANCELLED for state in states)
        assert len(runner.calls) <= 2
        report = session.report()
        assert report.was_cancelled
        assert report.cancelled == 4

    def test_cancelled_session_runs_nothing(self, make_session, make_fake_runner, fake_command_builder):
        session = make_session()
        session.cancel()
        runner = make_fake_runner()

        _run(session, runner, fake_command_builder)

        assert runner.calls == []
