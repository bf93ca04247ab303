"""
Pytest configuration and shared fixtures for the PluginBuilder test suite.

This module provides common fixtures, a scripted fake process runner and
configuration helpers for all test modules.
"""

import json
import shutil
import sys
import tempfile
import threading
import time
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple, Union

import pytest

# Add src to Python path for testing
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from pluginbuilder.errors import MissingExecutableError  # noqa: E402
from pluginbuilder.executor.base import AbstractProcessRunner  # noqa: E402
from pluginbuilder.models.config import AppConfig, BuilderConfig, StorageConfig  # noqa: E402
from pluginbuilder.models.job import JobKey  # noqa: E402
from pluginbuilder.models.outcomes import Cancelled, Failed, Succeeded, TimedOut  # noqa: E402


# ============================================================================
# Test Configuration
# ============================================================================


def pytest_configure(config):
    """Configure pytest with custom markers and settings."""
    config.addinivalue_line("markers", "unit: mark test as a unit test")
    config.addinivalue_line("markers", "integration: mark test as an integration test")
    config.addinivalue_line("markers", "e2e: mark test as an end-to-end test")
    config.addinivalue_line("markers", "slow: mark test as slow running")


# ============================================================================
# Core Fixtures
# ============================================================================


@pytest.fixture
def temp_dir():
    """Create a temporary directory for test files."""
    temp_path = tempfile.mkdtemp()
    yield Path(temp_path)
    shutil.rmtree(temp_path, ignore_errors=True)


@pytest.fixture
def sample_uplugin_data():
    """Contents of a typical .uplugin descriptor."""
    return {
        "FileVersion": 3,
        "Version": 3,
        "VersionName": "1.2",
        "FriendlyName": "Sample Plugin",
        "Description": "Plugin used by the test suite",
        "CanContainContent": True,
        "SupportedTargetPlatforms": ["Win64", "Linux", "Mac"],
        "Modules": [{"Name": "SamplePlugin", "Type": "Runtime", "LoadingPhase": "Default"}],
    }


@pytest.fixture
def plugin_dir(temp_dir, sample_uplugin_data):
    """A plugin source tree with a .uplugin file, sources and content."""
    root = temp_dir / "SamplePlugin"
    (root / "Source" / "SamplePlugin").mkdir(parents=True)
    (root / "Content").mkdir()
    (root / "Source" / "SamplePlugin" / "SamplePlugin.Build.cs").write_text("// build rules\n")
    (root / "Content" / "Logo.uasset").write_bytes(b"\x00\x01")
    with open(root / "SamplePlugin.uplugin", "w", encoding="utf-8") as f:
        json.dump(sample_uplugin_data, f, indent=4)
    return root


@pytest.fixture
def descriptor(plugin_dir):
    """Descriptor for ``plugin_dir`` supporting engines 5.3 and 5.4."""
    from pluginbuilder.descriptor import load_plugin_descriptor

    return load_plugin_descriptor(plugin_dir, engine_versions=["5.3", "5.4"])


@pytest.fixture
def builder_config(temp_dir):
    """Builder settings with short timings so tests run quickly."""
    return BuilderConfig(
        output_root=temp_dir / "output",
        max_concurrency=2,
        job_timeout=30.0,
        retry_limit=2,
        retry_backoff_base=0.01,
        retry_backoff_max=0.05,
        cancel_grace_period=1.0,
        poll_interval=0.01,
        storage=StorageConfig(format="json"),
    )


@pytest.fixture
def app_config(builder_config):
    return AppConfig(builder=builder_config, engines=[])


# ============================================================================
# Fake process runner
# ============================================================================

# One scripted step: "succeed", "fail", "timeout", "empty", "block",
# "missing", or an exception instance to raise.
Step = Union[str, Exception]


class FakeProcessRunner(AbstractProcessRunner):
    """
    Deterministic stand-in for the build tool.

    Each job key has a script of steps, consumed one per attempt; the last
    step repeats. A succeeding step writes a plugin tree into the job's
    output directory the way BuildPlugin does.
    """

    def __init__(
        self,
        uplugin_name: str = "SamplePlugin.uplugin",
        scripts: Optional[Dict[Tuple[str, str], Sequence[Step]]] = None,
        default: Step = "succeed",
        delay: float = 0.0,
    ):
        self.uplugin_name = uplugin_name
        self.scripts = {JobKey(*key): list(steps) for key, steps in (scripts or {}).items()}
        self.default = default
        self.delay = delay
        self.calls: List[JobKey] = []
        self.call_times: List[float] = []
        self.invocations = []
        self.running = 0
        self.max_running = 0
        self.started = threading.Event()
        self._lock = threading.Lock()
        self._attempts: Dict[JobKey, int] = {}

    def attempts_for(self, engine_version: str, platform: str) -> int:
        with self._lock:
            return self._attempts.get(JobKey(engine_version, platform), 0)

    def _next_step(self, key: JobKey) -> Step:
        with self._lock:
            index = self._attempts.get(key, 0)
            self._attempts[key] = index + 1
            steps = self.scripts.get(key)
        if not steps:
            return self.default
        return steps[min(index, len(steps) - 1)]

    def write_output(self, output_dir: Path, platform: str) -> None:
        output_dir.mkdir(parents=True, exist_ok=True)
        (output_dir / self.uplugin_name).write_text('{"FriendlyName": "built"}')
        for relative in (
            f"Binaries/{platform}/SamplePlugin.bin",
            f"Intermediate/Build/{platform}/SamplePlugin.obj",
            "Resources/Icon128.png",
            "Content/Logo.uasset",
            "Source/SamplePlugin/SamplePlugin.Build.cs",
        ):
            path = output_dir / relative
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(f"{platform}:{relative}\n")

    def run(self, invocation, cancel_event, observer=None):
        key = invocation.key
        with self._lock:
            self.calls.append(key)
            self.call_times.append(time.monotonic())
            self.invocations.append(invocation)
            self.running += 1
            self.max_running = max(self.max_running, self.running)
        self.started.set()
        try:
            step = self._next_step(key)
            if observer is not None:
                observer(key, "stdout", f"step {step}")
            if self.delay and cancel_event.wait(self.delay):
                return Cancelled()
            if isinstance(step, Exception):
                raise step
            if step == "block":
                cancel_event.wait()
                return Cancelled()
            if step == "missing":
                raise MissingExecutableError(f"no build tool for {key.engine_version}")
            if step == "fail":
                return Failed(exit_code=1, output_tail=("error: build failed",))
            if step == "timeout":
                return TimedOut(timeout=invocation.timeout, output_tail=("still building",))
            if step == "empty":
                return Failed(exit_code=0, incomplete_output=True)
            self.write_output(invocation.output_dir, key.platform)
            return Succeeded(output_dir=invocation.output_dir)
        finally:
            with self._lock:
                self.running -= 1


def fake_command_builder_factory(session):
    """Command builder that needs no engine installation."""

    def build(job):
        return ["RunUAT.sh", "BuildPlugin", f"-Plugin={session.descriptor.uplugin_file}",
                f"-Package={job.output_dir}", f"-TargetPlatforms={job.key.platform}"]

    return build


@pytest.fixture
def fake_runner():
    return FakeProcessRunner()


@pytest.fixture
def make_fake_runner():
    """Factory for scripted FakeProcessRunner instances."""
    return FakeProcessRunner


@pytest.fixture
def fake_command_builder():
    return fake_command_builder_factory


@pytest.fixture
def make_build_runner(app_config):
    """Factory for BuildRunner instances wired to a fake process runner."""
    from pluginbuilder.orchestration import BuildRunner

    def make(runner: FakeProcessRunner, config: Optional[AppConfig] = None, **kwargs):
        return BuildRunner(
            config or app_config,
            runner=runner,
            command_builder_factory=fake_command_builder_factory,
            **kwargs,
        )

    return make


# ============================================================================
# Configuration Fixtures
# ============================================================================


@pytest.fixture
def sample_builder_data():
    """Raw [builder] tables as they appear in config.toml."""
    return {
        "general": {"output_root": "build_output", "use_friendly_name": True},
        "scheduling": {
            "max_concurrency": 2,
            "job_timeout_seconds": 600.0,
            "retry_limit": 3,
            "retry_backoff_base_seconds": 1.0,
            "retry_backoff_max_seconds": 8.0,
            "cancel_grace_period_seconds": 5.0,
            "poll_interval_seconds": 0.2,
        },
        "process": {"output_tail_lines": 20},
        "build": {"rocket": True, "strict_includes": True, "host_platforms": ["Win64"]},
        "packaging": {"zip_up": True, "archive_format": "tar.gz", "compression_level": 9},
        "storage": {"format": "parquet", "compression": "zstd"},
    }


@pytest.fixture
def config_files(temp_dir, sample_builder_data):
    """Create temporary configuration files for testing."""
    import toml

    engines_file = temp_dir / "engines.toml"
    with open(engines_file, "w") as f:
        toml.dump(
            {
                "engines": [
                    {"version": "5.3", "install_dir": str(temp_dir / "UE_5.3")},
                    {"version": "5.4", "install_dir": str(temp_dir / "UE_5.4")},
                ]
            },
            f,
        )

    config_file = temp_dir / "config.toml"
    with open(config_file, "w") as f:
        toml.dump({"paths": {"engines_config": "engines.toml"}, "builder": sample_builder_data}, f)

    return {"config": config_file, "engines": engines_file, "dir": temp_dir}


@pytest.fixture(autouse=True)
def clear_config_after_test():
    """Automatically clear configuration cache after each test."""
    original_config_path = Path(__file__).parent.parent / "conf" / "config.toml"

    yield

    from pluginbuilder.config import clear_config_cache, set_config_path

    clear_config_cache()
    set_config_path(original_config_path)
