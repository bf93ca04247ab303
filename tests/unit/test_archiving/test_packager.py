"""
Unit tests for the output packager.
"""

import dataclasses
import json
import zipfile

import pytest

from pluginbuilder.archiving.packager import OutputPackager
from pluginbuilder.errors import PackagingIOError
from pluginbuilder.models.job import FailureKind, FailureReason, JobState
from pluginbuilder.models.report import EngineVersionStatus
from pluginbuilder.models.runtime import SessionLayout
from pluginbuilder.orchestration.resolver import expand_matrix, resolve_jobs


@pytest.fixture
def layout(builder_config):
    return SessionLayout(output_root=builder_config.output_root, session_id="session_pkg")


@pytest.fixture
def built_jobs(descriptor, layout, make_fake_runner):
    """Jobs for 5.3 and 5.4 on Win64 and Linux, all succeeded with outputs on disk."""
    fake = make_fake_runner()
    jobs = resolve_jobs(descriptor, expand_matrix(["5.3", "5.4"], ["Win64", "Linux"]), layout)
    for job in jobs:
        fake.write_output(job.output_dir, job.key.platform)
        job.state = JobState.SUCCEEDED
        job.attempts = 1
    return jobs


def _packager(descriptor, config, layout):
    return OutputPackager(descriptor, config, layout.packaged_plugins_dir)


def _zip_names(path):
    with zipfile.ZipFile(path) as zf:
        return zf.namelist()


@pytest.mark.unit
class TestOutputPackager:
    def test_one_archive_per_engine_version(self, descriptor, builder_config, layout, built_jobs):
        entries = _packager(descriptor, builder_config, layout).package(built_jobs)

        assert [e.engine_version for e in entries] == ["5.3", "5.4"]
        assert all(e.status is EngineVersionStatus.PACKAGED for e in entries)
        assert entries[0].archive_path.endswith("SamplePlugin-1.2-5.3.zip")
        assert (layout.packaged_plugins_dir / "SamplePlugin-1.2-5.4.zip").is_file()

    def test_outputs_merged_and_cleaned(self, descriptor, builder_config, layout, built_jobs):
        entries = _packager(descriptor, builder_config, layout).package(built_jobs)
        names = _zip_names(entries[0].archive_path)

        assert "SamplePlugin/SamplePlugin.uplugin" in names
        assert "SamplePlugin/Resources/Icon128.png" in names
        assert "SamplePlugin/Content/Logo.uasset" in names
        assert not any("/Intermediate/" in n for n in names)
        assert not any("/Binaries/" in n for n in names)

    def test_keep_binaries_merges_every_platform(self, descriptor, builder_config, layout, built_jobs, caplog):
        config = dataclasses.replace(builder_config, keep_binaries_folder=True)
        entries = _packager(descriptor, config, layout).package(built_jobs)
        names = _zip_names(entries[0].archive_path)

        assert "SamplePlugin/Binaries/Win64/SamplePlugin.bin" in names
        assert "SamplePlugin/Binaries/Linux/SamplePlugin.bin" in names
        assert "marketplace" in caplog.text

    def test_content_stripped_when_plugin_has_none(self, descriptor, builder_config, layout, built_jobs):
        no_content = dataclasses.replace(descriptor, can_contain_content=False)
        entries = _packager(no_content, builder_config, layout).package(built_jobs)

        assert not any("/Content/" in n for n in _zip_names(entries[0].archive_path))

    def test_source_uplugin_restored(self, descriptor, builder_config, layout, built_jobs):
        entries = _packager(descriptor, builder_config, layout).package(built_jobs)
        with zipfile.ZipFile(entries[0].archive_path) as zf:
            data = json.loads(zf.read("SamplePlugin/SamplePlugin.uplugin"))
        assert data["FriendlyName"] == "Sample Plugin"

    def test_built_uplugin_kept_when_not_restoring(self, descriptor, builder_config, layout, built_jobs):
        config = dataclasses.replace(builder_config, keep_uplugin_properties=False)
        entries = _packager(descriptor, config, layout).package(built_jobs)
        with zipfile.ZipFile(entries[0].archive_path) as zf:
            data = json.loads(zf.read("SamplePlugin/SamplePlugin.uplugin"))
        assert data["FriendlyName"] == "built"

    def test_partial_version_not_packaged(self, descriptor, builder_config, layout, built_jobs):
        built_jobs[0].state = JobState.FAILED
        built_jobs[0].last_error = FailureReason(FailureKind.EXIT_CODE, "Build tool failed", exit_code=6)

        entries = _packager(descriptor, builder_config, layout).package(built_jobs)

        assert entries[0].status is EngineVersionStatus.PARTIAL
        assert entries[0].archive_path is None
        assert entries[0].failures == ("Linux: Build tool failed (exit code 6)",)
        assert entries[1].status is EngineVersionStatus.PACKAGED

    def test_missing_uplugin_fails_only_that_version(self, descriptor, builder_config, layout, built_jobs):
        for job in built_jobs[:2]:
            (job.output_dir / "SamplePlugin.uplugin").unlink()
        config = dataclasses.replace(builder_config, keep_uplugin_properties=False)

        entries = _packager(descriptor, config, layout).package(built_jobs)

        assert entries[0].status is EngineVersionStatus.PACKAGING_FAILED
        assert ".uplugin" in entries[0].error
        assert entries[1].status is EngineVersionStatus.PACKAGED

    def test_package_engine_version_raises(self, descriptor, builder_config, layout, built_jobs):
        packager = _packager(descriptor, builder_config, layout)
        missing = dataclasses.replace(built_jobs[0], output_dir=layout.session_dir / "nowhere")
        with pytest.raises(PackagingIOError) as exc_info:
            packager.package_engine_version("5.3", [missing])
        assert exc_info.value.engine_version == "5.3"

    def test_cancelled_session(self, descriptor, builder_config, layout, built_jobs):
        entries = _packager(descriptor, builder_config, layout).package(built_jobs, cancelled=True)
        assert all(e.status is EngineVersionStatus.CANCELLED for e in entries)
        assert not layout.packaged_plugins_dir.exists()

    def test_per_engine_folders(self, descriptor, builder_config, layout, built_jobs):
        config = dataclasses.replace(builder_config, output_all_archives_to_single_folder=False)
        entries = _packager(descriptor, config, layout).package(built_jobs)
        assert (layout.packaged_plugins_dir / "SamplePlugin_5.3" / "SamplePlugin-1.2-5.3.zip").is_file()
        assert entries[1].archive_path.endswith("SamplePlugin-1.2-5.4.zip")

    def test_tar_format(self, descriptor, builder_config, layout, built_jobs):
        config = dataclasses.replace(builder_config, archive_format="tar.gz")
        entries = _packager(descriptor, config, layout).package(built_jobs)
        assert entries[0].archive_path.endswith("SamplePlugin-1.2-5.3.tar.gz")

    def test_packaging_disabled(self, descriptor, builder_config, layout, built_jobs):
        config = dataclasses.replace(builder_config, zip_up=False)
        entries = _packager(descriptor, config, layout).package(built_jobs)
        assert all(e.status is EngineVersionStatus.NOT_PACKAGED for e in entries)

    def test_no_staging_left_behind(self, descriptor, builder_config, layout, built_jobs):
        _packager(descriptor, builder_config, layout).package(built_jobs)
        assert not list(layout.packaged_plugins_dir.glob(".staging_*"))
