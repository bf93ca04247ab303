"""
Unit tests for engine discovery and build tool commands.
"""

from pathlib import Path
from unittest.mock import patch

import pytest

from pluginbuilder.errors import MissingExecutableError
from pluginbuilder.models.config import EngineInstallation
from pluginbuilder.models.job import BuildJob, JobKey
from pluginbuilder.system.commands import UATCommandBuilder, build_uat_arguments
from pluginbuilder.system.engines import EngineLocator, uat_script_path


@pytest.fixture
def install_dir(temp_dir):
    root = temp_dir / "UE_5.3"
    script = uat_script_path(root)
    script.parent.mkdir(parents=True)
    script.write_text("#!/bin/sh\n")
    return root


@pytest.mark.unit
class TestEngineLocator:
    def test_installed_versions_sorted(self, temp_dir):
        locator = EngineLocator(
            [EngineInstallation("5.10", temp_dir), EngineInstallation("5.9", temp_dir),
             EngineInstallation("4.27", temp_dir)],
            use_registry=False,
        )
        assert locator.installed_versions() == ["4.27", "5.9", "5.10"]

    def test_find_uat_script(self, install_dir):
        locator = EngineLocator([EngineInstallation("5.3", install_dir)], use_registry=False)
        assert locator.find_uat_script("5.3") == uat_script_path(install_dir)

    def test_unknown_engine(self):
        with pytest.raises(MissingExecutableError):
            EngineLocator(use_registry=False).find_uat_script("5.3")

    def test_missing_script(self, temp_dir):
        locator = EngineLocator([EngineInstallation("5.3", temp_dir / "empty")], use_registry=False)
        with pytest.raises(MissingExecutableError) as exc_info:
            locator.find_uat_script("5.3")
        assert exc_info.value.path.endswith(uat_script_path(Path("x")).name)

    def test_registry_fallback(self, install_dir):
        with patch("pluginbuilder.system.engines._read_registry_install_dir", return_value=install_dir), \
                patch("pluginbuilder.system.engines._list_registry_versions", return_value=["5.3"]):
            locator = EngineLocator()
            assert locator.installed_versions() == ["5.3"]
            assert locator.find_install_dir("5.3") == install_dir

    def test_script_name_per_os(self):
        with patch("pluginbuilder.system.engines.os.name", "nt"):
            assert uat_script_path(Path("UE")).name == "RunUAT.bat"
        with patch("pluginbuilder.system.engines.os.name", "posix"):
            assert uat_script_path(Path("UE")).name == "RunUAT.sh"


@pytest.mark.unit
class TestUATArguments:
    def test_minimal_arguments(self, builder_config, temp_dir):
        args = build_uat_arguments(Path("RunUAT.sh"), Path("/p/Sample.uplugin"), Path("/out"),
                                   ["Win64"], builder_config)

        assert args[:4] == ["RunUAT.sh", "BuildPlugin", "-Plugin=/p/Sample.uplugin", "-Package=/out"]
        assert "-TargetPlatforms=Win64" in args
        assert "-Rocket" in args
        assert "-StrictIncludes" not in args

    def test_optional_switches(self, builder_config):
        builder_config.create_sub_folder = True
        builder_config.strict_includes = True
        builder_config.host_platforms = ["Win64", "Linux"]
        args = build_uat_arguments(Path("RunUAT.sh"), Path("p.uplugin"), Path("out"), ["Android"], builder_config)

        assert "-HostPlatforms=Win64+Linux" in args
        assert "-CreateSubFolder" in args
        assert "-StrictIncludes" in args

    def test_no_host_platform_wins(self, builder_config):
        builder_config.no_host_platform = True
        builder_config.host_platforms = ["Win64"]
        args = build_uat_arguments(Path("RunUAT.sh"), Path("p.uplugin"), Path("out"), ["Android"], builder_config)

        assert "-NoHostPlatform" in args
        assert not any(a.startswith("-HostPlatforms") for a in args)

    def test_command_builder_uses_job(self, descriptor, builder_config, install_dir, temp_dir):
        locator = EngineLocator([EngineInstallation("5.3", install_dir)], use_registry=False)
        job = BuildJob(key=JobKey("5.3", "Linux"), order=0, working_dir=temp_dir / "w",
                       output_dir=temp_dir / "o")

        args = UATCommandBuilder(descriptor, builder_config, locator)(job)

        assert args[0] == str(uat_script_path(install_dir))
        assert f"-Plugin={descriptor.uplugin_file}" in args
        assert f"-Package={temp_dir / 'o'}" in args
        assert "-TargetPlatforms=Linux" in args
