"""
Build tool command construction.

Each job is one ``RunUAT BuildPlugin`` call for a single engine version and
target platform. The arguments are passed to ``subprocess.Popen`` as a list,
so paths containing spaces need no extra quoting.
"""

import logging
from pathlib import Path
from typing import List, Sequence

from ..models.config import BuilderConfig
from ..models.job import BuildJob
from ..models.plugin import PluginDescriptor
from .engines import EngineLocator

logger = logging.getLogger(__name__)


def build_uat_arguments(
    uat_script: Path,
    uplugin_file: Path,
    package_dir: Path,
    target_platforms: Sequence[str],
    config: BuilderConfig,
) -> List[str]:
    """
    Assemble the argv for a BuildPlugin invocation.

    Args:
        uat_script: RunUAT.bat / RunUAT.sh of the target engine
        uplugin_file: The plugin descriptor file
        package_dir: Where BuildPlugin writes the built plugin
        target_platforms: UBT platform names to build for
        config: Builder settings carrying the optional BuildPlugin switches

    Returns:
        Argument list, executable first
    """
    args = [
        str(uat_script),
        "BuildPlugin",
        f"-Plugin={uplugin_file}",
        f"-Package={package_dir}",
    ]
    if target_platforms:
        args.append(f"-TargetPlatforms={'+'.join(target_platforms)}")
    if config.no_host_platform:
        args.append("-NoHostPlatform")
    elif config.host_platforms:
        args.append(f"-HostPlatforms={'+'.join(config.host_platforms)}")
    if config.rocket:
        args.append("-Rocket")
    if config.create_sub_folder:
        args.append("-CreateSubFolder")
    if config.strict_includes:
        args.append("-StrictIncludes")
    return args


class UATCommandBuilder:
    """
    Derives a job's command line from its engine version and platform.

    Raises ``MissingExecutableError`` when the engine version has no usable
    installation; the scheduler treats that as fatal for the job.
    """

    def __init__(self, descriptor: PluginDescriptor, config: BuilderConfig, locator: EngineLocator):
        self.descriptor = descriptor
        self.config = config
        self.locator = locator

    def __call__(self, job: BuildJob) -> List[str]:
        uat_script = self.locator.find_uat_script(job.key.engine_version)
        args = build_uat_arguments(
            uat_script=uat_script,
            uplugin_file=self.descriptor.uplugin_file,
            package_dir=job.output_dir,
            target_platforms=[job.key.platform],
            config=self.config,
        )
        logger.debug(f"Command for {job.key}: {' '.join(args)}")
        return args
