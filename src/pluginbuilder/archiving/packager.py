"""
Output packager: merges the per-platform outputs of each engine version into
one plugin tree and archives it for distribution.
"""

import logging
import shutil
import tempfile
from pathlib import Path
from typing import List, Optional, Sequence

from ..descriptor import UPLUGIN_SUFFIX
from ..errors import PackagingIOError
from ..models.config import BuilderConfig
from ..models.job import BuildJob, JobState
from ..models.plugin import PluginDescriptor
from ..models.report import (
    EngineVersionReport,
    EngineVersionStatus,
    describe_failures,
    group_jobs_by_engine_version,
)
from ..validation import ErrorSeverity, handle_file_error
from .archive import write_archive

logger = logging.getLogger(__name__)

# Build leftovers never shipped in a package.
ALWAYS_STRIPPED = ("Intermediate",)


class OutputPackager:
    """
    Packages successful engine versions of a terminated session.

    Args:
        descriptor: The plugin that was built
        config: Packaging settings (format, compression, folders to keep)
        packaging_root: Directory receiving the archives
    """

    def __init__(self, descriptor: PluginDescriptor, config: BuilderConfig, packaging_root: Path):
        self.descriptor = descriptor
        self.config = config
        self.packaging_root = Path(packaging_root)

    def archive_name(self, engine_version: str) -> str:
        return f"{self.descriptor.name}-{self.descriptor.version}-{engine_version}.{self.config.archive_format}"

    def archive_path(self, engine_version: str) -> Path:
        if self.config.output_all_archives_to_single_folder:
            directory = self.packaging_root
        else:
            directory = self.packaging_root / f"{self.descriptor.name}_{engine_version}"
        return directory / self.archive_name(engine_version)

    def stripped_folders(self) -> List[str]:
        folders = list(ALWAYS_STRIPPED)
        if not self.config.keep_binaries_folder:
            folders.append("Binaries")
        if not self.descriptor.can_contain_content:
            folders.append("Content")
        return folders

    def package(self, jobs: Sequence[BuildJob], cancelled: bool = False) -> List[EngineVersionReport]:
        """
        Produce one entry per engine version, in ascending version order.

        A packaging failure for one engine version is recorded in its entry
        and does not affect the other versions.
        """
        entries = []
        for engine_version, group in group_jobs_by_engine_version(jobs).items():
            if cancelled:
                entries.append(EngineVersionReport(engine_version, EngineVersionStatus.CANCELLED,
                                                   failures=describe_failures(group)))
                continue

            if not all(job.state is JobState.SUCCEEDED for job in group):
                failures = describe_failures(group)
                logger.warning(f"Engine {engine_version} not packaged: {'; '.join(failures)}")
                entries.append(EngineVersionReport(engine_version, EngineVersionStatus.PARTIAL,
                                                   failures=failures))
                continue

            if not self.config.zip_up:
                entries.append(EngineVersionReport(engine_version, EngineVersionStatus.NOT_PACKAGED))
                continue

            try:
                archive = self.package_engine_version(engine_version, group)
            except PackagingIOError as e:
                handle_file_error(
                    error=e,
                    context=f"packaging engine {engine_version}",
                    severity=ErrorSeverity.ERROR,
                    reraise=False,
                    logger=logger,
                )
                entries.append(EngineVersionReport(engine_version, EngineVersionStatus.PACKAGING_FAILED,
                                                   error=str(e)))
                continue
            entries.append(EngineVersionReport(engine_version, EngineVersionStatus.PACKAGED,
                                               archive_path=str(archive)))

        if entries and not cancelled and not self.config.is_marketplace_layout:
            logger.warning("The created packages are not in a format that can be submitted to the marketplace")
            logger.warning("Review keep_binaries_folder and keep_uplugin_properties if you plan to submit them")
        return entries

    def package_engine_version(self, engine_version: str, jobs: Sequence[BuildJob]) -> Path:
        """
        Merge, clean up, validate and archive the outputs of ``jobs``.

        Raises:
            PackagingIOError: If any filesystem step fails
        """
        try:
            self.packaging_root.mkdir(parents=True, exist_ok=True)
            staging_parent = Path(tempfile.mkdtemp(prefix=f".staging_{engine_version}_", dir=self.packaging_root))
        except OSError as e:
            raise PackagingIOError(engine_version, f"cannot create staging directory: {e}") from e

        try:
            staging = staging_parent / self.descriptor.name
            self._merge_outputs(engine_version, jobs, staging)
            self._strip_folders(engine_version, staging)
            if self.config.keep_uplugin_properties:
                self._restore_uplugin(engine_version, staging)
            self._validate_layout(engine_version, staging)

            target = self.archive_path(engine_version)
            try:
                return write_archive(staging, target, self.config.archive_format,
                                     self.config.compression_level)
            except OSError as e:
                raise PackagingIOError(engine_version, f"cannot write {target}: {e}") from e
        finally:
            shutil.rmtree(staging_parent, ignore_errors=True)

    def _merge_outputs(self, engine_version: str, jobs: Sequence[BuildJob], staging: Path) -> None:
        for job in sorted(jobs, key=lambda j: j.order):
            if not job.output_dir.is_dir():
                raise PackagingIOError(engine_version, f"output of {job.key} missing: {job.output_dir}")
            try:
                shutil.copytree(job.output_dir, staging, dirs_exist_ok=True)
            except (OSError, shutil.Error) as e:
                raise PackagingIOError(engine_version, f"cannot merge output of {job.key}: {e}") from e
            logger.debug(f"Merged {job.output_dir} into {staging}")

    def _strip_folders(self, engine_version: str, staging: Path) -> None:
        for name in self.stripped_folders():
            folder = staging / name
            if not folder.exists():
                continue
            try:
                shutil.rmtree(folder)
            except OSError as e:
                raise PackagingIOError(engine_version, f"cannot remove {folder}: {e}") from e

    def _restore_uplugin(self, engine_version: str, staging: Path) -> None:
        source = self.descriptor.uplugin_file
        built = staging / source.name
        if not source.is_file() or not built.is_file():
            logger.error(f"Failed to copy uplugin file for engine {engine_version}")
            return
        try:
            shutil.copyfile(source, built)
        except OSError as e:
            raise PackagingIOError(engine_version, f"cannot copy {source}: {e}") from e

    def _validate_layout(self, engine_version: str, staging: Path) -> Optional[Path]:
        uplugins = sorted(staging.glob(f"*{UPLUGIN_SUFFIX}"))
        if not uplugins:
            raise PackagingIOError(engine_version, f"no {UPLUGIN_SUFFIX} file at the plugin root")
        return uplugins[0]
