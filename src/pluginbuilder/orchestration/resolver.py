"""
Expansion of a requested (engine version, platform) matrix into build jobs.
"""

import itertools
import logging
from typing import Iterable, List, Sequence, Tuple

from packaging.version import Version

from ..errors import UnsupportedEngineVersion, UnsupportedPlatform
from ..models.job import BuildJob, JobKey
from ..models.plugin import PluginDescriptor
from ..models.runtime import SessionLayout

logger = logging.getLogger(__name__)


def expand_matrix(engine_versions: Iterable[str], platforms: Iterable[str]) -> List[Tuple[str, str]]:
    """Every combination of the given engine versions and platforms."""
    return list(itertools.product(list(engine_versions), list(platforms)))


def job_sort_key(key: JobKey):
    # The raw string breaks ties such as "5.3" and "5.3.0".
    return (Version(key.engine_version), key.engine_version, key.platform)


def resolve_jobs(
    descriptor: PluginDescriptor,
    requested: Iterable[Tuple[str, str]],
    layout: SessionLayout,
) -> List[BuildJob]:
    """
    Turn requested (engine version, platform) pairs into an ordered job list.

    Jobs are ordered by engine version (semantic comparison) and then by
    platform name, so identical input always yields an identical sequence.
    Duplicate pairs collapse into one job. Nothing is written to disk;
    the job directories are only derived from ``layout``.

    Raises:
        UnsupportedEngineVersion: If a version is not supported by the plugin
        UnsupportedPlatform: If a platform is not supported by the plugin
    """
    keys = set()
    for engine_version, platform in requested:
        if not descriptor.supports_engine_version(engine_version):
            raise UnsupportedEngineVersion(engine_version, descriptor.supported_engine_versions)
        if not descriptor.supports_platform(platform):
            raise UnsupportedPlatform(platform, descriptor.supported_platforms)
        keys.add(JobKey(engine_version=engine_version, platform=platform))

    jobs = []
    for order, key in enumerate(sorted(keys, key=job_sort_key)):
        jobs.append(
            BuildJob(
                key=key,
                order=order,
                working_dir=layout.job_working_dir(key),
                output_dir=layout.job_output_dir(descriptor.name, key),
                log_file=layout.job_log_file(key),
            )
        )

    logger.debug(f"Resolved {len(jobs)} jobs: {', '.join(str(j.key) for j in jobs)}")
    return jobs


def engine_versions_of(jobs: Sequence[BuildJob]) -> List[str]:
    """Distinct engine versions of a job list, in job order."""
    return list(dict.fromkeys(job.key.engine_version for job in jobs))
