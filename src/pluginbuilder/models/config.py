"""
Configuration data models.

This module contains the configuration structures loaded from `config.toml`
and `engines.toml`: builder behaviour, storage settings and the installed
engines.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Literal


@dataclass
class StorageConfig:
    """
    Storage settings for session reports and event logs.

    Attributes:
        format: 'parquet' writes the event log as a Parquet file, 'json'
            writes it as a JSON document next to the report
        compression: Parquet compression codec (ignored for 'json')
    """

    format: Literal["parquet", "json"] = "parquet"
    compression: Literal["snappy", "gzip", "brotli", "lz4", "zstd"] = "snappy"

    @classmethod
    def from_dict(cls, config_dict: Dict[str, Any]) -> "StorageConfig":
        """
        Create a StorageConfig from the raw ``[builder.storage]`` table.

        Raises:
            ValueError: If invalid configuration values are provided
        """
        format_type = config_dict.get("format", "parquet")
        compression = config_dict.get("compression", "snappy")

        if format_type not in ("parquet", "json"):
            raise ValueError(f"Unsupported storage format: {format_type}")
        if format_type == "parquet" and compression not in (
            "snappy",
            "gzip",
            "brotli",
            "lz4",
            "zstd",
        ):
            raise ValueError(f"Unsupported compression algorithm: {compression}")

        return cls(format=format_type, compression=compression)

    def to_dict(self) -> Dict[str, Any]:
        return {"format": self.format, "compression": self.compression}


@dataclass
class BuilderConfig:
    """
    Configuration for the build orchestrator, loaded from `config.toml`.

    A session takes a deep copy of this object when it is created, so later
    changes never reach a build that is already running.
    """

    # [builder.general]
    output_root: Path
    use_friendly_name: bool = True

    # [builder.scheduling]
    max_concurrency: int = 0  # 0 = one worker per available core
    job_timeout: float = 3600.0
    retry_limit: int = 2  # attempts per job, first run included
    retry_backoff_base: float = 5.0
    retry_backoff_max: float = 120.0
    cancel_grace_period: float = 10.0
    poll_interval: float = 0.5

    # [builder.process]
    output_tail_lines: int = 50

    # [builder.build] - BuildPlugin switches
    rocket: bool = True
    create_sub_folder: bool = False
    strict_includes: bool = False
    no_host_platform: bool = False
    host_platforms: List[str] = field(default_factory=list)

    # [builder.packaging]
    zip_up: bool = True
    archive_format: str = "zip"
    compression_level: int = 6
    keep_binaries_folder: bool = False
    keep_uplugin_properties: bool = True
    output_all_archives_to_single_folder: bool = True

    # [builder.storage]
    storage: StorageConfig = field(default_factory=StorageConfig)

    @property
    def is_marketplace_layout(self) -> bool:
        """Whether archives produced with these settings can be submitted as-is."""
        return not self.keep_binaries_folder and self.keep_uplugin_properties


@dataclass
class EngineInstallation:
    """
    An installed engine, loaded from `engines.toml`.
    """

    # Version identifier as used on the command line (e.g. "5.3").
    version: str
    # Installation root containing the Engine/ directory.
    install_dir: Path


@dataclass
class AppConfig:
    """
    The root configuration object that aggregates all loaded settings.
    """

    builder: BuilderConfig
    engines: List[EngineInstallation] = field(default_factory=list)
