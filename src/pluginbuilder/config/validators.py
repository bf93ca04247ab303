"""
Configuration validation utilities.

This module turns raw TOML tables into validated configuration objects.
"""

import logging
from pathlib import Path
from typing import Any, Dict, List

from ..models.config import BuilderConfig, EngineInstallation, StorageConfig
from ..validation import (
    ValidationError,
    validate_boolean,
    validate_engine_version,
    validate_enum_choice,
    validate_platform_name,
    validate_positive_float,
    validate_positive_integer,
)

logger = logging.getLogger(__name__)

ARCHIVE_FORMATS = ["zip", "tar.gz"]


def validate_builder_config(builder_data: Dict[str, Any], base_dir: Path) -> BuilderConfig:
    """
    Validate and create a BuilderConfig from the raw ``[builder]`` table.

    Args:
        builder_data: Raw builder configuration from TOML
        base_dir: Directory relative output paths are resolved against

    Returns:
        Validated BuilderConfig instance

    Raises:
        ValidationError: If validation fails
    """
    general_settings = builder_data.get("general", {})
    scheduling_settings = builder_data.get("scheduling", {})
    process_settings = builder_data.get("process", {})
    build_settings = builder_data.get("build", {})
    packaging_settings = builder_data.get("packaging", {})
    storage_settings = builder_data.get("storage", {})

    try:
        # [builder.general]
        output_root_str = general_settings.get("output_root", "build_output")
        if not isinstance(output_root_str, str) or not output_root_str.strip():
            raise ValidationError(
                "builder.general.output_root must be a non-empty string",
                field_name="builder.general.output_root",
                value=output_root_str,
            )
        output_root = Path(output_root_str).expanduser()
        if not output_root.is_absolute():
            output_root = base_dir / output_root

        use_friendly_name = validate_boolean(
            general_settings.get("use_friendly_name", True),
            field_name="builder.general.use_friendly_name",
        )

        # [builder.scheduling]
        max_concurrency = validate_positive_integer(
            scheduling_settings.get("max_concurrency", 0),
            min_value=0,  # 0 = auto
            max_value=256,
            field_name="builder.scheduling.max_concurrency",
        )

        job_timeout = validate_positive_float(
            scheduling_settings.get("job_timeout_seconds", 3600.0),
            min_value=0.1,
            max_value=86400.0,  # 1 day
            field_name="builder.scheduling.job_timeout_seconds",
        )

        retry_limit = validate_positive_integer(
            scheduling_settings.get("retry_limit", 2),
            min_value=1,
            max_value=20,
            field_name="builder.scheduling.retry_limit",
        )

        retry_backoff_base = validate_positive_float(
            scheduling_settings.get("retry_backoff_base_seconds", 5.0),
            min_value=0.0,
            max_value=3600.0,
            field_name="builder.scheduling.retry_backoff_base_seconds",
        )

        retry_backoff_max = validate_positive_float(
            scheduling_settings.get("retry_backoff_max_seconds", 120.0),
            min_value=0.0,
            max_value=86400.0,
            field_name="builder.scheduling.retry_backoff_max_seconds",
        )
        if retry_backoff_max < retry_backoff_base:
            raise ValidationError(
                "builder.scheduling.retry_backoff_max_seconds must be >= retry_backoff_base_seconds",
                field_name="builder.scheduling.retry_backoff_max_seconds",
                value=retry_backoff_max,
            )

        cancel_grace_period = validate_positive_float(
            scheduling_settings.get("cancel_grace_period_seconds", 10.0),
            min_value=0.0,
            max_value=300.0,
            field_name="builder.scheduling.cancel_grace_period_seconds",
        )

        poll_interval = validate_positive_float(
            scheduling_settings.get("poll_interval_seconds", 0.5),
            min_value=0.001,  # 1ms minimum
            max_value=10.0,
            field_name="builder.scheduling.poll_interval_seconds",
        )

        # [builder.process]
        output_tail_lines = validate_positive_integer(
            process_settings.get("output_tail_lines", 50),
            min_value=1,
            max_value=10000,
            field_name="builder.process.output_tail_lines",
        )

        # [builder.build]
        build_flags = {}
        for flag, default in (
            ("rocket", True),
            ("create_sub_folder", False),
            ("strict_includes", False),
            ("no_host_platform", False),
        ):
            build_flags[flag] = validate_boolean(
                build_settings.get(flag, default),
                field_name=f"builder.build.{flag}",
            )

        host_platforms_raw = build_settings.get("host_platforms", [])
        if not isinstance(host_platforms_raw, list):
            raise ValidationError(
                "builder.build.host_platforms must be a list",
                field_name="builder.build.host_platforms",
                value=host_platforms_raw,
            )
        host_platforms = [
            validate_platform_name(p, field_name=f"builder.build.host_platforms[{i}]")
            for i, p in enumerate(host_platforms_raw)
        ]

        # [builder.packaging]
        packaging_flags = {}
        for flag, default in (
            ("zip_up", True),
            ("keep_binaries_folder", False),
            ("keep_uplugin_properties", True),
            ("output_all_archives_to_single_folder", True),
        ):
            packaging_flags[flag] = validate_boolean(
                packaging_settings.get(flag, default),
                field_name=f"builder.packaging.{flag}",
            )

        archive_format = validate_enum_choice(
            packaging_settings.get("archive_format", "zip"),
            valid_choices=ARCHIVE_FORMATS,
            field_name="builder.packaging.archive_format",
        )

        compression_level = validate_positive_integer(
            packaging_settings.get("compression_level", 6),
            min_value=0,
            max_value=9,
            field_name="builder.packaging.compression_level",
        )

        # [builder.storage]
        try:
            storage = StorageConfig.from_dict(storage_settings)
        except ValueError as e:
            raise ValidationError(f"builder.storage: {e}", field_name="builder.storage")

        return BuilderConfig(
            # from [builder.general]
            output_root=output_root,
            use_friendly_name=use_friendly_name,
            # from [builder.scheduling]
            max_concurrency=max_concurrency,
            job_timeout=job_timeout,
            retry_limit=retry_limit,
            retry_backoff_base=retry_backoff_base,
            retry_backoff_max=retry_backoff_max,
            cancel_grace_period=cancel_grace_period,
            poll_interval=poll_interval,
            # from [builder.process]
            output_tail_lines=output_tail_lines,
            # from [builder.build]
            host_platforms=host_platforms,
            **build_flags,
            # from [builder.packaging]
            archive_format=archive_format,
            compression_level=compression_level,
            **packaging_flags,
            # from [builder.storage]
            storage=storage,
        )

    except ValidationError as e:
        logger.error(f"Builder configuration validation failed: {e}")
        raise


def validate_engines_config(
    engines_data: List[Dict[str, Any]], base_dir: Path
) -> List[EngineInstallation]:
    """
    Validate the ``[[engines]]`` tables of engines.toml.

    Versions must be unique. Installation directories are not required to
    exist here; a missing one surfaces as a fatal job error at build time.

    Raises:
        ValidationError: If validation fails
    """
    engines: List[EngineInstallation] = []
    seen_versions = set()

    for i, engine_data in enumerate(engines_data):
        try:
            version = validate_engine_version(
                engine_data.get("version", ""),
                field_name=f"engines[{i}].version",
            )
            if version in seen_versions:
                raise ValidationError(
                    f"engines[{i}].version must be unique, '{version}' already exists",
                    field_name=f"engines[{i}].version",
                    value=version,
                )
            seen_versions.add(version)

            install_dir_str = str(engine_data.get("install_dir", "")).strip()
            if not install_dir_str:
                raise ValidationError(f"engines[{i}].install_dir cannot be empty")
            install_dir = Path(install_dir_str).expanduser()
            if not install_dir.is_absolute():
                install_dir = base_dir / install_dir

            engines.append(EngineInstallation(version=version, install_dir=install_dir))

        except ValidationError as e:
            logger.error(f"Engine configuration validation failed: {e}")
            raise

    return engines
