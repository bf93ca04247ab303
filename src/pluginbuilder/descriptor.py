"""
Loading plugin descriptors from .uplugin files.

Only the fields the orchestrator needs are read: ``FriendlyName``,
``VersionName``, ``CanContainContent`` and ``SupportedTargetPlatforms``.
Engine versions are not part of the .uplugin format, so the caller supplies
them (the CLI defaults to every installed engine).
"""

import json
import logging
from pathlib import Path
from typing import Iterable, Optional, Sequence, Union

from .models.plugin import PluginDescriptor
from .validation import (
    ValidationError,
    handle_file_error,
    ErrorSeverity,
    validate_engine_version,
    validate_name_list,
    validate_platform_name,
)

logger = logging.getLogger(__name__)

UPLUGIN_SUFFIX = ".uplugin"

# Platforms BuildPlugin accepts when the descriptor does not restrict them.
DEFAULT_TARGET_PLATFORMS = ("Android", "IOS", "Linux", "LinuxArm64", "Mac", "Win64")


def find_uplugin_file(directory: Union[str, Path]) -> Path:
    """
    Return the first .uplugin file (by name) in ``directory``.

    Raises:
        ValidationError: If the directory holds no .uplugin file
    """
    directory = Path(directory)
    candidates = sorted(p for p in directory.glob(f"*{UPLUGIN_SUFFIX}") if p.is_file())
    if not candidates:
        raise ValidationError(
            f"No {UPLUGIN_SUFFIX} file found in {directory}",
            field_name="plugin",
            value=str(directory),
        )
    if len(candidates) > 1:
        logger.warning(f"Several {UPLUGIN_SUFFIX} files in {directory}, using {candidates[0].name}")
    return candidates[0]


def load_plugin_descriptor(
    plugin_path: Union[str, Path],
    engine_versions: Iterable[str],
    use_friendly_name: bool = True,
    platforms: Optional[Sequence[str]] = None,
) -> PluginDescriptor:
    """
    Load a PluginDescriptor from a .uplugin file or a directory holding one.

    Args:
        plugin_path: The .uplugin file or its directory
        engine_versions: Engine versions the plugin may be built against
        use_friendly_name: Name the plugin after FriendlyName (spaces removed)
            instead of the file name
        platforms: Overrides SupportedTargetPlatforms when given

    Raises:
        ValidationError: If the file is missing, malformed or lacks required data
    """
    plugin_path = Path(plugin_path)
    uplugin_file = plugin_path if plugin_path.is_file() else find_uplugin_file(plugin_path)
    if uplugin_file.suffix.lower() != UPLUGIN_SUFFIX:
        raise ValidationError(
            f"Not a {UPLUGIN_SUFFIX} file: {uplugin_file}",
            field_name="plugin",
            value=str(uplugin_file),
        )

    try:
        with open(uplugin_file, "r", encoding="utf-8-sig") as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        handle_file_error(
            error=e,
            context=f"parsing {uplugin_file}",
            severity=ErrorSeverity.ERROR,
            reraise=False,
            logger=logger,
        )
        raise ValidationError(
            f"Malformed plugin descriptor {uplugin_file}: {e}",
            field_name="plugin",
            value=str(uplugin_file),
        ) from e

    if not isinstance(data, dict):
        raise ValidationError(
            f"Malformed plugin descriptor {uplugin_file}: expected a JSON object",
            field_name="plugin",
            value=str(uplugin_file),
        )

    name = uplugin_file.stem
    friendly_name = data.get("FriendlyName")
    if use_friendly_name and isinstance(friendly_name, str) and friendly_name.strip():
        name = "".join(friendly_name.split())

    version = str(data.get("VersionName") or data.get("Version") or "1.0")

    if platforms is None:
        platforms = data.get("SupportedTargetPlatforms") or list(DEFAULT_TARGET_PLATFORMS)
    supported_platforms = validate_name_list(
        platforms, field_name="SupportedTargetPlatforms", item_validator=validate_platform_name
    )
    supported_versions = validate_name_list(
        list(engine_versions), field_name="engine_versions", item_validator=validate_engine_version
    )

    can_contain_content = data.get("CanContainContent", False)
    if not isinstance(can_contain_content, bool):
        raise ValidationError(
            "CanContainContent must be a boolean",
            field_name="CanContainContent",
            value=can_contain_content,
        )

    descriptor = PluginDescriptor(
        name=name,
        version=version,
        supported_platforms=tuple(supported_platforms),
        supported_engine_versions=tuple(supported_versions),
        source_dir=uplugin_file.parent,
        uplugin_file=uplugin_file,
        can_contain_content=can_contain_content,
    )
    logger.info(
        f"Loaded plugin {descriptor.name} {descriptor.version} "
        f"({len(supported_platforms)} platforms, {len(supported_versions)} engine versions)"
    )
    return descriptor
