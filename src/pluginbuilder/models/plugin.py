"""
Plugin descriptor model.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Tuple


@dataclass(frozen=True)
class PluginDescriptor:
    """
    Identity and build targets of the plugin being packaged.

    Immutable once loaded; a session keeps a reference to the descriptor it
    was created with.
    """

    # Name used for directories and archive names (no spaces).
    name: str
    # Free-form version string (the .uplugin VersionName).
    version: str
    # Platforms the plugin may be built for (UBT names, e.g. "Win64").
    supported_platforms: Tuple[str, ...]
    # Engine versions the plugin may be built against (e.g. "5.3").
    supported_engine_versions: Tuple[str, ...]
    # Directory holding the .uplugin file and Source/.
    source_dir: Path
    # The .uplugin file passed to BuildPlugin.
    uplugin_file: Path
    # Whether Content/ is part of the distributable plugin.
    can_contain_content: bool = True

    def supports_platform(self, platform: str) -> bool:
        return platform in self.supported_platforms

    def supports_engine_version(self, engine_version: str) -> bool:
        return engine_version in self.supported_engine_versions
