"""
Engine installation discovery.

Installed engines come from engines.toml. On Windows, versions that are not
configured are looked up the way the Epic Games Launcher registers them:
``HKLM\\SOFTWARE\\EpicGames\\Unreal Engine\\<version>`` with an
``InstalledDirectory`` value.
"""

import logging
import os
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from packaging.version import InvalidVersion, Version

from ..errors import MissingExecutableError
from ..models.config import EngineInstallation

logger = logging.getLogger(__name__)

UNREAL_ENGINE_REGISTRY_KEY = r"SOFTWARE\EpicGames\Unreal Engine"
INSTALLED_DIRECTORY_VALUE = "InstalledDirectory"


def uat_script_name() -> str:
    return "RunUAT.bat" if os.name == "nt" else "RunUAT.sh"


def uat_script_path(install_dir: Path) -> Path:
    """Location of the automation tool entry script inside an installation."""
    return install_dir / "Engine" / "Build" / "BatchFiles" / uat_script_name()


def _version_sort_key(version: str):
    try:
        return (0, Version(version), version)
    except InvalidVersion:
        return (1, Version("0"), version)


def _read_registry_install_dir(engine_version: str) -> Optional[Path]:
    if os.name != "nt":
        return None
    import winreg

    key_name = f"{UNREAL_ENGINE_REGISTRY_KEY}\\{engine_version}"
    try:
        with winreg.OpenKey(winreg.HKEY_LOCAL_MACHINE, key_name) as key:
            install_dir, _ = winreg.QueryValueEx(key, INSTALLED_DIRECTORY_VALUE)
    except OSError:
        return None
    return Path(install_dir)


def _list_registry_versions() -> List[str]:
    if os.name != "nt":
        return []
    import winreg

    versions = []
    try:
        with winreg.OpenKey(winreg.HKEY_LOCAL_MACHINE, UNREAL_ENGINE_REGISTRY_KEY) as key:
            subkey_count, _, _ = winreg.QueryInfoKey(key)
            for index in range(subkey_count):
                versions.append(winreg.EnumKey(key, index))
    except OSError as e:
        logger.debug(f"No launcher engine registrations found: {e}")
    return versions


class EngineLocator:
    """
    Maps engine versions to installation directories and build tool scripts.
    """

    def __init__(self, installations: Iterable[EngineInstallation] = (), use_registry: bool = True):
        self._installations: Dict[str, Path] = {
            inst.version: Path(inst.install_dir) for inst in installations
        }
        self.use_registry = use_registry

    def installed_versions(self) -> List[str]:
        """Known engine versions in ascending semantic order."""
        versions = set(self._installations)
        if self.use_registry:
            versions.update(_list_registry_versions())
        return sorted(versions, key=_version_sort_key)

    def find_install_dir(self, engine_version: str) -> Optional[Path]:
        install_dir = self._installations.get(engine_version)
        if install_dir is None and self.use_registry:
            install_dir = _read_registry_install_dir(engine_version)
        return install_dir

    def find_uat_script(self, engine_version: str) -> Path:
        """
        Resolve the RunUAT script for an engine version.

        Raises:
            MissingExecutableError: If the engine is unknown or the script is missing
        """
        install_dir = self.find_install_dir(engine_version)
        if install_dir is None:
            raise MissingExecutableError(
                f"Could not find an installation of engine version {engine_version}"
            )
        script = uat_script_path(install_dir)
        if not script.is_file():
            raise MissingExecutableError(
                f"Could not find UAT script for engine version {engine_version}: {script}",
                path=str(script),
            )
        logger.debug(f"Engine {engine_version} UAT script: {script}")
        return script
