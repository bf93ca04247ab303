"""
Reading the TOML files behind the configuration: ``config.toml`` and the
``engines.toml`` it names under ``[paths]``.
"""

import logging
import tomllib
from pathlib import Path
from typing import Any, Dict, List

from ..validation import handle_config_error, ErrorSeverity

logger = logging.getLogger(__name__)


def load_toml_file(file_path: Path, description: str = "configuration file") -> Dict[str, Any]:
    """
    Parse one TOML file.

    Raises:
        FileNotFoundError: If ``file_path`` does not exist
        tomllib.TOMLDecodeError: If it is not valid TOML
    """
    if not file_path.is_file():
        raise FileNotFoundError(f"{description} not found: {file_path}")

    logger.debug(f"Reading {description} {file_path}")
    with open(file_path, "rb") as f:
        try:
            return tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            handle_config_error(
                error=e,
                context=f"parsing {file_path.name}",
                severity=ErrorSeverity.ERROR,
                reraise=True,
                logger=logger,
            )
            raise


def load_main_config(config_path: Path) -> Dict[str, Any]:
    return load_toml_file(config_path, "main configuration file")


def load_engines_config(engines_path: Path) -> List[Dict[str, Any]]:
    """The raw ``[[engines]]`` tables; an engines file without any is allowed."""
    engines = load_toml_file(engines_path, "engines file").get("engines", [])
    if not isinstance(engines, list):
        raise ValueError(f"'engines' in {engines_path} must be an array of tables")
    return engines


def get_config_paths(main_config_data: Dict[str, Any], config_dir: Path) -> Dict[str, Path]:
    """
    Resolve the ``[paths]`` entries against the directory of config.toml.

    Raises:
        KeyError: If ``engines_config`` is missing
    """
    engines_file = main_config_data.get("paths", {}).get("engines_config")
    if not engines_file:
        raise KeyError("Missing 'engines_config' path in [paths] section of config.toml")
    return {"engines": config_dir / engines_file}
