"""
Process-wide access to the loaded PluginBuilder configuration.

``get_config()`` reads ``conf/config.toml`` and the engines file it points
to on first use and hands out the same ``AppConfig`` afterwards. Build
sessions take their own deep copy, so reloading here never affects a
session that is already running.
"""

import logging
from pathlib import Path
from typing import Optional

from ..models.config import AppConfig
from ..validation import handle_config_error, ErrorSeverity
from .loader import get_config_paths, load_engines_config, load_main_config
from .validators import validate_builder_config, validate_engines_config

logger = logging.getLogger(__name__)

_CONFIG: Optional[AppConfig] = None

# conf/config.toml at the repository root; the CLI --config option replaces it.
_CONFIG_FILE_PATH = Path(__file__).parent.parent.parent.parent / "conf" / "config.toml"


def set_config_path(config_path: Path) -> None:
    """Point the manager at another config.toml and forget the cached one."""
    global _CONFIG_FILE_PATH, _CONFIG
    _CONFIG_FILE_PATH = Path(config_path)
    _CONFIG = None
    logger.info(f"Using configuration file {config_path}")


def get_config_path() -> Path:
    return _CONFIG_FILE_PATH


def clear_config_cache() -> None:
    global _CONFIG
    _CONFIG = None
    logger.debug("Configuration cache cleared")


def _load_config(config_path: Path) -> AppConfig:
    config_dir = config_path.parent
    try:
        raw = load_main_config(config_path)
        engines_file = get_config_paths(raw, config_dir)["engines"]
        builder = validate_builder_config(raw.get("builder", {}), base_dir=config_dir)
        engines = validate_engines_config(load_engines_config(engines_file), base_dir=config_dir)
    except (OSError, KeyError, ValueError) as e:
        # ValidationError and TOMLDecodeError are ValueErrors.
        handle_config_error(
            error=e,
            context=f"loading {config_path}",
            severity=ErrorSeverity.CRITICAL,
            reraise=True,
            logger=logger,
        )
        raise

    versions = ", ".join(engine.version for engine in engines) or "none"
    logger.info(f"Configuration loaded: output root {builder.output_root}, engines {versions}")
    return AppConfig(builder=builder, engines=engines)


def get_config() -> AppConfig:
    """
    Return the cached configuration, loading it on first access.

    Raises:
        FileNotFoundError: If config.toml or the engines file is missing
        KeyError: If ``[paths] engines_config`` is missing
        ValidationError: If a value is invalid
        tomllib.TOMLDecodeError: If a file is not valid TOML
    """
    global _CONFIG
    if _CONFIG is None:
        _CONFIG = _load_config(_CONFIG_FILE_PATH)
    return _CONFIG


def is_config_loaded() -> bool:
    return _CONFIG is not None
