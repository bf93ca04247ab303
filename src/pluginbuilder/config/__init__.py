"""
Configuration management for pluginbuilder.

- loader: TOML file loading
- validators: raw table validation into typed configuration objects
- manager: cached singleton access (get_config / set_config_path)
"""

from .manager import (
    clear_config_cache,
    get_config,
    get_config_path,
    is_config_loaded,
    set_config_path,
)

__all__ = [
    "clear_config_cache",
    "get_config",
    "get_config_path",
    "is_config_loaded",
    "set_config_path",
]
