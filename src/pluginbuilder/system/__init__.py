"""
System interaction: installed engines, build tool commands and CPU capacity.
"""

from .commands import UATCommandBuilder, build_uat_arguments
from .cpu import get_available_parallelism, resolve_worker_count
from .engines import EngineLocator, uat_script_name, uat_script_path

__all__ = [
    "UATCommandBuilder",
    "build_uat_arguments",
    "get_available_parallelism",
    "resolve_worker_count",
    "EngineLocator",
    "uat_script_name",
    "uat_script_path",
]
