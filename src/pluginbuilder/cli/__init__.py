"""
Command-line interface for PluginBuilder.
"""

from .main import main_cli, run_cli

__all__ = ["main_cli", "run_cli"]
