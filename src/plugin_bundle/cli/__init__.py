# src/plugin_bundle/cli/__init__.py
"""
Plugin Bundle CLI commands.

- plugin-bundle reload / list / migrate / drop
"""

from plugin_bundle.cli.plugins import run, main

__all__ = ["run", "main"]
