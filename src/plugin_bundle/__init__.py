"""
Schema lifecycle management for installable plugin bundles.
"""
from plugin_bundle.context import PluginContext
from plugin_bundle.sdk import Addon, PluginBundleBase, PluginManifest

__all__ = ["Addon", "PluginBundleBase", "PluginContext", "PluginManifest"]
