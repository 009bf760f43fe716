"""Plugin framework: template verbs that run as deferred actions."""

from .loader import PluginLoader
from .registry import PluginContext, PluginHandler, PluginRegistry

__all__ = ["PluginContext", "PluginHandler", "PluginLoader", "PluginRegistry"]
