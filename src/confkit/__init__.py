"""confkit: template-driven configuration installer."""

__version__ = "0.1.0"
__author__ = "confkit Contributors"
__description__ = "Install configuration files from templates without clobbering local edits"

from .context import RunContext
from .engine import MacroEngine
from .installer import Installer
from .locator import locate
from .models import ConfigFileAction, InstallOutcome, PluginAction, Settings
from .pipeline import Pipeline
from .plugins import PluginContext, PluginRegistry
from .script import DeferredScript

__all__ = [
    "ConfigFileAction",
    "DeferredScript",
    "InstallOutcome",
    "Installer",
    "MacroEngine",
    "Pipeline",
    "PluginAction",
    "PluginContext",
    "PluginRegistry",
    "RunContext",
    "Settings",
    "locate",
]
