"""Dynamic plugin loading."""

from __future__ import annotations

import importlib.util
import logging
from pathlib import Path
from types import ModuleType

from ..exceptions import PluginError
from .registry import PluginRegistry

logger = logging.getLogger(__name__)

BUILTIN_PLUGINS_PATH = Path(__file__).parent / "builtin"


class PluginLoader:
    """Loads plugin modules and lets them register their verbs."""

    def __init__(
        self,
        plugin_dirs: list[Path] | None = None,
        include_builtin: bool = True,
    ) -> None:
        """Initialize plugin loader.

        Args:
            plugin_dirs: Extra directories holding plugin modules
            include_builtin: Whether to load the bundled plugins first
        """
        self.plugin_dirs: list[Path] = []
        if include_builtin:
            self.plugin_dirs.append(BUILTIN_PLUGINS_PATH)
        self.plugin_dirs.extend(Path(d) for d in plugin_dirs or [])

    def discover_plugins(self) -> list[Path]:
        """List plugin files in load order: directory order, then file name."""
        found = []
        for directory in self.plugin_dirs:
            if not directory.is_dir():
                logger.debug("Plugin directory missing, skipping: %s", directory)
                continue
            found.extend(
                p for p in sorted(directory.glob("*.py"))
                if p.name != "__init__.py" and not p.name.startswith(".")
            )
        return found

    def load_module(self, plugin_path: Path) -> ModuleType:
        """Import one plugin file.

        Raises:
            PluginError: If the file cannot be imported or has no register()
        """
        module_name = f"confkit_plugin_{plugin_path.stem.replace('.', '_')}"
        spec = importlib.util.spec_from_file_location(module_name, plugin_path)
        if spec is None or spec.loader is None:
            msg = f"Failed to create module spec for {plugin_path}"
            raise PluginError(msg, details={"path": str(plugin_path)})

        module = importlib.util.module_from_spec(spec)
        try:
            spec.loader.exec_module(module)
        except Exception as e:
            msg = f"Failed to import plugin {plugin_path.name}: {e}"
            raise PluginError(msg, details={"path": str(plugin_path)}) from e

        if not callable(getattr(module, "register", None)):
            msg = f"Plugin {plugin_path.name} must define a register(registry) function"
            raise PluginError(msg, details={"path": str(plugin_path)})
        return module

    def load_into(self, registry: PluginRegistry) -> list[str]:
        """Load every discovered plugin into ``registry``.

        Returns:
            Names of the loaded plugin files
        """
        loaded = []
        for plugin_path in self.discover_plugins():
            module = self.load_module(plugin_path)
            module.register(registry)
            loaded.append(plugin_path.stem)
            logger.debug("Loaded plugin %s", plugin_path)
        return loaded
