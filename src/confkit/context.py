"""Run context threaded through discovery, expansion and execution."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from rich.console import Console

from .engine import MacroEngine
from .installer import ConfirmFn, Installer
from .models import Settings
from .plugins.loader import PluginLoader
from .plugins.registry import PluginContext, PluginRegistry
from .script import DeferredScript


@dataclass
class RunContext:
    """Options and plugin table for one invocation."""

    settings: Settings
    plugins: PluginRegistry = field(default_factory=PluginRegistry)
    console: Console = field(default_factory=Console)
    confirm: ConfirmFn | None = None

    def __post_init__(self) -> None:
        self.engine = MacroEngine(self.plugins)
        self.installer = Installer(
            self.settings.backup_root,
            force=self.settings.force,
            dry_run=self.settings.dry_run,
            console=self.console,
            confirm=self.confirm,
        )

    @classmethod
    def create(
        cls,
        settings: Settings,
        console: Console | None = None,
        confirm: ConfirmFn | None = None,
        include_builtin_plugins: bool = True,
    ) -> RunContext:
        """Build a context with every configured plugin loaded."""
        plugins = PluginRegistry()
        PluginLoader(settings.plugin_dirs, include_builtin_plugins).load_into(plugins)
        return cls(
            settings=settings,
            plugins=plugins,
            console=console or Console(),
            confirm=confirm,
        )

    @property
    def preludes(self) -> list[Path]:
        """Global, local, then plugin-contributed preludes."""
        return self.settings.prelude_files() + self.plugins.preludes

    def plugin_context(self) -> PluginContext:
        return PluginContext(
            settings=self.settings,
            installer=self.installer,
            console=self.console,
        )

    def expand(
        self,
        template_path: Path,
        script: DeferredScript | None = None,
        output_id: str | None = None,
        script_path: Path | None = None,
    ) -> str:
        """Expand with this run's search path, preludes and variables."""
        return self.engine.expand(
            template_path,
            script=script,
            output_id=output_id,
            search_path=[*self.settings.search_path, self.settings.config_root],
            preludes=self.preludes,
            variables=self.settings.variables,
            script_path=script_path,
        )
