"""Core data models for confkit."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field

SETTINGS_FILE_NAME = "confkit.yaml"
CONFIG_FILE_ACTION = "config_file"

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def default_backup_root() -> Path:
    """Default location of the backup mirror."""
    return Path.home() / ".local" / "share" / "confkit" / "backup"


def default_local_prelude() -> Path:
    """Per-host prelude expanded after the global ones."""
    return Path.home() / ".config" / "confkit" / "local.j2"


class Settings(BaseModel):
    """Run options loaded from confkit.yaml and the command line."""

    config_root: Path = Field(..., description="Directory holding the templates")
    backup_root: Path = Field(
        default_factory=default_backup_root,
        description="Root of the mirrored backup tree",
    )
    search_path: list[Path] = Field(
        default_factory=list,
        description="Extra directories searched by include/import",
    )
    preludes: list[Path] = Field(
        default_factory=list,
        description="Global macro files expanded before every template",
    )
    local_prelude: Path | None = Field(
        default_factory=default_local_prelude,
        description="Host-local macro file, used when it exists",
    )
    include_patterns: list[str] = Field(
        default_factory=lambda: ["_*", "*.inc"],
        description="Name patterns of include-only templates",
    )
    plugin_dirs: list[Path] = Field(
        default_factory=list,
        description="Directories scanned for plugin modules",
    )
    variables: dict[str, Any] = Field(
        default_factory=dict,
        description="Extra bindings visible to every template",
    )
    editor: str | None = Field(
        default=None,
        description="Editor command used by `confkit edit`",
    )
    force: bool = Field(default=False, description="Overwrite without confirmation")
    dry_run: bool = Field(default=False, description="Report without writing")

    def prelude_files(self) -> list[Path]:
        """Global then local preludes, skipping a missing local prelude."""
        files = list(self.preludes)
        if self.local_prelude is not None and self.local_prelude.is_file():
            files.append(self.local_prelude)
        return files


class BindingSet(BaseModel):
    """Fixed bindings handed to every macro expansion."""

    template_path: Path
    script_path: Path | None = None
    output_id: str | None = None
    search_path: list[Path] = Field(default_factory=list)
    preludes: list[Path] = Field(default_factory=list)
    variables: dict[str, Any] = Field(default_factory=dict)

    def as_context(self) -> dict[str, Any]:
        """Template-visible names; user variables cannot shadow the fixed ones."""
        context = dict(self.variables)
        context.update(
            source=str(self.template_path),
            script=str(self.script_path) if self.script_path else "",
            output_id=self.output_id,
            search_path=[str(p) for p in self.search_path],
            preludes=[str(p) for p in self.preludes],
        )
        return context


@dataclass(frozen=True)
class ConfigFileAction:
    """Generate one output block of a template and install it."""

    id: str
    name: str
    destination: str
    template: str
    origin: str | None = field(default=None, compare=False)

    @property
    def action_name(self) -> str:
        return CONFIG_FILE_ACTION

    @property
    def args(self) -> tuple[str, ...]:
        return (self.id, self.name, self.destination, self.template)

    def destination_path(self) -> Path:
        return Path(self.destination).expanduser()


@dataclass(frozen=True)
class PluginAction:
    """Dispatch to a plugin handler with positional text arguments."""

    handler: str
    args: tuple[str, ...] = ()
    origin: str | None = field(default=None, compare=False)

    def __post_init__(self) -> None:
        """Validate the handler name and freeze the arguments."""
        if not _IDENTIFIER.match(self.handler):
            msg = f"Handler name must be an identifier: {self.handler!r}"
            raise ValueError(msg)
        if self.handler == CONFIG_FILE_ACTION:
            msg = f"Handler name '{CONFIG_FILE_ACTION}' is reserved"
            raise ValueError(msg)
        object.__setattr__(self, "args", tuple(self.args))

    @property
    def action_name(self) -> str:
        return self.handler


class InstallOutcome(str, Enum):
    """Result of one installer call."""

    INSTALLED = "installed"
    UNCHANGED = "unchanged"
    DECLINED = "declined"
    ERROR = "error"

    @property
    def succeeded(self) -> bool:
        return self in (InstallOutcome.INSTALLED, InstallOutcome.UNCHANGED)


@dataclass
class RunReport:
    """Tally of one pipeline run."""

    templates: list[Path] = field(default_factory=list)
    failed_templates: list[Path] = field(default_factory=list)
    actions_run: int = 0
    outcomes: dict[str, InstallOutcome] = field(default_factory=dict)
    failed_actions: list[str] = field(default_factory=list)

    @property
    def failed(self) -> bool:
        return bool(self.failed_templates or self.failed_actions)

    @property
    def exit_code(self) -> int:
        return 1 if self.failed else 0

    def count(self, outcome: InstallOutcome) -> int:
        return sum(1 for o in self.outcomes.values() if o == outcome)
