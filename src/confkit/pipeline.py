"""Top-level orchestration: discover, expand, then apply or locate."""

from __future__ import annotations

import logging
import os
import shlex
import shutil
import subprocess
import tempfile
from enum import Enum
from pathlib import Path
from types import TracebackType

from rich.console import Console

from .context import RunContext
from .discovery import discover_templates
from .exceptions import ConfkitError, ExpansionError
from .locator import locate
from .models import RunReport
from .runner import InstallStrategy, ScriptRunner
from .script import DeferredScript

logger = logging.getLogger(__name__)

SCRIPT_FILE_NAME = "actions.script"


class Stage(str, Enum):
    """Orchestrator states."""

    IDLE = "idle"
    DISCOVERING = "discovering"
    EXPANDING = "expanding"
    EXECUTING = "executing"
    LOCATING = "locating"
    CLEANING_UP = "cleaning_up"


class Session:
    """Scoped temporary work area for one run.

    Holds the persisted action script and the generated files. Removed on
    exit whatever the outcome.
    """

    def __init__(self) -> None:
        self.workdir: Path | None = None

    def __enter__(self) -> Session:
        self.workdir = Path(tempfile.mkdtemp(prefix="confkit-"))
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        if self.workdir is not None:
            shutil.rmtree(self.workdir, ignore_errors=True)
            self.workdir = None

    @property
    def script_path(self) -> Path:
        if self.workdir is None:
            msg = "Session is not active"
            raise ConfkitError(msg)
        return self.workdir / SCRIPT_FILE_NAME


class Pipeline:
    """Runs templates through the plan/apply split."""

    def __init__(self, context: RunContext) -> None:
        self.context = context
        self.stage = Stage.IDLE
        self.report = RunReport()

    @property
    def console(self) -> Console:
        return self.context.console

    def discover(self) -> list[Path]:
        self.stage = Stage.DISCOVERING
        settings = self.context.settings
        templates = discover_templates(
            settings.config_root,
            settings.include_patterns,
            exclude=settings.plugin_dirs,
        )
        logger.info("Found %d template(s) under %s", len(templates), settings.config_root)
        return templates

    def plan(self, script_path: Path | None = None) -> DeferredScript:
        """Expand every template, collecting their deferred actions.

        A template that fails to expand is reported and skipped; none of its
        actions reach the script.
        """
        script = DeferredScript()
        templates = self.discover()

        self.stage = Stage.EXPANDING
        for template in templates:
            try:
                self.context.expand(template, script=script, script_path=script_path)
            except ExpansionError as e:
                logger.error("%s", e)
                self.console.print(f"[red]Error:[/red] {e}")
                self.report.failed_templates.append(template)
                continue
            self.report.templates.append(template)

        if script_path is not None:
            script.save(script_path)
        logger.debug("Planned %d action(s)", len(script))
        return script

    def execute(self, script: DeferredScript, workdir: Path) -> RunReport:
        self.stage = Stage.EXECUTING
        strategy = InstallStrategy(self.context, workdir)
        return ScriptRunner(strategy, self.context).run(script, self.report)

    def apply(self, script: DeferredScript | None = None) -> RunReport:
        """Plan (unless a script is given) and run every action."""
        with Session() as session:
            try:
                if script is None:
                    script = self.plan(session.script_path)
                return self.execute(script, session.workdir)
            finally:
                self.stage = Stage.CLEANING_UP

    def locate(self, destination: Path | str) -> Path:
        """Plan and find the template that installs ``destination``.

        Raises:
            LocateError: If no config_file action targets it
        """
        with Session() as session:
            try:
                script = self.plan(session.script_path)
                self.stage = Stage.LOCATING
                return locate(script, destination)
            finally:
                self.stage = Stage.CLEANING_UP

    def edit(self, destination: Path | str) -> int:
        """Open the template behind ``destination`` in the user's editor.

        Returns:
            The editor's exit code
        """
        template = self.locate(destination)
        command = [*shlex.split(self.editor_command()), str(template)]
        logger.info("Editing %s", template)
        try:
            return subprocess.call(command)
        except OSError as e:
            msg = f"Failed to start editor {command[0]}: {e}"
            raise ConfkitError(msg, details={"template": str(template)}) from e

    def editor_command(self) -> str:
        return (
            self.context.settings.editor
            or os.environ.get("VISUAL")
            or os.environ.get("EDITOR")
            or "vi"
        )
