"""Interpreter over the deferred action script.

The same script is run with different strategies depending on the mode:
``InstallStrategy`` generates and installs files and dispatches plugin
actions, ``LocateStrategy`` (see ``confkit.locator``) only inspects
``config_file`` destinations.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Any, Protocol

from .context import RunContext
from .exceptions import ConfkitError, PluginError
from .models import ConfigFileAction, InstallOutcome, PluginAction, RunReport
from .script import ActionRecord, DeferredScript, format_action

logger = logging.getLogger(__name__)

_UNSAFE_NAME_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


class ActionStrategy(Protocol):
    """What the runner delegates each action to."""

    def handle_config_file(self, action: ConfigFileAction) -> Any:
        ...

    def handle_plugin(self, action: PluginAction) -> Any:
        ...


class InstallStrategy:
    """Generates each config file into the work directory and installs it."""

    def __init__(self, context: RunContext, workdir: Path) -> None:
        self.context = context
        self.workdir = Path(workdir)
        self._generated = 0

    def handle_config_file(self, action: ConfigFileAction) -> InstallOutcome:
        text = self.context.expand(Path(action.template), output_id=action.id)

        self._generated += 1
        safe_name = _UNSAFE_NAME_CHARS.sub("_", action.name) or "output"
        generated_path = self.workdir / "generated" / f"{self._generated:04d}-{safe_name}"
        generated_path.parent.mkdir(parents=True, exist_ok=True)
        generated_path.write_text(text, encoding="utf-8")

        return self.context.installer.install(
            generated_path,
            action.destination_path(),
            name=action.name,
        )

    def handle_plugin(self, action: PluginAction) -> Any:
        handler = self.context.plugins.handler(action.handler)
        try:
            return handler(self.context.plugin_context(), *action.args)
        except ConfkitError:
            raise
        except Exception as e:
            msg = f"Plugin action {format_action(action)} failed: {e}"
            raise PluginError(msg, details={"handler": action.handler}) from e


class ScriptRunner:
    """Runs every action of a script once, in order."""

    def __init__(self, strategy: ActionStrategy, context: RunContext | None = None) -> None:
        self.strategy = strategy
        self.context = context

    def run(self, script: DeferredScript, report: RunReport | None = None) -> RunReport:
        """Run the script.

        A failing action is reported and counted; the remaining actions still
        run since nothing orders them except the script itself.

        Args:
            script: Actions to run
            report: Report to update, a new one when omitted

        Returns:
            The updated report
        """
        report = report or RunReport()
        for action in script:
            try:
                result = self._dispatch(action)
            except (ConfkitError, OSError) as e:
                label = _label(action)
                logger.error("Action failed: %s: %s", format_action(action), e)
                if self.context is not None:
                    self.context.console.print(f"[red]Error:[/red] {label}: {e}")
                report.failed_actions.append(label)
                if isinstance(action, ConfigFileAction):
                    report.outcomes[action.destination] = InstallOutcome.ERROR
                continue

            report.actions_run += 1
            if isinstance(action, ConfigFileAction) and isinstance(result, InstallOutcome):
                report.outcomes[action.destination] = result
        return report

    def _dispatch(self, action: ActionRecord) -> Any:
        if isinstance(action, ConfigFileAction):
            return self.strategy.handle_config_file(action)
        return self.strategy.handle_plugin(action)


def _label(action: ActionRecord) -> str:
    if isinstance(action, ConfigFileAction):
        return f"{action.name} -> {action.destination}"
    return f"{action.handler}({', '.join(action.args)})"
