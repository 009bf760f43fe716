"""Reverse lookup from an installed file to the template that produced it."""

from __future__ import annotations

import logging
import os
from pathlib import Path

from .exceptions import LocateError
from .models import ConfigFileAction, PluginAction
from .runner import ScriptRunner
from .script import DeferredScript

logger = logging.getLogger(__name__)


def canonical_path(path: Path | str) -> Path:
    """Expand ``~`` and resolve symlinks, tolerating missing files."""
    return Path(os.path.realpath(Path(path).expanduser()))


class LocateStrategy:
    """Records the template of the first config_file action hitting a destination.

    Plugin actions are neither searched nor run.
    """

    def __init__(self, destination: Path | str) -> None:
        self.destination = canonical_path(destination)
        self.template: Path | None = None
        self.action: ConfigFileAction | None = None

    def handle_config_file(self, action: ConfigFileAction) -> None:
        if self.template is not None:
            return
        if canonical_path(action.destination) == self.destination:
            self.template = Path(action.template)
            self.action = action
            logger.debug("%s was produced by %s", self.destination, self.template)

    def handle_plugin(self, action: PluginAction) -> None:
        return None


def locate(script: DeferredScript, destination: Path | str) -> Path:
    """Find the template whose config_file action installs ``destination``.

    Raises:
        LocateError: If no config_file action targets it
    """
    strategy = LocateStrategy(destination)
    ScriptRunner(strategy).run(script)
    if strategy.template is None:
        msg = f"{strategy.destination} was not created by confkit"
        raise LocateError(msg, details={"destination": str(strategy.destination)})
    return strategy.template
