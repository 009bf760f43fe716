"""Plugin command registry: new template verbs backed by deferred handlers."""

from __future__ import annotations

import logging
import re
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any, Protocol

from rich.console import Console

from ..exceptions import PluginError
from ..models import CONFIG_FILE_ACTION, Settings

if TYPE_CHECKING:
    from ..installer import Installer

logger = logging.getLogger(__name__)

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


@dataclass
class PluginContext:
    """What a handler can reach when its deferred action runs."""

    settings: Settings
    installer: Installer
    console: Console = field(default_factory=Console)

    @property
    def dry_run(self) -> bool:
        return self.settings.dry_run


class PluginHandler(Protocol):
    """Signature every plugin handler implements."""

    def __call__(self, context: PluginContext, *args: str) -> Any:
        ...


class PluginRegistry:
    """Maps template verbs to handler names and handler names to callables."""

    def __init__(self) -> None:
        self._verbs: dict[str, str] = {}
        self._handlers: dict[str, Callable[..., Any]] = {}
        self._preludes: list[Path] = []

    def register(
        self,
        verb: str,
        handler: Callable[..., Any],
        handler_name: str | None = None,
    ) -> None:
        """Declare ``verb`` in the template language.

        Calling ``verb(*args)`` from a template records a deferred action named
        ``handler_name`` (defaults to ``verb``) with the stringified arguments.
        The handler itself runs only when the script is applied.

        Args:
            verb: Name templates call
            handler: Callable invoked as ``handler(context, *args)``
            handler_name: Action name written to the script

        Raises:
            PluginError: If the name is invalid or already taken
        """
        handler_name = handler_name or verb
        for label, name in (("Verb", verb), ("Handler", handler_name)):
            if not _IDENTIFIER.match(name):
                msg = f"{label} name must be an identifier: {name!r}"
                raise PluginError(msg)
            if name == CONFIG_FILE_ACTION:
                msg = f"{label} name '{CONFIG_FILE_ACTION}' is reserved"
                raise PluginError(msg)
        if verb in self._verbs:
            msg = f"Verb already registered: {verb}"
            raise PluginError(msg, details={"handler": self._verbs[verb]})
        if not callable(handler):
            msg = f"Handler for {verb} is not callable"
            raise PluginError(msg)

        existing = self._handlers.get(handler_name)
        if existing is not None and existing is not handler:
            msg = f"Handler name already bound to another function: {handler_name}"
            raise PluginError(msg)

        self._verbs[verb] = handler_name
        self._handlers[handler_name] = handler
        logger.debug("Registered verb %s -> %s", verb, handler_name)

    def add_prelude(self, path: Path) -> None:
        """Contribute a macro file expanded before every template."""
        path = Path(path)
        if not path.is_file():
            msg = f"Plugin prelude not found: {path}"
            raise PluginError(msg)
        self._preludes.append(path)

    @property
    def verbs(self) -> dict[str, str]:
        """Verb name to handler name."""
        return dict(self._verbs)

    @property
    def preludes(self) -> list[Path]:
        return list(self._preludes)

    def handler(self, name: str) -> Callable[..., Any]:
        """Resolve a handler by the name recorded in the script."""
        try:
            return self._handlers[name]
        except KeyError:
            msg = f"No plugin handler registered for action '{name}'"
            raise PluginError(msg, details={"known": sorted(self._handlers)}) from None

    def __contains__(self, verb: str) -> bool:
        return verb in self._verbs
