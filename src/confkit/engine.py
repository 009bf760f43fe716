"""Macro engine adapter: expands templates with Jinja2.

Expansion never touches the filesystem beyond reading templates. Calls to
``config_file`` and to plugin verbs inside a template only record deferred
actions, which are handed to the caller's script once the expansion has
succeeded as a whole.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Callable, Sequence
from pathlib import Path
from typing import Any

from jinja2 import Environment, FileSystemLoader, StrictUndefined

from .exceptions import ExpansionError, ScriptError
from .models import CONFIG_FILE_ACTION, BindingSet, ConfigFileAction, PluginAction
from .plugins.registry import PluginRegistry
from .script import ActionRecord, DeferredScript

logger = logging.getLogger(__name__)


def create_environment(search_path: Sequence[Path]) -> Environment:
    """Jinja2 environment shared by a template and its preludes."""
    loader = FileSystemLoader([str(p) for p in search_path])
    return Environment(
        loader=loader,
        undefined=StrictUndefined,
        autoescape=False,
        trim_blocks=True,
        lstrip_blocks=True,
        keep_trailing_newline=True,
    )


def _exports(module: Any) -> dict[str, Any]:
    return {k: v for k, v in vars(module).items() if not k.startswith("_")}


class MacroEngine:
    """Expands one template at a time under a fixed binding set."""

    def __init__(self, plugins: PluginRegistry | None = None) -> None:
        self.plugins = plugins or PluginRegistry()

    def expand(
        self,
        template_path: Path,
        script: DeferredScript | None = None,
        output_id: str | None = None,
        search_path: Sequence[Path] = (),
        preludes: Sequence[Path] = (),
        variables: dict[str, Any] | None = None,
        script_path: Path | None = None,
    ) -> str:
        """Expand a template.

        Args:
            template_path: Template to expand
            script: Script receiving recorded actions; None discards them
            output_id: Block to render, or None to render the whole template
            search_path: Extra include/import directories
            preludes: Macro files expanded first, in order
            variables: Extra bindings
            script_path: Location of the persisted script, exposed as ``script``

        Returns:
            Expanded text

        Raises:
            ExpansionError: If the template or a prelude fails to expand
        """
        template_path = Path(template_path)
        bindings = BindingSet(
            template_path=template_path,
            script_path=script_path,
            output_id=output_id,
            search_path=list(search_path),
            preludes=list(preludes),
            variables=variables or {},
        )
        logger.debug("Expanding %s (output %s)", template_path, output_id or "<plan>")

        recorded: list[ActionRecord] = []
        env = create_environment([template_path.parent, *bindings.search_path])
        env.globals.update(self._verbs(recorded, template_path))

        context = bindings.as_context()
        context["environ"] = dict(os.environ)

        try:
            for prelude in bindings.preludes:
                context.update(self._load_prelude(env, prelude, context))

            template = env.get_template(template_path.name)
            if output_id is None:
                text = template.render(context)
            else:
                if output_id not in template.blocks:
                    msg = f"Template {template_path} has no output block '{output_id}'"
                    raise ExpansionError(
                        msg,
                        template_path=str(template_path),
                        details={"blocks": sorted(template.blocks)},
                    )
                # top-level macros and sets are only bound by a full render
                context.update(_exports(template.make_module(context)))
                render_block = template.blocks[output_id]
                text = "".join(render_block(template.new_context(context)))
        except ExpansionError:
            raise
        except Exception as e:
            msg = f"Failed to expand {template_path}: {e}"
            raise ExpansionError(msg, template_path=str(template_path)) from e

        if script is not None:
            script.extend(recorded)
        return text

    def _load_prelude(
        self,
        env: Environment,
        prelude: Path,
        context: dict[str, Any],
    ) -> dict[str, Any]:
        """Render a prelude as a module and return its exported names."""
        overlay = env.overlay(loader=FileSystemLoader(str(prelude.parent)))
        return _exports(overlay.get_template(prelude.name).make_module(context))

    def _verbs(
        self,
        recorded: list[ActionRecord],
        template_path: Path,
    ) -> dict[str, Callable[..., str]]:
        origin = str(template_path)

        def config_file(*args: Any, **kwargs: Any) -> str:
            if kwargs:
                msg = f"{CONFIG_FILE_ACTION}() takes positional arguments only"
                raise ScriptError(msg)
            if len(args) not in (3, 4):
                msg = (
                    f"{CONFIG_FILE_ACTION}(id, name, path, template=None) "
                    f"takes 3 or 4 arguments, got {len(args)}"
                )
                raise ScriptError(msg)
            action_id, name, path = (str(a) for a in args[:3])
            template = args[3] if len(args) == 4 and args[3] else template_path
            template = Path(str(template))
            if not template.is_absolute():
                template = template_path.parent / template
            recorded.append(
                ConfigFileAction(
                    id=action_id,
                    name=name,
                    destination=path,
                    template=str(template),
                    origin=origin,
                ),
            )
            return ""

        verbs: dict[str, Callable[..., str]] = {CONFIG_FILE_ACTION: config_file}
        for verb, handler_name in self.plugins.verbs.items():
            verbs[verb] = self._plugin_verb(verb, handler_name, recorded, origin)
        return verbs

    @staticmethod
    def _plugin_verb(
        verb: str,
        handler_name: str,
        recorded: list[ActionRecord],
        origin: str,
    ) -> Callable[..., str]:
        def record(*args: Any, **kwargs: Any) -> str:
            if kwargs:
                msg = f"{verb}() takes positional arguments only"
                raise ScriptError(msg)
            recorded.append(
                PluginAction(
                    handler=handler_name,
                    args=[str(a) for a in args],
                    origin=origin,
                ),
            )
            return ""

        record.__name__ = verb
        return record
