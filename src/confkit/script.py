"""Deferred action script: the plan produced by template expansion.

The script is kept in memory as an ordered list of tagged action records.
It also has a flat text form so a plan can be saved, inspected and replayed:
one record per line, ``action_name(arg, arg, ...)``, where every argument is
a JSON string literal. JSON escaping is ASCII-only, so newlines, quotes,
parentheses and commas inside an argument never leak into the record
structure, and surrogate-escaped file-name bytes survive as ``\\udcXX``.
"""

from __future__ import annotations

import json
import re
from collections.abc import Iterable, Iterator
from pathlib import Path

from .exceptions import ScriptError
from .models import CONFIG_FILE_ACTION, ConfigFileAction, PluginAction

ActionRecord = ConfigFileAction | PluginAction

_RECORD = re.compile(r"^(?P<name>[A-Za-z_][A-Za-z0-9_]*)\((?P<args>.*)\)$")
_decoder = json.JSONDecoder()


def quote_arg(value: str) -> str:
    """Escape one argument for the text form."""
    return json.dumps(value, ensure_ascii=True)


def parse_args(text: str, line_number: int = 0) -> list[str]:
    """Split the inside of a record's parentheses back into arguments."""
    args: list[str] = []
    pos = _skip_ws(text, 0)
    if pos == len(text):
        return args

    while True:
        try:
            value, pos = _decoder.raw_decode(text, pos)
        except json.JSONDecodeError as e:
            msg = f"Line {line_number}: malformed argument at column {pos + 1}: {e.msg}"
            raise ScriptError(msg, details={"line": line_number}) from e
        if not isinstance(value, str):
            msg = f"Line {line_number}: arguments must be strings, got {value!r}"
            raise ScriptError(msg, details={"line": line_number})
        args.append(value)

        pos = _skip_ws(text, pos)
        if pos == len(text):
            return args
        if text[pos] != ",":
            msg = f"Line {line_number}: expected ',' at column {pos + 1}"
            raise ScriptError(msg, details={"line": line_number})
        pos = _skip_ws(text, pos + 1)


def _skip_ws(text: str, pos: int) -> int:
    while pos < len(text) and text[pos] in " \t":
        pos += 1
    return pos


def format_action(action: ActionRecord) -> str:
    """Render one action as a text record."""
    args = ", ".join(quote_arg(a) for a in action.args)
    return f"{action.action_name}({args})"


def parse_action(line: str, line_number: int = 0) -> ActionRecord:
    """Parse one text record."""
    match = _RECORD.match(line.strip())
    if match is None:
        msg = f"Line {line_number}: not an action record: {line.strip()[:60]!r}"
        raise ScriptError(msg, details={"line": line_number})

    name = match.group("name")
    args = parse_args(match.group("args"), line_number)

    if name == CONFIG_FILE_ACTION:
        if len(args) != 4:
            msg = (
                f"Line {line_number}: {CONFIG_FILE_ACTION} takes 4 arguments "
                f"(id, name, destination, template), got {len(args)}"
            )
            raise ScriptError(msg, details={"line": line_number})
        action_id, display_name, destination, template = args
        return ConfigFileAction(
            id=action_id,
            name=display_name,
            destination=destination,
            template=template,
        )

    try:
        return PluginAction(handler=name, args=args)
    except ValueError as e:
        msg = f"Line {line_number}: invalid plugin action: {e}"
        raise ScriptError(msg, details={"line": line_number}) from e


class DeferredScript:
    """Ordered, append-only log of deferred actions."""

    def __init__(self, actions: Iterable[ActionRecord] = ()) -> None:
        self._actions: list[ActionRecord] = list(actions)

    def append(self, action: ActionRecord) -> None:
        self._actions.append(action)

    def extend(self, actions: Iterable[ActionRecord]) -> None:
        self._actions.extend(actions)

    def __iter__(self) -> Iterator[ActionRecord]:
        return iter(list(self._actions))

    def __len__(self) -> int:
        return len(self._actions)

    def __bool__(self) -> bool:
        return bool(self._actions)

    def config_files(self) -> list[ConfigFileAction]:
        """Only the built-in config_file actions, in order."""
        return [a for a in self._actions if isinstance(a, ConfigFileAction)]

    def dumps(self) -> str:
        """Text form, one record per line."""
        return "".join(f"{format_action(a)}\n" for a in self._actions)

    @classmethod
    def loads(cls, text: str) -> DeferredScript:
        """Parse the text form. Blank lines and ``#`` comments are skipped."""
        script = cls()
        for line_number, line in enumerate(text.splitlines(), start=1):
            stripped = line.strip()
            if not stripped or stripped.startswith("#"):
                continue
            script.append(parse_action(stripped, line_number))
        return script

    def save(self, path: Path) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(self.dumps(), encoding="ascii")

    @classmethod
    def load(cls, path: Path) -> DeferredScript:
        try:
            text = path.read_text(encoding="ascii")
        except (OSError, UnicodeDecodeError) as e:
            msg = f"Failed to read action script {path}: {e}"
            raise ScriptError(msg) from e
        return cls.loads(text)
