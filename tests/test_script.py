"""Tests for the deferred action script and its text form."""

import tempfile
from pathlib import Path

import pytest

from confkit.engine import MacroEngine
from confkit.exceptions import ScriptError
from confkit.models import ConfigFileAction, PluginAction
from confkit.plugins.registry import PluginRegistry
from confkit.script import DeferredScript, format_action, parse_action, parse_args

ADVERSARIAL_ARGS = [
    "plain",
    "",
    'say "hello"',
    "it's",
    "f(x, y)",
    "a,b,,c",
    ")(",
    '"), evil("',
    "line one\nline two\n",
    "\r\n\t",
    "back\\slash \\n not a newline",
    "{{ jinja }} {% raw %}",
    "# not a comment",
    "unicode: café   \U0001f600",
    "bytes: \udcff\udc80",
    "\x00\x1b[31m",
]


class TestRoundTrip:
    """Test that arguments survive the text form exactly."""

    @pytest.mark.parametrize("arg", ADVERSARIAL_ARGS)
    def test_plugin_argument_round_trip(self, arg: str) -> None:
        """Test a plugin argument is restored exactly after dumps/loads."""
        script = DeferredScript([PluginAction(handler="notify", args=[arg, "tail"])])

        restored = list(DeferredScript.loads(script.dumps()))

        assert len(restored) == 1
        assert restored[0].args == (arg, "tail")

    def test_config_file_round_trip(self) -> None:
        """Test every config_file field is restored."""
        action = ConfigFileAction(
            id='main"(1)',
            name="a, b\nc",
            destination="/tmp/with space/a.conf",
            template="/srv/tmpl/it's.tmpl",
        )

        restored = list(DeferredScript.loads(DeferredScript([action]).dumps()))

        assert restored == [
            ConfigFileAction(
                id=action.id,
                name=action.name,
                destination=action.destination,
                template=action.template,
            ),
        ]

    def test_one_record_per_line(self) -> None:
        """Test embedded newlines never split a record."""
        script = DeferredScript([
            PluginAction(handler="a", args=["x\ny\nz"]),
            PluginAction(handler="b", args=[]),
        ])

        text = script.dumps()

        assert text.count("\n") == 2
        assert text.isascii()

    def test_order_preserved(self) -> None:
        """Test records come back in the order they were written."""
        actions = [PluginAction(handler=f"h{i}", args=[str(i)]) for i in range(10)]

        restored = DeferredScript.loads(DeferredScript(actions).dumps())

        assert [a.handler for a in restored] == [f"h{i}" for i in range(10)]

    def test_save_and_load(self) -> None:
        """Test the script survives a trip through a file."""
        script = DeferredScript([
            ConfigFileAction(id="main", name="a", destination="/x", template="/t"),
            PluginAction(handler="symlink", args=["/x", "/y"]),
        ])
        with tempfile.TemporaryDirectory() as temp_dir:
            path = Path(temp_dir) / "nested" / "actions.script"
            script.save(path)
            loaded = DeferredScript.load(path)

        assert loaded.dumps() == script.dumps()

    @pytest.mark.parametrize("arg", ADVERSARIAL_ARGS)
    def test_verb_argument_round_trip(self, arg: str) -> None:
        """Test an argument passed to a template verb survives the text form."""
        registry = PluginRegistry()
        registry.register("notify", lambda context, *args: None)
        script = DeferredScript()
        with tempfile.TemporaryDirectory() as temp_dir:
            template = Path(temp_dir) / "a.tmpl"
            template.write_text('{{ notify(arg, "tail") }}', encoding="utf-8")
            MacroEngine(registry).expand(template, script, variables={"arg": arg})

        restored = list(DeferredScript.loads(script.dumps()))

        assert restored == [PluginAction(handler="notify", args=(arg, "tail"))]


class TestParsing:
    """Test parsing of hand-written and malformed records."""

    def test_format_action(self) -> None:
        """Test the record layout."""
        action = PluginAction(handler="file_mode", args=["/etc/a", "600"])
        assert format_action(action) == 'file_mode("/etc/a", "600")'

    def test_parse_no_arguments(self) -> None:
        """Test an action without arguments."""
        action = parse_action("reload()")
        assert action == PluginAction(handler="reload", args=[])

    def test_parse_tolerates_spacing(self) -> None:
        """Test whitespace between arguments is ignored."""
        assert parse_args(' "a" ,"b",   "c" ') == ["a", "b", "c"]

    def test_comments_and_blank_lines_skipped(self) -> None:
        """Test comments and blank lines are not actions."""
        text = '# plan\n\nreload()\n   \n# end\n'
        assert len(DeferredScript.loads(text)) == 1

    @pytest.mark.parametrize(
        "line",
        [
            "not a record",
            'reload("unterminated)',
            'reload("a" "b")',
            "reload(42)",
            'reload("a",)',
            'config_file("only", "three", "args")',
            '9bad("x")',
        ],
    )
    def test_malformed_records_rejected(self, line: str) -> None:
        """Test malformed records raise ScriptError."""
        with pytest.raises(ScriptError):
            DeferredScript.loads(line)

    def test_error_reports_line_number(self) -> None:
        """Test the failing line number is reported."""
        with pytest.raises(ScriptError, match="Line 3") as exc_info:
            DeferredScript.loads('reload()\nreload()\nbroken(\n')
        assert exc_info.value.details["line"] == 3

    def test_load_missing_file(self) -> None:
        """Test loading a missing file raises ScriptError."""
        with pytest.raises(ScriptError, match="Failed to read"):
            DeferredScript.load(Path("/nonexistent/actions.script"))


class TestDeferredScript:
    """Test the in-memory script."""

    def test_config_files_filter(self) -> None:
        """Test only config_file actions are returned."""
        config = ConfigFileAction(id="main", name="a", destination="/x", template="/t")
        script = DeferredScript([PluginAction(handler="h", args=[]), config])

        assert script.config_files() == [config]

    def test_iteration_is_a_snapshot(self) -> None:
        """Test appending while iterating does not affect the iteration."""
        script = DeferredScript([PluginAction(handler="h", args=[])])
        seen = []
        for action in script:
            seen.append(action)
            script.append(PluginAction(handler="h", args=[]))

        assert len(seen) == 1
        assert len(script) == 2
