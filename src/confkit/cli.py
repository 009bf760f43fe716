"""confkit command-line interface."""

from __future__ import annotations

import logging
import sys
from importlib.metadata import PackageNotFoundError
from importlib.metadata import version as get_version
from pathlib import Path

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from . import __version__
from .context import RunContext
from .exceptions import ConfkitError
from .models import InstallOutcome, RunReport
from .pipeline import Pipeline
from .script import DeferredScript
from .settings import SettingsLoader, default_config_root

app = typer.Typer(
    name="confkit",
    help="confkit: install configuration files from templates without clobbering local edits",
    add_completion=False,
)
console = Console()


def _get_version_string() -> str:
    try:
        return get_version("confkit")
    except PackageNotFoundError:
        return f"{__version__} (development)"


def version_callback(value: bool) -> None:
    """Callback for --version flag."""
    if value:
        console.print(f"confkit version {_get_version_string()}")
        raise typer.Exit


def configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


@app.callback()
def main_callback(
    version: bool = typer.Option(
        False,
        "--version",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable debug logging",
    ),
) -> None:
    """confkit: install configuration files from templates."""
    configure_logging(verbose)


def parse_define(value: str) -> tuple[str, str]:
    """Split a KEY=VALUE definition."""
    key, sep, val = value.partition("=")
    key = key.strip()
    if not sep or not key:
        msg = f"Expected KEY=VALUE, got {value!r}"
        raise typer.BadParameter(msg)
    return key, val


def build_context(
    config_root: Path | None,
    backup_root: Path | None = None,
    define: list[str] | None = None,
    plugin_dir: list[Path] | None = None,
    force: bool = False,
    dry_run: bool = False,
) -> RunContext:
    """Load settings for ``config_root`` and apply command-line overrides."""
    root = config_root or default_config_root()
    if not root.is_dir():
        msg = f"Config root not found: {root}"
        raise ConfkitError(msg)

    settings = SettingsLoader(root).load(
        backup_root=backup_root.expanduser() if backup_root else None,
        variables=dict(parse_define(d) for d in define or []),
        force=force,
        dry_run=dry_run,
    )
    if plugin_dir:
        settings = settings.model_copy(
            update={"plugin_dirs": settings.plugin_dirs + [p.expanduser() for p in plugin_dir]},
        )
    return RunContext.create(settings, console=console)


_config_root_option = typer.Option(
    None,
    "--config-root",
    "-C",
    help="Template directory (defaults to $CONFKIT_ROOT or ~/.config/confkit/templates)",
)
_backup_root_option = typer.Option(
    None,
    "--backup-root",
    help="Backup mirror root (overrides confkit.yaml)",
)
_define_option = typer.Option(
    [],
    "--define",
    "-D",
    help="Template variable KEY=VALUE (can be repeated)",
)
_plugin_dir_option = typer.Option(
    [],
    "--plugin-dir",
    help="Extra plugin directory (can be repeated)",
)


@app.command()
def apply(
    config_root: Path | None = _config_root_option,
    backup_root: Path | None = _backup_root_option,
    define: list[str] = _define_option,
    plugin_dir: list[Path] = _plugin_dir_option,
    force: bool = typer.Option(
        False,
        "--force",
        "-f",
        help="Overwrite destinations without comparing or asking",
    ),
    dry_run: bool = typer.Option(
        False,
        help="Show what would be installed without writing files",
    ),
    from_script: Path | None = typer.Option(
        None,
        "--from-script",
        help="Replay a script saved by `confkit plan --output` instead of expanding templates",
        exists=True,
        dir_okay=False,
    ),
) -> None:
    """Expand every template and install the resulting files.

    Destinations edited since confkit last wrote them, and existing files
    confkit never wrote, are only overwritten after confirmation.
    """
    try:
        context = build_context(config_root, backup_root, define, plugin_dir, force, dry_run)
        script = DeferredScript.load(from_script) if from_script else None
        report = Pipeline(context).apply(script)
    except ConfkitError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from e

    _print_summary(report, dry_run)
    raise typer.Exit(report.exit_code)


@app.command()
def plan(
    config_root: Path | None = _config_root_option,
    define: list[str] = _define_option,
    plugin_dir: list[Path] = _plugin_dir_option,
    output: Path | None = typer.Option(
        None,
        "--output",
        "-o",
        help="Write the action script to this file instead of printing it",
    ),
) -> None:
    """Expand every template and show the deferred actions without running them."""
    try:
        context = build_context(config_root, define=define, plugin_dir=plugin_dir)
        pipeline = Pipeline(context)
        script = pipeline.plan()
        if output is not None:
            script.save(output)
            console.print(f"[green]✓[/green] {len(script)} action(s) written to {output}")
        else:
            sys.stdout.write(script.dumps())
    except ConfkitError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from e

    raise typer.Exit(pipeline.report.exit_code)


@app.command()
def locate(
    destination: Path = typer.Argument(..., help="Installed file to trace back"),
    config_root: Path | None = _config_root_option,
    define: list[str] = _define_option,
    plugin_dir: list[Path] = _plugin_dir_option,
) -> None:
    """Print the template that produces an installed file."""
    try:
        context = build_context(config_root, define=define, plugin_dir=plugin_dir)
        template = Pipeline(context).locate(destination)
    except ConfkitError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from e

    sys.stdout.write(f"{template}\n")


@app.command()
def edit(
    destination: Path = typer.Argument(..., help="Installed file whose template to edit"),
    config_root: Path | None = _config_root_option,
    define: list[str] = _define_option,
    plugin_dir: list[Path] = _plugin_dir_option,
) -> None:
    """Open the template behind an installed file in $VISUAL or $EDITOR.

    Nothing is installed; the exit code is the editor's.
    """
    try:
        context = build_context(config_root, define=define, plugin_dir=plugin_dir)
        code = Pipeline(context).edit(destination)
    except ConfkitError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from e

    raise typer.Exit(code)


@app.command()
def version() -> None:
    """Show version information."""
    console.print(f"confkit version {_get_version_string()}")


def _print_summary(report: RunReport, dry_run: bool) -> None:
    table = Table(title="confkit (dry run)" if dry_run else "confkit")
    table.add_column("Result", style="cyan")
    table.add_column("Count", style="green", justify="right")

    table.add_row("Templates expanded", str(len(report.templates)))
    table.add_row("Actions run", str(report.actions_run))
    table.add_row("Installed", str(report.count(InstallOutcome.INSTALLED)))
    table.add_row("Unchanged", str(report.count(InstallOutcome.UNCHANGED)))
    table.add_row("Declined", str(report.count(InstallOutcome.DECLINED)))
    if report.failed_templates:
        table.add_row("[red]Failed templates[/red]", str(len(report.failed_templates)))
    if report.failed_actions:
        table.add_row("[red]Failed actions[/red]", str(len(report.failed_actions)))
    console.print(table)


def main() -> None:
    """Entry point for the CLI."""
    try:
        app()
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted[/yellow]")
        sys.exit(130)


if __name__ == "__main__":
    main()
