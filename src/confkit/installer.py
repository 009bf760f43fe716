"""Conflict-aware installation of generated files.

Every file confkit writes is also written to a mirrored path under the backup
root. On the next run the backup tells whether the destination still holds
what confkit last wrote; if it does not, somebody edited it out-of-band and
the user is asked before it gets overwritten.
"""

from __future__ import annotations

import difflib
import logging
import os
import stat
import sys
import tempfile
from collections.abc import Callable
from pathlib import Path

import typer
from rich.console import Console
from rich.syntax import Syntax

from .exceptions import InstallError
from .models import InstallOutcome

logger = logging.getLogger(__name__)

ConfirmFn = Callable[[str], bool]


def backup_path_for(backup_root: Path, destination: Path) -> Path:
    """Mirror an absolute destination path under the backup root."""
    destination = Path(os.path.abspath(Path(destination).expanduser()))
    return Path(backup_root) / destination.relative_to(destination.anchor)


def context_diff(old: bytes, new: bytes, old_label: str, new_label: str) -> str:
    """Context diff of two byte strings, decoded leniently for display."""
    old_lines = old.decode("utf-8", errors="replace").splitlines(keepends=True)
    new_lines = new.decode("utf-8", errors="replace").splitlines(keepends=True)
    lines = []
    for line in difflib.context_diff(old_lines, new_lines, old_label, new_label):
        lines.append(line if line.endswith("\n") else line + "\n")
    return "".join(lines)


def write_atomic(path: Path, data: bytes, mode: int | None = None) -> None:
    """Write bytes through a temp file in the same directory and rename it.

    Args:
        path: Destination file path
        data: Content to write
        mode: Permission bits to apply, or None for the umask default
    """
    path.parent.mkdir(parents=True, exist_ok=True)

    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", dir=str(path.parent))
    try:
        with os.fdopen(fd, "wb") as tmp:
            tmp.write(data)
            tmp.flush()
            os.fsync(tmp.fileno())
        if mode is not None:
            os.chmod(tmp_name, mode)
        os.replace(tmp_name, path)
    finally:
        if os.path.exists(tmp_name):
            os.remove(tmp_name)


def _interactive_confirm(prompt: str) -> bool:
    if not sys.stdin.isatty():
        logger.warning("No terminal to confirm on, declining: %s", prompt)
        return False
    try:
        return typer.confirm(prompt, default=False)
    except typer.Abort:
        return False


class Installer:
    """Installs generated files while protecting hand-edited destinations."""

    def __init__(
        self,
        backup_root: Path,
        force: bool = False,
        dry_run: bool = False,
        console: Console | None = None,
        confirm: ConfirmFn | None = None,
    ) -> None:
        """Initialize installer.

        Args:
            backup_root: Root of the mirrored backup tree
            force: Overwrite without comparing or asking
            dry_run: Report decisions without writing or prompting
            console: Console for diffs and prompts
            confirm: Yes/no callback, defaults to a terminal prompt
        """
        self.backup_root = Path(backup_root)
        self.force = force
        self.dry_run = dry_run
        self.console = console or Console()
        self._confirm = confirm or _interactive_confirm

    def backup_path(self, destination: Path) -> Path:
        return backup_path_for(self.backup_root, destination)

    def install(
        self,
        generated_path: Path,
        destination: Path,
        name: str | None = None,
    ) -> InstallOutcome:
        """Install ``generated_path`` to ``destination``.

        Args:
            generated_path: Freshly generated content
            destination: Where the content belongs
            name: Display name for messages

        Returns:
            INSTALLED or UNCHANGED on success, DECLINED when the user said no

        Raises:
            InstallError: If reading or writing fails
        """
        destination = Path(os.path.abspath(Path(destination).expanduser()))
        label = name or str(destination)
        backup = self.backup_path(destination)

        try:
            generated = Path(generated_path).read_bytes()
            return self._install(generated, destination, backup, label)
        except OSError as e:
            msg = f"Failed to install {label}: {e}"
            raise InstallError(
                msg,
                details={"destination": str(destination), "backup": str(backup)},
            ) from e

    def _install(
        self,
        generated: bytes,
        destination: Path,
        backup: Path,
        label: str,
    ) -> InstallOutcome:
        if destination.is_dir():
            msg = f"Destination is a directory: {destination}"
            raise InstallError(msg, details={"destination": str(destination)})

        if self.force:
            logger.debug("Force mode, overwriting %s", destination)
        elif not destination.exists():
            logger.debug("First install of %s", destination)
        elif backup.is_file():
            current = destination.read_bytes()
            if backup.read_bytes() != current:
                logger.info("%s was modified since the last install", destination)
                diff = context_diff(
                    backup.read_bytes(), current, str(backup), str(destination),
                )
                if not self.confirm_overwrite(
                    label, f"{label} was edited since confkit last wrote it", diff,
                ):
                    return InstallOutcome.DECLINED
        else:
            current = destination.read_bytes()
            if current != generated:
                logger.info("%s exists but was not installed by confkit", destination)
                diff = context_diff(
                    current, generated, str(destination), f"{label} (generated)",
                )
                if not self.confirm_overwrite(
                    label, f"{label} exists and was not created by confkit", diff,
                ):
                    return InstallOutcome.DECLINED

        return self._write(generated, destination, backup, label)

    def confirm_overwrite(self, label: str, reason: str, diff: str = "") -> bool:
        """Show why ``label`` is at risk and ask before replacing it.

        Force mode answers yes without asking; dry-run mode answers no.
        """
        if self.force:
            return True
        self.console.print(f"[yellow]Warning:[/yellow] {reason}")
        if diff:
            self.console.print(Syntax(diff, "diff", theme="ansi_dark", word_wrap=True))
        if self.dry_run:
            self.console.print(f"[dim](dry run) would ask before overwriting {label}[/dim]")
            return False
        if self._confirm(f"Overwrite {label}?"):
            return True
        logger.info("Declined overwrite of %s", label)
        self.console.print(f"[yellow]Skipped[/yellow] {label}")
        return False

    def _write(
        self,
        generated: bytes,
        destination: Path,
        backup: Path,
        label: str,
    ) -> InstallOutcome:
        target = destination.resolve() if destination.is_symlink() else destination
        unchanged = target.is_file() and target.read_bytes() == generated
        backup_current = backup.is_file() and backup.read_bytes() == generated

        if self.dry_run:
            verb = "keep" if unchanged else "install"
            self.console.print(f"[dim](dry run) would {verb} {label} -> {destination}[/dim]")
            return InstallOutcome.UNCHANGED if unchanged else InstallOutcome.INSTALLED

        if not unchanged:
            mode = stat.S_IMODE(target.stat().st_mode) if target.exists() else None
            write_atomic(target, generated, mode)
        if not backup_current:
            write_atomic(backup, generated)

        if unchanged:
            logger.debug("%s already up to date", destination)
            return InstallOutcome.UNCHANGED
        logger.info("Installed %s -> %s", label, destination)
        return InstallOutcome.INSTALLED
