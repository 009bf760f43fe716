"""symlink(target, link): point ``link`` at ``target``."""

from __future__ import annotations

import os
from pathlib import Path

from confkit.plugins.registry import PluginContext, PluginRegistry


def make_symlink(context: PluginContext, target: str, link: str) -> bool:
    """Create or repoint a symbolic link.

    Anything at ``link`` that is not already this exact link is only replaced
    after confirmation.

    Returns:
        True if the link now points at ``target``
    """
    link_path = Path(link).expanduser()
    if link_path.is_symlink() and os.readlink(link_path) == target:
        return True

    if link_path.is_symlink() or link_path.exists():
        if link_path.is_symlink():
            reason = f"{link_path} points at {os.readlink(link_path)}, not {target}"
        else:
            reason = f"{link_path} exists and is not a symlink"
        if not context.installer.confirm_overwrite(str(link_path), reason):
            return False

    if context.dry_run:
        context.console.print(f"[dim](dry run) would link {link_path} -> {target}[/dim]")
        return False

    link_path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = link_path.with_name(f".{link_path.name}.confkit-link")
    if tmp_path.is_symlink() or tmp_path.exists():
        tmp_path.unlink()
    os.symlink(target, tmp_path)
    os.replace(tmp_path, link_path)
    context.console.print(f"[green]✓[/green] {link_path} -> {target}")
    return True


def register(registry: PluginRegistry) -> None:
    registry.register("symlink", make_symlink)
