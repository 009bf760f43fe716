"""file_mode(path, mode): set octal permission bits on an installed path."""

from __future__ import annotations

import os
import stat
from pathlib import Path

from confkit.exceptions import PluginError
from confkit.plugins.registry import PluginContext, PluginRegistry


def set_file_mode(context: PluginContext, path: str, mode: str) -> int:
    try:
        bits = int(mode, 8)
    except ValueError:
        msg = f"file_mode: not an octal mode: {mode!r}"
        raise PluginError(msg) from None
    if not 0 <= bits <= 0o7777:
        msg = f"file_mode: mode out of range: {mode}"
        raise PluginError(msg)

    target = Path(path).expanduser()
    if context.dry_run:
        context.console.print(f"[dim](dry run) would chmod {mode} {target}[/dim]")
        return bits
    if not target.exists():
        msg = f"file_mode: no such file: {target}"
        raise PluginError(msg, details={"path": str(target)})

    if stat.S_IMODE(target.stat().st_mode) != bits:
        os.chmod(target, bits)
    return bits


def register(registry: PluginRegistry) -> None:
    registry.register("file_mode", set_file_mode)
