"""Template discovery under the config root."""

from __future__ import annotations

import fnmatch
from collections.abc import Iterable
from pathlib import Path

from .models import SETTINGS_FILE_NAME


def is_include_only(name: str, include_patterns: Iterable[str]) -> bool:
    """Whether a file name marks a template meant only for include/import."""
    return any(fnmatch.fnmatchcase(name, pattern) for pattern in include_patterns)


def discover_templates(
    config_root: Path,
    include_patterns: Iterable[str] = ("_*", "*.inc"),
    exclude: Iterable[Path] = (),
) -> list[Path]:
    """List top-level templates in a stable order.

    Args:
        config_root: Directory holding the templates
        include_patterns: Name patterns of include-only templates
        exclude: Directories whose contents are never templates

    Returns:
        Template paths sorted by their path relative to the root
    """
    root = Path(config_root)
    if not root.is_dir():
        return []

    include_patterns = list(include_patterns)
    excluded = [Path(p).resolve() for p in exclude]

    templates = []
    for path in root.rglob("*"):
        relative = path.relative_to(root)
        if any(part.startswith(".") for part in relative.parts):
            continue
        if not path.is_file() or path.name == SETTINGS_FILE_NAME:
            continue
        if is_include_only(path.name, include_patterns):
            continue
        resolved = path.resolve()
        if any(resolved.is_relative_to(d) for d in excluded):
            continue
        templates.append(path)

    return sorted(templates, key=lambda p: p.relative_to(root).as_posix())
