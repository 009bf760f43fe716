"""Settings loader with schema validation."""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any

import jsonschema
import yaml
from pydantic import ValidationError

from .exceptions import SettingsError
from .models import SETTINGS_FILE_NAME, Settings

SCHEMA_PATH = Path(__file__).parent / "schemas" / "settings.schema.json"
ROOT_ENV_VAR = "CONFKIT_ROOT"

_PATH_KEYS = ("backup_root", "local_prelude")
_PATH_LIST_KEYS = ("search_path", "preludes", "plugin_dirs")


def default_config_root() -> Path:
    """``$CONFKIT_ROOT`` or ``~/.config/confkit/templates``."""
    env_root = os.environ.get(ROOT_ENV_VAR)
    if env_root:
        return Path(env_root).expanduser()
    return Path.home() / ".config" / "confkit" / "templates"


class SettingsLoader:
    """Loads and validates confkit.yaml from a config root."""

    def __init__(self, config_root: Path) -> None:
        """Initialize loader with the config root.

        Args:
            config_root: Directory holding the templates and confkit.yaml
        """
        self.root = Path(config_root).expanduser()
        self._schema: dict[str, Any] | None = None

    @property
    def settings_path(self) -> Path:
        return self.root / SETTINGS_FILE_NAME

    def _load_schema(self) -> dict[str, Any]:
        """Load and cache the bundled JSON schema."""
        if self._schema is None:
            try:
                with SCHEMA_PATH.open(encoding="utf-8") as f:
                    self._schema = json.load(f)
            except (json.JSONDecodeError, OSError) as e:
                msg = f"Failed to load settings schema: {e}"
                raise SettingsError(msg) from e
        return self._schema

    def _resolve(self, value: str | None) -> Path | None:
        if value is None:
            return None
        path = Path(value).expanduser()
        return path if path.is_absolute() else self.root / path

    def load(self, validate: bool = True, **overrides: Any) -> Settings:
        """Load settings, applying command-line overrides last.

        Args:
            validate: Whether to perform schema validation
            **overrides: Settings fields that win over the file; None is ignored

        Returns:
            Validated settings

        Raises:
            SettingsError: If the file cannot be parsed or is invalid
        """
        data = self._read()

        if validate:
            try:
                jsonschema.validate(data, self._load_schema())
            except jsonschema.ValidationError as e:
                msg = f"Invalid {SETTINGS_FILE_NAME}: {e.message}"
                raise SettingsError(
                    msg,
                    details={"path": list(e.absolute_path), "file": str(self.settings_path)},
                ) from e

        for key in _PATH_KEYS:
            if key in data:
                data[key] = self._resolve(data[key])
        for key in _PATH_LIST_KEYS:
            if key in data:
                data[key] = [self._resolve(v) for v in data[key]]

        variables = dict(data.get("variables") or {})
        variables.update(overrides.pop("variables", None) or {})
        data["variables"] = variables
        data.update({k: v for k, v in overrides.items() if v is not None})
        data["config_root"] = self.root

        try:
            return Settings.model_validate(data)
        except ValidationError as e:
            msg = f"Settings validation failed: {e}"
            raise SettingsError(msg) from e

    def _read(self) -> dict[str, Any]:
        if not self.settings_path.exists():
            return {}

        try:
            with self.settings_path.open(encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            msg = f"Failed to parse {SETTINGS_FILE_NAME}: {e}"
            raise SettingsError(msg) from e
        except OSError as e:
            msg = f"Failed to read {SETTINGS_FILE_NAME}: {e}"
            raise SettingsError(msg) from e

        if data is None:
            return {}
        if not isinstance(data, dict):
            msg = f"{SETTINGS_FILE_NAME} must contain a mapping"
            raise SettingsError(msg, details={"file": str(self.settings_path)})
        return data
