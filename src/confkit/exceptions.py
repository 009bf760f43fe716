"""Custom exceptions for confkit."""

from typing import Any


class ConfkitError(Exception):
    """Base exception for all confkit errors."""

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.details = details or {}


class SettingsError(ConfkitError):
    """Raised when confkit.yaml cannot be loaded or is invalid."""


class ExpansionError(ConfkitError):
    """Raised when the macro engine fails to expand a template."""

    def __init__(
        self,
        message: str,
        template_path: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, details)
        self.template_path = template_path


class ScriptError(ConfkitError):
    """Raised when a deferred action cannot be recorded or parsed."""


class PluginError(ConfkitError):
    """Raised when plugin registration, loading or dispatch fails."""


class InstallError(ConfkitError):
    """Raised when a generated file cannot be installed."""


class LocateError(ConfkitError):
    """Raised when no config_file action produced the requested destination."""
