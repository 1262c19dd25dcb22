"""Custom exception hierarchy for the run reporter."""
from __future__ import annotations

from typing import Any, Optional


class ReporterError(Exception):
    """Base exception for all run reporter errors."""

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


# Configuration exceptions
class ConfigurationError(ReporterError):
    """Raised when configuration is invalid."""

    pass


class ConfigFileNotFoundError(ConfigurationError):
    """Raised when a required config file is not found."""

    def __init__(self, file_path: str):
        super().__init__(f"Configuration file not found: {file_path}", {"file_path": file_path})
        self.file_path = file_path


# Serialized tree exceptions
class TreeLoadError(ReporterError):
    """Raised when a tree file cannot be loaded or parsed."""

    def __init__(self, message: str, file_path: Optional[str] = None):
        details = {"file_path": file_path} if file_path else {}
        super().__init__(message, details)
        self.file_path = file_path


class TreeValidationError(TreeLoadError):
    """Raised when a serialized tree is structurally invalid."""

    def __init__(self, message: str, node_id: Optional[Any] = None, field: Optional[str] = None):
        super().__init__(message)
        if node_id is not None:
            self.details["node_id"] = node_id
        if field:
            self.details["field"] = field
        self.node_id = node_id
        self.field = field


# Report assembly exceptions
class ReportBuildError(ReporterError):
    """Raised when a report assembly step fails."""

    def __init__(self, message: str, step: Optional[str] = None, path: Optional[str] = None):
        details = {}
        if step:
            details["step"] = step
        if path:
            details["path"] = path
        super().__init__(message, details)
        self.step = step
        self.path = path


class StaticResourceError(ReportBuildError):
    """Raised when the static asset source is missing or cannot be copied."""

    def __init__(self, message: str, source: Optional[str] = None):
        super().__init__(message, step="copy_static_resources", path=source)
        self.source = source


class RenderError(ReportBuildError):
    """Raised when the HTML shell template cannot be rendered."""

    def __init__(self, message: str, template: Optional[str] = None):
        super().__init__(message, step="render")
        if template:
            self.details["template"] = template
        self.template = template


# Control server exceptions
class ControlServerError(ReporterError):
    """Base exception for control server errors."""

    pass


class ServerStateError(ControlServerError):
    """Raised when an operation is not valid in the server's current state."""

    def __init__(self, operation: str, state: str):
        super().__init__(
            f"Cannot {operation} while server is {state}",
            {"operation": operation, "state": state},
        )
        self.operation = operation
        self.state = state


class RunnerFactoryError(ControlServerError):
    """Raised when the configured runner factory cannot be resolved."""

    def __init__(self, message: str, factory_path: Optional[str] = None):
        details = {"factory": factory_path} if factory_path else {}
        super().__init__(message, details)
        self.factory_path = factory_path
