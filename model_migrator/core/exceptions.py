"""Core exceptions for model migration operations."""

from typing import Any


class ModelMigratorError(Exception):
    """Base exception for model migration operations."""


class ConfigurationError(ModelMigratorError):
    """Configuration validation or loading failed."""


class AuthResolutionError(ModelMigratorError):
    """Key material for a service instance could not be read."""


class ContextSwitchError(ModelMigratorError):
    """Caller is not authorized in the requested domain, or a call targeted the wrong one."""


class NoCapableVersionError(ModelMigratorError):
    """No catalog API version answered successfully."""

    def __init__(self, message: str, report: Any = None):
        super().__init__(message)
        self.report = report


class ApiRequestError(ModelMigratorError):
    """Provider API request failed at the HTTP or transport level."""

    def __init__(self, message: str, status: int | None = None, detail: str | None = None):
        super().__init__(message)
        self.status = status
        self.detail = detail


class VersionIncompatible(ModelMigratorError):
    """Model was created with an API version the destination does not support."""


class AuthorizationConflict(ModelMigratorError):
    """Destination rejected the copy authorization with 409 Conflict."""

    def __init__(self, message: str, detail: str | None = None):
        super().__init__(message)
        self.detail = detail


class TransferRequestError(ModelMigratorError):
    """Copy authorization or initiation failed."""

    def __init__(self, message: str, detail: str | None = None):
        super().__init__(message)
        self.detail = detail


class PollError(ModelMigratorError):
    """Polling the copy operation failed or the provider reported failure."""

    def __init__(self, message: str, detail: str | None = None):
        super().__init__(message)
        self.detail = detail


class PollTimeoutError(PollError):
    """Copy operation did not complete within the configured bound."""


class TransferCancelled(ModelMigratorError):
    """Batch cancellation interrupted the current transfer."""
