"""Error taxonomy shared by the store client, edit model and session."""

from __future__ import annotations


class PortalError(Exception):
    """Base class for all vendorgrid errors."""


class ValidationError(PortalError):
    """Input rejected before any mutation or network call was made."""


class NotFoundError(PortalError):
    """A referenced record does not exist (stale identifier)."""


class NetworkError(PortalError):
    """The remote store could not be reached."""


class AuthError(PortalError):
    """Session missing or expired. Never retried silently."""


class StoreError(PortalError):
    """The remote store answered with an unexpected error status."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class ImportMismatchError(ValidationError):
    """Imported headers do not match the grid's visible columns."""

    def __init__(
        self,
        message: str,
        missing: list[str] | None = None,
        extra: list[str] | None = None,
        duplicates: list[str] | None = None,
    ):
        super().__init__(message)
        self.missing = missing or []
        self.extra = extra or []
        self.duplicates = duplicates or []


class PermissionDeniedError(ValidationError):
    """The current user's role does not allow the edit."""
