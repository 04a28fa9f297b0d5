"""
Error types shared by the service layer.

HTTP-facing errors subclass HTTPException so services can raise them directly;
the rest are plain exceptions handled by the caller.
"""

from fastapi import HTTPException, status
from typing import Optional


class InvalidSignatureError(Exception):
    """Webhook request failed signature or timestamp verification."""


class EventTypeMismatchError(Exception):
    """A webhook handler was given an event of the wrong type (dispatch bug)."""

    def __init__(self, expected: str, actual: str):
        self.expected = expected
        self.actual = actual
        super().__init__(f"Expected {expected} event, got {actual}")


class WorkspaceCreationFailedError(Exception):
    """Default workspace (or its owner membership) could not be written."""


class NotFoundError(HTTPException):
    def __init__(self, resource: str):
        super().__init__(status_code=status.HTTP_404_NOT_FOUND, detail=f"{resource} not found")


class DuplicateRepositoryError(HTTPException):
    def __init__(self, full_name: str):
        self.full_name = full_name
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Repository {full_name} is already connected to this workspace",
        )


class UpstreamUnavailableError(HTTPException):
    def __init__(self, message: str):
        super().__init__(status_code=status.HTTP_502_BAD_GATEWAY, detail=message)


class ReconnectRequiredError(HTTPException):
    """GitHub token is invalid or expired; the UI should prompt re-authorization."""

    def __init__(self, message: Optional[str] = None):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={
                "message": message or "GitHub authorization expired. Please reconnect your GitHub account.",
                "requires_reconnect": True,
            },
        )


def is_unique_violation(error: Exception) -> bool:
    """True if a PostgREST error is a Postgres unique_violation (SQLSTATE 23505)."""
    return getattr(error, "code", None) == "23505"
