"""Error taxonomy shared by the engine, the resolvers and the adapters.

Every failure carries a machine-readable ``ErrorCode`` so the presentation
layer can branch on it without parsing messages.
"""

from __future__ import annotations

from enum import Enum


class ErrorCode(Enum):
    UNAUTHENTICATED = "unauthenticated"
    PERMISSION_DENIED = "permission-denied"
    NOT_FOUND = "not-found"
    ALREADY_EXISTS = "already-exists"
    EXPIRED = "expired"
    INVALID_ARGUMENT = "invalid-argument"
    UNAVAILABLE = "unavailable"
    UNKNOWN = "unknown"


class CollabError(Exception):
    """Base class for every failure raised by collab_todo."""

    default_code = ErrorCode.UNKNOWN

    def __init__(self, message: str, code: ErrorCode | None = None) -> None:
        self.code = code or self.default_code
        self.message = message
        super().__init__(message)


class UnauthenticatedError(CollabError):
    """An operation was attempted with no signed-in identity."""

    default_code = ErrorCode.UNAUTHENTICATED


class PermissionDeniedError(CollabError):
    default_code = ErrorCode.PERMISSION_DENIED


class NotFoundError(CollabError):
    default_code = ErrorCode.NOT_FOUND


class AlreadyExistsError(CollabError):
    default_code = ErrorCode.ALREADY_EXISTS


class InvalidArgumentError(CollabError, ValueError):
    """A value was rejected at the write boundary (bad role, status, email...)."""

    default_code = ErrorCode.INVALID_ARGUMENT


class StoreError(CollabError):
    """Raised by document store adapters. The code mirrors the remote failure."""
