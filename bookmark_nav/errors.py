"""Exceptions raised by the bookmark store and its collaborators."""

from __future__ import annotations


class StoreError(Exception):
    """Base class for recoverable store failures.

    A store operation that raises leaves the previous snapshot intact.
    """


class ValidationError(StoreError):
    """Raised when input is malformed (empty title, unknown category...)."""


class NotFoundError(StoreError):
    """Raised when an operation references an id that does not exist."""


class InvalidOperationError(StoreError):
    """Raised when an operation would violate a structural invariant."""


class BackupError(RuntimeError):
    """Raised when a backup bundle cannot be read or a WebDAV call fails."""


class AssistantError(RuntimeError):
    """Raised when all AI assistant invocation attempts fail."""
