"""Exception hierarchy for database, entry and storage failures.

Callers that only care whether an operation failed can catch
``DatabaseError``; the subclasses also derive from the matching builtin
(``ValueError``, ``LookupError``) so generic handlers keep working.
"""

from __future__ import annotations

__all__ = [
    "DatabaseError",
    "InvalidArgument",
    "NotFound",
    "AlreadyExists",
    "IOFailure",
]


class DatabaseError(RuntimeError):
    """Base exception for every folderdb failure."""


class InvalidArgument(DatabaseError, ValueError):
    """Raised when a name is blank or unusable as a folder name."""


class NotFound(DatabaseError, LookupError):
    """Raised when an entry, file or path does not exist."""


class AlreadyExists(DatabaseError):
    """Raised on a name collision, in memory or on disk."""


class IOFailure(DatabaseError):
    """Raised when a filesystem operation fails for reasons other than existence."""

    def __init__(self, message: str, *, cause: OSError | None = None) -> None:
        super().__init__(message)
        self.cause = cause
