"""Error kinds shared by the storage and service layers.

Each kind is its own exception class, so callers check the kind with
``isinstance`` or ``except`` and never by matching message text. Every layer
adds one ``"<action>: <cause>"`` prefix via :meth:`EventError.wrap` and raises
the result ``from`` the original, keeping the whole chain on ``__cause__``.
"""

from __future__ import annotations

import enum


class ErrorKind(str, enum.Enum):
    INVALID_INPUT = "invalid_input"
    NOT_FOUND = "not_found"
    INFRASTRUCTURE = "infrastructure"


class EventError(Exception):
    """Base error for event storage and validation failures."""

    kind: ErrorKind = ErrorKind.INFRASTRUCTURE

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def wrap(self, action: str) -> "EventError":
        """Return a copy of this error, same class, with ``action`` prepended."""

        return type(self)(f"{action}: {self.message}")

    def __str__(self) -> str:
        return self.message


class InvalidInputError(EventError):
    """Raised when caller-supplied data breaks a precondition."""

    kind = ErrorKind.INVALID_INPUT


class NotFoundError(EventError):
    """Raised when a lookup by identifier matches no row."""

    kind = ErrorKind.NOT_FOUND


class StorageError(EventError):
    """Raised for any other database failure."""

    kind = ErrorKind.INFRASTRUCTURE


__all__ = [
    "ErrorKind",
    "EventError",
    "InvalidInputError",
    "NotFoundError",
    "StorageError",
]
