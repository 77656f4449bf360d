"""Exceptions raised by Presence Hub."""

from __future__ import annotations


class PresenceHubError(RuntimeError):
    """Base error for the hub."""

    def __init__(self, message: str, *, cause: Exception | None = None) -> None:
        super().__init__(message)
        if cause is not None:
            self.__cause__ = cause


class DuplicateMessageError(PresenceHubError):
    """Raised when a message id is already present in the store."""


class StorageError(PresenceHubError):
    """Raised by storage backends when a read or write fails."""


class InvalidFrameError(PresenceHubError):
    """Raised when an inbound socket frame does not match its schema."""
