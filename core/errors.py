"""Exceptions shared by the offline queue and the sync engine."""
from __future__ import annotations


class StorageError(RuntimeError):
    """The local queue database could not be opened or a transaction failed."""


class NotFoundError(LookupError):
    """A queue entry targeted by a status update no longer exists."""

    def __init__(self, entry_id: int):
        super().__init__(f"Queue entry {entry_id} not found")
        self.entry_id = entry_id


class RemoteWriteError(RuntimeError):
    """Persisting a record, a sub-document or a derived update remotely failed."""

    def __init__(self, message: str, *, status: int | None = None):
        super().__init__(message)
        self.status = status


class AuthenticationMissing(RuntimeError):
    """No authenticated session is available when a sync pass starts."""


__all__ = ["StorageError", "NotFoundError", "RemoteWriteError", "AuthenticationMissing"]
