"""Domain errors raised by the queue engine and translated by the routes."""
from __future__ import annotations


class QueueError(Exception):
    """Base class for errors surfaced to API callers."""

    code = "queue_error"
    status_code = 500

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.code)
        self.message = message or self.code

    def to_dict(self) -> dict[str, str]:
        return {"error": self.code, "message": self.message}


class DuplicateEntry(QueueError):
    """The user already has a waiting entry at this salon."""

    code = "duplicate_entry"
    status_code = 409


class NotFound(QueueError):
    code = "not_found"
    status_code = 404


class InvalidInput(QueueError):
    code = "invalid_input"
    status_code = 400


class InvalidTransition(InvalidInput):
    code = "invalid_transition"


class StoreUnavailable(QueueError):
    """The database could not be reached; callers may retry with backoff."""

    code = "store_unavailable"
    status_code = 503
