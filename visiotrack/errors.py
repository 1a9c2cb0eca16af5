"""Error taxonomy shared by the store, services and HTTP layer."""
from __future__ import annotations

import uuid


class AttendanceError(Exception):
    """Base exception; ``status_code`` is the HTTP status the API answers with."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(AttendanceError):
    """Malformed or out-of-enum input, reported per field."""

    status_code = 400

    def __init__(self, errors: list[dict[str, str]], message: str = "Validation failed"):
        super().__init__(message)
        self.errors = errors

    @classmethod
    def for_field(cls, field: str, message: str) -> "ValidationError":
        return cls([{"field": field, "message": message}])


class AuthorizationError(AttendanceError):
    """Authenticated but not allowed to perform the action."""

    status_code = 403


class NotFoundError(AttendanceError):
    status_code = 404


class ConflictError(AttendanceError):
    """A state transition lost a race or targets a terminal state."""

    status_code = 409


class StorageError(AttendanceError):
    """Underlying store failure. The message is safe to show to clients."""

    status_code = 500

    def __init__(self, message: str = "A storage error occurred", correlation_id: str | None = None):
        super().__init__(message)
        self.correlation_id = correlation_id or uuid.uuid4().hex


# Location parts FastAPI prepends that mean nothing to API clients
_LOC_SOURCES = {"body", "query", "path"}


def field_errors(errors, prefix: str = "") -> list[dict[str, str]]:
    """Flatten pydantic error dicts into ``{"field", "message"}`` pairs."""
    out = []
    for err in errors:
        parts = [str(p) for p in err.get("loc", ()) if p not in _LOC_SOURCES]
        if prefix:
            parts.insert(0, prefix)
        message = err.get("msg", "Invalid value")
        if message.startswith("Value error, "):
            message = message[len("Value error, "):]
        out.append({"field": ".".join(parts) or "body", "message": message})
    return out
