"""Domain errors raised by services and rendered by the API error handler.

Every error carries a stable `code` (persisted by clients / logs) and the HTTP
status it maps to. Routes never translate these by hand: `app.main` registers a
single handler that renders the structured error format.
"""

from typing import Any


class StoreDirectoryError(Exception):
    """Base class for expected, user-facing failures."""

    code = "ERROR"
    status_code = 400

    def __init__(self, message: str, detail: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.detail = detail


class UnsupportedMediaType(StoreDirectoryError):
    """Upload is not an image (or cannot be decoded as one)."""

    code = "UNSUPPORTED_MEDIA_TYPE"
    status_code = 415


class StorageWriteError(StoreDirectoryError):
    """Photo could not be written to durable storage; safe to retry."""

    code = "STORAGE_WRITE_FAILED"
    status_code = 503


class OwnershipError(StoreDirectoryError):
    code = "NOT_OWNER"
    status_code = 403


class NotFound(StoreDirectoryError):
    code = "NOT_FOUND"
    status_code = 404


class InvalidCoordinates(StoreDirectoryError):
    code = "INVALID_COORDINATES"
    status_code = 400


class ValidationError(StoreDirectoryError):
    """Schema-level field violations, reported per field."""

    code = "VALIDATION_ERROR"
    status_code = 422

    def __init__(self, fields: dict[str, str], message: str = "Invalid store data") -> None:
        super().__init__(message, detail={"fields": fields})
        self.fields = fields


class NotAuthenticated(StoreDirectoryError):
    """No requester identity on a request that needs one."""

    code = "NOT_AUTHENTICATED"
    status_code = 401


class SlugTaken(ValidationError):
    """Another store took the slug between choosing it and writing it."""

    def __init__(self, slug: str) -> None:
        super().__init__({"slug": f"Slug '{slug}' is already in use"})
        self.slug = slug
