"""
Error taxonomy for the book catalog.

Every error the coordinator raises carries the HTTP status it maps to. Errors
in the 5xx range also carry a public message: the detailed message is logged,
the public one is what the caller sees.
"""

from __future__ import annotations

from typing import Optional


class CatalogError(Exception):
    """Base class for errors that translate into a ``{status, message}`` body."""

    status_code: int = 500
    public_message: Optional[str] = None

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def response_message(self) -> str:
        return self.public_message or self.message


class ValidationError(CatalogError):
    """Missing, oversized or malformed input."""

    status_code = 400


class ForbiddenError(CatalogError):
    """The requester does not own the book."""

    status_code = 403


class NotFoundError(CatalogError):
    status_code = 404


class UpstreamStoreError(CatalogError):
    """An object-store call failed."""

    status_code = 500
    public_message = "Error while talking to the asset store."


class AssetIdentifierError(UpstreamStoreError):
    """A stored asset URL could not be turned into a store identifier."""


class PersistenceError(CatalogError):
    """A metadata store call failed."""

    status_code = 500
    public_message = "Error while accessing book records."


class CleanupWarning(UserWarning):
    """Category for temp-file deletion failures; logged, never raised to callers."""
