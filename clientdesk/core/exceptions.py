"""
Custom exceptions for ClientDesk.

Provides the error taxonomy shared by the document store, the record mapper
and the entity services.
"""

from typing import Any, Dict, Optional


class ClientDeskError(Exception):
    """Base exception for all ClientDesk errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ConfigurationError(ClientDeskError):
    """Raised when there are configuration issues."""
    pass


class DataAccessError(ClientDeskError):
    """Base class for document store and mapping errors."""
    pass


class InvalidArgumentError(DataAccessError):
    """Missing or malformed caller input, e.g. an empty owner id."""
    pass


class MalformedRecordError(DataAccessError):
    """The store returned a document that does not fit the record schema."""

    def __init__(self, message: str, document_id: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.document_id = document_id


class PermissionDeniedError(DataAccessError):
    """The store (or an ownership check) rejected the operation."""

    def __init__(self, message: str, status_code: Optional[int] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.status_code = status_code


class UnavailableError(DataAccessError):
    """Transport or network failure talking to the store."""

    def __init__(self, message: str, status_code: Optional[int] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.status_code = status_code


class NotFoundError(DataAccessError):
    """A document required by the operation does not exist."""
    pass
