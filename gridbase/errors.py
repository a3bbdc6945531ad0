"""
Error Types Module
Exception taxonomy shared by the ingestion engine, the query compiler and the API layer.
"""

from typing import Optional


class GridbaseError(Exception):
    """Base exception for all gridbase errors."""

    status_code = 500

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        super().__init__(self.message)


class ValidationError(GridbaseError):
    """Malformed filter, sort or request input."""

    status_code = 400


class AuthorizationError(GridbaseError):
    """Actor does not own the target table."""

    status_code = 403


class NotFoundError(GridbaseError):
    """Job, base, table, column, row or view could not be resolved."""

    status_code = 404


class JobStateError(GridbaseError):
    """Requested ingestion job transition is not allowed from its current status."""

    status_code = 409


class EncodingFailure(GridbaseError):
    """A row value could not be serialized; the whole batch is rejected."""

    status_code = 422

    def __init__(self, message: str, batch_index: Optional[int] = None, row_index: Optional[int] = None):
        self.batch_index = batch_index
        self.row_index = row_index
        super().__init__(message)


class StorageFailure(GridbaseError):
    """Database failure while appending, scanning or counting rows."""

    status_code = 503
