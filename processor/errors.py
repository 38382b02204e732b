"""Error taxonomy for the sync pipeline."""
from typing import List, Optional


class SyncError(Exception):
    """Base class for sync pipeline errors."""

    # Set when the failing run had already cleared the change token.
    token_cleared = False


class ConfigurationError(SyncError):
    """Required identifiers are missing; no work is attempted."""

    def __init__(self, message: str, missing: Optional[List[str]] = None):
        super().__init__(message)
        self.missing = missing or []


class SourceFetchError(SyncError):
    """The calendar change feed could not be read."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class StaleTokenError(SourceFetchError):
    """The provider rejected the change token; a full sync is required."""


class ValidationError(SyncError):
    """A row is missing a mandatory field."""

    def __init__(self, message: str, row_index: Optional[int] = None, field: Optional[str] = None):
        super().__init__(message)
        self.row_index = row_index
        self.field = field


class WarehouseInsertError(SyncError):
    """The warehouse rejected the whole batch request."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class PartialInsertError(SyncError):
    """Some rows were accepted, others rejected."""

    def __init__(self, message: str, inserted: int, errors: list):
        super().__init__(message)
        self.inserted = inserted
        self.errors = errors
