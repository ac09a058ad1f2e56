"""
Exceptions raised by the retrieval component.

- ValidationError: rejected request input (bounding box or max_records)
- StoreUnavailableError: the underlying store call failed
- StoreTimeoutError: the store call did not finish before the deadline
"""

from typing import Optional


class ValidationError(Exception):
    """Raised when a retrieval request is malformed or out of range."""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.field = field


class StoreUnavailableError(Exception):
    """Raised when the message store cannot answer a query."""


class StoreTimeoutError(StoreUnavailableError):
    """Raised when a store query exceeds the caller's deadline."""
