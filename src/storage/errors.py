"""Error taxonomy shared by the profile, binding and sync stores.

Each error carries a ``code`` so an outer transport can map it to a
client-visible response without inspecting message text:

- ``validation``: malformed input the caller can fix
- ``not_found``: a referenced profile, binding or remote alert is absent
- ``conflict``: duplicate identity, empty patch, or an illegal transition
- ``internal``: store or remote failure not attributable to the caller
"""

from typing import Literal

ErrorCode = Literal["validation", "not_found", "conflict", "internal"]


class StoreError(Exception):
    """Base exception for store operations."""

    code: ErrorCode = "internal"

    def __init__(self, message: str, code: ErrorCode | None = None):
        super().__init__(message)
        if code is not None:
            self.code = code
        self.message = message


class StoreValidationError(StoreError):
    """Raised when input is malformed."""

    code: ErrorCode = "validation"


class NotFoundError(StoreError):
    """Raised when a referenced record does not exist."""

    code: ErrorCode = "not_found"


class ConflictError(StoreError):
    """Raised on duplicate identity, no-op patches or illegal transitions."""

    code: ErrorCode = "conflict"


class InternalStoreError(StoreError):
    """Raised when the store returns something it should not have."""

    code: ErrorCode = "internal"
