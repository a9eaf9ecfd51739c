"""Storage layer: connection pool, transactions and the store error taxonomy."""

from src.storage.database import Database, is_unique_violation
from src.storage.errors import (
    ConflictError,
    InternalStoreError,
    NotFoundError,
    StoreError,
    StoreValidationError,
)

__all__ = [
    "ConflictError",
    "Database",
    "InternalStoreError",
    "NotFoundError",
    "StoreError",
    "StoreValidationError",
    "is_unique_violation",
]
