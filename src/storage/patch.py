"""Partial-update support shared by the profile and binding stores."""

import uuid
from dataclasses import fields
from typing import Any

from src.storage.errors import StoreValidationError


class _Unset:
    """Marker for a patch field the caller did not supply."""

    _instance: "_Unset | None" = None

    def __new__(cls) -> "_Unset":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "UNSET"


UNSET: Any = _Unset()


def supplied_fields(patch: Any) -> dict[str, Any]:
    """Return the fields of a patch dataclass that were explicitly set.

    ``None`` counts as supplied (it clears nullable columns); only
    ``UNSET`` is skipped.
    """
    return {
        f.name: getattr(patch, f.name)
        for f in fields(patch)
        if getattr(patch, f.name) is not UNSET
    }


def parse_uuid(value: Any, field_name: str) -> str:
    """Normalize a UUID reference or raise StoreValidationError."""
    if isinstance(value, uuid.UUID):
        return str(value)
    if not isinstance(value, str):
        raise StoreValidationError(f"{field_name} must be a UUID")
    try:
        return str(uuid.UUID(value.strip()))
    except ValueError:
        raise StoreValidationError(f"{field_name} must be a UUID") from None


def parse_optional_uuid(value: Any, field_name: str) -> str | None:
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    return parse_uuid(value, field_name)
