"""Helpers for mapping asyncpg records to dataclasses."""

import json
from typing import Any


def json_object(value: Any) -> dict[str, Any]:
    """Decode a JSONB column into a dict.

    asyncpg returns JSONB as text unless a codec is registered, so both
    ``str`` and already-decoded values are accepted. Anything that is not
    a JSON object maps to an empty dict.
    """
    if value is None:
        return {}
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except ValueError:
            return {}
    return dict(value) if isinstance(value, dict) else {}


def json_list(value: Any) -> list[str]:
    """Decode a JSONB array of strings."""
    if value is None:
        return []
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except ValueError:
            return []
    if not isinstance(value, list):
        return []
    return [str(item) for item in value]


def dumps(value: Any) -> str | None:
    """Serialize a value for a JSONB parameter (None stays NULL)."""
    if value is None:
        return None
    return json.dumps(value, default=str)
