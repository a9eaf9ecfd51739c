"""Schema definitions for query profiles.

A query profile is the named "what are we listening for" configuration
that one or more alert bindings belong to. Maps 1:1 to the
``query_profiles`` table.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Literal

from src.storage.patch import UNSET

ProfileStatus = Literal["active", "paused", "archived"]

VALID_PROFILE_STATUSES: frozenset[str] = frozenset({
    "active",
    "paused",
    "archived",
})


@dataclass
class QueryProfile:
    """A persisted query profile.

    Attributes:
        name: Display name, non-empty after trimming.
        query_text: Listening query, non-empty after trimming.
        objective: Free-text purpose of the profile.
        sources: Source filter list (e.g. ``twitter``, ``news``).
        language: Optional language code.
        countries: Country filter list.
        status: Administrative status; profiles are archived, never deleted.
        metadata: Free-form JSONB bag.
    """

    name: str
    query_text: str
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    objective: str | None = None
    sources: list[str] = field(default_factory=list)
    language: str | None = None
    countries: list[str] = field(default_factory=list)
    status: str = "active"
    metadata: dict[str, Any] = field(default_factory=dict)
    created_by_user_id: str | None = None
    updated_by_user_id: str | None = None
    created_at: datetime = field(
        default_factory=lambda: datetime.now(timezone.utc)
    )
    updated_at: datetime = field(
        default_factory=lambda: datetime.now(timezone.utc)
    )

    def __post_init__(self) -> None:
        if self.status not in VALID_PROFILE_STATUSES:
            raise ValueError(
                f"Invalid status {self.status!r}. "
                f"Must be one of: {sorted(VALID_PROFILE_STATUSES)}"
            )

    def to_dict(self) -> dict[str, Any]:
        """Convert to JSON-serializable dictionary."""
        return {
            "id": self.id,
            "name": self.name,
            "objective": self.objective,
            "query_text": self.query_text,
            "sources": list(self.sources),
            "language": self.language,
            "countries": list(self.countries),
            "status": self.status,
            "metadata": dict(self.metadata),
            "created_by_user_id": self.created_by_user_id,
            "updated_by_user_id": self.updated_by_user_id,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }


@dataclass
class ProfilePatch:
    """Partial update for a query profile; unset fields are left alone."""

    name: Any = UNSET
    objective: Any = UNSET
    query_text: Any = UNSET
    sources: Any = UNSET
    language: Any = UNSET
    countries: Any = UNSET
    status: Any = UNSET
    metadata: Any = UNSET
