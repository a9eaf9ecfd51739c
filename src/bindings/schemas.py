"""Schema definitions for alert bindings.

An alert binding links a QueryProfile to one remote Awario alert id and
is the unit of synchronization. Maps 1:1 to the ``alert_bindings`` table.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Literal

from src.awario.schemas import VALID_VALIDATION_STATUSES, ValidationStatus
from src.profiles.schemas import QueryProfile
from src.storage.patch import UNSET

BindingStatus = Literal["active", "paused", "archived"]

VALID_BINDING_STATUSES: frozenset[str] = frozenset({
    "active",
    "paused",
    "archived",
})

SyncState = Literal[
    "pending_backfill",
    "backfilling",
    "active",
    "error",
    "paused",
    "archived",
]

VALID_SYNC_STATES: frozenset[str] = frozenset({
    "pending_backfill",
    "backfilling",
    "active",
    "error",
    "paused",
    "archived",
})

SyncMode = Literal["historical", "incremental"]

VALID_SYNC_MODES: frozenset[str] = frozenset({"historical", "incremental"})


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


@dataclass
class AlertBinding:
    """A persisted alert binding.

    Attributes:
        profile_id: Owning QueryProfile.
        remote_alert_id: Provider alert id, unique across bindings.
        connector_id: Optional grouping of the provider integration.
        status: Administrative intent.
        sync_state: Operational state, see ``src.bindings.state``.
        validation_status: Outcome of the last remote validation.
        backfill_cursor: Opaque next-page token, set only while backfilling.
        metadata: Link provenance, ``sync_metrics`` and
            ``backfill_pages_total``.
    """

    profile_id: str
    remote_alert_id: str
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    connector_id: str | None = None
    status: BindingStatus = "active"
    sync_state: SyncState = "pending_backfill"
    validation_status: ValidationStatus = "unknown"
    last_validated_at: datetime | None = None
    last_validation_error: str | None = None
    last_sync_at: datetime | None = None
    last_sync_error: str | None = None
    backfill_started_at: datetime | None = None
    backfill_completed_at: datetime | None = None
    backfill_cursor: str | None = None
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
        if self.status not in VALID_BINDING_STATUSES:
            raise ValueError(
                f"Invalid status {self.status!r}. "
                f"Must be one of: {sorted(VALID_BINDING_STATUSES)}"
            )
        if self.sync_state not in VALID_SYNC_STATES:
            raise ValueError(
                f"Invalid sync_state {self.sync_state!r}. "
                f"Must be one of: {sorted(VALID_SYNC_STATES)}"
            )
        if self.validation_status not in VALID_VALIDATION_STATUSES:
            raise ValueError(
                f"Invalid validation_status {self.validation_status!r}. "
                f"Must be one of: {sorted(VALID_VALIDATION_STATUSES)}"
            )

    @property
    def has_completed_backfill(self) -> bool:
        return self.backfill_completed_at is not None

    def to_dict(self) -> dict[str, Any]:
        """Convert to JSON-serializable dictionary."""
        return {
            "id": self.id,
            "profile_id": self.profile_id,
            "connector_id": self.connector_id,
            "remote_alert_id": self.remote_alert_id,
            "status": self.status,
            "sync_state": self.sync_state,
            "validation_status": self.validation_status,
            "last_validated_at": _iso(self.last_validated_at),
            "last_validation_error": self.last_validation_error,
            "last_sync_at": _iso(self.last_sync_at),
            "last_sync_error": self.last_sync_error,
            "backfill_started_at": _iso(self.backfill_started_at),
            "backfill_completed_at": _iso(self.backfill_completed_at),
            "backfill_cursor": self.backfill_cursor,
            "metadata": dict(self.metadata),
            "created_by_user_id": self.created_by_user_id,
            "updated_by_user_id": self.updated_by_user_id,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }


@dataclass
class BindingPatch:
    """Partial update for a binding; unset fields are left alone."""

    profile_id: Any = UNSET
    connector_id: Any = UNSET
    remote_alert_id: Any = UNSET
    status: Any = UNSET
    sync_state: Any = UNSET
    metadata: Any = UNSET


@dataclass(frozen=True)
class SyncCandidate:
    """The slice of a binding the sync orchestrator needs, nothing more."""

    id: str
    remote_alert_id: str
    sync_state: SyncState
    connector_id: str | None = None
    backfill_cursor: str | None = None
    last_sync_at: datetime | None = None
    has_completed_backfill: bool = False


@dataclass
class LinkResult:
    """Outcome of linking a remote alert."""

    binding: AlertBinding
    profile: QueryProfile
    created: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "binding": self.binding.to_dict(),
            "profile": self.profile.to_dict(),
            "created": self.created,
        }
