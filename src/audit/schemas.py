"""Schema for append-only audit log entries."""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any


@dataclass
class AuditEntry:
    """One mutation of a profile, binding or connector run.

    Attributes:
        action: What happened (e.g. ``binding_created``).
        resource_type: ``query_profile``, ``alert_binding`` or
            ``connector_sync_run``.
        resource_id: Id of the mutated record.
        actor_user_id: Operator id; None for system-triggered transitions.
        request_id: Correlates a client-visible request with its effects.
        before: Snapshot prior to the mutation (None on create).
        after: Snapshot after the mutation.
    """

    action: str
    resource_type: str
    resource_id: str | None
    actor_user_id: str | None = None
    request_id: str | None = None
    before: dict[str, Any] | None = None
    after: dict[str, Any] | None = None
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    created_at: datetime = field(
        default_factory=lambda: datetime.now(timezone.utc)
    )

    def to_dict(self) -> dict[str, Any]:
        """Convert to JSON-serializable dictionary."""
        return {
            "id": self.id,
            "action": self.action,
            "resource_type": self.resource_type,
            "resource_id": self.resource_id,
            "actor_user_id": self.actor_user_id,
            "request_id": self.request_id,
            "before": self.before,
            "after": self.after,
            "created_at": self.created_at.isoformat(),
        }
