"""Data models for Awario alerts, mention pages and validation outcomes."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Literal

ValidationStatus = Literal["valid", "invalid", "unknown"]

VALID_VALIDATION_STATUSES: frozenset[str] = frozenset({"valid", "invalid", "unknown"})


@dataclass
class RemoteAlert:
    """An alert as listed by the Awario API."""

    id: str
    name: str | None = None
    is_active: bool = True
    raw: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to JSON-serializable dictionary (raw payload excluded)."""
        return {"id": self.id, "name": self.name, "is_active": self.is_active}


@dataclass
class MentionsPage:
    """One page of mentions for an alert.

    ``next_cursor`` is the provider's opaque next-page URL, or None when
    the result set is exhausted.
    """

    mentions: list[dict[str, Any]] = field(default_factory=list)
    next_cursor: str | None = None


@dataclass
class ValidationResult:
    """Outcome of checking a remote alert id against the provider.

    Attributes:
        status: valid, invalid, or unknown.
        validated_at: When the remote call was attempted. None when no
            call was made (missing credential).
        error: Human-readable reason for invalid/unknown outcomes.
        alert: The matching remote alert, when found.
    """

    status: ValidationStatus
    validated_at: datetime | None = None
    error: str | None = None
    alert: RemoteAlert | None = None

    @property
    def not_found(self) -> bool:
        """True when the provider answered and the alert does not exist."""
        return self.status == "invalid" and self.alert is None


@dataclass
class RemoteAlertOption:
    """A pick-list entry: a remote alert annotated with its local binding."""

    alert: RemoteAlert
    binding_id: str | None = None

    @property
    def is_bound(self) -> bool:
        return self.binding_id is not None

    def to_dict(self) -> dict[str, Any]:
        return {
            **self.alert.to_dict(),
            "binding_id": self.binding_id,
            "is_bound": self.is_bound,
        }
