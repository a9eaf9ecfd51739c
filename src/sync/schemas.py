"""Schema definitions for sync passes and connector runs."""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Literal

from src.bindings.schemas import SyncMode

RunStatus = Literal["running", "completed", "failed"]

VALID_RUN_STATUSES: frozenset[str] = frozenset({"running", "completed", "failed"})

CandidateOutcome = Literal["completed", "progress", "failed", "skipped"]


@dataclass
class SyncMetrics:
    """Counters for one binding's pass; merged into binding metadata."""

    pages_fetched: int = 0
    mentions_seen: int = 0
    persisted: int = 0
    skipped: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "pages_fetched": self.pages_fetched,
            "mentions_seen": self.mentions_seen,
            "persisted": self.persisted,
            "skipped": self.skipped,
        }


@dataclass
class CandidateResult:
    """What happened to one candidate in a batch.

    Attributes:
        binding_id: Candidate binding.
        mode: historical or incremental.
        outcome: completed (backfill done or incremental pass done),
            progress (backfill continues next invocation), failed, or
            skipped (binding stopped being active before the pass began).
        error: Failure message, if any.
    """

    binding_id: str
    mode: SyncMode
    outcome: CandidateOutcome
    metrics: SyncMetrics = field(default_factory=SyncMetrics)
    error: str | None = None

    @property
    def completed_backfill(self) -> bool:
        return self.mode == "historical" and self.outcome == "completed"


@dataclass
class SyncBatchResult:
    """Per-candidate results of one invocation, with folded aggregates."""

    results: list[CandidateResult] = field(default_factory=list)

    def add(self, result: CandidateResult) -> None:
        self.results.append(result)

    @property
    def bindings_touched(self) -> int:
        return sum(1 for r in self.results if r.outcome != "skipped")

    @property
    def pages_fetched(self) -> int:
        return sum(r.metrics.pages_fetched for r in self.results)

    @property
    def persisted(self) -> int:
        return sum(r.metrics.persisted for r in self.results)

    @property
    def skipped(self) -> int:
        return sum(r.metrics.skipped for r in self.results)

    @property
    def errors(self) -> int:
        return sum(1 for r in self.results if r.outcome == "failed")

    @property
    def historical(self) -> int:
        return sum(1 for r in self.results if r.mode == "historical" and r.outcome != "skipped")

    @property
    def incremental(self) -> int:
        return sum(1 for r in self.results if r.mode == "incremental" and r.outcome != "skipped")

    @property
    def completed_backfills(self) -> int:
        return sum(1 for r in self.results if r.completed_backfill)

    def to_dict(self) -> dict[str, Any]:
        """Aggregate metrics for the connector run record."""
        return {
            "candidates": len(self.results),
            "bindings_touched": self.bindings_touched,
            "pages_fetched": self.pages_fetched,
            "persisted": self.persisted,
            "skipped": self.skipped,
            "errors": self.errors,
            "historical": self.historical,
            "incremental": self.incremental,
            "completed_backfills": self.completed_backfills,
        }


@dataclass
class ConnectorSyncRun:
    """A provider-level sync invocation record.

    Maps 1:1 to the ``connector_sync_runs`` table.
    """

    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    connector_id: str | None = None
    status: RunStatus = "running"
    started_at: datetime = field(
        default_factory=lambda: datetime.now(timezone.utc)
    )
    finished_at: datetime | None = None
    metrics: dict[str, Any] = field(default_factory=dict)
    error_message: str | None = None
    triggered_by_user_id: str | None = None
    request_id: str | None = None
    created_at: datetime = field(
        default_factory=lambda: datetime.now(timezone.utc)
    )

    def __post_init__(self) -> None:
        if self.status not in VALID_RUN_STATUSES:
            raise ValueError(
                f"Invalid status {self.status!r}. "
                f"Must be one of: {sorted(VALID_RUN_STATUSES)}"
            )

    def to_dict(self) -> dict[str, Any]:
        """Convert to JSON-serializable dictionary."""
        return {
            "id": self.id,
            "connector_id": self.connector_id,
            "status": self.status,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "metrics": dict(self.metrics),
            "error_message": self.error_message,
            "triggered_by_user_id": self.triggered_by_user_id,
            "request_id": self.request_id,
            "created_at": self.created_at.isoformat(),
        }
