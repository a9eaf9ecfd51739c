"""Connector run wrapper around the sync orchestrator.

A run is recorded as ``running`` before any candidate is touched and
finished as ``completed`` or ``failed`` together with exactly one audit
entry, in one transaction. Per-candidate failures do not fail the run;
only an exception from the invocation itself does, and it is re-raised
after being recorded.
"""

import time
from datetime import datetime, timezone

import structlog

from src.audit.repository import AuditRepository
from src.audit.schemas import AuditEntry
from src.bindings.service import BindingService, truncate
from src.observability.logging import bind_context, clear_context
from src.observability.metrics import get_metrics
from src.storage.database import Database
from src.storage.patch import parse_optional_uuid
from src.sync.config import SyncConfig
from src.sync.orchestrator import SyncOrchestrator
from src.sync.repository import SyncRunRepository
from src.sync.schemas import ConnectorSyncRun

logger = structlog.get_logger(__name__)

RESOURCE_TYPE = "connector_sync_run"
ERROR_MESSAGE_MAX_LENGTH = 1000


class ConnectorSyncRunner:
    """Single entry point for manual and scheduled connector syncs.

    Args:
        database: Connected Database.
        bindings: Binding service providing sync candidates.
        orchestrator: Orchestrator that processes the candidates.
        run_repo: Run repository override.
        audit_repo: Audit repository override.
        config: Sync configuration (candidate limit).
    """

    def __init__(
        self,
        database: Database,
        bindings: BindingService,
        orchestrator: SyncOrchestrator,
        run_repo: SyncRunRepository | None = None,
        audit_repo: AuditRepository | None = None,
        config: SyncConfig | None = None,
    ) -> None:
        self._db = database
        self._bindings = bindings
        self._orchestrator = orchestrator
        self._runs = run_repo or SyncRunRepository(database)
        self._audit = audit_repo or AuditRepository(database)
        self._config = config or SyncConfig()

    async def run_connector_sync(
        self,
        connector_id: str | None = None,
        *,
        triggered_by_user_id: str | None = None,
        request_id: str | None = None,
    ) -> ConnectorSyncRun:
        """Run one sync invocation over the connector's candidates.

        Args:
            connector_id: Restrict candidates to one connector; None syncs
                every active binding.
            triggered_by_user_id: Operator for manual triggers.
            request_id: Correlation id for the audit trail.

        Returns:
            The finished run record.
        """
        run = ConnectorSyncRun(
            connector_id=parse_optional_uuid(connector_id, "connector_id"),
            triggered_by_user_id=parse_optional_uuid(
                triggered_by_user_id, "triggered_by_user_id",
            ),
            request_id=request_id,
        )
        await self._runs.insert(run)

        bind_context(run_id=run.id, connector_id=run.connector_id, request_id=request_id)
        started = time.monotonic()
        logger.info("Connector sync started")
        try:
            try:
                candidates = await self._bindings.list_sync_candidates(
                    self._config.candidate_limit, connector_id=run.connector_id,
                )
                batch = await self._orchestrator.run(candidates)
            except Exception as e:
                latency = time.monotonic() - started
                run.status = "failed"
                run.error_message = truncate(
                    str(e) or type(e).__name__, ERROR_MESSAGE_MAX_LENGTH,
                )
                run.metrics = {"latency_ms": round(latency * 1000)}
                try:
                    await self._finish(run, "connector_sync_failed")
                except Exception as finish_error:
                    logger.error(
                        "Could not record connector sync failure",
                        error=str(finish_error),
                    )
                get_metrics().record_connector_run("failed", latency)
                logger.error("Connector sync failed", error=run.error_message)
                raise

            latency = time.monotonic() - started
            run.status = "completed"
            run.metrics = {**batch.to_dict(), "latency_ms": round(latency * 1000)}
            await self._finish(run, "connector_sync_completed")
            get_metrics().record_connector_run("completed", latency)
            logger.info("Connector sync completed", **run.metrics)
            return run
        finally:
            clear_context()

    async def _finish(self, run: ConnectorSyncRun, action: str) -> None:
        run.finished_at = datetime.now(timezone.utc)
        async with self._db.transaction() as conn:
            await self._runs.finish(conn, run)
            await self._audit.append(conn, AuditEntry(
                action=action,
                resource_type=RESOURCE_TYPE,
                resource_id=run.id,
                actor_user_id=run.triggered_by_user_id,
                request_id=run.request_id,
                before={"status": "running"},
                after=run.to_dict(),
            ))

    async def list_connector_runs(
        self,
        connector_id: str | None = None,
        limit: int = 20,
    ) -> list[ConnectorSyncRun]:
        """Most recent runs first, optionally for one connector."""
        return await self._runs.list_runs(
            parse_optional_uuid(connector_id, "connector_id"),
            max(1, limit),
        )
