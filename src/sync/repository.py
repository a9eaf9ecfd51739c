"""Connector sync run repository."""

import logging
from typing import Any

from src.storage.database import Database
from src.storage.rows import dumps, json_object
from src.sync.schemas import ConnectorSyncRun

logger = logging.getLogger(__name__)

_CREATE_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS connector_sync_runs (
    id                    UUID PRIMARY KEY,
    connector_id          UUID,
    status                TEXT NOT NULL
        CHECK (status IN ('running', 'completed', 'failed')),
    started_at            TIMESTAMPTZ NOT NULL,
    finished_at           TIMESTAMPTZ,
    metrics               JSONB NOT NULL DEFAULT '{}'::jsonb,
    error_message         TEXT,
    triggered_by_user_id  UUID,
    request_id            TEXT,
    created_at            TIMESTAMPTZ NOT NULL DEFAULT NOW()
);

CREATE INDEX IF NOT EXISTS idx_connector_sync_runs_connector
    ON connector_sync_runs(connector_id, started_at DESC);
"""


def _row_to_run(row: Any) -> ConnectorSyncRun:
    """Convert an asyncpg Record to a ConnectorSyncRun."""
    return ConnectorSyncRun(
        id=str(row["id"]),
        connector_id=str(row["connector_id"]) if row["connector_id"] else None,
        status=row["status"],
        started_at=row["started_at"],
        finished_at=row["finished_at"],
        metrics=json_object(row["metrics"]),
        error_message=row["error_message"],
        triggered_by_user_id=(
            str(row["triggered_by_user_id"]) if row["triggered_by_user_id"] else None
        ),
        request_id=row["request_id"],
        created_at=row["created_at"],
    )


class SyncRunRepository:
    """Repository for the ``connector_sync_runs`` table."""

    def __init__(self, database: Database) -> None:
        self._db = database

    async def create_table(self) -> None:
        """Create the runs table (idempotent)."""
        await self._db.execute(_CREATE_TABLE_SQL)
        logger.info("Connector sync runs table ensured")

    async def insert(self, run: ConnectorSyncRun) -> None:
        """Record a run marker outside any transaction so it is visible at once."""
        await self._db.execute(
            """
            INSERT INTO connector_sync_runs (
                id, connector_id, status, started_at, metrics,
                triggered_by_user_id, request_id, created_at
            ) VALUES ($1, $2, $3, $4, $5, $6, $7, $8)
            """,
            run.id,
            run.connector_id,
            run.status,
            run.started_at,
            dumps(run.metrics),
            run.triggered_by_user_id,
            run.request_id,
            run.created_at,
        )

    async def finish(self, conn: Any, run: ConnectorSyncRun) -> None:
        """Write the final status on the caller's transaction connection."""
        await conn.execute(
            """
            UPDATE connector_sync_runs SET
                status = $2,
                finished_at = $3,
                metrics = $4,
                error_message = $5
            WHERE id = $1
            """,
            run.id,
            run.status,
            run.finished_at,
            dumps(run.metrics),
            run.error_message,
        )

    async def list_runs(
        self,
        connector_id: str | None = None,
        limit: int = 20,
    ) -> list[ConnectorSyncRun]:
        """Most recent runs first, optionally for one connector."""
        if connector_id is None:
            rows = await self._db.fetch(
                """
                SELECT * FROM connector_sync_runs
                ORDER BY started_at DESC
                LIMIT $1
                """,
                limit,
            )
        else:
            rows = await self._db.fetch(
                """
                SELECT * FROM connector_sync_runs
                WHERE connector_id = $1
                ORDER BY started_at DESC
                LIMIT $2
                """,
                connector_id,
                limit,
            )
        return [_row_to_run(r) for r in rows]
