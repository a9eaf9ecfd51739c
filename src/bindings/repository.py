"""Alert binding repository.

Writes take the caller's transaction connection; the service layer owns
transaction boundaries so the locked read, the write and the audit
insert commit together. Uniqueness of ``remote_alert_id`` is enforced by
a UNIQUE index; callers translate the violation into a conflict.
"""

import logging
from datetime import datetime, timezone
from typing import Any

from src.bindings.schemas import AlertBinding, SyncCandidate
from src.storage.database import Database
from src.storage.rows import dumps, json_object

logger = logging.getLogger(__name__)

_CREATE_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS alert_bindings (
    id                     UUID PRIMARY KEY,
    profile_id             UUID NOT NULL REFERENCES query_profiles(id),
    connector_id           UUID,
    remote_alert_id        TEXT NOT NULL,
    status                 TEXT NOT NULL DEFAULT 'active'
        CHECK (status IN ('active', 'paused', 'archived')),
    sync_state             TEXT NOT NULL DEFAULT 'pending_backfill'
        CHECK (sync_state IN (
            'pending_backfill', 'backfilling', 'active',
            'error', 'paused', 'archived'
        )),
    validation_status      TEXT NOT NULL DEFAULT 'unknown'
        CHECK (validation_status IN ('valid', 'invalid', 'unknown')),
    last_validated_at      TIMESTAMPTZ,
    last_validation_error  TEXT,
    last_sync_at           TIMESTAMPTZ,
    last_sync_error        TEXT,
    backfill_started_at    TIMESTAMPTZ,
    backfill_completed_at  TIMESTAMPTZ,
    backfill_cursor        TEXT,
    metadata               JSONB NOT NULL DEFAULT '{}'::jsonb,
    created_by_user_id     UUID,
    updated_by_user_id     UUID,
    created_at             TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    updated_at             TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    CHECK (backfill_cursor IS NULL OR sync_state = 'backfilling')
);

CREATE UNIQUE INDEX IF NOT EXISTS uq_alert_bindings_remote_alert_id
    ON alert_bindings(remote_alert_id);
CREATE INDEX IF NOT EXISTS idx_alert_bindings_status_sync_state
    ON alert_bindings(status, sync_state);
CREATE INDEX IF NOT EXISTS idx_alert_bindings_candidates
    ON alert_bindings(updated_at, id) WHERE status = 'active';
CREATE INDEX IF NOT EXISTS idx_alert_bindings_profile
    ON alert_bindings(profile_id);
"""

_CANDIDATE_COLUMNS = """
    id, remote_alert_id, sync_state, connector_id, backfill_cursor,
    last_sync_at, backfill_completed_at IS NOT NULL AS has_completed_backfill
"""


def _opt_str(value: Any) -> str | None:
    return str(value) if value is not None else None


def _row_to_binding(row: Any) -> AlertBinding:
    """Convert an asyncpg Record to an AlertBinding."""
    return AlertBinding(
        id=str(row["id"]),
        profile_id=str(row["profile_id"]),
        connector_id=_opt_str(row["connector_id"]),
        remote_alert_id=row["remote_alert_id"],
        status=row["status"],
        sync_state=row["sync_state"],
        validation_status=row["validation_status"],
        last_validated_at=row["last_validated_at"],
        last_validation_error=row["last_validation_error"],
        last_sync_at=row["last_sync_at"],
        last_sync_error=row["last_sync_error"],
        backfill_started_at=row["backfill_started_at"],
        backfill_completed_at=row["backfill_completed_at"],
        backfill_cursor=row["backfill_cursor"],
        metadata=json_object(row["metadata"]),
        created_by_user_id=_opt_str(row["created_by_user_id"]),
        updated_by_user_id=_opt_str(row["updated_by_user_id"]),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _row_to_candidate(row: Any) -> SyncCandidate:
    return SyncCandidate(
        id=str(row["id"]),
        remote_alert_id=row["remote_alert_id"],
        sync_state=row["sync_state"],
        connector_id=_opt_str(row["connector_id"]),
        backfill_cursor=row["backfill_cursor"],
        last_sync_at=row["last_sync_at"],
        has_completed_backfill=bool(row["has_completed_backfill"]),
    )


class BindingRepository:
    """Repository for the ``alert_bindings`` table."""

    def __init__(self, database: Database) -> None:
        self._db = database

    async def create_table(self) -> None:
        """Create the bindings table and indexes (idempotent)."""
        await self._db.execute(_CREATE_TABLE_SQL)
        logger.info("Alert bindings table ensured")

    async def insert(self, conn: Any, binding: AlertBinding) -> AlertBinding:
        """Insert a binding on the given connection.

        Raises:
            asyncpg.UniqueViolationError: If remote_alert_id is already bound.
        """
        sql = """
            INSERT INTO alert_bindings (
                id, profile_id, connector_id, remote_alert_id, status,
                sync_state, validation_status, last_validated_at,
                last_validation_error, last_sync_at, last_sync_error,
                backfill_started_at, backfill_completed_at, backfill_cursor,
                metadata, created_by_user_id, updated_by_user_id,
                created_at, updated_at
            ) VALUES (
                $1, $2, $3, $4, $5, $6, $7, $8, $9, $10,
                $11, $12, $13, $14, $15, $16, $17, $18, $19
            )
            RETURNING *
        """
        row = await conn.fetchrow(
            sql,
            binding.id,
            binding.profile_id,
            binding.connector_id,
            binding.remote_alert_id,
            binding.status,
            binding.sync_state,
            binding.validation_status,
            binding.last_validated_at,
            binding.last_validation_error,
            binding.last_sync_at,
            binding.last_sync_error,
            binding.backfill_started_at,
            binding.backfill_completed_at,
            binding.backfill_cursor,
            dumps(binding.metadata),
            binding.created_by_user_id,
            binding.updated_by_user_id,
            binding.created_at,
            binding.updated_at,
        )
        return _row_to_binding(row)

    async def update(self, conn: Any, binding: AlertBinding) -> AlertBinding:
        """Overwrite every mutable column and bump ``updated_at``.

        Raises:
            asyncpg.UniqueViolationError: If the new remote_alert_id is taken.
        """
        sql = """
            UPDATE alert_bindings SET
                profile_id = $2,
                connector_id = $3,
                remote_alert_id = $4,
                status = $5,
                sync_state = $6,
                validation_status = $7,
                last_validated_at = $8,
                last_validation_error = $9,
                last_sync_at = $10,
                last_sync_error = $11,
                backfill_started_at = $12,
                backfill_completed_at = $13,
                backfill_cursor = $14,
                metadata = $15,
                updated_by_user_id = $16,
                updated_at = $17
            WHERE id = $1
            RETURNING *
        """
        row = await conn.fetchrow(
            sql,
            binding.id,
            binding.profile_id,
            binding.connector_id,
            binding.remote_alert_id,
            binding.status,
            binding.sync_state,
            binding.validation_status,
            binding.last_validated_at,
            binding.last_validation_error,
            binding.last_sync_at,
            binding.last_sync_error,
            binding.backfill_started_at,
            binding.backfill_completed_at,
            binding.backfill_cursor,
            dumps(binding.metadata),
            binding.updated_by_user_id,
            datetime.now(timezone.utc),
        )
        return _row_to_binding(row)

    async def get_for_update(self, conn: Any, binding_id: str) -> AlertBinding | None:
        """Read and row-lock a binding inside a transaction."""
        row = await conn.fetchrow(
            "SELECT * FROM alert_bindings WHERE id = $1 FOR UPDATE",
            binding_id,
        )
        return _row_to_binding(row) if row else None

    async def get_by_remote_alert_id(
        self,
        conn: Any,
        remote_alert_id: str,
        for_update: bool = False,
    ) -> AlertBinding | None:
        """Look up the binding that owns a remote alert id."""
        sql = "SELECT * FROM alert_bindings WHERE remote_alert_id = $1"
        if for_update:
            sql += " FOR UPDATE"
        row = await conn.fetchrow(sql, remote_alert_id)
        return _row_to_binding(row) if row else None

    async def get_by_id(self, binding_id: str) -> AlertBinding | None:
        row = await self._db.fetchrow(
            "SELECT * FROM alert_bindings WHERE id = $1",
            binding_id,
        )
        return _row_to_binding(row) if row else None

    async def list_bindings(
        self,
        *,
        status: str | None = None,
        sync_state: str | None = None,
        profile_id: str | None = None,
        connector_id: str | None = None,
        limit: int = 200,
        offset: int = 0,
    ) -> tuple[list[AlertBinding], int]:
        """List bindings with optional filters, most recently updated first.

        Returns:
            Tuple of (page of bindings, total matching count).
        """
        conditions: list[str] = []
        params: list[Any] = []
        param_idx = 1

        if status is not None:
            conditions.append(f"status = ${param_idx}")
            params.append(status)
            param_idx += 1

        if sync_state is not None:
            conditions.append(f"sync_state = ${param_idx}")
            params.append(sync_state)
            param_idx += 1

        if profile_id is not None:
            conditions.append(f"profile_id = ${param_idx}")
            params.append(profile_id)
            param_idx += 1

        if connector_id is not None:
            conditions.append(f"connector_id = ${param_idx}")
            params.append(connector_id)
            param_idx += 1

        where_clause = ""
        if conditions:
            where_clause = "WHERE " + " AND ".join(conditions)

        total = await self._db.fetchval(
            f"SELECT COUNT(*) FROM alert_bindings {where_clause}",
            *params,
        )
        rows = await self._db.fetch(
            f"""
            SELECT * FROM alert_bindings
            {where_clause}
            ORDER BY updated_at DESC, id ASC
            LIMIT ${param_idx} OFFSET ${param_idx + 1}
            """,
            *params,
            limit,
            offset,
        )
        return [_row_to_binding(r) for r in rows], total or 0

    async def list_sync_candidates(
        self,
        limit: int,
        connector_id: str | None = None,
    ) -> list[SyncCandidate]:
        """Select active bindings, least recently updated first.

        Only the columns the orchestrator needs are read.
        """
        params: list[Any] = []
        connector_clause = ""
        if connector_id is not None:
            params.append(connector_id)
            connector_clause = f"AND connector_id = ${len(params)}"
        params.append(limit)

        sql = f"""
            SELECT {_CANDIDATE_COLUMNS}
            FROM alert_bindings
            WHERE status = 'active'
              AND sync_state NOT IN ('paused', 'archived')
              {connector_clause}
            ORDER BY updated_at ASC, id ASC
            LIMIT ${len(params)}
        """
        rows = await self._db.fetch(sql, *params)
        return [_row_to_candidate(r) for r in rows]

    async def bound_alert_ids(self, remote_alert_ids: list[str]) -> dict[str, str]:
        """Map each already-bound remote alert id to its binding id."""
        if not remote_alert_ids:
            return {}
        rows = await self._db.fetch(
            """
            SELECT remote_alert_id, id FROM alert_bindings
            WHERE remote_alert_id = ANY($1::text[])
            """,
            remote_alert_ids,
        )
        return {r["remote_alert_id"]: str(r["id"]) for r in rows}
