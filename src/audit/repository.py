"""Audit log repository.

Writes take an explicit connection so the audit insert joins the
transaction of the mutation it describes. There is no update or delete.
"""

import logging
from typing import Any

from src.audit.schemas import AuditEntry
from src.storage.database import Database
from src.storage.rows import dumps, json_object

logger = logging.getLogger(__name__)

_CREATE_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS audit_log (
    id             UUID PRIMARY KEY,
    actor_user_id  UUID,
    action         TEXT NOT NULL,
    resource_type  TEXT NOT NULL,
    resource_id    TEXT,
    request_id     TEXT,
    before         JSONB,
    after          JSONB,
    created_at     TIMESTAMPTZ NOT NULL DEFAULT NOW()
);

CREATE INDEX IF NOT EXISTS idx_audit_log_resource
    ON audit_log(resource_type, resource_id);
CREATE INDEX IF NOT EXISTS idx_audit_log_action_created
    ON audit_log(action, created_at);
"""

_INSERT_SQL = """
INSERT INTO audit_log (
    id, actor_user_id, action, resource_type, resource_id,
    request_id, before, after, created_at
) VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9)
"""


def _row_to_entry(row: Any) -> AuditEntry:
    before = row["before"]
    after = row["after"]
    return AuditEntry(
        id=str(row["id"]),
        actor_user_id=str(row["actor_user_id"]) if row["actor_user_id"] else None,
        action=row["action"],
        resource_type=row["resource_type"],
        resource_id=row["resource_id"],
        request_id=row["request_id"],
        before=json_object(before) if before is not None else None,
        after=json_object(after) if after is not None else None,
        created_at=row["created_at"],
    )


class AuditRepository:
    """Append-only access to the ``audit_log`` table."""

    def __init__(self, database: Database) -> None:
        self._db = database

    async def create_table(self) -> None:
        """Create the audit table and indexes (idempotent)."""
        await self._db.execute(_CREATE_TABLE_SQL)
        logger.info("Audit log table ensured")

    async def append(self, conn: Any, entry: AuditEntry) -> AuditEntry:
        """Insert one entry on the caller's transaction connection."""
        await conn.execute(
            _INSERT_SQL,
            entry.id,
            entry.actor_user_id,
            entry.action,
            entry.resource_type,
            entry.resource_id,
            entry.request_id,
            dumps(entry.before),
            dumps(entry.after),
            entry.created_at,
        )
        return entry

    async def list_for_resource(
        self,
        resource_type: str,
        resource_id: str,
        limit: int = 100,
    ) -> list[AuditEntry]:
        """Fetch a resource's history, newest first."""
        rows = await self._db.fetch(
            """
            SELECT * FROM audit_log
            WHERE resource_type = $1 AND resource_id = $2
            ORDER BY created_at DESC, id DESC
            LIMIT $3
            """,
            resource_type,
            resource_id,
            limit,
        )
        return [_row_to_entry(r) for r in rows]
