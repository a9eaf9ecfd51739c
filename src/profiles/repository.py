"""Query profile repository.

Mutating methods take the caller's transaction connection so profile
writes commit together with their audit entry (and, when linking a
remote alert, with the binding created for them).
"""

import logging
from datetime import datetime, timezone
from typing import Any

from src.profiles.schemas import QueryProfile
from src.storage.database import Database
from src.storage.rows import dumps, json_list, json_object

logger = logging.getLogger(__name__)

_CREATE_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS query_profiles (
    id                  UUID PRIMARY KEY,
    name                TEXT NOT NULL,
    objective           TEXT,
    query_text          TEXT NOT NULL,
    sources             JSONB NOT NULL DEFAULT '[]'::jsonb,
    language            TEXT,
    countries           JSONB NOT NULL DEFAULT '[]'::jsonb,
    status              TEXT NOT NULL DEFAULT 'active'
        CHECK (status IN ('active', 'paused', 'archived')),
    metadata            JSONB NOT NULL DEFAULT '{}'::jsonb,
    created_by_user_id  UUID,
    updated_by_user_id  UUID,
    created_at          TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    updated_at          TIMESTAMPTZ NOT NULL DEFAULT NOW()
);

CREATE INDEX IF NOT EXISTS idx_query_profiles_status
    ON query_profiles(status, updated_at DESC);
"""


def _row_to_profile(row: Any) -> QueryProfile:
    """Convert an asyncpg Record to a QueryProfile."""
    return QueryProfile(
        id=str(row["id"]),
        name=row["name"],
        objective=row["objective"],
        query_text=row["query_text"],
        sources=json_list(row["sources"]),
        language=row["language"],
        countries=json_list(row["countries"]),
        status=row["status"],
        metadata=json_object(row["metadata"]),
        created_by_user_id=(
            str(row["created_by_user_id"]) if row["created_by_user_id"] else None
        ),
        updated_by_user_id=(
            str(row["updated_by_user_id"]) if row["updated_by_user_id"] else None
        ),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


class ProfileRepository:
    """Repository for the ``query_profiles`` table."""

    def __init__(self, database: Database) -> None:
        self._db = database

    async def create_table(self) -> None:
        """Create the profiles table and indexes (idempotent)."""
        await self._db.execute(_CREATE_TABLE_SQL)
        logger.info("Query profiles table ensured")

    async def insert(self, conn: Any, profile: QueryProfile) -> QueryProfile:
        """Insert a profile on the given connection.

        Args:
            conn: Transaction connection.
            profile: Profile to persist.

        Returns:
            The stored profile as read back from the database.
        """
        sql = """
            INSERT INTO query_profiles (
                id, name, objective, query_text, sources, language,
                countries, status, metadata, created_by_user_id,
                updated_by_user_id, created_at, updated_at
            ) VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12, $13)
            RETURNING *
        """
        row = await conn.fetchrow(
            sql,
            profile.id,
            profile.name,
            profile.objective,
            profile.query_text,
            dumps(profile.sources),
            profile.language,
            dumps(profile.countries),
            profile.status,
            dumps(profile.metadata),
            profile.created_by_user_id,
            profile.updated_by_user_id,
            profile.created_at,
            profile.updated_at,
        )
        return _row_to_profile(row)

    async def update(self, conn: Any, profile: QueryProfile) -> QueryProfile:
        """Overwrite the mutable columns of an existing profile."""
        sql = """
            UPDATE query_profiles SET
                name = $2,
                objective = $3,
                query_text = $4,
                sources = $5,
                language = $6,
                countries = $7,
                status = $8,
                metadata = $9,
                updated_by_user_id = $10,
                updated_at = $11
            WHERE id = $1
            RETURNING *
        """
        row = await conn.fetchrow(
            sql,
            profile.id,
            profile.name,
            profile.objective,
            profile.query_text,
            dumps(profile.sources),
            profile.language,
            dumps(profile.countries),
            profile.status,
            dumps(profile.metadata),
            profile.updated_by_user_id,
            datetime.now(timezone.utc),
        )
        return _row_to_profile(row)

    async def get_for_update(self, conn: Any, profile_id: str) -> QueryProfile | None:
        """Read and row-lock a profile inside a transaction."""
        row = await conn.fetchrow(
            "SELECT * FROM query_profiles WHERE id = $1 FOR UPDATE",
            profile_id,
        )
        return _row_to_profile(row) if row else None

    async def exists(self, conn: Any, profile_id: str) -> bool:
        """Check a profile reference on the given connection."""
        found = await conn.fetchval(
            "SELECT 1 FROM query_profiles WHERE id = $1",
            profile_id,
        )
        return found is not None

    async def get_by_id(self, profile_id: str) -> QueryProfile | None:
        row = await self._db.fetchrow(
            "SELECT * FROM query_profiles WHERE id = $1",
            profile_id,
        )
        return _row_to_profile(row) if row else None

    async def list_profiles(
        self,
        *,
        status: str | None = None,
        limit: int = 200,
        offset: int = 0,
    ) -> tuple[list[QueryProfile], int]:
        """List profiles, most recently updated first.

        Returns:
            Tuple of (page of profiles, total matching count).
        """
        conditions: list[str] = []
        params: list[Any] = []
        param_idx = 1

        if status is not None:
            conditions.append(f"status = ${param_idx}")
            params.append(status)
            param_idx += 1

        where_clause = ""
        if conditions:
            where_clause = "WHERE " + " AND ".join(conditions)

        total = await self._db.fetchval(
            f"SELECT COUNT(*) FROM query_profiles {where_clause}",
            *params,
        )
        rows = await self._db.fetch(
            f"""
            SELECT * FROM query_profiles
            {where_clause}
            ORDER BY updated_at DESC, id ASC
            LIMIT ${param_idx} OFFSET ${param_idx + 1}
            """,
            *params,
            limit,
            offset,
        )
        return [_row_to_profile(r) for r in rows], total or 0
