"""Content ingestion collaborator for fetched mention pages.

The orchestrator only needs ``ingest(binding_id, page) -> IngestResult``;
``MentionIngestor`` is the default implementation, storing raw mentions
in ``remote_mentions`` keyed by (binding_id, mention_id) so re-fetching
an overlapping window is harmless.
"""

import logging
from dataclasses import dataclass
from typing import Any, Protocol

from src.awario.parser import (
    as_string,
    mention_id,
    mention_published_at,
    mention_text,
    mention_url,
)
from src.awario.schemas import MentionsPage
from src.storage.database import Database
from src.storage.rows import dumps

logger = logging.getLogger(__name__)

_CREATE_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS remote_mentions (
    binding_id       UUID NOT NULL REFERENCES alert_bindings(id),
    mention_id       TEXT NOT NULL,
    remote_alert_id  TEXT NOT NULL,
    url              TEXT,
    title            TEXT,
    content          TEXT,
    published_at     TIMESTAMPTZ,
    raw_payload      JSONB NOT NULL DEFAULT '{}'::jsonb,
    first_seen_at    TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    PRIMARY KEY (binding_id, mention_id)
);

CREATE INDEX IF NOT EXISTS idx_remote_mentions_published
    ON remote_mentions(binding_id, published_at DESC);
"""

_INSERT_SQL = """
INSERT INTO remote_mentions (
    binding_id, mention_id, remote_alert_id, url, title,
    content, published_at, raw_payload
) VALUES ($1, $2, $3, $4, $5, $6, $7, $8)
ON CONFLICT (binding_id, mention_id) DO NOTHING
RETURNING mention_id
"""


@dataclass
class IngestResult:
    """Counts for one ingested page."""

    persisted: int = 0
    skipped: int = 0


class ContentIngestor(Protocol):
    """Idempotent sink for mention pages."""

    async def ingest(
        self,
        binding_id: str,
        page: MentionsPage,
        *,
        remote_alert_id: str,
    ) -> IngestResult: ...


class MentionIngestor:
    """Stores raw mentions in PostgreSQL, skipping ones already seen."""

    def __init__(self, database: Database) -> None:
        self._db = database

    async def create_table(self) -> None:
        """Create the mentions table (idempotent)."""
        await self._db.execute(_CREATE_TABLE_SQL)
        logger.info("Remote mentions table ensured")

    async def ingest(
        self,
        binding_id: str,
        page: MentionsPage,
        *,
        remote_alert_id: str,
    ) -> IngestResult:
        """Insert a page of mentions.

        Duplicates within the page or against stored rows count as
        skipped. The page is written in one transaction.
        """
        result = IngestResult()
        if not page.mentions:
            return result

        rows: dict[str, tuple[Any, ...]] = {}
        for mention in page.mentions:
            mid = mention_id(mention, binding_id, remote_alert_id)
            if mid in rows:
                result.skipped += 1
                continue
            rows[mid] = (
                binding_id,
                mid,
                remote_alert_id,
                mention_url(mention),
                as_string(mention.get("title")),
                mention_text(mention),
                mention_published_at(mention),
                dumps(mention),
            )

        async with self._db.transaction() as conn:
            for params in rows.values():
                inserted = await conn.fetchval(_INSERT_SQL, *params)
                if inserted is None:
                    result.skipped += 1
                else:
                    result.persisted += 1

        logger.debug(
            "Ingested page for binding %s: %d persisted, %d skipped",
            binding_id,
            result.persisted,
            result.skipped,
        )
        return result

    async def count_for_binding(self, binding_id: str) -> int:
        count = await self._db.fetchval(
            "SELECT COUNT(*) FROM remote_mentions WHERE binding_id = $1",
            binding_id,
        )
        return count or 0
