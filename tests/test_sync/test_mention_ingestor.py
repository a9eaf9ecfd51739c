"""Tests for MentionIngestor with a mocked Database."""

from contextlib import asynccontextmanager
from unittest.mock import AsyncMock

import pytest

from src.awario.schemas import MentionsPage
from src.sync.ingestion import MentionIngestor


@pytest.fixture
def mock_conn():
    return AsyncMock()


@pytest.fixture
def mock_db(mock_conn):
    db = AsyncMock()

    @asynccontextmanager
    async def transaction():
        yield mock_conn

    db.transaction = transaction
    return db


@pytest.fixture
def ingestor(mock_db):
    return MentionIngestor(mock_db)


class TestIngest:

    @pytest.mark.asyncio
    async def test_new_and_stored_mentions(self, ingestor, mock_conn):
        mock_conn.fetchval.side_effect = ["m1", None]
        page = MentionsPage(mentions=[
            {"id": "m1", "url": "https://example.com/1", "text": "acme rocks"},
            {"id": "m2", "title": "Seen before"},
        ])

        result = await ingestor.ingest("b-1", page, remote_alert_id="A1")

        assert (result.persisted, result.skipped) == (1, 1)
        sql, *params = mock_conn.fetchval.call_args_list[0].args
        assert "ON CONFLICT (binding_id, mention_id) DO NOTHING" in sql
        assert params[:5] == ["b-1", "m1", "A1", "https://example.com/1", None]
        assert params[5] == "acme rocks"

    @pytest.mark.asyncio
    async def test_duplicates_within_page_skipped(self, ingestor, mock_conn):
        mock_conn.fetchval.return_value = "m1"
        page = MentionsPage(mentions=[{"id": "m1"}, {"id": "m1"}])

        result = await ingestor.ingest("b-1", page, remote_alert_id="A1")

        assert (result.persisted, result.skipped) == (1, 1)
        assert mock_conn.fetchval.await_count == 1

    @pytest.mark.asyncio
    async def test_missing_ids_get_stable_fallback(self, ingestor, mock_conn):
        mock_conn.fetchval.return_value = "x"
        mention = {"url": "https://example.com/post", "text": "acme", "published_at": "2026-03-01T10:00:00Z"}

        await ingestor.ingest("b-1", MentionsPage(mentions=[mention]), remote_alert_id="A1")
        await ingestor.ingest("b-1", MentionsPage(mentions=[dict(mention)]), remote_alert_id="A1")

        first, second = (c.args[2] for c in mock_conn.fetchval.call_args_list)
        assert first == second
        assert first.startswith("A1:fallback:")

    @pytest.mark.asyncio
    async def test_empty_page_touches_nothing(self, ingestor, mock_conn):
        result = await ingestor.ingest("b-1", MentionsPage(), remote_alert_id="A1")

        assert (result.persisted, result.skipped) == (0, 0)
        mock_conn.fetchval.assert_not_called()


class TestCount:

    @pytest.mark.asyncio
    async def test_count_defaults_to_zero(self, ingestor, mock_db):
        mock_db.fetchval.return_value = None
        assert await ingestor.count_for_binding("b-1") == 0
