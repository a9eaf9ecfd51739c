"""
PostgreSQL connection pool for the binding store.

Every store mutation runs inside ``transaction()`` so the locking read,
the write and the audit insert commit or roll back together.
"""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import asyncpg

from src.config.settings import get_settings

logger = logging.getLogger(__name__)


def is_unique_violation(exc: BaseException) -> bool:
    """Check whether an exception is a PostgreSQL unique-constraint violation."""
    return isinstance(exc, asyncpg.UniqueViolationError)


class Database:
    """
    Async PostgreSQL pool wrapper.

    Usage:
        db = Database()
        await db.connect()

        async with db.transaction() as conn:
            row = await conn.fetchrow("SELECT * FROM alert_bindings WHERE id = $1 FOR UPDATE", binding_id)
            await conn.execute("UPDATE alert_bindings ...")
            await conn.execute("INSERT INTO audit_log ...")

        await db.close()
    """

    def __init__(
        self,
        database_url: str | None = None,
        min_size: int | None = None,
        max_size: int | None = None,
    ):
        """
        Initialize the pool manager.

        Args:
            database_url: PostgreSQL connection URL (defaults to settings)
            min_size: Minimum pool size
            max_size: Maximum pool size
        """
        settings = get_settings()

        self._database_url = database_url or str(settings.database_url)
        self._min_size = min_size or settings.db_pool_min_size
        self._max_size = max_size or settings.db_pool_max_size

        self._pool: asyncpg.Pool | None = None

    async def connect(self) -> None:
        """Create the connection pool with the configured size limits."""
        try:
            self._pool = await asyncpg.create_pool(
                self._database_url,
                min_size=self._min_size,
                max_size=self._max_size,
                command_timeout=60,
            )
            logger.info(
                f"Binding store connected (pool: {self._min_size}-{self._max_size})"
            )
        except Exception as e:
            logger.error(f"Failed to connect to binding store: {e}")
            raise

    async def close(self) -> None:
        """Close the connection pool."""
        if self._pool:
            await self._pool.close()
            self._pool = None
            logger.info("Binding store connection closed")

    @property
    def pool(self) -> asyncpg.Pool:
        """Get connection pool, raising if not connected."""
        if self._pool is None:
            raise RuntimeError("Database not connected. Call connect() first.")
        return self._pool

    @asynccontextmanager
    async def acquire(self) -> AsyncIterator[asyncpg.Connection]:
        """
        Acquire a connection from the pool.

        Usage:
            async with db.acquire() as conn:
                await conn.execute("...")
        """
        async with self.pool.acquire() as conn:
            yield conn

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[asyncpg.Connection]:
        """
        Yield a connection inside a transaction.

        Read committed is enough: binding writers lock the row with
        ``SELECT ... FOR UPDATE`` before deriving the new state.

        Usage:
            async with db.transaction() as conn:
                row = await conn.fetchrow("SELECT ... FOR UPDATE", ...)
                await conn.execute("UPDATE ...")
        """
        async with self.pool.acquire() as conn:
            async with conn.transaction():
                yield conn

    async def execute(self, query: str, *args: Any) -> str:
        """
        Execute a query without returning results.

        Args:
            query: SQL query
            *args: Query parameters

        Returns:
            Status string from PostgreSQL
        """
        async with self.acquire() as conn:
            return await conn.execute(query, *args)

    async def fetch(self, query: str, *args: Any) -> list[asyncpg.Record]:
        """
        Execute a query and fetch all rows.

        Args:
            query: SQL query
            *args: Query parameters

        Returns:
            List of records
        """
        async with self.acquire() as conn:
            return await conn.fetch(query, *args)

    async def fetchrow(self, query: str, *args: Any) -> asyncpg.Record | None:
        """
        Execute a query and fetch one row.

        Args:
            query: SQL query
            *args: Query parameters

        Returns:
            Single record or None
        """
        async with self.acquire() as conn:
            return await conn.fetchrow(query, *args)

    async def fetchval(self, query: str, *args: Any) -> Any:
        """
        Execute a query and fetch a single value.

        Args:
            query: SQL query
            *args: Query parameters

        Returns:
            First column of the first row
        """
        async with self.acquire() as conn:
            return await conn.fetchval(query, *args)

    async def health_check(self) -> bool:
        """
        Check whether the store answers ``SELECT 1``.

        Returns:
            True if the database is reachable
        """
        try:
            return await self.fetchval("SELECT 1") == 1
        except Exception as e:
            logger.warning(f"Binding store health check failed: {e}")
            return False
