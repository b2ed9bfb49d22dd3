"""
PostgreSQL Connector

asyncpg driver. Each statement runs in its own transaction (read-only unless
disabled) with ``SET LOCAL statement_timeout`` so the limit cannot leak into
later statements on the same connection.

Usage:
    async with PostgresConnector(host="localhost", port=5432, database="charity",
                                 user="analyst", password="secret") as connector:
        result = await connector.execute("SELECT city, COUNT(*) FROM donations GROUP BY city")
"""

import logging
from typing import Any

import asyncpg

from querymesh.connectors.base import BaseConnector, QueryError

logger = logging.getLogger(__name__)


class PostgresConnector(BaseConnector):
    dialect = "postgresql"

    _conn: asyncpg.Connection | None = None

    async def _open(self) -> None:
        self._conn = await asyncpg.connect(
            host=self.host,
            port=self.port,
            database=self.database,
            user=self.user,
            password=self.password,
            timeout=self.connect_timeout,
            command_timeout=self.timeout,
            **self.kwargs,
        )

    async def _fetch(
        self, query: str, params: list[Any] | None, timeout: int
    ) -> tuple[list[dict[str, Any]], list[str]]:
        try:
            async with self._conn.transaction(readonly=self.read_only):
                await self._conn.execute(f"SET LOCAL statement_timeout = {int(timeout * 1000)}")
                records = await self._conn.fetch(query, *(params or []), timeout=timeout)
        except asyncpg.QueryCanceledError as e:
            logger.warning(f"PostgreSQL statement cancelled after {timeout}s: {query[:100]}")
            raise QueryError(f"Query timeout ({timeout}s)") from e
        except asyncpg.ReadOnlySQLTransactionError as e:
            raise QueryError(f"Statement attempted a write: {e}") from e

        rows = [dict(record) for record in records]
        columns = list(records[0].keys()) if records else []
        return rows, columns

    async def _release(self) -> None:
        conn, self._conn = self._conn, None
        if conn is not None:
            await conn.close()
