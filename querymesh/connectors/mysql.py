"""
MySQL Connector

mysql-connector-python is synchronous, so connect and every statement run in a
worker thread via asyncio.to_thread. The connection opened by connect() is the
one statements run on.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import mysql.connector

from querymesh.connectors.base import BaseConnector

logger = logging.getLogger(__name__)


class MySQLConnector(BaseConnector):
    dialect = "mysql"

    def __init__(
        self,
        host: str,
        port: int = 3306,
        database: str = "",
        user: str = "root",
        password: str = "",
        **kwargs,
    ) -> None:
        super().__init__(host=host, port=port, database=database, user=user, password=password, **kwargs)
        self._conn = None

    async def _open(self) -> None:
        pending = asyncio.ensure_future(
            asyncio.to_thread(
                mysql.connector.connect,
                host=self.host,
                port=self.port,
                database=self.database or None,
                user=self.user,
                password=self.password,
                connection_timeout=self.connect_timeout,
                autocommit=True,
                **self.kwargs,
            )
        )
        try:
            self._conn = await asyncio.shield(pending)
        except asyncio.CancelledError:
            # the worker thread keeps connecting after cancellation
            await self._close_orphan(pending)
            raise

    async def _close_orphan(self, pending: asyncio.Future) -> None:
        try:
            conn = await pending
        except Exception as e:
            logger.debug(f"Abandoned mysql connect to {self._target} failed: {e}")
            return
        logger.info(f"Closing mysql connection to {self._target} opened after cancellation")
        await asyncio.to_thread(conn.close)

    async def _fetch(
        self, query: str, params: list[Any] | None, timeout: int
    ) -> tuple[list[dict[str, Any]], list[str]]:
        return await asyncio.to_thread(self._fetch_sync, query, params, timeout)

    def _fetch_sync(
        self, query: str, params: list[Any] | None, timeout: int
    ) -> tuple[list[dict[str, Any]], list[str]]:
        cursor = self._conn.cursor(dictionary=True)
        try:
            # MAX_EXECUTION_TIME is in milliseconds and applies to SELECT only
            cursor.execute(f"SET SESSION MAX_EXECUTION_TIME = {int(timeout * 1000)}")
            if self.read_only:
                cursor.execute("SET SESSION TRANSACTION READ ONLY")
            cursor.execute(query, tuple(params) if params else None)
            if not cursor.with_rows:
                return [], []
            rows = cursor.fetchall()
            columns = [col[0] for col in cursor.description or []]
            return rows, columns
        finally:
            cursor.close()

    async def _release(self) -> None:
        conn, self._conn = self._conn, None
        if conn is not None:
            await asyncio.to_thread(conn.close)
