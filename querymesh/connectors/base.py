"""
Base Database Connector

Execution drivers for database sources. A coordinator opens one connector per
query, runs a single already-validated SELECT and closes it again, so a
connector holds at most one live connection.

Subclasses implement:
- _open(): Establish the connection within ``connect_timeout``
- _fetch(): Run one statement, returning (rows, columns)
- _release(): Drop the connection
"""

import logging
import time
from abc import ABC, abstractmethod
from typing import Any

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


class QueryResult(BaseModel):
    """Rows returned by one statement."""

    rows: list[dict[str, Any]]
    row_count: int
    columns: list[str] = Field(default_factory=list)
    execution_time_ms: float = 0.0


class ConnectorError(Exception):
    """Base exception for connector errors."""


class ConnectionError(ConnectorError):
    """The database could not be reached or the connector is closed."""


class QueryError(ConnectorError):
    """The statement failed or hit the statement timeout."""


class BaseConnector(ABC):
    """
    Abstract execution driver for one SQL dialect.

    Usage:
        async with create_connector(database_type="postgresql", **params) as connector:
            result = await connector.execute("SELECT COUNT(*) AS count FROM donations")
    """

    dialect: str = "generic"

    def __init__(
        self,
        host: str,
        port: int,
        database: str,
        user: str,
        password: str,
        timeout: int = 30,
        connect_timeout: int = 10,
        read_only: bool = True,
        **kwargs,
    ):
        """
        Args:
            timeout: Default statement timeout in seconds
            connect_timeout: Connection timeout in seconds
            read_only: Run statements inside a read-only transaction
            **kwargs: Passed through to the driver's connect call
        """
        self.host = host
        self.port = port
        self.database = database
        self.user = user
        self.password = password
        self.timeout = timeout
        self.connect_timeout = connect_timeout
        self.read_only = read_only
        self.kwargs = kwargs
        self._connected = False

    @property
    def is_connected(self) -> bool:
        return self._connected

    async def connect(self) -> None:
        """
        Open the connection. A second call is a no-op.

        Raises:
            ConnectionError: If the database cannot be reached
        """
        if self._connected:
            return
        logger.info(f"Connecting to {self.dialect} source {self._target}")
        try:
            await self._open()
        except ConnectorError:
            raise
        except Exception as e:
            logger.error(f"{self.dialect} connection to {self._target} failed: {e}")
            raise ConnectionError(f"Failed to connect to {self.dialect}: {e}") from e
        self._connected = True

    async def execute(
        self,
        query: str,
        params: list[Any] | None = None,
        timeout: int | None = None,
    ) -> QueryResult:
        """
        Run one statement and collect its rows.

        Raises:
            ConnectionError: If connect() has not been called
            QueryError: If the statement fails or times out
        """
        if not self._connected:
            raise ConnectionError("Not connected to database. Call connect() first.")

        query_timeout = timeout or self.timeout
        started = time.perf_counter()
        try:
            rows, columns = await self._fetch(query, params, query_timeout)
        except ConnectorError:
            raise
        except Exception as e:
            logger.error(f"{self.dialect} query failed: {e}\nQuery: {query[:200]}")
            raise QueryError(f"Query execution failed: {e}") from e

        elapsed_ms = (time.perf_counter() - started) * 1000
        logger.debug(f"{self.dialect} query returned {len(rows)} rows in {elapsed_ms:.1f}ms")
        return QueryResult(
            rows=rows,
            row_count=len(rows),
            columns=columns,
            execution_time_ms=elapsed_ms,
        )

    async def close(self) -> None:
        """Release the connection. Safe to call more than once."""
        if not self._connected:
            return
        self._connected = False
        try:
            await self._release()
        except Exception as e:
            logger.warning(f"Error closing {self.dialect} connection to {self._target}: {e}")

    @abstractmethod
    async def _open(self) -> None: ...

    @abstractmethod
    async def _fetch(
        self, query: str, params: list[Any] | None, timeout: int
    ) -> tuple[list[dict[str, Any]], list[str]]: ...

    @abstractmethod
    async def _release(self) -> None: ...

    @property
    def _target(self) -> str:
        return f"{self.user}@{self.host}:{self.port}/{self.database}"

    async def __aenter__(self):
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
        return False

    def __repr__(self) -> str:
        status = "connected" if self._connected else "disconnected"
        return f"<{self.__class__.__name__} {self._target} ({status})>"
