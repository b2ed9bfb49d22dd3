"""Connector factory for supported SQL dialects."""

from __future__ import annotations

from typing import Any
from urllib.parse import urlparse

from querymesh.connectors.base import BaseConnector
from querymesh.connectors.mysql import MySQLConnector
from querymesh.connectors.postgres import PostgresConnector

_POSTGRES_SCHEMES = {"postgres", "postgresql"}
_MYSQL_SCHEMES = {"mysql"}

SUPPORTED_DIALECTS = ("postgresql", "mysql")


def infer_database_type(database_url: str) -> str:
    """Infer logical database type from connection URL scheme."""
    parsed = _parse_url(database_url)
    scheme = parsed.scheme.split("+")[0].lower()
    if scheme in _POSTGRES_SCHEMES:
        return "postgresql"
    if scheme in _MYSQL_SCHEMES:
        return "mysql"
    raise ValueError(f"Unsupported database URL scheme: {parsed.scheme}")


def resolve_database_type(database_type: str | None, database_url: str | None = None) -> str:
    """Resolve target database type from explicit type or URL."""
    if database_type:
        value = database_type.strip().lower()
        if value in {"postgres", "postgresql"}:
            return "postgresql"
        if value == "mysql":
            return "mysql"
        raise ValueError(f"Unsupported database type: {database_type}")
    if database_url:
        return infer_database_type(database_url)
    raise ValueError("Either database_type or database_url is required.")


def connection_params_from_config(config: dict[str, Any]) -> dict[str, Any]:
    """
    Normalize a decrypted connection config into connector keyword arguments.

    Accepts either a ``url`` entry or discrete host/port/database/username
    fields.
    """
    if config.get("url"):
        parsed = _parse_url(str(config["url"]))
        if not parsed.hostname:
            raise ValueError("Invalid database URL: host is required.")
        return {
            "host": parsed.hostname,
            "port": parsed.port,
            "database": parsed.path.lstrip("/") or None,
            "user": parsed.username,
            "password": parsed.password or config.get("password") or "",
        }

    if not config.get("host"):
        raise ValueError("Connection config is missing a host.")
    port = config.get("port")
    return {
        "host": str(config["host"]),
        "port": int(port) if port not in (None, "") else None,
        "database": config.get("database"),
        "user": config.get("username") or config.get("user"),
        "password": config.get("password") or "",
    }


def create_connector(
    *,
    database_type: str | None = None,
    database_url: str | None = None,
    host: str | None = None,
    port: int | None = None,
    database: str | None = None,
    user: str | None = None,
    password: str = "",
    read_only: bool = True,
    timeout: int = 30,
    connect_timeout: int = 10,
    **kwargs,
) -> BaseConnector:
    """Create a typed connector from a URL or discrete connection parameters."""
    if database_url:
        parsed = _parse_url(database_url)
        if not parsed.hostname:
            raise ValueError("Invalid database URL: host is required.")
        host = parsed.hostname
        port = parsed.port or port
        database = parsed.path.lstrip("/") or database
        user = parsed.username or user
        password = parsed.password or password
    if not host:
        raise ValueError("A database host is required.")

    target_type = resolve_database_type(database_type, database_url)

    if target_type == "postgresql":
        return PostgresConnector(
            host=host,
            port=port or 5432,
            database=database or "postgres",
            user=user or "postgres",
            password=password or "",
            read_only=read_only,
            timeout=timeout,
            connect_timeout=connect_timeout,
            **kwargs,
        )

    return MySQLConnector(
        host=host,
        port=port or 3306,
        database=database or "",
        user=user or "root",
        password=password or "",
        read_only=read_only,
        timeout=timeout,
        connect_timeout=connect_timeout,
        **kwargs,
    )


def _parse_url(database_url: str):
    normalized = database_url.replace("postgresql+asyncpg://", "postgresql://")
    return urlparse(normalized)
