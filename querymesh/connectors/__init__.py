"""
Database Connectors Module

Relational execution drivers behind one async adapter interface.

Available Connectors:
    - BaseConnector: Abstract base class
    - PostgresConnector: PostgreSQL connector (asyncpg)
    - MySQLConnector: MySQL connector (mysql-connector-python)
"""

from querymesh.connectors.base import (
    BaseConnector,
    ConnectionError,
    ConnectorError,
    QueryError,
    QueryResult,
)
from querymesh.connectors.factory import (
    SUPPORTED_DIALECTS,
    connection_params_from_config,
    create_connector,
    infer_database_type,
    resolve_database_type,
)
from querymesh.connectors.mysql import MySQLConnector
from querymesh.connectors.postgres import PostgresConnector

__all__ = [
    "BaseConnector",
    "PostgresConnector",
    "MySQLConnector",
    "SUPPORTED_DIALECTS",
    "connection_params_from_config",
    "create_connector",
    "infer_database_type",
    "resolve_database_type",
    "QueryResult",
    "ConnectorError",
    "ConnectionError",
    "QueryError",
]
