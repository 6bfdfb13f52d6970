"""
SQL Server infrastructure package.

Provides the connection manager, query execution and pipeline queries.
"""

from sqlbenchaudit.infrastructure.sql.check_runner import CheckRunner
from sqlbenchaudit.infrastructure.sql.connection_manager import ConnectionManager
from sqlbenchaudit.infrastructure.sql.query_provider import QueryProvider

__all__ = [
    "CheckRunner",
    "ConnectionManager",
    "QueryProvider",
]
