"""
Database inventory: every database on the target with its principal count.
"""

from __future__ import annotations

import logging

from sqlbenchaudit.domain.checks import ResultTable
from sqlbenchaudit.domain.databases import DatabaseInfo
from sqlbenchaudit.errors import QueryError
from sqlbenchaudit.infrastructure.sql.check_runner import CheckRunner
from sqlbenchaudit.infrastructure.sql.query_provider import QueryProvider

logger = logging.getLogger(__name__)

INVENTORY_COLUMNS = ["Database", "Created", "State", "Users", "Notes"]


class DatabaseInventory:
    """
    Lists databases and counts principals in each one.

    Counting requires binding the connection to each database in turn. All
    of that happens inside one ``database_scope`` so the connection is back
    on its original database afterwards, whatever failed in between.
    """

    def __init__(self, runner: CheckRunner, query_provider: QueryProvider | None = None):
        self.runner = runner
        self.conn = runner.connections
        self.prov = query_provider or QueryProvider()

    def collect(self) -> list[DatabaseInfo]:
        """
        Returns:
            One DatabaseInfo per database, in server order

        Raises:
            QueryError: The database list itself could not be read
            SqlConnectionError: Rebinding to a database failed
        """
        listing = self.runner.run(self.prov.get_databases())
        databases = [
            DatabaseInfo(
                name=row.get("DatabaseName") or "",
                created=row.get("CreateDate"),
                state=row.get("State") or "ONLINE",
            )
            for row in listing.rows
        ]
        logger.info("Found %d databases", len(databases))

        with self.conn.database_scope():
            for db in databases:
                if not db.is_online:
                    db.notes = f"Skipped: database is {db.state}"
                    continue
                self.conn.rebind(db.name)
                db.user_count = self._count_principals(db)

        return databases

    def _count_principals(self, db: DatabaseInfo) -> int | None:
        try:
            count = self.runner.scalar(self.prov.get_database_principal_count())
        except QueryError as e:
            logger.warning("Principal count failed for %s: %s", db.name, e.detail)
            db.notes = f"Count failed: {e.detail}"
            return None
        logger.debug("Database %s has %s principals", db.name, count)
        return int(count or 0)

    @staticmethod
    def as_table(databases: list[DatabaseInfo]) -> ResultTable:
        """Report layout of the inventory."""
        return ResultTable(
            list(INVENTORY_COLUMNS),
            [
                {
                    "Database": db.name,
                    "Created": db.created,
                    "State": db.state,
                    "Users": db.user_count,
                    "Notes": db.notes,
                }
                for db in databases
            ],
        )
