"""
Query execution against the live connection.

Turns DB-API cursors into ResultTable values and driver failures into
QueryError. A failed query never closes the connection.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, time
from decimal import Decimal
from typing import Any

from sqlbenchaudit.domain.checks import ResultTable
from sqlbenchaudit.errors import QueryError
from sqlbenchaudit.infrastructure.sql.connection_manager import ConnectionManager

logger = logging.getLogger(__name__)

_PLAIN_TYPES = (str, int, float, bool, datetime, date, time)


def normalize_value(value: Any) -> Any:
    """Keep plain values, render the rest as text."""
    if value is None or isinstance(value, _PLAIN_TYPES):
        return value
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    if isinstance(value, (bytes, bytearray, memoryview)):
        return "0x" + bytes(value).hex().upper()
    return str(value)


class CheckRunner:
    """Runs one query at a time on the ConnectionManager's connection."""

    def __init__(self, connections: ConnectionManager):
        self.connections = connections

    def run(self, query: str, multi_result: bool = False) -> ResultTable | list[ResultTable]:
        """
        Execute ``query``.

        Args:
            query: T-SQL text
            multi_result: Return every result set instead of the first one

        Returns:
            The first tabular result set (an empty table when the query
            returns none), or the ordered list of all of them.

        Raises:
            QueryError: The driver rejected or failed the query
        """
        tables = self._execute(query, stop_after_first=not multi_result)
        if multi_result:
            return tables
        return tables[0] if tables else ResultTable()

    def run_all(self, query: str) -> list[ResultTable]:
        """Every tabular result set of ``query``."""
        return self._execute(query, stop_after_first=False)

    def scalar(self, query: str) -> Any:
        """
        Execute query and return single scalar value.

        Returns:
            Single value from first row, first column, or None
        """
        table = self._execute(query, stop_after_first=True)
        if not table or not table[0].rows:
            return None
        first = table[0]
        return first.rows[0].get(first.columns[0])

    def _execute(self, query: str, stop_after_first: bool) -> list[ResultTable]:
        conn = self.connections.connection
        cursor = None
        try:
            cursor = conn.cursor()
            cursor.execute(query)
            tables = []
            while True:
                if cursor.description:
                    tables.append(self._read_table(cursor))
                    if stop_after_first:
                        break
                if not cursor.nextset():
                    break
        except self.connections.driver_error as e:
            logger.warning("Query failed on %s: %s", self.connections.active_database, e)
            raise QueryError(query, str(e)) from e
        finally:
            if cursor is not None:
                self._close_cursor(cursor)

        logger.debug(
            "Query returned %d result set(s), %d row(s)",
            len(tables), sum(len(t) for t in tables),
        )
        return tables

    @staticmethod
    def _read_table(cursor) -> ResultTable:
        columns = [column[0] for column in cursor.description]
        rows = []
        for raw in cursor.fetchall():
            rows.append({col: normalize_value(raw[i]) for i, col in enumerate(columns)})
        return ResultTable(columns, rows)

    def _close_cursor(self, cursor) -> None:
        try:
            cursor.close()
        except self.connections.driver_error as e:
            logger.debug("Ignoring error while closing cursor: %s", e)
