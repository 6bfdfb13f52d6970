"""
Shared fixtures: a scripted DB-API server standing in for pyodbc.

FakeServer answers queries by exact text, optionally per database, and
records every connection string it was asked to open.
"""

from __future__ import annotations

from typing import Any, Callable

import pytest

from sqlbenchaudit.domain.enums import AuthType
from sqlbenchaudit.domain.settings import AuditSettings
from sqlbenchaudit.domain.target import Target
from sqlbenchaudit.infrastructure.sql.check_runner import CheckRunner
from sqlbenchaudit.infrastructure.sql.connection_manager import ConnectionManager


class FakeDriverError(Exception):
    """Plays the role of pyodbc.Error."""


class ResultSet:
    """One result set; ``columns=None`` means a non-tabular set (row count only)."""

    def __init__(self, columns: list[str] | None, rows: list[tuple] | None = None):
        self.columns = columns
        self.rows = rows or []


def rs(columns: list[str] | None, *rows: tuple) -> ResultSet:
    return ResultSet(columns, list(rows))


class FakeCursor:
    def __init__(self, connection: FakeConnection):
        self.connection = connection
        self._sets: list[ResultSet] = []
        self._index = 0
        self.closed = False

    @property
    def description(self):
        if self._index >= len(self._sets):
            return None
        current = self._sets[self._index]
        if current.columns is None:
            return None
        return [(name, str, None, None, None, None, True) for name in current.columns]

    def execute(self, query: str) -> FakeCursor:
        if self.connection.closed:
            raise FakeDriverError("Connection is closed")
        self.connection.server.executed.append((self.connection.database, query))
        self._sets = self.connection.server.answer(self.connection.database, query)
        self._index = 0
        return self

    def fetchall(self) -> list[tuple]:
        return list(self._sets[self._index].rows)

    def nextset(self) -> bool | None:
        self._index += 1
        return True if self._index < len(self._sets) else None

    def close(self) -> None:
        self.closed = True


class FakeConnection:
    def __init__(self, server: FakeServer, database: str, conn_str: str):
        self.server = server
        self.database = database
        self.conn_str = conn_str
        self.closed = False

    def cursor(self) -> FakeCursor:
        return FakeCursor(self)

    def close(self) -> None:
        self.closed = True


class FakeServer:
    """Scripted SQL Server."""

    def __init__(self):
        self._answers: dict[tuple[str | None, str], Any] = {}
        self.refuse: dict[str | None, str] = {}
        self.connections: list[FakeConnection] = []
        self.executed: list[tuple[str, str]] = []

    def respond(self, query: str, *result_sets: ResultSet, database: str | None = None) -> None:
        self._answers[(database, query.strip())] = list(result_sets)

    def fail(self, query: str, message: str = "Invalid object name", database: str | None = None) -> None:
        self._answers[(database, query.strip())] = FakeDriverError(message)

    def refuse_database(self, database: str | None, message: str = "Login failed") -> None:
        """Reject connections to ``database`` (None rejects all)."""
        self.refuse[database] = message

    def answer(self, database: str, query: str) -> list[ResultSet]:
        key = query.strip()
        answer = self._answers.get((database, key), self._answers.get((None, key)))
        if answer is None:
            raise FakeDriverError(f"No scripted answer for query on {database}")
        if isinstance(answer, Exception):
            raise answer
        return answer

    def connect(self, conn_str: str, **kwargs: Any) -> FakeConnection:
        parts = dict(p.split("=", 1) for p in conn_str.split(";") if "=" in p)
        database = parts.get("DATABASE", "")
        for key in (None, database):
            if key in self.refuse:
                raise FakeDriverError(self.refuse[key])
        connection = FakeConnection(self, database, conn_str)
        self.connections.append(connection)
        return connection

    @property
    def open_connections(self) -> list[FakeConnection]:
        return [c for c in self.connections if not c.closed]


@pytest.fixture
def server() -> FakeServer:
    return FakeServer()


@pytest.fixture
def settings(tmp_path) -> AuditSettings:
    return AuditSettings(
        odbc_driver="ODBC Driver 18 for SQL Server",
        output_dir=tmp_path / "reports",
    )


@pytest.fixture
def target() -> Target:
    return Target(host="SQL01", auth_type=AuthType.INTEGRATED)


@pytest.fixture
def make_connections(server, settings) -> Callable[..., ConnectionManager]:
    def factory(target: Target, run_settings: AuditSettings | None = None) -> ConnectionManager:
        return ConnectionManager(
            target,
            run_settings or settings,
            connect=server.connect,
            driver_error=FakeDriverError,
        )

    return factory


@pytest.fixture
def connections(make_connections, target) -> ConnectionManager:
    manager = make_connections(target)
    manager.open()
    yield manager
    manager.close()


@pytest.fixture
def runner(connections) -> CheckRunner:
    return CheckRunner(connections)
