"""
Authorization matrix: one sparse, sorted table of who can do what.

Each source fetches one kind of evidence (principals, role membership,
permission grants), filters identities, and contributes rows that fill only
the fields it knows. Sources run in a fixed order; adding a source never
changes the row shape.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Iterable, Sequence

from sqlbenchaudit.domain.authorization import (
    AuthorizationRow,
    IdentityFilter,
    LoginMapping,
    sort_rows,
)
from sqlbenchaudit.domain.checks import ResultTable
from sqlbenchaudit.errors import QueryError
from sqlbenchaudit.infrastructure.sql.check_runner import CheckRunner
from sqlbenchaudit.infrastructure.sql.query_provider import QueryProvider

logger = logging.getLogger(__name__)

# Principal types that group identities rather than being one
ROLE_PRINCIPAL_TYPES = frozenset({"SERVER_ROLE", "DATABASE_ROLE"})


@dataclass
class SourceContext:
    """Shared state handed to every matrix source."""

    runner: CheckRunner
    query_provider: QueryProvider
    server_name: str


@dataclass
class SourceFailure:
    """A source (or one database of a source) that could not be read."""

    source: str
    detail: str
    database: str | None = None

    def describe(self) -> str:
        where = f"{self.source} ({self.database})" if self.database else self.source
        return f"{where}: {self.detail}"


class MatrixSource(ABC):
    """
    One contributor to the authorization matrix.

    Subclasses fetch raw records, name the identity each record is about,
    and turn a surviving record into a sparse row.
    """

    name: str = "source"

    def __init__(self, context: SourceContext) -> None:
        self.ctx = context
        self.runner = context.runner
        self.prov = context.query_provider
        self.failures: list[SourceFailure] = []

    @abstractmethod
    def fetch(self) -> Iterable[dict[str, Any]]:
        """Raw records; a QueryError here fails the whole source."""

    @abstractmethod
    def identity(self, record: dict[str, Any]) -> str | None:
        """Name the exclusion filter is applied to."""

    @abstractmethod
    def to_row(self, record: dict[str, Any]) -> AuthorizationRow:
        """Sparse row for one record that passed the filter."""

    def is_role(self, record: dict[str, Any]) -> bool:
        """True when the record is about a role, not an identity."""
        return False


class ServerPrincipalSource(MatrixSource):
    """Seed rows: every server-level principal except roles."""

    name = "Server principals"

    def fetch(self) -> Iterable[dict[str, Any]]:
        return self.runner.run(self.prov.get_server_principals()).rows

    def identity(self, record: dict[str, Any]) -> str | None:
        return record.get("LoginName")

    def to_row(self, record: dict[str, Any]) -> AuthorizationRow:
        return AuthorizationRow(
            login_name=record.get("LoginName"),
            server_name=record.get("ServerName") or self.ctx.server_name,
            login_type=record.get("LoginType"),
            notes="Disabled" if record.get("IsDisabled") else None,
        )


class ServerRoleMemberSource(MatrixSource):
    """Fixed and user-defined server role membership."""

    name = "Server role members"

    def fetch(self) -> Iterable[dict[str, Any]]:
        return self.runner.run(self.prov.get_server_role_members()).rows

    def identity(self, record: dict[str, Any]) -> str | None:
        return record.get("MemberName")

    def is_role(self, record: dict[str, Any]) -> bool:
        return record.get("MemberType") in ROLE_PRINCIPAL_TYPES

    def to_row(self, record: dict[str, Any]) -> AuthorizationRow:
        return AuthorizationRow(
            login_name=record.get("MemberName"),
            server_name=record.get("ServerName") or self.ctx.server_name,
            login_type=record.get("MemberType"),
            srv_role_name=record.get("RoleName"),
        )


class ServerPermissionSource(MatrixSource):
    """Explicit GRANT/DENY at server scope (server, endpoints, logins)."""

    name = "Server permissions"

    def fetch(self) -> Iterable[dict[str, Any]]:
        return self.runner.run(self.prov.get_server_permissions()).rows

    def identity(self, record: dict[str, Any]) -> str | None:
        return record.get("LoginName")

    def to_row(self, record: dict[str, Any]) -> AuthorizationRow:
        return AuthorizationRow(
            login_name=record.get("LoginName"),
            server_name=record.get("ServerName") or self.ctx.server_name,
            login_type=record.get("LoginType"),
            srv_object_type=record.get("ObjectType"),
            srv_object_name=record.get("ObjectName"),
            srv_permission_name=record.get("PermissionName"),
            srv_permission_state=record.get("PermissionState"),
        )


class DatabaseSource(MatrixSource):
    """
    Base for sources that read every accessible database.

    Queries use three-part names, so the connection stays where it is. A
    database that cannot be read is recorded and skipped.
    """

    def databases(self) -> list[str]:
        listing = self.runner.run(self.prov.get_accessible_databases())
        return [r["DatabaseName"] for r in listing.rows if r.get("DatabaseName")]

    @abstractmethod
    def query_for(self, database: str) -> str:
        """Query returning this source's records for ``database``."""

    def fetch(self) -> Iterable[dict[str, Any]]:
        records: list[dict[str, Any]] = []
        for database in self.databases():
            try:
                table = self.runner.run(self.query_for(database))
            except QueryError as e:
                logger.warning("%s: skipping database %s: %s", self.name, database, e.detail)
                self.failures.append(SourceFailure(self.name, e.detail, database))
                continue
            for row in table.rows:
                row.setdefault("DatabaseName", database)
                records.append(row)
        return records

    def identity(self, record: dict[str, Any]) -> str | None:
        # Users without a login are judged by their own name
        return record.get("LoginName") or record.get("UserName")

    def is_role(self, record: dict[str, Any]) -> bool:
        return record.get("UserType") in ROLE_PRINCIPAL_TYPES

    def _login_fields(self, record: dict[str, Any]) -> dict[str, Any]:
        login = record.get("LoginName")
        return {
            "login_name": login or record.get("UserName"),
            "server_name": self.ctx.server_name,
            "login_type": record.get("LoginType") or record.get("UserType"),
            "db_name": record.get("DatabaseName"),
            "db_user_name": record.get("UserName"),
            "notes": None if login else "Database user without server login",
        }


class DatabaseRoleMemberSource(DatabaseSource):
    """Database role membership in every accessible database."""

    name = "Database role members"

    def query_for(self, database: str) -> str:
        return self.prov.get_database_role_members(database)

    def to_row(self, record: dict[str, Any]) -> AuthorizationRow:
        return AuthorizationRow(
            db_role_name=record.get("RoleName"),
            **self._login_fields(record),
        )


class DatabasePermissionSource(DatabaseSource):
    """Explicit GRANT/DENY at database, schema and object scope."""

    name = "Database permissions"

    def query_for(self, database: str) -> str:
        return self.prov.get_database_permissions(database)

    def to_row(self, record: dict[str, Any]) -> AuthorizationRow:
        return AuthorizationRow(
            db_schema_name=record.get("SchemaName"),
            db_object_name=record.get("ObjectName"),
            db_object_type=record.get("ObjectType"),
            db_permission_name=record.get("PermissionName"),
            db_permission_state=record.get("PermissionState"),
            **self._login_fields(record),
        )


DEFAULT_SOURCES: tuple[type[MatrixSource], ...] = (
    ServerPrincipalSource,
    ServerRoleMemberSource,
    ServerPermissionSource,
    DatabaseRoleMemberSource,
    DatabasePermissionSource,
)

MAPPING_COLUMNS = ["LoginName", "DBName", "UserName", "AliasName"]


class AuthorizationMatrixBuilder:
    """
    Folds all sources into one sorted list of AuthorizationRow.

    Usage:
        builder = AuthorizationMatrixBuilder(runner, server_name="SQL01")
        rows = builder.build()
        mappings = builder.login_mappings()
    """

    def __init__(
        self,
        runner: CheckRunner,
        server_name: str,
        identity_filter: IdentityFilter | None = None,
        query_provider: QueryProvider | None = None,
        sources: Sequence[type[MatrixSource]] = DEFAULT_SOURCES,
    ) -> None:
        self.runner = runner
        self.filter = identity_filter or IdentityFilter()
        self.ctx = SourceContext(
            runner=runner,
            query_provider=query_provider or QueryProvider(),
            server_name=server_name,
        )
        self.source_types = tuple(sources)
        self.rows: list[AuthorizationRow] = []
        self.mappings: list[LoginMapping] = []
        self.failures: list[SourceFailure] = []

    def build(self) -> list[AuthorizationRow]:
        """
        Run every stage in order and return the sorted matrix.

        Stages: seed identities, login/user mapping (side table only), then
        each remaining source. Sorting happens once, after all sources.
        """
        self.rows = []
        self.failures = []

        sources = [source_type(self.ctx) for source_type in self.source_types]
        if sources:
            self._contribute(sources[0])
        self.mappings = self._collect_login_mappings()
        for source in sources[1:]:
            self._contribute(source)

        self.rows[:] = sort_rows(self.rows)
        logger.info(
            "Authorization matrix built: %d rows, %d source failure(s)",
            len(self.rows), len(self.failures),
        )
        return self.rows

    def _contribute(self, source: MatrixSource) -> None:
        try:
            records = list(source.fetch())
        except QueryError as e:
            logger.warning("Matrix source '%s' failed: %s", source.name, e.detail)
            self.failures.extend(source.failures)
            self.failures.append(SourceFailure(source.name, e.detail))
            return
        self.failures.extend(source.failures)

        added = skipped = 0
        for record in records:
            if source.is_role(record) or self.filter.is_excluded(source.identity(record)):
                skipped += 1
                continue
            self.rows.append(source.to_row(record))
            added += 1
        logger.info("Matrix source '%s': %d rows added, %d excluded", source.name, added, skipped)

    def _collect_login_mappings(self) -> list[LoginMapping]:
        """Flatten the multi-result login mapping report."""
        try:
            tables = self.runner.run_all(self.ctx.query_provider.get_login_mappings())
        except QueryError as e:
            logger.warning("Login mapping failed: %s", e.detail)
            self.failures.append(SourceFailure("Login mappings", e.detail))
            return []

        mappings = []
        for table in tables:
            for row in table.rows:
                login = row.get("LoginName")
                if self.filter.is_excluded(login):
                    continue
                mappings.append(
                    LoginMapping(
                        login_name=login,
                        db_name=row.get("DBName"),
                        user_name=row.get("UserName"),
                        alias_name=row.get("AliasName"),
                    )
                )
        logger.info("Login mappings: %d entries from %d result sets", len(mappings), len(tables))
        return mappings

    def login_mappings(self) -> list[LoginMapping]:
        return list(self.mappings)

    def matrix_table(self) -> ResultTable:
        """Report layout of the matrix."""
        return ResultTable(AuthorizationRow.column_names(), [r.as_dict() for r in self.rows])

    def mapping_table(self) -> ResultTable:
        return ResultTable(list(MAPPING_COLUMNS), [m.as_dict() for m in self.mappings])
