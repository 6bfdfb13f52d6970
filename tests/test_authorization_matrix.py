"""
Tests for the authorization matrix: identity exclusion, source ordering,
failure isolation and the deterministic sort.
"""

import pytest

from sqlbenchaudit.application.authorization_matrix import (
    AuthorizationMatrixBuilder,
    ServerPrincipalSource,
)
from sqlbenchaudit.domain.authorization import (
    AuthorizationRow,
    IdentityFilter,
    SORT_KEY_FIELDS,
    sort_rows,
)
from sqlbenchaudit.infrastructure.sql.query_provider import QueryProvider

from conftest import rs

PROV = QueryProvider()

PRINCIPAL_COLUMNS = ["LoginName", "LoginType", "ServerName", "IsDisabled", "CreateDate", "ModifyDate"]
ROLE_MEMBER_COLUMNS = ["RoleName", "MemberName", "MemberType", "ServerName", "CreateDate", "ModifyDate"]
SERVER_PERMISSION_COLUMNS = [
    "LoginName", "LoginType", "ServerName", "ObjectType", "ObjectName", "PermissionName", "PermissionState",
]
DB_ROLE_COLUMNS = ["DatabaseName", "RoleName", "UserName", "UserType", "LoginName", "LoginType"]
DB_PERMISSION_COLUMNS = [
    "DatabaseName", "UserName", "UserType", "LoginName", "LoginType", "ObjectClass",
    "SchemaName", "ObjectName", "ObjectType", "PermissionName", "PermissionState",
]
MAPPING_COLUMNS = ["LoginName", "DBName", "UserName", "AliasName"]


def _principal(name, login_type="SQL_LOGIN", disabled=0):
    return (name, login_type, "SQL01", disabled, None, None)


def script_empty_server(server, databases=()):
    """Every matrix query answers with an empty (but well-formed) result."""
    server.respond(PROV.get_server_principals(), rs(PRINCIPAL_COLUMNS))
    server.respond(PROV.get_login_mappings(), rs(None))
    server.respond(PROV.get_server_role_members(), rs(ROLE_MEMBER_COLUMNS))
    server.respond(PROV.get_server_permissions(), rs(SERVER_PERMISSION_COLUMNS))
    server.respond(PROV.get_accessible_databases(), rs(["DatabaseName"], *[(d,) for d in databases]))
    for db in databases:
        server.respond(PROV.get_database_role_members(db), rs(DB_ROLE_COLUMNS))
        server.respond(PROV.get_database_permissions(db), rs(DB_PERMISSION_COLUMNS))


class TestIdentityFilter:
    """Exclusion rules."""

    @pytest.mark.parametrize("name", [
        "sa",
        "##MS_PolicyEventProcessingLogin##",
        "NT SERVICE\\MSSQLSERVER",
        "nt service\\SQLSERVERAGENT",
        "NT AUTHORITY\\SYSTEM",
    ])
    def test_excluded(self, name):
        """Test the administrative account and system prefixes are excluded."""
        assert IdentityFilter().is_excluded(name)

    @pytest.mark.parametrize("name", ["CORP\\svcacct", "sa_backup", "app_user", "", None])
    def test_allowed(self, name):
        """Test ordinary identities pass the filter."""
        assert IdentityFilter().allows(name)

    def test_custom_admin_account(self):
        """Test the account and prefixes can be configured."""
        rules = IdentityFilter(admin_account="dbadmin", prefixes=["CORP\\"])

        assert rules.is_excluded("dbadmin")
        assert rules.is_excluded("corp\\someone")
        assert not rules.is_excluded("sa")


class TestSortRows:
    """Deterministic ordering."""

    def test_empty_values_sort_first(self):
        """Test empty fields sort before filled ones."""
        rows = [
            AuthorizationRow(login_name="bob", db_name="Sales"),
            AuthorizationRow(login_name="bob"),
            AuthorizationRow(login_name="bob", db_name=""),
            AuthorizationRow(login_name="alice", db_name="HR"),
        ]

        ordered = sort_rows(rows)

        assert ordered[0].login_name == "alice"
        assert [r.db_name for r in ordered[1:]] == [None, "", "Sales"]

    def test_sort_is_idempotent(self):
        """Test sorting sorted rows changes nothing."""
        rows = [
            AuthorizationRow(login_name="zed", srv_role_name="sysadmin"),
            AuthorizationRow(login_name="Amy", db_name="HR", db_role_name="db_owner"),
            AuthorizationRow(login_name="amy", db_name="HR"),
            AuthorizationRow(login_name="bob", srv_permission_name="CONNECT SQL"),
        ]

        once = sort_rows(rows)

        assert sort_rows(once) == once

    def test_key_covers_every_sort_field(self):
        """Test the sort key has one component per sort field."""
        assert len(AuthorizationRow().sort_key()) == len(SORT_KEY_FIELDS)
        assert set(SORT_KEY_FIELDS) <= set(AuthorizationRow.column_names())


class TestAuthorizationMatrixBuilder:
    """Building the matrix from the scripted server."""

    def test_seed_excludes_admin_and_internal_accounts(self, runner, server):
        """Test only the CORP service account survives the seed stage."""
        script_empty_server(server)
        server.respond(
            PROV.get_server_principals(),
            rs(PRINCIPAL_COLUMNS, _principal("sa"), _principal("CORP\\svcacct", "WINDOWS_LOGIN"),
               _principal("##MS_PolicyEventProcessingLogin##", "CERTIFICATE_MAPPED_LOGIN")),
        )

        rows = AuthorizationMatrixBuilder(runner, server_name="SQL01").build()

        assert [r.login_name for r in rows] == ["CORP\\svcacct"]
        assert rows[0].login_type == "WINDOWS_LOGIN"
        assert rows[0].server_name == "SQL01"

    def test_no_excluded_identity_in_any_source(self, runner, server):
        """Test excluded identities are dropped from every source."""
        script_empty_server(server, databases=["Sales"])
        server.respond(
            PROV.get_server_role_members(),
            rs(ROLE_MEMBER_COLUMNS,
               ("sysadmin", "sa", "SQL_LOGIN", "SQL01", None, None),
               ("sysadmin", "NT SERVICE\\SQLWriter", "WINDOWS_LOGIN", "SQL01", None, None),
               ("sysadmin", "CORP\\dba", "WINDOWS_LOGIN", "SQL01", None, None)),
        )
        server.respond(
            PROV.get_database_role_members("Sales"),
            rs(DB_ROLE_COLUMNS,
               ("Sales", "db_owner", "dbo", "SQL_USER", "sa", "SQL_LOGIN"),
               ("Sales", "db_datareader", "report", "SQL_USER", "report_login", "SQL_LOGIN")),
        )

        builder = AuthorizationMatrixBuilder(runner, server_name="SQL01")
        rows = builder.build()

        rules = IdentityFilter()
        assert all(rules.allows(r.login_name) for r in rows)
        assert {(r.login_name, r.srv_role_name, r.db_role_name) for r in rows} == {
            ("CORP\\dba", "sysadmin", None),
            ("report_login", None, "db_datareader"),
        }

    def test_rows_are_sparse(self, runner, server):
        """Each source fills only the fields it knows."""
        script_empty_server(server, databases=["Sales"])
        server.respond(
            PROV.get_server_permissions(),
            rs(SERVER_PERMISSION_COLUMNS,
               ("app", "SQL_LOGIN", "SQL01", "SERVER", "SQL01", "VIEW SERVER STATE", "GRANT")),
        )
        server.respond(
            PROV.get_database_permissions("Sales"),
            rs(DB_PERMISSION_COLUMNS,
               ("Sales", "app", "SQL_USER", "app", "SQL_LOGIN", "OBJECT_OR_COLUMN",
                "dbo", "Orders", "USER_TABLE", "SELECT", "GRANT")),
        )

        rows = AuthorizationMatrixBuilder(runner, server_name="SQL01").build()

        server_row = next(r for r in rows if r.srv_permission_name)
        db_row = next(r for r in rows if r.db_permission_name)
        assert server_row.db_name is None and server_row.db_permission_name is None
        assert db_row.srv_permission_name is None
        assert (db_row.db_name, db_row.db_schema_name, db_row.db_object_name) == ("Sales", "dbo", "Orders")

    def test_output_is_sorted(self, runner, server):
        """Test the matrix comes back sorted, case-insensitively."""
        script_empty_server(server)
        server.respond(
            PROV.get_server_principals(),
            rs(PRINCIPAL_COLUMNS, _principal("zed"), _principal("Amy"), _principal("bob")),
        )

        rows = AuthorizationMatrixBuilder(runner, server_name="SQL01").build()

        assert rows == sort_rows(rows)
        assert [r.login_name for r in rows] == ["Amy", "bob", "zed"]

    def test_failing_source_is_recorded_and_skipped(self, runner, server):
        """A broken source contributes nothing; the others still run."""
        script_empty_server(server)
        server.respond(PROV.get_server_principals(), rs(PRINCIPAL_COLUMNS, _principal("app")))
        server.fail(PROV.get_server_role_members(), "VIEW SERVER STATE permission denied")
        server.respond(
            PROV.get_server_permissions(),
            rs(SERVER_PERMISSION_COLUMNS,
               ("app", "SQL_LOGIN", "SQL01", "SERVER", "SQL01", "CONNECT SQL", "GRANT")),
        )

        builder = AuthorizationMatrixBuilder(runner, server_name="SQL01")
        rows = builder.build()

        assert len(rows) == 2
        assert [f.source for f in builder.failures] == ["Server role members"]
        assert "permission denied" in builder.failures[0].describe()

    def test_unreadable_database_is_skipped(self, runner, server):
        """Test one unreadable database does not hide the others."""
        script_empty_server(server, databases=["Sales", "Locked"])
        server.fail(PROV.get_database_role_members("Locked"), "The server principal is not able to access")
        server.respond(
            PROV.get_database_role_members("Sales"),
            rs(DB_ROLE_COLUMNS, ("Sales", "db_owner", "owner", "SQL_USER", "owner_login", "SQL_LOGIN")),
        )

        builder = AuthorizationMatrixBuilder(runner, server_name="SQL01")
        rows = builder.build()

        assert [(r.db_name, r.login_name) for r in rows] == [("Sales", "owner_login")]
        assert [(f.source, f.database) for f in builder.failures] == [("Database role members", "Locked")]

    def test_orphaned_user_is_noted(self, runner, server):
        """Test a user without a login is listed under its own name."""
        script_empty_server(server, databases=["Sales"])
        server.respond(
            PROV.get_database_role_members("Sales"),
            rs(DB_ROLE_COLUMNS, ("Sales", "db_datareader", "orphan", "SQL_USER", None, None)),
        )

        rows = AuthorizationMatrixBuilder(runner, server_name="SQL01").build()

        assert rows[0].login_name == "orphan"
        assert rows[0].db_user_name == "orphan"
        assert rows[0].notes == "Database user without server login"

    def test_login_mappings_flatten_every_result_set(self, runner, server):
        """One result set per login; excluded logins are dropped."""
        script_empty_server(server)
        server.respond(
            PROV.get_login_mappings(),
            rs(MAPPING_COLUMNS, ("app", "Sales", "app", None), ("app", "HR", "app_hr", None)),
            rs(None),
            rs(MAPPING_COLUMNS, ("sa", "master", "dbo", None)),
            rs(MAPPING_COLUMNS, ("report", "Sales", "report", None)),
        )

        builder = AuthorizationMatrixBuilder(runner, server_name="SQL01")
        builder.build()

        mappings = builder.login_mappings()
        assert [(m.login_name, m.db_name) for m in mappings] == [
            ("app", "Sales"), ("app", "HR"), ("report", "Sales"),
        ]
        assert builder.mapping_table().columns == MAPPING_COLUMNS
        # Mappings stay out of the matrix itself
        assert builder.rows == []

    def test_custom_sources(self, runner, server):
        """Test only the configured sources are queried."""
        script_empty_server(server)
        server.respond(PROV.get_server_principals(), rs(PRINCIPAL_COLUMNS, _principal("app", disabled=1)))

        builder = AuthorizationMatrixBuilder(runner, server_name="SQL01", sources=[ServerPrincipalSource])
        rows = builder.build()

        assert len(rows) == 1
        assert rows[0].notes == "Disabled"
        executed = [q.strip() for _, q in server.executed]
        assert PROV.get_server_role_members().strip() not in executed

    def test_matrix_table_layout(self, runner, server):
        """Test the matrix table uses the row field order."""
        script_empty_server(server)
        server.respond(PROV.get_server_principals(), rs(PRINCIPAL_COLUMNS, _principal("app")))

        builder = AuthorizationMatrixBuilder(runner, server_name="SQL01")
        builder.build()
        table = builder.matrix_table()

        assert table.columns == AuthorizationRow.column_names()
        assert table.rows[0]["login_name"] == "app"

    def test_role_members_never_become_rows(self, runner, server):
        """Test nested server and database roles are not listed as identities."""
        script_empty_server(server, databases=["Sales"])
        server.respond(
            PROV.get_server_role_members(),
            rs(ROLE_MEMBER_COLUMNS,
               ("sysadmin", "ops_role", "SERVER_ROLE", "SQL01", None, None),
               ("sysadmin", "CORP\\dba", "WINDOWS_LOGIN", "SQL01", None, None)),
        )
        server.respond(
            PROV.get_database_role_members("Sales"),
            rs(DB_ROLE_COLUMNS,
               ("Sales", "db_datareader", "ReportingRole", "DATABASE_ROLE", None, None),
               ("Sales", "db_datareader", "report", "SQL_USER", "report_login", "SQL_LOGIN")),
        )

        rows = AuthorizationMatrixBuilder(runner, server_name="SQL01").build()

        assert [r.login_name for r in rows] == ["CORP\\dba", "report_login"]
        assert all(r.login_type not in ("SERVER_ROLE", "DATABASE_ROLE") for r in rows)
        assert all(r.notes is None for r in rows)

    @pytest.mark.parametrize("query", [
        PROV.get_server_role_members(),
        PROV.get_database_role_members("Sales"),
    ])
    def test_role_member_queries_skip_roles(self, query):
        """Test role membership queries only return non-role members."""
        assert "m.type <> 'R'" in query
