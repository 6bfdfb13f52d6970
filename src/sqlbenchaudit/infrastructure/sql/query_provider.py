"""
SQL Query Provider - T-SQL for the user management part of the audit.

Benchmark checks carry their own query text in the catalog; this module
holds only the queries the pipeline itself needs: database inventory and
the sources feeding the authorization matrix.

Usage:
    provider = QueryProvider()
    sql = provider.get_server_role_members()
    table = runner.run(sql)
"""

from __future__ import annotations


def quote_name(name: str) -> str:
    """Bracket-quote an identifier the way QUOTENAME does."""
    return "[" + name.replace("]", "]]") + "]"


def quote_literal(value: str) -> str:
    """Unicode string literal with embedded quotes doubled."""
    return "N'" + value.replace("'", "''") + "'"


class QueryProvider:
    """
    T-SQL for SQL Server 2012 and later.

    Column aliases are the keys the application layer reads; keep them in
    sync with the matrix sources.
    """

    # ========================================================================
    # Database inventory
    # ========================================================================

    def get_databases(self) -> str:
        return """
        SELECT
            d.name AS DatabaseName,
            d.create_date AS CreateDate,
            d.state_desc AS State
        FROM sys.databases d
        ORDER BY d.name
        """

    def get_database_principal_count(self) -> str:
        # Runs inside the database the connection is bound to
        return """
        SELECT COUNT(*) AS PrincipalCount
        FROM sys.database_principals dp
        WHERE dp.type IN ('S', 'U', 'G', 'E', 'X', 'C', 'K')
          AND dp.name NOT IN ('dbo', 'guest', 'INFORMATION_SCHEMA', 'sys')
          AND dp.name NOT LIKE '##%'
        """

    def get_accessible_databases(self) -> str:
        return """
        SELECT d.name AS DatabaseName
        FROM sys.databases d
        WHERE d.state_desc = 'ONLINE'
          AND HAS_DBACCESS(d.name) = 1
        ORDER BY d.name
        """

    # ========================================================================
    # Server scope
    # ========================================================================

    def get_server_principals(self) -> str:
        return """
        SELECT
            p.name AS LoginName,
            p.type_desc AS LoginType,
            CAST(SERVERPROPERTY('ServerName') AS NVARCHAR(256)) AS ServerName,
            p.is_disabled AS IsDisabled,
            p.create_date AS CreateDate,
            p.modify_date AS ModifyDate
        FROM sys.server_principals p
        WHERE p.type <> 'R'
        ORDER BY p.name
        """

    def get_login_mappings(self) -> str:
        # One result set per login: LoginName, DBName, UserName, AliasName
        return "EXEC master.sys.sp_msloginmappings"

    def get_server_role_members(self) -> str:
        return """
        SELECT
            r.name AS RoleName,
            m.name AS MemberName,
            m.type_desc AS MemberType,
            CAST(SERVERPROPERTY('ServerName') AS NVARCHAR(256)) AS ServerName,
            m.create_date AS CreateDate,
            m.modify_date AS ModifyDate
        FROM sys.server_role_members rm
        JOIN sys.server_principals r ON rm.role_principal_id = r.principal_id
        JOIN sys.server_principals m ON rm.member_principal_id = m.principal_id
        WHERE m.type <> 'R'
        ORDER BY r.name, m.name
        """

    def get_server_permissions(self) -> str:
        return """
        SELECT
            p.name AS LoginName,
            p.type_desc AS LoginType,
            CAST(SERVERPROPERTY('ServerName') AS NVARCHAR(256)) AS ServerName,
            perm.class_desc AS ObjectType,
            CASE perm.class
                WHEN 101 THEN (SELECT sp.name FROM sys.server_principals sp
                               WHERE sp.principal_id = perm.major_id)
                WHEN 105 THEN (SELECT e.name FROM sys.endpoints e
                               WHERE e.endpoint_id = perm.major_id)
                ELSE NULL
            END AS ObjectName,
            perm.permission_name AS PermissionName,
            perm.state_desc AS PermissionState
        FROM sys.server_permissions perm
        JOIN sys.server_principals p ON perm.grantee_principal_id = p.principal_id
        WHERE p.type <> 'R'
        ORDER BY p.name, perm.permission_name
        """

    # ========================================================================
    # Database scope
    # ========================================================================

    def get_database_role_members(self, database: str) -> str:
        db = quote_name(database)
        return f"""
        SELECT
            {quote_literal(database)} AS DatabaseName,
            r.name AS RoleName,
            m.name AS UserName,
            m.type_desc AS UserType,
            sp.name AS LoginName,
            sp.type_desc AS LoginType
        FROM {db}.sys.database_role_members rm
        JOIN {db}.sys.database_principals r ON rm.role_principal_id = r.principal_id
        JOIN {db}.sys.database_principals m ON rm.member_principal_id = m.principal_id
        LEFT JOIN sys.server_principals sp ON m.sid = sp.sid
        WHERE m.type <> 'R'
        ORDER BY r.name, m.name
        """

    def get_database_permissions(self, database: str) -> str:
        db = quote_name(database)
        return f"""
        SELECT
            {quote_literal(database)} AS DatabaseName,
            dp.name AS UserName,
            dp.type_desc AS UserType,
            sp.name AS LoginName,
            sp.type_desc AS LoginType,
            perm.class_desc AS ObjectClass,
            s.name AS SchemaName,
            o.name AS ObjectName,
            COALESCE(o.type_desc, perm.class_desc) AS ObjectType,
            perm.permission_name AS PermissionName,
            perm.state_desc AS PermissionState
        FROM {db}.sys.database_permissions perm
        JOIN {db}.sys.database_principals dp ON perm.grantee_principal_id = dp.principal_id
        LEFT JOIN sys.server_principals sp ON dp.sid = sp.sid
        LEFT JOIN {db}.sys.objects o ON perm.class = 1 AND perm.major_id = o.object_id
        LEFT JOIN {db}.sys.schemas s ON s.schema_id = CASE perm.class
                                                        WHEN 1 THEN o.schema_id
                                                        WHEN 3 THEN perm.major_id
                                                     END
        WHERE dp.type <> 'R'
          AND NOT (perm.class = 0 AND perm.permission_name = 'CONNECT')
        ORDER BY dp.name, perm.permission_name
        """
