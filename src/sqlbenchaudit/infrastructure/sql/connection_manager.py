"""
SQL Server connection management.

Handles:
- Connection string building
- ODBC driver detection and fallback
- Rebinding the single live connection to another database
- Scoped database switches that always restore the prior database
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Callable, Iterator

from sqlbenchaudit.domain.enums import AuthType
from sqlbenchaudit.domain.settings import AuditSettings
from sqlbenchaudit.domain.target import Target
from sqlbenchaudit.errors import SqlConnectionError

logger = logging.getLogger(__name__)

# Preferred drivers (newest first)
PREFERRED_DRIVERS = (
    "ODBC Driver 18 for SQL Server",
    "ODBC Driver 17 for SQL Server",
    "ODBC Driver 13 for SQL Server",
    "ODBC Driver 11 for SQL Server",
)

FALLBACK_DRIVERS = (
    "SQL Server Native Client 11.0",
    "SQL Server Native Client 10.0",
    "SQL Server",
)


def _load_pyodbc():
    # pyodbc needs the unixODBC driver manager at import time
    import pyodbc

    return pyodbc


class ConnectionManager:
    """
    Owns the one live connection to the audit target.

    The target (host, auth mode, credentials) never changes; only the bound
    database does, through ``rebind`` or ``database_scope``.
    """

    def __init__(
        self,
        target: Target,
        settings: AuditSettings | None = None,
        connect: Callable[..., Any] | None = None,
        driver_error: type[BaseException] | tuple[type[BaseException], ...] | None = None,
    ):
        """
        Initialize the connection manager.

        Args:
            target: Server, auth mode and credentials
            settings: Driver, timeout and encryption settings
            connect: DB-API connect function (pyodbc.connect by default)
            driver_error: Exception type(s) the driver raises (pyodbc.Error by default)
        """
        self.target = target
        self.settings = settings or AuditSettings()
        if connect is None or driver_error is None:
            pyodbc = _load_pyodbc()
            connect = connect or pyodbc.connect
            driver_error = driver_error or pyodbc.Error
        self._connect = connect
        self.driver_error = driver_error
        self._driver: str | None = self.settings.odbc_driver
        self._connection: Any = None
        self._active_database = target.database or self.settings.admin_database

        logger.info(
            "ConnectionManager initialized for %s (auth=%s)",
            target.host, target.auth_type.value,
        )

    @property
    def active_database(self) -> str:
        """Database the connection is (or will be) bound to."""
        return self._active_database

    @property
    def is_open(self) -> bool:
        return self._connection is not None

    @property
    def connection(self) -> Any:
        """The live DB-API connection."""
        if self._connection is None:
            raise SqlConnectionError(self.target.host, self._active_database, "connection is not open")
        return self._connection

    def _detect_odbc_driver(self) -> str:
        """
        Detect best available ODBC driver.

        Returns:
            ODBC driver name

        Raises:
            SqlConnectionError: If no suitable driver found
        """
        if self._driver:
            return self._driver

        drivers = _load_pyodbc().drivers()
        logger.debug("Available ODBC drivers: %s", drivers)

        for driver in PREFERRED_DRIVERS:
            if driver in drivers:
                logger.info("Using ODBC driver: %s", driver)
                self._driver = driver
                return driver

        for driver in FALLBACK_DRIVERS:
            if driver in drivers:
                logger.warning("Using fallback ODBC driver: %s", driver)
                self._driver = driver
                return driver

        raise SqlConnectionError(
            self.target.host, None,
            "No SQL Server ODBC driver found. Please install ODBC Driver 17 or 18.",
        )

    def build_connection_string(self, database: str) -> str:
        """
        Build ODBC connection string for ``database``.

        Returns:
            Connection string
        """
        driver = self._detect_odbc_driver()

        parts = [
            f"DRIVER={{{driver}}}",
            f"SERVER={self.target.host}",
            f"DATABASE={database}",
            f"TIMEOUT={self.settings.connect_timeout}",
            f"Encrypt={'yes' if self.settings.encrypt else 'no'}",
            f"TrustServerCertificate={'yes' if self.settings.trust_server_certificate else 'no'}",
        ]

        if self.target.auth_type == AuthType.INTEGRATED:
            parts.append("Trusted_Connection=yes")
        else:
            parts.append(f"UID={self.target.username}")
            parts.append(f"PWD={self.target.get_password()}")

        logger.debug("Connection string built for %s (credentials masked)", database)
        return ";".join(parts)

    def open(self) -> Any:
        """
        Establish the connection to the active database.

        Raises:
            SqlConnectionError: Host unreachable or credentials rejected
        """
        if self._connection is not None:
            return self._connection
        return self._bind(self._active_database)

    def rebind(self, database: str) -> Any:
        """
        Reconnect to ``database`` on the same server with the same credentials.

        The old connection is torn down first. There is no retry: a failure
        leaves the manager closed and raises SqlConnectionError.
        """
        logger.debug("Rebinding connection %s -> %s", self._active_database, database)
        self.close()
        return self._bind(database)

    def _bind(self, database: str) -> Any:
        conn_str = self.build_connection_string(database)
        try:
            self._connection = self._connect(conn_str, autocommit=True)
        except self.driver_error as e:
            self._connection = None
            logger.error("Connection to %s/%s failed: %s", self.target.host, database, e)
            raise SqlConnectionError(self.target.host, database, str(e)) from e
        self._active_database = database
        logger.info("Connected to %s (database=%s)", self.target.host, database)
        return self._connection

    def close(self) -> None:
        """Close the live connection, if any."""
        if self._connection is None:
            return
        try:
            self._connection.close()
        except self.driver_error as e:
            logger.debug("Ignoring error while closing connection: %s", e)
        finally:
            self._connection = None

    @contextmanager
    def database_scope(self) -> Iterator[ConnectionManager]:
        """
        Remember the active database and restore it on exit.

        Restoration runs even when the body raises, so later stages always see
        the connection bound where it was before the scope started.
        """
        original = self._active_database
        try:
            yield self
        finally:
            if self._connection is None or self._active_database != original:
                logger.debug("Restoring connection to database %s", original)
                self.rebind(original)

    @contextmanager
    def use_database(self, database: str) -> Iterator[Any]:
        """Bind to ``database`` for the duration of the block."""
        with self.database_scope():
            yield self.rebind(database)

    def __enter__(self) -> ConnectionManager:
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
