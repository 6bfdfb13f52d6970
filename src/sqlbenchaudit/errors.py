"""
Audit error taxonomy.

Only QueryError is recoverable: the checklist engine, the database inventory
and every authorization matrix source absorb it and keep going. Every other
kind propagates to the CLI, which maps it to its own message and exit code.
"""

from __future__ import annotations

from pathlib import Path


class AuditError(Exception):
    """Base class for all audit pipeline errors."""

    exit_code: int = 1
    recoverable: bool = False

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class SqlConnectionError(AuditError):
    """Opening or rebinding the server connection failed."""

    exit_code = 2

    def __init__(self, host: str, database: str | None, detail: str) -> None:
        self.host = host
        self.database = database
        self.detail = detail
        where = f"{host}/{database}" if database else host
        super().__init__(f"Cannot connect to {where}: {detail}")


class QueryError(AuditError):
    """A single check or data-source query failed."""

    recoverable = True

    def __init__(self, query: str, detail: str) -> None:
        self.query = query
        self.detail = detail
        super().__init__(f"Query failed: {detail}")


class OutputError(AuditError):
    """The report file could not be written."""

    exit_code = 3

    def __init__(self, path: Path | str, detail: str) -> None:
        self.path = Path(path)
        self.detail = detail
        super().__init__(
            f"Cannot write report {self.path}: {detail}. "
            "The file on disk is incomplete."
        )


class UserAbort(AuditError):
    """Overwrite of an existing report was declined."""

    exit_code = 0

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)
        super().__init__(f"Existing report {self.path} left untouched")


class ConfigurationError(AuditError):
    """Settings, target or check catalog are invalid."""

    exit_code = 4
