"""
Authorization matrix domain model.

An AuthorizationRow is deliberately sparse: each source fills only the
fields it knows about. Field set is fixed here so every source, the sort and
the report share one column layout.
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from typing import Iterable

# Column order used by the matrix sort. Empty values sort first.
SORT_KEY_FIELDS: tuple[str, ...] = (
    "login_name",
    "server_name",
    "db_name",
    "db_role_name",
    "db_schema_name",
    "db_object_type",
    "db_object_name",
    "db_permission_state",
    "db_permission_name",
    "srv_role_name",
    "srv_schema_name",
    "srv_object_type",
    "srv_object_name",
    "srv_permission_state",
    "srv_permission_name",
)

DEFAULT_ADMIN_ACCOUNT = "sa"
INTERNAL_SYSTEM_PREFIX = "##"
SERVICE_ACCOUNT_PREFIX = "NT SERVICE\\"
AUTHORITY_ACCOUNT_PREFIX = "NT AUTHORITY\\"
DEFAULT_EXCLUDED_PREFIXES: tuple[str, ...] = (
    INTERNAL_SYSTEM_PREFIX,
    SERVICE_ACCOUNT_PREFIX,
    AUTHORITY_ACCOUNT_PREFIX,
)


@dataclass
class AuthorizationRow:
    """One line of the authorization matrix."""

    # Login identity
    login_name: str | None = None
    server_name: str | None = None
    login_type: str | None = None

    # Server scope
    srv_role_name: str | None = None
    srv_schema_name: str | None = None
    srv_object_name: str | None = None
    srv_object_type: str | None = None
    srv_permission_name: str | None = None
    srv_permission_state: str | None = None

    # Database scope
    db_name: str | None = None
    db_user_name: str | None = None
    db_role_name: str | None = None
    db_schema_name: str | None = None
    db_object_name: str | None = None
    db_object_type: str | None = None
    db_permission_name: str | None = None
    db_permission_state: str | None = None

    notes: str | None = None

    @classmethod
    def column_names(cls) -> list[str]:
        return [f.name for f in fields(cls)]

    def as_dict(self) -> dict[str, str | None]:
        return {name: getattr(self, name) for name in self.column_names()}

    def sort_key(self) -> tuple[tuple[int, str], ...]:
        """
        Key for the deterministic matrix order.

        Each component is ``(0, "")`` for an empty value and ``(1, value)``
        otherwise, so absent values always precede present ones.
        """
        key = []
        for name in SORT_KEY_FIELDS:
            value = getattr(self, name)
            if value is None or value == "":
                key.append((0, ""))
            else:
                key.append((1, str(value).casefold()))
        return tuple(key)


def sort_rows(rows: Iterable[AuthorizationRow]) -> list[AuthorizationRow]:
    """Stable ascending sort by SORT_KEY_FIELDS."""
    return sorted(rows, key=AuthorizationRow.sort_key)


class IdentityFilter:
    """
    Decides which identities never reach the matrix.

    An identity is excluded when it equals the administrative account or
    starts with one of the excluded prefixes (internal ``##`` principals,
    ``NT SERVICE\\`` and ``NT AUTHORITY\\`` accounts). Prefixes compare
    case-insensitively, the account name compares exactly.
    """

    def __init__(
        self,
        admin_account: str = DEFAULT_ADMIN_ACCOUNT,
        prefixes: Iterable[str] = DEFAULT_EXCLUDED_PREFIXES,
    ) -> None:
        self.admin_account = admin_account
        self.prefixes = tuple(p.casefold() for p in prefixes if p)

    def is_excluded(self, name: str | None) -> bool:
        if not name:
            return False
        if name == self.admin_account:
            return True
        folded = name.casefold()
        return any(folded.startswith(p) for p in self.prefixes)

    def allows(self, name: str | None) -> bool:
        return not self.is_excluded(name)


@dataclass
class LoginMapping:
    """Login to database user fan-out, reported beside the matrix."""

    login_name: str | None
    db_name: str | None
    user_name: str | None
    alias_name: str | None = None

    def as_dict(self) -> dict[str, str | None]:
        return {
            "LoginName": self.login_name,
            "DBName": self.db_name,
            "UserName": self.user_name,
            "AliasName": self.alias_name,
        }
