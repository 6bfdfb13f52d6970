"""
Domain enums for the audit pipeline.
"""

from enum import Enum


class AuthType(Enum):
    """Authentication types for SQL Server connections."""

    INTEGRATED = "integrated"
    SQL = "sql"


class AuditSection(Enum):
    """Report parts selectable from the command line."""

    ALL = "All"
    CHECKLIST_AUDIT = "ChecklistAudit"
    USER_MANAGEMENT = "UserManagement"

    @property
    def includes_checklist(self) -> bool:
        return self in (AuditSection.ALL, AuditSection.CHECKLIST_AUDIT)

    @property
    def includes_user_management(self) -> bool:
        return self in (AuditSection.ALL, AuditSection.USER_MANAGEMENT)


class HeadingLevel(Enum):
    """Report heading levels; the table of contents has two tiers."""

    TOP = "top"
    SUB = "sub"
