"""
Domain models for the audit pipeline.
"""

from .authorization import AuthorizationRow, IdentityFilter, LoginMapping, sort_rows
from .checks import CheckDescriptor, CheckResult, ResultTable
from .databases import DatabaseInfo
from .enums import AuditSection, AuthType, HeadingLevel
from .report import Heading, Paragraph, RenderEvent, ReportSection, Table, check_anchor, make_anchor
from .settings import AuditSettings
from .target import Target

__all__ = [
    "AuditSection",
    "AuditSettings",
    "AuthType",
    "AuthorizationRow",
    "CheckDescriptor",
    "CheckResult",
    "DatabaseInfo",
    "Heading",
    "HeadingLevel",
    "IdentityFilter",
    "LoginMapping",
    "Paragraph",
    "RenderEvent",
    "ReportSection",
    "ResultTable",
    "Table",
    "Target",
    "check_anchor",
    "make_anchor",
    "sort_rows",
]
