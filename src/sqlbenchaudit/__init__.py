"""
sqlbenchaudit - SQL Server benchmark audit tool.

Runs an ordered catalog of benchmark checks, builds an authorization matrix
of logins, roles and grants, and streams everything into one HTML report.

Usage:
    # CLI
    sqlbenchaudit --host SQL01 --section All

    # Programmatic
    from sqlbenchaudit.application.audit_service import AuditService
    from sqlbenchaudit.infrastructure.config_loader import ConfigLoader

    service = AuditService()
    summary = service.run(target, ConfigLoader().load_catalog())
"""

__version__ = "0.1.0"

from sqlbenchaudit.application.audit_service import AuditService

__all__ = ["AuditService", "__version__"]
