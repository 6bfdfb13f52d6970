"""
Audit settings domain model.

Loaded from an optional JSON file; every field has a working default.
"""

from pathlib import Path
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .authorization import DEFAULT_ADMIN_ACCOUNT, DEFAULT_EXCLUDED_PREFIXES


class AuditSettings(BaseModel):
    """Run-wide settings for one audit."""

    model_config = ConfigDict(extra="ignore")

    output_dir: Path = Field(Path("output"), description="Directory receiving the HTML report")
    odbc_driver: Optional[str] = Field(None, description="ODBC driver name; auto-detected when empty")
    connect_timeout: int = Field(30, description="Seconds to wait for a SQL connection")
    encrypt: bool = Field(False, description="Request an encrypted connection")
    trust_server_certificate: bool = Field(True, description="Skip server certificate validation")
    admin_database: str = Field("master", description="Database used when the target names none")
    administrative_account: str = Field(DEFAULT_ADMIN_ACCOUNT, description="Account never listed in the matrix")
    excluded_prefixes: List[str] = Field(
        default_factory=lambda: list(DEFAULT_EXCLUDED_PREFIXES),
        description="Identity prefixes never listed in the matrix",
    )
    catalog_path: Optional[Path] = Field(None, description="Check catalog; the bundled one when empty")
    report_title: str = Field("SQL Server Security Audit", description="Document title prefix")

    @field_validator("connect_timeout")
    @classmethod
    def validate_timeout(cls, v: int) -> int:
        if v < 0:
            raise ValueError("connect_timeout must be zero or positive")
        return v

    @field_validator("admin_database")
    @classmethod
    def validate_admin_database(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("admin_database cannot be empty")
        return v.strip()
