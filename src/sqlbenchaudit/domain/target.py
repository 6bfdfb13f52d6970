"""
Audit target domain model.

A Target is built once at startup and never mutated. The database the
connection is currently bound to is tracked by the ConnectionManager.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, SecretStr, field_validator, model_validator

from .enums import AuthType


class Target(BaseModel):
    """
    SQL Server instance to audit.

    ``host`` accepts the usual SQL Server forms: ``SERVER``,
    ``SERVER\\INSTANCE`` or ``SERVER,PORT``.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    host: str = Field(..., description="SQL Server instance name or address")
    database: Optional[str] = Field(None, description="Database to bind to; administrative database when empty")
    auth_type: AuthType = Field(AuthType.INTEGRATED, description="Authentication method")
    username: Optional[str] = Field(None, description="Login name for SQL authentication")
    password: Optional[SecretStr] = Field(None, description="Password for SQL authentication")

    @field_validator("host")
    @classmethod
    def validate_host(cls, v: str) -> str:
        """Validate host is not empty."""
        if not v or not v.strip():
            raise ValueError("Host cannot be empty")
        return v.strip()

    @field_validator("database")
    @classmethod
    def blank_database_is_none(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not v.strip():
            return None
        return v

    @model_validator(mode="after")
    def check_credentials(self) -> "Target":
        """SQL authentication needs both a username and a password."""
        if self.auth_type == AuthType.SQL:
            if not self.username or not self.username.strip():
                raise ValueError("Username is required for SQL authentication")
            if self.password is None:
                raise ValueError("Password is required for SQL authentication")
        return self

    def get_password(self) -> str:
        """Get the plain text password."""
        if self.password is None:
            return ""
        return self.password.get_secret_value()  # pylint: disable=no-member
