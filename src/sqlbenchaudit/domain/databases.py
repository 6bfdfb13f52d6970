"""
Database inventory domain model.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass
class DatabaseInfo:
    """One database discovered on the target."""

    name: str
    created: datetime | str | None = None
    state: str = "ONLINE"
    user_count: int | None = None
    notes: str = ""

    @property
    def is_online(self) -> bool:
        return (self.state or "ONLINE").upper() == "ONLINE"
