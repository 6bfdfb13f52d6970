"""
Benchmark check domain models.

CheckDescriptor entries come from an external catalog and are executed in
catalog order. ResultTable is the normalized shape of one tabular result set.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, List

from pydantic import BaseModel, ConfigDict, Field, field_validator


class CheckDescriptor(BaseModel):
    """Declarative description of one benchmark check."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    id: str = Field(..., description="Benchmark identifier, e.g. '2.1'")
    description: str = Field(..., description="Human readable title of the check")
    query: str = Field(..., description="T-SQL producing the evidence")
    columns: List[str] = Field(default_factory=list, description="Output column order; empty keeps the query's order")
    multi_result: bool = Field(False, description="Keep every result set the query produces")

    @field_validator("id", "description", "query")
    @classmethod
    def not_blank(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("Value cannot be empty")
        return v.strip()

    @property
    def title(self) -> str:
        """Section title shown in the report."""
        return f"{self.id} {self.description}"


@dataclass
class ResultTable:
    """Column names plus rows keyed by column name."""

    columns: list[str] = field(default_factory=list)
    rows: list[dict[str, Any]] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.rows)

    def project(self, columns: list[str] | None) -> ResultTable:
        """
        Return a copy laid out in ``columns`` order.

        Columns the result does not have are kept and render empty; columns
        not listed are dropped. An empty list keeps the current layout.
        """
        if not columns:
            return ResultTable(list(self.columns), [dict(r) for r in self.rows])
        return ResultTable(
            list(columns),
            [{col: row.get(col) for col in columns} for row in self.rows],
        )


@dataclass
class CheckResult:
    """Outcome of running one CheckDescriptor."""

    descriptor_id: str
    tables: list[ResultTable] = field(default_factory=list)
    succeeded: bool = True
    error: str | None = None

    @property
    def row_count(self) -> int:
        return sum(len(t) for t in self.tables)
