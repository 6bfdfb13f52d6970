"""
Report sections and the render events the HTML sink accepts.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Union

from .checks import ResultTable
from .enums import HeadingLevel


def make_anchor(*parts: str) -> str:
    """Build an HTML id from free text: lowercase, ``-`` separated."""
    text = "-".join(p for p in parts if p)
    slug = re.sub(r"[^0-9a-zA-Z]+", "-", text).strip("-").lower()
    return slug or "section"


def check_anchor(check_id: str) -> str:
    """Anchor of a benchmark check section."""
    return make_anchor("check", check_id)


@dataclass(frozen=True)
class Heading:
    level: HeadingLevel
    anchor: str
    title: str


@dataclass(frozen=True)
class Paragraph:
    text: str
    css_class: str = ""


@dataclass(frozen=True)
class Table:
    columns: list[str]
    rows: list[dict[str, Any]]
    caption: str = ""

    @classmethod
    def from_result(cls, table: ResultTable, caption: str = "") -> Table:
        return cls(list(table.columns), list(table.rows), caption)


RenderEvent = Union[Heading, Paragraph, Table]


@dataclass
class ReportSection:
    """
    One titled block of the report.

    The body is free text, one or more tables, or both. Sections are handed
    to the renderer as soon as they are built and are not kept.
    """

    level: HeadingLevel
    anchor: str
    title: str
    text: str = ""
    tables: list[ResultTable] = field(default_factory=list)
    failed: bool = False

    def events(self) -> list[RenderEvent]:
        """Render events for this section, in document order."""
        events: list[RenderEvent] = [Heading(self.level, self.anchor, self.title)]
        if self.text:
            events.append(Paragraph(self.text, "failed" if self.failed else ""))
        for index, table in enumerate(self.tables, start=1):
            caption = f"Result set {index}" if len(self.tables) > 1 else ""
            events.append(Table.from_result(table, caption))
        return events
