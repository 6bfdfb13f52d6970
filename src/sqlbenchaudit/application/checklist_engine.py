"""
Checklist engine: runs the benchmark catalog in order.
"""

from __future__ import annotations

import logging
from typing import Iterable, Iterator

from sqlbenchaudit.domain.checks import CheckDescriptor, CheckResult, ResultTable
from sqlbenchaudit.domain.enums import HeadingLevel
from sqlbenchaudit.domain.report import ReportSection, check_anchor
from sqlbenchaudit.errors import QueryError
from sqlbenchaudit.infrastructure.sql.check_runner import CheckRunner

logger = logging.getLogger(__name__)


class ChecklistEngine:
    """
    Executes every check of a catalog and packages each result as a section.

    A failing check produces a failed section and the engine moves on; the
    report numbers sections by position, so one section per descriptor in
    catalog order is guaranteed.
    """

    def __init__(self, runner: CheckRunner):
        self.runner = runner
        self.results: list[CheckResult] = []

    @property
    def passed(self) -> int:
        return sum(1 for r in self.results if r.succeeded)

    @property
    def failed(self) -> int:
        return sum(1 for r in self.results if not r.succeeded)

    def run(self, catalog: Iterable[CheckDescriptor]) -> list[ReportSection]:
        """Run the whole catalog and return its sections in catalog order."""
        return list(self.iter_sections(catalog))

    def iter_sections(self, catalog: Iterable[CheckDescriptor]) -> Iterator[ReportSection]:
        """Same as ``run`` but yields each section as soon as it exists."""
        self.results = []
        for descriptor in catalog:
            result = self._execute(descriptor)
            self.results.append(result)
            yield self._section_for(descriptor, result)

        logger.info("Checklist finished: %d succeeded, %d failed", self.passed, self.failed)

    def _execute(self, descriptor: CheckDescriptor) -> CheckResult:
        logger.info("Running check %s", descriptor.id)
        try:
            if descriptor.multi_result:
                tables = self.runner.run_all(descriptor.query)
            else:
                tables = [self.runner.run(descriptor.query)]
        except QueryError as e:
            logger.warning("Check %s failed: %s", descriptor.id, e.detail)
            return CheckResult(descriptor.id, succeeded=False, error=e.detail)

        projected = [t.project(descriptor.columns) for t in tables]
        if descriptor.multi_result:
            # sp_MSforeachdb style checks emit one set per database; keep non-empty ones
            projected = [t for t in projected if t.rows] or [ResultTable(list(descriptor.columns))]
        return CheckResult(descriptor.id, tables=projected)

    @staticmethod
    def _section_for(descriptor: CheckDescriptor, result: CheckResult) -> ReportSection:
        anchor = check_anchor(descriptor.id)
        if not result.succeeded:
            return ReportSection(
                level=HeadingLevel.SUB,
                anchor=anchor,
                title=descriptor.title,
                text=f"Check failed: {result.error}",
                failed=True,
            )
        text = "No rows returned." if result.row_count == 0 else ""
        return ReportSection(
            level=HeadingLevel.SUB,
            anchor=anchor,
            title=descriptor.title,
            text=text,
            tables=result.tables,
        )
