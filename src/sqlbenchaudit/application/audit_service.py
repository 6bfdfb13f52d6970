"""
Audit service: runs the whole pipeline for one target.

Order of work:
1. Resolve the report path and refuse to clobber it without consent
2. Connect (fatal on failure, nothing written yet)
3. Open the report, stream checklist and user management sections
4. Close the report; the authorization matrix is always the last top section
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Iterable

from sqlbenchaudit.application.authorization_matrix import AuthorizationMatrixBuilder
from sqlbenchaudit.application.checklist_engine import ChecklistEngine
from sqlbenchaudit.application.database_inventory import DatabaseInventory
from sqlbenchaudit.domain.authorization import IdentityFilter
from sqlbenchaudit.domain.checks import CheckDescriptor
from sqlbenchaudit.domain.enums import AuditSection, HeadingLevel
from sqlbenchaudit.domain.report import Heading, Paragraph, RenderEvent, ReportSection
from sqlbenchaudit.domain.settings import AuditSettings
from sqlbenchaudit.domain.target import Target
from sqlbenchaudit.errors import OutputError, QueryError, SqlConnectionError, UserAbort
from sqlbenchaudit.infrastructure.report.html_renderer import HtmlReportRenderer
from sqlbenchaudit.infrastructure.sql.check_runner import CheckRunner
from sqlbenchaudit.infrastructure.sql.connection_manager import ConnectionManager
from sqlbenchaudit.infrastructure.sql.query_provider import QueryProvider

logger = logging.getLogger(__name__)

ConfirmOverwrite = Callable[[Path], bool]


def output_path_for(host: str, output_dir: Path | str) -> Path:
    """Report file for ``host``: unsafe characters become ``_``."""
    safe = re.sub(r"[^0-9A-Za-z._-]+", "_", host.strip()).strip("_") or "server"
    return Path(output_dir) / f"{safe}_audit.html"


def guard_output(path: Path, confirm: ConfirmOverwrite | None) -> None:
    """
    Make sure writing ``path`` is allowed.

    Raises:
        UserAbort: The file exists and overwriting was not confirmed
    """
    if not path.exists():
        return
    if confirm is None or not confirm(path):
        logger.info("Overwrite of %s declined", path)
        raise UserAbort(path)
    logger.info("Overwriting existing report %s", path)


@dataclass
class AuditSummary:
    """What one run produced."""

    report_path: Path
    checks_passed: int = 0
    checks_failed: int = 0
    databases: int = 0
    matrix_rows: int = 0
    login_mappings: int = 0
    failures: list[str] = field(default_factory=list)


class AuditService:
    """
    Runs the audit pipeline end to end.

    Usage:
        service = AuditService(settings)
        summary = service.run(target, catalog, AuditSection.ALL, confirm=ask_user)
    """

    def __init__(
        self,
        settings: AuditSettings | None = None,
        connection_factory: Callable[[Target, AuditSettings], ConnectionManager] | None = None,
        renderer_factory: Callable[[Path, str], HtmlReportRenderer] | None = None,
        query_provider: QueryProvider | None = None,
    ) -> None:
        self.settings = settings or AuditSettings()
        self._connection_factory = connection_factory or ConnectionManager
        self._renderer_factory = renderer_factory or HtmlReportRenderer
        self.prov = query_provider or QueryProvider()
        self._renderer: HtmlReportRenderer | None = None
        self._path: Path | None = None

    def run(
        self,
        target: Target,
        catalog: Iterable[CheckDescriptor],
        section: AuditSection = AuditSection.ALL,
        confirm: ConfirmOverwrite | None = None,
    ) -> AuditSummary:
        """
        Audit ``target`` and write its report.

        Raises:
            UserAbort: Existing report kept; nothing else happened
            SqlConnectionError: Connect or rebind failed
            OutputError: The report could not be written
        """
        path = output_path_for(target.host, self.settings.output_dir)
        guard_output(path, confirm)

        summary = AuditSummary(report_path=path)
        connections = self._connection_factory(target, self.settings)
        connections.open()
        try:
            runner = CheckRunner(connections)
            self._path = path
            self._renderer = self._renderer_factory(path, f"{self.settings.report_title}: {target.host}")
            try:
                self._check(self._renderer.open())
                if section.includes_checklist:
                    self._checklist(runner, list(catalog), summary)
                if section.includes_user_management:
                    self._user_management(runner, target, summary)
                self._check(self._renderer.close())
            except (SqlConnectionError, OutputError) as e:
                self._renderer.mark_incomplete(e.message)
                raise
            finally:
                self._renderer.release()
        finally:
            connections.close()

        logger.info("Audit of %s complete: %s", target.host, path)
        return summary

    # ------------------------------------------------------------------
    # Sections
    # ------------------------------------------------------------------

    def _checklist(self, runner: CheckRunner, catalog: list[CheckDescriptor], summary: AuditSummary) -> None:
        self._emit(Heading(HeadingLevel.TOP, "checklist-audit", "Checklist Audit"))
        self._emit(Paragraph(f"{len(catalog)} benchmark checks, listed in benchmark order."))

        engine = ChecklistEngine(runner)
        for report_section in engine.iter_sections(catalog):
            self._emit_section(report_section)

        summary.checks_passed = engine.passed
        summary.checks_failed = engine.failed
        summary.failures.extend(
            f"Check {r.descriptor_id}: {r.error}" for r in engine.results if not r.succeeded
        )

    def _user_management(self, runner: CheckRunner, target: Target, summary: AuditSummary) -> None:
        self._emit(Heading(HeadingLevel.TOP, "user-management", "User Management"))

        inventory = DatabaseInventory(runner, self.prov)
        try:
            databases = inventory.collect()
        except QueryError as e:
            logger.warning("Database inventory failed: %s", e.detail)
            summary.failures.append(f"Databases: {e.detail}")
            self._emit_section(ReportSection(
                HeadingLevel.SUB, "user-databases", "Databases",
                text=f"Database list unavailable: {e.detail}", failed=True,
            ))
        else:
            summary.databases = len(databases)
            self._emit_section(ReportSection(
                HeadingLevel.SUB, "user-databases", "Databases",
                tables=[inventory.as_table(databases)],
            ))

        builder = AuthorizationMatrixBuilder(
            runner,
            server_name=target.host,
            identity_filter=IdentityFilter(
                self.settings.administrative_account, self.settings.excluded_prefixes
            ),
            query_provider=self.prov,
        )
        builder.build()
        summary.matrix_rows = len(builder.rows)
        summary.login_mappings = len(builder.mappings)
        summary.failures.extend(f.describe() for f in builder.failures)

        self._emit_section(ReportSection(
            HeadingLevel.SUB, "login-mappings", "Login to User Mappings",
            text="Database users each login maps to. Not merged into the authorization matrix.",
            tables=[builder.mapping_table()],
        ))

        failed = [f.describe() for f in builder.failures]
        self._emit_section(ReportSection(
            HeadingLevel.TOP, "authorization-matrix", "Authorization Matrix",
            text=("Sources not read: " + "; ".join(failed)) if failed else "",
            tables=[builder.matrix_table()],
            failed=bool(failed),
        ))

    # ------------------------------------------------------------------
    # Output
    # ------------------------------------------------------------------

    def _emit_section(self, report_section: ReportSection) -> None:
        for event in report_section.events():
            self._emit(event)

    def _emit(self, event: RenderEvent) -> None:
        self._check(self._renderer.emit(event))

    def _check(self, ok: bool) -> None:
        """Single failure path for every report write."""
        if not ok:
            detail = self._renderer.last_error if self._renderer else None
            raise OutputError(self._path, detail or "write failed")
