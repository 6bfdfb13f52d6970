"""
sqlbenchaudit CLI entry point.

One command: audit a SQL Server instance and write its HTML report.
"""

import logging
import os
from pathlib import Path
from typing import Optional

import typer
from pydantic import SecretStr, ValidationError
from rich.console import Console
from rich.table import Table

from sqlbenchaudit import __version__
from sqlbenchaudit.application.audit_service import AuditService, AuditSummary
from sqlbenchaudit.domain.enums import AuditSection, AuthType
from sqlbenchaudit.domain.target import Target
from sqlbenchaudit.errors import (
    AuditError,
    ConfigurationError,
    OutputError,
    SqlConnectionError,
    UserAbort,
)
from sqlbenchaudit.infrastructure.config_loader import ConfigLoader
from sqlbenchaudit.infrastructure.logging_config import setup_logging

logger = logging.getLogger(__name__)

PASSWORD_ENV = "SQLBENCHAUDIT_PASSWORD"

console = Console(stderr=True)

app = typer.Typer(
    name="sqlbenchaudit",
    help="SQL Server benchmark audit with a single navigable HTML report",
    add_completion=False,
    rich_markup_mode="rich",
)


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"sqlbenchaudit {__version__}")
        raise typer.Exit()


def _build_target(host: str, database: Optional[str], integrated: bool, username: Optional[str]) -> Target:
    """Assemble the Target, prompting for the password in SQL auth mode."""
    if integrated:
        if username:
            raise typer.BadParameter("--username is only valid with --sql-auth", param_hint="--username")
        auth_type = AuthType.INTEGRATED
        password = None
    else:
        if not username:
            raise typer.BadParameter("--username is required with --sql-auth", param_hint="--username")
        auth_type = AuthType.SQL
        secret = os.environ.get(PASSWORD_ENV) or typer.prompt(f"Password for {username}", hide_input=True)
        password = SecretStr(secret)

    try:
        return Target(host=host, database=database, auth_type=auth_type, username=username, password=password)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid target: {e}") from e


def _confirm_overwrite(path: Path) -> bool:
    return typer.confirm(f"{path} already exists. Overwrite?", default=False)


def _print_summary(summary: AuditSummary) -> None:
    table = Table(title="Audit summary", show_header=False)
    table.add_column("Item", style="bold")
    table.add_column("Value")
    table.add_row("Report", str(summary.report_path))
    table.add_row("Checks passed", str(summary.checks_passed))
    table.add_row("Checks failed", str(summary.checks_failed))
    table.add_row("Databases", str(summary.databases))
    table.add_row("Login mappings", str(summary.login_mappings))
    table.add_row("Matrix rows", str(summary.matrix_rows))
    console.print(table)
    for failure in summary.failures:
        console.print(f"[yellow]⚠ {failure}[/yellow]")


@app.command()
def audit(
    host: str = typer.Option(..., "--host", "-s", help="Server, SERVER\\INSTANCE or SERVER,PORT"),
    database: Optional[str] = typer.Option(None, "--database", "-d", help="Database to bind to (default: master)"),
    integrated: bool = typer.Option(True, "--integrated/--sql-auth", help="Windows integrated or SQL authentication"),
    username: Optional[str] = typer.Option(None, "--username", "-u", help="Login for --sql-auth"),
    section: AuditSection = typer.Option(AuditSection.ALL, "--section", case_sensitive=False, help="Report parts to produce"),
    catalog: Optional[Path] = typer.Option(None, "--catalog", help="Check catalog JSON (default: bundled)"),
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="Settings JSON"),
    output_dir: Optional[Path] = typer.Option(None, "--output-dir", "-o", help="Report directory"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Overwrite an existing report without asking"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logging"),
    log_file: Optional[Path] = typer.Option(None, "--log-file", help="Write logs to file"),
    version: bool = typer.Option(False, "--version", callback=_version_callback, is_eager=True, help="Show version and exit"),
):
    """
    Audit a SQL Server instance against the benchmark catalog.

    Writes one HTML file named after the host, with a table of contents and
    collapsible result tables.
    """
    setup_logging(logging.DEBUG if verbose else logging.INFO, log_file)

    try:
        loader = ConfigLoader()
        settings = loader.load_settings(config)
        if output_dir is not None:
            settings = settings.model_copy(update={"output_dir": output_dir})
        checks = loader.load_catalog(catalog or settings.catalog_path)
        target = _build_target(host, database, integrated, username)

        service = AuditService(settings)
        summary = service.run(
            target,
            checks,
            section,
            confirm=(lambda _path: True) if yes else _confirm_overwrite,
        )
    except UserAbort as e:
        console.print(f"[yellow]Aborted:[/yellow] {e.message}")
        raise typer.Exit(e.exit_code)
    except SqlConnectionError as e:
        logger.error("Connection failed: %s", e.detail)
        console.print(f"[red]❌ Connection failed:[/red] {e.message}")
        raise typer.Exit(e.exit_code)
    except OutputError as e:
        logger.error("Report write failed: %s", e.detail)
        console.print(f"[red]❌ Report not written:[/red] {e.message}")
        raise typer.Exit(e.exit_code)
    except ConfigurationError as e:
        console.print(f"[red]❌ Configuration error:[/red] {e.message}")
        raise typer.Exit(e.exit_code)
    except AuditError as e:
        logger.error("Audit failed: %s", e)
        console.print(f"[red]❌ Error:[/red] {e.message}")
        raise typer.Exit(e.exit_code)

    _print_summary(summary)
    console.print(f"[green]✅ Report written:[/green] {summary.report_path}")


def main() -> None:
    """Console script entry point."""
    app()


if __name__ == "__main__":
    main()
