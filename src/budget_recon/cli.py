"""
Command-line interface for the bank statement import reconciliation engine.
"""

from datetime import datetime
from pathlib import Path
from typing import Any, Optional
import logging
import sys

import click
import yaml
from rich.console import Console
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from . import __version__
from .config import ReconConfig, generate_default_config, load_config
from .matching.controller import ReconciliationController
from .models.reconciliation import BatchStatus, ConfirmResult, ImportBatch, MatchCandidate
from .parsers.normalizer import parse_amount
from .reports.excel_generator import ExcelReportGenerator
from .storage.database import Database
from .utils.exceptions import ReconciliationError, RowIssueError
from .utils.logging_config import level_from_name, setup_logging

console = Console()

ROW_DISPLAY_LIMIT = 50

config_option = click.option(
    "-c",
    "--config",
    type=click.Path(exists=True, path_type=Path),
    help="Path to configuration file (YAML)",
)
database_option = click.option("--db", "database_url", help="Override the database URL")
user_option = click.option(
    "-u",
    "--user",
    "user_id",
    default="local",
    envvar="BUDGET_RECON_USER",
    show_default=True,
    help="Owner of the ledger",
)
verbose_option = click.option("-v", "--verbose", is_flag=True, help="Enable verbose output")


@click.group()
@click.version_option(version=__version__)
def main():
    """Bank statement import and reconciliation tool."""
    pass


@main.command("init-config")
@click.option(
    "-o", "--output", type=click.Path(path_type=Path), default=Path("config.yaml")
)
def init_config(output: Path):
    """Generate a sample configuration file."""
    generate_default_config(output)
    console.print(f"[green]Configuration file generated: {output}[/green]")


@main.command("init-db")
@config_option
@database_option
def init_db(config: Optional[Path], database_url: Optional[str]):
    """Create the ledger and import tables."""
    recon_config = _load(config, database_url, verbose=False)
    database = Database.from_config(recon_config.database)
    try:
        database.init_schema()
    finally:
        database.dispose()
    console.print(f"[green]Database ready: {recon_config.database.url}[/green]")


@main.command()
@click.argument("statement_file", type=click.Path(exists=True, path_type=Path))
@click.option("-a", "--account", "account_id", required=True, help="Account to import into")
@config_option
@database_option
@user_option
@verbose_option
def parse(
    statement_file: Path,
    account_id: str,
    config: Optional[Path],
    database_url: Optional[str],
    user_id: str,
    verbose: bool,
):
    """
    Parse and classify a statement into a pending import batch.

    STATEMENT_FILE: CSV or Excel export of the bank statement
    """
    recon_config = _load(config, database_url, verbose)

    def run(controller: ReconciliationController) -> None:
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            console=console,
        ) as progress:
            task = progress.add_task("Classifying statement...", total=None)
            batch = controller.parse_file(user_id, account_id, statement_file)
            progress.update(task, completed=True)

        _display_batch(batch)
        console.print(f"\n[green]Batch created: {batch.id}[/green]")

    _run(recon_config, run, verbose)


@main.command()
@click.argument("account_id")
@click.argument("amount")
@click.argument("on_date", type=click.DateTime(formats=["%Y-%m-%d"]))
@config_option
@database_option
@user_option
def candidates(
    account_id: str,
    amount: str,
    on_date: datetime,
    config: Optional[Path],
    database_url: Optional[str],
    user_id: str,
):
    """
    Search unreconciled transactions with the same absolute amount.

    AMOUNT uses the configured decimal separator; ON_DATE is YYYY-MM-DD.
    """
    recon_config = _load(config, database_url, verbose=False)

    def run(controller: ReconciliationController) -> None:
        value = parse_amount(
            amount, recon_config.locale.decimal_separator, recon_config.locale.digit_grouping
        )
        found = controller.match_candidates(user_id, account_id, value, on_date.date())
        _display_candidates(found, title=f"Candidates for {value} around {on_date.date()}")

    _run(recon_config, run, verbose=False)


@main.command()
@click.argument("batch_id")
@click.argument("overrides_file", type=click.Path(exists=True, path_type=Path))
@config_option
@database_option
@user_option
def review(
    batch_id: str,
    overrides_file: Path,
    config: Optional[Path],
    database_url: Optional[str],
    user_id: str,
):
    """
    Store row overrides on a pending batch.

    OVERRIDES_FILE: YAML list of {row, action, matched_transaction_id,
    payee_id, new_payee_name, description} entries
    """
    recon_config = _load(config, database_url, verbose=False)

    def run(controller: ReconciliationController) -> None:
        batch = controller.review(batch_id, user_id, _read_overrides(overrides_file))
        _display_batch(batch)
        console.print(f"\n[green]{len(batch.overrides)} override(s) stored[/green]")

    _run(recon_config, run, verbose=False)


@main.command()
@click.argument("batch_id")
@click.option(
    "--overrides",
    "overrides_file",
    type=click.Path(exists=True, path_type=Path),
    help="YAML file with last-minute row overrides",
)
@config_option
@database_option
@user_option
@verbose_option
def confirm(
    batch_id: str,
    overrides_file: Optional[Path],
    config: Optional[Path],
    database_url: Optional[str],
    user_id: str,
    verbose: bool,
):
    """Apply a pending batch to the ledger (all rows or none)."""
    recon_config = _load(config, database_url, verbose)

    def run(controller: ReconciliationController) -> None:
        overrides = _read_overrides(overrides_file) if overrides_file else None
        result = controller.confirm(batch_id, user_id, overrides)
        _display_confirm_result(result)

    _run(recon_config, run, verbose)


@main.command()
@click.argument("batch_id")
@click.option(
    "-o", "--report", "report_path", type=click.Path(path_type=Path), help="Write an Excel report"
)
@config_option
@database_option
@user_option
def show(
    batch_id: str,
    report_path: Optional[Path],
    config: Optional[Path],
    database_url: Optional[str],
    user_id: str,
):
    """Display an import batch, optionally exporting it to Excel."""
    recon_config = _load(config, database_url, verbose=False)

    def run(controller: ReconciliationController) -> None:
        batch = controller.get_batch(batch_id, user_id)
        _display_batch(batch)

        if report_path is not None:
            generator = ExcelReportGenerator(recon_config)
            target = report_path
            if target.is_dir():
                target = target / generator.default_filename(batch)
            path = generator.generate_report(batch, target)
            console.print(f"\n[green]Report generated: {path}[/green]")

    _run(recon_config, run, verbose=False)


@main.command()
@click.option("-a", "--account", "account_id", help="Only batches of this account")
@click.option(
    "--status",
    type=click.Choice([s.value for s in BatchStatus]),
    help="Only batches with this status",
)
@click.option("--limit", type=int, default=20, show_default=True)
@config_option
@database_option
@user_option
def history(
    account_id: Optional[str],
    status: Optional[str],
    limit: int,
    config: Optional[Path],
    database_url: Optional[str],
    user_id: str,
):
    """List import batches, newest first."""
    recon_config = _load(config, database_url, verbose=False)

    def run(controller: ReconciliationController) -> None:
        batches = controller.list_batches(
            user_id,
            account_id=account_id,
            status=BatchStatus(status) if status else None,
            limit=limit,
        )

        table = Table(title="Import History")
        table.add_column("Batch")
        table.add_column("Account")
        table.add_column("File")
        table.add_column("Status")
        table.add_column("Rows", justify="right")
        table.add_column("Matched", justify="right")
        table.add_column("Created")

        for batch in batches:
            table.add_row(
                batch.id,
                batch.account_id,
                batch.filename or "-",
                batch.status.value,
                str(len(batch.rows)),
                str(batch.matched_count),
                batch.created_at.strftime("%Y-%m-%d %H:%M") if batch.created_at else "-",
            )

        console.print(table)

    _run(recon_config, run, verbose=False)


def _load(config: Optional[Path], database_url: Optional[str], verbose: bool) -> ReconConfig:
    """Load configuration and set up logging; exit on a bad configuration."""
    try:
        recon_config = load_config(config)
    except ReconciliationError as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)

    if database_url:
        recon_config.database.url = database_url

    level = logging.DEBUG if verbose else level_from_name(recon_config.logging.level)
    log_file = Path(recon_config.logging.file) if recon_config.logging.file else None
    setup_logging(level, log_file=log_file, log_format=recon_config.logging.format)
    return recon_config


def _run(recon_config: ReconConfig, action, verbose: bool) -> None:
    database = Database.from_config(recon_config.database)
    try:
        database.init_schema()
        action(ReconciliationController(recon_config, database))
    except RowIssueError as e:
        console.print(f"[red]Error: {e.args[0]}[/red]")
        _display_issues(e)
        sys.exit(1)
    except ReconciliationError as e:
        console.print(f"[red]Error: {e}[/red]")
        if verbose:
            console.print_exception()
        sys.exit(1)
    finally:
        database.dispose()


def _read_overrides(path: Path) -> list[dict[str, Any]]:
    try:
        with open(path, "r") as f:
            data = yaml.safe_load(f) or []
    except yaml.YAMLError as e:
        raise click.BadParameter(f"Invalid YAML in {path}: {e}") from e

    if isinstance(data, dict):
        data = data.get("overrides", [])
    if not isinstance(data, list) or not all(isinstance(item, dict) for item in data):
        raise click.BadParameter(f"{path} must contain a list of row overrides")
    return data


def _display_batch(batch: ImportBatch) -> None:
    """Display batch rows and summary in console."""
    table = Table(title=f"Import Batch {batch.id} ({batch.state.value})")
    table.add_column("#", justify="right")
    table.add_column("Date")
    table.add_column("Amount", justify="right")
    table.add_column("Description")
    table.add_column("Type")
    table.add_column("Action")
    table.add_column("Target")
    table.add_column("Payee")

    effective = batch.effective_rows()
    for item in effective[:ROW_DISPLAY_LIMIT]:
        result = batch.results[item.row_index]
        table.add_row(
            str(item.row_index),
            str(item.row.date),
            f"{item.row.amount:,.2f}",
            (
                item.description[:40] + "..."
                if len(item.description) > 40
                else item.description
            ),
            result.match_type.value,
            item.action.value,
            item.matched_transaction_id
            or (f"{len(result.candidates)} candidates" if result.candidates else "-"),
            item.new_payee_name or result.suggested_payee_name or item.payee_id or "-",
        )

    console.print(table)

    if len(effective) > ROW_DISPLAY_LIMIT:
        console.print(f"\n... and {len(effective) - ROW_DISPLAY_LIMIT} more rows")

    summary_table = Table(title="Summary")
    summary_table.add_column("Metric", style="cyan")
    summary_table.add_column("Value", justify="right")
    for key, value in batch.summary.items():
        summary_table.add_row(key.replace("_", " ").title(), str(value))
    for suffix, count in sorted(batch.cards_detected.items()):
        summary_table.add_row(f"Card CB*{suffix}", str(count))
    console.print(summary_table)

    for issue in batch.parse_errors:
        console.print(f"[yellow]Line {issue.row_index}: {issue.message}[/yellow]")
    if batch.error_message:
        console.print(f"[red]{batch.error_message}[/red]")
        for issue in batch.error_details:
            console.print(f"[red]  row {issue.row_index}: {issue.message}[/red]")


def _display_candidates(found: list[MatchCandidate], title: str) -> None:
    table = Table(title=title)
    table.add_column("Transaction")
    table.add_column("Date")
    table.add_column("Amount", justify="right")
    table.add_column("Description")
    table.add_column("Payee")

    for candidate in found:
        table.add_row(
            candidate.id,
            str(candidate.date),
            f"{candidate.amount:,.2f}",
            candidate.description,
            candidate.payee_name or "-",
        )

    console.print(table)
    console.print(f"\nTotal candidates: {len(found)}")


def _display_confirm_result(result: ConfirmResult) -> None:
    table = Table(title=f"Batch {result.batch_id} confirmed")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")
    for key, value in result.counts().items():
        table.add_row(key.title(), str(value))
    table.add_row("Aliases Learned", str(result.aliases_learned))
    console.print(table)


def _display_issues(error: RowIssueError) -> None:
    table = Table(title="Rows in error")
    table.add_column("Row", justify="right")
    table.add_column("Error")
    for issue in error.issues:
        table.add_row(str(issue.row_index), issue.message)
    console.print(table)


if __name__ == "__main__":
    main()
