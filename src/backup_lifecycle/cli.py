"""
Backup Lifecycle CLI - Command-line interface.

Run the tier lifecycle, inspect counts, probe the cloud tier and print
accumulated metrics from the terminal.
"""

import logging
from pathlib import Path
from typing import NoReturn, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from backup_lifecycle.config.settings import LifecycleSettings, load_settings
from backup_lifecycle.core.exceptions import ConfigurationError, TierAccessError, format_exception
from backup_lifecycle.core.models import RunSummary, TierStatus
from backup_lifecycle.ledger import RunOutcome, Severity
from backup_lifecycle.monitoring.health import ConnectivityStatus, probe_cloud
from backup_lifecycle.monitoring.metrics import MetricsStore
from backup_lifecycle.orchestrator import LifecycleOrchestrator, RunContext
from backup_lifecycle.storage.remote import RcloneRemote

app = typer.Typer(
    name="backup-lifecycle",
    help="Backup Lifecycle - tiered retention for backup archives and logs",
    no_args_is_help=True,
)
console = Console()

STATUS_STYLES = {
    TierStatus.OK: "green",
    TierStatus.WARNING: "yellow",
    TierStatus.ERROR: "red",
}

SEVERITY_STYLES = {
    Severity.INFO: "cyan",
    Severity.WARNING: "yellow",
    Severity.CRITICAL: "red",
}


def _setup_logging(level: str) -> None:
    package_logger = logging.getLogger("backup_lifecycle")
    for handler in list(package_logger.handlers):
        if isinstance(handler, RichHandler):
            package_logger.removeHandler(handler)
    handler = RichHandler(console=Console(stderr=True), show_path=False)
    package_logger.addHandler(handler)
    package_logger.setLevel(level)


def _load(config: Optional[Path], verbose: bool) -> LifecycleSettings:
    try:
        settings = load_settings(config)
    except ConfigurationError as e:
        console.print(f"[red]Configuration error:[/red] {format_exception(e)}")
        for error in e.validation_errors:
            console.print(f"  - {error}")
        raise typer.Exit(int(RunOutcome.CRITICAL))
    _setup_logging("DEBUG" if verbose else settings.log_level)
    return settings


def _abort(error: TierAccessError) -> NoReturn:
    console.print(f"[red]Cannot start run:[/red] {format_exception(error)}")
    raise typer.Exit(int(RunOutcome.CRITICAL))


def _print_summary(summary: RunSummary) -> None:
    table = Table(title=f"Run {summary.run_id}")
    table.add_column("Kind", style="cyan")
    table.add_column("Tier", style="magenta")
    table.add_column("Occupied/Max", justify="right")
    table.add_column("Deleted", justify="right")
    table.add_column("Transfer")
    table.add_column("Status")

    for report in summary.tiers:
        style = STATUS_STYLES[report.status]
        table.add_row(
            report.kind.value,
            report.tier.value,
            report.occupancy,
            str(report.deleted),
            report.transfer.value if report.transfer else "-",
            f"[{style}]{report.status.value}[/{style}]",
        )
    console.print(table)

    if summary.ledger:
        ledger_table = Table(title=f"Ledger ({len(summary.ledger)} records)")
        ledger_table.add_column("Severity")
        ledger_table.add_column("Category", style="cyan")
        ledger_table.add_column("Message")
        ledger_table.add_column("Details", style="dim")
        for entry in summary.ledger:
            severity = Severity(entry["severity"])
            style = SEVERITY_STYLES[severity]
            label = severity.value + (" (advisory)" if entry.get("advisory") else "")
            ledger_table.add_row(
                f"[{style}]{label}[/{style}]",
                entry["category"],
                entry["message"],
                entry.get("details", ""),
            )
        console.print(ledger_table)

    outcome = RunOutcome(summary.exit_code)
    color = {"SUCCESS": "green", "WARNING": "yellow", "CRITICAL": "red"}[outcome.name]
    console.print(
        Panel(
            f"[{color}]{outcome.name}[/{color}] (exit code {summary.exit_code})",
            title="Result",
        )
    )


@app.command()
def run(
    backup_file: Optional[Path] = typer.Option(
        None, "--backup-file", "-b", help="This run's backup archive on the primary tier"
    ),
    log_file: Optional[Path] = typer.Option(
        None, "--log-file", "-l", help="This run's log file on the primary tier"
    ),
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="YAML configuration file"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Count and plan without changing anything"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
):
    """Run the lifecycle for backups and logs across all tiers."""
    settings = _load(config, verbose)
    if dry_run:
        settings = settings.model_copy(update={"dry_run": True})

    for label, path in (("Backup", backup_file), ("Log", log_file)):
        if path is not None and not path.is_file():
            console.print(f"[red]{label} file does not exist: {path}[/red]")
            raise typer.Exit(int(RunOutcome.CRITICAL))

    try:
        with RunContext(work_dir_parent=settings.work_dir_parent) as ctx:
            summary = LifecycleOrchestrator(settings, ctx).run(backup_file, log_file)
            common = ctx.ledger.most_common_message()
    except TierAccessError as e:
        _abort(e)

    _print_summary(summary)
    if common:
        console.print(f"Most common issue: {common[0]} ({common[1]}x)")

    if summary.exit_code:
        raise typer.Exit(summary.exit_code)


@app.command()
def count(
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="YAML configuration file"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
):
    """Print per-tier artifact counts."""
    settings = _load(config, verbose)

    try:
        with RunContext(work_dir_parent=settings.work_dir_parent) as ctx:
            counts = LifecycleOrchestrator(settings, ctx).count_all()
    except TierAccessError as e:
        _abort(e)

    table = Table(title="Artifact Counts")
    table.add_column("Kind", style="cyan")
    table.add_column("Primary", justify="right")
    table.add_column("Secondary", justify="right")
    table.add_column("Cloud", justify="right")
    table.add_column("Total", justify="right", style="green")
    for kind, values in counts.items():
        table.add_row(
            kind,
            str(values["primary"]),
            str(values["secondary"]),
            str(values["cloud"]),
            str(values["total"]),
        )
    console.print(table)


@app.command()
def probe(
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="YAML configuration file"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
):
    """Check connectivity to the cloud tier."""
    settings = _load(config, verbose)
    result = probe_cloud(settings, RcloneRemote.from_settings(settings.remote))

    color = {
        ConnectivityStatus.OK: "green",
        ConnectivityStatus.ERROR: "red",
        ConnectivityStatus.DISABLED: "dim",
        ConnectivityStatus.UNKNOWN: "yellow",
    }[result.status]
    code = f" [{result.error_code.value}]" if result.error_code else ""
    console.print(f"Cloud: [{color}]{result.status.value}[/{color}]{code} {result.message}")

    if result.status is ConnectivityStatus.ERROR:
        raise typer.Exit(1)


@app.command()
def metrics(
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="YAML configuration file"),
    metrics_file: Optional[Path] = typer.Option(
        None, "--file", "-f", help="Metrics file (defaults to the configured one)"
    ),
):
    """Print accumulated metrics in Prometheus text format."""
    settings = _load(config, verbose=False)
    path = metrics_file or (Path(settings.metrics_file) if settings.metrics_file else None)
    if path is None:
        console.print("[red]No metrics file configured[/red]")
        raise typer.Exit(1)

    store = MetricsStore(path, lock_timeout=settings.metrics_lock_timeout)
    typer.echo(store.load().to_prometheus(), nl=False)


def main():
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
