"""CLI entry point using Typer."""

from pathlib import Path

import structlog
import typer
from rich.console import Console
from rich.table import Table

app = typer.Typer(
    name="leadsignals",
    help="Lead Signals - discover buying signals from public data sources.",
)
console = Console()

# Configure structured logging
structlog.configure(
    processors=[
        structlog.stdlib.add_log_level,
        structlog.dev.ConsoleRenderer(),
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.PrintLoggerFactory(),
)


def _store():
    from leadsignals.db import SessionLocal
    from leadsignals.store import SqlSignalStore

    return SqlSignalStore(SessionLocal)


def _split(value: str | None) -> list[str]:
    return [part.strip() for part in (value or "").split(",") if part.strip()]


@app.command("init-db")
def init_db() -> None:
    """Create tables directly (local development; use alembic elsewhere)."""
    from leadsignals.db import engine
    from leadsignals.models import Base

    Base.metadata.create_all(engine)
    console.print("[bold green]Database tables created.[/bold green]")


@app.command("add-profile")
def add_profile(
    name: str = typer.Argument(..., help="Profile name"),
    user: str = typer.Option(..., "--user", help="Owner user id"),
    industry: str | None = typer.Option(None, help="Industry label"),
    location: str | None = typer.Option(None, help="Location filter"),
    keywords: str | None = typer.Option(None, help="Comma-separated keywords"),
    exclude: str | None = typer.Option(None, help="Comma-separated excluded keywords"),
    sources: str = typer.Option(
        "contracts_finder,find_a_tender,planning_data", help="Comma-separated source types"
    ),
) -> None:
    """Create a search profile."""
    from leadsignals.models import SearchProfile

    profile = SearchProfile(
        user_id=user,
        name=name,
        industry=industry,
        location=location,
        keywords=_split(keywords),
        excluded_keywords=_split(exclude),
        sources=_split(sources),
    )
    saved = _store().create_profile(profile)
    console.print(f"[green]Profile created:[/green] {saved.id}")


@app.command()
def run(
    profile_id: str = typer.Argument(..., help="Search profile id"),
    user: str = typer.Option(..., "--user", help="Owner user id"),
    days: int | None = typer.Option(None, "--days", min=1, help="Window in days"),
) -> None:
    """Run a search profile against its enabled sources."""
    from leadsignals.search.errors import PersistenceError, ProfileNotFoundError
    from leadsignals.search.orchestrator import build_orchestrator

    console.print("[bold blue]Running search...[/bold blue]")
    try:
        result = build_orchestrator().run(profile_id, user, window_days=days)
    except ProfileNotFoundError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)
    except PersistenceError as e:
        console.print(f"[bold red]Search failed:[/bold red] {e}")
        raise typer.Exit(1)

    search_run = result.search_run
    table = Table(title="Search Run")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("Run id", str(search_run.id))
    table.add_row("Status", search_run.status)
    table.add_row("Sources", ", ".join(search_run.sources_searched or []))
    table.add_row("Signals found", str(search_run.signals_found))
    table.add_row("New signals", str(result.new_signals))
    console.print(table)

    for error in search_run.errors or []:
        console.print(f"[yellow]{error.get('source')}:[/yellow] {error.get('error')}")


@app.command()
def history(
    user: str = typer.Option(..., "--user", help="Owner user id"),
    profile: str | None = typer.Option(None, "--profile", help="Filter by profile id"),
    limit: int = typer.Option(20, "--limit", min=1, help="Max runs to show"),
) -> None:
    """Show recent search runs, newest first."""
    runs = _store().list_runs(user, profile_id=profile, limit=limit)
    if not runs:
        console.print("[yellow]No search runs found.[/yellow]")
        return

    table = Table(title="Search History")
    table.add_column("Run at", style="cyan")
    table.add_column("Status")
    table.add_column("Found", justify="right")
    table.add_column("New", justify="right", style="green")
    table.add_column("Errors", justify="right", style="red")
    for search_run in runs:
        table.add_row(
            search_run.run_at.strftime("%Y-%m-%d %H:%M"),
            search_run.status,
            str(search_run.signals_found),
            str(search_run.new_signals),
            str(len(search_run.errors or [])),
        )
    console.print(table)


@app.command()
def export(
    user: str = typer.Option(..., "--user", help="Owner user id"),
    fmt: str = typer.Option("csv", "--format", help="csv or json"),
    signal_type: str | None = typer.Option(None, "--signal-type", help="Only this signal type"),
    search_run: str | None = typer.Option(None, "--run", help="Only signals from this run"),
    output: Path | None = typer.Option(None, "--output", help="Output file (default: signals-DATE.FORMAT)"),
) -> None:
    """Export signals with their contacts to CSV or JSON."""
    from leadsignals.export import export_signals
    from leadsignals.search.errors import RunNotFoundError

    try:
        exported = export_signals(_store(), user, fmt, signal_type=signal_type, search_run_id=search_run)
    except (ValueError, RunNotFoundError) as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)

    output_path = output or Path(exported.filename)
    output_path.write_text(exported.content, encoding="utf-8")
    console.print(f"[green]Export saved:[/green] {output_path}")


@app.command()
def tenders(
    days: int = typer.Option(7, "--days", min=1, help="Days back to search"),
    source: str = typer.Option("contracts_finder", "--source", help="Source type to query"),
) -> None:
    """Preview recent awards from one source without saving them."""
    from leadsignals.ingest.normalize import normalize_signal
    from leadsignals.ingest.signals import ProfileFilters
    from leadsignals.sources.registry import build_registry

    connector = build_registry().get(source)
    if connector is None:
        console.print(f"[red]Unknown source:[/red] {source}")
        raise typer.Exit(1)

    result = connector.fetch(days, ProfileFilters())
    table = Table(title=f"{source} ({len(result.signals)} signals)")
    table.add_column("Detected", style="cyan")
    table.add_column("Company", style="green")
    table.add_column("Title")
    for raw in result.signals:
        signal = normalize_signal(raw, raw.source_type)
        table.add_row(signal.detected_at.strftime("%Y-%m-%d"), signal.company_name, signal.signal_title)
    console.print(table)

    if result.error:
        console.print(f"[yellow]Warning:[/yellow] {result.error}")


if __name__ == "__main__":
    app()
