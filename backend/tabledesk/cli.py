"""
Tabledesk CLI.

Operational commands: schema creation and the end-of-day sweep, which an
external scheduler runs once per day.
"""

from datetime import datetime
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from tabledesk_shared.config.logging import cli_logger as logger
from tabledesk_shared.config.logging import setup_logging

app = typer.Typer(
    name="tabledesk",
    help="Tabledesk restaurant operations CLI",
    add_completion=False,
)
console = Console()


@app.callback()
def main() -> None:
    setup_logging()


# =============================================================================
# Database Commands
# =============================================================================


@app.command("init-db")
def init_db():
    """Create all tables in the configured database."""
    from tabledesk.models import Base
    from tabledesk_shared.infrastructure.db import engine

    console.print(f"[blue]Creating schema on: {engine.url.render_as_string(hide_password=True)}[/blue]")
    try:
        Base.metadata.create_all(bind=engine)
    except Exception as e:
        console.print(f"[red]✗ Schema creation failed: {e}[/red]")
        raise typer.Exit(1)
    console.print("[green]✓ Schema ready[/green]")


# =============================================================================
# Sweep Commands
# =============================================================================


@app.command()
def sweep(
    restaurant_id: Optional[int] = typer.Option(None, "--restaurant-id", "-r", help="Only sweep this restaurant"),
    as_of: Optional[datetime] = typer.Option(
        None, "--as-of", help="Run as if it were this instant (UTC unless an offset is given)"
    ),
):
    """Complete orders left open from previous business days and free their tables."""
    from tabledesk.services.clock import FixedClock, get_clock
    from tabledesk.services.domain import SweepService
    from tabledesk.services.events.publisher import close_notifier, get_notifier
    from tabledesk_shared.infrastructure.db import get_db_context

    clock = FixedClock(as_of) if as_of is not None else get_clock()
    logger.info("Sweep started", restaurant_id=restaurant_id, as_of=clock.now().isoformat())

    try:
        with get_db_context() as db:
            report = SweepService(db, clock, get_notifier()).run(restaurant_id)
    except Exception as e:
        console.print(f"[red]✗ Sweep failed: {e}[/red]")
        raise typer.Exit(1)
    finally:
        close_notifier()

    table = Table(title=f"End-of-day sweep ({clock.now():%Y-%m-%d %H:%M} UTC)")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("Restaurants", str(report.restaurants))
    table.add_row("Orders completed", str(report.orders_closed))
    table.add_row("Tables freed", str(report.tables_freed))
    table.add_row("Failed restaurants", str(len(report.failed)))
    console.print(table)

    if report.order_ids:
        console.print(f"Completed orders: {', '.join(str(i) for i in report.order_ids)}")

    if report.failed:
        for rid, error in sorted(report.failed.items()):
            console.print(f"[red]✗ Restaurant {rid}: {error}[/red]")
        raise typer.Exit(1)


if __name__ == "__main__":
    app()
