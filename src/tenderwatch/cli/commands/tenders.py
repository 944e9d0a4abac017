"""
Tender viewing commands.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

console = Console()
err_console = Console(stderr=True)

app = typer.Typer(
    help="View stored tenders",
    no_args_is_help=True,
)


@app.command("list")
def list_tenders(
    source: str = typer.Option(
        ...,
        "--source",
        "-s",
        help="Source name",
    ),
    limit: int = typer.Option(
        20,
        "--limit",
        "-n",
        help="Maximum results to show",
    ),
    db_url: Optional[str] = typer.Option(
        None,
        "--db-url",
        help="Database URL (overrides app.yaml)",
    ),
    config_dir: Path = typer.Option(
        Path("configs"),
        "--config-dir",
        help="Configuration directory",
    ),
) -> None:
    """List the most recently observed tenders for a source.

    Examples:
        tenderwatch tenders list --source halifax
        tenderwatch tenders list -s halifax -n 50
    """
    from tenderwatch.core.config import ConfigError, load_app_config
    from tenderwatch.persistence.db import get_session, init_db
    from tenderwatch.persistence.repo import TenderStore

    try:
        app_config = load_app_config(config_dir / "app.yaml")
    except ConfigError as e:
        err_console.print(f"[red]Configuration error:[/red] {e}")
        raise typer.Exit(1)

    init_db(db_url or app_config.database.url)

    with get_session() as session:
        store = TenderStore(session, source)
        rows = store.recent(limit)
        total = store.count()

        if not rows:
            console.print(f"[dim]No tenders stored for {source}.[/dim]")
            return

        table = Table(
            title=f"{source} tenders ({len(rows)} of {total} shown)",
            show_header=True,
            header_style="bold magenta",
        )
        table.add_column("ID", style="dim", no_wrap=True)
        table.add_column("Description", max_width=50)
        table.add_column("Agency", max_width=30)
        table.add_column("Issued", justify="right")
        table.add_column("Closes", justify="right")
        table.add_column("First Seen", justify="right")

        for row in rows:
            first_seen = row.first_observed.strftime("%Y-%m-%d %H:%M") if row.first_observed else "-"
            table.add_row(
                row.id,
                row.description or "",
                row.agency or "",
                row.issued.isoformat() if row.issued else "-",
                row.close.isoformat() if row.close else "-",
                first_seen,
            )

        console.print(table)
