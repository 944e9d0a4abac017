"""
Discover command: poll sources for new tenders and send the digest.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import TYPE_CHECKING, Optional

import typer
from rich.console import Console
from rich.table import Table

if TYPE_CHECKING:
    from tenderwatch.core.config.models import AppConfig, SourceConfig
    from tenderwatch.core.discovery.driver import DiscoveryResult

console = Console()
err_console = Console(stderr=True)


def _load_app(config_dir: Path, db_url: str | None) -> AppConfig:
    """Load app.yaml from the config directory and set up logging."""
    from tenderwatch.core.config import load_app_config
    from tenderwatch.core.logging import configure_from

    app_config = load_app_config(config_dir / "app.yaml")
    app_config.config_dir = config_dir
    if db_url:
        app_config.database.url = db_url

    configure_from(app_config.logging)
    return app_config


def _select_sources(app_config: AppConfig, source: str | None) -> list[SourceConfig]:
    from tenderwatch.core.config import find_source_config, load_all_source_configs

    if source:
        return [find_source_config(source, app_config.sources_dir)]

    configs = load_all_source_configs(app_config.sources_dir)
    return [config for config in configs.values() if config.enabled]


async def _discover_source(config: SourceConfig) -> DiscoveryResult:
    """Run one discovery pass for a source against the shared store."""
    from tenderwatch.core.discovery import DiscoveryDriver
    from tenderwatch.core.sources import create_client
    from tenderwatch.persistence.db import get_session
    from tenderwatch.persistence.repo import TenderStore

    client = create_client(config)
    try:
        with get_session() as session:
            store = TenderStore(session, config.name, config.watermark_policy)
            driver = DiscoveryDriver(client, store, max_pages=config.max_pages)
            return await driver.run()
    finally:
        await client.close()


def discover(
    source: Optional[str] = typer.Option(
        None,
        "--source",
        "-s",
        help="Source name to poll",
    ),
    all_sources: bool = typer.Option(
        False,
        "--all",
        "-a",
        help="Poll all enabled sources",
    ),
    skip_notify: bool = typer.Option(
        False,
        "--skip-notify",
        help="Print new tenders instead of sending the digest (e.g. when seeding the store)",
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
    """Poll sources for tenders not seen before.

    Examples:
        tenderwatch discover --source halifax
        tenderwatch discover --all --skip-notify
    """
    from tenderwatch.core.config import ConfigError
    from tenderwatch.core.notify import EmailNotifier, NotifyError
    from tenderwatch.core.sources.base import DiscoveryError
    from tenderwatch.persistence.db import init_db

    if not source and not all_sources:
        err_console.print("[red]Specify --source <name> or --all[/red]")
        raise typer.Exit(1)

    if source and all_sources:
        err_console.print("[red]Cannot specify both --source and --all[/red]")
        raise typer.Exit(1)

    try:
        app_config = _load_app(config_dir, db_url)
        sources = _select_sources(app_config, source)
    except ConfigError as e:
        err_console.print(f"[red]Configuration error:[/red] {e}")
        raise typer.Exit(1)

    if not sources:
        err_console.print(f"[red]No enabled sources found in {app_config.sources_dir}[/red]")
        raise typer.Exit(1)

    init_db(app_config.database.url, echo=app_config.database.echo)

    results: list[DiscoveryResult] = []
    failures: list[tuple[str, Exception]] = []

    for config in sources:
        try:
            results.append(asyncio.run(_discover_source(config)))
        except DiscoveryError as e:
            failures.append((config.name, e))
            err_console.print(f"[red]{config.name}: discovery failed -[/red] {e}")

    new_tenders = [tender for result in results for tender in result.new_tenders]

    notify_config = app_config.notify
    if skip_notify or not notify_config.enabled:
        _show_new_tenders(results)
    else:
        try:
            EmailNotifier(notify_config).notify(new_tenders)
        except NotifyError as e:
            err_console.print(f"[red]Notification failed:[/red] {e}")
            raise typer.Exit(1)
        console.print(f"[green]{len(new_tenders)} new tenders[/green]")

    if failures:
        raise typer.Exit(1)


def _show_new_tenders(results: list[DiscoveryResult]) -> None:
    """Print new tenders per source."""
    for result in results:
        stats = result.stats
        title = (
            f"{result.source}: {stats.tenders_new} new of {stats.tenders_seen} seen "
            f"({stats.pages_fetched} pages)"
        )

        if not result.new_tenders:
            console.print(f"[dim]{title}[/dim]")
            continue

        table = Table(title=title, show_header=True, header_style="bold magenta")
        table.add_column("ID", style="cyan", no_wrap=True)
        table.add_column("Description", max_width=60)
        table.add_column("Agency", max_width=30)
        table.add_column("Issued", justify="right")
        table.add_column("Closes", justify="right")

        for tender in result.new_tenders:
            table.add_row(
                tender.id,
                tender.description,
                tender.agency,
                tender.issued_date.isoformat(),
                tender.close_date.isoformat(),
            )

        console.print(table)
