"""
TenderWatch CLI - Main entry point.

Polls public procurement portals for newly published tenders and sends
a digest of the ones it has not seen before.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path
from typing import Optional

import typer
from dotenv import load_dotenv
from rich.console import Console
from rich.panel import Panel
from rich.traceback import install as install_rich_traceback

from tenderwatch import __app_name__, __version__

# Load environment variables from .env (if present)
load_dotenv()

install_rich_traceback(show_locals=False, width=120)

# Force UTF-8 on Windows consoles
if sys.platform == "win32":
    os.environ.setdefault("PYTHONIOENCODING", "utf-8")
    if hasattr(sys.stdout, "reconfigure"):
        sys.stdout.reconfigure(encoding="utf-8", errors="replace")
    if hasattr(sys.stderr, "reconfigure"):
        sys.stderr.reconfigure(encoding="utf-8", errors="replace")

console = Console()
err_console = Console(stderr=True)

app = typer.Typer(
    name=__app_name__,
    help="Incremental tender discovery and digest",
    rich_markup_mode="rich",
    no_args_is_help=True,
    pretty_exceptions_show_locals=False,
)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"[bold cyan]{__app_name__}[/bold cyan] version [green]{__version__}[/green]")
        raise typer.Exit()


@app.callback()
def main(
    version: Optional[bool] = typer.Option(
        None,
        "--version",
        "-v",
        help="Show version and exit",
        callback=version_callback,
        is_eager=True,
    ),
) -> None:
    """TenderWatch - incremental tender discovery."""
    pass


# =============================================================================
# Import and register subcommand modules
# =============================================================================

from .commands import discover, tenders  # noqa: E402

app.command("discover")(discover.discover)
app.add_typer(tenders.app, name="tenders", help="View stored tenders")


# =============================================================================
# Init Command
# =============================================================================


@app.command()
def init(
    config_dir: Path = typer.Option(
        Path("configs"),
        "--config-dir",
        help="Configuration directory",
    ),
    force: bool = typer.Option(
        False,
        "--force",
        "-f",
        help="Overwrite existing configuration",
    ),
) -> None:
    """Initialize the TenderWatch database and configuration.

    Creates required directories, a default app.yaml, and the database
    schema.
    """
    from tenderwatch.core.config import load_app_config
    from tenderwatch.persistence.db import init_db

    app_config_path = config_dir / "app.yaml"
    if not app_config_path.exists() or force:
        _create_default_app_config(app_config_path)

    app_config = load_app_config(app_config_path)
    app_config.config_dir = config_dir
    app_config.ensure_directories()

    init_db(app_config.database.url)

    console.print()
    console.print(Panel.fit(
        "[bold green]OK - TenderWatch initialized successfully![/bold green]\n\n"
        "Created:\n"
        f"  - [cyan]{app_config_path}[/cyan] - Application configuration\n"
        f"  - [cyan]{app_config.sources_dir}/[/cyan] - Source configuration directory\n"
        f"  - [cyan]{app_config.database.url}[/cyan] - Tender store\n\n"
        "Next steps:\n"
        "  1. Add a source config under the sources directory\n"
        "  2. Seed the store: [yellow]tenderwatch discover --all --skip-notify[/yellow]\n"
        "  3. Poll for new tenders: [yellow]tenderwatch discover --all[/yellow]",
        title="[bold]Initialization Complete[/bold]",
        border_style="green",
    ))


def _create_default_app_config(path: Path) -> None:
    """Create default app.yaml configuration."""
    default_config = """\
# TenderWatch Configuration

config_dir: configs
data_dir: data

database:
  url: sqlite:///data/tenderwatch.db
  echo: false

logging:
  level: INFO
  file: logs/tenderwatch.log
  json_format: true
  rich_console: true

notify:
  sendgrid_api_key: ${SENDGRID_API_KEY:-}
  from_name: ${FROM_NAME:-TenderWatch}
  from_email: ${FROM_EMAIL:-}
  to_emails: ${TO_EMAILS:-}
  subject_prefix: New Tenders
"""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(default_config, encoding="utf-8")


# =============================================================================
# Entry Point
# =============================================================================


def run() -> None:
    """Run the CLI application."""
    app()


if __name__ == "__main__":
    run()
