from __future__ import annotations

import logging
from datetime import date

import pytest
from typer.testing import CliRunner

from tenderwatch import __version__
from tenderwatch.cli.main import app
from tenderwatch.core.sources.base import FetchError, ListPage
from tenderwatch.persistence.db import dispose_engine, get_session
from tenderwatch.persistence.repo import TenderStore


runner = CliRunner()

SOURCE = """\
name: halifax
client_type: token_session
base_url: https://procurement-portal.novascotia.ca
"""


@pytest.fixture
def config_dir(tmp_path):
    config_dir = tmp_path / "configs"
    (config_dir / "sources").mkdir(parents=True)
    (config_dir / "sources" / "halifax.yaml").write_text(SOURCE, encoding="utf-8")
    (config_dir / "app.yaml").write_text(
        f"""\
logging:
  level: WARNING
  file: {tmp_path / "logs" / "tenderwatch.log"}
  rich_console: false
""",
        encoding="utf-8",
    )

    dispose_engine()
    yield config_dir
    dispose_engine()

    logger = logging.getLogger("tenderwatch")
    for handler in list(logger.handlers):
        handler.close()
        logger.removeHandler(handler)


def _discover(config_dir, *args: str):
    return runner.invoke(
        app,
        ["discover", *args, "--skip-notify", "--db-url", "sqlite://", "--config-dir", str(config_dir)],
    )


def test_version():
    result = runner.invoke(app, ["--version"])

    assert result.exit_code == 0
    assert __version__ in result.output


def test_discover_requires_a_source_selection(config_dir):
    result = runner.invoke(app, ["discover", "--config-dir", str(config_dir)])

    assert result.exit_code == 1


def test_discover_prints_new_tenders_then_nothing(config_dir, monkeypatch, make_tender, fake_client):
    pages = {"": ListPage([make_tender("T1", date(2024, 1, 10)), make_tender("T2", date(2024, 1, 5))])}
    monkeypatch.setattr(
        "tenderwatch.core.sources.create_client",
        lambda config: fake_client(pages, name=config.name),
    )

    first = _discover(config_dir, "--source", "halifax")
    assert first.exit_code == 0, first.output
    assert "T1" in first.output
    assert "2 new of 2 seen" in first.output

    second = _discover(config_dir, "--all")
    assert second.exit_code == 0, second.output
    assert "0 new of 2 seen" in second.output


def test_failed_source_exits_nonzero_and_keeps_progress(config_dir, monkeypatch, make_tender, fake_client):
    pages = {
        "": ListPage([make_tender("T1", date(2024, 1, 10))], next_cursor="2"),
        "2": FetchError("Got status 503", source="halifax", status_code=503),
    }
    monkeypatch.setattr(
        "tenderwatch.core.sources.create_client",
        lambda config: fake_client(pages, name=config.name),
    )

    result = _discover(config_dir, "--source", "halifax")

    assert result.exit_code == 1
    with get_session() as session:
        assert TenderStore(session, "halifax").count() == 1


def test_unknown_source_is_config_error(config_dir):
    result = _discover(config_dir, "--source", "toronto")

    assert result.exit_code == 1


def test_tenders_list(config_dir, monkeypatch, make_tender, fake_client):
    pages = {"": ListPage([make_tender("T1", date(2024, 1, 10))])}
    monkeypatch.setattr(
        "tenderwatch.core.sources.create_client",
        lambda config: fake_client(pages, name=config.name),
    )
    assert _discover(config_dir, "--source", "halifax").exit_code == 0

    result = runner.invoke(
        app,
        ["tenders", "list", "--source", "halifax", "--db-url", "sqlite://", "--config-dir", str(config_dir)],
    )

    assert result.exit_code == 0, result.output
    assert "T1" in result.output
