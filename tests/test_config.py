from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from tenderwatch.core.config import (
    ClientType,
    ConfigError,
    WatermarkPolicy,
    find_source_config,
    load_all_source_configs,
    load_app_config,
    load_source_config,
)


def _write(path: Path, text: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path


HALIFAX = """\
name: halifax
client_type: token_session
base_url: https://procurement-portal.novascotia.ca
token:
  filters:
    - key: procurementEntity
      value: Halifax Regional Municipality
"""


def test_token_source_defaults(tmp_path):
    config = load_source_config(_write(tmp_path / "halifax.yaml", HALIFAX))

    assert config.client_type == ClientType.TOKEN_SESSION
    assert config.watermark_policy == WatermarkPolicy.ISSUED
    assert config.root_url == "https://procurement-portal.novascotia.ca"
    assert config.token.auth_payload == {"rpid": "GUEST"}
    assert config.token.page_size == 25
    assert config.token.filters[0].value == "Halifax Regional Municipality"
    assert config.max_pages is None


def test_token_section_may_be_omitted(tmp_path):
    path = _write(
        tmp_path / "ns.yaml",
        "name: ns\nclient_type: token_session\nbase_url: https://procurement-portal.novascotia.ca\n",
    )

    assert load_source_config(path).token.sort_type == "DATE_CREATED_DESC"


def test_missing_transport_section_is_config_error(tmp_path):
    path = _write(tmp_path / "bad.yaml", "name: bad\nclient_type: form_session\nbase_url: https://x.example\n")

    with pytest.raises(ConfigError) as exc_info:
        load_source_config(path)

    assert "form" in str(exc_info.value)


def test_column_beyond_row_width_is_config_error(tmp_path):
    path = _write(
        tmp_path / "county.yaml",
        """\
name: county
client_type: form_session
base_url: https://bids.example.gov
form:
  list_url: /Bids/OpenBids.aspx
  pager_target: ctl00$Main$gvBids
  expected_columns: 4
""",
    )

    with pytest.raises(ConfigError) as exc_info:
        load_source_config(path)

    assert "close=4" in str(exc_info.value)


def test_link_column_is_checked_against_row_width(form_source):
    with pytest.raises(ValidationError, match="link=5"):
        form_source(columns={"link": 5})

    assert form_source(expected_columns=6, columns={"link": 5}).form.columns.link == 5


def test_env_expansion_keeps_lowercase_templates(tmp_path, monkeypatch):
    monkeypatch.setenv("BIDS_HOST", "bids.example.gov")
    path = _write(
        tmp_path / "county.yaml",
        """\
name: county
client_type: form_session
base_url: https://${BIDS_HOST}
form:
  list_url: ${LIST_PATH:-/Bids/OpenBids.aspx}
  pager_target: ctl00$Main$gvBids
  pager_argument: "Page${page}"
""",
    )

    config = load_source_config(path)

    assert config.root_url == "https://bids.example.gov"
    assert config.form.list_url == "/Bids/OpenBids.aspx"
    assert config.form.pager_argument == "Page${page}"
    assert config.form.pager_argument.format(page=3) == "Page$3"


def test_load_all_skips_underscored_files(tmp_path):
    _write(tmp_path / "halifax.yaml", HALIFAX)
    _write(tmp_path / "_draft.yaml", "name: draft\n")

    assert list(load_all_source_configs(tmp_path)) == ["halifax"]


def test_duplicate_source_names_are_rejected(tmp_path):
    _write(tmp_path / "a.yaml", HALIFAX)
    _write(tmp_path / "b.yml", HALIFAX)

    with pytest.raises(ConfigError, match="Duplicate"):
        load_all_source_configs(tmp_path)


def test_find_unknown_source_lists_available(tmp_path):
    _write(tmp_path / "halifax.yaml", HALIFAX)

    with pytest.raises(ConfigError) as exc_info:
        find_source_config("toronto", tmp_path)

    assert "halifax" in str(exc_info.value)


def test_app_config_defaults_when_missing(tmp_path):
    config = load_app_config(tmp_path / "app.yaml")

    assert config.database.url == "sqlite:///data/tenderwatch.db"
    assert config.notify.enabled is False
    assert config.sources_dir == Path("configs") / "sources"


def test_notify_recipients_split_on_semicolons(tmp_path, monkeypatch):
    monkeypatch.setenv("TO_EMAILS", "alice@example.org; Bob <bob@example.org>;")
    monkeypatch.setenv("SENDGRID_API_KEY", "SG.test")
    path = _write(
        tmp_path / "app.yaml",
        """\
notify:
  sendgrid_api_key: ${SENDGRID_API_KEY}
  from_email: tenders@example.org
  to_emails: ${TO_EMAILS:-}
""",
    )

    notify = load_app_config(path).notify

    assert notify.enabled is True
    assert notify.to_emails == ["alice@example.org", "Bob <bob@example.org>"]
