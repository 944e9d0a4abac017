from __future__ import annotations

from datetime import date
from typing import Any, Callable

import pytest
from sqlalchemy.orm import Session

from tenderwatch.core.config.models import SourceConfig, WatermarkPolicy
from tenderwatch.core.sources.base import ListPage, Tender
from tenderwatch.persistence.db import create_db_engine
from tenderwatch.persistence.models import Base
from tenderwatch.persistence.repo import TenderStore


@pytest.fixture
def engine():
    engine = create_db_engine("sqlite://")
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session(engine):
    with Session(engine) as session:
        yield session


@pytest.fixture
def make_store(session) -> Callable[..., TenderStore]:
    def _make(source: str = "halifax", policy: WatermarkPolicy = WatermarkPolicy.ISSUED) -> TenderStore:
        return TenderStore(session, source, policy)

    return _make


@pytest.fixture
def make_tender() -> Callable[..., Tender]:
    def _make(tender_id: str, issued: date, close: date | None = None, **kw: Any) -> Tender:
        return Tender(
            id=tender_id,
            url=kw.get("url", f"https://procurement-portal.novascotia.ca/tenders/{tender_id}"),
            description=kw.get("description", f"Tender {tender_id}"),
            agency=kw.get("agency", "Halifax Regional Municipality"),
            issued_date=issued,
            close_date=close or issued,
        )

    return _make


class FakeClient:
    """Scripted source client: one ListPage per cursor, or an exception."""

    def __init__(self, pages: dict[str, ListPage | Exception], name: str = "halifax"):
        self.pages = pages
        self._name = name
        self.calls: list[str] = []
        self.closed = False

    @property
    def name(self) -> str:
        return self._name

    async def list_page(self, cursor: str = "") -> ListPage:
        self.calls.append(cursor)
        page = self.pages[cursor]
        if isinstance(page, Exception):
            raise page
        return page

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def fake_client() -> Callable[..., FakeClient]:
    return FakeClient


@pytest.fixture
def token_source() -> Callable[..., SourceConfig]:
    def _make(**overrides: Any) -> SourceConfig:
        data: dict[str, Any] = {
            "name": "halifax",
            "client_type": "token_session",
            "base_url": "https://procurement-portal.novascotia.ca",
            "token": {
                "filters": [{"key": "procurementEntity", "value": "Halifax Regional Municipality"}],
            },
        }
        data.update(overrides)
        return SourceConfig.model_validate(data)

    return _make


@pytest.fixture
def form_source() -> Callable[..., SourceConfig]:
    def _make(**form_overrides: Any) -> SourceConfig:
        form: dict[str, Any] = {
            "list_url": "/Bids/OpenBids.aspx",
            "form_selector": "form#aspnetForm",
            "search_fields": {"ctl00$Main$ddlStatus": "Open"},
            "submit_fields": {"ctl00$Main$btnSearch": "Search"},
            "pager_target": "ctl00$Main$gvBids",
            "row_selector": "table#grid tr",
            "date_formats": ["%m/%d/%Y"],
        }
        form.update(form_overrides)
        return SourceConfig.model_validate(
            {
                "name": "county",
                "client_type": "form_session",
                "base_url": "https://bids.example.gov",
                "form": form,
            }
        )

    return _make


@pytest.fixture
def browser_source() -> Callable[..., SourceConfig]:
    def _make(**browser_overrides: Any) -> SourceConfig:
        browser: dict[str, Any] = {
            "start_url": "https://procurement.example.org/opportunities",
            "data_url_pattern": r"/api/opportunities/search",
            "filter_selector": "button#filter-open",
            "next_selector": "button.next",
            "settle_delay_ms": 0,
            "records_key": "data.items",
            "id_key": "ref",
            "title_key": "title",
            "agency_key": "org.name",
            "issued_key": "published",
            "close_key": "closing",
        }
        browser.update(browser_overrides)
        return SourceConfig.model_validate(
            {
                "name": "region",
                "client_type": "browser_session",
                "watermark_policy": "first_observed",
                "base_url": "https://procurement.example.org",
                "browser": browser,
            }
        )

    return _make
