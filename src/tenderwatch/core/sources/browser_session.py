"""
Browser-session source client.

For single-page apps whose listing data never appears in the initial
HTML. A real browser is driven through the listing (navigate, toggle the
filter, click "next"), and the JSON the app fetches in the background is
captured by a response hook into a ``CaptureBuffer``. Each ``list_page``
call performs one page action and pops the oldest captured payload.
"""

from __future__ import annotations

import asyncio
import logging
import re
from typing import TYPE_CHECKING, Any

import orjson

from .base import FetchError, ListPage, SessionError, Tender, page_number
from .capture import CaptureBuffer
from tenderwatch.core.normalize.parsing import clean_text, get_path, parse_date

if TYPE_CHECKING:
    from playwright.async_api import Browser, Page, Playwright, Response

    from tenderwatch.core.config.models import BrowserSessionConfig, SourceConfig


logger = logging.getLogger(__name__)


DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/120.0.0.0 Safari/537.36"
)


class BrowserSessionClient:
    """Source client that reads an SPA's background data responses.

    Args:
        config: Source configuration with a ``browser`` section
        page: An already-open page to drive instead of launching a
            browser. The caller keeps ownership of it.
    """

    def __init__(self, config: SourceConfig, *, page: Page | None = None) -> None:
        if config.browser is None:
            raise ValueError(f"Source '{config.name}' has no browser section")

        self.config = config
        self.settings: BrowserSessionConfig = config.browser
        self.base_url = config.root_url
        self.timeout_ms = int(config.timeout_seconds * 1000)
        self.buffer = CaptureBuffer(source=config.name)

        self._data_url = re.compile(self.settings.data_url_pattern)
        self._page: Page | None = page
        self._owns_page = page is None
        self._playwright: Playwright | None = None
        self._browser: Browser | None = None
        self._ready = False
        self._current_page = 0
        self._hook_tasks: set[asyncio.Future[None]] = set()
        self._last_capture: asyncio.Future[None] | None = None
        self._hooked = False

    @property
    def name(self) -> str:
        return self.config.name

    # -------------------------------------------------------------------------
    # Event hook
    # -------------------------------------------------------------------------

    def _on_response(self, response: Response) -> None:
        """Response hook registered on the page.

        Runs on the browser's event delivery; it only schedules the body
        read and never blocks the page.
        """
        if not self._data_url.search(response.url):
            return
        task = asyncio.ensure_future(self._capture(response, self._last_capture))
        self._last_capture = task
        self._hook_tasks.add(task)
        task.add_done_callback(self._hook_tasks.discard)

    async def _capture(self, response: Response, previous: asyncio.Future[None] | None) -> None:
        """Decode a matching response and append it to the buffer.

        Bodies are read concurrently, but each capture appends only after
        the one scheduled before it, so the buffer keeps arrival order.
        Undecodable bodies are dropped; the app also fetches non-data
        resources that match loosely written patterns.
        """
        decoded = True
        payload: Any = None
        try:
            payload = orjson.loads(await response.body())
        except Exception as e:
            logger.debug(f"Dropped undecodable response from {response.url}: {e}")
            decoded = False

        if previous is not None:
            await asyncio.wait([previous])
        if not decoded:
            return
        self.buffer.append(payload)
        logger.debug(f"Captured data response from {response.url} ({len(self.buffer)} buffered)")

    # -------------------------------------------------------------------------
    # Session
    # -------------------------------------------------------------------------

    async def _open_page(self) -> Page:
        """Launch the browser and open a fresh page."""
        from playwright.async_api import async_playwright

        self._playwright = await async_playwright().start()
        launcher = getattr(self._playwright, self.settings.browser)
        self._browser = await launcher.launch(headless=self.settings.headless)
        context = await self._browser.new_context(
            user_agent=self.settings.user_agent or DEFAULT_USER_AGENT,
            locale="en-US",
        )
        page = await context.new_page()
        page.set_default_timeout(self.timeout_ms)
        logger.info(f"Launched {self.settings.browser} browser (headless={self.settings.headless})")
        return page

    async def _ensure_session(self) -> Page:
        """Bootstrap the browser session once.

        Raises:
            SessionError: If the browser cannot start or the app cannot load
        """
        if self._ready and self._page is not None:
            return self._page

        try:
            if self._page is None:
                self._page = await self._open_page()
            page = self._page
            if not self._hooked:
                page.on("response", self._on_response)
                self._hooked = True

            await page.goto(self.settings.start_url, wait_until="networkidle")

            if self.settings.filter_selector:
                # Only responses after the filter toggle belong to the listing
                await self._drain_hooks()
                self.buffer.clear()
                await page.click(self.settings.filter_selector)
        except Exception as e:
            raise SessionError(
                f"Browser session failed: {e}",
                source=self.name,
                url=self.settings.start_url,
                cause=e,
            ) from e

        self._ready = True
        return page

    # -------------------------------------------------------------------------
    # Listing
    # -------------------------------------------------------------------------

    async def list_page(self, cursor: str = "") -> ListPage:
        """Advance the app by one page and return the captured records."""
        page = await self._ensure_session()
        requested = page_number(cursor, source=self.name)

        if requested != self._current_page + 1:
            raise FetchError(
                f"Cursor {cursor!r} is out of sequence (expected page {self._current_page + 1})",
                source=self.name,
            )

        try:
            if requested > 1:
                await page.click(self.settings.next_selector)
            await self._wait_for_settle(page)
        except Exception as e:
            raise FetchError(
                f"Page {requested} did not load: {e}",
                source=self.name,
                url=page.url,
                cause=e,
            ) from e

        payload = self.buffer.pop_oldest()
        self._current_page = requested

        tenders = self._payload_to_tenders(payload)

        next_cursor = ""
        if tenders and await self._has_next(page):
            next_cursor = str(requested + 1)

        logger.debug(f"{self.name} page {requested}: {len(tenders)} tenders")
        return ListPage(tenders=tenders, next_cursor=next_cursor)

    async def _wait_for_settle(self, page: Page) -> None:
        """Wait for the DOM update a page action triggered to finish."""
        await page.wait_for_load_state("networkidle")
        if self.settings.results_selector:
            await page.wait_for_selector(self.settings.results_selector)
        # Secondary UI updates are not signalled by any event
        await asyncio.sleep(self.settings.settle_delay_ms / 1000)
        await self._drain_hooks()

    async def _drain_hooks(self) -> None:
        """Let in-flight capture tasks finish appending."""
        if self._hook_tasks:
            await asyncio.gather(*list(self._hook_tasks), return_exceptions=True)

    async def _has_next(self, page: Page) -> bool:
        """Check whether the 'next page' control exists and is enabled."""
        control = await page.query_selector(self.settings.next_selector)
        if control is None:
            return False
        if not await control.is_enabled():
            return False
        return (await control.get_attribute("aria-disabled")) != "true"

    def _payload_to_tenders(self, payload: Any) -> list[Tender]:
        """Map a captured payload onto tenders.

        Raises:
            FetchError: If the record list is missing or malformed
            ParseError: If a date field is not a valid date
        """
        s = self.settings
        records = get_path(payload, s.records_key)
        if not isinstance(records, list):
            raise FetchError(f"Captured payload has no '{s.records_key}' list", source=self.name)

        tenders: list[Tender] = []
        for record in records:
            if not isinstance(record, dict):
                raise FetchError("Captured record is not an object", source=self.name)

            tender_id = clean_text(get_path(record, s.id_key))
            if not tender_id:
                raise FetchError(f"Captured record without '{s.id_key}'", source=self.name)

            tenders.append(
                Tender(
                    id=tender_id,
                    url=s.url_template.format(base_url=self.base_url, id=tender_id),
                    description=clean_text(get_path(record, s.title_key)),
                    agency=clean_text(get_path(record, s.agency_key)),
                    issued_date=parse_date(
                        get_path(record, s.issued_key), s.date_formats, field=s.issued_key, source=self.name
                    ),
                    close_date=parse_date(
                        get_path(record, s.close_key), s.date_formats, field=s.close_key, source=self.name
                    ),
                )
            )
        return tenders

    # -------------------------------------------------------------------------
    # Cleanup
    # -------------------------------------------------------------------------

    async def close(self) -> None:
        """Unhook from the page, and close the browser if this client launched it."""
        self._ready = False
        await self._drain_hooks()

        if self._hooked and self._page is not None:
            self._page.remove_listener("response", self._on_response)
        self._hooked = False

        if not self._owns_page:
            return

        if self._page is not None and not self._page.is_closed():
            await self._page.close()
        self._page = None

        if self._browser is not None:
            await self._browser.close()
            self._browser = None

        if self._playwright is not None:
            await self._playwright.stop()
            self._playwright = None

    async def __aenter__(self) -> "BrowserSessionClient":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()
