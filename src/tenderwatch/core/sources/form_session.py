"""
Form-session source client.

Handles server-rendered listing grids that page through form postbacks
(ASP.NET WebForms style):
1. GET the listing page and capture the form's hidden fields
2. POST the form back, replaying the hidden fields verbatim
3. Page by setting the postback target/argument fields
4. Replace the stored hidden fields with each response's copies
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any
from urllib.parse import urljoin

import httpx
from lxml import etree
from lxml import html as lxml_html

from .base import FetchError, ListPage, SessionError, Tender, page_number
from tenderwatch.core.normalize.parsing import clean_text, parse_date

if TYPE_CHECKING:
    from tenderwatch.core.config.models import FormSessionConfig, SourceConfig


logger = logging.getLogger(__name__)


FORM_HEADERS = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
}


class FormSessionClient:
    """Source client for postback-paged HTML grids.

    Page N is requested by posting ``__EVENTTARGET=pager_target`` and
    ``__EVENTARGUMENT=pager_argument.format(page=N)`` together with the
    hidden state captured from the previous response.
    """

    def __init__(
        self,
        config: SourceConfig,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if config.form is None:
            raise ValueError(f"Source '{config.name}' has no form section")

        self.config = config
        self.settings: FormSessionConfig = config.form
        self.base_url = config.root_url
        self.list_url = urljoin(self.base_url + "/", self.settings.list_url)
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._hidden: dict[str, str] | None = None

    @property
    def name(self) -> str:
        return self.config.name

    async def _ensure_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.config.timeout_seconds),
                headers=FORM_HEADERS,
                follow_redirects=True,
                transport=self._transport,
            )
        return self._client

    async def _ensure_session(self) -> dict[str, str]:
        """Load the listing form once and capture its hidden fields.

        Raises:
            SessionError: If the page cannot be loaded or lacks form state
        """
        if self._hidden is not None:
            return self._hidden

        client = await self._ensure_client()

        try:
            response = await client.get(self.list_url)
        except httpx.HTTPError as e:
            raise SessionError(
                f"Loading listing form failed: {e}",
                source=self.name,
                url=self.list_url,
                cause=e,
            ) from e

        if response.status_code != 200:
            raise SessionError(
                f"Listing form got status {response.status_code}",
                source=self.name,
                url=self.list_url,
                status_code=response.status_code,
            )

        tree = _parse_html(response.text)
        hidden = self._require_hidden(self._hidden_fields(tree) if tree is not None else {})

        self._hidden = hidden
        logger.debug(f"Captured {len(hidden)} hidden fields for {self.name}")
        return hidden

    def _require_hidden(self, hidden: dict[str, str]) -> dict[str, str]:
        """Check that the form state carries every required hidden field.

        Raises:
            SessionError: If a required field is missing
        """
        missing = [f for f in self.settings.required_hidden_fields if f not in hidden]
        if missing:
            raise SessionError(
                f"Listing form is missing hidden fields: {', '.join(missing)}",
                source=self.name,
                url=self.list_url,
            )
        return hidden

    def _hidden_fields(self, tree: Any) -> dict[str, str]:
        """Collect name/value pairs of the form's hidden inputs."""
        forms = tree.cssselect(self.settings.form_selector)
        scope = forms[0] if forms else tree

        fields: dict[str, str] = {}
        for node in scope.cssselect('input[type="hidden"]'):
            name = node.get("name")
            if name:
                fields[name] = node.get("value") or ""
        return fields

    async def list_page(self, cursor: str = "") -> ListPage:
        """Post the form for one page of the grid, newest first."""
        page = page_number(cursor, source=self.name)
        hidden = await self._ensure_session()

        form_data: dict[str, str] = {**hidden, **self.settings.search_fields}
        if page == 1:
            form_data.update(self.settings.submit_fields)
        else:
            form_data["__EVENTTARGET"] = self.settings.pager_target
            form_data["__EVENTARGUMENT"] = self.settings.pager_argument.format(page=page)

        client = await self._ensure_client()
        try:
            response = await client.post(self.list_url, data=form_data)
        except httpx.HTTPError as e:
            raise FetchError(
                f"Page {page} request failed: {e}",
                source=self.name,
                url=self.list_url,
                cause=e,
            ) from e

        if response.status_code != 200:
            raise FetchError(
                f"Page {page} got status {response.status_code}",
                source=self.name,
                url=self.list_url,
                status_code=response.status_code,
            )

        tree = _parse_html(response.text)
        if tree is None:
            raise FetchError(f"Page {page} returned an empty document", source=self.name, url=self.list_url)

        # The next request replays exactly the state this response carried
        self._hidden = self._require_hidden(self._hidden_fields(tree))

        tenders = [self._row_to_tender(cells) for cells in self._data_rows(tree)]

        next_cursor = ""
        if tenders and self._has_pager_link(tree, page + 1):
            next_cursor = str(page + 1)

        logger.debug(f"{self.name} page {page}: {len(tenders)} tenders")
        return ListPage(tenders=tenders, next_cursor=next_cursor)

    def _data_rows(self, tree: Any) -> list[list[Any]]:
        """Return the cells of every data row.

        Header rows (no ``td``) and pager rows (nested table, or rows
        inside one) are skipped.

        Raises:
            FetchError: If a data row has the wrong number of cells
        """
        rows: list[list[Any]] = []
        for row in tree.cssselect(self.settings.row_selector):
            if row.xpath(".//table") or row.xpath("ancestor::tr"):
                continue
            cells = row.xpath("./td")
            if not cells:
                continue
            if len(cells) != self.settings.expected_columns:
                raise FetchError(
                    f"Row has {len(cells)} cells, expected {self.settings.expected_columns}",
                    source=self.name,
                    url=self.list_url,
                )
            rows.append(cells)
        return rows

    def _row_to_tender(self, cells: list[Any]) -> Tender:
        cols = self.settings.columns
        formats = self.settings.date_formats

        tender_id = clean_text(cells[cols.id].text_content())
        if not tender_id:
            raise FetchError("Row without an id", source=self.name, url=self.list_url)

        return Tender(
            id=tender_id,
            url=self._row_url(cells, tender_id),
            description=clean_text(cells[cols.description].text_content()),
            agency=clean_text(cells[cols.agency].text_content()),
            issued_date=parse_date(
                cells[cols.issued].text_content(), formats, field="issued date", source=self.name
            ),
            close_date=parse_date(
                cells[cols.close].text_content(), formats, field="close date", source=self.name
            ),
        )

    def _row_url(self, cells: list[Any], tender_id: str) -> str:
        """Use the row's detail link, else build the portal's tender URL."""
        cols = self.settings.columns
        link_cell = cells[cols.link if cols.link is not None else cols.description]

        for anchor in link_cell.xpath(".//a[@href]"):
            href = anchor.get("href", "").strip()
            if href and not href.startswith(("#", "javascript:")):
                return urljoin(self.list_url, href)

        return self.settings.url_template.format(base_url=self.base_url, id=tender_id)

    def _has_pager_link(self, tree: Any, page: int) -> bool:
        """Check whether the pager offers a postback to ``page``."""
        argument = self.settings.pager_argument.format(page=page)
        needle = f"'{argument}'"
        return any(needle in (a.get("href") or "") for a in tree.xpath("//a[@href]"))

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
        self._client = None

    async def __aenter__(self) -> "FormSessionClient":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()


def _parse_html(text: str) -> Any:
    """Parse an HTML document, returning None for an empty body."""
    if not text or not text.strip():
        return None
    try:
        return lxml_html.fromstring(text)
    except (etree.ParserError, ValueError):
        return None
