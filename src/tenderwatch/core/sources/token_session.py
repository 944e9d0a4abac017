"""
Token-session source client.

Talks to a JSON listing API that hands out a bearer token from a guest
login call. Pages are numbered; the cursor carries the page number.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any
from urllib.parse import urlparse

import httpx
import orjson

from .base import FetchError, ListPage, SessionError, Tender, page_number
from tenderwatch.core.normalize.parsing import clean_text, parse_date, parse_date_prefix

if TYPE_CHECKING:
    from tenderwatch.core.config.models import SourceConfig, TokenSessionConfig


logger = logging.getLogger(__name__)


BASE_HEADERS = {
    "Accept": "application/json",
    "Content-Type": "application/json",
}


class TokenSessionClient:
    """Source client for bearer-token JSON APIs.

    The guest login runs on the first ``list_page`` call; its token is
    sent with every later request. Cookies set by the API persist in the
    underlying httpx client.
    """

    def __init__(
        self,
        config: SourceConfig,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if config.token is None:
            raise ValueError(f"Source '{config.name}' has no token section")

        self.config = config
        self.settings: TokenSessionConfig = config.token
        self.base_url = config.root_url
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._token: str | None = None

    @property
    def name(self) -> str:
        return self.config.name

    async def _ensure_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=httpx.Timeout(self.config.timeout_seconds),
                headers=BASE_HEADERS,
                follow_redirects=True,
                transport=self._transport,
            )
        return self._client

    async def _ensure_session(self) -> str:
        """Log in once and remember the bearer token.

        Raises:
            SessionError: If the login call fails or returns no token
        """
        if self._token:
            return self._token

        client = await self._ensure_client()
        url = self.settings.auth_path

        try:
            response = await client.post(url, content=orjson.dumps(self.settings.auth_payload))
        except httpx.HTTPError as e:
            raise SessionError(
                f"Login request failed: {e}",
                source=self.name,
                url=url,
                cause=e,
            ) from e

        if response.status_code != 200:
            raise SessionError(
                f"Login got status {response.status_code}",
                source=self.name,
                url=url,
                status_code=response.status_code,
            )

        try:
            body = orjson.loads(response.content)
        except orjson.JSONDecodeError as e:
            raise SessionError(
                f"Decoding login response: {e}",
                source=self.name,
                url=url,
                cause=e,
            ) from e

        token = body.get(self.settings.token_field) if isinstance(body, dict) else None
        if not token:
            raise SessionError(
                f"Login response does not contain {self.settings.token_field}",
                source=self.name,
                url=url,
            )

        self._token = token
        logger.debug(f"Established token session for {self.name}")
        return token

    async def _post_json(
        self,
        params: dict[str, str],
        body: dict[str, Any] | None = None,
    ) -> Any:
        """POST to the listing endpoint and decode the JSON reply.

        Raises:
            FetchError: On transport failure, non-200 status, or bad JSON
        """
        client = await self._ensure_client()
        token = await self._ensure_session()
        url = self.settings.list_path

        try:
            response = await client.post(
                url,
                params=params,
                content=orjson.dumps(body) if body is not None else None,
                headers={"Authorization": f"Bearer {token}"},
            )
        except httpx.HTTPError as e:
            raise FetchError(
                f"Request failed: {e}",
                source=self.name,
                url=url,
                cause=e,
            ) from e

        if response.status_code != 200:
            raise FetchError(
                f"Got status {response.status_code}",
                source=self.name,
                url=str(response.url),
                status_code=response.status_code,
            )

        try:
            return orjson.loads(response.content)
        except orjson.JSONDecodeError as e:
            raise FetchError(
                f"Decoding response: {e}",
                source=self.name,
                url=str(response.url),
                cause=e,
            ) from e

    async def list_page(self, cursor: str = "") -> ListPage:
        """Fetch one numbered page of tenders, newest first."""
        page = page_number(cursor, source=self.name)
        await self._ensure_session()

        params = {
            "page": str(page),
            "numberOfRecords": str(self.settings.page_size),
            "sortType": self.settings.sort_type,
        }
        body = {"filters": [f.model_dump() for f in self.settings.filters]}

        data = await self._post_json(params, body)
        items = _tender_data_list(data, source=self.name)

        tenders: list[Tender] = []
        for item in items:
            tender_id = clean_text(item.get("TenderID"))
            if not tender_id:
                raise FetchError("Tender without TenderID", source=self.name)

            issued = parse_date(
                item.get("PostDate"), ["%Y-%m-%d"], field="PostDate", source=self.name
            )
            close = parse_date_prefix(
                item.get("ClosingDate"), field="ClosingDate", source=self.name
            )

            tenders.append(
                Tender(
                    id=tender_id,
                    url=await self.resolve_url(tender_id),
                    description=clean_text(item.get("Title")),
                    agency=clean_text(item.get("ProcurementEntity")),
                    issued_date=issued,
                    close_date=close,
                )
            )

        next_cursor = str(page + 1) if tenders else ""
        logger.debug(f"{self.name} page {page}: {len(tenders)} tenders")
        return ListPage(tenders=tenders, next_cursor=next_cursor)

    async def resolve_url(self, tender_id: str) -> str:
        """Find the canonical detail URL for a tender.

        Uses the tender's closing location when it points at a detail
        page, otherwise builds the portal's own tender URL.
        """
        fallback = self.settings.url_template.format(base_url=self.base_url, id=tender_id)
        if not self.settings.resolve_detail_urls:
            return fallback

        data = await self._post_json({"tenderId": tender_id})
        items = _tender_data_list(data, source=self.name)
        if len(items) != 1:
            return fallback

        location = clean_text(items[0].get("ClosingLocation"))
        if not location or self.settings.detail_marker not in location:
            return fallback

        parsed = urlparse(location)
        if not parsed.scheme or not parsed.netloc:
            return fallback
        return parsed.geturl()

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
        self._client = None

    async def __aenter__(self) -> "TokenSessionClient":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()


def _tender_data_list(data: Any, *, source: str) -> list[dict[str, Any]]:
    """Pull ``TenderDataList`` out of a response body."""
    if not isinstance(data, dict):
        raise FetchError("Response is not a JSON object", source=source)
    items = data.get("TenderDataList") or []
    if not isinstance(items, list) or not all(isinstance(i, dict) for i in items):
        raise FetchError("TenderDataList is not a list of objects", source=source)
    return items
