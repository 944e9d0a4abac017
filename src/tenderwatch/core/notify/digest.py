"""
Digest notifications for newly discovered tenders.

Renders a short HTML digest and delivers it through the SendGrid v3 mail
API. Recipients are all BCC'd; the visible recipient is the sender.
"""

from __future__ import annotations

import html
from datetime import datetime, timezone
from email.utils import parseaddr
from typing import TYPE_CHECKING, Any, Sequence

import httpx

from tenderwatch.core.logging import get_logger

if TYPE_CHECKING:
    from tenderwatch.core.config.models import NotifyConfig
    from tenderwatch.core.sources.base import Tender


logger = get_logger("notify")

SENDGRID_URL = "https://api.sendgrid.com/v3/mail/send"

DIGEST_DATE_FORMAT = "%a, %d %b %Y"
SUBJECT_TIME_FORMAT = "%d %b %y %H:%M %Z"


class NotifyError(Exception):
    """Digest delivery failed."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


def render_digest_html(tenders: Sequence[Tender], intro: str) -> str:
    """Render the digest body: an intro line, then one block per tender."""
    parts = [f"<p>{html.escape(intro)}</p>\n\n"]
    for tender in tenders:
        parts.append(
            f'<h3><a href="{html.escape(tender.url, quote=True)}">'
            f"{html.escape(tender.description)}</a></h3>\n"
        )
        parts.append(
            f"Issued {tender.issued_date.strftime(DIGEST_DATE_FORMAT)} "
            f"and closing {tender.close_date.strftime(DIGEST_DATE_FORMAT)}\n\n"
        )
    return "".join(parts)


def _parse_recipient(value: str) -> dict[str, str]:
    name, address = parseaddr(value)
    if not address or "@" not in address:
        raise NotifyError(f"Invalid recipient address: {value!r}")
    recipient = {"email": address}
    if name:
        recipient["name"] = name
    return recipient


class EmailNotifier:
    """Sends tender digests via SendGrid."""

    def __init__(
        self,
        config: NotifyConfig,
        *,
        transport: httpx.BaseTransport | None = None,
        timeout: float = 30.0,
    ):
        self.config = config
        self._transport = transport
        self._timeout = timeout

    def build_message(self, tenders: Sequence[Tender], now: datetime | None = None) -> dict[str, Any]:
        """Build the SendGrid v3 request body."""
        now = now or datetime.now(timezone.utc)
        sender = {"email": self.config.from_email, "name": self.config.from_name}
        bcc = [_parse_recipient(addr) for addr in self.config.to_emails]

        return {
            "from": sender,
            "subject": f"{self.config.subject_prefix} at {now.strftime(SUBJECT_TIME_FORMAT)}",
            "personalizations": [{"to": [sender], "bcc": bcc}],
            "content": [
                {"type": "text/html", "value": render_digest_html(tenders, self.config.intro)},
            ],
        }

    def notify(self, tenders: Sequence[Tender]) -> bool:
        """Send a digest of the given tenders.

        Returns:
            True if a message was sent; False when there was nothing to
            send or nobody to send it to

        Raises:
            NotifyError: On transport failure or a non-2xx response
        """
        if not tenders:
            logger.debug("No new tenders, skipping digest")
            return False
        if not self.config.to_emails:
            logger.debug("No recipients configured, skipping digest")
            return False

        body = self.build_message(tenders)
        headers = {
            "Authorization": f"Bearer {self.config.sendgrid_api_key}",
            "Content-Type": "application/json",
        }

        try:
            with httpx.Client(timeout=self._timeout, transport=self._transport) as client:
                response = client.post(SENDGRID_URL, json=body, headers=headers)
        except httpx.HTTPError as e:
            raise NotifyError(f"Digest delivery failed: {e}") from e

        if not response.is_success:
            raise NotifyError(
                f"SendGrid rejected digest: HTTP {response.status_code} {response.text[:200]}",
                status_code=response.status_code,
            )

        logger.info(f"Sent digest of {len(tenders)} tenders to {len(self.config.to_emails)} recipients")
        return True
