from __future__ import annotations

import json
from datetime import date, datetime, timezone

import httpx
import pytest

from tenderwatch.core.config.models import NotifyConfig
from tenderwatch.core.notify import EmailNotifier, NotifyError, render_digest_html


def _config(**overrides) -> NotifyConfig:
    data = {
        "sendgrid_api_key": "SG.test",
        "from_name": "TenderWatch",
        "from_email": "tenders@example.org",
        "to_emails": "alice@example.org;Bob <bob@example.org>",
        "subject_prefix": "New HRM Tenders",
        "intro": "These new HRM tenders have appeared:",
    }
    data.update(overrides)
    return NotifyConfig.model_validate(data)


def test_digest_lists_each_tender(make_tender):
    tender = make_tender(
        "T1",
        date(2024, 1, 10),
        close=date(2024, 1, 31),
        description="Snow & ice control",
        url="https://procurement-portal.novascotia.ca/tenders/T1",
    )

    html = render_digest_html([tender], "These new HRM tenders have appeared:")

    assert html.startswith("<p>These new HRM tenders have appeared:</p>")
    assert '<h3><a href="https://procurement-portal.novascotia.ca/tenders/T1">Snow &amp; ice control</a></h3>' in html
    assert "Issued Wed, 10 Jan 2024 and closing Wed, 31 Jan 2024" in html


def test_message_bccs_recipients_and_addresses_sender(make_tender):
    notifier = EmailNotifier(_config())
    now = datetime(2024, 1, 11, 7, 30, tzinfo=timezone.utc)

    message = notifier.build_message([make_tender("T1", date(2024, 1, 10))], now=now)

    sender = {"email": "tenders@example.org", "name": "TenderWatch"}
    assert message["from"] == sender
    assert message["subject"] == "New HRM Tenders at 11 Jan 24 07:30 UTC"
    assert message["personalizations"] == [
        {
            "to": [sender],
            "bcc": [{"email": "alice@example.org"}, {"email": "bob@example.org", "name": "Bob"}],
        }
    ]
    assert message["content"][0]["type"] == "text/html"


def test_notify_posts_to_sendgrid(make_tender):
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(202)

    notifier = EmailNotifier(_config(), transport=httpx.MockTransport(handler))

    assert notifier.notify([make_tender("T1", date(2024, 1, 10))]) is True

    (request,) = requests
    assert str(request.url) == "https://api.sendgrid.com/v3/mail/send"
    assert request.headers["Authorization"] == "Bearer SG.test"
    assert json.loads(request.content)["subject"].startswith("New HRM Tenders at ")


def test_nothing_sent_without_tenders_or_recipients(make_tender):
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("no request expected")

    transport = httpx.MockTransport(handler)

    assert EmailNotifier(_config(), transport=transport).notify([]) is False
    assert EmailNotifier(_config(to_emails=""), transport=transport).notify(
        [make_tender("T1", date(2024, 1, 10))]
    ) is False


def test_rejected_delivery_is_notify_error(make_tender):
    transport = httpx.MockTransport(lambda request: httpx.Response(401, json={"errors": []}))
    notifier = EmailNotifier(_config(), transport=transport)

    with pytest.raises(NotifyError) as exc_info:
        notifier.notify([make_tender("T1", date(2024, 1, 10))])

    assert exc_info.value.status_code == 401


def test_invalid_recipient_is_notify_error(make_tender):
    notifier = EmailNotifier(_config(to_emails="not-an-address"))

    with pytest.raises(NotifyError):
        notifier.notify([make_tender("T1", date(2024, 1, 10))])
