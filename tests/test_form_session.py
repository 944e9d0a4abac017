from __future__ import annotations

import asyncio
from datetime import date
from urllib.parse import parse_qs

import httpx
import pytest

from tenderwatch.core.sources.base import FetchError, SessionError
from tenderwatch.core.sources.form_session import FormSessionClient


LIST_URL = "https://bids.example.gov/Bids/OpenBids.aspx"


def _form(viewstate: str, body: str = "") -> str:
    return f"""
    <html><body>
    <form id="aspnetForm" method="post" action="OpenBids.aspx">
      <input type="hidden" name="__VIEWSTATE" value="{viewstate}" />
      <input type="hidden" name="__EVENTVALIDATION" value="ev-{viewstate}" />
      {body}
    </form>
    </body></html>
    """


def _grid(rows: list[tuple[str, ...]], pager_pages: list[int]) -> str:
    cells = "".join(
        "<tr>" + "".join(f"<td>{c}</td>" for c in row) + "</tr>"
        for row in rows
    )
    links = "".join(
        f"<td><a href=\"javascript:__doPostBack('ctl00$Main$gvBids','Page${n}')\">{n}</a></td>"
        for n in pager_pages
    )
    return f"""
    <table id="grid">
      <tr><th>Bid #</th><th>Title</th><th>Department</th><th>Issued</th><th>Closes</th></tr>
      {cells}
      <tr><td colspan="5"><table><tr><td><span>1</span></td>{links}</tr></table></td></tr>
    </table>
    """


PAGE_1_ROWS = [
    ("B-101", '<a href="BidDetail.aspx?id=B-101">Snow removal</a>', "Public Works", "03/05/2024", "04/01/2024"),
    ("B-100", "Road salt", "Public Works", "03/02/2024", "03/30/2024"),
]
PAGE_2_ROWS = [
    ("B-099", "Library chairs", "Libraries", "02/20/2024", "03/15/2024"),
]


class FakeBidBoard:
    def __init__(self, *, initial: str | None = None, pages: dict[str, str] | None = None):
        self.initial = initial if initial is not None else _form("vs0")
        self.pages = pages or {
            "1": _form("vs1", _grid(PAGE_1_ROWS, [2])),
            "2": _form("vs2", _grid(PAGE_2_ROWS, [])),
        }
        self.posts: list[dict[str, list[str]]] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        assert str(request.url) == LIST_URL
        if request.method == "GET":
            return httpx.Response(200, text=self.initial)

        form = parse_qs(request.content.decode())
        self.posts.append(form)
        argument = form.get("__EVENTARGUMENT", ["Page$1"])[0]
        return httpx.Response(200, text=self.pages[argument.split("$")[1]])


def _run_pages(client: FormSessionClient, cursors: list[str]):
    async def run():
        async with client:
            return [await client.list_page(c) for c in cursors]

    return asyncio.run(run())


def test_replays_hidden_fields_and_pages_by_postback(form_source):
    board = FakeBidBoard()
    client = FormSessionClient(form_source(), transport=httpx.MockTransport(board))

    first, second = _run_pages(client, ["", "2"])

    assert [t.id for t in first.tenders] == ["B-101", "B-100"]
    assert first.next_cursor == "2"
    assert [t.id for t in second.tenders] == ["B-099"]
    assert second.next_cursor == ""

    page_1_post, page_2_post = board.posts
    assert page_1_post["__VIEWSTATE"] == ["vs0"]
    assert page_1_post["ctl00$Main$ddlStatus"] == ["Open"]
    assert page_1_post["ctl00$Main$btnSearch"] == ["Search"]
    assert "__EVENTTARGET" not in page_1_post

    # Page 2 carries the state returned with page 1
    assert page_2_post["__VIEWSTATE"] == ["vs1"]
    assert page_2_post["__EVENTVALIDATION"] == ["ev-vs1"]
    assert page_2_post["__EVENTTARGET"] == ["ctl00$Main$gvBids"]
    assert page_2_post["__EVENTARGUMENT"] == ["Page$2"]
    assert page_2_post["ctl00$Main$ddlStatus"] == ["Open"]
    assert "ctl00$Main$btnSearch" not in page_2_post


def test_row_fields_and_urls(form_source):
    client = FormSessionClient(form_source(), transport=httpx.MockTransport(FakeBidBoard()))

    (page,) = _run_pages(client, [""])
    linked, unlinked = page.tenders

    assert linked.url == "https://bids.example.gov/Bids/BidDetail.aspx?id=B-101"
    assert linked.description == "Snow removal"
    assert linked.agency == "Public Works"
    assert linked.issued_date == date(2024, 3, 5)
    assert linked.close_date == date(2024, 4, 1)
    assert unlinked.url == "https://bids.example.gov/tenders/B-100"


def test_missing_viewstate_is_session_error(form_source):
    board = FakeBidBoard(initial="<html><body><form id='aspnetForm'></form></body></html>")
    client = FormSessionClient(form_source(), transport=httpx.MockTransport(board))

    with pytest.raises(SessionError):
        _run_pages(client, [""])

    assert board.posts == []


def test_column_count_mismatch_is_fetch_error(form_source):
    bad_rows = [("B-1", "Title", "Dept", "03/05/2024")]
    board = FakeBidBoard(pages={"1": _form("vs1", _grid(bad_rows, []))})
    client = FormSessionClient(form_source(), transport=httpx.MockTransport(board))

    with pytest.raises(FetchError, match="expected 5"):
        _run_pages(client, [""])


def test_server_error_is_fetch_error(form_source):
    def handler(request: httpx.Request) -> httpx.Response:
        if request.method == "GET":
            return httpx.Response(200, text=_form("vs0"))
        return httpx.Response(500, text="Server Error")

    client = FormSessionClient(form_source(), transport=httpx.MockTransport(handler))

    with pytest.raises(FetchError) as exc_info:
        _run_pages(client, [""])

    assert exc_info.value.status_code == 500


def test_empty_grid_has_no_next_page(form_source):
    board = FakeBidBoard(pages={"1": _form("vs1", _grid([], [2]))})
    client = FormSessionClient(form_source(), transport=httpx.MockTransport(board))

    (page,) = _run_pages(client, [""])

    assert page.tenders == []
    assert page.next_cursor == ""


def test_each_response_replaces_stored_hidden_fields(form_source):
    initial = _form("vs0", '<input type="hidden" name="__PREVIOUSPAGE" value="prev-0" />')
    board = FakeBidBoard(initial=initial)
    client = FormSessionClient(form_source(), transport=httpx.MockTransport(board))

    _run_pages(client, ["", "2"])

    page_1_post, page_2_post = board.posts
    assert page_1_post["__PREVIOUSPAGE"] == ["prev-0"]
    # Page 1's response no longer carries the field, so it is not replayed
    assert "__PREVIOUSPAGE" not in page_2_post
    assert page_2_post["__VIEWSTATE"] == ["vs1"]


def test_response_without_view_state_is_session_error(form_source):
    board = FakeBidBoard(pages={"1": "<html><body><form id='aspnetForm'></form></body></html>"})
    client = FormSessionClient(form_source(), transport=httpx.MockTransport(board))

    with pytest.raises(SessionError, match="__VIEWSTATE"):
        _run_pages(client, [""])
