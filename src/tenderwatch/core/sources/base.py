"""
Source client contract and shared data structures.

Every listing source, whatever its transport, is exposed through the
same cursor-based contract: ``list_page(cursor)`` returns one page of
tenders, newest first, plus the cursor for the next page.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Any, Protocol, runtime_checkable

from tenderwatch.core.errors import (
    DiscoveryError,
    FetchError,
    NoDataError,
    ParseError,
    SessionError,
)

__all__ = [
    "Tender",
    "ListPage",
    "SourceClient",
    "page_number",
    "DiscoveryError",
    "SessionError",
    "FetchError",
    "ParseError",
    "NoDataError",
]


# =============================================================================
# Records
# =============================================================================


@dataclass(frozen=True)
class Tender:
    """A normalized procurement notice.

    ``id`` is scoped to the source that produced it and is the dedup key.
    """

    id: str
    url: str
    description: str
    agency: str
    issued_date: date
    close_date: date

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "url": self.url,
            "description": self.description,
            "agency": self.agency,
            "issued_date": self.issued_date.isoformat(),
            "close_date": self.close_date.isoformat(),
        }


@dataclass
class ListPage:
    """One page of a source listing."""

    tenders: list[Tender] = field(default_factory=list)
    next_cursor: str = ""

    @property
    def has_next(self) -> bool:
        """Check if the source reported another page."""
        return bool(self.next_cursor)


# =============================================================================
# Client Contract
# =============================================================================


@runtime_checkable
class SourceClient(Protocol):
    """Cursor-based listing over one external source.

    An empty cursor asks for the first page. The returned ``next_cursor``
    is empty when there are no further pages. The first call establishes
    the session; later calls reuse it.
    """

    @property
    def name(self) -> str:
        ...

    async def list_page(self, cursor: str = "") -> ListPage:
        ...

    async def close(self) -> None:
        ...


def page_number(cursor: str, *, source: str | None = None) -> int:
    """Decode a page-number cursor. Empty means the first page."""
    if not cursor:
        return 1
    try:
        number = int(cursor)
    except ValueError as e:
        raise FetchError(f"Invalid cursor {cursor!r}", source=source, cause=e) from e
    if number < 1:
        raise FetchError(f"Invalid cursor {cursor!r}", source=source)
    return number
