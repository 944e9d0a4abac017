"""
Discovery driver.

Pages through one source, records every tender in the store, and stops
as soon as the listing reaches territory that earlier runs already
covered.

States: START (compute the cutoff) -> PAGING (one ``list_page`` call per
step) -> DONE.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import TYPE_CHECKING, Any

from dateutil.relativedelta import relativedelta

from tenderwatch.core.config.models import WatermarkPolicy
from tenderwatch.core.logging import get_contextual_logger
from tenderwatch.core.sources.base import DiscoveryError

if TYPE_CHECKING:
    from tenderwatch.core.sources.base import SourceClient, Tender
    from tenderwatch.persistence.repo import TenderStore


# Margin behind the watermark that is rescanned to catch late publications
ISSUED_MARGIN = relativedelta(months=1)
FIRST_OBSERVED_MARGIN = relativedelta(months=4)


class DriverState(str, Enum):
    START = "START"
    PAGING = "PAGING"
    DONE = "DONE"


@dataclass
class RunStats:
    """Statistics for a discovery run."""

    pages_fetched: int = 0
    tenders_seen: int = 0
    tenders_new: int = 0
    early_exit: bool = False
    page_cap_reached: bool = False
    cutoff: date | None = None

    started_at: datetime = field(default_factory=datetime.utcnow)
    finished_at: datetime | None = None

    @property
    def duration_seconds(self) -> float | None:
        """Get run duration in seconds."""
        if self.finished_at:
            return (self.finished_at - self.started_at).total_seconds()
        return None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "pages_fetched": self.pages_fetched,
            "tenders_seen": self.tenders_seen,
            "tenders_new": self.tenders_new,
            "early_exit": self.early_exit,
            "page_cap_reached": self.page_cap_reached,
            "cutoff": self.cutoff.isoformat() if self.cutoff else None,
            "duration_seconds": self.duration_seconds,
        }


@dataclass
class DiscoveryResult:
    """Tenders inserted by a run, in listing order."""

    source: str
    new_tenders: list[Tender] = field(default_factory=list)
    stats: RunStats = field(default_factory=RunStats)


def compute_cutoff(
    policy: WatermarkPolicy,
    watermark: date | datetime | None,
    now: datetime | None = None,
) -> date | None:
    """Derive the early-exit cutoff from the store's watermark.

    Issued policy: no cutoff on an empty store (the whole listing is read
    once), otherwise one month before the newest issued date.

    First-observed policy: today on an empty store, otherwise four months
    before the newest first-observed time.
    """
    if policy == WatermarkPolicy.ISSUED:
        if watermark is None:
            return None
        return _as_date(watermark) - ISSUED_MARGIN

    if watermark is None:
        return _as_date(now or datetime.utcnow())
    return _as_date(watermark) - FIRST_OBSERVED_MARGIN


def _as_date(value: date | datetime) -> date:
    if isinstance(value, datetime):
        return value.date()
    return value


class DiscoveryDriver:
    """Drives a source client page by page against the store.

    Relies on the client listing newest first: the first tender whose
    relevant date falls strictly before the cutoff ends the run, even in
    the middle of a page.
    """

    def __init__(
        self,
        client: SourceClient,
        store: TenderStore,
        *,
        policy: WatermarkPolicy | None = None,
        max_pages: int | None = None,
        now: datetime | None = None,
    ) -> None:
        self.client = client
        self.store = store
        self.policy = policy or store.policy
        self.max_pages = max_pages
        self.now = now
        self.state = DriverState.START
        self.run_id = uuid.uuid4().hex[:12]
        self.logger = get_contextual_logger("discovery", source=client.name, run_id=self.run_id)

    def relevant_date(self, tender: Tender) -> date:
        """Date compared against the cutoff for this policy."""
        if self.policy == WatermarkPolicy.FIRST_OBSERVED:
            return tender.close_date
        return tender.issued_date

    async def run(self) -> DiscoveryResult:
        """Execute one discovery run.

        Raises:
            DiscoveryError: Any client failure; tenders stored before it
                remain committed
        """
        result = DiscoveryResult(source=self.client.name)
        stats = result.stats

        try:
            cutoff = compute_cutoff(self.policy, self.store.watermark(), self.now)
            stats.cutoff = cutoff
            self.logger.info(
                f"Starting discovery (policy={self.policy.value}, "
                f"cutoff={cutoff.isoformat() if cutoff else 'none'})"
            )

            self.state = DriverState.PAGING
            cursor = ""

            while self.state == DriverState.PAGING:
                page = await self.client.list_page(cursor)
                stats.pages_fetched += 1

                for tender in page.tenders:
                    stats.tenders_seen += 1
                    if self.store.add(tender):
                        stats.tenders_new += 1
                        result.new_tenders.append(tender)

                    if cutoff is not None and self.relevant_date(tender) < cutoff:
                        stats.early_exit = True
                        self.state = DriverState.DONE
                        break

                self.logger.debug(
                    f"Page {stats.pages_fetched}: {len(page.tenders)} tenders, "
                    f"next={page.next_cursor or 'none'}",
                    extra={"page": stats.pages_fetched, "cursor": cursor},
                )

                if self.state == DriverState.DONE:
                    break

                if not page.next_cursor:
                    self.state = DriverState.DONE
                elif self.max_pages is not None and stats.pages_fetched >= self.max_pages:
                    stats.page_cap_reached = True
                    self.logger.warning(f"Stopped at page cap ({self.max_pages} pages)")
                    self.state = DriverState.DONE
                else:
                    cursor = page.next_cursor

        except DiscoveryError as e:
            self.logger.error(f"Discovery failed: {e}")
            raise

        finally:
            stats.finished_at = datetime.utcnow()

        self.logger.info(
            f"Discovery finished: {stats.tenders_new} new of {stats.tenders_seen} seen "
            f"over {stats.pages_fetched} pages"
            + (" (early exit)" if stats.early_exit else "")
        )
        return result


async def find_new(
    client: SourceClient,
    store: TenderStore,
    *,
    policy: WatermarkPolicy | None = None,
    max_pages: int | None = None,
) -> list[Tender]:
    """Run discovery once and return the newly inserted tenders."""
    driver = DiscoveryDriver(client, store, policy=policy, max_pages=max_pages)
    result = await driver.run()
    return result.new_tenders
