"""
Dedup/watermark store.

Every tender is inserted exactly once per (source, id); the insert itself
is the only "is this new?" check. The watermark query tells the driver
how far back the ledger already reaches.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Sequence

from sqlalchemy import func, select
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import Session

from tenderwatch.core.config.models import WatermarkPolicy
from tenderwatch.core.sources.base import Tender

from .models import TenderRow


class TenderStore:
    """Append-only tender ledger for one source.

    ``add`` commits immediately, so everything inserted before a failed
    run stays stored.
    """

    def __init__(
        self,
        session: Session,
        source: str,
        policy: WatermarkPolicy = WatermarkPolicy.ISSUED,
    ):
        self.session = session
        self.source = source
        self.policy = policy

    def _insert(self):
        dialect = self.session.get_bind().dialect.name
        if dialect == "sqlite":
            return sqlite_insert(TenderRow)
        if dialect == "postgresql":
            return postgresql_insert(TenderRow)
        raise NotImplementedError(f"Unsupported database dialect: {dialect}")

    def add(self, tender: Tender, observed_at: datetime | None = None) -> bool:
        """Insert a tender unless its id is already stored.

        A conflicting id is a silent no-op; non-key fields of the stored
        row are left as first observed.

        Returns:
            True if a row was inserted
        """
        stmt = (
            self._insert()
            .values(
                source=self.source,
                id=tender.id,
                url=tender.url,
                description=tender.description,
                agency=tender.agency,
                issued=tender.issued_date,
                close=tender.close_date,
                first_observed=observed_at or datetime.utcnow(),
            )
            .on_conflict_do_nothing(index_elements=["source", "id"])
        )
        try:
            result = self.session.execute(stmt)
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise
        return result.rowcount > 0

    def watermark(self) -> date | datetime | None:
        """Maximum reference value across this source's stored tenders.

        The reference column is ``issued`` or ``first_observed``
        depending on the policy. None when nothing is stored yet.
        """
        column = TenderRow.issued if self.policy == WatermarkPolicy.ISSUED else TenderRow.first_observed
        stmt = select(func.max(column)).where(TenderRow.source == self.source)
        return self.session.execute(stmt).scalar_one_or_none()

    def count(self) -> int:
        """Number of tenders stored for this source."""
        stmt = select(func.count()).select_from(TenderRow).where(TenderRow.source == self.source)
        return self.session.execute(stmt).scalar_one()

    def get(self, tender_id: str) -> TenderRow | None:
        """Get a stored tender by id."""
        return self.session.get(TenderRow, (self.source, tender_id))

    def recent(self, limit: int = 20) -> Sequence[TenderRow]:
        """Most recently observed tenders, newest first."""
        stmt = (
            select(TenderRow)
            .where(TenderRow.source == self.source)
            .order_by(TenderRow.first_observed.desc(), TenderRow.issued.desc())
            .limit(limit)
        )
        return self.session.execute(stmt).scalars().all()
