"""
SQLAlchemy ORM models for TenderWatch.

The schema is a single append-only ledger of every tender ever seen,
scoped by source.
"""

from __future__ import annotations

from datetime import date, datetime

from sqlalchemy import Date, DateTime, Index, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


# =============================================================================
# Base Class
# =============================================================================


class Base(DeclarativeBase):
    """Base class for all ORM models."""
    pass


# =============================================================================
# Tender Model
# =============================================================================


class TenderRow(Base):
    """A tender as first observed. Rows are written once and never updated."""

    __tablename__ = "tenders"

    source: Mapped[str] = mapped_column(String(100), primary_key=True)
    id: Mapped[str] = mapped_column(String(200), primary_key=True)

    url: Mapped[str] = mapped_column(String(2000), nullable=False, default="")
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    agency: Mapped[str] = mapped_column(String(500), nullable=False, default="")

    issued: Mapped[date] = mapped_column(Date, nullable=False)
    close: Mapped[date] = mapped_column(Date, nullable=False)
    first_observed: Mapped[datetime] = mapped_column(
        DateTime,
        default=datetime.utcnow,
        nullable=False,
    )

    __table_args__ = (
        Index("ix_tenders_source_issued", "source", "issued"),
        Index("ix_tenders_source_first_observed", "source", "first_observed"),
    )

    def __repr__(self) -> str:
        return f"<TenderRow(source='{self.source}', id='{self.id}')>"
