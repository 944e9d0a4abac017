"""Database persistence layer."""

from .db import create_db_engine, get_engine, get_session, init_db
from .models import Base, TenderRow
from .repo import TenderStore

__all__ = [
    "create_db_engine",
    "get_engine",
    "get_session",
    "init_db",
    "Base",
    "TenderRow",
    "TenderStore",
]
