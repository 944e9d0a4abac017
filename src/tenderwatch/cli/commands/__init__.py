"""CLI command modules."""

from . import discover, tenders

__all__ = [
    "discover",
    "tenders",
]
