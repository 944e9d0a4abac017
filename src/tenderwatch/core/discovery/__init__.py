"""Discovery - incremental paging with watermark-based early exit."""

from .driver import (
    DiscoveryDriver,
    DiscoveryResult,
    DriverState,
    RunStats,
    compute_cutoff,
    find_new,
)

__all__ = [
    "DiscoveryDriver",
    "DiscoveryResult",
    "DriverState",
    "RunStats",
    "compute_cutoff",
    "find_new",
]
