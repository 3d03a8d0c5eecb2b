"""
Error types for the chart data cache.

Upstream and storage errors are recovered inside the cache gateway and
schedule errors inside the schedule module; none of them reach the HTTP layer.
"""
from typing import Optional


class ChartCacheError(Exception):
    """Base class for chart cache errors."""


class UpstreamFetchError(ChartCacheError):
    """Network failure, non-success status or unreadable body from upstream."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class StorageError(ChartCacheError):
    """Persisted cache store is inaccessible."""


class StorageReadError(StorageError):
    """Persisted cache entry exists but cannot be decoded."""


class ScheduleComputationError(ChartCacheError):
    """No UTC instant renders as the window start in the configured timezone."""
