"""
Core cache data structures.
"""
import math
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from app.errors import UpstreamFetchError

GENERIC_ERROR_MESSAGE = "Failed to fetch chart data"


class Freshness(Enum):
    """Where a served payload came from (sent as the X-Cache header)."""
    HIT = "HIT"       # Valid cached value
    MISS = "MISS"     # Freshly fetched from upstream
    STALE = "STALE"   # Expired value served after an upstream failure


@dataclass(frozen=True)
class CacheSlot:
    """
    The single cached payload.

    Frozen so the value and its expiration are always replaced together.
    """
    value: Any
    expires_at: int  # epoch ms
    fetched_at: int  # epoch ms

    def is_valid(self, now_ms: int) -> bool:
        return now_ms < self.expires_at

    def max_age_seconds(self, now_ms: int) -> int:
        """Remaining lifetime, rounded up to whole seconds."""
        return max(0, math.ceil((self.expires_at - now_ms) / 1000))

    def to_dict(self) -> dict:
        return {
            "fetchedAt": _iso(self.fetched_at),
            "expiresAt": _iso(self.expires_at),
        }


@dataclass
class RefreshResult:
    """Outcome of one upstream refresh attempt."""
    slot: Optional[CacheSlot] = None
    error: Optional[UpstreamFetchError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def payload(self) -> Any:
        return self.slot.value if self.slot else None

    @property
    def has_fallback(self) -> bool:
        """Failed, but a previously fetched payload is still resident."""
        return not self.ok and self.slot is not None


@dataclass
class ServedResponse:
    """Payload plus the metadata needed to build the HTTP response."""
    payload: Any = None
    freshness: Optional[Freshness] = None
    max_age_seconds: Optional[int] = None
    error: Optional[str] = None

    @property
    def is_error(self) -> bool:
        return self.freshness is None

    @property
    def status_code(self) -> int:
        return 500 if self.is_error else 200

    @property
    def body(self) -> Any:
        if self.is_error:
            return {"error": self.error or GENERIC_ERROR_MESSAGE}
        return self.payload

    def headers(self) -> Dict[str, str]:
        """Response headers (Content-Type is set by the JSON response)."""
        headers = {"Access-Control-Allow-Origin": "*"}
        if not self.is_error:
            headers["Cache-Control"] = f"public, max-age={self.max_age_seconds}"
            headers["X-Cache"] = self.freshness.value
        return headers

    @classmethod
    def failure(cls) -> "ServedResponse":
        return cls(error=GENERIC_ERROR_MESSAGE)


def _iso(epoch_ms: int) -> str:
    return datetime.fromtimestamp(epoch_ms / 1000, tz=timezone.utc).isoformat()
