"""
Single-slot cache gateway with schedule-driven expiration and stale fallback.
"""
import math
import threading
import logging
import time
from typing import Optional, Callable, Any, Dict

from app.errors import UpstreamFetchError
from app.schedule import ScheduleConfig, get_schedule_config, ttl_for
from .core import CacheSlot, Freshness, RefreshResult, ServedResponse
from .coalescer import RequestCoalescer

logger = logging.getLogger("cache.gateway")

FetchFn = Callable[[], Any]


def current_time_ms() -> int:
    return int(time.time() * 1000)


class CacheGateway:
    """
    Owns the one cached chart payload and decides, per request, whether to:
    - serve it (HIT)
    - fetch a fresh one and store it (MISS)
    - fall back to the expired one when upstream fails (STALE)

    Concurrent misses share one upstream call through the coalescer.
    Subclasses change where the slot lives by overriding _read_slot,
    _write_slot and clear.
    """

    def __init__(
        self,
        schedule: Optional[ScheduleConfig] = None,
        coalesce_timeout: float = 30.0,
        clock: Optional[Callable[[], int]] = None,
    ):
        """
        Args:
            schedule: Operating schedule and TTLs (defaults to settings)
            coalesce_timeout: Max seconds to wait on another request's fetch
            clock: Returns the current epoch ms; used when no instant is passed
        """
        self.schedule = schedule or get_schedule_config()
        self._slot: Optional[CacheSlot] = None
        self._slot_lock = threading.RLock()
        self._coalescer = RequestCoalescer(timeout=coalesce_timeout)
        self._clock = clock or current_time_ms

        self._stats = {
            "hits": 0,
            "misses": 0,
            "stale": 0,
            "errors": 0,
        }

    def _now(self, now_ms: Optional[int]) -> int:
        return self._clock() if now_ms is None else now_ms

    def _read_slot(self) -> Optional[CacheSlot]:
        with self._slot_lock:
            return self._slot

    def _write_slot(self, slot: CacheSlot) -> None:
        with self._slot_lock:
            self._slot = slot

    def clear(self) -> None:
        """Drop the cached payload. Safe to call when already empty."""
        with self._slot_lock:
            self._slot = None
        logger.info("Cleared chart data cache")

    def get(self, now_ms: Optional[int] = None) -> Optional[CacheSlot]:
        """Return the slot if it holds an unexpired payload, else None."""
        now_ms = self._now(now_ms)
        slot = self._read_slot()
        if slot is None or not slot.is_valid(now_ms):
            return None
        return slot

    def refresh(
        self,
        fetch_fn: FetchFn,
        now_ms: Optional[int] = None,
        force_operating: bool = False,
    ) -> RefreshResult:
        """
        Fetch fresh data and store it with a schedule-based expiration.

        Fetch errors never propagate: on failure the slot is left as it was
        and the result carries the error plus whatever slot is resident.
        """
        now_ms = self._now(now_ms)
        try:
            payload = self._coalescer.fetch(fetch_fn)
        except Exception as e:
            error = e if isinstance(e, UpstreamFetchError) else UpstreamFetchError(str(e))
            logger.warning(f"Chart data fetch failed: {error}")
            return RefreshResult(slot=self._read_slot(), error=error)

        expires_at = ttl_for(now_ms, payload, force_operating, self.schedule)
        slot = CacheSlot(value=payload, expires_at=expires_at, fetched_at=now_ms)
        self._write_slot(slot)
        logger.info(f"Cached chart data until {slot.to_dict()['expiresAt']}")
        return RefreshResult(slot=slot)

    def serve(
        self,
        fetch_fn: FetchFn,
        now_ms: Optional[int] = None,
        force_operating: bool = False,
    ) -> ServedResponse:
        """
        Answer one chart data request.

        Args:
            fetch_fn: Upstream fetch, called only on a cache miss
            now_ms: Request time (defaults to the gateway clock)
            force_operating: Cache a fresh fetch for the short test-mode TTL

        Returns:
            ServedResponse tagged HIT, MISS or STALE, or the error outcome
            when upstream failed and nothing was cached before
        """
        now_ms = self._now(now_ms)

        slot = self.get(now_ms)
        if slot is not None:
            logger.debug(f"CACHE HIT [max-age={slot.max_age_seconds(now_ms)}s]")
            self._stats["hits"] += 1
            return ServedResponse(
                payload=slot.value,
                freshness=Freshness.HIT,
                max_age_seconds=slot.max_age_seconds(now_ms),
            )

        logger.info("CACHE MISS: fetching fresh chart data")
        result = self.refresh(fetch_fn, now_ms, force_operating)

        if result.ok:
            self._stats["misses"] += 1
            return ServedResponse(
                payload=result.payload,
                freshness=Freshness.MISS,
                max_age_seconds=result.slot.max_age_seconds(now_ms),
            )

        if result.has_fallback:
            logger.info("Serving stale chart data after upstream failure")
            self._stats["stale"] += 1
            return ServedResponse(
                payload=result.payload,
                freshness=Freshness.STALE,
                max_age_seconds=math.ceil(self.schedule.ttl_stale_on_error_ms / 1000),
            )

        logger.error("Upstream failed and no cached chart data is available")
        self._stats["errors"] += 1
        return ServedResponse.failure()

    def get_stats(self) -> Dict[str, Any]:
        """Get cache statistics."""
        slot = self._read_slot()
        served = self._stats["hits"] + self._stats["misses"]
        hit_rate = (self._stats["hits"] / served * 100) if served > 0 else 0

        return {
            "cached": slot is not None,
            "slot": slot.to_dict() if slot else None,
            "hits": self._stats["hits"],
            "misses": self._stats["misses"],
            "stale": self._stats["stale"],
            "errors": self._stats["errors"],
            "hit_rate_percent": round(hit_rate, 1),
            "coalescer": self._coalescer.get_stats(),
        }
