"""
Request coalescing to prevent duplicate upstream fetches.

There is only one cached item, so at most one upstream call is in flight;
concurrent cache misses wait for it and share its result.
"""
import threading
import time
import logging
from typing import Optional, Callable, Any
from dataclasses import dataclass, field

logger = logging.getLogger("cache.coalescer")


@dataclass
class InFlightFetch:
    """Tracks the in-progress upstream fetch."""
    event: threading.Event = field(default_factory=threading.Event)
    result: Optional[Any] = None
    error: Optional[Exception] = None
    started_at: float = field(default_factory=time.time)
    waiter_count: int = 0


class RequestCoalescer:
    """
    Single-fetch-in-flight guard.

    Pattern:
    - The first caller runs fetch_fn
    - Callers arriving meanwhile wait on the Event
    - When the fetch completes, every caller gets the same result or error

    Usage:
        coalescer = RequestCoalescer()
        data = coalescer.fetch(fetch_chart_data)
    """

    def __init__(self, timeout: float = 30.0):
        """
        Args:
            timeout: Max seconds a waiter blocks on the in-flight fetch
        """
        self._in_flight: Optional[InFlightFetch] = None
        self._lock = threading.Lock()
        self._timeout = timeout
        self._coalesced = 0

    def fetch(self, fetch_fn: Callable[[], Any]) -> Any:
        """
        Join the in-flight fetch or start a new one.

        Raises:
            TimeoutError: If waiting for the in-flight fetch times out
            Exception: Any error from fetch_fn is re-raised to every caller
        """
        with self._lock:
            in_flight = self._in_flight
            if in_flight is not None:
                in_flight.waiter_count += 1
                self._coalesced += 1
                logger.debug(f"Joining in-flight fetch (waiters: {in_flight.waiter_count})")
                is_initiator = False
            else:
                in_flight = InFlightFetch()
                self._in_flight = in_flight
                is_initiator = True

        if is_initiator:
            try:
                in_flight.result = fetch_fn()
            except Exception as e:
                in_flight.error = e
            finally:
                with self._lock:
                    self._in_flight = None
                in_flight.event.set()

            if in_flight.error:
                raise in_flight.error
            return in_flight.result

        if not in_flight.event.wait(timeout=self._timeout):
            logger.error(f"Timed out after {self._timeout}s waiting for in-flight fetch")
            raise TimeoutError(f"Upstream fetch still running after {self._timeout}s")

        if in_flight.error:
            raise in_flight.error
        return in_flight.result

    @property
    def in_flight(self) -> bool:
        with self._lock:
            return self._in_flight is not None

    def get_stats(self) -> dict:
        with self._lock:
            return {
                "in_flight": self._in_flight is not None,
                "coalesced_requests": self._coalesced,
            }
