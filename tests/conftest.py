"""
Shared fixtures: a fixed schedule, wall-clock helpers and a fake upstream.
"""
from datetime import datetime
from zoneinfo import ZoneInfo

import pytest

from app.errors import UpstreamFetchError
from app.schedule import ScheduleConfig

NEW_YORK = ZoneInfo("America/New_York")
UTC = ZoneInfo("UTC")


class FakeUpstream:
    """Callable stand-in for the upstream fetch."""

    def __init__(self, payload=None):
        self.payload = payload if payload is not None else [{"Param": "title", "Value": "Chart"}]
        self.error = None
        self.calls = 0

    def __call__(self):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.payload

    def fail(self, error=None):
        self.error = error or UpstreamFetchError("Upstream returned 503", status_code=503)


class FakeClock:
    """Mutable clock returning epoch ms."""

    def __init__(self, now_ms: int):
        self.now_ms = now_ms

    def __call__(self) -> int:
        return self.now_ms

    def advance(self, ms: int):
        self.now_ms += ms


@pytest.fixture
def schedule():
    """Sunday/Wednesday 17:00-20:00 New York, 60s operating TTL, 24h max."""
    return ScheduleConfig(
        operating_days=(0, 3),
        operating_hour_start=17,
        operating_hour_end=20,
        timezone_name="America/New_York",
        ttl_operating_ms=60 * 1000,
        ttl_max_ms=24 * 60 * 60 * 1000,
        ttl_stale_on_error_ms=60 * 1000,
        ttl_test_mode_ms=5 * 1000,
    )


@pytest.fixture
def ny_ms():
    """Epoch ms for a New York wall-clock time."""
    def _ny_ms(year, month, day, hour, minute=0):
        return int(datetime(year, month, day, hour, minute, tzinfo=NEW_YORK).timestamp()) * 1000
    return _ny_ms


@pytest.fixture
def utc_ms():
    """Epoch ms for a UTC wall-clock time."""
    def _utc_ms(year, month, day, hour, minute=0):
        return int(datetime(year, month, day, hour, minute, tzinfo=UTC).timestamp()) * 1000
    return _utc_ms


@pytest.fixture
def upstream():
    return FakeUpstream()


@pytest.fixture
def clock(ny_ms):
    # Monday 10:00 New York: outside any window
    return FakeClock(ny_ms(2025, 1, 6, 10))
