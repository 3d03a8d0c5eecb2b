"""
Operating-hours schedule and cache expiration policy.

Every function here is pure: the current instant is passed in as epoch
milliseconds and nothing reads the clock or the network. Day and hour
arithmetic happens in the configured IANA timezone.
"""
import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from functools import lru_cache
from typing import Any, Optional, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from app.errors import ScheduleComputationError
from config.settings import Settings, settings

logger = logging.getLogger("schedule")

MS_PER_SECOND = 1000

# Widest UTC offsets in use (UTC-12 .. UTC+14). 15-minute steps cover
# half- and quarter-hour zones.
_OFFSET_SEARCH_MIN_MINUTES = -12 * 60
_OFFSET_SEARCH_MAX_MINUTES = 14 * 60
_OFFSET_SEARCH_STEP_MINUTES = 15


@dataclass(frozen=True)
class ScheduleConfig:
    """Weekly operating windows and the cache lifetimes tied to them."""
    operating_days: Tuple[int, int] = (0, 3)   # 0 = Sunday .. 6 = Saturday
    operating_hour_start: int = 17             # inclusive
    operating_hour_end: int = 20               # exclusive
    timezone_name: str = "America/New_York"
    ttl_operating_ms: int = 60 * 1000
    ttl_max_ms: int = 24 * 60 * 60 * 1000
    ttl_stale_on_error_ms: int = 60 * 1000
    ttl_test_mode_ms: int = 60 * 1000

    def __post_init__(self):
        if len(self.operating_days) != 2 or any(
            not 0 <= day <= 6 for day in self.operating_days
        ):
            raise ValueError(
                f"operating_days must be two weekdays in 0..6, got {self.operating_days}"
            )
        if not 0 <= self.operating_hour_start < self.operating_hour_end <= 24:
            raise ValueError(
                f"Invalid operating hours [{self.operating_hour_start}, "
                f"{self.operating_hour_end})"
            )
        try:
            ZoneInfo(self.timezone_name)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"Unknown timezone: {self.timezone_name}") from e

    @property
    def tz(self) -> ZoneInfo:
        return ZoneInfo(self.timezone_name)

    @classmethod
    def from_settings(cls, source: Settings) -> "ScheduleConfig":
        """Build a schedule from application settings (TTLs given in seconds)."""
        return cls(
            operating_days=tuple(source.operating_days),
            operating_hour_start=source.operating_hour_start,
            operating_hour_end=source.operating_hour_end,
            timezone_name=source.timezone_name,
            ttl_operating_ms=source.cache_ttl_operating_seconds * MS_PER_SECOND,
            ttl_max_ms=source.cache_ttl_max_seconds * MS_PER_SECOND,
            ttl_stale_on_error_ms=source.cache_ttl_stale_seconds * MS_PER_SECOND,
            ttl_test_mode_ms=source.cache_ttl_test_mode_seconds * MS_PER_SECOND,
        )


@lru_cache(maxsize=1)
def get_schedule_config() -> ScheduleConfig:
    """Get the schedule configured through settings."""
    return ScheduleConfig.from_settings(settings)


def local_time(now_ms: int, config: Optional[ScheduleConfig] = None) -> datetime:
    """Render an instant as wall-clock time in the configured timezone."""
    config = config or get_schedule_config()
    return datetime.fromtimestamp(now_ms / MS_PER_SECOND, tz=config.tz)


def _weekday(local: datetime) -> int:
    """Weekday with 0 = Sunday."""
    return local.isoweekday() % 7


def is_operating_window(now_ms: int, config: Optional[ScheduleConfig] = None) -> bool:
    """True while inside an operating window (operating day, start <= hour < end)."""
    config = config or get_schedule_config()
    local = local_time(now_ms, config)
    return (
        _weekday(local) in config.operating_days
        and config.operating_hour_start <= local.hour < config.operating_hour_end
    )


def is_operating_day_before_close(
    now_ms: int, config: Optional[ScheduleConfig] = None
) -> bool:
    """True on an operating day from midnight until the window closes."""
    config = config or get_schedule_config()
    local = local_time(now_ms, config)
    return (
        _weekday(local) in config.operating_days
        and local.hour < config.operating_hour_end
    )


def has_active_override(payload: Any) -> bool:
    """
    Check whether the payload carries an active announcement.

    The payload is a list of ``{"Param": ..., "Value": ...}`` records; any
    record with ``Param == "announcement"`` and a truthy ``Value`` counts.
    """
    if not isinstance(payload, list):
        return False
    return any(
        isinstance(record, dict)
        and record.get("Param") == "announcement"
        and bool(record.get("Value"))
        for record in payload
    )


def days_until_next_window(weekday: int, hour: int, config: ScheduleConfig) -> int:
    """
    Days from ``weekday`` to the next window start.

    Today counts only while its window has not started yet. Otherwise the
    distance is to the next operating day strictly after today, which is
    the other configured day or, wrapping around, next week's first one.
    """
    if weekday in config.operating_days and hour < config.operating_hour_start:
        return 0
    return min((day - weekday - 1) % 7 + 1 for day in config.operating_days)


def _find_window_start(target: date, config: ScheduleConfig) -> int:
    """
    Find the UTC instant at which ``target`` reads ``start:00`` locally.

    Candidates are the start hour on ``target`` shifted by every plausible
    UTC offset, tried earliest first; the first one whose local rendering
    matches exactly wins.
    """
    tz = config.tz
    start = config.operating_hour_start
    wall_clock_as_utc = datetime(
        target.year, target.month, target.day, start, tzinfo=timezone.utc
    )
    for offset_minutes in range(
        _OFFSET_SEARCH_MAX_MINUTES,
        _OFFSET_SEARCH_MIN_MINUTES - 1,
        -_OFFSET_SEARCH_STEP_MINUTES,
    ):
        candidate = wall_clock_as_utc - timedelta(minutes=offset_minutes)
        local = candidate.astimezone(tz)
        if local.date() == target and local.hour == start and local.minute == 0:
            return int(candidate.timestamp()) * MS_PER_SECOND

    raise ScheduleComputationError(
        f"No UTC instant maps to {target.isoformat()} {start:02d}:00 in {config.timezone_name}"
    )


def next_window_start(now_ms: int, config: Optional[ScheduleConfig] = None) -> int:
    """
    Next future window start as UTC epoch milliseconds.

    Falls back to ``now + ttl_max`` when the start hour does not exist on
    the target day (skipped by a daylight-saving jump).
    """
    config = config or get_schedule_config()
    local = local_time(now_ms, config)
    days_ahead = days_until_next_window(_weekday(local), local.hour, config)
    target = local.date() + timedelta(days=days_ahead)

    try:
        return _find_window_start(target, config)
    except ScheduleComputationError as e:
        logger.warning(f"{e}; falling back to max TTL")
        return now_ms + config.ttl_max_ms


def ttl_for(
    now_ms: int,
    payload: Any = None,
    force_operating: bool = False,
    config: Optional[ScheduleConfig] = None,
) -> int:
    """
    Absolute expiration (epoch ms) for a payload fetched at ``now_ms``.

    Args:
        now_ms: Fetch time
        payload: Fetched data, inspected for an active announcement
        force_operating: Use the short test-mode lifetime regardless of schedule
        config: Schedule to apply (defaults to settings)

    Returns:
        ``now + ttl_operating`` on an operating day before close or while an
        announcement is active, otherwise the earlier of ``now + ttl_max``
        and the next window start.
    """
    config = config or get_schedule_config()

    if force_operating:
        return now_ms + config.ttl_test_mode_ms

    if is_operating_day_before_close(now_ms, config) or has_active_override(payload):
        return now_ms + config.ttl_operating_ms

    return min(now_ms + config.ttl_max_ms, next_window_start(now_ms, config))
