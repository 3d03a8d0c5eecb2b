"""
Tests for operating-window detection and schedule-based expiration.

Reference dates (New York):
- 2025-01-05 Sunday, 2025-01-06 Monday, 2025-01-08 Wednesday (EST, UTC-5)
- 2025-03-09 Sunday: DST starts (02:00 -> 03:00)
- 2025-11-02 Sunday: DST ends (02:00 -> 01:00)
"""
import pytest

from app.schedule import (
    ScheduleConfig,
    days_until_next_window,
    has_active_override,
    is_operating_day_before_close,
    is_operating_window,
    next_window_start,
    ttl_for,
)

HOUR_MS = 60 * 60 * 1000
MINUTE_MS = 60 * 1000


# =============================================================================
# Operating window
# =============================================================================

@pytest.mark.parametrize("day,hour,minute,expected", [
    (5, 17, 0, True),     # Sunday, window opens
    (5, 16, 59, False),   # Sunday, one minute before
    (5, 19, 59, True),    # Sunday, last minute
    (5, 20, 0, False),    # Sunday, closed
    (8, 17, 0, True),     # Wednesday, window opens
    (8, 16, 59, False),
    (8, 20, 0, False),
    (6, 18, 0, False),    # Monday evening
    (11, 18, 0, False),   # Saturday evening
])
def test_is_operating_window_boundaries(schedule, ny_ms, day, hour, minute, expected):
    assert is_operating_window(ny_ms(2025, 1, day, hour, minute), schedule) is expected


def test_operating_window_uses_configured_timezone(schedule, utc_ms):
    # 22:30 UTC Sunday is 17:30 EST
    assert is_operating_window(utc_ms(2025, 1, 5, 22, 30), schedule) is True
    # 17:30 UTC Sunday is 12:30 EST
    assert is_operating_window(utc_ms(2025, 1, 5, 17, 30), schedule) is False


@pytest.mark.parametrize("day,hour,expected", [
    (5, 0, True),      # Sunday just after midnight
    (5, 10, True),     # Sunday morning, before the window
    (5, 19, True),
    (5, 20, False),    # Sunday after close
    (8, 12, True),     # Wednesday midday
    (6, 10, False),    # Monday
])
def test_is_operating_day_before_close(schedule, ny_ms, day, hour, expected):
    assert is_operating_day_before_close(ny_ms(2025, 1, day, hour), schedule) is expected


# =============================================================================
# Announcement override
# =============================================================================

def test_active_announcement_detected():
    assert has_active_override([{"Param": "announcement", "Value": "true"}]) is True


def test_announcement_found_among_other_records():
    payload = [
        {"Param": "title", "Value": "Chart"},
        {"Param": "announcement", "Value": "Closed for the holiday"},
    ]
    assert has_active_override(payload) is True


@pytest.mark.parametrize("payload", [
    [{"Param": "announcement", "Value": ""}],
    [{"Param": "announcement", "Value": None}],
    [{"Param": "announcement"}],
    [{"Param": "title", "Value": "true"}],
    [],
    ["announcement", 3, None],
    {"Param": "announcement", "Value": "true"},
    None,
    "announcement",
])
def test_no_active_announcement(payload):
    assert has_active_override(payload) is False


# =============================================================================
# Next window start
# =============================================================================

@pytest.mark.parametrize("weekday,hour,expected", [
    (0, 10, 0),   # Sunday before start: today
    (0, 17, 3),   # Sunday after start: Wednesday
    (0, 22, 3),
    (1, 10, 2),   # Monday -> Wednesday
    (2, 23, 1),   # Tuesday -> Wednesday
    (3, 16, 0),   # Wednesday before start: today
    (3, 17, 4),   # Wednesday after start: Sunday
    (3, 21, 4),   # Wednesday after close: Sunday
    (4, 10, 3),   # Thursday -> Sunday
    (5, 10, 2),
    (6, 23, 1),   # Saturday -> Sunday
])
def test_days_until_next_window(schedule, weekday, hour, expected):
    assert days_until_next_window(weekday, hour, schedule) == expected


def test_days_until_next_window_same_day_twice():
    config = ScheduleConfig(operating_days=(2, 2))
    assert days_until_next_window(2, 18, config) == 7
    assert days_until_next_window(2, 9, config) == 0


def test_next_window_start_monday_goes_to_wednesday(schedule, ny_ms, utc_ms):
    """Monday 10:00 EST -> Wednesday 17:00 EST (22:00 UTC)."""
    now = ny_ms(2025, 1, 6, 10)
    assert is_operating_window(now, schedule) is False
    assert next_window_start(now, schedule) == utc_ms(2025, 1, 8, 22)


def test_next_window_start_same_day_before_start(schedule, ny_ms, utc_ms):
    assert next_window_start(ny_ms(2025, 1, 5, 10), schedule) == utc_ms(2025, 1, 5, 22)


def test_next_window_start_skips_started_window(schedule, ny_ms, utc_ms):
    # Inside Sunday's window: next start is Wednesday's
    assert next_window_start(ny_ms(2025, 1, 5, 18), schedule) == utc_ms(2025, 1, 8, 22)


def test_next_window_start_wednesday_after_close_wraps_to_sunday(schedule, ny_ms, utc_ms):
    assert next_window_start(ny_ms(2025, 1, 8, 21), schedule) == utc_ms(2025, 1, 12, 22)


def test_next_window_start_across_spring_forward(schedule, ny_ms, utc_ms):
    # Thursday in EST, target Sunday is the first EDT day (UTC-4)
    now = ny_ms(2025, 3, 6, 10)
    assert next_window_start(now, schedule) == utc_ms(2025, 3, 9, 21)


def test_next_window_start_across_fall_back(schedule, ny_ms, utc_ms):
    # Thursday in EDT, target Sunday is back on EST (UTC-5)
    now = ny_ms(2025, 10, 30, 12)
    assert next_window_start(now, schedule) == utc_ms(2025, 11, 2, 22)


def test_next_window_start_half_hour_timezone(utc_ms):
    config = ScheduleConfig(timezone_name="Asia/Kolkata")
    # Monday 04:30 UTC = 10:00 IST; Wednesday 17:00 IST = 11:30 UTC
    assert next_window_start(utc_ms(2025, 1, 6, 4, 30), config) == utc_ms(2025, 1, 8, 11, 30)


def test_next_window_start_falls_back_when_start_hour_skipped(ny_ms):
    # 02:00 does not exist in New York on 2025-03-09
    config = ScheduleConfig(operating_hour_start=2, operating_hour_end=4)
    now = ny_ms(2025, 3, 8, 12)
    assert next_window_start(now, config) == now + config.ttl_max_ms


@pytest.mark.parametrize("start", [(2025, 3, 1), (2025, 10, 25)])
def test_next_window_start_is_future_window_start(schedule, utc_ms, start):
    """Hourly sweep across a DST transition."""
    now = utc_ms(*start, 0) + 7 * MINUTE_MS
    for _ in range(24 * 16):
        upcoming = next_window_start(now, schedule)
        assert upcoming > now
        assert is_operating_window(upcoming, schedule)
        assert not is_operating_window(upcoming - MINUTE_MS, schedule)
        now += HOUR_MS


# =============================================================================
# Expiration
# =============================================================================

def test_ttl_inside_window_is_operating_ttl(schedule, ny_ms):
    now = ny_ms(2025, 1, 5, 18)
    assert is_operating_window(now, schedule) is True
    assert ttl_for(now, [], config=schedule) == now + schedule.ttl_operating_ms


def test_ttl_operating_day_morning_is_operating_ttl(schedule, ny_ms):
    now = ny_ms(2025, 1, 8, 9)
    assert ttl_for(now, None, config=schedule) == now + schedule.ttl_operating_ms


def test_ttl_capped_at_max(schedule, ny_ms):
    # Wednesday's window is 55 hours away
    now = ny_ms(2025, 1, 6, 10)
    assert ttl_for(now, None, config=schedule) == now + schedule.ttl_max_ms


def test_ttl_capped_at_next_window_start(schedule, ny_ms, utc_ms):
    # Saturday 20:00 -> Sunday 17:00 is 21 hours away
    now = ny_ms(2025, 1, 11, 20)
    assert ttl_for(now, None, config=schedule) == utc_ms(2025, 1, 12, 22)


def test_ttl_after_close_on_operating_day(schedule, ny_ms):
    now = ny_ms(2025, 1, 8, 21)
    assert ttl_for(now, None, config=schedule) == now + schedule.ttl_max_ms


def test_ttl_announcement_overrides_schedule(schedule, ny_ms):
    now = ny_ms(2025, 1, 6, 10)
    payload = [{"Param": "announcement", "Value": "true"}]
    assert ttl_for(now, payload, config=schedule) == now + schedule.ttl_operating_ms


def test_ttl_force_operating_uses_test_mode_ttl(schedule, ny_ms):
    now = ny_ms(2025, 1, 6, 10)
    assert ttl_for(now, None, force_operating=True, config=schedule) == now + 5000


# =============================================================================
# Config validation
# =============================================================================

@pytest.mark.parametrize("kwargs", [
    {"operating_hour_start": 20, "operating_hour_end": 17},
    {"operating_hour_start": 17, "operating_hour_end": 17},
    {"operating_hour_start": -1},
    {"operating_hour_end": 25},
    {"operating_days": (0, 7)},
    {"operating_days": (0,)},
    {"timezone_name": "Mars/Olympus_Mons"},
])
def test_invalid_schedule_config_rejected(kwargs):
    with pytest.raises(ValueError):
        ScheduleConfig(**kwargs)
