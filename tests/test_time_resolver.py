from datetime import date, datetime, timedelta, timezone
from zoneinfo import ZoneInfo

import pytest

from reminder.utils.time_resolver import (
    InvalidTimeFormat,
    UnknownTimezone,
    add_elapsed,
    load_zone,
    local_today,
    parse_hhmm,
    resolve_daily_instant,
    resolve_zone,
    utc_minute,
)

NY = ZoneInfo("America/New_York")
KOLKATA = ZoneInfo("Asia/Kolkata")


def test_parse_hhmm_accepts_valid_times():
    assert parse_hhmm("09:00") == (9, 0)
    assert parse_hhmm("23:59") == (23, 59)
    assert parse_hhmm("7:05") == (7, 5)
    assert parse_hhmm(" 00:00 ") == (0, 0)


@pytest.mark.parametrize("bad", ["24:00", "12:60", "noon", "", "9", "09:5", "-1:00", None])
def test_parse_hhmm_rejects_invalid(bad):
    with pytest.raises(InvalidTimeFormat):
        parse_hhmm(bad)


def test_load_zone_unknown_raises():
    with pytest.raises(UnknownTimezone):
        load_zone("Mars/Olympus_Mons")


def test_resolve_zone_falls_back_to_default():
    assert resolve_zone("Mars/Olympus_Mons", "Asia/Kolkata") == KOLKATA
    assert resolve_zone(None, "Asia/Kolkata") == KOLKATA
    assert resolve_zone("America/New_York", "Asia/Kolkata") == NY


def test_resolve_zone_bad_default_raises():
    with pytest.raises(UnknownTimezone):
        resolve_zone("Nope/Nowhere", "Also/Nowhere")


def test_half_hour_offset_zone():
    instant = resolve_daily_instant(date(2024, 1, 1), "09:00", KOLKATA)
    assert instant.astimezone(timezone.utc) == datetime(2024, 1, 1, 3, 30, tzinfo=timezone.utc)


def test_offset_follows_the_calendar_date():
    winter = resolve_daily_instant(date(2024, 1, 15), "09:00", NY)
    summer = resolve_daily_instant(date(2024, 7, 15), "09:00", NY)
    assert winter.astimezone(timezone.utc).hour == 14
    assert summer.astimezone(timezone.utc).hour == 13


def test_spring_forward_gap_moves_later():
    # 2024-03-10 02:00-03:00 does not exist in New York
    instant = resolve_daily_instant(date(2024, 3, 10), "02:30", NY)
    assert (instant.hour, instant.minute) == (3, 30)
    assert instant.astimezone(timezone.utc) == datetime(2024, 3, 10, 7, 30, tzinfo=timezone.utc)


def test_fall_back_ambiguity_takes_first_occurrence():
    instant = resolve_daily_instant(date(2024, 11, 3), "01:30", NY)
    assert instant.astimezone(timezone.utc) == datetime(2024, 11, 3, 5, 30, tzinfo=timezone.utc)


def test_add_elapsed_counts_real_hours_across_dst():
    base = resolve_daily_instant(date(2024, 3, 9), "22:00", NY)
    later = add_elapsed(base, timedelta(hours=12))
    # only 12 real hours later, the wall clock reads 11:00 after the jump
    assert (later.date(), later.hour) == (date(2024, 3, 10), 11)
    assert later.astimezone(timezone.utc) - base.astimezone(timezone.utc) == timedelta(hours=12)


def test_local_today_uses_the_zone_date():
    now = datetime(2024, 1, 1, 20, 0, tzinfo=timezone.utc)
    assert local_today(now, KOLKATA) == date(2024, 1, 2)
    assert local_today(now, NY) == date(2024, 1, 1)


def test_utc_minute_truncates():
    dt = datetime(2024, 1, 1, 9, 0, 59, 999, tzinfo=KOLKATA)
    assert utc_minute(dt) == datetime(2024, 1, 1, 3, 30, tzinfo=timezone.utc)
