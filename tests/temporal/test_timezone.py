# tests/temporal/test_timezone.py
from datetime import date, datetime, timedelta, timezone

import pytest

from therasched.errors import TemporalInputError
from therasched.temporal.timezone import (
    TimeOfDay,
    Weekday,
    add_days,
    add_minutes,
    day_of_week,
    local_date_range,
    parse_local_date,
    resolve_timezone,
    time_to_minutes,
    to_local,
    to_utc,
    utc_range_covering_local_day,
    week_dates,
)

NY = "America/New_York"


def test_to_utc_uses_offset_in_effect_at_the_instant():
    """
    @brief
    Winter and summer wall-clock times get different offsets.

    @details
    09:00 in New York is 14:00 UTC under EST and 13:00 UTC under EDT.
    """
    # --- Act ---
    winter = to_utc("2025-01-15", "09:00", NY)
    summer = to_utc(date(2025, 7, 15), "09:00", NY)

    # --- Assert ---
    assert winter == datetime(2025, 1, 15, 14, 0, tzinfo=timezone.utc)
    assert summer == datetime(2025, 7, 15, 13, 0, tzinfo=timezone.utc)


def test_to_utc_spring_forward_gap_uses_pre_transition_offset():
    """
    @brief
    A wall-clock time inside the DST gap resolves with fold=0.

    @details
    02:30 on 2025-03-09 does not exist in New York; it is read with the
    EST offset (-05:00).
    """
    assert to_utc("2025-03-09", "02:30", NY) == datetime(2025, 3, 9, 7, 30, tzinfo=timezone.utc)


def test_to_utc_fall_back_overlap_uses_first_occurrence():
    """01:30 on 2025-11-02 happens twice; the earlier (EDT) one is chosen."""
    assert to_utc("2025-11-02", "01:30", NY) == datetime(2025, 11, 2, 5, 30, tzinfo=timezone.utc)


def test_to_utc_on_the_spring_forward_day():
    """
    @brief
    Both sides of the 2024-03-10 transition in a UTC-5/UTC-4 zone.

    @details
    01:30 is still EST (06:30Z); 10:00 is already EDT (14:00Z).
    """
    assert to_utc("2024-03-10", "01:30", NY) == datetime(2024, 3, 10, 6, 30, tzinfo=timezone.utc)
    assert to_utc("2024-03-10", "10:00", NY) == datetime(2024, 3, 10, 14, 0, tzinfo=timezone.utc)


def test_to_local_round_trips_a_utc_instant():
    # --- Act ---
    local_date, local_time = to_local("2025-03-10T13:00:00Z", NY)

    # --- Assert ---
    assert local_date == date(2025, 3, 10)
    assert local_time == "09:00"


def test_to_local_treats_naive_datetimes_as_utc():
    assert to_local(datetime(2025, 1, 1, 0, 30), NY) == (date(2024, 12, 31), "19:30")


def test_to_local_rejects_garbage():
    with pytest.raises(TemporalInputError):
        to_local("yesterday-ish", NY)


def test_utc_range_covering_dst_days_is_not_24_hours():
    """
    @brief
    Local days around DST transitions span 23 and 25 hours.
    """
    # --- Act ---
    start, end = utc_range_covering_local_day("2025-03-09", NY)
    fall_start, fall_end = utc_range_covering_local_day("2025-11-02", NY)

    # --- Assert ---
    assert start == datetime(2025, 3, 9, 5, 0, tzinfo=timezone.utc)
    assert end - start == timedelta(hours=23)
    assert fall_end - fall_start == timedelta(hours=25)


def test_add_days_is_calendar_arithmetic_across_dst():
    assert add_days("2025-03-08", 1, NY) == date(2025, 3, 9)
    assert add_days(date(2025, 3, 9), 7, NY) == date(2025, 3, 16)


def test_day_of_week_is_zone_independent():
    assert day_of_week("2025-03-03", NY) == Weekday.MONDAY
    assert day_of_week("2025-03-03", "Asia/Tokyo") == Weekday.MONDAY


def test_parse_local_date_accepts_iso_and_ignores_time_part():
    assert parse_local_date("2025-03-03") == date(2025, 3, 3)
    assert parse_local_date("2025-03-03T09:00") == date(2025, 3, 3)
    assert parse_local_date(date(2025, 3, 3)) == date(2025, 3, 3)


@pytest.mark.parametrize("value", ["03/03/2025", "2025-13-01", "", 20250303])
def test_parse_local_date_rejects_malformed_values(value):
    with pytest.raises(TemporalInputError):
        parse_local_date(value)


def test_parse_local_date_rejects_instants():
    """A datetime names an instant, not a local calendar date."""
    with pytest.raises(TemporalInputError):
        parse_local_date(datetime(2025, 3, 3, 9, 0))


def test_time_to_minutes_bounds():
    # --- Assert ---
    assert time_to_minutes("00:00") == 0
    assert time_to_minutes("9:30") == 570
    assert time_to_minutes("23:59:59") == 1439
    assert time_to_minutes("24:00", allow_end_of_day=True) == 1440

    for bad in ("24:00", "12:60", "7pm", "12"):
        with pytest.raises(TemporalInputError):
            time_to_minutes(bad)


def test_add_minutes_wraps_past_midnight():
    assert add_minutes("23:30", 45) == "00:15"


def test_weekday_parse_accepts_prefixes_in_any_case():
    assert Weekday.parse("Mon") == Weekday.MONDAY
    assert Weekday.parse("THURSDAY") == Weekday.THURSDAY
    with pytest.raises(TemporalInputError):
        Weekday.parse("mo")
    with pytest.raises(TemporalInputError):
        Weekday.parse("someday")


def test_time_of_day_buckets():
    assert TimeOfDay.of_minutes(9 * 60) == TimeOfDay.MORNING
    assert TimeOfDay.of_minutes(12 * 60) == TimeOfDay.AFTERNOON
    assert TimeOfDay.of_minutes(17 * 60) == TimeOfDay.EVENING


def test_week_dates_and_ranges():
    # --- Act ---
    days = week_dates("2025-03-03")

    # --- Assert ---
    assert len(days) == 7
    assert days[0] == date(2025, 3, 3) and days[-1] == date(2025, 3, 9)
    assert local_date_range("2025-03-01", "2025-03-03") == [
        date(2025, 3, 1),
        date(2025, 3, 2),
        date(2025, 3, 3),
    ]
    with pytest.raises(TemporalInputError):
        local_date_range("2025-03-03", "2025-03-01")
    with pytest.raises(TemporalInputError):
        local_date_range("2025-01-01", "2026-06-01")


def test_unknown_timezone_falls_back_to_utc(caplog):
    # --- Act ---
    zone = resolve_timezone("Mars/Olympus_Mons")

    # --- Assert ---
    assert str(zone) == "UTC"
    assert "falling back to UTC" in caplog.text
