import datetime
from zoneinfo import ZoneInfo

import pytest

from prayer_engine.utils.hijri_utils import calculate_hijri, format_hijri
from prayer_engine.utils.time_utils import (
    format_display_time, format_seconds_remaining, month_days, parse_time_internal,
)


@pytest.mark.parametrize("seconds, expected", [
    (None, "0m"),
    (-5, "0m"),
    (0, "0m"),
    (45, "45s"),
    (59, "59s"),
    (60, "1m 0s"),
    (245, "4m 5s"),
    (3599, "59m 59s"),
    (3600, "1h 0m"),
    (5000, "1h 23m"),
    (86399, "23h 59m"),
])
def test_format_seconds_remaining(seconds, expected):
    assert format_seconds_remaining(seconds) == expected


@pytest.mark.parametrize("raw, expected", [
    ("05:07", datetime.time(5, 7)),
    ("18:25:30", datetime.time(18, 25, 30)),
    ("19:35 (EAT)", datetime.time(19, 35)),
    ("N/A", None),
    ("", None),
    (None, None),
    ("25:99", None),
])
def test_parse_time_internal(raw, expected):
    assert parse_time_internal(raw) == expected


def test_format_display_time_converts_timezone():
    instant = datetime.datetime(2025, 3, 15, 2, 7, tzinfo=ZoneInfo("UTC"))
    assert format_display_time(instant) == "2:07 AM"
    assert format_display_time(instant, ZoneInfo("Africa/Addis_Ababa")) == "5:07 AM"
    assert format_display_time(instant.replace(hour=12)) == "12:07 PM"
    assert format_display_time(instant.replace(hour=0)) == "12:07 AM"


def test_month_days_handles_leap_years():
    assert len(list(month_days(2024, 2))) == 29
    assert len(list(month_days(2025, 2))) == 28
    days = list(month_days(2025, 12))
    assert days[0] == datetime.date(2025, 12, 1)
    assert days[-1] == datetime.date(2025, 12, 31)


def test_hijri_conversion_mid_ramadan():
    hijri = calculate_hijri(datetime.date(2025, 3, 15))
    assert (hijri.day, hijri.month, hijri.year) == (15, 9, 1446)
    assert format_hijri(datetime.date(2025, 3, 15)) == "15 Ramadan 1446"


def test_hijri_day_advances_after_maghrib():
    assert calculate_hijri(datetime.date(2025, 3, 15), after_maghrib=True).day == 16
    assert calculate_hijri(datetime.date(2025, 3, 15), adjustment=-1).day == 14


def test_hijri_month_after_ramadan():
    assert format_hijri(datetime.date(2025, 4, 5)) == "6 Shawwal 1446"
