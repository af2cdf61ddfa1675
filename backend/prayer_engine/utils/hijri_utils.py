"""
Tabular (Kuwaiti) Hijri calendar conversion.

This is an arithmetic approximation of the Islamic calendar. It can differ by a
day from moon-sighting based calendars, which is why `adjustment` exists.
"""
import datetime
import math
from collections import namedtuple

HIJRI_MONTHS = [
    "Muharram", "Safar", "Rabi al-Awwal", "Rabi al-Thani",
    "Jumada al-Awwal", "Jumada al-Thani", "Rajab", "Shaban",
    "Ramadan", "Shawwal", "Dhu al-Qadah", "Dhu al-Hijjah",
]

HijriDate = namedtuple("HijriDate", ["day", "month", "year"])


def _julian_day(date_obj):
    y, m, d = date_obj.year, date_obj.month, date_obj.day
    if m < 3:
        y -= 1
        m += 12
    a = math.floor(y / 100)
    b = 2 - a + math.floor(a / 4)
    if y < 1583:
        b = 0
    return math.floor(365.25 * (y + 4716)) + math.floor(30.6001 * (m + 1)) + d + b - 1524


def calculate_hijri(date_obj, adjustment=0, after_maghrib=False):
    """
    Converts a Gregorian date to a HijriDate (month is 1-based).
    The Hijri day starts at sunset, so `after_maghrib` moves to the next day.
    """
    shifted = date_obj + datetime.timedelta(days=adjustment + (1 if after_maghrib else 0))
    jd = _julian_day(shifted)

    ijd = jd - 1948440 + 10632
    n = math.floor((ijd - 1) / 10631)
    ijd = ijd - 10631 * n + 354
    j = (math.floor((10985 - ijd) / 5316) * math.floor((50 * ijd) / 17719)
         + math.floor(ijd / 5670) * math.floor((43 * ijd) / 15238))
    ijd = (ijd - math.floor((30 - j) / 15) * math.floor((17719 * j) / 50)
           - math.floor(j / 16) * math.floor((15238 * j) / 43) + 29)
    month = math.floor((24 * ijd) / 709)
    day = ijd - math.floor((709 * month) / 24)
    year = 30 * n + j - 30
    return HijriDate(day=day, month=month, year=year)


def format_hijri(date_obj, adjustment=0):
    hijri = calculate_hijri(date_obj, adjustment)
    return f"{hijri.day} {HIJRI_MONTHS[hijri.month - 1]} {hijri.year}"
