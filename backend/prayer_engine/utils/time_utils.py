import datetime
from typing import Optional


def parse_time_internal(time_str):
    """
    Parses a time string (HH:MM, optionally HH:MM:SS or 'HH:MM (EAT)') into a datetime.time object.
    Returns None if parsing fails.
    """
    if not time_str or time_str.lower() == "n/a":
        return None
    cleaned = time_str.strip().split(' ')[0]
    for fmt in ("%H:%M", "%H:%M:%S"):
        try:
            return datetime.datetime.strptime(cleaned, fmt).time()
        except ValueError:
            continue
    return None


def format_display_time(instant: datetime.datetime, tz: Optional[datetime.tzinfo] = None) -> str:
    """
    Formats an instant as 12-hour clock text, e.g. '5:07 AM'.
    The instant is converted to `tz` first when given.
    """
    local = instant.astimezone(tz) if tz else instant
    hour = local.hour % 12 or 12
    suffix = "AM" if local.hour < 12 else "PM"
    return f"{hour}:{local.minute:02d} {suffix}"


def format_seconds_remaining(seconds):
    """
    Human countdown text for the time until the next prayer.
    '1h 23m' with an hour or more left, '4m 5s' under an hour, '45s' under
    a minute, and '0m' once the time has passed.
    """
    seconds = int(seconds or 0)
    if seconds <= 0:
        return "0m"

    hours = seconds // 3600
    minutes = (seconds % 3600) // 60
    secs = seconds % 60

    if hours > 0:
        return f"{hours}h {minutes}m"
    if minutes > 0:
        return f"{minutes}m {secs}s"
    return f"{secs}s"


def combine_local(date_obj: datetime.date, time_obj: datetime.time, tz: datetime.tzinfo) -> datetime.datetime:
    """Builds an aware datetime for a wall-clock time on a date in the given timezone."""
    return datetime.datetime.combine(date_obj, time_obj).replace(tzinfo=tz)


def month_days(year: int, month: int):
    """Yields every date of the given month."""
    day = datetime.date(year, month, 1)
    while day.month == month:
        yield day
        day += datetime.timedelta(days=1)
