# Pure current/next prayer resolution. No I/O, safe to call once per second for a countdown.
import datetime
from typing import Optional

from ...models import CurrentNextResult, DailyTimings, PrayerEvent

DEFAULT_LEAD_SECONDS = 120


def resolve_current_and_next(today: DailyTimings, now: datetime.datetime,
                             yesterday: Optional[DailyTimings] = None,
                             tomorrow: Optional[DailyTimings] = None,
                             lead_seconds: int = DEFAULT_LEAD_SECONDS) -> CurrentNextResult:
    """
    Finds the prayer currently in effect and the one after it.

    A prayer becomes current `lead_seconds` before its exact time. The next
    prayer is the first one still ahead of `now` that is not the current one,
    so the countdown moves on as soon as a prayer enters its lead window.
    Before today's fajr the current prayer is yesterday's isha; after today's
    isha the next prayer is tomorrow's fajr. Either stays None when the
    neighbouring day was not supplied.
    """
    prayers = today.prayers()

    current: Optional[PrayerEvent] = None
    for prayer in reversed(prayers):
        if (now - prayer.instant).total_seconds() >= -lead_seconds:
            current = prayer
            break

    next_prayer: Optional[PrayerEvent] = None
    for prayer in prayers:
        if prayer.instant > now and prayer is not current:
            next_prayer = prayer
            break

    if next_prayer is None and tomorrow is not None:
        next_prayer = tomorrow.event("fajr")

    if current is None and yesterday is not None:
        current = yesterday.event("isha")

    seconds_to_next = 0
    if next_prayer is not None:
        seconds_to_next = max(0, int((next_prayer.instant - now).total_seconds()))

    return CurrentNextResult(current=current, next=next_prayer, seconds_to_next=seconds_to_next)


def needs_yesterday(today: DailyTimings, now: datetime.datetime, lead_seconds: int = DEFAULT_LEAD_SECONDS) -> bool:
    """True when `now` is before the first prayer's lead window."""
    prayers = today.prayers()
    return not prayers or (now - prayers[0].instant).total_seconds() < -lead_seconds


def needs_tomorrow(today: DailyTimings, now: datetime.datetime, lead_seconds: int = DEFAULT_LEAD_SECONDS) -> bool:
    """True when no prayer of today is left to count down to."""
    result = resolve_current_and_next(today, now, lead_seconds=lead_seconds)
    return result.next is None
