# This module contains all functions related to interacting with the remote prayer time API.
import datetime
import logging
from typing import Any, Dict, Mapping, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from ...models import PRAYER_INFO, PRAYER_NAMES, Coordinates, DailyTimings, PrayerEvent
from ...utils.hijri_utils import format_hijri
from ...utils.time_utils import combine_local, format_display_time, parse_time_internal
from .timing_calculator import get_api_method_id, resolve_method_key

logger = logging.getLogger(__name__)


def get_selected_api_adapter(config: Mapping[str, Any]):
    """
    Instantiates and returns the API adapter based on configuration.
    Returns None when the remote source is disabled or misconfigured.
    """
    if not config.get('PRAYER_API_ENABLED', True):
        logger.info("Remote prayer time API is disabled. Using local calculation only.")
        return None

    adapter_name = config.get('PRAYER_API_ADAPTER', "AlAdhanAdapter")
    base_url = config.get('PRAYER_API_BASE_URL')
    api_key = config.get('PRAYER_API_KEY')
    timeout = config.get('PRAYER_API_TIMEOUT_SECONDS', 10)

    if adapter_name == "AlAdhanAdapter":
        if not base_url:
            logger.error("AlAdhan API base URL is not configured.")
            return None
        from ..api_adapters.aladhan_adapter import AlAdhanAdapter
        return AlAdhanAdapter(base_url=base_url, api_key=api_key, timeout=timeout)
    else:
        logger.error(f"Unsupported Prayer API Adapter: {adapter_name}")
        return None


def _resolve_timezone(tz_name: Optional[str], fallback: datetime.tzinfo) -> datetime.tzinfo:
    if not tz_name:
        return fallback
    try:
        return ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning(f"Unknown timezone '{tz_name}' in API response. Using {fallback}.")
        return fallback


def _format_remote_hijri(raw_date: Dict[str, Any]) -> Optional[str]:
    hijri = raw_date.get("hijri") if isinstance(raw_date, dict) else None
    if not hijri:
        return None
    try:
        return f"{int(hijri['day'])} {hijri['month']['en']} {hijri['year']}"
    except (KeyError, TypeError, ValueError):
        return None


def normalize_daily_timings(raw: Dict[str, Any], date_obj: datetime.date, coordinates: Coordinates,
                            method: str, display_tz: datetime.tzinfo) -> Optional[DailyTimings]:
    """
    Converts a raw API day payload into DailyTimings.
    Returns None for anything malformed, including events out of order.
    """
    try:
        timings = raw["timings"]
        location_tz = _resolve_timezone((raw.get("meta") or {}).get("timezone"), display_tz)

        events = []
        for name in PRAYER_NAMES:
            api_key = PRAYER_INFO[name]["name"]
            time_obj = parse_time_internal(timings.get(api_key))
            if time_obj is None:
                logger.error(f"Invalid or missing '{api_key}' time in API response: {timings.get(api_key)!r}")
                return None
            instant = combine_local(date_obj, time_obj, location_tz)
            # Isha can fall after local midnight in high-latitude summers.
            if name == "isha" and events and instant <= events[-1].instant:
                instant += datetime.timedelta(days=1)
            events.append(PrayerEvent(name=name, instant=instant, display_text=format_display_time(instant, display_tz)))

        daily = DailyTimings(
            date=date_obj,
            coordinates=coordinates,
            events=tuple(events),
            method=method,
            source="remote",
            hijri_date=_format_remote_hijri(raw.get("date")) or format_hijri(date_obj),
        )
    except (KeyError, TypeError, AttributeError, ValueError) as e:
        logger.error(f"Malformed prayer time payload for {date_obj}: {e}", exc_info=True)
        return None

    if not daily.is_strictly_ordered():
        logger.error(f"API timings for {date_obj} at {coordinates} are not in prayer order. Discarding.")
        return None
    return daily


def get_daily_prayer_times_from_api(adapter, date_obj, coordinates, method, school, display_tz):
    """
    Fetches prayer times for a single day through the adapter and normalizes them.
    Any failure yields None so the caller can fall back to local calculation.
    """
    if not adapter:
        return None

    method_key = resolve_method_key(method)
    raw = adapter.fetch_daily_timings(
        date_obj=date_obj,
        latitude=coordinates.latitude,
        longitude=coordinates.longitude,
        method_id=get_api_method_id(method_key),
        school=school,
    )
    if not raw:
        return None
    return normalize_daily_timings(raw, date_obj, coordinates, method_key, display_tz)


class RemoteTimingProvider:
    """First provider in the chain: authoritative timings from the remote API."""

    name = "remote"

    def __init__(self, adapter, method, school=0, display_tz=None):
        self.adapter = adapter
        self.method = method
        self.school = school
        self.display_tz = display_tz or ZoneInfo("UTC")

    def fetch(self, date_obj: datetime.date, coordinates: Coordinates) -> Optional[DailyTimings]:
        return get_daily_prayer_times_from_api(
            self.adapter, date_obj, coordinates, self.method, self.school, self.display_tz
        )


class CalculatorProvider:
    """Last provider in the chain. Always produces a result."""

    name = "calculator"

    def __init__(self, calculator, method):
        self.calculator = calculator
        self.method = method

    def fetch(self, date_obj: datetime.date, coordinates: Coordinates) -> Optional[DailyTimings]:
        return self.calculator.calculate(date_obj, coordinates, self.method)
