# This module computes prayer times locally. It is the last provider in the chain and never needs the network.
import datetime
import logging
import math
from typing import List, Optional
from zoneinfo import ZoneInfo

from adhanpy.PrayerTimes import PrayerTimes
from adhanpy.calculation import CalculationMethod

from ...models import PRAYER_NAMES, Coordinates, DailyTimings, PrayerEvent
from ...utils.hijri_utils import format_hijri
from ...utils.time_utils import format_display_time

logger = logging.getLogger(__name__)

UTC = ZoneInfo("UTC")

DEFAULT_METHOD = "MWL"

# Method key -> adhanpy CalculationMethod member and the matching AlAdhan API method id.
CALCULATION_METHODS = {
    "MWL":                   {"adhan": "MUSLIM_WORLD_LEAGUE",     "api_id": 3,  "name": "Muslim World League"},
    "ISNA":                  {"adhan": "NORTH_AMERICA",           "api_id": 2,  "name": "Islamic Society of North America"},
    "Egyptian":              {"adhan": "EGYPTIAN",                "api_id": 5,  "name": "Egyptian General Authority of Survey"},
    "Makkah":                {"adhan": "UMM_AL_QURA",             "api_id": 4,  "name": "Umm Al-Qura University, Makkah"},
    "Karachi":               {"adhan": "KARACHI",                 "api_id": 1,  "name": "University of Islamic Sciences, Karachi"},
    "Dubai":                 {"adhan": "DUBAI",                   "api_id": 16, "name": "Dubai"},
    "Kuwait":                {"adhan": "KUWAIT",                  "api_id": 9,  "name": "Kuwait"},
    "Qatar":                 {"adhan": "QATAR",                   "api_id": 10, "name": "Qatar"},
    "Singapore":             {"adhan": "SINGAPORE",               "api_id": 11, "name": "Majlis Ugama Islam Singapura"},
    "MoonsightingCommittee": {"adhan": "MOON_SIGHTING_COMMITTEE", "api_id": 15, "name": "Moonsighting Committee Worldwide"},
}

# Latitude used in place of the real one when a day cannot be computed there.
HIGH_LATITUDE_REFERENCE = 48.5


def resolve_method_key(method: Optional[str]) -> str:
    if method in CALCULATION_METHODS:
        return method
    logger.warning(f"Unknown calculation method '{method}'. Falling back to {DEFAULT_METHOD}.")
    return DEFAULT_METHOD


def get_api_method_id(method: Optional[str]) -> int:
    return CALCULATION_METHODS[resolve_method_key(method)]["api_id"]


class TimingCalculator:
    """
    Deterministic prayer time calculator.

    Extreme latitudes: when the real latitude does not yield six strictly
    ordered events (polar day or night, twilight that never ends), the whole
    day is recomputed at +/-HIGH_LATITUDE_REFERENCE degrees with the same
    longitude and sign, moving closer to the equator if the reference day is
    undefined too. The result is an approximation, not an error.
    """

    def __init__(self, display_tz: Optional[datetime.tzinfo] = None, reference_latitude: float = HIGH_LATITUDE_REFERENCE):
        self.display_tz = display_tz or UTC
        self.reference_latitude = reference_latitude

    def calculate(self, date_obj: datetime.date, coordinates: Coordinates, method: str = DEFAULT_METHOD) -> DailyTimings:
        method_key = resolve_method_key(method)
        instants = self._compute(date_obj, coordinates.latitude, coordinates.longitude, method_key)

        if instants is None:
            for reference_lat in self._reference_latitudes(coordinates.latitude):
                instants = self._compute(date_obj, reference_lat, coordinates.longitude, method_key)
                if instants is not None:
                    logger.warning(
                        f"TimingCalculator: Latitude {coordinates.latitude} has undefined prayer windows on {date_obj}. "
                        f"Using reference latitude {reference_lat}."
                    )
                    break
            else:
                raise ValueError(f"Could not compute prayer times for {date_obj} at {coordinates}")

        events = tuple(
            PrayerEvent(name=name, instant=instant, display_text=format_display_time(instant, self.display_tz))
            for name, instant in zip(PRAYER_NAMES, instants)
        )
        return DailyTimings(
            date=date_obj,
            coordinates=coordinates,
            events=events,
            method=method_key,
            source="calculator",
            hijri_date=format_hijri(date_obj),
        )

    def _reference_latitudes(self, latitude: float):
        """HIGH_LATITUDE_REFERENCE first, then 5 degree steps toward the equator, all below the real latitude."""
        step = self.reference_latitude
        while step >= 0:
            if step < abs(latitude):
                yield math.copysign(step, latitude)
            step -= 5

    def _compute(self, date_obj: datetime.date, latitude: float, longitude: float, method_key: str) -> Optional[List[datetime.datetime]]:
        """Returns six ordered UTC instants, or None when the library cannot produce them."""
        adhan_method = CalculationMethod[CALCULATION_METHODS[method_key]["adhan"]]
        try:
            times = PrayerTimes(
                (latitude, longitude),
                datetime.datetime(date_obj.year, date_obj.month, date_obj.day),
                adhan_method,
                time_zone=UTC,
            )
            instants = [getattr(times, name) for name in PRAYER_NAMES]
        except (RuntimeError, ValueError, ArithmeticError, TypeError) as e:
            logger.debug(f"TimingCalculator: adhan failed for ({latitude}, {longitude}) on {date_obj}: {e}")
            return None

        if not all(isinstance(instant, datetime.datetime) for instant in instants):
            return None
        instants = [i if i.tzinfo else i.replace(tzinfo=UTC) for i in instants]
        if any(a >= b for a, b in zip(instants, instants[1:])):
            return None
        return instants
