# prayer_engine/models.py

import datetime
import enum
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

PRAYER_NAMES = ("fajr", "sunrise", "dhuhr", "asr", "maghrib", "isha")

# Display metadata for each event, keyed by the canonical lowercase name.
PRAYER_INFO = {
    "fajr":    {"name": "Fajr",    "display_name": "Dawn",      "arabic": "الفجر"},
    "sunrise": {"name": "Sunrise", "display_name": "Sunrise",   "arabic": "الشروق"},
    "dhuhr":   {"name": "Dhuhr",   "display_name": "Noon",      "arabic": "الظهر"},
    "asr":     {"name": "Asr",     "display_name": "Afternoon", "arabic": "العصر"},
    "maghrib": {"name": "Maghrib", "display_name": "Sunset",    "arabic": "المغرب"},
    "isha":    {"name": "Isha",    "display_name": "Night",     "arabic": "العشاء"},
}


@dataclass(frozen=True)
class Coordinates:
    latitude: float
    longitude: float

    def rounded(self, places: int = 4) -> "Coordinates":
        return Coordinates(round(self.latitude, places), round(self.longitude, places))

    def cache_token(self, places: int = 4) -> str:
        """Stable string form used in cache and storage keys."""
        return f"{self.latitude:.{places}f}_{self.longitude:.{places}f}"

    def differs_from(self, other: "Coordinates", threshold: float = 0.0001) -> bool:
        return (
            abs(self.latitude - other.latitude) > threshold
            or abs(self.longitude - other.longitude) > threshold
        )

    def to_dict(self) -> Dict[str, float]:
        return {"latitude": self.latitude, "longitude": self.longitude}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Coordinates":
        return cls(float(data["latitude"]), float(data["longitude"]))


@dataclass(frozen=True)
class PrayerEvent:
    name: str
    instant: datetime.datetime
    display_text: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "instant": self.instant.isoformat(),
            "display_text": self.display_text,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PrayerEvent":
        instant = datetime.datetime.fromisoformat(data["instant"])
        if instant.tzinfo is None:
            raise ValueError(f"Naive instant for event '{data.get('name')}'")
        return cls(name=data["name"], instant=instant, display_text=data["display_text"])


@dataclass(frozen=True)
class DailyTimings:
    """
    One calendar day of prayer events for a location.
    Produced by either the remote adapter or the local calculator; the two are
    indistinguishable apart from `source`.
    """
    date: datetime.date
    coordinates: Coordinates
    events: Tuple[PrayerEvent, ...]
    method: str
    source: str = "calculator"
    hijri_date: Optional[str] = None

    def event(self, name: str) -> Optional[PrayerEvent]:
        for prayer_event in self.events:
            if prayer_event.name == name:
                return prayer_event
        return None

    def prayers(self) -> List[PrayerEvent]:
        """Events eligible for current/next candidacy (sunrise excluded), ascending."""
        return sorted(
            (e for e in self.events if e.name != "sunrise"),
            key=lambda e: e.instant,
        )

    def is_strictly_ordered(self) -> bool:
        names = [e.name for e in self.events]
        if names != list(PRAYER_NAMES):
            return False
        return all(a.instant < b.instant for a, b in zip(self.events, self.events[1:]))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "date": self.date.isoformat(),
            "coordinates": self.coordinates.to_dict(),
            "events": [e.to_dict() for e in self.events],
            "method": self.method,
            "source": self.source,
            "hijri_date": self.hijri_date,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DailyTimings":
        return cls(
            date=datetime.date.fromisoformat(data["date"]),
            coordinates=Coordinates.from_dict(data["coordinates"]),
            events=tuple(PrayerEvent.from_dict(e) for e in data["events"]),
            method=data["method"],
            source=data.get("source", "calculator"),
            hijri_date=data.get("hijri_date"),
        )


@dataclass(frozen=True)
class CacheEntry:
    key: str
    payload: Any
    written_at: float
    ttl: int

    def is_expired(self, now: float) -> bool:
        return now - self.written_at > self.ttl


class LocationOrigin(enum.Enum):
    DEFAULT = "default"
    CACHED_PERSISTED = "cachedPersisted"
    LIVE_REFINED = "liveRefined"


@dataclass(frozen=True)
class LocationState:
    coordinates: Coordinates
    origin: LocationOrigin = LocationOrigin.DEFAULT
    last_refined_at: Optional[float] = None


@dataclass(frozen=True)
class CurrentNextResult:
    current: Optional[PrayerEvent]
    next: Optional[PrayerEvent]
    seconds_to_next: int = 0


@dataclass(frozen=True)
class QiblaEntry:
    coordinates_key: str
    bearing_degrees: float
    written_at: float = field(default=0.0)
