# Qibla bearing: great-circle initial bearing from a location to the Kaaba.
import json
import logging
import math
import threading
import time
from typing import Callable, Dict, Optional

from ...metrics import CACHE_HITS, CACHE_MISSES
from ...models import Coordinates, QiblaEntry
from .key_utils import generate_qibla_cache_key
from .storage import KeyValueStore, StorageError

logger = logging.getLogger(__name__)

KAABA = Coordinates(21.4225, 39.8262)
QIBLA_CACHE_TTL_SECONDS = 30 * 24 * 3600


def calculate_qibla_bearing(coordinates: Coordinates) -> int:
    """Bearing in whole degrees clockwise from true north, in [0, 360)."""
    lat1 = math.radians(coordinates.latitude)
    lat2 = math.radians(KAABA.latitude)
    delta_lng = math.radians(KAABA.longitude - coordinates.longitude)

    x = math.sin(delta_lng) * math.cos(lat2)
    y = math.cos(lat1) * math.sin(lat2) - math.sin(lat1) * math.cos(lat2) * math.cos(delta_lng)

    bearing = (math.degrees(math.atan2(x, y)) + 360) % 360
    return round(bearing) % 360


class QiblaCalculator:
    """
    Caches bearings per rounded coordinates, in memory and in the durable store.
    The bearing for a location never changes, so the long TTL only bounds storage.
    """

    def __init__(self, store: Optional[KeyValueStore] = None, ttl: int = QIBLA_CACHE_TTL_SECONDS,
                 precision: int = 4, clock: Callable[[], float] = time.time):
        self.store = store
        self.ttl = ttl
        self.precision = precision
        self._clock = clock
        self._entries: Dict[str, QiblaEntry] = {}
        self._lock = threading.Lock()

    def _fresh(self, entry: Optional[QiblaEntry], now: float) -> bool:
        return entry is not None and now - entry.written_at <= self.ttl

    def get_bearing(self, coordinates: Coordinates) -> int:
        key = generate_qibla_cache_key(coordinates, self.precision)
        now = self._clock()

        with self._lock:
            entry = self._entries.get(key)
        if self._fresh(entry, now):
            CACHE_HITS.labels(cache_type='qibla', tier='volatile').inc()
            return int(entry.bearing_degrees)

        entry = self._read_durable(key)
        if self._fresh(entry, now):
            with self._lock:
                self._entries[key] = entry
            CACHE_HITS.labels(cache_type='qibla', tier='durable').inc()
            return int(entry.bearing_degrees)

        CACHE_MISSES.labels(cache_type='qibla').inc()
        # Computed at the rounded coordinates so every point sharing a key shares a bearing.
        bearing = calculate_qibla_bearing(coordinates.rounded(self.precision))
        entry = QiblaEntry(coordinates_key=key, bearing_degrees=bearing, written_at=now)
        with self._lock:
            self._entries[key] = entry
        self._write_durable(entry)
        logger.info(f"Qibla bearing for {key} computed: {bearing} degrees.")
        return bearing

    def _read_durable(self, key: str) -> Optional[QiblaEntry]:
        if self.store is None:
            return None
        try:
            raw = self.store.get(key)
        except StorageError as e:
            logger.warning(f"Durable store GET failed for qibla key {key}: {e}")
            return None
        if raw is None:
            return None
        try:
            record = json.loads(raw)
            return QiblaEntry(coordinates_key=key, bearing_degrees=float(record["bearing"]),
                              written_at=float(record["written_at"]))
        except (ValueError, KeyError, TypeError) as e:
            logger.warning(f"Ignoring unreadable qibla entry {key}: {e}")
            return None

    def _write_durable(self, entry: QiblaEntry) -> None:
        if self.store is None:
            return
        try:
            self.store.set(entry.coordinates_key, json.dumps({
                "bearing": entry.bearing_degrees,
                "written_at": entry.written_at,
            }))
        except StorageError as e:
            logger.warning(f"Could not persist qibla bearing for {entry.coordinates_key}: {e}")
