# This module tracks the coordinates prayer times are resolved for.
import json
import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Callable, List, Optional

from ...metrics import LOCATION_REFRESH_TOTAL
from ...models import Coordinates, LocationOrigin, LocationState
from .key_utils import generate_location_key
from .storage import KeyValueStore, StorageError

logger = logging.getLogger(__name__)


class LocationResolver:
    """
    Holds the current LocationState.

    Starts from the default coordinates, is promoted to the persisted location
    when a recent one exists, and to a live fix once positioning succeeds.
    Positioning never blocks readers: current() always answers immediately
    with the best known coordinates.
    """

    def __init__(self, store: Optional[KeyValueStore], positioning_adapter, default_coordinates: Coordinates,
                 executor: Optional[ThreadPoolExecutor] = None, timeout: float = 5, max_age: float = 3600,
                 persist_max_age: float = 3600, refresh_interval: float = 300,
                 change_threshold: float = 0.0001, schema_version: str = "v1",
                 clock: Callable[[], float] = time.time):
        self.store = store
        self.positioning_adapter = positioning_adapter
        self.default_coordinates = default_coordinates
        self.timeout = timeout
        self.max_age = max_age
        self.persist_max_age = persist_max_age
        self.refresh_interval = refresh_interval
        self.change_threshold = change_threshold
        self.storage_key = generate_location_key(schema_version)
        self._clock = clock
        self._lock = threading.Lock()
        self._listeners: List[Callable[[Coordinates, Coordinates], None]] = []
        self._refresh_future: Optional[Future] = None
        self._last_refresh_attempt: Optional[float] = None
        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(max_workers=1, thread_name_prefix="location-refresh")
        self._state = LocationState(default_coordinates, LocationOrigin.DEFAULT, None)
        self._load_persisted()

    def _load_persisted(self) -> None:
        if self.store is None:
            return
        try:
            raw = self.store.get(self.storage_key)
        except StorageError as e:
            logger.warning(f"Could not read persisted location: {e}")
            return
        if raw is None:
            return

        try:
            record = json.loads(raw)
            coordinates = Coordinates.from_dict(record["coordinates"])
            saved_at = float(record["timestamp"])
        except (ValueError, KeyError, TypeError) as e:
            logger.warning(f"Ignoring unreadable persisted location: {e}")
            return

        age = self._clock() - saved_at
        if age < self.persist_max_age:
            self._state = LocationState(coordinates, LocationOrigin.CACHED_PERSISTED, saved_at)
            logger.info(f"Using persisted location ({coordinates.latitude}, {coordinates.longitude}) saved {int(age)}s ago.")
        else:
            logger.info(f"Persisted location is {int(age)}s old. Keeping default coordinates until a live fix arrives.")

    def _persist(self, state: LocationState) -> None:
        if self.store is None:
            return
        try:
            self.store.set(self.storage_key, json.dumps({
                "coordinates": state.coordinates.to_dict(),
                "timestamp": state.last_refined_at,
            }))
        except StorageError as e:
            logger.warning(f"Could not persist location: {e}")

    def current(self) -> Coordinates:
        with self._lock:
            return self._state.coordinates

    def state(self) -> LocationState:
        with self._lock:
            return self._state

    def on_change(self, callback: Callable[[Coordinates, Coordinates], None]):
        """Registers callback(previous, current), run whenever the coordinates change."""
        self._listeners.append(callback)
        return callback

    def refresh_in_background(self) -> Optional[Future]:
        """Starts a positioning read unless one is already running. Returns its future."""
        if self.positioning_adapter is None:
            return None
        with self._lock:
            if self._refresh_future is not None and not self._refresh_future.done():
                return self._refresh_future
            self._last_refresh_attempt = self._clock()
            try:
                self._refresh_future = self._executor.submit(self._refresh)
            except RuntimeError as e:
                logger.warning(f"Could not schedule location refresh: {e}")
                return None
            return self._refresh_future

    def refresh_if_stale(self) -> Optional[Future]:
        with self._lock:
            last = self._last_refresh_attempt
        if last is None or self._clock() - last >= self.refresh_interval:
            return self.refresh_in_background()
        return None

    def _refresh(self) -> bool:
        coordinates = self.positioning_adapter.get_current_position(timeout=self.timeout, max_age=self.max_age)
        if coordinates is None:
            LOCATION_REFRESH_TOTAL.labels(outcome='failed').inc()
            logger.info("Positioning returned no fix. Keeping last known location.")
            return False
        return self.update(coordinates)

    def update(self, coordinates: Coordinates) -> bool:
        """
        Applies a live reading. Returns True when it moved the location past the
        change threshold, which also notifies the on_change listeners.
        Readings inside the threshold keep the previous coordinates.
        """
        now = self._clock()
        with self._lock:
            previous = self._state
            changed = coordinates.differs_from(previous.coordinates, self.change_threshold)
            kept = coordinates if changed else previous.coordinates
            self._state = LocationState(kept, LocationOrigin.LIVE_REFINED, now)
            state = self._state

        self._persist(state)
        if not changed:
            LOCATION_REFRESH_TOTAL.labels(outcome='unchanged').inc()
            logger.debug("Live location within change threshold. Cached prayer times stay valid.")
            return False

        LOCATION_REFRESH_TOTAL.labels(outcome='changed').inc()
        logger.info(
            f"Location changed from ({previous.coordinates.latitude}, {previous.coordinates.longitude}) "
            f"to ({coordinates.latitude}, {coordinates.longitude})."
        )
        self._notify(previous.coordinates, coordinates)
        return True

    def _notify(self, previous: Coordinates, current: Coordinates) -> None:
        for callback in list(self._listeners):
            try:
                callback(previous, current)
            except Exception as e:
                logger.error(f"Location change listener failed: {e}", exc_info=True)

    def reset(self) -> None:
        """Returns to the default coordinates and forgets the persisted location."""
        with self._lock:
            previous = self._state
            self._state = LocationState(self.default_coordinates, LocationOrigin.DEFAULT, None)
            self._last_refresh_attempt = None
        if self.store is not None:
            try:
                self.store.delete(self.storage_key)
            except StorageError as e:
                logger.warning(f"Could not delete persisted location: {e}")
        logger.info("Location reset to default coordinates.")
        if previous.coordinates != self.default_coordinates:
            self._notify(previous.coordinates, self.default_coordinates)

    def close(self) -> None:
        if self._owns_executor:
            self._executor.shutdown(wait=False)
