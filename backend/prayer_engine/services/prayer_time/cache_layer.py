# This module will contain all functions related to caching prayer times.
import datetime
import json
import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from ...metrics import CACHE_HITS, CACHE_MISSES, CACHE_WRITE_FAILURES
from ...models import CacheEntry, Coordinates, DailyTimings
from .key_utils import PRAYER_TIMES_PREFIX, generate_daily_cache_key
from .notifier import notify_timings_refreshed
from .storage import KeyValueStore, StorageError

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 24 * 3600


class MultiTierCache:
    """
    Read-through cache for DailyTimings.

    Tier 1 is a volatile in-process dict, tier 2 is the durable key-value store.
    Misses are filled by trying `providers` in order (remote API, then local
    calculation). Loads for the same key are shared between concurrent callers.
    """

    def __init__(self, store: KeyValueStore, providers: Sequence, method: str = "MWL",
                 ttl: int = DEFAULT_TTL_SECONDS, schema_version: str = "v1", precision: int = 4,
                 executor: Optional[ThreadPoolExecutor] = None, clock: Callable[[], float] = time.time,
                 notifier: Callable = notify_timings_refreshed):
        self.store = store
        self.providers: List = list(providers)
        self.method = method
        self.ttl = ttl
        self.schema_version = schema_version
        self.precision = precision
        self._clock = clock
        self._notifier = notifier
        self._volatile: Dict[str, CacheEntry] = {}
        self._in_flight: Dict[str, Future] = {}
        self._lock = threading.RLock()
        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(max_workers=2, thread_name_prefix="prayer-refresh")

    def _key(self, date_obj: datetime.date, coordinates: Coordinates) -> str:
        return generate_daily_cache_key(date_obj, coordinates, self.method, self.schema_version, self.precision)

    # --- Reads ---

    def get(self, date_obj: datetime.date, coordinates: Coordinates) -> Optional[DailyTimings]:
        """Checks the volatile tier, then the durable tier. Durable hits are promoted."""
        return self._lookup(self._key(date_obj, coordinates), cache_type='daily')

    def get_instant(self, date_obj: datetime.date, coordinates: Coordinates) -> Optional[DailyTimings]:
        """
        Read for first paint. Same tiers as get(), but never waits on an in-flight
        load and never triggers computation.
        """
        return self._lookup(self._key(date_obj, coordinates), cache_type='instant')

    def _lookup(self, key: str, cache_type: str) -> Optional[DailyTimings]:
        now = self._clock()
        with self._lock:
            entry = self._volatile.get(key)
            if entry is not None and entry.is_expired(now):
                del self._volatile[key]
                entry = None
        if entry is not None:
            CACHE_HITS.labels(cache_type=cache_type, tier='volatile').inc()
            logger.debug(f"Volatile cache HIT for key '{key}'.")
            return entry.payload

        entry = self._read_durable(key, now)
        if entry is not None:
            with self._lock:
                # A put may have landed while the durable read was in progress.
                current = self._volatile.get(key)
                if current is None or current.written_at < entry.written_at:
                    self._volatile[key] = entry
                else:
                    entry = current
            CACHE_HITS.labels(cache_type=cache_type, tier='durable').inc()
            logger.info(f"Durable cache HIT for key '{key}'. Promoted to volatile tier.")
            return entry.payload

        CACHE_MISSES.labels(cache_type=cache_type).inc()
        logger.debug(f"Cache MISS for key '{key}'.")
        return None

    def _read_durable(self, key: str, now: float) -> Optional[CacheEntry]:
        try:
            raw = self.store.get(key)
        except StorageError as e:
            logger.warning(f"Durable store GET failed for key {key}: {e}")
            return None
        if raw is None:
            return None

        try:
            record = json.loads(raw)
            entry = CacheEntry(
                key=key,
                payload=DailyTimings.from_dict(record["payload"]),
                written_at=float(record["written_at"]),
                ttl=int(record["ttl"]),
            )
        except (ValueError, KeyError, TypeError) as e:
            logger.warning(f"Discarding unreadable durable cache entry {key}: {e}")
            self._safe_delete(key)
            return None

        if entry.is_expired(now):
            logger.info(f"Durable cache entry {key} expired. Removing.")
            self._safe_delete(key)
            return None
        return entry

    # --- Writes ---

    def put(self, date_obj: datetime.date, coordinates: Coordinates, timings: DailyTimings) -> None:
        """Writes both tiers. A durable failure never affects the volatile write."""
        key = self._key(date_obj, coordinates)
        entry = CacheEntry(key=key, payload=timings, written_at=self._clock(), ttl=self.ttl)
        with self._lock:
            self._volatile[key] = entry
        self._write_durable(entry)

    def _write_durable(self, entry: CacheEntry) -> bool:
        serialized = json.dumps({
            "payload": entry.payload.to_dict(),
            "written_at": entry.written_at,
            "ttl": entry.ttl,
        })
        try:
            self.store.set(entry.key, serialized)
            return True
        except StorageError as e:
            CACHE_WRITE_FAILURES.labels(cache_type='daily', outcome='retry').inc()
            logger.warning(f"Durable store SET failed for key {entry.key}: {e}. Evicting expired entries and retrying.")

        self.evict_expired()
        try:
            self.store.set(entry.key, serialized)
            return True
        except StorageError as e:
            CACHE_WRITE_FAILURES.labels(cache_type='daily', outcome='dropped').inc()
            logger.error(f"Durable store SET retry failed for key {entry.key}: {e}. Keeping value in volatile tier only.")
            return False

    def _safe_delete(self, key: str) -> bool:
        try:
            self.store.delete(key)
            return True
        except StorageError as e:
            logger.warning(f"Durable store DELETE failed for key {key}: {e}")
            return False

    def evict_expired(self) -> int:
        """
        Removes every prayer time entry older than its TTL from both tiers.
        Unreadable durable entries go first, then the oldest expired ones.
        Returns the number of durable entries removed.
        """
        now = self._clock()
        with self._lock:
            for key in [k for k, e in self._volatile.items() if e.is_expired(now)]:
                del self._volatile[key]

        try:
            keys = self.store.keys(f"{PRAYER_TIMES_PREFIX}:")
        except StorageError as e:
            logger.error(f"Could not enumerate durable store keys for eviction: {e}")
            return 0

        candidates: List[Tuple[float, str]] = []
        for key in keys:
            try:
                raw = self.store.get(key)
            except StorageError:
                continue
            if raw is None:
                continue
            try:
                record = json.loads(raw)
                written_at = float(record["written_at"])
                ttl = int(record.get("ttl", self.ttl))
            except (ValueError, KeyError, TypeError, AttributeError):
                candidates.append((float('-inf'), key))
                continue
            if now - written_at > ttl:
                candidates.append((written_at, key))

        removed = 0
        for _, key in sorted(candidates):
            if self._safe_delete(key):
                removed += 1
        logger.info(f"Cache eviction pass removed {removed} expired prayer time entries.")
        return removed

    def clear_volatile(self) -> None:
        with self._lock:
            self._volatile.clear()
        logger.info("Volatile prayer time cache cleared.")

    # --- Read-through orchestration ---

    def resolve(self, date_obj: datetime.date, coordinates: Coordinates,
                skip_cache: bool = False, background_refresh: bool = False) -> DailyTimings:
        """
        Returns cached timings when present (optionally revalidating them in the
        background), otherwise loads them through the provider chain.
        """
        if not skip_cache:
            cached = self.get(date_obj, coordinates)
            if cached is not None:
                if background_refresh:
                    self.refresh_in_background(date_obj, coordinates)
                return cached

        key = self._key(date_obj, coordinates)
        future, owner = self._claim(key)
        if owner:
            self._load(future, key, date_obj, coordinates, notify=False)
        else:
            logger.debug(f"Joining in-flight load for key '{key}'.")
        return future.result()

    def refresh_in_background(self, date_obj: datetime.date, coordinates: Coordinates) -> Optional[Future]:
        """Schedules a load that stores the fresh value and sends the refresh notification."""
        key = self._key(date_obj, coordinates)
        future, owner = self._claim(key)
        if not owner:
            logger.debug(f"Background refresh for '{key}' already in flight.")
            return future
        try:
            self._executor.submit(self._load, future, key, date_obj, coordinates, True)
        except RuntimeError as e:
            logger.warning(f"Could not schedule background refresh for '{key}': {e}")
            with self._lock:
                self._in_flight.pop(key, None)
            future.set_exception(e)
            return None
        return future

    def in_flight(self, date_obj: datetime.date, coordinates: Coordinates) -> bool:
        with self._lock:
            return self._key(date_obj, coordinates) in self._in_flight

    def _claim(self, key: str) -> Tuple[Future, bool]:
        with self._lock:
            future = self._in_flight.get(key)
            if future is not None:
                return future, False
            future = Future()
            self._in_flight[key] = future
            return future, True

    def _load(self, future: Future, key: str, date_obj: datetime.date, coordinates: Coordinates, notify: bool) -> None:
        try:
            timings = self._fetch_fresh(date_obj, coordinates)
            self.put(date_obj, coordinates, timings)
        except Exception as e:
            with self._lock:
                self._in_flight.pop(key, None)
            if notify:
                logger.error(f"Background refresh failed for key '{key}': {e}", exc_info=True)
            future.set_exception(e)
            return

        with self._lock:
            self._in_flight.pop(key, None)
        future.set_result(timings)

        if notify:
            try:
                self._notifier(self, date_obj, timings)
            except Exception as e:
                logger.error(f"A prayer time refresh subscriber failed for key '{key}': {e}", exc_info=True)

    def _fetch_fresh(self, date_obj: datetime.date, coordinates: Coordinates) -> DailyTimings:
        last = len(self.providers) - 1
        for index, provider in enumerate(self.providers):
            try:
                timings = provider.fetch(date_obj, coordinates)
            except Exception as e:
                if index == last:
                    raise
                logger.error(f"Provider '{provider.name}' failed for {date_obj}: {e}", exc_info=True)
                timings = None
            if timings is not None:
                logger.info(f"Prayer times for {date_obj} at ({coordinates.latitude}, {coordinates.longitude}) resolved by '{provider.name}'.")
                return timings
            logger.info(f"Provider '{provider.name}' had no data for {date_obj}. Trying next provider.")
        raise LookupError(f"No provider produced prayer times for {date_obj}")

    def close(self) -> None:
        if self._owns_executor:
            self._executor.shutdown(wait=False)
