import datetime
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Dict, List, Mapping, Optional
from zoneinfo import ZoneInfo

from ..models import PRAYER_INFO, Coordinates, CurrentNextResult, DailyTimings, LocationState, PrayerEvent
from .positioning_adapters.ipapi_adapter import get_selected_positioning_adapter
from .prayer_time.api_adapter import CalculatorProvider, RemoteTimingProvider, get_selected_api_adapter
from .prayer_time.cache_layer import MultiTierCache
from .prayer_time.event_window import (
    DEFAULT_LEAD_SECONDS, needs_tomorrow, needs_yesterday, resolve_current_and_next,
)
from .prayer_time.location_resolver import LocationResolver
from .prayer_time.notifier import subscribe_to_refreshes, unsubscribe_from_refreshes
from .prayer_time.qibla_calculator import QiblaCalculator
from .prayer_time.storage import create_store
from .prayer_time.timing_calculator import DEFAULT_METHOD, TimingCalculator, resolve_method_key
from ..utils.time_utils import month_days

logger = logging.getLogger(__name__)


class PrayerTimeEngine:
    """
    The read API for prayer times, Qibla and location.

    Built once per process (see `from_config`) and injected where needed. All
    reads answer from cache when they can; network work happens on the
    engine's background executor.
    """

    def __init__(self, cache: MultiTierCache, location: LocationResolver, qibla: QiblaCalculator,
                 calculator: TimingCalculator, display_tz: Optional[datetime.tzinfo] = None,
                 lead_seconds: int = DEFAULT_LEAD_SECONDS, executor: Optional[ThreadPoolExecutor] = None):
        self.cache = cache
        self.location = location
        self.qibla = qibla
        self.calculator = calculator
        self.display_tz = display_tz or ZoneInfo("UTC")
        self.lead_seconds = lead_seconds
        self._executor = executor
        self._subscribers: List[Callable] = []
        self.location.on_change(self._on_location_change)

    @classmethod
    def from_config(cls, config: Mapping[str, Any], redis_client=None) -> "PrayerTimeEngine":
        display_tz = ZoneInfo(config.get('PRAYER_TIMEZONE', 'UTC'))
        method = resolve_method_key(config.get('PRAYER_CALCULATION_METHOD', DEFAULT_METHOD))
        precision = config.get('COORDINATE_KEY_PRECISION', 4)
        schema_version = config.get('CACHE_SCHEMA_VERSION', 'v1')

        store = create_store(config, redis_client)
        executor = ThreadPoolExecutor(
            max_workers=config.get('BACKGROUND_WORKERS', 2), thread_name_prefix="prayer-engine"
        )
        calculator = TimingCalculator(display_tz=display_tz)

        providers = []
        adapter = get_selected_api_adapter(config)
        if adapter is not None:
            providers.append(RemoteTimingProvider(adapter, method, config.get('PRAYER_ASR_SCHOOL', 0), display_tz))
        providers.append(CalculatorProvider(calculator, method))

        cache = MultiTierCache(
            store, providers, method=method,
            ttl=config.get('PRAYER_CACHE_TTL_SECONDS', 24 * 3600),
            schema_version=schema_version, precision=precision, executor=executor,
        )
        location = LocationResolver(
            store, get_selected_positioning_adapter(config),
            Coordinates(config.get('DEFAULT_LATITUDE', 9.0108), config.get('DEFAULT_LONGITUDE', 38.7613)),
            executor=executor,
            timeout=config.get('POSITIONING_TIMEOUT_SECONDS', 5),
            max_age=config.get('POSITIONING_MAX_AGE_SECONDS', 3600),
            persist_max_age=config.get('LOCATION_PERSIST_MAX_AGE_SECONDS', 3600),
            refresh_interval=config.get('LOCATION_REFRESH_INTERVAL_SECONDS', 300),
            change_threshold=config.get('LOCATION_CHANGE_THRESHOLD_DEGREES', 0.0001),
            schema_version=schema_version,
        )
        qibla = QiblaCalculator(store, ttl=config.get('QIBLA_CACHE_TTL_SECONDS', 30 * 24 * 3600), precision=precision)

        logger.info(f"Prayer time engine ready: method={method}, providers={[p.name for p in providers]}, tz={display_tz}.")
        return cls(cache, location, qibla, calculator, display_tz=display_tz,
                   lead_seconds=config.get('PRAYER_CURRENT_LEAD_SECONDS', DEFAULT_LEAD_SECONDS),
                   executor=executor)

    def _on_location_change(self, previous: Coordinates, current: Coordinates) -> None:
        self.cache.clear_volatile()

    def _now(self) -> datetime.datetime:
        return datetime.datetime.now(self.display_tz)

    def today(self) -> datetime.date:
        return self._now().date()

    # --- Read API ---

    def get_formatted_timings(self, date: Optional[datetime.date] = None, skip_cache: bool = False,
                              background_refresh: bool = True) -> DailyTimings:
        """
        Timings for `date` (today in the display timezone by default) at the
        current location. A cached value is returned immediately and, with
        `background_refresh`, revalidated behind the caller's back.
        """
        self.location.refresh_if_stale()
        date_obj = date or self.today()
        return self.cache.resolve(date_obj, self.location.current(),
                                  skip_cache=skip_cache, background_refresh=background_refresh)

    def get_cached_timings_sync(self, date: Optional[datetime.date] = None) -> Optional[DailyTimings]:
        """Instant read for first paint. Never computes; None on a miss."""
        return self.cache.get_instant(date or self.today(), self.location.current())

    def get_current_and_next(self, date: Optional[datetime.date] = None, now: Optional[datetime.datetime] = None,
                             skip_cache: bool = False, background_refresh: bool = True) -> CurrentNextResult:
        now = now or self._now()
        date_obj = date or now.astimezone(self.display_tz).date()
        today = self.get_formatted_timings(date_obj, skip_cache=skip_cache, background_refresh=background_refresh)

        yesterday = tomorrow = None
        if needs_yesterday(today, now, self.lead_seconds):
            yesterday = self.get_formatted_timings(date_obj - datetime.timedelta(days=1), background_refresh=False)
        if needs_tomorrow(today, now, self.lead_seconds):
            tomorrow = self.get_formatted_timings(date_obj + datetime.timedelta(days=1), background_refresh=False)

        return resolve_current_and_next(today, now, yesterday=yesterday, tomorrow=tomorrow,
                                        lead_seconds=self.lead_seconds)

    def get_qibla_bearing(self) -> int:
        return self.qibla.get_bearing(self.location.current())

    def get_monthly_timings(self, year: int, month: int) -> List[DailyTimings]:
        """
        Every day of a month. Cached days are reused; the rest are calculated
        locally so a month view never fans out to the remote API.
        """
        coordinates = self.location.current()
        days = []
        for day in month_days(year, month):
            timings = self.cache.get(day, coordinates)
            if timings is None:
                timings = self.calculator.calculate(day, coordinates, self.cache.method)
            days.append(timings)
        return days

    def get_location_state(self) -> LocationState:
        return self.location.state()

    def refresh_location(self):
        return self.location.refresh_in_background()

    # --- Maintenance ---

    def warm(self, days_ahead: int = 1) -> int:
        """Makes sure today plus `days_ahead` days are cached. Returns the number of days resolved."""
        start = self.today()
        coordinates = self.location.current()
        for offset in range(days_ahead + 1):
            self.cache.resolve(start + datetime.timedelta(days=offset), coordinates)
        return days_ahead + 1

    def evict_expired(self) -> int:
        return self.cache.evict_expired()

    # --- Notifications ---

    def subscribe(self, callback: Callable) -> Callable:
        """
        Connects callback(sender, date=..., timings=...) to the refresh broadcast.
        Subscriptions made here are dropped again on shutdown().
        """
        subscribe_to_refreshes(callback)
        self._subscribers.append(callback)
        return callback

    def shutdown(self) -> None:
        for callback in self._subscribers:
            unsubscribe_from_refreshes(callback)
        self._subscribers.clear()
        self.cache.close()
        self.location.close()
        if self._executor is not None:
            self._executor.shutdown(wait=False)
        logger.info("Prayer time engine shut down.")


def event_to_response(prayer_event: Optional[PrayerEvent], display_tz: datetime.tzinfo) -> Optional[Dict[str, Any]]:
    if prayer_event is None:
        return None
    info = PRAYER_INFO[prayer_event.name]
    return {
        "name": info["name"],
        "display_name": info["display_name"],
        "arabic": info["arabic"],
        "time": prayer_event.display_text,
        "instant": prayer_event.instant.astimezone(display_tz),
    }


def timings_to_response(timings: DailyTimings, display_tz: datetime.tzinfo) -> Dict[str, Any]:
    """Shapes DailyTimings for the HTTP layer, adding display metadata per prayer."""
    return {
        "date": timings.date,
        "coordinates": timings.coordinates.to_dict(),
        "method": timings.method,
        "source": timings.source,
        "hijri_date": timings.hijri_date,
        "prayers": {e.name: event_to_response(e, display_tz) for e in timings.events},
    }
