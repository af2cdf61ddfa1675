# This module defines the base interface for all prayer time API adapters.
from abc import ABC, abstractmethod


class BasePrayerAdapter(ABC):
    """
    Abstract base class for remote prayer time adapters. Implementations return the
    raw day payload ({'timings': {...}, 'date': {...}, 'meta': {...}}) or None on
    any failure; they never raise to the caller.
    """

    name = "base"

    def __init__(self, base_url, api_key=None, timeout=10):
        self.base_url = base_url.rstrip('/') if base_url else base_url
        self.api_key = api_key
        self.timeout = timeout

    @abstractmethod
    def fetch_daily_timings(self, date_obj, latitude, longitude, method_id, school):
        """Fetches prayer times for a single day."""
        pass
