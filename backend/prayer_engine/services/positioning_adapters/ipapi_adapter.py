import logging
import threading
import time

import requests

from .base_adapter import BasePositioningAdapter
from ...models import Coordinates

logger = logging.getLogger(__name__)

IPAPI_URL = "http://ip-api.com/json/"


class IpApiPositioningAdapter(BasePositioningAdapter):
    """
    Positioning adapter backed by ip-api.com IP geolocation.
    The last successful fix is reused while it is younger than `max_age`.
    """

    name = "ip-api"

    def __init__(self, base_url=IPAPI_URL, clock=time.time):
        self.base_url = base_url
        self._clock = clock
        self._last_fix = None
        self._last_fix_at = None
        self._lock = threading.Lock()

    def get_current_position(self, timeout, max_age):
        now = self._clock()
        with self._lock:
            if self._last_fix is not None and now - self._last_fix_at <= max_age:
                logger.debug(f"IpApiPositioningAdapter: Reusing fix from {int(now - self._last_fix_at)}s ago.")
                return self._last_fix

        params = {"fields": "status,message,lat,lon"}
        try:
            response = requests.get(self.base_url, params=params, timeout=timeout)
            response.raise_for_status()
            data = response.json()

            if data.get("status") != "success":
                logger.warning(f"IpApiPositioningAdapter: Lookup failed: {data.get('message')}")
                return None

            coordinates = Coordinates(float(data["lat"]), float(data["lon"]))
        except requests.exceptions.Timeout:
            logger.warning(f"IpApiPositioningAdapter: Timed out after {timeout}s.")
            return None
        except requests.exceptions.RequestException as e:
            logger.error(f"IpApiPositioningAdapter: Request failed: {e}")
            return None
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            logger.error(f"IpApiPositioningAdapter: Malformed response: {e}")
            return None

        with self._lock:
            self._last_fix = coordinates
            self._last_fix_at = self._clock()
        logger.info(f"IpApiPositioningAdapter: Position resolved to ({coordinates.latitude}, {coordinates.longitude}).")
        return coordinates


def get_selected_positioning_adapter(config):
    """Instantiates the positioning adapter named by POSITIONING_PROVIDER, or None."""
    provider = config.get('POSITIONING_PROVIDER', 'ip-api')
    if provider == 'ip-api':
        return IpApiPositioningAdapter(base_url=config.get('POSITIONING_BASE_URL') or IPAPI_URL)
    if provider in (None, '', 'none'):
        logger.info("Positioning is disabled. Using default or persisted location only.")
        return None
    logger.error(f"Unsupported positioning provider: {provider}")
    return None
