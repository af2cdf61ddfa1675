# prayer_engine/services/api_adapters/aladhan_adapter.py

import logging
import time

import requests

from .base_adapter import BasePrayerAdapter
from ...metrics import API_REQUESTS_TOTAL, API_REQUEST_DURATION_SECONDS

logger = logging.getLogger(__name__)


class AlAdhanAdapter(BasePrayerAdapter):
    """
    API Adapter for AlAdhan.com Prayer Times API.
    """

    name = "AlAdhanAdapter"

    def fetch_daily_timings(self, date_obj, latitude, longitude, method_id, school):
        """
        Fetches prayer times for a single day from the AlAdhan.com API.
        Returns the 'data' object of the response, or None on any failure.
        """
        date_str = date_obj.strftime("%d-%m-%Y")
        logger.info(f"AlAdhanAdapter: Fetching daily timings for {date_str} at ({latitude}, {longitude})")

        endpoint = f"{self.base_url}/timings/{date_str}"
        params = {
            "latitude": str(latitude),
            "longitude": str(longitude),
            "method": method_id,
            "school": school,
        }

        logger.debug(f"AlAdhanAdapter: Fetching daily with params: {params}")

        started = time.perf_counter()
        status = "error"
        try:
            response = requests.get(endpoint, params=params, timeout=self.timeout)
            response.raise_for_status()
            data = response.json()

            if data.get("code") == 200 and isinstance(data.get("data"), dict):
                logger.info(f"AlAdhanAdapter: Successfully fetched daily timings for {date_str}.")
                status = "success"
                return data["data"]
            else:
                logger.error(f"AlAdhanAdapter: API error for daily timings {date_str}. Code: {data.get('code')}, Status: {data.get('status')}")
                status = "api_error"
                return None

        except requests.exceptions.Timeout:
            logger.error(f"AlAdhanAdapter: Timeout error fetching daily prayer times for {date_str}.")
            status = "timeout"
            return None
        except requests.exceptions.RequestException as e:
            logger.error(f"AlAdhanAdapter: RequestException for daily timings {date_str}: {e}", exc_info=True)
            return None
        except (ValueError, AttributeError) as e:
            # Body was not JSON, or not a JSON object.
            logger.error(f"AlAdhanAdapter: Malformed response for daily timings {date_str}: {e}", exc_info=True)
            status = "malformed"
            return None
        finally:
            API_REQUESTS_TOTAL.labels(adapter_name=self.name, endpoint='timings', status=status).inc()
            API_REQUEST_DURATION_SECONDS.labels(adapter_name=self.name, endpoint='timings').observe(time.perf_counter() - started)
