# backend/tests/test_api_adapter.py

import datetime
from zoneinfo import ZoneInfo

import pytest
import requests

from prayer_engine.models import Coordinates
from prayer_engine.services.api_adapters.aladhan_adapter import AlAdhanAdapter
from prayer_engine.services.prayer_time.api_adapter import (
    RemoteTimingProvider, get_daily_prayer_times_from_api, get_selected_api_adapter,
)

from factories import UTC

DAY = datetime.date(2025, 3, 15)
ADDIS = Coordinates(9.0108, 38.7613)
ADDIS_TZ = ZoneInfo("Africa/Addis_Ababa")


def aladhan_payload(**timing_overrides):
    timings = {
        "Fajr": "05:01", "Sunrise": "06:17", "Dhuhr": "12:21", "Asr": "15:41",
        "Sunset": "18:25", "Maghrib": "18:25", "Isha": "19:35", "Imsak": "04:51",
        "Midnight": "00:23",
    }
    timings.update(timing_overrides)
    return {
        "code": 200,
        "status": "OK",
        "data": {
            "timings": timings,
            "date": {
                "readable": "15 Mar 2025",
                "hijri": {"day": "15", "month": {"number": 9, "en": "Ramaḍān"}, "year": "1446"},
            },
            "meta": {"timezone": "Africa/Addis_Ababa", "method": {"id": 3}},
        },
    }


@pytest.fixture
def adapter():
    return AlAdhanAdapter(base_url="http://api.aladhan.com/v1/", timeout=3)


@pytest.fixture
def mock_get(mocker):
    return mocker.patch('prayer_engine.services.api_adapters.aladhan_adapter.requests.get')


def test_successful_fetch_is_normalized(adapter, mock_get):
    mock_get.return_value.json.return_value = aladhan_payload()

    timings = get_daily_prayer_times_from_api(adapter, DAY, ADDIS, "MWL", 0, UTC)

    mock_get.assert_called_once_with(
        "http://api.aladhan.com/v1/timings/15-03-2025",
        params={"latitude": "9.0108", "longitude": "38.7613", "method": 3, "school": 0},
        timeout=3,
    )
    assert timings.source == "remote"
    assert timings.method == "MWL"
    assert timings.hijri_date == "15 Ramaḍān 1446"
    assert timings.is_strictly_ordered()
    fajr = timings.event("fajr")
    assert fajr.instant == datetime.datetime(2025, 3, 15, 5, 1, tzinfo=ADDIS_TZ)
    assert fajr.display_text == "2:01 AM"  # shown in UTC


def test_api_error_code_returns_none(adapter, mock_get):
    mock_get.return_value.json.return_value = {"code": 400, "status": "Bad Request", "data": "Invalid date"}
    assert adapter.fetch_daily_timings(DAY, 9.0108, 38.7613, 3, 0) is None


def test_timeout_returns_none(adapter, mock_get):
    mock_get.side_effect = requests.exceptions.Timeout()
    assert adapter.fetch_daily_timings(DAY, 9.0108, 38.7613, 3, 0) is None


def test_http_error_returns_none(adapter, mock_get):
    mock_get.return_value.raise_for_status.side_effect = requests.exceptions.HTTPError("502 Bad Gateway")
    assert adapter.fetch_daily_timings(DAY, 9.0108, 38.7613, 3, 0) is None


def test_non_json_body_returns_none(adapter, mock_get):
    mock_get.return_value.json.side_effect = ValueError("No JSON object could be decoded")
    assert adapter.fetch_daily_timings(DAY, 9.0108, 38.7613, 3, 0) is None


def test_missing_prayer_is_treated_as_no_data(adapter, mock_get):
    payload = aladhan_payload()
    del payload["data"]["timings"]["Isha"]
    mock_get.return_value.json.return_value = payload
    assert get_daily_prayer_times_from_api(adapter, DAY, ADDIS, "MWL", 0, UTC) is None


def test_out_of_order_timings_are_treated_as_no_data(adapter, mock_get):
    mock_get.return_value.json.return_value = aladhan_payload(Asr="11:00")
    assert get_daily_prayer_times_from_api(adapter, DAY, ADDIS, "MWL", 0, UTC) is None


def test_isha_after_midnight_rolls_to_next_day(adapter, mock_get):
    mock_get.return_value.json.return_value = aladhan_payload(Maghrib="22:40", Isha="00:35 (EAT)")
    timings = get_daily_prayer_times_from_api(adapter, DAY, ADDIS, "MWL", 0, UTC)
    assert timings.event("isha").instant == datetime.datetime(2025, 3, 16, 0, 35, tzinfo=ADDIS_TZ)


def test_remote_provider_without_adapter_is_a_miss():
    assert RemoteTimingProvider(None, "MWL").fetch(DAY, ADDIS) is None


@pytest.mark.parametrize("config", [
    {'PRAYER_API_ENABLED': False, 'PRAYER_API_BASE_URL': "http://api.aladhan.com/v1"},
    {'PRAYER_API_ENABLED': True, 'PRAYER_API_BASE_URL': None},
    {'PRAYER_API_ENABLED': True, 'PRAYER_API_BASE_URL': "http://x", 'PRAYER_API_ADAPTER': "Unknown"},
])
def test_adapter_selection_returns_none_when_unusable(config):
    assert get_selected_api_adapter(config) is None


def test_adapter_selection_builds_aladhan():
    adapter = get_selected_api_adapter({'PRAYER_API_BASE_URL': "http://api.aladhan.com/v1", 'PRAYER_API_TIMEOUT_SECONDS': 4})
    assert isinstance(adapter, AlAdhanAdapter)
    assert adapter.timeout == 4
