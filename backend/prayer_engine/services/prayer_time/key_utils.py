# prayer_engine/services/prayer_time/key_utils.py

PRAYER_TIMES_PREFIX = "prayer_times"
QIBLA_PREFIX = "qibla"
LOCATION_KEY = "prayer_location"


def generate_daily_cache_key(date_obj, coordinates, method, schema_version="v1", precision=4):
    """Generates a consistent key for one day of prayer times at a rounded location."""
    return f"{PRAYER_TIMES_PREFIX}:{schema_version}:{date_obj.isoformat()}:{coordinates.cache_token(precision)}:{method}"


def generate_qibla_cache_key(coordinates, precision=4):
    """Qibla keys need no schema version or date: the bearing never changes for a location."""
    return f"{QIBLA_PREFIX}:{coordinates.cache_token(precision)}"


def generate_location_key(schema_version="v1"):
    return f"{LOCATION_KEY}:{schema_version}"
