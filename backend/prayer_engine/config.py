import os
from dotenv import load_dotenv

# Load .env file from the backend directory
dotenv_path = os.path.join(os.path.dirname(os.path.dirname(__file__)), '.env')
if os.path.exists(dotenv_path):
    load_dotenv(dotenv_path)


def _env_bool(name, default):
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


class Config:
    """Base configuration."""
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'a_default_fallback_secret_key_for_development_only'
    LOG_LEVEL = "INFO"

    # Sentry Configuration
    SENTRY_DSN = os.environ.get('SENTRY_DSN')

    # Redis and Caching Configuration
    # Used for Celery broker, result backend, and the durable prayer time cache tier.
    REDIS_URL = os.environ.get('REDIS_URL') or 'redis://localhost:6379/0'
    REDIS_SOCKET_TIMEOUT_SECONDS = float(os.environ.get('REDIS_SOCKET_TIMEOUT_SECONDS', 2))

    # Celery Configuration
    CELERY_BROKER_URL = os.environ.get('CELERY_BROKER_URL') or REDIS_URL
    CELERY_RESULT_BACKEND = os.environ.get('CELERY_RESULT_BACKEND') or REDIS_URL

    # Durable tier: 'redis' in deployments, 'memory' for tests and offline runs
    DURABLE_STORE_BACKEND = os.environ.get('DURABLE_STORE_BACKEND', 'redis')
    MEMORY_STORE_CAPACITY_BYTES = int(os.environ['MEMORY_STORE_CAPACITY_BYTES']) if os.environ.get('MEMORY_STORE_CAPACITY_BYTES') else None
    # Bump to invalidate every cached entry after a payload format change
    CACHE_SCHEMA_VERSION = os.environ.get('CACHE_SCHEMA_VERSION', 'v1')

    # Prayer Time API Configuration
    PRAYER_API_ENABLED = _env_bool('PRAYER_API_ENABLED', True)
    PRAYER_API_ADAPTER = os.environ.get('PRAYER_API_ADAPTER') or "AlAdhanAdapter"
    PRAYER_API_BASE_URL = os.environ.get('PRAYER_API_BASE_URL') or "http://api.aladhan.com/v1"
    PRAYER_API_KEY = os.environ.get('PRAYER_API_KEY')
    PRAYER_API_TIMEOUT_SECONDS = float(os.environ.get('PRAYER_API_TIMEOUT_SECONDS', 10))

    # Calculation
    PRAYER_CALCULATION_METHOD = os.environ.get('PRAYER_CALCULATION_METHOD', "MWL")
    PRAYER_ASR_SCHOOL = int(os.environ.get('PRAYER_ASR_SCHOOL', 0))  # 0 = Shafi, 1 = Hanafi
    PRAYER_TIMEZONE = os.environ.get('PRAYER_TIMEZONE', "Africa/Addis_Ababa")
    PRAYER_CACHE_TTL_SECONDS = int(os.environ.get('PRAYER_CACHE_TTL_SECONDS', 24 * 3600))
    QIBLA_CACHE_TTL_SECONDS = int(os.environ.get('QIBLA_CACHE_TTL_SECONDS', 30 * 24 * 3600))
    PRAYER_CURRENT_LEAD_SECONDS = int(os.environ.get('PRAYER_CURRENT_LEAD_SECONDS', 120))
    COORDINATE_KEY_PRECISION = int(os.environ.get('COORDINATE_KEY_PRECISION', 4))

    # Default Location (Addis Ababa)
    DEFAULT_LATITUDE = float(os.environ.get('DEFAULT_LATITUDE', "9.0108"))
    DEFAULT_LONGITUDE = float(os.environ.get('DEFAULT_LONGITUDE', "38.7613"))

    # Positioning
    POSITIONING_PROVIDER = os.environ.get('POSITIONING_PROVIDER', 'ip-api')  # 'ip-api' or 'none'
    POSITIONING_BASE_URL = os.environ.get('POSITIONING_BASE_URL')
    POSITIONING_TIMEOUT_SECONDS = float(os.environ.get('POSITIONING_TIMEOUT_SECONDS', 5))
    POSITIONING_MAX_AGE_SECONDS = int(os.environ.get('POSITIONING_MAX_AGE_SECONDS', 3600))
    LOCATION_PERSIST_MAX_AGE_SECONDS = int(os.environ.get('LOCATION_PERSIST_MAX_AGE_SECONDS', 3600))
    LOCATION_REFRESH_INTERVAL_SECONDS = int(os.environ.get('LOCATION_REFRESH_INTERVAL_SECONDS', 300))
    LOCATION_CHANGE_THRESHOLD_DEGREES = float(os.environ.get('LOCATION_CHANGE_THRESHOLD_DEGREES', 0.0001))

    # Background work
    BACKGROUND_WORKERS = int(os.environ.get('BACKGROUND_WORKERS', 2))
    WARM_CACHE_DAYS_AHEAD = int(os.environ.get('WARM_CACHE_DAYS_AHEAD', 2))

    # Rate limiting
    RATELIMIT_STORAGE_URI = os.environ.get('RATELIMIT_STORAGE_URI', 'memory://')
    LOCATION_REFRESH_RATE_LIMIT = os.environ.get('LOCATION_REFRESH_RATE_LIMIT', "10 per minute")


class DevelopmentConfig(Config):
    FLASK_ENV = 'development'
    DEBUG = True
    LOG_LEVEL = "DEBUG"


class ProductionConfig(Config):
    FLASK_ENV = 'production'
    DEBUG = False

    # Ensure critical secrets are set in production
    if os.environ.get('FLASK_CONFIG') == 'production':
        if not Config.SECRET_KEY or Config.SECRET_KEY == 'a_default_fallback_secret_key_for_development_only':
            raise ValueError("CRITICAL: SECRET_KEY not found in environment!")

        if not Config.SENTRY_DSN:
            print("Warning: SENTRY_DSN not found. Error tracking will be disabled.")


class TestingConfig(Config):
    TESTING = True
    RATELIMIT_ENABLED = False  # Disable rate limiting for tests
    DURABLE_STORE_BACKEND = 'memory'
    MEMORY_STORE_CAPACITY_BYTES = None
    PRAYER_API_ENABLED = False
    POSITIONING_PROVIDER = 'none'
    PRAYER_TIMEZONE = "UTC"
    CELERY_TASK_ALWAYS_EAGER = True


config_by_name = {
    'development': DevelopmentConfig,
    'production': ProductionConfig,
    'testing': TestingConfig,
    'default': DevelopmentConfig
}
