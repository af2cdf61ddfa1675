# prayer_engine/extensions.py

import atexit

from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from redis import from_url


class FlaskRedis:
    """A wrapper class to provide a Flask-like interface for the Redis client."""
    def __init__(self, app=None):
        self.redis_client = None
        if app is not None:
            self.init_app(app)

    def init_app(self, app):
        """Initialize the Redis client from the Flask app configuration."""
        timeout = app.config.get('REDIS_SOCKET_TIMEOUT_SECONDS')
        self.redis_client = from_url(
            app.config.get('REDIS_URL'),
            socket_timeout=timeout,
            socket_connect_timeout=timeout,
        )

    def __getattr__(self, name):
        """Proxy attribute access to the underlying Redis client."""
        return getattr(self.redis_client, name)


class FlaskPrayerEngine:
    """
    Owns the process-wide PrayerTimeEngine. Built from the app config on
    init_app and shut down at interpreter exit.
    """
    def __init__(self, app=None):
        self.engine = None
        if app is not None:
            self.init_app(app)

    def init_app(self, app):
        from .services.prayer_time_service import PrayerTimeEngine

        if self.engine is not None:
            self.engine.shutdown()
            atexit.unregister(self.engine.shutdown)

        client = redis_client.redis_client if app.config.get('DURABLE_STORE_BACKEND') == 'redis' else None
        self.engine = PrayerTimeEngine.from_config(app.config, redis_client=client)
        atexit.register(self.engine.shutdown)
        app.extensions['prayer_engine'] = self.engine

    def __getattr__(self, name):
        """Proxy attribute access to the underlying engine."""
        if name == 'engine':
            raise AttributeError(name)
        return getattr(self.engine, name)


# Limiter का एक्सटेंशन (Rate limiting के लिए)
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=["200 per day", "50 per hour"]
)

# Redis Client का एक्सटेंशन
redis_client = FlaskRedis()

# Prayer time engine
prayer_engine = FlaskPrayerEngine()
