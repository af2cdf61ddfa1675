"""
This module sets up and configures the Celery application instance,
ensuring it integrates correctly with the Flask application context.
"""
from celery import Celery
from celery.schedules import crontab

# Configuration is loaded from the Flask app config in init_celery().
celery = Celery(__name__)


def init_celery(app):
    """
    Initializes the Celery instance from the Flask app's configuration and
    runs every task inside the app context, so tasks reach `current_app`
    and the prayer time engine the same way a request does.

    Args:
        app (Flask): The configured Flask application instance.

    Returns:
        Celery: The configured Celery instance.
    """
    celery.conf.update(
        broker_url=app.config['CELERY_BROKER_URL'],
        result_backend=app.config['CELERY_RESULT_BACKEND'],
        task_always_eager=app.config.get('CELERY_TASK_ALWAYS_EAGER', False),
        beat_schedule={
            # Shortly after midnight so the new day is cached before the first read.
            'warm-prayer-timings-daily': {
                'task': 'tasks.warm_prayer_timings',
                'schedule': crontab(hour=0, minute=5),
            },
            'evict-expired-prayer-timings-daily': {
                'task': 'tasks.evict_expired_prayer_timings',
                'schedule': crontab(hour=3, minute=0),
            },
        },
    )

    class ContextTask(celery.Task):
        def __call__(self, *args, **kwargs):
            with app.app_context():
                return self.run(*args, **kwargs)

    celery.Task = ContextTask
    return celery
