"""
Celery tasks for the prayer engine.
These keep the durable cache warm and bounded without blocking requests.
"""
from flask import current_app

from .celery_utils import celery
from .metrics import BACKGROUND_TASK_DURATION_SECONDS, BACKGROUND_TASK_RUNS_TOTAL


def _engine():
    return current_app.extensions['prayer_engine']


@celery.task(name='tasks.warm_prayer_timings')
def warm_prayer_timings_task(days_ahead=None):
    """
    Resolves today plus `days_ahead` days for the current location so the
    first read of each day is a cache hit.
    """
    with BACKGROUND_TASK_DURATION_SECONDS.labels(task_name='warm_prayer_timings').time():
        if days_ahead is None:
            days_ahead = current_app.config.get('WARM_CACHE_DAYS_AHEAD', 2)
        current_app.logger.info(f"[CELERY TASK] Warming prayer time cache for today and {days_ahead} day(s) ahead.")
        try:
            resolved = _engine().warm(days_ahead)
            result_message = f"Warmed {resolved} day(s) of prayer times."
            current_app.logger.info(f"[CELERY TASK] {result_message}")
            BACKGROUND_TASK_RUNS_TOTAL.labels(task_name='warm_prayer_timings', status='success').inc()
            return result_message
        except Exception as e:
            current_app.logger.error(f"[CELERY TASK] Cache warm-up failed: {e}", exc_info=True)
            BACKGROUND_TASK_RUNS_TOTAL.labels(task_name='warm_prayer_timings', status='failure').inc()
            raise


@celery.task(name='tasks.evict_expired_prayer_timings')
def evict_expired_prayer_timings_task():
    """Removes expired prayer time entries from the durable store."""
    with BACKGROUND_TASK_DURATION_SECONDS.labels(task_name='evict_expired_prayer_timings').time():
        current_app.logger.info("[CELERY TASK] Starting eviction of expired prayer time entries.")
        try:
            removed = _engine().evict_expired()
            result_message = f"Evicted {removed} expired prayer time entries."
            current_app.logger.info(f"[CELERY TASK] {result_message}")
            BACKGROUND_TASK_RUNS_TOTAL.labels(task_name='evict_expired_prayer_timings', status='success').inc()
            return result_message
        except Exception as e:
            current_app.logger.error(f"[CELERY TASK] Eviction failed: {e}", exc_info=True)
            BACKGROUND_TASK_RUNS_TOTAL.labels(task_name='evict_expired_prayer_timings', status='failure').inc()
            raise
