# prayer_engine/routes/api_routes.py
from typing import Any, Dict

from flask import current_app
from flask_smorest import Blueprint, abort
from prometheus_client import generate_latest

from ..extensions import limiter
from ..schemas import (
    CachedTimingsArgsSchema, CurrentNextSchema, DailyTimingsSchema, LocationSchema, MessageSchema,
    MonthlyArgsSchema, MonthlyDaySchema, PrayerTimesArgsSchema, QiblaSchema,
)
from ..services.prayer_time_service import event_to_response, timings_to_response
from ..utils.time_utils import format_seconds_remaining

api_bp = Blueprint('API', __name__, url_prefix='/api', description="Prayer times, Qibla and location")


def _engine():
    return current_app.extensions['prayer_engine']


@api_bp.route('/metrics')
def metrics():
    return generate_latest(), 200, {'Content-Type': 'text/plain; version=0.0.4; charset=utf-8'}


@api_bp.route('/prayer-times')
@api_bp.arguments(PrayerTimesArgsSchema, location='query')
@api_bp.response(200, DailyTimingsSchema)
def prayer_times(args: Dict[str, Any]):
    """
    Prayer times for a day at the current location.
    Served from cache when possible; a cached day is revalidated in the background.
    """
    engine = _engine()
    timings = engine.get_formatted_timings(args.get('date'), skip_cache=args['skip_cache'])
    return timings_to_response(timings, engine.display_tz)


@api_bp.route('/prayer-times/cached')
@api_bp.arguments(CachedTimingsArgsSchema, location='query')
@api_bp.response(200, DailyTimingsSchema)
@api_bp.alt_response(404, schema=MessageSchema, description="Nothing cached for this day and location.")
def cached_prayer_times(args: Dict[str, Any]):
    """Instant read for first paint. Never computes."""
    engine = _engine()
    timings = engine.get_cached_timings_sync(args.get('date'))
    if timings is None:
        abort(404, message="No cached prayer times for this day and location.")
    return timings_to_response(timings, engine.display_tz)


@api_bp.route('/prayer-times/current')
@api_bp.response(200, CurrentNextSchema)
def current_prayer():
    """The prayer in effect now, the next one and a countdown to it."""
    engine = _engine()
    result = engine.get_current_and_next()
    return {
        "current": event_to_response(result.current, engine.display_tz),
        "next": event_to_response(result.next, engine.display_tz),
        "seconds_to_next": result.seconds_to_next,
        "time_remaining": format_seconds_remaining(result.seconds_to_next),
    }


@api_bp.route('/prayer-times/monthly')
@api_bp.arguments(MonthlyArgsSchema, location='query')
@api_bp.response(200, MonthlyDaySchema(many=True))
def monthly_prayer_times(args: Dict[str, Any]):
    """Every day of a month, calculated locally where not cached."""
    engine = _engine()
    today = engine.today()
    year = args.get('year', today.year)
    month = args.get('month', today.month)

    days = []
    for timings in engine.get_monthly_timings(year, month):
        day = timings_to_response(timings, engine.display_tz)
        day.update({
            "day": timings.date.day,
            "day_name": timings.date.strftime("%a"),
            "gregorian_date": f"{timings.date.strftime('%b')} {timings.date.day}",
            "is_today": timings.date == today,
        })
        days.append(day)
    return days


@api_bp.route('/qibla')
@api_bp.response(200, QiblaSchema)
def qibla():
    engine = _engine()
    return {
        "bearing": engine.get_qibla_bearing(),
        "coordinates": engine.location.current().to_dict(),
    }


@api_bp.route('/location')
@api_bp.response(200, LocationSchema)
def location():
    state = _engine().get_location_state()
    return {
        "coordinates": state.coordinates.to_dict(),
        "origin": state.origin.value,
        "last_refined_at": state.last_refined_at,
    }


@api_bp.route('/location/refresh', methods=['POST'])
@limiter.limit(lambda: current_app.config.get('LOCATION_REFRESH_RATE_LIMIT', "10 per minute"))
@api_bp.response(202, MessageSchema)
def refresh_location():
    """Starts a background positioning read. Prayer times follow once it lands."""
    future = _engine().refresh_location()
    if future is None:
        current_app.logger.info("Location refresh requested but positioning is disabled.")
        return {"message": "Positioning is disabled. Location unchanged."}
    current_app.logger.info("Location refresh scheduled.")
    return {"message": "Location refresh scheduled."}
