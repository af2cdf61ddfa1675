# prayer_engine/schemas.py

from marshmallow import Schema, fields, validate


class CoordinatesSchema(Schema):
    latitude = fields.Float(required=True)
    longitude = fields.Float(required=True)


class PrayerInfoSchema(Schema):
    """One prayer event with its display metadata."""
    name = fields.Str(required=True)
    display_name = fields.Str(required=True)
    arabic = fields.Str(required=True)
    time = fields.Str(required=True)
    instant = fields.DateTime(required=True)


class DailyTimingsSchema(Schema):
    date = fields.Date(required=True)
    coordinates = fields.Nested(CoordinatesSchema, required=True)
    method = fields.Str(required=True)
    source = fields.Str(required=True)
    hijri_date = fields.Str(allow_none=True)
    prayers = fields.Dict(keys=fields.Str(), values=fields.Nested(PrayerInfoSchema), required=True)


class MonthlyDaySchema(DailyTimingsSchema):
    day = fields.Int(required=True)
    day_name = fields.Str(required=True)
    gregorian_date = fields.Str(required=True)
    is_today = fields.Bool(required=True)


class CurrentNextSchema(Schema):
    current = fields.Nested(PrayerInfoSchema, allow_none=True)
    next = fields.Nested(PrayerInfoSchema, allow_none=True)
    seconds_to_next = fields.Int(required=True, data_key="secondsToNext")
    time_remaining = fields.Str(required=True, data_key="timeRemaining")


class QiblaSchema(Schema):
    bearing = fields.Int(required=True)
    coordinates = fields.Nested(CoordinatesSchema, required=True)


class LocationSchema(Schema):
    coordinates = fields.Nested(CoordinatesSchema, required=True)
    origin = fields.Str(required=True)
    last_refined_at = fields.Float(allow_none=True)


class MessageSchema(Schema):
    message = fields.Str(required=True)


class PrayerTimesArgsSchema(Schema):
    """Query parameters for the daily prayer times endpoints."""
    date = fields.Date()
    skip_cache = fields.Bool(load_default=False)


class CachedTimingsArgsSchema(Schema):
    date = fields.Date()


class MonthlyArgsSchema(Schema):
    year = fields.Int(validate=validate.Range(min=1, max=9999))
    month = fields.Int(validate=validate.Range(min=1, max=12))
