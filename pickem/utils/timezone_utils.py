"""
Timezone utility functions for the pick'em application
"""

from datetime import datetime, timezone

import pytz
from flask import current_app, has_app_context


def get_app_timezone():
    """Get the application's configured display timezone"""
    if not has_app_context():
        return pytz.UTC

    try:
        timezone_name = current_app.config.get("TIMEZONE", "UTC")
        return pytz.timezone(timezone_name)
    except pytz.UnknownTimeZoneError:
        # Fallback to UTC if timezone is invalid
        return pytz.UTC


def get_utc_time():
    """Get current time in UTC"""
    return datetime.now(timezone.utc)


def ensure_utc(dt):
    """Return ``dt`` as an aware UTC datetime; naive values are assumed UTC"""
    if dt is None:
        return None

    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)

    return dt.astimezone(timezone.utc)


def to_naive_utc(dt):
    """Return ``dt`` as a naive UTC datetime for storage"""
    if dt is None:
        return None

    return ensure_utc(dt).replace(tzinfo=None)


def parse_iso_datetime(value):
    """Parse an ISO-8601 timestamp (a trailing "Z" is accepted) into aware UTC"""
    if isinstance(value, datetime):
        return ensure_utc(value)

    return ensure_utc(datetime.fromisoformat(str(value).strip().replace("Z", "+00:00")))


def convert_to_app_timezone(dt):
    """Convert a datetime to the application's timezone"""
    if dt is None:
        return None

    return ensure_utc(dt).astimezone(get_app_timezone())
