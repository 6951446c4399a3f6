"""
Helper Functions
Utility functions used across the application
"""
from datetime import datetime, timezone
from flask import session, jsonify, current_app
from functools import wraps
import random
import string
import pytz


PIN_ALPHABET = string.ascii_uppercase + string.digits


def now_utc():
    """Get current UTC timestamp"""
    return datetime.now(timezone.utc)


def to_local_time(utc_dt, tz_name=None):
    """Convert a UTC datetime to the configured display time zone"""
    if not utc_dt:
        return None
    if tz_name is None:
        tz_name = current_app.config.get('TIMEZONE', 'UTC')
    if utc_dt.tzinfo is None:
        utc_dt = utc_dt.replace(tzinfo=pytz.utc)
    return utc_dt.astimezone(pytz.timezone(tz_name))


def isoformat_local(utc_dt, tz_name=None):
    """ISO string in the display time zone, or None"""
    local = to_local_time(utc_dt, tz_name)
    return local.isoformat() if local else None


def generate_pin(length=6):
    """Generate random game PIN"""
    return "".join(random.choices(PIN_ALPHABET, k=length))


def normalize_pin(raw):
    """Uppercase and strip a user-typed PIN; None when blank"""
    if raw is None:
        return None
    pin = str(raw).strip().upper()
    return pin or None


def get_current_user_id():
    """User id issued by the auth provider, None for anonymous players"""
    return session.get("user_id")


# Decorators
def require_teacher(f):
    """
    Decorator to require teacher role
    Answers with a JSON 403 instead of redirecting
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if session.get("role") != "teacher":
            return jsonify({"error": "Teacher access required"}), 403
        return f(*args, **kwargs)
    return decorated_function
