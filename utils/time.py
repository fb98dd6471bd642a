# utils/time.py
from datetime import datetime, timezone, timedelta


def get_iso_utc_now(now=None):
    """Returns UTC time (current, or `now`) in ISO 8601 format with 'Z' suffix and millisecond precision."""
    if now is None:
        now = datetime.now(timezone.utc)
    return now.astimezone(timezone.utc).isoformat(timespec='milliseconds').replace('+00:00', 'Z')


def parse_iso_utc(iso_string):
    """
    Parses an ISO 8601 string into an aware UTC datetime.
    Returns None if input is invalid.
    """
    try:
        dt = datetime.fromisoformat(iso_string.replace('Z', '+00:00'))
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=timezone.utc)
        return dt.astimezone(timezone.utc)
    except (ValueError, TypeError, AttributeError):
        return None


def check_timedelta_iso(iso_string, minutes = 0, now = None):
    """
    Checks if the given ISO 8601 string is older than the specified number of minutes.
    Returns True if it is, or if the input is None or unparsable; False otherwise.
    """
    dt = parse_iso_utc(iso_string)
    if dt is None:
        return True

    if now is None:
        now = datetime.now(timezone.utc)
    return dt < now - timedelta(minutes=minutes)
