"""Shared request helpers for the blueprints.

parse_date:        returns None on bad input
parse_as_of:       the "now" a planning/report request is evaluated at
parse_date_range:  start/end query window with a default span
require_json:      body dict or a 400 tuple
"""
import logging
from datetime import date, datetime, timedelta, timezone

from flask import request

from app.models.domain import parse_datetime
from app.utils.errors import E, api_error

logger = logging.getLogger(__name__)


def parse_date(value):
    """Parse a date string (ISO or DD.MM.YYYY) to a date object.

    Returns None for empty/invalid input. Supports:
    - YYYY-MM-DD
    - YYYY-MM-DDTHH:MM:SS (→ .date())
    - DD.MM.YYYY
    """
    if not value:
        return None
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value))
    except (ValueError, TypeError):
        pass
    try:
        return datetime.fromisoformat(str(value)).date()
    except (ValueError, TypeError):
        pass
    try:
        return datetime.strptime(str(value), "%d.%m.%Y").date()
    except (ValueError, TypeError):
        return None


def parse_as_of():
    """Return the evaluation instant for the request.

    ``?as_of=<ISO datetime>`` pins the clock so projections are reproducible;
    without it the current UTC time is used.

    Returns (datetime, None) or (None, error_tuple).
    """
    raw = request.args.get("as_of")
    if not raw:
        return datetime.now(timezone.utc), None
    try:
        return parse_datetime(raw), None
    except ValueError:
        return None, api_error(E.VALIDATION_INVALID, "as_of must be an ISO-8601 datetime")


MAX_RANGE_DAYS = 366


def parse_date_range(default_days: int = 30, max_days: int = MAX_RANGE_DAYS):
    """Read ``start`` / ``end`` query params as dates.

    Missing values default to today and today + ``default_days``. The span
    may not exceed ``max_days``.
    Returns (start, end, None) or (None, None, error_tuple).
    """
    today = datetime.now(timezone.utc).date()
    raw_start = request.args.get("start")
    raw_end = request.args.get("end")
    start = parse_date(raw_start) if raw_start else today
    end = parse_date(raw_end) if raw_end else None
    if start is None or (raw_end and end is None):
        return None, None, api_error(E.VALIDATION_INVALID, "start/end must be dates (YYYY-MM-DD)")
    # weekly buckets step past ``end`` by up to a week
    last_day = date.max - timedelta(days=max(default_days, 7))
    if start > last_day or (end is not None and end > last_day):
        return None, None, api_error(E.VALIDATION_INVALID, f"dates must not be after {last_day.isoformat()}")
    if end is None:
        end = start + timedelta(days=default_days)
    if end < start:
        return None, None, api_error(E.VALIDATION_INVALID, "end must not be before start")
    if (end - start).days > max_days:
        return None, None, api_error(E.VALIDATION_INVALID, f"date range may span at most {max_days} days")
    return start, end, None


def require_json():
    """Return (body, None) for a JSON object body, else (None, error_tuple)."""
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return None, api_error(E.VALIDATION_INVALID, "JSON object body is required")
    return data, None
