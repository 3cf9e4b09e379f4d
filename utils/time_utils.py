"""
UTC time helpers shared by the ledger services
"""

from datetime import date, datetime

import pytz
from dateutil import parser as date_parser

from utils.error_handler import ValidationError


def utc_now():
    return datetime.now(pytz.utc)


def as_utc(value):
    """Coerce a date/datetime (naive values are taken as UTC) to an aware UTC datetime"""
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return pytz.utc.localize(value)
        return value.astimezone(pytz.utc)
    if isinstance(value, date):
        return pytz.utc.localize(datetime(value.year, value.month, value.day))
    raise TypeError(f"Expected date or datetime, got {type(value).__name__}")


def parse_datetime(value):
    """Parse an ISO-8601 string (or pass through a date/datetime) into UTC"""
    if isinstance(value, (date, datetime)):
        return as_utc(value)
    try:
        return as_utc(date_parser.isoparse(str(value)))
    except (TypeError, ValueError, OverflowError):
        raise ValidationError(f"Invalid date: {value}", field='date')


def to_date_key(value):
    """UTC day key, e.g. '2024-01-03'"""
    return as_utc(value).strftime('%Y-%m-%d')
