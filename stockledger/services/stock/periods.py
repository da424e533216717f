"""
Calendar helpers

Timestamps are stored as naive UTC. A calendar date means a whole day in the
configured reference timezone, and "end of day D" is the first instant of
D + 1 in that timezone. Every window in the ledger is half-open against that
boundary, so the materializer and the resolver agree on which day a
transaction belongs to.
"""
import re
from datetime import date, datetime, time, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo

from stockledger.core.config import settings
from stockledger.core.exceptions import ValidationError

_ISO_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def reference_zone() -> ZoneInfo:
    return ZoneInfo(settings.REFERENCE_TIMEZONE)


def utcnow() -> datetime:
    """Current time as naive UTC"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_utc_naive(value: datetime) -> datetime:
    """Normalise a datetime for storage; naive values are taken to be UTC already"""
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def day_end(day: date) -> datetime:
    """First instant after ``day`` in the reference timezone, as naive UTC"""
    start_of_next = datetime.combine(day + timedelta(days=1), time.min, tzinfo=reference_zone())
    return start_of_next.astimezone(timezone.utc).replace(tzinfo=None)


def day_start(day: date) -> datetime:
    return day_end(day - timedelta(days=1))


def business_date_of(timestamp: datetime) -> date:
    """Calendar date a stored (naive UTC) timestamp falls on"""
    return timestamp.replace(tzinfo=timezone.utc).astimezone(reference_zone()).date()


def current_business_date(now: Optional[datetime] = None) -> date:
    return business_date_of(now or utcnow())


def parse_iso_date(value, field_name: str = "date") -> date:
    """
    Parse a strict YYYY-MM-DD calendar date

    Accepts ``date`` instances unchanged. Datetimes and anything else that is
    not exactly YYYY-MM-DD are rejected, as are impossible dates such as
    2024-02-30.
    """
    if isinstance(value, datetime):
        raise ValidationError(f"{field_name} must be a calendar date, not a timestamp")
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not _ISO_DATE.match(value):
        raise ValidationError(f"Invalid {field_name} format. Use YYYY-MM-DD")
    try:
        return date.fromisoformat(value)
    except ValueError as e:
        raise ValidationError(f"Invalid {field_name}: {value}") from e
