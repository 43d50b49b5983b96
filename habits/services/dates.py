import re
from datetime import date, datetime
from typing import Optional

from django.utils.dateparse import parse_date

from habits.exceptions import InvalidRangeError, ValidationError

_DAY_RE = re.compile(r"[0-9]{4}-[0-9]{2}-[0-9]{2}")


def parse_day(value, *, field: str = "date") -> date:
    """
    Coerce a calendar day from a ``YYYY-MM-DD`` string or a ``date``.

    Anything carrying a time of day is rejected: streaks compare whole days,
    so a timestamp would silently shift which day a completion lands on.
    """
    if value is None or value == "":
        raise ValidationError(f"{field} is required")

    if isinstance(value, datetime):
        raise ValidationError(f"{field} must be a calendar date without a time component")
    if isinstance(value, date):
        return value

    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a YYYY-MM-DD string")

    value = value.strip()
    # parse_date also takes compact, week and unpadded ISO forms
    if not _DAY_RE.fullmatch(value):
        raise ValidationError(f"{field} must be formatted as YYYY-MM-DD, got {value!r}")

    try:
        parsed = parse_date(value)
    except ValueError as exc:
        raise ValidationError(f"{field} is not a valid date: {value!r}") from exc
    if parsed is None:
        raise ValidationError(f"{field} must be formatted as YYYY-MM-DD, got {value!r}")
    return parsed


def parse_range(start, end) -> tuple[date, date]:
    start_date = parse_day(start, field="start_date")
    end_date = parse_day(end, field="end_date")
    if end_date < start_date:
        raise InvalidRangeError(f"end_date {end_date} is before start_date {start_date}")
    return start_date, end_date


def parse_optional_day(value, *, field: str = "date") -> Optional[date]:
    if value is None or value == "":
        return None
    return parse_day(value, field=field)


def months_between(start: date, end: date) -> int:
    """Whole calendar months from ``start`` to ``end`` (negative if end is earlier)."""
    months = (end.year - start.year) * 12 + (end.month - start.month)
    if months > 0 and end.day < start.day:
        months -= 1
    elif months < 0 and end.day > start.day:
        months += 1
    return months
