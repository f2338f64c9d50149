from datetime import date, datetime, time
from typing import Iterable, List, Optional
import re

from app.core.errors import BookingValidationError

TIME_PATTERN = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")
DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def parse_local_time(value) -> time:
    """Parse a zero-padded 24-hour ``HH:MM`` string into a minute-granular time."""
    if isinstance(value, time):
        return value.replace(second=0, microsecond=0)
    if not isinstance(value, str) or not TIME_PATTERN.match(value.strip()):
        raise BookingValidationError(f"Invalid time {value!r}, expected HH:MM")
    hours, minutes = value.strip().split(":")
    return time(int(hours), int(minutes))


def format_local_time(value: time) -> str:
    return f"{value.hour:02d}:{value.minute:02d}"


def parse_iso_date(value) -> date:
    """Parse a ``YYYY-MM-DD`` calendar date."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not DATE_PATTERN.match(value.strip()):
        raise BookingValidationError(f"Invalid date {value!r}, expected YYYY-MM-DD")
    try:
        return date.fromisoformat(value.strip())
    except ValueError:
        raise BookingValidationError(f"Invalid date {value!r}, expected YYYY-MM-DD")


def format_iso_date(value: date) -> str:
    return value.isoformat()


def minutes_of_day(value: time) -> int:
    return value.hour * 60 + value.minute


def time_from_minutes(total: int) -> time:
    return time(total // 60, total % 60)


def sunday_based_weekday(value: date) -> int:
    """Weekday number with 0=Sunday..6=Saturday."""
    return (value.weekday() + 1) % 7


def validate_shop_hours(
    open_time: time,
    close_time: time,
    interval_minutes: int,
    lunch_start: Optional[time] = None,
    lunch_end: Optional[time] = None,
    work_days: Iterable[int] = (),
) -> List[str]:
    """Validate a shop configuration, returning a list of problems."""
    errors = []

    if open_time >= close_time:
        errors.append("open_time must be before close_time")

    if interval_minutes is None or interval_minutes <= 0:
        errors.append("interval_minutes must be a positive integer")

    if (lunch_start is None) != (lunch_end is None):
        errors.append("lunch_start and lunch_end must be set together")
    elif lunch_start is not None:
        if not lunch_start < lunch_end:
            errors.append("lunch_start must be before lunch_end")
        if lunch_start < open_time or lunch_end > close_time:
            errors.append("lunch window must fall inside opening hours")

    invalid_days = [d for d in work_days if not isinstance(d, int) or not 0 <= d <= 6]
    if invalid_days:
        errors.append(f"work_days must be between 0 (Sunday) and 6 (Saturday): {invalid_days}")

    return errors
