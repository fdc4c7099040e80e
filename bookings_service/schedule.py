import re
from datetime import date, time
from typing import Iterable, List, Optional, Tuple

from .errors import InvalidInputError
from .models import DayOfWeek, Schedule

_CLOCK_PATTERN = re.compile(r"^([01]?\d|2[0-3]):([0-5]\d)$")


def parse_clock(text: str) -> time:
    """
    Parse a 24-hour ``HH:MM`` string into a ``time``.

    Raises
    ------
    InvalidInputError
        If the text is not a valid ``HH:MM`` clock value.
    """
    match = _CLOCK_PATTERN.match((text or "").strip())
    if match is None:
        raise InvalidInputError(f"invalid time format: {text!r} (expected HH:MM)")
    return time(int(match.group(1)), int(match.group(2)))


def validate_entries(entries: Iterable) -> List[Tuple[int, time, time]]:
    """
    Validate raw schedule entries and return ``(day, open, close)`` tuples.

    Each entry must expose ``day_of_week``, ``open_time`` and ``close_time``
    (the latter two as ``HH:MM`` strings). Everything is checked before the
    caller touches the store.
    """
    parsed = []
    seen_days = set()
    for entry in entries:
        if entry.day_of_week < DayOfWeek.SUNDAY or entry.day_of_week > DayOfWeek.SATURDAY:
            raise InvalidInputError(f"invalid day of week: {entry.day_of_week}")
        if entry.day_of_week in seen_days:
            raise InvalidInputError(f"duplicate schedule for day of week: {entry.day_of_week}")
        open_time = parse_clock(entry.open_time)
        close_time = parse_clock(entry.close_time)
        if close_time <= open_time:
            raise InvalidInputError("close time must be after open time")
        seen_days.add(entry.day_of_week)
        parsed.append((entry.day_of_week, open_time, close_time))

    if not parsed:
        raise InvalidInputError("at least one schedule is required")
    return parsed


def schedule_for_date(schedules: Iterable[Schedule], day: date) -> Optional[Schedule]:
    weekday = DayOfWeek.of(day)
    for schedule in schedules:
        if schedule.day_of_week == weekday:
            return schedule
    return None
