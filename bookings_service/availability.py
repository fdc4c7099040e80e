from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import List

from . import models
from .errors import InvalidInputError
from .schedule import schedule_for_date
from .stores import BookingStore, FieldStore, ScheduleStore

SLOT_LENGTH = timedelta(hours=1)


@dataclass(frozen=True)
class TimeSlot:
    start_time: datetime
    end_time: datetime
    available: bool


class ConflictChecker:
    """
    Overlap checks of a candidate ``[start, end)`` window against the active
    (pending or confirmed) bookings of a field.

    ``is_available`` and ``find_conflicts`` share one overlap filter in the
    booking store, so a window is available exactly when it has no conflicts.
    """

    def __init__(self, bookings: BookingStore):
        self.bookings = bookings

    @staticmethod
    def _validate_window(start: datetime, end: datetime) -> None:
        if end <= start:
            raise InvalidInputError("end_time must be after start_time")

    def is_available(self, field_id: int, start: datetime, end: datetime) -> bool:
        self._validate_window(start, end)
        return self.bookings.is_available(field_id, start, end)

    def find_conflicts(self, field_id: int, start: datetime, end: datetime) -> List[models.Booking]:
        self._validate_window(start, end)
        return self.bookings.find_conflicts(field_id, start, end)


class SlotGenerator:
    def __init__(self, fields: FieldStore, schedules: ScheduleStore, checker: ConflictChecker):
        self.fields = fields
        self.schedules = schedules
        self.checker = checker

    def find_available_slots(self, field_id: int, day: date) -> List[TimeSlot]:
        """
        Build the 1-hour slots of ``day`` for a field, tagged with availability.

        Slots start at the opening time and are emitted while a slot's start
        is before the closing time, so the last slot may run past closing
        when the opening window is not a whole number of hours. A day without
        a schedule yields no slots.
        """
        self.fields.get(field_id)
        schedule = schedule_for_date(self.schedules.list_for_field(field_id), day)
        if schedule is None:
            return []

        current = datetime.combine(day, schedule.open_time)
        day_end = datetime.combine(day, schedule.close_time)

        slots = []
        while current < day_end:
            slot_end = current + SLOT_LENGTH
            slots.append(
                TimeSlot(
                    start_time=current,
                    end_time=slot_end,
                    available=self.checker.is_available(field_id, current, slot_end),
                )
            )
            current = slot_end
        return slots
