import logging
from datetime import date, datetime
from typing import Callable, Iterable, List, Optional, Tuple

from sqlalchemy.orm import Session

from . import models
from .availability import ConflictChecker, SlotGenerator, TimeSlot
from .errors import FieldInUseError, InvalidInputError, UnauthorizedError
from .schedule import validate_entries
from .stores import BookingStore, FieldStore, ScheduleStore, UnitOfWork

logger = logging.getLogger(__name__)


def _clean_required(value: Optional[str], label: str) -> str:
    if value is None or not value.strip():
        raise InvalidInputError(f"field {label} cannot be empty")
    return value.strip()


def _validate_details(owner_id: int, name: str, address: str, price_per_hour: int) -> Tuple[str, str]:
    if owner_id is None or owner_id <= 0:
        raise InvalidInputError("invalid owner ID")
    clean_name = _clean_required(name, "name")
    clean_address = _clean_required(address, "address")
    if price_per_hour is None or price_per_hour <= 0:
        raise InvalidInputError("price per hour must be positive")
    return clean_name, clean_address


class FieldService:
    def __init__(
        self,
        fields: FieldStore,
        schedules: ScheduleStore,
        bookings: BookingStore,
        uow: UnitOfWork,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.fields = fields
        self.schedules = schedules
        self.bookings = bookings
        self.uow = uow
        self.clock = clock
        self.checker = ConflictChecker(bookings)
        self.slots = SlotGenerator(fields, schedules, self.checker)

    @classmethod
    def for_session(cls, db: Session, clock: Callable[[], datetime] = datetime.now) -> "FieldService":
        return cls(FieldStore(db), ScheduleStore(db), BookingStore(db), UnitOfWork(db), clock)

    def _owned_field(self, field_id: int, owner_id: int, lock: bool = False) -> models.Field:
        if field_id is None or field_id <= 0:
            raise InvalidInputError("invalid field ID")
        field = self.fields.get_for_update(field_id) if lock else self.fields.get(field_id)
        if not field.is_owned_by(owner_id):
            raise UnauthorizedError("unauthorized: you are not the owner of this field")
        return field

    # ---------- fields ----------

    def create_field(
        self,
        owner_id: int,
        name: str,
        address: str,
        description: Optional[str],
        image_url: Optional[str],
        price_per_hour: int,
    ) -> models.Field:
        clean_name, clean_address = _validate_details(owner_id, name, address, price_per_hour)
        field = models.Field(
            owner_id=owner_id,
            name=clean_name,
            address=clean_address,
            description=description,
            image_url=image_url,
            price_per_hour=price_per_hour,
            created_at=self.clock(),
        )
        with self.uow:
            self.fields.insert(field)
        logger.info("Field %s created by owner %s", field.id, owner_id)
        return field

    def get_field(self, field_id: int) -> models.Field:
        if field_id is None or field_id <= 0:
            raise InvalidInputError("invalid field ID")
        return self.fields.get(field_id)

    def list_fields(self) -> List[models.Field]:
        return self.fields.list_all()

    def list_owner_fields(self, owner_id: int) -> List[models.Field]:
        if owner_id is None or owner_id <= 0:
            raise InvalidInputError("invalid owner ID")
        return self.fields.list_for_owner(owner_id)

    def update_field(
        self,
        field_id: int,
        owner_id: int,
        name: str,
        address: str,
        description: Optional[str],
        image_url: Optional[str],
        price_per_hour: int,
    ) -> models.Field:
        """
        Replace a field's details. The new price only affects bookings made
        afterwards; existing bookings keep the price they were created with.
        """
        clean_name, clean_address = _validate_details(owner_id, name, address, price_per_hour)
        with self.uow:
            field = self._owned_field(field_id, owner_id)
            field.name = clean_name
            field.address = clean_address
            field.description = description
            field.image_url = image_url
            field.price_per_hour = price_per_hour
            self.fields.update(field)
        logger.info("Field %s updated by owner %s", field_id, owner_id)
        return field

    def delete_field(self, field_id: int, owner_id: int) -> None:
        with self.uow:
            # create_booking takes the same row lock
            self._owned_field(field_id, owner_id, lock=True)
            if self.bookings.has_active_for_field(field_id):
                raise FieldInUseError("field still has pending or confirmed bookings")
            self.fields.delete(field_id)
        logger.info("Field %s deleted by owner %s", field_id, owner_id)

    # ---------- schedules ----------

    def setup_schedules(self, field_id: int, owner_id: int, entries: Iterable) -> List[models.Schedule]:
        """
        Replace the whole weekly schedule of a field.

        Every entry is validated (day 0-6, ``HH:MM`` times, close after
        open, one entry per day) before the old schedule is removed, and
        the removal and inserts commit together.
        """
        with self.uow:
            self._owned_field(field_id, owner_id)
            parsed = validate_entries(entries)
            schedules = self.schedules.replace_all(field_id, parsed)
        logger.info("Field %s schedule replaced with %d entries", field_id, len(schedules))
        return schedules

    def get_schedule(self, field_id: int) -> List[models.Schedule]:
        self.get_field(field_id)
        return self.schedules.list_for_field(field_id)

    # ---------- availability ----------

    def find_available_slots(self, field_id: int, day: date) -> List[TimeSlot]:
        if field_id is None or field_id <= 0:
            raise InvalidInputError("invalid field ID")
        return self.slots.find_available_slots(field_id, day)

    def check_availability(
        self, field_id: int, start_time: datetime, end_time: datetime
    ) -> Tuple[bool, List[models.Booking]]:
        self.get_field(field_id)
        conflicts = self.checker.find_conflicts(field_id, start_time, end_time)
        return not conflicts, conflicts
