"""
SQLAlchemy-backed stores used by the booking core.

Each store wraps one injected ``Session``; none of them commits. Commit and
rollback belong to :class:`UnitOfWork`, so a service groups several store
calls into one transaction.
"""
import logging
from contextlib import contextmanager
from datetime import datetime, time
from typing import Iterable, List, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Query, Session

from . import models
from .errors import NotFoundError, StoreFailureError

logger = logging.getLogger(__name__)


@contextmanager
def store_errors(action: str):
    """
    Translate database errors raised inside the block into StoreFailureError.
    """
    try:
        yield
    except SQLAlchemyError as exc:
        logger.exception("Store failure while %s", action)
        raise StoreFailureError(f"error {action}") from exc


class UnitOfWork:
    """
    Transaction boundary over a session.

    Usage::

        with UnitOfWork(db):
            field = fields.get_for_update(field_id)
            bookings.insert(booking)
        # committed here, or rolled back if the block raised
    """

    def __init__(self, db: Session):
        self.db = db

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if exc_type is not None:
            self.db.rollback()
            logger.debug("Rolled back transaction after %s", exc_type.__name__)
            if isinstance(exc_val, SQLAlchemyError):
                logger.error("Transaction failed", exc_info=exc_val)
                raise StoreFailureError("error in transaction") from exc_val
            return False

        try:
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.exception("Commit failed, transaction rolled back")
            raise StoreFailureError("error committing transaction") from exc
        return False


class FieldStore:
    def __init__(self, db: Session):
        self.db = db

    def get(self, field_id: int) -> models.Field:
        with store_errors("finding field"):
            field = self.db.query(models.Field).filter(models.Field.id == field_id).first()
        if field is None:
            raise NotFoundError("Field not found")
        return field

    def get_for_update(self, field_id: int) -> models.Field:
        """Load the field and hold a row lock on it until the transaction ends."""
        with store_errors("locking field"):
            field = (
                self.db.query(models.Field)
                .filter(models.Field.id == field_id)
                .with_for_update()
                .populate_existing()
                .first()
            )
        if field is None:
            raise NotFoundError("Field not found")
        return field

    def list_all(self) -> List[models.Field]:
        with store_errors("listing fields"):
            return self.db.query(models.Field).order_by(models.Field.created_at.desc(), models.Field.id.desc()).all()

    def list_for_owner(self, owner_id: int) -> List[models.Field]:
        with store_errors("listing fields by owner"):
            return (
                self.db.query(models.Field)
                .filter(models.Field.owner_id == owner_id)
                .order_by(models.Field.created_at.desc(), models.Field.id.desc())
                .all()
            )

    def insert(self, field: models.Field) -> int:
        with store_errors("creating field"):
            self.db.add(field)
            self.db.flush()
        return field.id

    def update(self, field: models.Field) -> None:
        with store_errors("updating field"):
            self.db.add(field)
            self.db.flush()

    def delete(self, field_id: int) -> None:
        field = self.get(field_id)
        with store_errors("deleting field"):
            self.db.query(models.Schedule).filter(models.Schedule.field_id == field_id).delete(
                synchronize_session=False
            )
            self.db.delete(field)
            self.db.flush()


class ScheduleStore:
    def __init__(self, db: Session):
        self.db = db

    def list_for_field(self, field_id: int) -> List[models.Schedule]:
        with store_errors("fetching schedules"):
            return (
                self.db.query(models.Schedule)
                .filter(models.Schedule.field_id == field_id)
                .order_by(models.Schedule.day_of_week.asc())
                .all()
            )

    def replace_all(self, field_id: int, entries: Iterable[Tuple[int, time, time]]) -> List[models.Schedule]:
        """
        Delete every schedule of the field, then insert ``entries``.

        Old rows are flushed away before the new ones go in so the
        (field, day) uniqueness constraint never sees both.
        """
        with store_errors("replacing schedules"):
            self.db.query(models.Schedule).filter(models.Schedule.field_id == field_id).delete(
                synchronize_session=False
            )
            self.db.flush()
            schedules = [
                models.Schedule(field_id=field_id, day_of_week=day, open_time=open_time, close_time=close_time)
                for day, open_time, close_time in entries
            ]
            self.db.add_all(schedules)
            self.db.flush()
        return schedules


class BookingStore:
    def __init__(self, db: Session):
        self.db = db

    def _overlapping(self, field_id: int, start: datetime, end: datetime) -> Query:
        # half-open windows: [s1, e1) and [s2, e2) overlap iff s1 < e2 and s2 < e1
        return (
            self.db.query(models.Booking)
            .filter(models.Booking.field_id == field_id)
            .filter(models.Booking.status.in_(models.ACTIVE_BOOKING_STATUSES))
            .filter(models.Booking.start_time < end)
            .filter(models.Booking.end_time > start)
        )

    def is_available(self, field_id: int, start: datetime, end: datetime) -> bool:
        with store_errors("checking availability"):
            return not self.db.query(self._overlapping(field_id, start, end).exists()).scalar()

    def find_conflicts(self, field_id: int, start: datetime, end: datetime) -> List[models.Booking]:
        with store_errors("finding conflicting bookings"):
            return (
                self._overlapping(field_id, start, end)
                .order_by(models.Booking.start_time.asc(), models.Booking.id.asc())
                .all()
            )

    def has_active_for_field(self, field_id: int) -> bool:
        with store_errors("checking field bookings"):
            q = (
                self.db.query(models.Booking)
                .filter(models.Booking.field_id == field_id)
                .filter(models.Booking.status.in_(models.ACTIVE_BOOKING_STATUSES))
            )
            return self.db.query(q.exists()).scalar()

    def insert(self, booking: models.Booking) -> int:
        with store_errors("creating booking"):
            self.db.add(booking)
            self.db.flush()
        return booking.id

    def get(self, booking_id: int) -> models.Booking:
        with store_errors("finding booking"):
            booking = self.db.query(models.Booking).filter(models.Booking.id == booking_id).first()
        if booking is None:
            raise NotFoundError("Booking not found")
        return booking

    def get_for_update(self, booking_id: int) -> models.Booking:
        """Reload the booking under a row lock, overwriting any stale state in the session."""
        with store_errors("locking booking"):
            booking = (
                self.db.query(models.Booking)
                .filter(models.Booking.id == booking_id)
                .with_for_update()
                .populate_existing()
                .first()
            )
        if booking is None:
            raise NotFoundError("Booking not found")
        return booking

    def list_for_user(self, user_id: int) -> List[models.Booking]:
        with store_errors("finding bookings by user"):
            return (
                self.db.query(models.Booking)
                .filter(models.Booking.user_id == user_id)
                .order_by(models.Booking.created_at.desc(), models.Booking.id.desc())
                .all()
            )

    def list_for_field(self, field_id: int) -> List[models.Booking]:
        with store_errors("finding bookings by field"):
            return (
                self.db.query(models.Booking)
                .filter(models.Booking.field_id == field_id)
                .order_by(models.Booking.start_time.desc())
                .all()
            )

    def update(self, booking: models.Booking) -> None:
        with store_errors("updating booking"):
            self.db.add(booking)
            self.db.flush()

    def delete(self, booking_id: int) -> None:
        booking = self.get(booking_id)
        with store_errors("deleting booking"):
            self.db.delete(booking)
            self.db.flush()


class PaymentStore:
    def __init__(self, db: Session):
        self.db = db

    def insert(self, payment: models.Payment) -> int:
        with store_errors("creating payment"):
            self.db.add(payment)
            self.db.flush()
        return payment.id

    def _first(self, criterion, action: str) -> models.Payment:
        with store_errors(action):
            payment = self.db.query(models.Payment).filter(criterion).first()
        if payment is None:
            raise NotFoundError("Payment not found")
        return payment

    def get(self, payment_id: int) -> models.Payment:
        return self._first(models.Payment.id == payment_id, "finding payment")

    def get_for_update(self, payment_id: int) -> models.Payment:
        with store_errors("locking payment"):
            payment = (
                self.db.query(models.Payment)
                .filter(models.Payment.id == payment_id)
                .with_for_update()
                .populate_existing()
                .first()
            )
        if payment is None:
            raise NotFoundError("Payment not found")
        return payment

    def get_for_booking(self, booking_id: int) -> models.Payment:
        return self._first(models.Payment.booking_id == booking_id, "finding payment by booking")

    def get_for_transaction(self, transaction_id: str) -> models.Payment:
        return self._first(models.Payment.transaction_id == transaction_id, "finding payment by transaction")

    def update(self, payment: models.Payment) -> None:
        with store_errors("updating payment"):
            self.db.add(payment)
            self.db.flush()

    def delete(self, payment_id: int) -> None:
        payment = self.get(payment_id)
        with store_errors("deleting payment"):
            self.db.delete(payment)
            self.db.flush()
