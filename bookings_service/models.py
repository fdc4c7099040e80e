import calendar
import math
from datetime import date, datetime, timedelta
from enum import Enum as PyEnum, IntEnum

from sqlalchemy import (
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    String,
    Text,
    Time,
    UniqueConstraint,
)

from .database import Base

CANCELLATION_CUTOFF = timedelta(hours=2)


class DayOfWeek(IntEnum):
    """
    Day-of-week numbering used by field schedules (Sunday is 0).
    """
    SUNDAY = 0
    MONDAY = 1
    TUESDAY = 2
    WEDNESDAY = 3
    THURSDAY = 4
    FRIDAY = 5
    SATURDAY = 6

    @classmethod
    def of(cls, moment: date) -> "DayOfWeek":
        # isoweekday(): Monday=1 .. Sunday=7
        return cls(moment.isoweekday() % 7)


class BookingStatus(str, PyEnum):
    """
    Enumeration of possible booking statuses.

    Values
    ------
    pending
        Booking has been created and is waiting for its payment.
    confirmed
        Payment succeeded; the booking holds the field for its window.
    cancelled
        Booking has been cancelled and no longer blocks the field.
    completed
        Booking window has passed while confirmed.
    """
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    CANCELLED = "CANCELLED"
    COMPLETED = "COMPLETED"


ACTIVE_BOOKING_STATUSES = (BookingStatus.PENDING, BookingStatus.CONFIRMED)

ALLOWED_TRANSITIONS = {
    BookingStatus.PENDING: frozenset({BookingStatus.CONFIRMED, BookingStatus.CANCELLED}),
    BookingStatus.CONFIRMED: frozenset({BookingStatus.COMPLETED, BookingStatus.CANCELLED}),
    BookingStatus.CANCELLED: frozenset(),
    BookingStatus.COMPLETED: frozenset(),
}


class PaymentStatus(str, PyEnum):
    PENDING = "PENDING"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"


class Field(Base):
    """
    SQLAlchemy model representing a bookable futsal field.

    Attributes
    ----------
    id : int
        Primary key.
    owner_id : int
        Identifier of the user who owns and manages the field.
    name : str
        Display name of the field.
    address : str
        Physical address of the field.
    description : str
        Optional free-text description.
    image_url : str
        Optional picture of the field.
    price_per_hour : int
        Hourly rental price in the smallest currency unit (always > 0).
    created_at : datetime
        Timestamp when the field was registered.
    """
    __tablename__ = "fields"

    id = Column(Integer, primary_key=True, index=True)
    owner_id = Column(Integer, index=True, nullable=False)
    name = Column(String(100), nullable=False)
    address = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    image_url = Column(String(255), nullable=True)
    price_per_hour = Column(Integer, nullable=False)
    created_at = Column(DateTime, default=datetime.now)

    def calculate_price(self, hours: int) -> int:
        return self.price_per_hour * hours

    def is_owned_by(self, user_id: int) -> bool:
        return self.owner_id == user_id


class Schedule(Base):
    """
    SQLAlchemy model representing one weekly opening window of a field.

    A field has at most one entry per day of week; windows never wrap
    past midnight (close_time is strictly after open_time).

    Attributes
    ----------
    id : int
        Primary key.
    field_id : int
        Field the window belongs to.
    day_of_week : int
        0 (Sunday) .. 6 (Saturday).
    open_time : time
        Wall-clock opening time.
    close_time : time
        Wall-clock closing time.
    """
    __tablename__ = "schedules"
    __table_args__ = (
        UniqueConstraint("field_id", "day_of_week", name="uq_schedule_field_day"),
    )

    id = Column(Integer, primary_key=True, index=True)
    field_id = Column(Integer, ForeignKey("fields.id", ondelete="CASCADE"), index=True, nullable=False)
    day_of_week = Column(Integer, nullable=False)
    open_time = Column(Time, nullable=False)
    close_time = Column(Time, nullable=False)

    @property
    def day_name(self) -> str:
        # calendar.day_name starts on Monday
        return calendar.day_name[(self.day_of_week - 1) % 7]

    def is_open_at(self, instant: datetime) -> bool:
        """
        Return True when ``instant`` falls inside this opening window.

        Both bounds are inclusive and the comparison uses the instant's own
        wall-clock fields to the second; no timezone conversion is applied.
        """
        if DayOfWeek.of(instant) != self.day_of_week:
            return False
        moment = instant.time().replace(microsecond=0)
        return self.open_time <= moment <= self.close_time


class Booking(Base):
    """
    SQLAlchemy model representing a field booking.

    Attributes
    ----------
    id : int
        Primary key.
    user_id : int
        Identifier of the user who owns the booking.
    field_id : int
        Identifier of the booked field.
    start_time : datetime
        Start of the reserved half-open interval.
    end_time : datetime
        End of the reserved half-open interval (excluded).
    total_price : int
        Price charged for the whole window, fixed at creation.
    status : BookingStatus
        Current lifecycle status.
    payment_id : int
        Identifier of the companion payment, looked up through the payment
        store; the booking does not own it.
    created_at : datetime
        Timestamp when the booking was created.
    """
    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, index=True, nullable=False)
    field_id = Column(Integer, index=True, nullable=False)
    start_time = Column(DateTime, index=True, nullable=False)
    end_time = Column(DateTime, nullable=False)
    total_price = Column(Integer, nullable=False)
    status = Column(Enum(BookingStatus), index=True, nullable=False, default=BookingStatus.PENDING)
    payment_id = Column(Integer, nullable=True)
    created_at = Column(DateTime, default=datetime.now)

    @property
    def duration_hours(self) -> int:
        seconds = (self.end_time - self.start_time).total_seconds()
        return math.ceil(seconds / 3600)

    def can_transition_to(self, target: BookingStatus) -> bool:
        return target in ALLOWED_TRANSITIONS[self.status]

    def can_be_cancelled(self, now: datetime) -> bool:
        if self.status not in ACTIVE_BOOKING_STATUSES:
            return False
        return self.start_time - now > CANCELLATION_CUTOFF

    def has_ended(self, now: datetime) -> bool:
        return now >= self.end_time

    def is_active(self, now: datetime) -> bool:
        return self.status == BookingStatus.CONFIRMED and self.start_time < now < self.end_time


class Payment(Base):
    """
    SQLAlchemy model representing the payment attached to a booking.

    Attributes
    ----------
    id : int
        Primary key.
    booking_id : int
        Booking this payment settles.
    amount : int
        Amount due, mirrors the booking total price at creation.
    payment_gateway : str
        Name of the gateway handling the payment.
    transaction_id : str
        Human-readable diagnostic token, unique per payment.
    status : PaymentStatus
        PENDING until the gateway reports SUCCESS or FAILED.
    created_at : datetime
        Creation timestamp.
    updated_at : datetime
        Timestamp of the last status change.
    """
    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, index=True)
    booking_id = Column(Integer, ForeignKey("bookings.id"), unique=True, index=True, nullable=False)
    amount = Column(Integer, nullable=False)
    payment_gateway = Column(String(50), nullable=False)
    transaction_id = Column(String(100), unique=True, index=True, nullable=False)
    status = Column(Enum(PaymentStatus), nullable=False, default=PaymentStatus.PENDING)
    created_at = Column(DateTime, default=datetime.now)
    updated_at = Column(DateTime, default=datetime.now)

    def mark_success(self, now: datetime) -> None:
        self.status = PaymentStatus.SUCCESS
        self.updated_at = now

    def mark_failed(self, now: datetime) -> None:
        self.status = PaymentStatus.FAILED
        self.updated_at = now
