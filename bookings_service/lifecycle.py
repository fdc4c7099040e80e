"""
Booking lifecycle: creation, confirmation, cancellation and completion.

Allowed transitions live in ``models.ALLOWED_TRANSITIONS``::

    PENDING   -> CONFIRMED | CANCELLED
    CONFIRMED -> COMPLETED | CANCELLED

CANCELLED and COMPLETED are terminal. No transition touches a booking's
window, field or price.
"""
import logging
import os
from datetime import datetime, timedelta
from typing import Callable, List, Optional

from sqlalchemy.orm import Session

from . import models
from .availability import ConflictChecker
from .errors import (
    CancellationWindowClosedError,
    InvalidInputError,
    InvalidStateTransitionError,
    NotFoundError,
    SlotUnavailableError,
    UnauthorizedError,
)
from .stores import BookingStore, FieldStore, PaymentStore, UnitOfWork

logger = logging.getLogger(__name__)

PAYMENT_GATEWAY = os.getenv("PAYMENT_GATEWAY", "Midtrans")

Clock = Callable[[], datetime]


def _require_positive(value: int, label: str) -> None:
    if value is None or value <= 0:
        raise InvalidInputError(f"invalid {label}")


class BookingService:
    def __init__(
        self,
        fields: FieldStore,
        bookings: BookingStore,
        payments: PaymentStore,
        uow: UnitOfWork,
        clock: Clock = datetime.now,
    ):
        self.fields = fields
        self.bookings = bookings
        self.payments = payments
        self.uow = uow
        self.clock = clock
        self.checker = ConflictChecker(bookings)

    @classmethod
    def for_session(cls, db: Session, clock: Clock = datetime.now) -> "BookingService":
        return cls(FieldStore(db), BookingStore(db), PaymentStore(db), UnitOfWork(db), clock)

    @staticmethod
    def _transition(booking: models.Booking, target: models.BookingStatus) -> None:
        if not booking.can_transition_to(target):
            raise InvalidStateTransitionError(
                f"cannot move booking {booking.id} from {booking.status.value} to {target.value}"
            )
        booking.status = target

    def _lock_booking(self, booking_id: int) -> models.Booking:
        """
        Lock the booking's field, then reload the booking under its own lock.

        Every writer of a field's bookings takes the field lock first, the
        same one ``create_booking`` holds, so a transition never acts on a
        status another transaction has already changed.
        """
        booking = self.bookings.get(booking_id)
        self.fields.get_for_update(booking.field_id)
        return self.bookings.get_for_update(booking_id)

    # ---------- create ----------

    def create_booking(
        self,
        user_id: int,
        field_id: int,
        start_time: datetime,
        duration_hours: int,
    ) -> models.Booking:
        """
        Reserve ``duration_hours`` hours of a field starting at ``start_time``.

        The field row is locked before the availability check and stays
        locked until the booking and its payment are committed, so two
        concurrent requests for the same field cannot both pass the check.
        Booking and payment are written in one transaction; a failure on
        either leaves nothing behind.

        Raises
        ------
        InvalidInputError
            Non-positive ids or duration, or a start that is not in the future.
        NotFoundError
            The field does not exist.
        SlotUnavailableError
            The window overlaps a pending or confirmed booking.
        """
        _require_positive(user_id, "user ID")
        _require_positive(field_id, "field ID")
        if duration_hours is None or duration_hours <= 0:
            raise InvalidInputError("duration must be at least 1 hour")

        now = self.clock()
        if start_time <= now:
            raise InvalidInputError("cannot book in the past")

        end_time = start_time + timedelta(hours=duration_hours)

        with self.uow:
            field = self.fields.get_for_update(field_id)

            if not self.checker.is_available(field_id, start_time, end_time):
                logger.warning(
                    "Rejected booking for field %s: %s-%s overlaps an active booking",
                    field_id,
                    start_time.isoformat(),
                    end_time.isoformat(),
                )
                raise SlotUnavailableError("time slot is not available")

            booking = models.Booking(
                user_id=user_id,
                field_id=field_id,
                start_time=start_time,
                end_time=end_time,
                total_price=field.calculate_price(duration_hours),
                status=models.BookingStatus.PENDING,
                created_at=now,
            )
            self.bookings.insert(booking)

            payment = models.Payment(
                booking_id=booking.id,
                amount=booking.total_price,
                payment_gateway=PAYMENT_GATEWAY,
                transaction_id=f"TRX-{booking.id}-{int(now.timestamp())}",
                status=models.PaymentStatus.PENDING,
                created_at=now,
                updated_at=now,
            )
            self.payments.insert(payment)

            booking.payment_id = payment.id
            self.bookings.update(booking)

        logger.info(
            "Booking %s created for field %s by user %s (payment %s)",
            booking.id,
            field_id,
            user_id,
            payment.transaction_id,
        )
        return booking

    # ---------- read ----------

    def get_booking(self, booking_id: int, viewer_id: Optional[int] = None) -> models.Booking:
        """
        Fetch a booking; when ``viewer_id`` is given it must be the booker or
        the owner of the booked field.
        """
        _require_positive(booking_id, "booking ID")
        booking = self.bookings.get(booking_id)
        if viewer_id is not None and booking.user_id != viewer_id:
            field = self.fields.get(booking.field_id)
            if not field.is_owned_by(viewer_id):
                raise UnauthorizedError("Not allowed to view this booking")
        return booking

    def list_user_bookings(self, user_id: int) -> List[models.Booking]:
        _require_positive(user_id, "user ID")
        return self.bookings.list_for_user(user_id)

    def list_field_bookings(self, field_id: int, owner_id: Optional[int] = None) -> List[models.Booking]:
        _require_positive(field_id, "field ID")
        field = self.fields.get(field_id)
        if owner_id is not None and not field.is_owned_by(owner_id):
            raise UnauthorizedError("unauthorized: you are not the owner of this field")
        return self.bookings.list_for_field(field_id)

    def get_payment(self, booking_id: int, viewer_id: Optional[int] = None) -> models.Payment:
        booking = self.get_booking(booking_id, viewer_id)
        if booking.payment_id is None:
            raise NotFoundError("Payment not found")
        return self.payments.get(booking.payment_id)

    # ---------- transitions ----------

    def confirm_booking(self, booking_id: int) -> models.Booking:
        _require_positive(booking_id, "booking ID")
        with self.uow:
            booking = self._lock_booking(booking_id)
            self._transition(booking, models.BookingStatus.CONFIRMED)
            self.bookings.update(booking)
        logger.info("Booking %s confirmed", booking_id)
        return booking

    def cancel_booking(self, user_id: int, booking_id: int) -> models.Booking:
        """
        Cancel a booking on behalf of its owner.

        Only pending or confirmed bookings can be cancelled, and only while
        the start is more than two hours away. A payment that is still
        pending is voided (marked failed).
        """
        _require_positive(user_id, "user ID")
        _require_positive(booking_id, "booking ID")

        now = self.clock()
        with self.uow:
            booking = self._lock_booking(booking_id)
            if booking.user_id != user_id:
                raise UnauthorizedError("Not allowed to cancel this booking")
            if not booking.can_transition_to(models.BookingStatus.CANCELLED):
                raise InvalidStateTransitionError(
                    f"cannot cancel booking {booking.id} in status {booking.status.value}"
                )
            if not booking.can_be_cancelled(now):
                raise CancellationWindowClosedError(
                    "bookings can only be cancelled more than 2 hours before they start"
                )

            booking.status = models.BookingStatus.CANCELLED
            self.bookings.update(booking)
            self._void_payment(booking, now)

        logger.info("Booking %s cancelled by user %s", booking_id, user_id)
        return booking

    def _void_payment(self, booking: models.Booking, now: datetime) -> None:
        if booking.payment_id is None:
            return
        payment = self.payments.get_for_update(booking.payment_id)
        if payment.status == models.PaymentStatus.PENDING:
            payment.mark_failed(now)
            self.payments.update(payment)

    def complete_booking(self, booking_id: int) -> models.Booking:
        _require_positive(booking_id, "booking ID")
        now = self.clock()
        with self.uow:
            booking = self._lock_booking(booking_id)
            if not booking.can_transition_to(models.BookingStatus.COMPLETED):
                raise InvalidStateTransitionError(
                    f"cannot complete booking {booking.id} in status {booking.status.value}"
                )
            if not booking.has_ended(now):
                raise InvalidStateTransitionError(f"booking {booking.id} has not ended yet")
            booking.status = models.BookingStatus.COMPLETED
            self.bookings.update(booking)
        logger.info("Booking %s completed", booking_id)
        return booking

    # ---------- payment gateway ----------

    def handle_payment_notification(self, transaction_id: str, status: str) -> models.Payment:
        """
        Apply a gateway notification to a payment and its booking.

        SUCCESS confirms a pending booking; FAILED cancels it. Redelivery of
        the status the payment already has is accepted and changes nothing.
        """
        if not transaction_id or not transaction_id.strip():
            raise InvalidInputError("transaction ID is required")
        try:
            target = models.PaymentStatus(str(status).upper())
        except ValueError:
            raise InvalidInputError(f"invalid payment status: {status}") from None
        if target == models.PaymentStatus.PENDING:
            raise InvalidInputError("payment notifications must report SUCCESS or FAILED")

        now = self.clock()
        with self.uow:
            payment = self.payments.get_for_transaction(transaction_id.strip())
            booking = self._lock_booking(payment.booking_id)
            payment = self.payments.get_for_update(payment.id)
            if payment.status == target:
                logger.info("Duplicate %s notification for %s ignored", target.value, payment.transaction_id)
                return payment
            if payment.status != models.PaymentStatus.PENDING:
                raise InvalidStateTransitionError(
                    f"payment {payment.transaction_id} is already {payment.status.value}"
                )
            if target == models.PaymentStatus.SUCCESS:
                payment.mark_success(now)
                if booking.status == models.BookingStatus.PENDING:
                    self._transition(booking, models.BookingStatus.CONFIRMED)
            else:
                payment.mark_failed(now)
                if booking.status == models.BookingStatus.PENDING:
                    self._transition(booking, models.BookingStatus.CANCELLED)
            self.payments.update(payment)
            self.bookings.update(booking)

        logger.info(
            "Payment %s marked %s; booking %s is now %s",
            payment.transaction_id,
            target.value,
            booking.id,
            booking.status.value,
        )
        return payment
