import logging
import os
from datetime import date, datetime
from typing import Callable, Dict, List

from fastapi import Depends, FastAPI, HTTPException, Query, status, Request, APIRouter
from fastapi.responses import JSONResponse

from sqlalchemy.orm import Session

from common.cache import get_cached_json, invalidate_field_slots, set_cached_json, slots_cache_key

from . import schemas
from .auth import (
    ROLE_ADMIN,
    ROLE_CUSTOMER,
    ROLE_OWNER,
    ROLE_SERVICE_ACCOUNT,
    get_current_user_claims,
    require_roles,
)
from .database import Base, engine, get_db
from .errors import BookingError
from .fields import FieldService
from .lifecycle import BookingService
from .rate_limiter import booking_rate_limiter

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO"),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

# Create tables
Base.metadata.create_all(bind=engine)

app = FastAPI(title="Futsal Bookings Service", version="1.0.0")
router_v1 = APIRouter(prefix="/api/v1")

SERVICE_NAME = "bookings"


def _error_response(request: Request, status_code: int, error: str, detail) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "service": SERVICE_NAME,
            "path": request.url.path,
            "method": request.method,
            "status_code": status_code,
            "error": error,
            "detail": detail,
        },
    )


@app.exception_handler(BookingError)
async def booking_error_handler(request: Request, exc: BookingError):
    if exc.status_code >= 500:
        logger.error("%s on %s %s: %s", exc.kind, request.method, request.url.path, exc.detail)
    return _error_response(request, exc.status_code, exc.kind, exc.detail)


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    response = _error_response(request, exc.status_code, "HTTPError", exc.detail)
    if exc.headers:
        response.headers.update(exc.headers)
    return response


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return _error_response(request, 500, "InternalError", "Internal server error")


@app.get("/")
def root():
    """
    Health-check endpoint for the Bookings service.

    Returns
    -------
    dict
        A small JSON payload indicating that the service is running.
    """
    return {"service": "bookings", "status": "running"}


def get_clock() -> Callable[[], datetime]:
    """
    Clock used for "now" in business rules; overridden in tests.
    """
    return datetime.now


def get_booking_service(
    db: Session = Depends(get_db),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> BookingService:
    return BookingService.for_session(db, clock)


def get_field_service(
    db: Session = Depends(get_db),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> FieldService:
    return FieldService.for_session(db, clock)


any_user = require_roles(ROLE_ADMIN, ROLE_OWNER, ROLE_CUSTOMER, ROLE_SERVICE_ACCOUNT)
owner_only = require_roles(ROLE_OWNER)
owner_or_admin = require_roles(ROLE_OWNER, ROLE_ADMIN)
bookers = require_roles(ROLE_CUSTOMER, ROLE_OWNER, ROLE_ADMIN)
operators = require_roles(ROLE_ADMIN, ROLE_SERVICE_ACCOUNT)


def _is_privileged(claims: Dict) -> bool:
    return claims["role"] in (ROLE_ADMIN, ROLE_SERVICE_ACCOUNT)


# ---------- Fields ----------


@router_v1.post("/fields", response_model=schemas.FieldRead, status_code=status.HTTP_201_CREATED)
def create_field(
    field_in: schemas.FieldCreate,
    service: FieldService = Depends(get_field_service),
    claims: Dict = Depends(owner_only),
):
    """
    Register a new field owned by the authenticated user.

    Access
    ------
    - Allowed roles: owner.

    Parameters
    ----------
    field_in : FieldCreate
        Field details, including the hourly price.
    service : FieldService
        Field service bound to the request session.
    claims : Dict
        Decoded JWT claims of the owner.

    Returns
    -------
    FieldRead
        The created field.
    """
    return service.create_field(
        owner_id=claims["user_id"],
        name=field_in.name,
        address=field_in.address,
        description=field_in.description,
        image_url=field_in.image_url,
        price_per_hour=field_in.price_per_hour,
    )


@router_v1.get("/fields", response_model=List[schemas.FieldRead])
def list_fields(
    service: FieldService = Depends(get_field_service),
    _: Dict = Depends(any_user),
):
    """
    List every field, newest first.
    """
    return service.list_fields()


@router_v1.get("/fields/mine", response_model=List[schemas.FieldRead])
def list_my_fields(
    service: FieldService = Depends(get_field_service),
    claims: Dict = Depends(owner_only),
):
    """
    List the fields owned by the authenticated owner, newest first.
    """
    return service.list_owner_fields(claims["user_id"])


@router_v1.get("/fields/{field_id}", response_model=schemas.FieldRead)
def get_field(
    field_id: int,
    service: FieldService = Depends(get_field_service),
    _: Dict = Depends(any_user),
):
    """
    Retrieve a single field by its ID.

    Raises
    ------
    NotFoundError
        If the field does not exist.
    """
    return service.get_field(field_id)


@router_v1.put("/fields/{field_id}", response_model=schemas.FieldRead)
def update_field(
    field_id: int,
    field_in: schemas.FieldUpdate,
    service: FieldService = Depends(get_field_service),
    claims: Dict = Depends(owner_only),
):
    """
    Replace the details of a field.

    Access
    ------
    - Owner of the field only.

    Behavior
    --------
    - Existing bookings keep the price they were created with.
    """
    return service.update_field(
        field_id=field_id,
        owner_id=claims["user_id"],
        name=field_in.name,
        address=field_in.address,
        description=field_in.description,
        image_url=field_in.image_url,
        price_per_hour=field_in.price_per_hour,
    )


@router_v1.delete("/fields/{field_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_field(
    field_id: int,
    service: FieldService = Depends(get_field_service),
    claims: Dict = Depends(owner_only),
):
    """
    Delete a field and its schedule.

    Raises
    ------
    FieldInUseError
        If the field still has pending or confirmed bookings.
    """
    service.delete_field(field_id, claims["user_id"])
    invalidate_field_slots(field_id)
    return


# ---------- Schedules and availability ----------


@router_v1.put("/fields/{field_id}/schedules", response_model=List[schemas.ScheduleRead])
def setup_schedules(
    field_id: int,
    setup: schemas.ScheduleSetup,
    service: FieldService = Depends(get_field_service),
    claims: Dict = Depends(owner_only),
):
    """
    Replace the weekly opening hours of a field.

    Behavior
    --------
    - Every entry is validated first (day 0-6 with 0 = Sunday, ``HH:MM``
      times, close after open, one entry per day).
    - The old schedule is removed and the new one stored in one transaction.

    Returns
    -------
    List[ScheduleRead]
        The new schedule, one entry per open day.
    """
    schedules = service.setup_schedules(field_id, claims["user_id"], setup.schedules)
    invalidate_field_slots(field_id)
    return sorted(schedules, key=lambda s: s.day_of_week)


@router_v1.get("/fields/{field_id}/schedules", response_model=List[schemas.ScheduleRead])
def get_schedule(
    field_id: int,
    service: FieldService = Depends(get_field_service),
    _: Dict = Depends(any_user),
):
    """
    Return the weekly schedule of a field ordered by day of week.
    """
    return service.get_schedule(field_id)


@router_v1.get("/fields/{field_id}/slots", response_model=List[schemas.TimeSlotRead])
def find_available_slots(
    field_id: int,
    day: date = Query(..., alias="date"),
    service: FieldService = Depends(get_field_service),
    _: Dict = Depends(any_user),
):
    """
    List the 1-hour slots of a field for a date with their availability.

    Parameters
    ----------
    field_id : int
        Field to inspect.
    day : date
        Target date (``YYYY-MM-DD``), interpreted in the field's local time.

    Returns
    -------
    List[TimeSlotRead]
        Slots ordered by start time; empty if the field is closed that day.
    """
    cache_key = slots_cache_key(field_id, day)
    cached = get_cached_json(cache_key)
    if cached is not None:
        return cached

    slots = service.find_available_slots(field_id, day)
    data = [schemas.TimeSlotRead.model_validate(s).model_dump(mode="json") for s in slots]
    set_cached_json(cache_key, data)
    return data


@router_v1.get("/fields/{field_id}/availability", response_model=schemas.AvailabilityRead)
def check_availability(
    field_id: int,
    start_time: datetime,
    end_time: datetime,
    service: FieldService = Depends(get_field_service),
    _: Dict = Depends(any_user),
):
    """
    Check whether a field is free during ``[start_time, end_time)``.

    Returns
    -------
    AvailabilityRead
        The availability flag and the overlapping bookings, ordered by start.
    """
    start_time = schemas.to_local_naive(start_time)
    end_time = schemas.to_local_naive(end_time)
    available, conflicts = service.check_availability(field_id, start_time, end_time)
    return {
        "field_id": field_id,
        "start_time": start_time,
        "end_time": end_time,
        "available": available,
        "conflicts": conflicts,
    }


@router_v1.get("/fields/{field_id}/bookings", response_model=List[schemas.BookingRead])
def list_field_bookings(
    field_id: int,
    service: BookingService = Depends(get_booking_service),
    claims: Dict = Depends(owner_or_admin),
):
    """
    List the bookings of a field, latest start first.

    Access
    ------
    - Owner of the field, or admin.
    """
    owner_id = None if claims["role"] == ROLE_ADMIN else claims["user_id"]
    return service.list_field_bookings(field_id, owner_id)


# ---------- Bookings ----------


@router_v1.post(
    "/bookings",
    response_model=schemas.BookingRead,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(booking_rate_limiter)],
)
def create_booking(
    booking_in: schemas.BookingCreate,
    service: BookingService = Depends(get_booking_service),
    claims: Dict = Depends(bookers),
):
    """
    Create a new pending booking for the authenticated user.

    Behavior
    --------
    - The start must be in the future; the end is start + duration_hours.
    - Rejects windows overlapping a pending or confirmed booking.
    - Prices the booking at the field's hourly price times the duration and
      opens a pending payment for it.

    Returns
    -------
    BookingRead
        The newly created booking, including its payment_id.
    """
    booking = service.create_booking(
        user_id=claims["user_id"],
        field_id=booking_in.field_id,
        start_time=booking_in.start_time,
        duration_hours=booking_in.duration_hours,
    )
    invalidate_field_slots(booking.field_id)
    return booking


@router_v1.get("/bookings/me", response_model=List[schemas.BookingRead])
def list_my_bookings(
    service: BookingService = Depends(get_booking_service),
    claims: Dict = Depends(get_current_user_claims),
):
    """
    List bookings that belong to the authenticated user, newest first.
    """
    return service.list_user_bookings(claims["user_id"])


@router_v1.get("/bookings/{booking_id}", response_model=schemas.BookingRead)
def get_booking(
    booking_id: int,
    service: BookingService = Depends(get_booking_service),
    claims: Dict = Depends(any_user),
):
    """
    Retrieve a booking.

    Access
    ------
    - The user who made the booking, the owner of the field, admins and
      service accounts.
    """
    viewer_id = None if _is_privileged(claims) else claims["user_id"]
    return service.get_booking(booking_id, viewer_id)


@router_v1.post("/bookings/{booking_id}/confirm", response_model=schemas.BookingRead)
def confirm_booking(
    booking_id: int,
    service: BookingService = Depends(get_booking_service),
    _: Dict = Depends(operators),
):
    """
    Confirm a pending booking (normally driven by a payment success).

    Raises
    ------
    InvalidStateTransitionError
        If the booking is not pending, including when it is already confirmed.
    """
    booking = service.confirm_booking(booking_id)
    invalidate_field_slots(booking.field_id)
    return booking


@router_v1.post(
    "/bookings/{booking_id}/cancel",
    response_model=schemas.BookingRead,
    dependencies=[Depends(booking_rate_limiter)],
)
def cancel_booking(
    booking_id: int,
    service: BookingService = Depends(get_booking_service),
    claims: Dict = Depends(bookers),
):
    """
    Cancel one of the authenticated user's bookings.

    Behavior
    --------
    - Only pending or confirmed bookings can be cancelled.
    - The booking must start more than 2 hours from now.
    - The slot becomes bookable again immediately.
    """
    booking = service.cancel_booking(claims["user_id"], booking_id)
    invalidate_field_slots(booking.field_id)
    return booking


@router_v1.post("/bookings/{booking_id}/complete", response_model=schemas.BookingRead)
def complete_booking(
    booking_id: int,
    service: BookingService = Depends(get_booking_service),
    _: Dict = Depends(operators),
):
    """
    Mark a confirmed booking as completed once its end time has passed.
    """
    booking = service.complete_booking(booking_id)
    invalidate_field_slots(booking.field_id)
    return booking


@router_v1.get("/bookings/{booking_id}/payment", response_model=schemas.PaymentRead)
def get_booking_payment(
    booking_id: int,
    service: BookingService = Depends(get_booking_service),
    claims: Dict = Depends(any_user),
):
    """
    Return the payment attached to a booking.
    """
    viewer_id = None if _is_privileged(claims) else claims["user_id"]
    return service.get_payment(booking_id, viewer_id)


# ---------- Payment gateway ----------


@router_v1.post("/payments/notifications", response_model=schemas.PaymentRead)
def payment_notification(
    notification: schemas.PaymentNotification,
    service: BookingService = Depends(get_booking_service),
    _: Dict = Depends(operators),
):
    """
    Apply a payment gateway callback.

    Behavior
    --------
    - SUCCESS marks the payment successful and confirms a pending booking.
    - FAILED marks the payment failed and cancels a pending booking.
    - Redelivering the status a payment already has is a no-op.
    """
    payment = service.handle_payment_notification(notification.transaction_id, notification.status)
    booking = service.get_booking(payment.booking_id)
    invalidate_field_slots(booking.field_id)
    return payment


app.include_router(router_v1)
