from datetime import datetime, time
from typing import List, Optional

from pydantic import BaseModel, Field, ConfigDict, field_validator

from .models import BookingStatus, PaymentStatus


def to_local_naive(value: datetime) -> datetime:
    # bookings are stored as naive wall-clock times
    if value.tzinfo is not None:
        return value.astimezone().replace(tzinfo=None)
    return value


class FieldBase(BaseModel):
    """
    Base schema for field information.

    Shared fields used when creating, reading, and updating fields.
    """
    name: str = Field(..., max_length=100)
    address: str = Field(..., max_length=255)
    description: Optional[str] = Field(default=None)
    image_url: Optional[str] = Field(default=None, max_length=255)
    price_per_hour: int = Field(..., gt=0)


class FieldCreate(FieldBase):
    """
    Schema for registering a new field.

    Inherits all fields from FieldBase.
    """
    pass


class FieldUpdate(FieldBase):
    """
    Schema for replacing a field's details.

    The whole record is sent; omitted optional values are cleared.
    """
    pass


class FieldRead(FieldBase):
    """
    Schema returned when reading field data.

    Extends FieldBase with the identifier, owner and creation timestamp.
    """
    id: int
    owner_id: int
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ScheduleInput(BaseModel):
    """
    One weekly opening window as sent by the field owner.

    Times are ``HH:MM`` strings; range and ordering checks are done by the
    service so every entry is validated before anything is replaced.
    """
    day_of_week: int
    open_time: str
    close_time: str


class ScheduleSetup(BaseModel):
    schedules: List[ScheduleInput]


class ScheduleRead(BaseModel):
    id: int
    field_id: int
    day_of_week: int
    day_name: str
    open_time: time
    close_time: time

    model_config = ConfigDict(from_attributes=True)


class TimeSlotRead(BaseModel):
    start_time: datetime
    end_time: datetime
    available: bool

    model_config = ConfigDict(from_attributes=True)


class BookingCreate(BaseModel):
    """
    Schema for creating a new booking.

    The end of the booking is derived from ``start_time`` and
    ``duration_hours``.
    """
    field_id: int = Field(..., ge=1)
    start_time: datetime = Field(...)
    duration_hours: int = Field(..., ge=1)

    @field_validator("start_time")
    @classmethod
    def strip_timezone(cls, value: datetime) -> datetime:
        return to_local_naive(value)


class BookingRead(BaseModel):
    """
    Schema returned when reading booking information.
    """
    id: int
    user_id: int
    field_id: int
    start_time: datetime
    end_time: datetime
    total_price: int
    status: BookingStatus
    payment_id: Optional[int] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class AvailabilityRead(BaseModel):
    field_id: int
    start_time: datetime
    end_time: datetime
    available: bool
    conflicts: List[BookingRead]


class PaymentRead(BaseModel):
    id: int
    booking_id: int
    amount: int
    payment_gateway: str
    transaction_id: str
    status: PaymentStatus
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class PaymentNotification(BaseModel):
    """
    Callback payload sent by the payment gateway.
    """
    transaction_id: str = Field(..., min_length=1)
    status: str = Field(..., min_length=1)
