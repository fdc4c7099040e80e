from datetime import date, datetime, time
from types import SimpleNamespace

import pytest

from bookings_service.availability import ConflictChecker, SlotGenerator, TimeSlot
from bookings_service.errors import InvalidInputError, NotFoundError
from bookings_service.fields import FieldService
from bookings_service.models import Booking, BookingStatus
from bookings_service.stores import BookingStore, FieldStore, ScheduleStore

MONDAY = date(2026, 3, 9)


def at(hour: int, minute: int = 0, day: date = MONDAY) -> datetime:
    return datetime.combine(day, time(hour, minute))


@pytest.fixture
def fields(db, clock):
    return FieldService.for_session(db, clock)


@pytest.fixture
def field(fields):
    return fields.create_field(
        owner_id=10,
        name="Arena Futsal",
        address="Jl. Merdeka 1",
        description=None,
        image_url=None,
        price_per_hour=100000,
    )


@pytest.fixture
def checker(db):
    return ConflictChecker(BookingStore(db))


@pytest.fixture
def add_booking(db):
    store = BookingStore(db)

    def _add(field_id, start, end, status=BookingStatus.CONFIRMED, user_id=1):
        booking = Booking(
            user_id=user_id,
            field_id=field_id,
            start_time=start,
            end_time=end,
            total_price=100000,
            status=status,
            created_at=datetime(2026, 3, 1, 12, 0),
        )
        store.insert(booking)
        db.commit()
        return booking

    return _add


def open_monday(fields, field, open_time, close_time):
    fields.setup_schedules(
        field.id,
        field.owner_id,
        [SimpleNamespace(day_of_week=1, open_time=open_time, close_time=close_time)],
    )


# ---------- conflict checker ----------


def test_empty_field_is_available(checker, field):
    assert checker.is_available(field.id, at(9), at(10))
    assert checker.find_conflicts(field.id, at(9), at(10)) == []


def test_abutting_windows_do_not_conflict(checker, field, add_booking):
    add_booking(field.id, at(10), at(11))
    assert checker.is_available(field.id, at(11), at(12))
    assert checker.is_available(field.id, at(9), at(10))


@pytest.mark.parametrize(
    "start,end",
    [
        (at(9, 30), at(10, 30)),
        (at(8, 30), at(9, 30)),
        (at(9, 15), at(9, 45)),
        (at(8), at(11)),
        (at(9), at(10)),
    ],
)
def test_any_partial_overlap_conflicts(checker, field, add_booking, start, end):
    existing = add_booking(field.id, at(9), at(10))
    assert not checker.is_available(field.id, start, end)
    assert [b.id for b in checker.find_conflicts(field.id, start, end)] == [existing.id]


@pytest.mark.parametrize("status", [BookingStatus.CANCELLED, BookingStatus.COMPLETED])
def test_terminal_bookings_never_block(checker, field, add_booking, status):
    add_booking(field.id, at(9), at(10), status=status)
    assert checker.is_available(field.id, at(9), at(10))
    assert checker.find_conflicts(field.id, at(9), at(10)) == []


def test_pending_bookings_block(checker, field, add_booking):
    add_booking(field.id, at(9), at(10), status=BookingStatus.PENDING)
    assert not checker.is_available(field.id, at(9), at(10))


def test_other_fields_do_not_conflict(checker, fields, field, add_booking):
    other = fields.create_field(20, "Other", "Elsewhere", None, None, 50000)
    add_booking(other.id, at(9), at(10))
    assert checker.is_available(field.id, at(9), at(10))


def test_conflicts_are_ordered_by_start(checker, field, add_booking):
    late = add_booking(field.id, at(14), at(16))
    early = add_booking(field.id, at(9), at(10))
    middle = add_booking(field.id, at(11), at(12), status=BookingStatus.PENDING)
    add_booking(field.id, at(12), at(13), status=BookingStatus.CANCELLED)

    conflicts = checker.find_conflicts(field.id, at(8), at(15))
    assert [b.id for b in conflicts] == [early.id, middle.id, late.id]


def test_is_available_matches_find_conflicts(checker, field, add_booking):
    add_booking(field.id, at(9), at(10))
    add_booking(field.id, at(13), at(15), status=BookingStatus.PENDING)
    add_booking(field.id, at(16), at(17), status=BookingStatus.CANCELLED)

    for start_hour in range(6, 20):
        for length in (1, 2, 3):
            start, end = at(start_hour), at(start_hour + length)
            available = checker.is_available(field.id, start, end)
            assert available == (checker.find_conflicts(field.id, start, end) == [])


def test_inverted_window_is_rejected(checker, field):
    with pytest.raises(InvalidInputError):
        checker.is_available(field.id, at(10), at(9))
    with pytest.raises(InvalidInputError):
        checker.find_conflicts(field.id, at(10), at(10))


# ---------- slot generator ----------


def test_slots_cover_open_hours(fields, field):
    open_monday(fields, field, "08:00", "11:00")

    slots = fields.find_available_slots(field.id, MONDAY)

    assert slots == [
        TimeSlot(at(8), at(9), True),
        TimeSlot(at(9), at(10), True),
        TimeSlot(at(10), at(11), True),
    ]


def test_slots_reflect_existing_bookings(fields, field, add_booking):
    open_monday(fields, field, "08:00", "12:00")
    add_booking(field.id, at(9), at(10))
    add_booking(field.id, at(10, 30), at(11), status=BookingStatus.PENDING)
    add_booking(field.id, at(11), at(12), status=BookingStatus.CANCELLED)

    slots = fields.find_available_slots(field.id, MONDAY)

    assert [s.available for s in slots] == [True, False, False, True]


def test_last_slot_may_run_past_closing(fields, field):
    open_monday(fields, field, "08:00", "10:30")

    slots = fields.find_available_slots(field.id, MONDAY)

    assert [(s.start_time, s.end_time) for s in slots] == [
        (at(8), at(9)),
        (at(9), at(10)),
        (at(10), at(11)),
    ]


def test_closed_day_has_no_slots(fields, field):
    open_monday(fields, field, "08:00", "11:00")
    assert fields.find_available_slots(field.id, date(2026, 3, 10)) == []


def test_field_without_schedule_has_no_slots(fields, field):
    assert fields.find_available_slots(field.id, MONDAY) == []


def test_slots_for_unknown_field(db, checker):
    generator = SlotGenerator(FieldStore(db), ScheduleStore(db), checker)
    with pytest.raises(NotFoundError):
        generator.find_available_slots(999, MONDAY)


def test_slot_generation_is_repeatable(fields, field, add_booking):
    open_monday(fields, field, "18:00", "22:00")
    add_booking(field.id, at(19), at(20))

    assert fields.find_available_slots(field.id, MONDAY) == fields.find_available_slots(field.id, MONDAY)


def test_check_availability_returns_conflicts(fields, field, add_booking):
    existing = add_booking(field.id, at(9), at(10))

    available, conflicts = fields.check_availability(field.id, at(9, 30), at(10, 30))
    assert available is False
    assert [b.id for b in conflicts] == [existing.id]

    available, conflicts = fields.check_availability(field.id, at(10), at(11))
    assert available is True
    assert conflicts == []
