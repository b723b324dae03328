import asyncio
from datetime import date, datetime, time, timedelta
from itertools import count
from zoneinfo import ZoneInfo

import pytest

from clinic_booking.core.errors import CommitError, PersistenceError
from clinic_booking.models.db_models import (
    WEEKDAY_KEYS, Booking, BookingStatus, Clinic, ClinicProfile, DaySchedule, Service, Staff,
)

TZ = ZoneInfo("Asia/Tokyo")
CLINIC_ID = "c1"

# 2024-05-06 is a Monday, 2024-05-05 a Sunday, 2024-05-01 a Wednesday
MONDAY = date(2024, 5, 6)
SUNDAY = date(2024, 5, 5)


def at(day: date, hour: int, minute: int = 0) -> datetime:
    return datetime.combine(day, time(hour, minute), tzinfo=TZ)


def weekly(start: str, end: str, days=WEEKDAY_KEYS):
    return {d: DaySchedule(start=start, end=end) for d in days}


def make_booking(booking_id, start, minutes=60, staff_id="staff-a", status=BookingStatus.CONFIRMED,
                 service_id="svc-60", clinic_id=CLINIC_ID) -> Booking:
    return Booking(
        id=booking_id,
        clinic_id=clinic_id,
        staff_id=staff_id,
        service_id=service_id,
        start_time=start,
        end_time=start + timedelta(minutes=minutes),
        status=status,
    )


def make_profile(staff=None, services=None, business_hours=None) -> ClinicProfile:
    return ClinicProfile(
        clinic=Clinic(id=CLINIC_ID, name="Test Clinic", business_hours=business_hours or weekly("09:00", "19:00")),
        staff=staff if staff is not None else [
            # Generalist, every day 10-18
            Staff(id="staff-a", name="A", default_schedule=weekly("10:00", "18:00")),
            # Weekdays 12-20, no massage
            Staff(id="staff-b", name="B", skill_ids=["svc-60", "svc-buffer"],
                  default_schedule=weekly("12:00", "20:00", WEEKDAY_KEYS[:5])),
        ],
        services=services if services is not None else [
            Service(id="svc-60", name="Adjustment", duration=60),
            Service(id="svc-buffer", name="Adjustment + cleanup", duration=60, buffer_time=15),
            Service(id="svc-massage", name="Massage", duration=30),
        ],
    )


async def settle(rounds: int = 10):
    """Let the live-sync consumer task catch up."""
    for _ in range(rounds):
        await asyncio.sleep(0)


class FakeGateway:
    """In-memory stand-in for DBService."""

    def __init__(self, bookings=()):
        self.rows = {b.id: b for b in bookings}
        self._ids = count(100)
        self.fail_reads = False
        self.fail_writes = False
        self.list_calls = 0
        self.writes = []

    async def list_bookings(self, clinic_id, start, end):
        self.list_calls += 1
        if self.fail_reads:
            raise PersistenceError("database unreachable")
        return sorted(
            (b for b in self.rows.values() if b.clinic_id == clinic_id and start <= b.start_time < end),
            key=lambda b: b.start_time,
        )

    async def get_booking(self, booking_id):
        if self.fail_reads:
            raise PersistenceError("database unreachable")
        return self.rows.get(booking_id)

    async def create_booking(self, booking):
        if self.fail_writes:
            raise CommitError(RuntimeError("connection reset"))
        booking_id = f"b{next(self._ids)}"
        self.rows[booking_id] = booking.model_copy(update={"id": booking_id})
        self.writes.append(("create", booking_id))
        return booking_id

    async def update_booking_fields(self, booking_id, fields):
        if self.fail_writes:
            raise CommitError(RuntimeError("connection reset"))
        current = self.rows[booking_id]
        self.rows[booking_id] = Booking.model_validate({**current.model_dump(), **fields})
        self.writes.append(("update", booking_id))


@pytest.fixture
def profile():
    return make_profile()


@pytest.fixture
def gateway():
    return FakeGateway()
