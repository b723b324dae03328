from datetime import date

import pytest

from clinic_booking.core.errors import BookingValidationError, ReasonCode
from clinic_booking.models.db_models import BookingStatus, Shift, SlotStatus, Staff
from clinic_booking.scheduling.availability import check_placement, get_availability, staff_day_grid
from tests.conftest import MONDAY, SUNDAY, TZ, at, make_booking, make_profile, weekly


def statuses(slots):
    return {s.slot_start.hour * 100 + s.slot_start.minute: s.status for s in slots}


def test_staff_request_hourly_open_slots(profile):
    slots = get_availability(profile, [], MONDAY, "svc-60", staff_id="staff-a", granularity_minutes=60, tz=TZ)
    assert [s.slot_start for s in slots] == [at(MONDAY, h) for h in range(10, 18)]
    assert all(s.status == SlotStatus.OPEN for s in slots)
    assert all(s.remaining is None for s in slots)


def test_staff_request_marks_booked_slots_full(profile):
    bookings = [make_booking("b1", at(MONDAY, 10))]
    result = statuses(get_availability(profile, bookings, MONDAY, "svc-60", "staff-a", 60, TZ))
    assert result[1000] == SlotStatus.FULL
    assert result[1100] == SlotStatus.OPEN


def test_free_request_reports_remaining_capacity(profile):
    bookings = [make_booking("b1", at(MONDAY, 14), staff_id=None)]
    slots = {s.slot_start: s for s in get_availability(profile, bookings, MONDAY, "svc-60", granularity_minutes=60, tz=TZ)}

    # staff-b starts at 12:00, staff-a leaves at 18:00
    assert (slots[at(MONDAY, 10)].status, slots[at(MONDAY, 10)].remaining) == (SlotStatus.LOW, 1)
    assert (slots[at(MONDAY, 12)].status, slots[at(MONDAY, 12)].remaining) == (SlotStatus.OPEN, 2)
    assert (slots[at(MONDAY, 14)].status, slots[at(MONDAY, 14)].remaining) == (SlotStatus.LOW, 1)
    assert slots[at(MONDAY, 19)].remaining == 1
    assert max(slots) == at(MONDAY, 19)


def test_free_request_respects_skills(profile):
    slots = get_availability(profile, [], MONDAY, "svc-massage", granularity_minutes=60, tz=TZ)
    # Only staff-a offers massage
    assert {s.remaining for s in slots} == {1}
    assert max(s.slot_start for s in slots) == at(MONDAY, 17)


def test_cancel_then_requery_is_available_again(profile):
    booking = make_booking("b1", at(MONDAY, 10))
    assert statuses(get_availability(profile, [booking], MONDAY, "svc-60", "staff-a", 60, TZ))[1000] == SlotStatus.FULL

    cancelled = booking.model_copy(update={"status": BookingStatus.CANCELLED})
    assert statuses(get_availability(profile, [cancelled], MONDAY, "svc-60", "staff-a", 60, TZ))[1000] == SlotStatus.OPEN


def test_bookings_of_other_clinics_are_ignored(profile):
    foreign = make_booking("x1", at(MONDAY, 10), clinic_id="other")
    assert statuses(get_availability(profile, [foreign], MONDAY, "svc-60", "staff-a", 60, TZ))[1000] == SlotStatus.OPEN


def test_unknown_service_and_staff(profile):
    with pytest.raises(BookingValidationError) as e:
        get_availability(profile, [], MONDAY, "nope", tz=TZ)
    assert e.value.reason == ReasonCode.UNKNOWN_SERVICE

    with pytest.raises(BookingValidationError) as e:
        get_availability(profile, [], MONDAY, "svc-60", staff_id="nobody", tz=TZ)
    assert e.value.reason == ReasonCode.UNKNOWN_STAFF


def test_rosterless_clinic_uses_business_hours():
    profile = make_profile(staff=[], business_hours=weekly("09:00", "12:00"))
    slots = get_availability(profile, [], MONDAY, "svc-60", granularity_minutes=60, tz=TZ)
    assert [s.slot_start.hour for s in slots] == [9, 10, 11]
    assert check_placement(profile, [], at(MONDAY, 9), "svc-60", tz=TZ) == at(MONDAY, 10)


class TestCheckPlacement:

    def test_returns_end_including_buffer(self, profile):
        assert check_placement(profile, [], at(MONDAY, 10), "svc-buffer", "staff-a", TZ) == at(MONDAY, 11, 15)

    def test_overlap_with_same_staff(self, profile):
        bookings = [make_booking("b1", at(MONDAY, 10))]
        with pytest.raises(BookingValidationError) as e:
            check_placement(profile, bookings, at(MONDAY, 10, 30), "svc-60", "staff-a", TZ)
        assert e.value.reason == ReasonCode.OVERLAP

    def test_buffer_of_new_booking_can_overlap(self, profile):
        bookings = [make_booking("b1", at(MONDAY, 11))]
        with pytest.raises(BookingValidationError) as e:
            check_placement(profile, bookings, at(MONDAY, 10), "svc-buffer", "staff-a", TZ)
        assert e.value.reason == ReasonCode.OVERLAP

    def test_outside_working_hours(self, profile):
        with pytest.raises(BookingValidationError) as e:
            check_placement(profile, [], at(MONDAY, 17, 30), "svc-60", "staff-a", TZ)
        assert e.value.reason == ReasonCode.OUTSIDE_HOURS

    def test_staff_day_off(self, profile):
        with pytest.raises(BookingValidationError) as e:
            check_placement(profile, [], at(SUNDAY, 13), "svc-60", "staff-b", TZ)
        assert e.value.reason == ReasonCode.STAFF_HOLIDAY

    def test_free_request_slot_full(self, profile):
        bookings = [
            make_booking("b1", at(MONDAY, 14), staff_id=None),
            make_booking("b2", at(MONDAY, 14), staff_id="staff-b"),
        ]
        with pytest.raises(BookingValidationError) as e:
            check_placement(profile, bookings, at(MONDAY, 14), "svc-60", tz=TZ)
        assert e.value.reason == ReasonCode.SLOT_FULL

    def test_free_request_nobody_working(self):
        holiday = date(2024, 5, 1)
        staff = Staff(
            id="a",
            default_schedule=weekly("10:00", "18:00"),
            shift_overrides={holiday: Shift(staff_id="a", shift_date=holiday, is_holiday=True)},
        )
        profile = make_profile(staff=[staff])
        with pytest.raises(BookingValidationError) as e:
            check_placement(profile, [], at(holiday, 11), "svc-60", tz=TZ)
        assert e.value.reason == ReasonCode.STAFF_HOLIDAY

    def test_free_request_outside_every_shift(self, profile):
        with pytest.raises(BookingValidationError) as e:
            check_placement(profile, [], at(MONDAY, 8), "svc-60", tz=TZ)
        assert e.value.reason == ReasonCode.OUTSIDE_HOURS


def test_staff_calendar_grid(profile):
    grid = staff_day_grid(profile, [make_booking("b1", at(MONDAY, 12), staff_id="staff-b")], MONDAY, 60, TZ)
    assert set(grid) == {"staff-a", "staff-b"}

    a = statuses(grid["staff-a"])
    b = statuses(grid["staff-b"])
    # Grid spans 10:00-20:00 for everybody
    assert len(grid["staff-a"]) == len(grid["staff-b"]) == 10
    assert a[1000] == SlotStatus.OPEN and a[1800] == SlotStatus.CLOSED
    assert b[1000] == SlotStatus.CLOSED and b[1200] == SlotStatus.FULL and b[1300] == SlotStatus.OPEN
