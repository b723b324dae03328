from datetime import date, time

from clinic_booking.models.db_models import Clinic, DaySchedule, Shift, Staff
from clinic_booking.scheduling.schedule import (
    CLINIC_STAFF_ID, clinic_as_staff, covers, resolve_clinic_hours, resolve_working_hours,
)
from tests.conftest import MONDAY, SUNDAY, TZ, at, weekly

WEDNESDAY = date(2024, 5, 1)


def test_default_schedule_applies_without_override():
    staff = Staff(id="a", default_schedule=weekly("10:00", "18:00"))
    hours = resolve_working_hours(staff, MONDAY)
    assert hours.is_open
    assert (hours.start, hours.end, hours.source) == (time(10), time(18), "default")


def test_holiday_override_closes_an_open_day():
    staff = Staff(
        id="a",
        default_schedule=weekly("10:00", "18:00"),
        shift_overrides={WEDNESDAY: Shift(staff_id="a", shift_date=WEDNESDAY, is_holiday=True)},
    )
    hours = resolve_working_hours(staff, WEDNESDAY)
    assert not hours.is_open
    assert hours.source == "shift"


def test_shift_override_replaces_default_hours():
    override = Shift(staff_id="a", shift_date=MONDAY, start_time=time(14), end_time=time(19))
    staff = Staff(id="a", default_schedule=weekly("10:00", "18:00"), shift_overrides={MONDAY: override})
    hours = resolve_working_hours(staff, MONDAY)
    assert (hours.start, hours.end, hours.source) == (time(14), time(19), "shift")
    # Other days keep the default
    assert resolve_working_hours(staff, SUNDAY).start == time(10)


def test_missing_or_closed_weekday_is_closed():
    staff = Staff(id="a", default_schedule={"mon": DaySchedule(start="10:00", end="18:00", is_closed=True)})
    assert not resolve_working_hours(staff, MONDAY).is_open
    hours = resolve_working_hours(staff, SUNDAY)
    assert not hours.is_open
    assert hours.source == "none"


def test_empty_interval_is_closed():
    staff = Staff(id="a", default_schedule=weekly("18:00", "10:00"))
    assert not resolve_working_hours(staff, MONDAY).is_open


def test_staff_never_falls_back_to_clinic_hours():
    staff = Staff(id="a")
    assert not resolve_working_hours(staff, MONDAY).is_open


def test_rosterless_clinic_acts_as_staff():
    clinic = Clinic(id="c1", name="Solo", business_hours=weekly("09:00", "17:00"))
    implicit = clinic_as_staff(clinic)
    assert implicit.id == CLINIC_STAFF_ID
    assert implicit.can_perform("anything")
    assert resolve_working_hours(implicit, MONDAY).start == time(9)
    assert resolve_clinic_hours(clinic, MONDAY).source == "clinic"


def test_covers_is_inclusive_of_both_bounds():
    hours = resolve_working_hours(Staff(id="a", default_schedule=weekly("10:00", "18:00")), MONDAY)
    assert covers(hours, MONDAY, at(MONDAY, 10), at(MONDAY, 18), TZ)
    assert not covers(hours, MONDAY, at(MONDAY, 9, 30), at(MONDAY, 10, 30), TZ)
    assert not covers(hours, MONDAY, at(MONDAY, 17, 30), at(MONDAY, 18, 30), TZ)
