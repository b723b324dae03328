"""
Availability Calculation

Single entry point for slot availability, used by the booking wizard (free or
staff-specific requests) and the staff calendar. `check_placement` applies the
same rules to one proposed booking and is what the lifecycle manager runs
before every commit, so read-time and write-time answers cannot drift apart.

All functions are pure: they read a `ClinicProfile` snapshot and a list of
bookings (normally the viewer's live replica) and never fetch anything.
"""

from datetime import date, datetime, timedelta
from typing import Dict, Iterable, List, Optional
from zoneinfo import ZoneInfo

from clinic_booking.core.config import clinic_timezone, settings
from clinic_booking.core.errors import BookingValidationError, ReasonCode
from clinic_booking.models.db_models import (
    Booking, ClinicProfile, Service, SlotAvailability, SlotStatus, Staff,
)
from clinic_booking.scheduling.capacity import compute_capacity, skilled_staff
from clinic_booking.scheduling.conflicts import find_conflicts, has_conflict
from clinic_booking.scheduling.schedule import clinic_as_staff, covers, resolve_working_hours
from clinic_booking.scheduling.slots import day_span, generate_slots


def booking_pool(profile: ClinicProfile) -> List[Staff]:
    """The staff roster, or the clinic itself when it has no roster."""
    return list(profile.staff) or [clinic_as_staff(profile.clinic)]


def require_service(profile: ClinicProfile, service_id: str) -> Service:
    service = profile.find_service(service_id)
    if service is None:
        raise BookingValidationError(ReasonCode.UNKNOWN_SERVICE, f"Unknown service '{service_id}'")
    return service


def require_staff(profile: ClinicProfile, staff_id: str) -> Staff:
    staff = profile.find_staff(staff_id)
    if staff is None:
        raise BookingValidationError(ReasonCode.UNKNOWN_STAFF, f"Unknown staff '{staff_id}'")
    return staff


def _clinic_bookings(profile: ClinicProfile, bookings: Iterable[Booking]) -> List[Booking]:
    return [b for b in bookings if b.clinic_id == profile.clinic.id]


def get_availability(
    profile: ClinicProfile,
    bookings: Iterable[Booking],
    day: date,
    service_id: str,
    staff_id: Optional[str] = None,
    granularity_minutes: Optional[int] = None,
    tz: Optional[ZoneInfo] = None,
) -> List[SlotAvailability]:
    """
    Ordered slot list for one clinic day.

    Staff-specific requests are binary (open / full) over that staff member's
    hours. Free requests carry the tri-state capacity status (open / low /
    full) over the span in which any capable staff member works.
    """
    tz = tz or clinic_timezone()
    granularity = granularity_minutes or settings.BOOKING_SLOT_MINUTES
    service = require_service(profile, service_id)
    bookings = _clinic_bookings(profile, bookings)

    if staff_id is not None:
        staff = require_staff(profile, staff_id)
        hours = resolve_working_hours(staff, day)
        return [
            SlotAvailability(
                slot_start=slot,
                status=SlotStatus.FULL if has_conflict(slot, slot + service.occupied_delta, staff.id, bookings) else SlotStatus.OPEN,
            )
            for slot in generate_slots(day, hours, granularity, service.duration, tz)
        ]

    pool = skilled_staff(service.id, booking_pool(profile))
    span = day_span(resolve_working_hours(s, day) for s in pool)
    result = []
    for slot in generate_slots(day, span, granularity, service.duration, tz):
        capacity = compute_capacity(slot, service, pool, bookings, tz)
        result.append(SlotAvailability(slot_start=slot, status=capacity.status, remaining=capacity.remaining))
    return result


def check_placement(
    profile: ClinicProfile,
    bookings: Iterable[Booking],
    start: datetime,
    service_id: str,
    staff_id: Optional[str] = None,
    tz: Optional[ZoneInfo] = None,
    exclude_booking_id: Optional[str] = None,
) -> datetime:
    """
    Validate one proposed booking; returns its end time (duration + buffer).

    Raises:
        BookingValidationError: unknown_service, unknown_staff, staff_holiday,
        outside_hours, overlap (named staff) or slot_full (free request).
    """
    tz = tz or clinic_timezone()
    service = require_service(profile, service_id)
    bookings = _clinic_bookings(profile, bookings)
    day = start.astimezone(tz).date()
    occupied_end = start + service.occupied_delta

    if staff_id is not None:
        staff = require_staff(profile, staff_id)
        hours = resolve_working_hours(staff, day)
        if not hours.is_open:
            raise BookingValidationError(ReasonCode.STAFF_HOLIDAY, f"{staff.name or staff.id} is off on {day}")
        if not covers(hours, day, start, start + service.service_delta, tz):
            raise BookingValidationError(
                ReasonCode.OUTSIDE_HOURS,
                f"{staff.name or staff.id} works {hours.start:%H:%M}-{hours.end:%H:%M} on {day}",
            )
        conflicts = find_conflicts(start, occupied_end, staff.id, bookings, exclude_booking_id)
        if conflicts:
            raise BookingValidationError(ReasonCode.OVERLAP, f"Overlaps booking {conflicts[0].id}")
        return occupied_end

    pool = skilled_staff(service.id, booking_pool(profile))
    if not any(resolve_working_hours(s, day).is_open for s in pool):
        raise BookingValidationError(ReasonCode.STAFF_HOLIDAY, f"Nobody offering '{service.id}' works on {day}")

    capacity = compute_capacity(start, service, pool, bookings, tz, exclude_booking_id)
    if not capacity.capable_staff_ids:
        raise BookingValidationError(ReasonCode.OUTSIDE_HOURS, f"No capable staff works at {start:%H:%M} on {day}")
    if capacity.remaining <= 0:
        raise BookingValidationError(ReasonCode.SLOT_FULL, f"No capacity left at {start:%H:%M} on {day}")
    return occupied_end


def staff_day_grid(
    profile: ClinicProfile,
    bookings: Iterable[Booking],
    day: date,
    granularity_minutes: Optional[int] = None,
    tz: Optional[ZoneInfo] = None,
) -> Dict[str, List[SlotAvailability]]:
    """
    Staff calendar: per staff member, every slot of the clinic day tagged
    open, full (has an active booking) or closed (outside their hours).
    """
    tz = tz or clinic_timezone()
    granularity = granularity_minutes or settings.CALENDAR_SLOT_MINUTES
    step = timedelta(minutes=granularity)
    bookings = _clinic_bookings(profile, bookings)

    hours_by_staff = {s.id: resolve_working_hours(s, day) for s in profile.staff}
    slots = list(generate_slots(day, day_span(hours_by_staff.values()), granularity, tz=tz))

    grid = {}
    for staff in profile.staff:
        hours = hours_by_staff[staff.id]
        row = []
        for slot in slots:
            if not covers(hours, day, slot, slot + step, tz):
                status = SlotStatus.CLOSED
            elif has_conflict(slot, slot + step, staff.id, bookings):
                status = SlotStatus.FULL
            else:
                status = SlotStatus.OPEN
            row.append(SlotAvailability(slot_start=slot, status=status))
        grid[staff.id] = row
    return grid
