"""
Schedule Resolver

Works out when a staff member (or, for rosterless clinics, the clinic itself)
is working on a given calendar date.

Precedence: shift override for the exact date > default weekly schedule >
closed. Clinic business hours are never used as a fallback for a staff member;
they only apply when a clinic has no staff roster at all.
"""

from datetime import date, datetime, time
from typing import Dict, Optional, Tuple
from zoneinfo import ZoneInfo

from clinic_booking.core.config import clinic_timezone
from clinic_booking.models.db_models import (
    WEEKDAY_KEYS, Clinic, DaySchedule, Staff, WorkingHours,
)

CLOSED = WorkingHours(is_open=False)

# Identifier of the implicit staff member standing in for a rosterless clinic
CLINIC_STAFF_ID = "__clinic__"


def _open_interval(start: Optional[time], end: Optional[time], source: str) -> WorkingHours:
    if start is None or end is None or end <= start:
        return WorkingHours(is_open=False, source=source)
    return WorkingHours(is_open=True, start=start, end=end, source=source)


def _from_weekly(schedule: Dict[str, DaySchedule], day: date, source: str) -> WorkingHours:
    entry = schedule.get(WEEKDAY_KEYS[day.weekday()])
    if entry is None or entry.is_closed:
        return WorkingHours(is_open=False, source=source if entry else "none")
    return _open_interval(entry.start, entry.end, source)


def resolve_working_hours(staff: Staff, day: date) -> WorkingHours:
    """
    Resolve the effective working interval of `staff` on `day`.

    Returns:
        WorkingHours(is_open, start, end, source) where source is
        "shift", "default" or "none".
    """
    override = staff.shift_overrides.get(day)
    if override is not None:
        if override.is_holiday:
            return WorkingHours(is_open=False, source="shift")
        return _open_interval(override.start_time, override.end_time, "shift")

    return _from_weekly(staff.default_schedule, day, "default")


def resolve_clinic_hours(clinic: Clinic, day: date) -> WorkingHours:
    return _from_weekly(clinic.business_hours, day, "clinic")


def clinic_as_staff(clinic: Clinic) -> Staff:
    """A single implicit staff member, capable of everything, working clinic hours."""
    return Staff(
        id=CLINIC_STAFF_ID,
        name=clinic.name,
        default_schedule=clinic.business_hours,
    )


def to_instant(day: date, at: time, tz: Optional[ZoneInfo] = None) -> datetime:
    return datetime.combine(day, at, tzinfo=tz or clinic_timezone())


def hours_bounds(hours: WorkingHours, day: date, tz: Optional[ZoneInfo] = None) -> Tuple[datetime, datetime]:
    if not hours.is_open:
        raise ValueError("closed working hours have no bounds")
    return to_instant(day, hours.start, tz), to_instant(day, hours.end, tz)


def covers(hours: WorkingHours, day: date, start: datetime, end: datetime, tz: Optional[ZoneInfo] = None) -> bool:
    """True when [start, end) lies fully inside the working interval."""
    if not hours.is_open:
        return False
    open_at, close_at = hours_bounds(hours, day, tz)
    return open_at <= start and end <= close_at
