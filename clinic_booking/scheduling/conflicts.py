"""
Conflict Detection

Half-open interval overlap between a candidate interval and the existing
bookings of one staff member. Cancelled bookings never conflict.
"""

from datetime import datetime
from typing import Iterable, List, Optional

from clinic_booking.models.db_models import Booking


def intervals_overlap(start: datetime, end: datetime, other_start: datetime, other_end: datetime) -> bool:
    # Touching boundaries ([10:00, 11:00) and [11:00, 12:00)) do not overlap
    return start < other_end and end > other_start


def active_bookings(bookings: Iterable[Booking], exclude_booking_id: Optional[str] = None) -> List[Booking]:
    return [
        b for b in bookings
        if b.is_active and (exclude_booking_id is None or b.id != exclude_booking_id)
    ]


def overlapping_bookings(
    start: datetime,
    end: datetime,
    bookings: Iterable[Booking],
    exclude_booking_id: Optional[str] = None,
) -> List[Booking]:
    return [
        b for b in active_bookings(bookings, exclude_booking_id)
        if intervals_overlap(start, end, b.start_time, b.end_time)
    ]


def find_conflicts(
    start: datetime,
    end: datetime,
    staff_id: Optional[str],
    bookings: Iterable[Booking],
    exclude_booking_id: Optional[str] = None,
) -> List[Booking]:
    """
    Active bookings of `staff_id` overlapping [start, end).

    Free requests (staff_id None) are a capacity question and are rejected
    here; use the capacity allocator instead.
    """
    if staff_id is None:
        raise ValueError("free requests have no staff calendar to conflict with; use compute_capacity")
    return [
        b for b in overlapping_bookings(start, end, bookings, exclude_booking_id)
        if b.staff_id == staff_id
    ]


def has_conflict(
    start: datetime,
    end: datetime,
    staff_id: str,
    bookings: Iterable[Booking],
    exclude_booking_id: Optional[str] = None,
) -> bool:
    return bool(find_conflicts(start, end, staff_id, bookings, exclude_booking_id))
