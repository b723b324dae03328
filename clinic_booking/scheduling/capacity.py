"""
Capacity Allocation

For "no preference" (free) requests: how many more bookings of a service the
pool of capable staff can absorb at a candidate start time.

    capable   = staff able to perform the service AND working across the
                whole service interval
    consumed  = active bookings overlapping the occupied interval whose staff
                is capable, plus every free booking (a free booking takes one
                unit of generic capacity whoever ends up serving it)
    remaining = len(capable) - consumed

Depends on the service, so results are never shared between services.
"""

from datetime import datetime
from typing import Iterable, List, Optional
from zoneinfo import ZoneInfo

from clinic_booking.core.config import clinic_timezone
from clinic_booking.models.db_models import Booking, CapacityResult, Service, SlotStatus, Staff
from clinic_booking.scheduling.conflicts import overlapping_bookings
from clinic_booking.scheduling.schedule import covers, resolve_working_hours


def status_for_remaining(remaining: int) -> SlotStatus:
    # 0 / 1 / 2+ is a product decision; keep it exact
    if remaining <= 0:
        return SlotStatus.FULL
    if remaining == 1:
        return SlotStatus.LOW
    return SlotStatus.OPEN


def skilled_staff(service_id: str, roster: Iterable[Staff]) -> List[Staff]:
    return [s for s in roster if s.can_perform(service_id)]


def capable_staff(
    start: datetime,
    service: Service,
    roster: Iterable[Staff],
    tz: Optional[ZoneInfo] = None,
) -> List[Staff]:
    tz = tz or clinic_timezone()
    day = start.astimezone(tz).date()
    end = start + service.service_delta
    return [
        s for s in skilled_staff(service.id, roster)
        if covers(resolve_working_hours(s, day), day, start, end, tz)
    ]


def compute_capacity(
    start: datetime,
    service: Service,
    roster: Iterable[Staff],
    bookings: Iterable[Booking],
    tz: Optional[ZoneInfo] = None,
    exclude_booking_id: Optional[str] = None,
) -> CapacityResult:
    capable = capable_staff(start, service, roster, tz)
    capable_ids = {s.id for s in capable}

    occupied_end = start + service.occupied_delta
    consumed = sum(
        1 for b in overlapping_bookings(start, occupied_end, bookings, exclude_booking_id)
        if b.staff_id is None or b.staff_id in capable_ids
    )

    remaining = len(capable) - consumed
    return CapacityResult(
        capable_staff_ids=[s.id for s in capable],
        consumed=consumed,
        remaining=remaining,
        status=status_for_remaining(remaining),
    )
