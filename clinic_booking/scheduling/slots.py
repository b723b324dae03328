"""
Slot Generation

Turns a working interval into discrete candidate start times. This is the only
place where a granularity exists; conflict and capacity checks work on
continuous intervals.
"""

from datetime import date, datetime, timedelta
from typing import Iterable, Iterator, Optional
from zoneinfo import ZoneInfo

from clinic_booking.models.db_models import WorkingHours
from clinic_booking.scheduling.schedule import hours_bounds


def generate_slots(
    day: date,
    hours: WorkingHours,
    granularity_minutes: int,
    length_minutes: Optional[int] = None,
    tz: Optional[ZoneInfo] = None,
) -> Iterator[datetime]:
    """
    Yield slot starts from opening time in steps of `granularity_minutes`.

    A slot is yielded only if `start + length_minutes` does not pass the
    closing bound. `length_minutes` defaults to the granularity; callers pass
    the service duration so a treatment never runs past closing.

    The result is a generator: ordered, finite and single-pass.
    """
    if granularity_minutes <= 0:
        raise ValueError("granularity_minutes must be positive")
    if not hours.is_open:
        return

    step = timedelta(minutes=granularity_minutes)
    length = timedelta(minutes=length_minutes if length_minutes is not None else granularity_minutes)
    current, close_at = hours_bounds(hours, day, tz)

    while current + length <= close_at:
        yield current
        current += step


def day_span(hours: Iterable[WorkingHours]) -> WorkingHours:
    """Envelope (earliest open, latest close) of several working intervals."""
    opened = [h for h in hours if h.is_open]
    if not opened:
        return WorkingHours(is_open=False)
    return WorkingHours(
        is_open=True,
        start=min(h.start for h in opened),
        end=max(h.end for h in opened),
        source="span",
    )
