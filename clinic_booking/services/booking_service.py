from typing import Any, List, Optional
from datetime import datetime, timedelta
from zoneinfo import ZoneInfo

from clinic_booking.core.config import clinic_timezone, settings
from clinic_booking.core.errors import BookingValidationError, ReasonCode
from clinic_booking.core.logger import logger
from clinic_booking.models.db_models import (
    TERMINAL_STATUSES, BookedBy, Booking, BookingStatus, ClinicProfile,
)
from clinic_booking.scheduling.availability import check_placement
from clinic_booking.services.db_service import DBService, db_service
from clinic_booking.services.sync_service import BookingSet

ALLOWED_TRANSITIONS = {
    BookingStatus.PENDING: {BookingStatus.CONFIRMED, BookingStatus.CANCELLED},
    BookingStatus.CONFIRMED: {BookingStatus.COMPLETED, BookingStatus.CANCELLED, BookingStatus.NO_SHOW},
}

# How far before a candidate interval to look for bookings that may still be running
OVERLAP_LOOKBACK = timedelta(days=1)

_UNCHANGED: Any = object()


class BookingService:
    """
    Creates, changes and cancels bookings of one clinic.

    Every write is validated twice: against the viewer's local replica, then
    against bookings freshly read from the persistence gateway right before
    the commit. The local replica is updated as soon as the write succeeds.
    """

    def __init__(
        self,
        profile: ClinicProfile,
        booking_set: BookingSet,
        gateway: Optional[DBService] = None,
        tz: Optional[ZoneInfo] = None,
        revalidate_on_commit: Optional[bool] = None,
    ):
        self.profile = profile
        self.booking_set = booking_set
        self.gateway = gateway or db_service
        self.tz = tz or clinic_timezone()
        self.revalidate_on_commit = settings.REVALIDATE_ON_COMMIT if revalidate_on_commit is None else revalidate_on_commit
        self.log = logger.bind(clinic_id=profile.clinic.id)

    @property
    def clinic_id(self) -> str:
        return self.profile.clinic.id

    def normalize_name(self, name: Optional[str]) -> Optional[str]:
        """Strips and collapses whitespace in guest names."""
        if not name:
            return name
        return " ".join(name.split())

    def _localize(self, value: datetime) -> datetime:
        return value if value.tzinfo is not None else value.replace(tzinfo=self.tz)

    def _check(self, bookings: List[Booking], start: datetime, service_id: str,
               staff_id: Optional[str], exclude_booking_id: Optional[str]) -> datetime:
        try:
            return check_placement(self.profile, bookings, start, service_id, staff_id, self.tz, exclude_booking_id)
        except BookingValidationError as e:
            self.log.info(f"🚫 Booking rejected ({e.reason.value}): {e.message}")
            raise

    async def _validate_for_commit(self, start: datetime, service_id: str, staff_id: Optional[str],
                                   exclude_booking_id: Optional[str] = None) -> datetime:
        end = self._check(self.booking_set.snapshot(), start, service_id, staff_id, exclude_booking_id)
        if self.revalidate_on_commit:
            current = await self.gateway.list_bookings(self.clinic_id, start - OVERLAP_LOOKBACK, end)
            end = self._check(current, start, service_id, staff_id, exclude_booking_id)
        return end

    async def _get_booking(self, booking_id: str) -> Booking:
        booking = self.booking_set.get(booking_id)
        if booking is None or self.revalidate_on_commit:
            booking = await self.gateway.get_booking(booking_id)
        if booking is None or booking.clinic_id != self.clinic_id:
            raise BookingValidationError(ReasonCode.UNKNOWN_BOOKING, f"Unknown booking '{booking_id}'")
        return booking

    async def request_booking(
        self,
        start_time: datetime,
        service_id: str,
        staff_id: Optional[str] = None,
        booked_by: BookedBy = BookedBy.USER,
        user_id: Optional[str] = None,
        guest_name: Optional[str] = None,
        guest_contact: Optional[str] = None,
        guest_email: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> Booking:
        """
        Book `service_id` at `start_time` with `staff_id`, or with anyone
        capable when `staff_id` is None.

        Self-service bookings start `pending`, operator bookings `confirmed`.

        Raises:
            BookingValidationError: the slot cannot be booked (reason code says why)
            CommitError: the write itself failed; not retried
        """
        start_time = self._localize(start_time)
        self.log.info(f"📥 Booking Request - {start_time:%Y-%m-%d %H:%M}, service {service_id}, staff {staff_id or 'any'}")

        end_time = await self._validate_for_commit(start_time, service_id, staff_id)

        booking = Booking(
            clinic_id=self.clinic_id,
            staff_id=staff_id,
            service_id=service_id,
            start_time=start_time,
            end_time=end_time,
            status=BookingStatus.CONFIRMED if booked_by == BookedBy.OPERATOR else BookingStatus.PENDING,
            booked_by=booked_by,
            user_id=user_id,
            guest_name=self.normalize_name(guest_name),
            guest_contact=guest_contact,
            guest_email=guest_email,
            notes=notes,
        )
        booking_id = await self.gateway.create_booking(booking)
        booking = booking.model_copy(update={"id": booking_id})
        self.booking_set.upsert(booking)

        self.log.info(f"✅ Booking {booking_id} created ({booking.status.value}) {start_time:%H:%M}-{end_time:%H:%M}")
        return booking

    async def update_booking(
        self,
        booking_id: str,
        start_time: Optional[datetime] = None,
        staff_id: Any = _UNCHANGED,
        notes: Any = _UNCHANGED,
    ) -> Booking:
        """
        Move and/or reassign a booking. Revalidated like a new booking,
        ignoring the booking itself.
        """
        booking = await self._get_booking(booking_id)
        if booking.status in TERMINAL_STATUSES:
            raise BookingValidationError(ReasonCode.INVALID_TRANSITION, f"Booking {booking_id} is {booking.status.value}")

        new_start = self._localize(start_time) if start_time is not None else booking.start_time
        new_staff = booking.staff_id if staff_id is _UNCHANGED else staff_id
        new_end = await self._validate_for_commit(new_start, booking.service_id, new_staff, exclude_booking_id=booking.id)

        changes = {"start_time": new_start, "end_time": new_end, "staff_id": new_staff}
        if notes is not _UNCHANGED:
            changes["notes"] = notes

        await self.gateway.update_booking_fields(booking.id, {
            k: v.isoformat() if isinstance(v, datetime) else v for k, v in changes.items()
        })
        updated = booking.model_copy(update=changes)
        self.booking_set.upsert(updated)

        self.log.info(f"🔀 Booking {booking_id} now {new_start:%Y-%m-%d %H:%M} with staff {new_staff or 'any'}")
        return updated

    async def reassign_booking(self, booking_id: str, new_staff_id: Optional[str]) -> Booking:
        """Hand the booking to another staff member, or back to the free pool (None)."""
        return await self.update_booking(booking_id, staff_id=new_staff_id)

    async def transition(self, booking_id: str, new_status: BookingStatus) -> Booking:
        booking = await self._get_booking(booking_id)
        if booking.status == new_status:
            return booking

        if new_status not in ALLOWED_TRANSITIONS.get(booking.status, set()):
            raise BookingValidationError(
                ReasonCode.INVALID_TRANSITION,
                f"Booking {booking_id} cannot go from {booking.status.value} to {new_status.value}",
            )

        await self.gateway.update_booking_fields(booking.id, {"status": new_status.value})
        updated = booking.model_copy(update={"status": new_status})
        self.booking_set.upsert(updated)

        self.log.info(f"📌 Booking {booking_id}: {booking.status.value} -> {new_status.value}")
        return updated

    async def cancel_booking(self, booking_id: str) -> Booking:
        """Soft cancel; the record stays. Cancelling twice is a no-op."""
        return await self.transition(booking_id, BookingStatus.CANCELLED)

    async def confirm_booking(self, booking_id: str) -> Booking:
        return await self.transition(booking_id, BookingStatus.CONFIRMED)

    async def complete_booking(self, booking_id: str) -> Booking:
        return await self.transition(booking_id, BookingStatus.COMPLETED)

    async def mark_no_show(self, booking_id: str) -> Booking:
        return await self.transition(booking_id, BookingStatus.NO_SHOW)
