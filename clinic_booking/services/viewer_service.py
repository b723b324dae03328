from datetime import date, time, timedelta
from typing import Dict, List, Optional
from uuid import uuid4
from zoneinfo import ZoneInfo

from clinic_booking.core.config import clinic_timezone
from clinic_booking.core.logger import logger
from clinic_booking.models.db_models import ClinicProfile, SlotAvailability
from clinic_booking.scheduling.availability import get_availability, staff_day_grid
from clinic_booking.scheduling.schedule import to_instant
from clinic_booking.services.booking_service import BookingService
from clinic_booking.services.db_service import DBService, db_service
from clinic_booking.services.profile_service import ProfileService, profile_service
from clinic_booking.services.realtime_service import ChangeFeed, SupabaseChangeFeed
from clinic_booking.services.sync_service import LiveSyncCoordinator


class ViewerSession:
    """One open booking wizard / staff calendar / admin console."""

    def __init__(self, viewer_id: str, profile: ClinicProfile, coordinator: LiveSyncCoordinator,
                 booking_service: BookingService, tz: ZoneInfo):
        self.viewer_id = viewer_id
        self.profile = profile
        self.coordinator = coordinator
        self.booking_service = booking_service
        self.tz = tz
        self.log = logger.bind(clinic_id=profile.clinic.id, viewer_id=viewer_id)

    @property
    def clinic_id(self) -> str:
        return self.profile.clinic.id

    @property
    def is_stale(self) -> bool:
        return self.coordinator.is_stale

    def get_availability(self, day: date, service_id: str, staff_id: Optional[str] = None,
                         granularity_minutes: Optional[int] = None) -> List[SlotAvailability]:
        return get_availability(self.profile, self.coordinator.snapshot(), day, service_id,
                                staff_id, granularity_minutes, self.tz)

    def staff_calendar(self, day: date, granularity_minutes: Optional[int] = None) -> Dict[str, List[SlotAvailability]]:
        return staff_day_grid(self.profile, self.coordinator.snapshot(), day, granularity_minutes, self.tz)

    async def close(self) -> None:
        await self.coordinator.stop()


class ViewerRegistry:
    def __init__(
        self,
        profiles: Optional[ProfileService] = None,
        gateway: Optional[DBService] = None,
        feed: Optional[ChangeFeed] = None,
        tz: Optional[ZoneInfo] = None,
    ):
        self.profiles = profiles or profile_service
        self.gateway = gateway or db_service
        self.feed = feed or SupabaseChangeFeed()
        self.tz = tz or clinic_timezone()
        self._sessions: Dict[str, ViewerSession] = {}

    def __len__(self):
        return len(self._sessions)

    def get(self, viewer_id: str) -> Optional[ViewerSession]:
        return self._sessions.get(viewer_id)

    async def open(self, clinic_id: str, start_date: date, end_date: date) -> ViewerSession:
        """Load the profile for [start_date, end_date] and start live sync for it."""
        if end_date < start_date:
            raise ValueError("end_date must not be before start_date")

        profile = await self.profiles.load_profile(clinic_id, start_date, end_date)
        coordinator = LiveSyncCoordinator(
            clinic_id,
            to_instant(start_date, time(0, 0), self.tz),
            to_instant(end_date + timedelta(days=1), time(0, 0), self.tz),
            gateway=self.gateway,
            feed=self.feed,
        )
        await coordinator.start()

        session = ViewerSession(
            viewer_id=uuid4().hex,
            profile=profile,
            coordinator=coordinator,
            booking_service=BookingService(profile, coordinator.bookings, self.gateway, self.tz),
            tz=self.tz,
        )
        self._sessions[session.viewer_id] = session
        session.log.info(f"👀 Viewer {session.viewer_id} opened for clinic {clinic_id} ({start_date} - {end_date})")
        return session

    async def close(self, viewer_id: str) -> bool:
        session = self._sessions.pop(viewer_id, None)
        if session is None:
            return False
        await session.close()
        session.log.info(f"👋 Viewer {viewer_id} closed")
        return True

    async def close_all(self) -> None:
        for viewer_id in list(self._sessions):
            await self.close(viewer_id)
