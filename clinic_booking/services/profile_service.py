from datetime import date
from typing import List, Optional

from clinic_booking.core.config import settings
from clinic_booking.core.errors import PersistenceError
from clinic_booking.core.logger import logger
from clinic_booking.core.profile_loader import attach_shifts, load_clinic_profile
from clinic_booking.models.db_models import Clinic, ClinicProfile, Service, Shift, Staff
from clinic_booking.services.db_service import DBService, db_service


class ProfileService:
    """
    Read-only access to clinic, staff, menu and shift records.
    The engine never writes profile data.
    """

    def __init__(self, db: Optional[DBService] = None):
        self.db = db or db_service

    async def _clinic_row(self, clinic_id: str) -> dict:
        client = await self.db.get_client()
        try:
            response = await client.table('clinics')\
                .select("id, name, business_hours, staff_info, menu_items")\
                .eq('id', clinic_id)\
                .limit(1)\
                .execute()
        except Exception as e:
            logger.error(f"❌ DB Error (clinic {clinic_id}): {e}")
            raise PersistenceError(f"Loading clinic {clinic_id} failed: {e}") from e

        if not response.data:
            raise PersistenceError(f"Clinic {clinic_id} not found")
        return response.data[0]

    @staticmethod
    def _clinic_from_row(row: dict) -> Clinic:
        return Clinic(id=row['id'], name=row.get('name') or "", business_hours=row.get('business_hours') or {})

    @staticmethod
    def _staff_from_row(row: dict) -> List[Staff]:
        return [Staff.model_validate(s) for s in row.get('staff_info') or []]

    @staticmethod
    def _services_from_row(row: dict) -> List[Service]:
        return [Service.model_validate(m) for m in row.get('menu_items') or []]

    async def get_clinic(self, clinic_id: str) -> Clinic:
        return self._clinic_from_row(await self._clinic_row(clinic_id))

    async def get_staff_roster(self, clinic_id: str) -> List[Staff]:
        return self._staff_from_row(await self._clinic_row(clinic_id))

    async def get_services(self, clinic_id: str) -> List[Service]:
        return self._services_from_row(await self._clinic_row(clinic_id))

    async def get_shifts(self, clinic_id: str, start: date, end: date) -> List[Shift]:
        """Shift overrides with start <= date <= end."""
        client = await self.db.get_client()
        try:
            response = await client.table('shifts')\
                .select("staff_id, date, start_time, end_time, is_holiday")\
                .eq('clinic_id', clinic_id)\
                .gte('date', start.isoformat())\
                .lte('date', end.isoformat())\
                .execute()
        except Exception as e:
            logger.error(f"❌ DB Error (shifts for {clinic_id}): {e}")
            raise PersistenceError(f"Loading shifts failed: {e}") from e

        return [Shift.model_validate(row) for row in response.data or []]

    async def load_profile(self, clinic_id: str, start: date, end: date) -> ClinicProfile:
        """Snapshot of the clinic with shift overrides for [start, end] attached."""
        if settings.PROFILE_SOURCE == "file":
            profile = load_clinic_profile(settings.PROFILE_PATH)
            if profile.clinic.id != clinic_id:
                raise PersistenceError(f"Profile file holds clinic {profile.clinic.id}, not {clinic_id}")
            return profile

        # Single clinics read shared by the row parsers
        row = await self._clinic_row(clinic_id)
        clinic = self._clinic_from_row(row)
        staff = self._staff_from_row(row)
        services = self._services_from_row(row)
        shifts = await self.get_shifts(clinic_id, start, end)

        logger.info(f"📋 Profile for {clinic_id}: {len(staff)} staff, {len(services)} services, {len(shifts)} shifts")
        return ClinicProfile(clinic=clinic, staff=attach_shifts(staff, shifts), services=services)


profile_service = ProfileService()
