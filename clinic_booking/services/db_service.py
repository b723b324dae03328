from supabase import create_async_client, AsyncClient
from clinic_booking.core.config import settings
from clinic_booking.core.errors import BookingValidationError, CommitError, PersistenceError, ReasonCode
from clinic_booking.core.logger import logger
from clinic_booking.models.db_models import Booking
from datetime import datetime
from typing import Any, Dict, List, Optional

# Postgres exclusion_violation, raised by the bookings_no_staff_overlap constraint
EXCLUSION_VIOLATION = "23P01"

class DBService:
    """Persistence gateway for the `bookings` table (Supabase)."""
    _instance = None
    _client: AsyncClient = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super(DBService, cls).__new__(cls)
            # Async client is created lazily on first use
        return cls._instance

    async def get_client(self) -> AsyncClient:
        if not self._client:
            if not settings.SUPABASE_URL or not settings.SUPABASE_KEY:
                logger.warning("⚠️ Supabase credentials missing")
                raise PersistenceError("Supabase credentials are not configured")
            try:
                self._client = await create_async_client(settings.SUPABASE_URL, settings.SUPABASE_KEY)
                logger.info("✅ Supabase Async client initialized")
            except Exception as e:
                logger.error(f"❌ Failed to initialize Supabase Async: {e}")
                raise PersistenceError(f"Failed to initialize Supabase: {e}") from e
        return self._client

    def reset_client(self) -> None:
        """Forget the cached client; the next call creates one on the running loop."""
        self._client = None

    async def list_bookings(self, clinic_id: str, start: datetime, end: datetime) -> List[Booking]:
        """
        Bookings of a clinic whose start_time falls in [start, end), any status.
        """
        client = await self.get_client()
        try:
            response = await client.table('bookings')\
                .select("*")\
                .eq('clinic_id', clinic_id)\
                .gte('start_time', start.isoformat())\
                .lt('start_time', end.isoformat())\
                .order('start_time', desc=False)\
                .execute()
        except Exception as e:
            logger.error(f"❌ DB Error (list_bookings): {e}")
            raise PersistenceError(f"list_bookings failed: {e}") from e

        return [Booking.model_validate(row) for row in response.data or []]

    async def get_booking(self, booking_id: str) -> Optional[Booking]:
        client = await self.get_client()
        try:
            response = await client.table('bookings').select("*").eq('id', booking_id).limit(1).execute()
        except Exception as e:
            logger.error(f"❌ DB Error (get_booking): {e}")
            raise PersistenceError(f"get_booking failed: {e}") from e

        if response.data:
            return Booking.model_validate(response.data[0])
        return None

    async def create_booking(self, booking: Booking) -> str:
        """
        Inserts a booking and returns its new id.
        Raises CommitError on any write failure; never retried.
        """
        client = await self.get_client()
        try:
            response = await client.table('bookings').insert(booking.to_row()).execute()
        except Exception as e:
            self._raise_write_error("create_booking", e)

        if not response.data:
            logger.error("❌ DB Error (create_booking): insert returned no row")
            raise CommitError(RuntimeError("insert returned no row"))

        booking_id = str(response.data[0]['id'])
        logger.info(f"✅ Booking {booking_id} stored for clinic {booking.clinic_id}")
        return booking_id

    async def update_booking_fields(self, booking_id: str, fields: Dict[str, Any]) -> None:
        client = await self.get_client()
        try:
            response = await client.table('bookings').update(fields).eq('id', booking_id).execute()
        except Exception as e:
            self._raise_write_error("update_booking_fields", e)

        if not response.data:
            logger.error(f"❌ DB Error (update_booking_fields): booking {booking_id} not updated")
            raise CommitError(RuntimeError(f"booking {booking_id} was not updated"))
        logger.info(f"✏️ Booking {booking_id} updated: {sorted(fields)}")

    def _raise_write_error(self, operation: str, error: Exception):
        if getattr(error, "code", None) == EXCLUSION_VIOLATION:
            logger.warning(f"⚠️ {operation} rejected by overlap constraint: {error}")
            raise BookingValidationError(ReasonCode.OVERLAP, "Overlaps an existing booking") from error
        logger.error(f"❌ DB Error ({operation}): {error}")
        raise CommitError(error) from error

db_service = DBService()
