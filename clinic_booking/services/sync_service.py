"""
Live booking replicas.

Every viewer (booking wizard, staff calendar, admin console) owns one
`LiveSyncCoordinator`: it subscribes to the change feed for a clinic and a
date range, seeds a `BookingSet` with one range fetch, then applies feed
events one by one, in arrival order, from a dedicated consumer task.

Event application is idempotent so duplicate deliveries are harmless.
"""

import asyncio
import contextlib
from datetime import datetime
from typing import Callable, Dict, Iterable, List, Optional

from pydantic import ValidationError

from clinic_booking.core.config import settings
from clinic_booking.core.errors import PersistenceError, SubscriptionError
from clinic_booking.core.logger import logger
from clinic_booking.models.db_models import MUTABLE_FIELDS, Booking
from clinic_booking.services.db_service import DBService, db_service
from clinic_booking.services.realtime_service import ChangeEvent, ChangeFeed, ChangeKind, SupabaseChangeFeed


class BookingSet:
    """In-memory bookings of one clinic whose start_time is in [range_start, range_end)."""

    def __init__(self, clinic_id: str, range_start: datetime, range_end: datetime):
        self.clinic_id = clinic_id
        self.range_start = range_start
        self.range_end = range_end
        self._bookings: Dict[str, Booking] = {}

    def __len__(self):
        return len(self._bookings)

    def __contains__(self, booking_id):
        return booking_id in self._bookings

    def get(self, booking_id: str) -> Optional[Booking]:
        return self._bookings.get(booking_id)

    def snapshot(self) -> List[Booking]:
        return sorted(self._bookings.values(), key=lambda b: (b.start_time, b.id or ""))

    def in_range(self, booking: Booking) -> bool:
        return self.range_start <= booking.start_time < self.range_end

    def reset(self, range_start: datetime, range_end: datetime) -> None:
        self.range_start = range_start
        self.range_end = range_end
        self._bookings.clear()

    def replace(self, bookings: Iterable[Booking]) -> None:
        self._bookings = {
            b.id: b for b in bookings
            if b.clinic_id == self.clinic_id and self.in_range(b)
        }

    def upsert(self, booking: Booking) -> bool:
        """Store or replace one booking; returns True if the set changed."""
        if booking.clinic_id != self.clinic_id:
            return False
        if not self.in_range(booking):
            return self._bookings.pop(booking.id, None) is not None
        if self._bookings.get(booking.id) == booking:
            return False
        self._bookings[booking.id] = booking
        return True

    def is_relevant(self, event: ChangeEvent) -> bool:
        # Clinic only: this runs at delivery time, before earlier queued events
        # are applied, so it must not look at the current contents
        return event.clinic_id is None or event.clinic_id == self.clinic_id

    def apply(self, event: ChangeEvent) -> bool:
        """
        Apply one feed event; returns True if the set changed.

        Updates only patch mutable fields (status, staff, time range, notes)
        onto the stored record, so identity fields never change under us.
        """
        booking_id = event.booking_id
        if booking_id is None:
            return False

        if event.kind == ChangeKind.DELETE:
            return self._bookings.pop(booking_id, None) is not None

        existing = self._bookings.get(booking_id)
        if event.kind == ChangeKind.UPDATE and existing is not None:
            patch = {f: event.record[f] for f in MUTABLE_FIELDS if f in event.record}
            booking = Booking.model_validate({**existing.model_dump(), **patch})
        else:
            # Insert, or an update for a booking we have not seen yet
            booking = Booking.model_validate(event.record)

        return self.upsert(booking)


class LiveSyncCoordinator:
    """
    Subscription + replica for one viewer.

    start() returns immediately; subscribing and seeding happen on the
    consumer task. Use wait_ready() to wait for the seed.
    """

    def __init__(
        self,
        clinic_id: str,
        range_start: datetime,
        range_end: datetime,
        gateway: Optional[DBService] = None,
        feed: Optional[ChangeFeed] = None,
        reconnect_attempts: Optional[int] = None,
        on_stale: Optional[Callable[[SubscriptionError], None]] = None,
    ):
        self.clinic_id = clinic_id
        self.gateway = gateway or db_service
        self.feed = feed or SupabaseChangeFeed()
        self.reconnect_attempts = settings.SYNC_RECONNECT_ATTEMPTS if reconnect_attempts is None else reconnect_attempts
        self.on_stale = on_stale
        self.bookings = BookingSet(clinic_id, range_start, range_end)
        self.log = logger.bind(clinic_id=clinic_id)

        self._queue: Optional[asyncio.Queue] = None
        self._task: Optional[asyncio.Task] = None
        self._handle = None
        self._ready = asyncio.Event()
        self._stale = False

    @property
    def is_ready(self) -> bool:
        return self._ready.is_set()

    @property
    def is_stale(self) -> bool:
        return self._stale

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def snapshot(self) -> List[Booking]:
        return self.bookings.snapshot()

    async def start(self) -> None:
        if self._task is not None:
            raise RuntimeError(f"Live sync for clinic {self.clinic_id} already started")
        self._queue = asyncio.Queue()
        self._ready.clear()
        self._stale = False
        self._task = asyncio.create_task(self._run(), name=f"live-sync:{self.clinic_id}")

    async def wait_ready(self, timeout: Optional[float] = None) -> bool:
        """Wait for the initial seed. False if it timed out or the sync gave up."""
        if self._task is None or self._ready.is_set():
            return self._ready.is_set()
        waiter = asyncio.ensure_future(self._ready.wait())
        done, _ = await asyncio.wait({waiter, self._task}, timeout=timeout, return_when=asyncio.FIRST_COMPLETED)
        if waiter not in done:
            waiter.cancel()
        return self._ready.is_set()

    async def stop(self) -> None:
        task, self._task = self._task, None
        try:
            if task is not None:
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task
        finally:
            await self._release()
            self._queue = None
            self._ready.clear()
            self.log.info(f"🛑 Live sync stopped for clinic {self.clinic_id}")

    async def change_range(self, range_start: datetime, range_end: datetime) -> None:
        await self.stop()
        self.bookings.reset(range_start, range_end)
        await self.start()

    async def __aenter__(self):
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.stop()

    def _enqueue(self, item) -> None:
        if self._queue is not None:
            self._queue.put_nowait(item)

    async def _connect(self) -> None:
        self._handle = await self.feed.subscribe(
            self.clinic_id, self._enqueue, self._enqueue, predicate=self.bookings.is_relevant,
        )
        seed = await self.gateway.list_bookings(self.clinic_id, self.bookings.range_start, self.bookings.range_end)
        self.bookings.replace(seed)
        self._stale = False
        self._ready.set()
        self.log.info(f"🌱 Seeded {len(self.bookings)} bookings for clinic {self.clinic_id} "
                      f"({self.bookings.range_start:%Y-%m-%d} - {self.bookings.range_end:%Y-%m-%d})")

    async def _release(self) -> None:
        handle, self._handle = self._handle, None
        if handle is None:
            return
        try:
            await self.feed.unsubscribe(handle)
        except Exception as e:
            self.log.warning(f"⚠️ Unsubscribe failed for clinic {self.clinic_id}: {e}")

    def _drain(self) -> None:
        while not self._queue.empty():
            self._queue.get_nowait()

    def _mark_stale(self, error: Exception) -> None:
        self._stale = True
        self._ready.clear()
        self.log.warning(f"⚠️ Live sync for clinic {self.clinic_id} gave up; availability is STALE")
        if self.on_stale is not None:
            self.on_stale(error if isinstance(error, SubscriptionError) else SubscriptionError(str(error)))

    async def _recover(self, error: Exception) -> bool:
        """Reconnect and reseed after a lost subscription. False if we gave up."""
        self.log.warning(f"🔁 Live sync for clinic {self.clinic_id} interrupted: {error}")
        self._ready.clear()
        await self._release()
        # Anything still queued predates the reseed
        self._drain()

        for attempt in range(1, self.reconnect_attempts + 1):
            try:
                await self._connect()
                self.log.info(f"✅ Live sync for clinic {self.clinic_id} reconnected (attempt {attempt})")
                return True
            except (SubscriptionError, PersistenceError) as e:
                self.log.error(f"❌ Reconnect attempt {attempt} for clinic {self.clinic_id} failed: {e}")
                await self._release()

        self._mark_stale(error)
        return False

    async def _consume(self) -> None:
        try:
            await self._connect()
        except (SubscriptionError, PersistenceError) as e:
            if not await self._recover(e):
                return

        while True:
            item = await self._queue.get()
            if isinstance(item, SubscriptionError):
                if not await self._recover(item):
                    return
                continue
            self._apply(item)

    async def _run(self) -> None:
        try:
            await self._consume()
        except Exception as e:
            self.log.exception(f"🔥 Live sync for clinic {self.clinic_id} crashed: {e}")
            await self._release()
            self._mark_stale(e)

    def _apply(self, event: ChangeEvent) -> None:
        try:
            changed = self.bookings.apply(event)
        except ValidationError as e:
            self.log.warning(f"⚠️ Skipping malformed {event.kind.value} event for booking {event.booking_id}: {e}")
            return
        except Exception as e:
            self.log.error(f"❌ Could not apply {event.kind.value} event for booking {event.booking_id}: {e}")
            return
        if changed:
            self.log.info(f"🔔 Booking {event.booking_id} {event.kind.value} applied (clinic {self.clinic_id})")
