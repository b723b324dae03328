"""
Change-notification feeds for the `bookings` table.

A feed delivers insert / update / delete events for one clinic to a callback.
Callbacks run on the event loop and must not block; the sync coordinator
only enqueues them.
"""

from abc import ABC, abstractmethod
from enum import Enum
from itertools import count
from typing import Any, Callable, Dict, Optional
from uuid import uuid4

from pydantic import BaseModel, Field, ValidationError

from clinic_booking.core.errors import SubscriptionError
from clinic_booking.core.logger import logger
from clinic_booking.services.db_service import DBService, db_service


class ChangeKind(str, Enum):
    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"


class ChangeEvent(BaseModel):
    kind: ChangeKind
    record: Dict[str, Any] = Field(default_factory=dict)
    old_record: Dict[str, Any] = Field(default_factory=dict)

    @property
    def booking_id(self) -> Optional[str]:
        value = self.record.get("id", self.old_record.get("id"))
        return None if value is None else str(value)

    @property
    def clinic_id(self) -> Optional[str]:
        value = self.record.get("clinic_id", self.old_record.get("clinic_id"))
        return None if value is None else str(value)

    @classmethod
    def from_postgres_payload(cls, payload: Dict[str, Any]) -> "ChangeEvent":
        # realtime wraps the change in "data"; older clients pass it bare
        data = payload.get("data", payload)
        kind = data.get("type") or data.get("eventType") or ""
        return cls(
            kind=kind.lower(),
            record=data.get("record") or data.get("new") or {},
            old_record=data.get("old_record") or data.get("old") or {},
        )


EventHandler = Callable[[ChangeEvent], None]
ErrorHandler = Callable[[SubscriptionError], None]
EventFilter = Callable[[ChangeEvent], bool]


class ChangeFeed(ABC):

    @abstractmethod
    async def subscribe(
        self,
        clinic_id: str,
        on_event: EventHandler,
        on_error: ErrorHandler,
        predicate: Optional[EventFilter] = None,
    ) -> Any:
        """
        Start delivering events of `clinic_id` that pass `predicate`.

        Returns:
            an opaque handle for unsubscribe()

        Raises:
            SubscriptionError: if the channel cannot be established
        """
        pass

    @abstractmethod
    async def unsubscribe(self, handle: Any) -> None:
        """Stop delivery for `handle` and release its resources."""
        pass


class _ChannelSubscription:
    def __init__(self, channel: Any):
        self.channel = channel
        self.closing = False


class SupabaseChangeFeed(ChangeFeed):
    """Supabase Realtime `postgres_changes` on public.bookings."""

    FAILED_STATES = ("CHANNEL_ERROR", "TIMED_OUT", "CLOSED")

    def __init__(self, db: Optional[DBService] = None):
        self.db = db or db_service

    async def subscribe(self, clinic_id, on_event, on_error, predicate=None):
        client = await self.db.get_client()
        channel = client.channel(f"bookings:clinic_id={clinic_id}:{uuid4().hex[:8]}")
        subscription = _ChannelSubscription(channel)

        def _on_change(payload):
            try:
                event = ChangeEvent.from_postgres_payload(payload)
            except ValidationError as e:
                logger.warning(f"⚠️ Unreadable realtime payload skipped: {e}")
                return
            if predicate is None or predicate(event):
                on_event(event)

        def _on_status(status, error=None):
            state = getattr(status, "value", status)
            if state in self.FAILED_STATES and not subscription.closing:
                logger.error(f"🔌 Realtime channel for clinic {clinic_id} is {state}: {error}")
                on_error(SubscriptionError(f"Channel {state} for clinic {clinic_id}"))

        channel.on_postgres_changes(
            "*",
            callback=_on_change,
            table="bookings",
            schema="public",
            filter=f"clinic_id=eq.{clinic_id}",
        )
        try:
            await channel.subscribe(_on_status)
        except Exception as e:
            logger.error(f"❌ Realtime subscribe failed for clinic {clinic_id}: {e}")
            raise SubscriptionError(f"Subscribe failed for clinic {clinic_id}: {e}") from e

        logger.info(f"📡 Subscribed to booking changes of clinic {clinic_id}")
        return subscription

    async def unsubscribe(self, handle):
        handle.closing = True
        client = await self.db.get_client()
        await client.remove_channel(handle.channel)
        logger.info("📴 Realtime channel removed")


class InMemoryChangeFeed(ChangeFeed):
    """In-process feed: whoever writes bookings calls publish()."""

    def __init__(self):
        self._handles = count(1)
        self._subscribers: Dict[int, tuple] = {}

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    async def subscribe(self, clinic_id, on_event, on_error, predicate=None):
        handle = next(self._handles)
        self._subscribers[handle] = (clinic_id, on_event, on_error, predicate)
        return handle

    async def unsubscribe(self, handle):
        self._subscribers.pop(handle, None)

    def publish(self, event: ChangeEvent) -> None:
        for clinic_id, on_event, _, predicate in list(self._subscribers.values()):
            if event.clinic_id != clinic_id:
                continue
            if predicate is None or predicate(event):
                on_event(event)

    def disconnect(self, reason: str = "connection lost") -> None:
        """Report a lost connection to every subscriber."""
        for clinic_id, _, on_error, _ in list(self._subscribers.values()):
            on_error(SubscriptionError(f"{reason} (clinic {clinic_id})"))
