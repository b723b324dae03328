from typing import Optional, List, Dict, Any
from datetime import date, datetime, time, timedelta
from enum import Enum
from pydantic import BaseModel, ConfigDict, Field, field_validator

from clinic_booking.core.config import clinic_timezone, settings

# date.weekday() index -> key used by clinic/staff schedules
WEEKDAY_KEYS = ("mon", "tue", "wed", "thu", "fri", "sat", "sun")


class BookingStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"
    NO_SHOW = "no_show"


TERMINAL_STATUSES = frozenset({BookingStatus.CANCELLED, BookingStatus.COMPLETED, BookingStatus.NO_SHOW})


class BookedBy(str, Enum):
    USER = "user"
    GUEST = "guest"
    OPERATOR = "operator"


class SlotStatus(str, Enum):
    OPEN = "open"
    LOW = "low"
    FULL = "full"
    CLOSED = "closed"  # staff calendar grid only


class ProfileModel(BaseModel):
    # Profile JSON comes from the web app in camelCase
    model_config = ConfigDict(populate_by_name=True, coerce_numbers_to_str=True)


class DaySchedule(ProfileModel):
    start: time = time(9, 0)
    end: time = time(18, 0)
    is_closed: bool = Field(default=False, alias="isClosed")


class Shift(ProfileModel):
    staff_id: str = Field(alias="staffId")
    shift_date: date = Field(alias="date")
    start_time: Optional[time] = Field(default=None, alias="startTime")
    end_time: Optional[time] = Field(default=None, alias="endTime")
    is_holiday: bool = Field(default=False, alias="isHoliday")


class Staff(ProfileModel):
    id: str
    name: str = ""
    role: str = ""
    skill_ids: List[str] = Field(default_factory=list, alias="skillIds")
    default_schedule: Dict[str, DaySchedule] = Field(default_factory=dict, alias="defaultSchedule")
    shift_overrides: Dict[date, Shift] = Field(default_factory=dict, alias="shiftOverrides")

    def can_perform(self, service_id: str) -> bool:
        return not self.skill_ids or service_id in self.skill_ids


class Service(ProfileModel):
    id: str
    name: str = ""
    duration: int = Field(default_factory=lambda: settings.DEFAULT_SERVICE_MINUTES)
    buffer_time: int = Field(default=0, alias="bufferTime")

    @field_validator("duration", "buffer_time", mode="before")
    @classmethod
    def _fill_missing(cls, value, info):
        # Menu items saved by the web app may carry null here
        if value is None:
            return settings.DEFAULT_SERVICE_MINUTES if info.field_name == "duration" else 0
        return value

    @property
    def service_delta(self) -> timedelta:
        return timedelta(minutes=self.duration)

    @property
    def occupied_delta(self) -> timedelta:
        return timedelta(minutes=self.duration + self.buffer_time)


class Clinic(ProfileModel):
    id: str
    name: str = ""
    business_hours: Dict[str, DaySchedule] = Field(default_factory=dict, alias="businessHours")


class ClinicProfile(BaseModel):
    """Read-only snapshot of everything the engine needs from the profile store."""
    model_config = ConfigDict(frozen=True)

    clinic: Clinic
    staff: List[Staff] = Field(default_factory=list)
    services: List[Service] = Field(default_factory=list)

    def find_staff(self, staff_id: str) -> Optional[Staff]:
        return next((s for s in self.staff if s.id == staff_id), None)

    def find_service(self, service_id: str) -> Optional[Service]:
        return next((s for s in self.services if s.id == service_id), None)


# Fields a booking may change after creation; everything else is identity
MUTABLE_FIELDS = ("status", "staff_id", "start_time", "end_time", "notes", "internal_memo")


class Booking(BaseModel):
    # Column names follow the `bookings` table
    model_config = ConfigDict(populate_by_name=True, coerce_numbers_to_str=True)

    id: Optional[str] = Field(default=None)
    clinic_id: str
    staff_id: Optional[str] = None  # None = free booking
    service_id: Optional[str] = Field(default=None, alias="menu_item_id")
    start_time: datetime
    end_time: datetime
    status: BookingStatus = BookingStatus.PENDING
    booked_by: BookedBy = BookedBy.USER
    user_id: Optional[str] = None
    guest_name: Optional[str] = None
    guest_contact: Optional[str] = None
    guest_email: Optional[str] = None
    notes: Optional[str] = None
    internal_memo: Optional[str] = None

    @field_validator("start_time", "end_time")
    @classmethod
    def _assume_clinic_timezone(cls, value: datetime) -> datetime:
        # timestamp (without tz) columns come back naive
        if value.tzinfo is None:
            return value.replace(tzinfo=clinic_timezone())
        return value

    @property
    def is_active(self) -> bool:
        return self.status != BookingStatus.CANCELLED

    @property
    def is_free(self) -> bool:
        return self.staff_id is None

    def to_row(self) -> Dict[str, Any]:
        row = self.model_dump(mode="json", by_alias=True)
        if row.get("id") is None:
            row.pop("id", None)
        return row


class WorkingHours(BaseModel):
    model_config = ConfigDict(frozen=True)

    is_open: bool
    start: Optional[time] = None
    end: Optional[time] = None
    source: str = "none"  # shift | default | clinic | none


class SlotAvailability(BaseModel):
    slot_start: datetime
    status: SlotStatus
    remaining: Optional[int] = None  # free requests only


class CapacityResult(BaseModel):
    capable_staff_ids: List[str]
    consumed: int
    remaining: int
    status: SlotStatus
