from pydantic import BaseModel
from typing import Optional, List, Dict, Any
from datetime import date, datetime

from clinic_booking.models.db_models import BookedBy, BookingStatus, SlotAvailability

# --- Incoming Request Models ---

class OpenViewerRequest(BaseModel):
    clinic_id: str
    start_date: date
    end_date: date

class CreateBookingRequest(BaseModel):
    start_time: datetime
    service_id: str
    staff_id: Optional[str] = None  # None = anyone capable
    booked_by: BookedBy = BookedBy.USER
    user_id: Optional[str] = None
    guest_name: Optional[str] = None
    guest_contact: Optional[str] = None
    guest_email: Optional[str] = None
    notes: Optional[str] = None

class UpdateBookingRequest(BaseModel):
    # Fields left out of the body stay as they are
    start_time: Optional[datetime] = None
    staff_id: Optional[str] = None
    notes: Optional[str] = None

class ReassignBookingRequest(BaseModel):
    staff_id: Optional[str] = None  # None = back to the free pool

class StatusChangeRequest(BaseModel):
    status: BookingStatus


# --- Outgoing Response Models ---

class ViewerResponse(BaseModel):
    viewer_id: str
    clinic_id: str
    start_date: date
    end_date: date
    ready: bool

class AvailabilityResponse(BaseModel):
    day: date
    service_id: str
    staff_id: Optional[str] = None
    stale: bool = False
    slots: List[SlotAvailability]

class CalendarResponse(BaseModel):
    day: date
    stale: bool = False
    staff: Dict[str, List[SlotAvailability]]

class BookingResponse(BaseModel):
    booking: Dict[str, Any]

class ErrorResponse(BaseModel):
    reason: str
    message: Optional[str] = None
