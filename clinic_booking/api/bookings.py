from fastapi import APIRouter, Depends

from clinic_booking.api.viewers import get_viewer
from clinic_booking.models.api_models import (
    BookingResponse, CreateBookingRequest, ReassignBookingRequest,
    StatusChangeRequest, UpdateBookingRequest,
)
from clinic_booking.models.db_models import Booking
from clinic_booking.services.viewer_service import ViewerSession

router = APIRouter(prefix="/viewers/{viewer_id}/bookings")


def _response(booking: Booking) -> BookingResponse:
    return BookingResponse(booking=booking.model_dump(mode="json"))


@router.post("", response_model=BookingResponse, status_code=201)
async def create_booking(req: CreateBookingRequest, session: ViewerSession = Depends(get_viewer)):
    booking = await session.booking_service.request_booking(
        start_time=req.start_time,
        service_id=req.service_id,
        staff_id=req.staff_id,
        booked_by=req.booked_by,
        user_id=req.user_id,
        guest_name=req.guest_name,
        guest_contact=req.guest_contact,
        guest_email=req.guest_email,
        notes=req.notes,
    )
    return _response(booking)

@router.patch("/{booking_id}", response_model=BookingResponse)
async def update_booking(booking_id: str, req: UpdateBookingRequest, session: ViewerSession = Depends(get_viewer)):
    # staff_id / notes: only what the client actually sent
    changes = req.model_dump(include=req.model_fields_set & {"staff_id", "notes"})
    booking = await session.booking_service.update_booking(booking_id, start_time=req.start_time, **changes)
    return _response(booking)

@router.post("/{booking_id}/cancel", response_model=BookingResponse)
async def cancel_booking(booking_id: str, session: ViewerSession = Depends(get_viewer)):
    booking = await session.booking_service.cancel_booking(booking_id)
    return _response(booking)

@router.post("/{booking_id}/reassign", response_model=BookingResponse)
async def reassign_booking(booking_id: str, req: ReassignBookingRequest, session: ViewerSession = Depends(get_viewer)):
    booking = await session.booking_service.reassign_booking(booking_id, req.staff_id)
    return _response(booking)

@router.post("/{booking_id}/status", response_model=BookingResponse)
async def change_status(booking_id: str, req: StatusChangeRequest, session: ViewerSession = Depends(get_viewer)):
    booking = await session.booking_service.transition(booking_id, req.status)
    return _response(booking)
