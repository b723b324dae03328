from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request

from clinic_booking.core.config import settings
from clinic_booking.models.api_models import (
    AvailabilityResponse, CalendarResponse, OpenViewerRequest, ViewerResponse,
)
from clinic_booking.services.viewer_service import ViewerRegistry, ViewerSession

router = APIRouter()

# Give the seed a moment so the first availability query is not empty
READY_TIMEOUT_SECONDS = 5.0


def get_registry(request: Request) -> ViewerRegistry:
    return request.app.state.viewers

def get_viewer(viewer_id: str, registry: ViewerRegistry = Depends(get_registry)) -> ViewerSession:
    session = registry.get(viewer_id)
    if session is None:
        raise HTTPException(status_code=404, detail=f"Unknown viewer '{viewer_id}'")
    return session


@router.post("/viewers", response_model=ViewerResponse, status_code=201)
async def open_viewer(req: OpenViewerRequest, registry: ViewerRegistry = Depends(get_registry)):
    try:
        session = await registry.open(req.clinic_id, req.start_date, req.end_date)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))

    ready = await session.coordinator.wait_ready(READY_TIMEOUT_SECONDS)
    return ViewerResponse(
        viewer_id=session.viewer_id,
        clinic_id=session.clinic_id,
        start_date=req.start_date,
        end_date=req.end_date,
        ready=ready,
    )

@router.delete("/viewers/{viewer_id}")
async def close_viewer(viewer_id: str, registry: ViewerRegistry = Depends(get_registry)):
    if not await registry.close(viewer_id):
        raise HTTPException(status_code=404, detail=f"Unknown viewer '{viewer_id}'")
    return {"closed": True}

@router.get("/viewers/{viewer_id}/availability", response_model=AvailabilityResponse)
async def availability(
    day: date,
    service_id: str,
    staff_id: Optional[str] = None,
    granularity: Optional[int] = None,
    session: ViewerSession = Depends(get_viewer),
):
    granularity = granularity or settings.BOOKING_SLOT_MINUTES
    slots = session.get_availability(day, service_id, staff_id, granularity)
    return AvailabilityResponse(
        day=day, service_id=service_id, staff_id=staff_id, stale=session.is_stale, slots=slots,
    )

@router.get("/viewers/{viewer_id}/calendar", response_model=CalendarResponse)
async def calendar(
    day: date,
    granularity: Optional[int] = None,
    session: ViewerSession = Depends(get_viewer),
):
    grid = session.staff_calendar(day, granularity or settings.CALENDAR_SLOT_MINUTES)
    return CalendarResponse(day=day, stale=session.is_stale, staff=grid)
