import asyncio
from datetime import date, time, timedelta

import pandas as pd
import streamlit as st

from clinic_booking.core.config import clinic_timezone, settings
from clinic_booking.core.errors import BookingEngineError
from clinic_booking.models.db_models import BookingStatus
from clinic_booking.scheduling.availability import get_availability
from clinic_booking.scheduling.schedule import to_instant
from clinic_booking.services.db_service import db_service
from clinic_booking.services.profile_service import profile_service

# Page Config
st.set_page_config(
    page_title="Clinic Booking Admin",
    page_icon="📅",
    layout="centered"
)

# Header
st.title("Clinic Booking - Admin Console")

tz = clinic_timezone()

async def _load(clinic_id: str, day: date):
    # Every Streamlit run has its own event loop
    db_service.reset_client()
    profile = await profile_service.load_profile(clinic_id, day, day)
    bookings = await db_service.list_bookings(
        clinic_id,
        to_instant(day, time(0, 0), tz),
        to_instant(day + timedelta(days=1), time(0, 0), tz),
    )
    return profile, bookings

def load_data(clinic_id: str, day: date):
    try:
        return asyncio.run(_load(clinic_id, day))
    except (BookingEngineError, FileNotFoundError, ValueError) as e:
        st.error(f"Failed to load clinic data: {e}")
        return None, []

clinic_id = st.text_input("Clinic ID", value="clinic-001")
day = st.date_input("Day", value=date.today())

# Load Data
if st.button("Refresh"):
    st.rerun()

profile, bookings = load_data(clinic_id, day) if clinic_id else (None, [])

if profile is not None:
    df = pd.DataFrame([b.model_dump(mode="json") for b in bookings])

    # Metrics
    counts = df['status'].value_counts() if not df.empty else pd.Series(dtype=int)
    col1, col2, col3, col4, col5 = st.columns(5)
    col1.metric("All", len(df))
    col2.metric("Confirmed", int(counts.get(BookingStatus.CONFIRMED.value, 0)))
    col3.metric("Pending", int(counts.get(BookingStatus.PENDING.value, 0)))
    col4.metric("Cancelled", int(counts.get(BookingStatus.CANCELLED.value, 0)))
    col5.metric("No-show", int(counts.get(BookingStatus.NO_SHOW.value, 0)))

    # Data Table
    st.subheader("Bookings")
    if not df.empty:
        st.dataframe(
            df[["id", "start_time", "end_time", "status", "staff_id", "service_id", "guest_name", "booked_by", "notes"]],
            use_container_width=True,
            column_config={
                "start_time": st.column_config.DatetimeColumn("Start", format="YYYY-MM-DD HH:mm"),
                "end_time": st.column_config.DatetimeColumn("End", format="HH:mm"),
                "staff_id": "Staff",
                "service_id": "Menu",
                "guest_name": "Guest",
                "id": "ID"
            }
        )
    else:
        st.info("No bookings for this day.")

    # Free-request availability
    st.subheader("Availability (any staff)")
    services = {s.name or s.id: s.id for s in profile.services}
    if services:
        service_label = st.selectbox("Menu", list(services))
        slots = get_availability(profile, bookings, day, services[service_label],
                                 granularity_minutes=settings.BOOKING_SLOT_MINUTES, tz=tz)
        st.dataframe(
            pd.DataFrame([
                {"time": s.slot_start.astimezone(tz).strftime("%H:%M"), "status": s.status.value, "remaining": s.remaining}
                for s in slots
            ]),
            use_container_width=True,
        )
    else:
        st.info("This clinic has no menu items.")

# Footer
st.markdown("---")
st.caption(f"{settings.PROJECT_NAME} • {settings.TIMEZONE}")
