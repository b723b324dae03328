import json
import os
from datetime import date
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from clinic_booking.core.config import settings
from clinic_booking.core.logger import logger
from clinic_booking.models.db_models import Clinic, ClinicProfile, Service, Shift, Staff


def attach_shifts(staff: List[Staff], shifts: List[Shift]) -> List[Staff]:
    """Returns copies of `staff` with each shift set as a date override."""
    by_staff: Dict[str, Dict[date, Shift]] = {}
    for shift in shifts:
        by_staff.setdefault(shift.staff_id, {})[shift.shift_date] = shift
    return [
        s.model_copy(update={"shift_overrides": {**s.shift_overrides, **by_staff.get(s.id, {})}})
        for s in staff
    ]


def profile_from_dict(data: Dict[str, Any]) -> ClinicProfile:
    """
    Builds a ClinicProfile from the web app's clinic shape:
    {"id", "name", "businessHours", "staffInfo": [...], "menuItems": [...], "shifts": [...]}
    """
    clinic = Clinic.model_validate(data)
    staff = [Staff.model_validate(s) for s in data.get("staffInfo") or []]
    services = [Service.model_validate(m) for m in data.get("menuItems") or []]
    shifts = [Shift.model_validate(s) for s in data.get("shifts") or []]
    return ClinicProfile(clinic=clinic, staff=attach_shifts(staff, shifts), services=services)


def load_clinic_profile(path: Optional[str] = None) -> ClinicProfile:
    """
    Loads a clinic profile from a JSON file.
    Raises FileNotFoundError if the file is missing, ValueError if it is malformed.
    """
    path = path or settings.PROFILE_PATH
    if not os.path.exists(path):
        logger.critical(f"❌ Clinic profile '{path}' not found")
        raise FileNotFoundError(f"Clinic profile not found at {path}")

    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        logger.critical(f"❌ Invalid JSON in clinic profile: {e}")
        raise ValueError(f"Invalid JSON in clinic profile: {e}")

    try:
        profile = profile_from_dict(data)
    except ValidationError as e:
        logger.critical(f"❌ Clinic profile does not match the expected shape: {e}")
        raise ValueError(f"Invalid clinic profile: {e}")

    logger.info(f"✅ Profile loaded for: {profile.clinic.name or profile.clinic.id} ({len(profile.staff)} staff, {len(profile.services)} services)")
    return profile
