from zoneinfo import ZoneInfo
from pydantic_settings import BaseSettings

class Settings(BaseSettings):
    PROJECT_NAME: str = "Clinic Booking Engine"

    # Server
    PORT: int = 8000
    ENVIRONMENT: str = "development"

    # Supabase
    SUPABASE_URL: str = ""
    SUPABASE_KEY: str = ""

    # Scheduling
    TIMEZONE: str = "Asia/Tokyo"
    BOOKING_SLOT_MINUTES: int = 60   # booking wizard
    CALENDAR_SLOT_MINUTES: int = 30  # staff calendar
    DEFAULT_SERVICE_MINUTES: int = 60
    REVALIDATE_ON_COMMIT: bool = True

    # Live sync
    SYNC_RECONNECT_ATTEMPTS: int = 1

    # Profile store: "supabase" or "file"
    PROFILE_SOURCE: str = "supabase"
    PROFILE_PATH: str = "data/clinic_profile.json"

    class Config:
        env_file = ".env"
        case_sensitive = True

settings = Settings()

def clinic_timezone() -> ZoneInfo:
    return ZoneInfo(settings.TIMEZONE)
