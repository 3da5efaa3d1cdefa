from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict


class ClientSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="NPD_CLIENT_", env_file=".env", extra="ignore")

    # Server surface (registerToken, scheduleReminder, ...)
    FUNCTIONS_BASE_URL: Optional[str] = None
    HTTP_TIMEOUT_SECONDS: int = 10

    # Local scheduler
    CHANNEL_ID: str = "npd_reminders"
    HISTORY_CAP: int = 100
    WEB_TIMER_HORIZON_SECONDS: int = 24 * 60 * 60

    # Web fallback poller
    POLL_INTERVAL_SECONDS: int = 10
    FIRE_WINDOW_SECONDS: int = 60
    FIRED_MARKER_CAP: int = 200
    FIRED_MARKER_TRIM_TO: int = 100


settings = ClientSettings()
