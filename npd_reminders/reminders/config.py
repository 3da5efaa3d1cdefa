from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional


class ReminderSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="REMINDER_", env_file=".env", extra="ignore")

    # Sweep
    SCAN_INTERVAL_SECONDS: int = 60
    BATCH_SIZE: int = 100
    # 1 = fail fast: a failed dispatch is terminal on the first attempt
    MAX_DISPATCH_ATTEMPTS: int = 1
    INPROCESS_SWEEP: bool = False

    # Celery configuration
    CELERY_BROKER_URL: Optional[str] = None
    CELERY_RESULT_BACKEND: Optional[str] = None
    WORKER_CONCURRENCY: int = 2

    # FCM
    FCM_PROJECT_ID: Optional[str] = None
    FCM_CREDENTIALS_JSON: Optional[str] = None  # path or inline JSON via env
    CHANNEL_ID: str = "npd_reminders"
    MULTICAST_CHUNK_SIZE: int = 500

    # Metrics
    METRICS_ENABLED: bool = True


settings = ReminderSettings()
