import logging

from celery import Celery
from .config import settings


broker_url = settings.CELERY_BROKER_URL or "redis://localhost:6379/0"
result_backend = settings.CELERY_RESULT_BACKEND or None

celery_app = Celery(
    "reminders",
    broker=broker_url,
    backend=result_backend,
    include=["npd_reminders.reminders.tasks"],
)

celery_app.conf.update(
    task_acks_late=True,
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    worker_prefetch_multiplier=1,
    worker_concurrency=settings.WORKER_CONCURRENCY,
    worker_hijack_root_logger=False,
)

# Celery Beat schedule for the periodic sweep
celery_app.conf.beat_schedule = {
    "process-reminders": {
        "task": "reminders.process_reminders",
        "schedule": settings.SCAN_INTERVAL_SECONDS,
    },
}

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
