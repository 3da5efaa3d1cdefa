from dataclasses import asdict

from celery import shared_task

from npd_reminders.db.session import SessionLocal
from .sweep import run_sweep_once


@shared_task(name="reminders.process_reminders")
def process_reminders_task() -> dict:
    """Periodic trigger: run one sweep over due reminders. Returns the sweep counters."""
    return asdict(run_sweep_once(SessionLocal))
