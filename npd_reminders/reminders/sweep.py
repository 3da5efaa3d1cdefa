"""
Reminder sweep: finds due, unsent reminders and pushes them.
"""
import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from sqlalchemy.orm import Session

from . import repository
from .config import settings
from .devices import DeviceRegistry
from .dispatcher import PushDispatcher
from .errors import DispatchError, NetworkError, NoTargetFound, TokenInvalid
from .metrics import sweep_runs_total
from .models import Reminder
from .recurrence import RepeatRule, next_occurrence
from .resolver import resolve_target
from npd_reminders.utils.timezone import to_utc_aware, utcnow

logger = logging.getLogger(__name__)


@dataclass
class SweepResult:
    due: int = 0
    sent: int = 0
    advanced: int = 0
    failed: int = 0
    no_target: int = 0
    retried: int = 0
    evicted: int = 0
    errors: int = 0


class ReminderSweepService:
    """One sweep run over a bounded batch of due reminders.

    Items are processed one after another; a failure on one reminder is
    recorded on that row and never stops the rest of the batch.
    """

    def __init__(
        self,
        db: Session,
        dispatcher: PushDispatcher,
        registry: Optional[DeviceRegistry] = None,
        batch_size: Optional[int] = None,
        max_attempts: Optional[int] = None,
    ):
        self.db = db
        self.dispatcher = dispatcher
        self.registry = registry or DeviceRegistry(db)
        self.batch_size = batch_size or settings.BATCH_SIZE
        self.max_attempts = max(1, max_attempts or settings.MAX_DISPATCH_ATTEMPTS)

    def run(self, now: Optional[datetime] = None) -> SweepResult:
        now = to_utc_aware(now) if now else utcnow()
        result = SweepResult()
        due = repository.get_due_reminders(self.db, now, limit=self.batch_size)
        sweep_runs_total.inc()
        result.due = len(due)
        if due:
            logger.info(f"🕒 [Sweep] {len(due)} due reminder(s) at {now.isoformat()}")

        for reminder in due:
            try:
                self._process(reminder, now, result)
            except Exception as e:
                result.errors += 1
                logger.exception(f"❌ [Sweep] Unexpected error on reminder={reminder.id}")
                self.db.rollback()
                self._mark_terminal(reminder, str(e) or type(e).__name__)
        return result

    def _mark_terminal(self, reminder: Reminder, reason: str) -> None:
        try:
            repository.mark_failed(self.db, reminder, reason)
        except Exception:
            logger.exception(f"❌ [Sweep] Could not record failure on reminder={reminder.id}")
            self.db.rollback()

    def _process(self, reminder: Reminder, now: datetime, result: SweepResult) -> None:
        try:
            token = resolve_target(reminder, self.registry)
        except NoTargetFound as e:
            repository.mark_failed(self.db, reminder, str(e))
            result.no_target += 1
            logger.info(f"⚠️  [Sweep] reminder={reminder.id} has no delivery target")
            return

        data = {**(reminder.payload or {}), "reminderId": reminder.id}
        try:
            self.dispatcher.send_to_token(token, reminder.title, reminder.body or "", data)
        except TokenInvalid as e:
            repository.mark_failed(self.db, reminder, str(e))
            result.failed += 1
            if self.registry.evict(reminder.owner_id or token):
                result.evicted += 1
            return
        except NetworkError as e:
            if (reminder.attempts or 0) + 1 < self.max_attempts:
                repository.record_attempt(self.db, reminder, str(e))
                result.retried += 1
                logger.info(f"🔁 [Sweep] reminder={reminder.id} will be retried: {e}")
            else:
                repository.mark_failed(self.db, reminder, str(e))
                result.failed += 1
            return
        except DispatchError as e:
            repository.mark_failed(self.db, reminder, str(e))
            result.failed += 1
            return

        rule = reminder.repeat_rule or RepeatRule.NONE.value
        if rule != RepeatRule.NONE.value:
            next_at = next_occurrence(to_utc_aware(reminder.scheduled_at), rule)
            if repository.advance_occurrence(self.db, reminder, next_at):
                result.advanced += 1
                logger.info(f"✅ [Sweep] reminder={reminder.id} sent, next occurrence {next_at.isoformat()}")
        elif repository.mark_sent(self.db, reminder, now):
            result.sent += 1
            logger.info(f"✅ [Sweep] reminder={reminder.id} sent")


def run_sweep_once(
    session_factory: Callable[[], Session],
    dispatcher: Optional[PushDispatcher] = None,
    now: Optional[datetime] = None,
) -> SweepResult:
    db = session_factory()
    try:
        return ReminderSweepService(db, dispatcher or PushDispatcher()).run(now)
    finally:
        db.close()


class SweepWorker:
    """Runs the sweep on a fixed period inside an asyncio loop (API process mode).

    The loop task is owned by the worker and cancelled by ``stop()``.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        dispatcher: Optional[PushDispatcher] = None,
        interval_seconds: Optional[int] = None,
    ):
        self.session_factory = session_factory
        self.dispatcher = dispatcher or PushDispatcher()
        self.interval_seconds = interval_seconds or settings.SCAN_INTERVAL_SECONDS
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._loop())
        logger.info(f"🚀 [Sweep] In-process sweep started (every {self.interval_seconds}s)")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("⏹️  [Sweep] In-process sweep stopped")

    async def _loop(self) -> None:
        while True:
            try:
                await asyncio.to_thread(run_sweep_once, self.session_factory, self.dispatcher)
            except Exception:
                logger.exception("❌ [Sweep] worker error")
            await asyncio.sleep(self.interval_seconds)
