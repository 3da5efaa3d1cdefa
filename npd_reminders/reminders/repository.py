from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple
from sqlalchemy.orm import Session
from sqlalchemy import select, update, delete

from .errors import NotFound
from .models import Reminder
from .recurrence import RepeatRule
from .schemas import ScheduleReminderRequest
from npd_reminders.utils.timezone import to_utc_aware, utcnow


# payload key -> source kind, in lookup order
_SOURCE_KEYS = (
    ("taskId", "task"),
    ("noteId", "note"),
    ("habitId", "habit"),
    ("billId", "bill"),
    ("budgetId", "budget"),
)
SOURCE_KINDS = {"task", "note", "budget", "bill", "habit", "gamification"}


def derive_source(data: Optional[Dict[str, Any]]) -> Tuple[str, Optional[str]]:
    """Work out (source_kind, source_ref) from the pass-through payload."""
    data = data or {}
    declared = str(data.get("type") or "").lower()
    # the correlation key decides the kind; "type" only matters without one
    for key, kind in _SOURCE_KEYS:
        if data.get(key):
            return kind, str(data[key])
    return (declared if declared in SOURCE_KINDS else "task"), None


def create_reminder(db: Session, data: ScheduleReminderRequest) -> Reminder:
    payload = {k: v for k, v in (data.data or {}).items() if v is not None}
    source_kind, source_ref = derive_source(payload)
    reminder = Reminder(
        owner_id=data.user_id or None,
        token=data.token or None,
        source_kind=source_kind,
        source_ref=source_ref,
        title=data.title,
        body=data.body or "",
        # Normalize to UTC-aware for storage in timestamptz column
        scheduled_at=to_utc_aware(data.scheduled_at),
        repeat_rule=RepeatRule.parse(data.repeat_type).value,
        payload=payload,
        sent=False,
        attempts=0,
    )
    db.add(reminder)
    db.commit()
    db.refresh(reminder)
    return reminder


def get_reminder(db: Session, reminder_id: str) -> Optional[Reminder]:
    return db.get(Reminder, reminder_id)


def delete_reminder(db: Session, reminder_id: str) -> None:
    """Delete by id. Raises NotFound when there was no such reminder."""
    result = db.execute(delete(Reminder).where(Reminder.id == reminder_id))
    db.commit()
    if result.rowcount == 0:
        raise NotFound(f"Reminder {reminder_id} not found")


def delete_pending_by_source(
    db: Session, source_kind: str, source_ref: str, owner_id: Optional[str] = None
) -> int:
    """Delete unsent reminders linked to a task/note. Already-sent rows are kept."""
    stmt = (
        delete(Reminder)
        .where(Reminder.source_kind == source_kind)
        .where(Reminder.source_ref == source_ref)
        .where(Reminder.sent == False)  # noqa: E712
    )
    if owner_id:
        stmt = stmt.where(Reminder.owner_id == owner_id)
    result = db.execute(stmt)
    db.commit()
    return result.rowcount


def get_due_reminders(db: Session, now: datetime, limit: int = 100) -> List[Reminder]:
    # Only the batch size is bounded; no ordering guarantee is given to callers
    stmt = (
        select(Reminder)
        .where(Reminder.sent == False)  # noqa: E712
        .where(Reminder.scheduled_at <= to_utc_aware(now))
        .limit(limit)
        # compare-and-set writes bypass the identity map; reload what we observe
        .execution_options(populate_existing=True)
    )
    return list(db.execute(stmt).scalars())


def _compare_and_set(db: Session, reminder: Reminder, **values) -> bool:
    """Update only if the row still holds the occurrence we observed.

    Two overlapping sweeps that pick up the same row both attempt this write;
    exactly one of them wins and the other becomes a no-op.
    """
    values.setdefault("updated_at", utcnow())
    result = db.execute(
        update(Reminder)
        .where(Reminder.id == reminder.id)
        .where(Reminder.sent == False)  # noqa: E712
        .where(Reminder.scheduled_at == reminder.scheduled_at)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    db.commit()
    return result.rowcount == 1


def mark_sent(db: Session, reminder: Reminder, sent_at: datetime) -> bool:
    return _compare_and_set(db, reminder, sent=True, sent_at=to_utc_aware(sent_at), last_error=None)


def mark_failed(db: Session, reminder: Reminder, reason: str) -> bool:
    """Terminal failure: the sweep will not pick the reminder up again."""
    return _compare_and_set(
        db, reminder, sent=True, last_error=reason, attempts=(reminder.attempts or 0) + 1
    )


def record_attempt(db: Session, reminder: Reminder, reason: str) -> bool:
    """Non-terminal failure: keep the reminder due so a later sweep retries it."""
    return _compare_and_set(db, reminder, last_error=reason, attempts=(reminder.attempts or 0) + 1)


def advance_occurrence(db: Session, reminder: Reminder, next_at: datetime) -> bool:
    """Move a recurring reminder to its next occurrence; it stays unsent."""
    return _compare_and_set(
        db, reminder, scheduled_at=to_utc_aware(next_at), last_error=None, attempts=0
    )
