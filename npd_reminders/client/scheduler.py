"""
Local Scheduler

Turns reminders into platform-scheduled notifications through the delivery
channel chosen at startup, and translates user actions on delivered
notifications (complete / snooze / tap) into events on the notification bus.
"""
from datetime import datetime, time, timedelta
import logging
import random
from typing import Any, Dict, Iterable, List, Mapping, Optional, Set, Tuple, Union

from .capabilities import ActionPerformed, LocalNotification
from .channels import TASK_REMINDER_ACTION_TYPE, DeliveryChannel
from .config import ClientSettings, settings as client_settings
from .events import (
    E,
    NotificationBus,
    NotificationReceived,
    NotificationSnoozed,
    Rescheduled,
    SourceEvent,
)
from .settings_store import InMemorySettingsStore, SettingsStore
from .sources import HabitItem, NoteItem, RecurringExpense, TaskItem

logger = logging.getLogger(__name__)


SNOOZE_MINUTES: Dict[str, int] = {
    "5min": 5,
    "15min": 15,
    "1hour": 60,
    "3hours": 180,
    "tomorrow": 1440,
}
SNOOZE_ACTIONS: Dict[str, str] = {
    "snooze": "15min",
    "snooze_5": "5min",
    "snooze_15": "15min",
    "snooze_1h": "1hour",
}

# extra keys that tie a notification back to its source item
CORRELATION_KEYS: Tuple[Tuple[str, str], ...] = (
    ("taskId", "task"),
    ("noteId", "note"),
    ("habitId", "habit"),
    ("billId", "bill"),
)

DEFAULT_AUTO_REMINDER_TIMES = {"morning": 9, "afternoon": 14, "evening": 19}
DEFAULT_GAMIFICATION_SETTINGS = {
    "streakReminders": True,
    "challengeReminders": True,
    "gracePeriodAlerts": True,
    "reminderTime": "20:00",
}

# Fixed-purpose slots. Re-scheduling one replaces the pending notification.
STREAK_REMINDER_SLOT = 900_001
RESERVED_SLOTS = frozenset({STREAK_REMINDER_SLOT})

HISTORY_KEY = "notificationHistory"
AUTO_REMINDER_TIMES_KEY = "autoReminderTimes"
GAMIFICATION_KEY = "gamificationNotifications"

_MAX_SLOT_ID = 2**31 - 1


def _local_now() -> datetime:
    return datetime.now().astimezone()


def source_of(extra: Optional[Mapping[str, Any]]) -> Optional[Tuple[str, str]]:
    """(kind, id) of the item a notification belongs to, if it carries one."""
    if not extra:
        return None
    for key, kind in CORRELATION_KEYS:
        if extra.get(key):
            return kind, str(extra[key])
    return None


def next_daily_slot(hhmm: str, now: datetime) -> datetime:
    """Next occurrence of a local HH:MM wall-clock time, today if still ahead."""
    hours, minutes = (int(part) for part in hhmm.split(":", 1))
    candidate = now.replace(hour=hours, minute=minutes, second=0, microsecond=0)
    if candidate <= now:
        candidate += timedelta(days=1)
    return candidate


def resolve_reschedule(when: Union[str, datetime], now: datetime) -> datetime:
    if isinstance(when, datetime):
        return when
    nine_am = time(hour=9)
    if when == "later_today":
        return now + timedelta(hours=3)
    if when == "tomorrow":
        return datetime.combine(now.date() + timedelta(days=1), nine_am, tzinfo=now.tzinfo)
    if when == "next_week":
        return datetime.combine(now.date() + timedelta(days=7), nine_am, tzinfo=now.tzinfo)
    raise ValueError(f"Unknown reschedule option: {when}")


class LocalScheduler:
    def __init__(
        self,
        channel: DeliveryChannel,
        bus: NotificationBus,
        store: Optional[SettingsStore] = None,
        config: Optional[ClientSettings] = None,
        clock=_local_now,
    ):
        self.channel = channel
        self.bus = bus
        self.store = store or InMemorySettingsStore()
        self.config = config or client_settings
        self._clock = clock
        self._live: Set[int] = set()
        self._initialized = False

    async def initialize(self) -> None:
        if self._initialized:
            return
        await self.channel.setup(on_action=self.handle_action, on_received=self.handle_received)
        self._initialized = True
        logger.info(f"✅ [LocalScheduler] initialized (native={self.channel.native})")

    async def close(self) -> None:
        await self.channel.close()
        self._live.clear()

    async def request_permissions(self) -> bool:
        return await self.channel.request_permissions()

    async def check_permissions(self) -> bool:
        return await self.channel.check_permissions()

    # ---- scheduling primitives ----

    def _mint_handle_id(self) -> int:
        while True:
            candidate = random.randint(1, _MAX_SLOT_ID)
            if candidate not in self._live and candidate not in RESERVED_SLOTS:
                return candidate

    async def schedule(
        self,
        title: str,
        body: str,
        scheduled_at: datetime,
        extra: Optional[Dict[str, Any]] = None,
        handle_id: Optional[int] = None,
    ) -> int:
        """Schedule one local notification and return its handle id.

        The id is returned even when the platform refused the notification;
        callers treat it as best-effort.
        """
        extra = dict(extra or {})
        notif_id = handle_id if handle_id is not None else self._mint_handle_id()
        notification = LocalNotification(
            id=notif_id,
            title=title,
            body=body,
            at=scheduled_at,
            extra=extra,
            action_type_id=TASK_REMINDER_ACTION_TYPE.id if extra.get("type") == "task" else None,
        )
        if await self.channel.schedule(notification):
            self._live.add(notif_id)
        return notif_id

    async def cancel(self, handle_ids: Iterable[int]) -> None:
        ids = [int(i) for i in handle_ids]
        if not ids:
            return
        await self.channel.cancel(ids)
        self._live.difference_update(ids)

    async def cancel_all(self) -> None:
        pending = await self.get_pending()
        await self.cancel(n.id for n in pending)
        logger.info(f"[LocalScheduler] cancelled {len(pending)} pending notifications")

    async def get_pending(self) -> List[LocalNotification]:
        return await self.channel.get_pending()

    async def snooze(self, notification: LocalNotification, option: str) -> int:
        minutes = SNOOZE_MINUTES.get(option, 15)
        until = self._clock() + timedelta(minutes=minutes)
        data = notification.extra or {}
        extra: Dict[str, Any] = {}
        for key in ("taskId", "noteId"):
            if data.get(key):
                extra[key] = data[key]
        extra["type"] = data.get("type") or "task"
        extra["snoozed"] = "true"

        handle_id = await self.schedule(
            notification.title or "Snoozed Reminder",
            notification.body or "",
            until,
            extra,
        )
        src = source_of(extra)
        self.bus.publish(
            E.SNOOZED,
            NotificationSnoozed(
                source_kind=src[0] if src else None,
                source_id=src[1] if src else None,
                handle_id=handle_id,
                until=until,
            ),
        )
        logger.info(f"😴 [LocalScheduler] snoozed {notification.id} for {option}")
        return handle_id

    async def reschedule(
        self,
        source_kind: str,
        source_id: str,
        title: str,
        body: str,
        when: Union[str, datetime],
        handle_ids: Iterable[int] = (),
    ) -> int:
        at = resolve_reschedule(when, self._clock())
        await self.cancel(handle_ids)
        handle_id = await self.schedule(title, body, at, {f"{source_kind}Id": source_id, "type": source_kind})
        self.bus.publish(
            E.RESCHEDULED,
            Rescheduled(source_kind=source_kind, source_id=source_id, handle_id=handle_id, at=at),
        )
        return handle_id

    # ---- platform listeners ----

    async def handle_action(self, action: ActionPerformed) -> None:
        extra = action.notification.extra or {}
        src = source_of(extra)
        if action.action_id == "complete" and src:
            self.bus.publish(E.COMPLETED, SourceEvent(src[0], src[1], action.action_id))
        elif action.action_id in SNOOZE_ACTIONS:
            await self.snooze(action.notification, SNOOZE_ACTIONS[action.action_id])
        elif src:
            self.bus.publish(E.OPENED, SourceEvent(src[0], src[1], action.action_id))
        else:
            logger.debug(f"[LocalScheduler] action {action.action_id} on uncorrelated notification")

    async def handle_received(self, notification: LocalNotification) -> None:
        self._live.discard(notification.id)
        history = await self.store.get(HISTORY_KEY, [])
        history.insert(0, {
            "id": notification.id,
            "title": notification.title,
            "body": notification.body,
            "timestamp": self._clock().isoformat(),
            "read": False,
            "extra": notification.extra,
        })
        await self.store.set(HISTORY_KEY, history[: self.config.HISTORY_CAP])
        self.bus.publish(E.RECEIVED, NotificationReceived(notification))

    # ---- history ----

    async def get_history(self) -> List[Dict[str, Any]]:
        return await self.store.get(HISTORY_KEY, [])

    async def clear_history(self) -> None:
        await self.store.set(HISTORY_KEY, [])

    async def mark_as_read(self, notification_id: int) -> None:
        history = await self.store.get(HISTORY_KEY, [])
        for entry in history:
            if entry.get("id") == notification_id:
                entry["read"] = True
        await self.store.set(HISTORY_KEY, history)

    # ---- source adapters ----

    async def schedule_task_reminder(self, task: TaskItem) -> List[int]:
        at = task.reminder_at
        if at is None:
            logger.debug(f"[LocalScheduler] no reminder time for task {task.id}")
            return []
        handle_id = await self.schedule(
            "⏰ Task Reminder",
            task.text,
            at,
            {"taskId": task.id, "type": "task", "priority": task.priority or "medium"},
        )
        return [handle_id]

    async def schedule_note_reminder(self, note: NoteItem) -> List[int]:
        if note.reminder_time is None:
            return []
        handle_id = await self.schedule(
            "📝 Note Reminder", note.title, note.reminder_time, {"noteId": note.id, "type": "note"}
        )
        return [handle_id]

    async def schedule_habit_reminder(self, habit: HabitItem) -> List[int]:
        if not habit.reminder_enabled or not habit.reminder_time:
            return []
        at = next_daily_slot(habit.reminder_time, self._clock())
        handle_id = await self.schedule(
            "🔄 Habit Reminder", habit.name, at, {"habitId": habit.id, "type": "habit"}
        )
        return [handle_id]

    async def reschedule_all_tasks(self, tasks: Iterable[TaskItem]) -> List[int]:
        ids: List[int] = []
        for task in tasks:
            ids.extend(await self.schedule_task_reminder(task))
        return ids

    async def get_auto_reminder_times(self) -> Dict[str, int]:
        saved = await self.store.get(AUTO_REMINDER_TIMES_KEY)
        return saved or dict(DEFAULT_AUTO_REMINDER_TIMES)

    async def schedule_auto_reminders(self, task: TaskItem) -> List[int]:
        """Morning/afternoon/evening reminders on the task's due day, future slots only."""
        now = self._clock()
        day = task.due_date.astimezone(now.tzinfo) if task.due_date else now
        ids: List[int] = []
        for label, hour in (await self.get_auto_reminder_times()).items():
            at = day.replace(hour=int(hour), minute=0, second=0, microsecond=0)
            if at <= now:
                continue
            ids.append(await self.schedule(
                f"{label.capitalize()} Reminder",
                task.text,
                at,
                {"taskId": task.id, "type": "task", "autoReminder": label},
            ))
        return ids

    async def schedule_budget_alert(self, category: str, spent: float, budget: float, currency: str) -> int:
        percentage = round(spent / budget * 100)
        return await self.schedule(
            f"Budget Alert: {category}",
            f"You've spent {currency}{spent:.2f} of {currency}{budget:.2f} ({percentage}%)",
            self._clock() + timedelta(milliseconds=500),
            {"type": "budget", "category": category, "percentage": str(percentage)},
        )

    async def check_budget_alerts(
        self, spending: Mapping[str, float], budgets: Mapping[str, float], currency: str
    ) -> List[int]:
        ids = []
        for category, budget in budgets.items():
            if not budget:
                continue
            spent = spending.get(category, 0)
            if spent / budget * 100 >= 80:
                ids.append(await self.schedule_budget_alert(category, spent, budget, currency))
        return ids

    async def schedule_bill_reminder(
        self,
        bill_id: str,
        description: str,
        amount: float,
        due_date: datetime,
        reminder_days: int,
        currency: str,
    ) -> Optional[int]:
        at = due_date - timedelta(days=reminder_days)
        if at <= self._clock():
            return None
        return await self.schedule(
            "Bill Due Soon",
            f"{description} - {currency}{amount:.2f} due {due_date.date().isoformat()}",
            at,
            {"type": "bill", "billId": bill_id, "dueDate": due_date.isoformat()},
        )

    async def check_bill_reminders(self, expenses: Iterable[RecurringExpense], currency: str) -> List[int]:
        now = self._clock()
        ids = []
        for expense in expenses:
            if not expense.enabled:
                continue
            due = _day_of_month(now, expense.day_of_month)
            if due < now:
                due = _day_of_month(_first_of_next_month(now), expense.day_of_month)
            handle_id = await self.schedule_bill_reminder(
                expense.id, expense.description, expense.amount, due, expense.reminder_days or 3, currency
            )
            if handle_id is not None:
                ids.append(handle_id)
        return ids

    async def schedule_streak_reminder(self) -> Optional[int]:
        prefs = {**DEFAULT_GAMIFICATION_SETTINGS, **(await self.store.get(GAMIFICATION_KEY, {}) or {})}
        if not prefs["streakReminders"]:
            await self.cancel([STREAK_REMINDER_SLOT])
            return None
        at = next_daily_slot(prefs["reminderTime"], self._clock())
        return await self.schedule(
            "🔥 Keep your streak alive",
            "Complete a task today to keep your streak going.",
            at,
            {"type": "gamification"},
            handle_id=STREAK_REMINDER_SLOT,
        )


def _first_of_next_month(now: datetime) -> datetime:
    if now.month == 12:
        return now.replace(year=now.year + 1, month=1, day=1)
    return now.replace(month=now.month + 1, day=1)


def _day_of_month(ref: datetime, day: int) -> datetime:
    """Midnight of ``day`` in ref's month, overflowing into the next month like a calendar date would."""
    start = ref.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    return start + timedelta(days=day - 1)
