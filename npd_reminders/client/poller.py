"""
Web Fallback Poller

Used only when no native notification subsystem is present. Every poll
period it loads tasks and notes and raises an in-app alert for each
occurrence that fell due within the fire window and has not fired yet.
"""
import asyncio
from collections import OrderedDict
from datetime import datetime, timedelta, timezone
import logging
from typing import List, Optional

from npd_reminders.utils.timezone import epoch_ms, to_utc_aware

from .capabilities import PermissionState, WebNotifier
from .config import ClientSettings, settings as client_settings
from .events import E, InAppAlert, NotificationBus
from .settings_store import SettingsStore
from .sources import ItemProvider

logger = logging.getLogger(__name__)

FIRED_MARKERS_KEY = "firedReminderIds"


def marker_key(kind: str, ref: str, occurrence: datetime) -> str:
    return f"{kind}-{ref}-{epoch_ms(occurrence)}"


def _occurrence_ms(key: str) -> int:
    try:
        return int(key.rsplit("-", 1)[1])
    except (IndexError, ValueError):
        return 0


class FiredMarkerBuffer:
    """Insertion-ordered set of fired occurrence keys with bounded size.

    On overflow the oldest markers are dropped down to ``trim_to``, except
    markers whose occurrence is still inside the fire window; those are kept
    even if that leaves the buffer above its cap.
    """

    def __init__(self, cap: int, trim_to: int, window_ms: int):
        self.cap = cap
        self.trim_to = trim_to
        self.window_ms = window_ms
        self._keys: "OrderedDict[str, None]" = OrderedDict()

    def __contains__(self, key: str) -> bool:
        return key in self._keys

    def __len__(self) -> int:
        return len(self._keys)

    def keys(self) -> List[str]:
        return list(self._keys)

    def load(self, keys) -> None:
        self._keys = OrderedDict((k, None) for k in keys or [])

    def add(self, key: str, now_ms: int) -> None:
        self._keys[key] = None
        if len(self._keys) > self.cap:
            self.trim(now_ms)

    def trim(self, now_ms: int) -> None:
        keys = list(self._keys)
        keep = set(keys[-self.trim_to:]) if self.trim_to else set()
        cutoff = now_ms - self.window_ms
        self._keys = OrderedDict(
            (k, None) for k in keys if k in keep or _occurrence_ms(k) > cutoff
        )


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class WebFallbackPoller:
    def __init__(
        self,
        provider: ItemProvider,
        bus: NotificationBus,
        notifier: Optional[WebNotifier] = None,
        store: Optional[SettingsStore] = None,
        config: Optional[ClientSettings] = None,
        clock=_utcnow,
    ):
        self.provider = provider
        self.bus = bus
        self.notifier = notifier
        self.store = store
        self.config = config or client_settings
        self._clock = clock
        self.window = timedelta(seconds=self.config.FIRE_WINDOW_SECONDS)
        self.markers = FiredMarkerBuffer(
            cap=self.config.FIRED_MARKER_CAP,
            trim_to=self.config.FIRED_MARKER_TRIM_TO,
            window_ms=self.config.FIRE_WINDOW_SECONDS * 1000,
        )
        self._markers_loaded = False
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._loop(), name="web-fallback-poller")
        logger.info(f"🚀 [WebPoller] started (every {self.config.POLL_INTERVAL_SECONDS}s)")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("[WebPoller] stopped")

    async def _loop(self) -> None:
        if self.notifier is not None and self.notifier.permission() == PermissionState.PROMPT:
            try:
                await self.notifier.request_permission()
            except Exception as e:
                logger.debug(f"[WebPoller] permission request failed: {e}")
        while True:
            await self.poll_once()
            await asyncio.sleep(self.config.POLL_INTERVAL_SECONDS)

    def _due(self, occurrence: Optional[datetime], now: datetime) -> bool:
        # naive times are taken as UTC
        return occurrence is not None and now - self.window < to_utc_aware(occurrence) <= now

    async def poll_once(self, now: Optional[datetime] = None) -> List[str]:
        """Check all items once; returns the marker keys fired on this tick."""
        now = to_utc_aware(now or self._clock())
        if not self._markers_loaded:
            if self.store is not None:
                self.markers.load(await self.store.get(FIRED_MARKERS_KEY, []))
            self._markers_loaded = True

        fired: List[str] = []
        try:
            tasks = await self.provider.load_tasks()
        except Exception as e:
            logger.warning(f"[WebPoller] task check failed: {e}")
            tasks = []
        for task in tasks:
            try:
                occurrence = task.reminder_at
                if task.completed or not self._due(occurrence, now):
                    continue
                key = marker_key("task", task.id, occurrence)
                if key in self.markers:
                    continue
                self._fire(InAppAlert(title="⏰ Task Reminder", body=task.text, key=key, priority=task.priority,
                                      extra={"taskId": task.id, "type": "task"}), now)
                fired.append(key)
            except Exception as e:
                logger.warning(f"[WebPoller] skipping task {getattr(task, 'id', '?')}: {e}")

        try:
            notes = await self.provider.load_notes()
        except Exception as e:
            logger.warning(f"[WebPoller] note check failed: {e}")
            notes = []
        for note in notes:
            try:
                if not self._due(note.reminder_time, now):
                    continue
                key = marker_key("note", note.id, note.reminder_time)
                if key in self.markers:
                    continue
                self._fire(InAppAlert(title="📝 Note Reminder", body=note.title or "Untitled Note", key=key,
                                      extra={"noteId": note.id, "type": "note"}), now)
                fired.append(key)
            except Exception as e:
                logger.warning(f"[WebPoller] skipping note {getattr(note, 'id', '?')}: {e}")

        if fired and self.store is not None:
            await self.store.set(FIRED_MARKERS_KEY, self.markers.keys())
        return fired

    def _fire(self, alert: InAppAlert, now: datetime) -> None:
        self.markers.add(alert.key, epoch_ms(now))
        logger.info(f"🔔 [WebPoller] firing {alert.key}")
        self.bus.publish(E.IN_APP_ALERT, alert)
        if self.notifier is not None:
            try:
                if self.notifier.permission() == PermissionState.GRANTED:
                    self.notifier.show(alert.title, alert.body)
            except Exception as e:
                logger.debug(f"[WebPoller] OS notification failed: {e}")
