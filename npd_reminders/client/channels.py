"""
Delivery channels for locally scheduled notifications.

Exactly one channel is chosen at startup by ``select_channel``: the native
channel when the host exposes a notification subsystem, otherwise the web
fallback channel backed by in-process timers.
"""
import asyncio
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from enum import IntEnum
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set, Tuple

from npd_reminders.reminders.errors import PermissionDenied

from .capabilities import (
    ACTION_PERFORMED,
    NOTIFICATION_RECEIVED,
    Action,
    ActionType,
    ChannelConfig,
    LocalNotification,
    NotificationSubsystem,
    PermissionState,
    WebNotifier,
    is_capability_unavailable,
)
from .config import ClientSettings, settings as client_settings

logger = logging.getLogger(__name__)


TASK_REMINDER_ACTION_TYPE = ActionType(
    id="TASK_REMINDER_ACTION_TYPE",
    actions=[
        Action(id="complete", title="Complete"),
        Action(id="snooze", title="Snooze"),
    ],
)
SNOOZE_ACTION_TYPE = ActionType(
    id="SNOOZE_ACTION_TYPE",
    actions=[
        Action(id="snooze_5", title="5 min"),
        Action(id="snooze_15", title="15 min"),
        Action(id="snooze_1h", title="1 hour"),
    ],
)


def _now() -> datetime:
    return datetime.now(timezone.utc)


class DeliveryChannel(ABC):
    native: bool = False

    async def setup(
        self,
        on_action: Optional[Callable[[Any], Awaitable[None]]] = None,
        on_received: Optional[Callable[[Any], Awaitable[None]]] = None,
    ) -> None:
        return None

    @abstractmethod
    async def check_permissions(self) -> bool: ...

    @abstractmethod
    async def request_permissions(self) -> bool: ...

    @abstractmethod
    async def schedule(self, notification: LocalNotification) -> bool:
        """Hand one notification to the platform. Returns False when nothing was scheduled."""

    @abstractmethod
    async def cancel(self, ids: List[int]) -> None: ...

    @abstractmethod
    async def get_pending(self) -> List[LocalNotification]: ...

    async def close(self) -> None:
        return None


class WebFallbackChannel(DeliveryChannel):
    """In-process timers; only reminders due within the horizon are held."""

    def __init__(
        self,
        notifier: Optional[WebNotifier] = None,
        horizon_seconds: Optional[int] = None,
        clock: Callable[[], datetime] = _now,
    ):
        self.notifier = notifier
        self.horizon_seconds = horizon_seconds or client_settings.WEB_TIMER_HORIZON_SECONDS
        self._clock = clock
        self._timers: Dict[int, Tuple[asyncio.TimerHandle, LocalNotification]] = {}
        self._tasks: Set[asyncio.Task] = set()

    async def check_permissions(self) -> bool:
        return self.notifier is not None and self.notifier.permission() == PermissionState.GRANTED

    async def request_permissions(self) -> bool:
        if self.notifier is None:
            return False
        try:
            return await self.notifier.request_permission() == PermissionState.GRANTED
        except PermissionDenied:
            return False
        except Exception as e:
            logger.warning(f"[WebChannel] permission request failed: {e}")
            return False

    async def schedule(self, notification: LocalNotification) -> bool:
        if notification.at is None:
            return False
        delay = (notification.at - self._clock()).total_seconds()
        if delay <= 0 or delay >= self.horizon_seconds:
            # the server sweep still covers it via push
            logger.debug(f"[WebChannel] not holding timer for {notification.id} (delay {delay:.0f}s)")
            return False
        self._drop_timer(notification.id)
        handle = asyncio.get_running_loop().call_later(delay, self._fire, notification)
        self._timers[notification.id] = (handle, notification)
        return True

    def _drop_timer(self, handle_id: int) -> None:
        entry = self._timers.pop(handle_id, None)
        if entry:
            entry[0].cancel()

    def _fire(self, notification: LocalNotification) -> None:
        self._timers.pop(notification.id, None)
        task = asyncio.ensure_future(self._show(notification))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _show(self, notification: LocalNotification) -> None:
        if self.notifier is None:
            return
        try:
            permission = self.notifier.permission()
            if permission == PermissionState.PROMPT:
                permission = await self.notifier.request_permission()
            if permission == PermissionState.GRANTED:
                self.notifier.show(notification.title, notification.body)
        except PermissionDenied:
            logger.info(f"[WebChannel] notifications blocked; dropping {notification.id}")
        except Exception as e:
            logger.warning(f"[WebChannel] failed to show notification {notification.id}: {e}")

    async def cancel(self, ids: List[int]) -> None:
        for handle_id in ids:
            self._drop_timer(handle_id)

    async def get_pending(self) -> List[LocalNotification]:
        return [n for _, n in self._timers.values()]

    async def close(self) -> None:
        for handle, _ in self._timers.values():
            handle.cancel()
        self._timers.clear()
        for task in list(self._tasks):
            task.cancel()
        self._tasks.clear()


class ChannelState(IntEnum):
    UNINITIALIZED = 0
    CHANNEL_ENSURED = 1
    ACTION_TYPES_ENSURED = 2
    READY = 3


class NativeChannel(DeliveryChannel):
    native = True

    def __init__(
        self,
        subsystem: NotificationSubsystem,
        channel_id: Optional[str] = None,
        fallback: Optional[WebFallbackChannel] = None,
    ):
        self.subsystem = subsystem
        self.channel_id = channel_id or client_settings.CHANNEL_ID
        self.fallback = fallback
        self.state = ChannelState.UNINITIALIZED
        self._lock = asyncio.Lock()
        self._listeners_added = False

    async def _attempt(self, label: str, fn: Callable[..., Awaitable[Any]], *args) -> bool:
        try:
            await fn(*args)
            return True
        except Exception as e:
            if is_capability_unavailable(e):
                logger.debug(f"[NativeChannel] {label} not available on this platform")
            else:
                logger.warning(f"[NativeChannel] {label} failed: {e}")
            return False

    async def ensure_ready(self) -> None:
        """Create the channel and action types once; failures still advance the state."""
        if self.state is ChannelState.READY:
            return
        async with self._lock:
            if self.state < ChannelState.CHANNEL_ENSURED:
                await self._attempt("create_channel", self.subsystem.create_channel, ChannelConfig(id=self.channel_id))
                self.state = ChannelState.CHANNEL_ENSURED
            if self.state < ChannelState.ACTION_TYPES_ENSURED:
                await self._attempt(
                    "register_action_types",
                    self.subsystem.register_action_types,
                    [TASK_REMINDER_ACTION_TYPE, SNOOZE_ACTION_TYPE],
                )
                self.state = ChannelState.ACTION_TYPES_ENSURED
            self.state = ChannelState.READY

    async def setup(self, on_action=None, on_received=None) -> None:
        if not await self.check_permissions():
            await self.request_permissions()
        await self.ensure_ready()
        if self._listeners_added:
            return
        try:
            if on_action is not None:
                self.subsystem.add_listener(ACTION_PERFORMED, on_action)
            if on_received is not None:
                self.subsystem.add_listener(NOTIFICATION_RECEIVED, on_received)
            self._listeners_added = True
        except Exception as e:
            logger.warning(f"[NativeChannel] could not attach listeners: {e}")

    async def check_permissions(self) -> bool:
        try:
            return await self.subsystem.check_permissions() == PermissionState.GRANTED
        except Exception as e:
            logger.warning(f"[NativeChannel] permission check failed: {e}")
            return False

    async def request_permissions(self) -> bool:
        try:
            return await self.subsystem.request_permissions() == PermissionState.GRANTED
        except Exception as e:
            logger.warning(f"[NativeChannel] permission request failed: {e}")
            return False

    async def schedule(self, notification: LocalNotification) -> bool:
        granted = await self.check_permissions()
        if not granted:
            granted = await self.request_permissions()
        if not granted:
            logger.warning(f"⚠️ [NativeChannel] notification permission denied; scheduling {notification.id} anyway")

        await self.ensure_ready()
        notification.channel_id = notification.channel_id or self.channel_id
        try:
            await self.subsystem.schedule([notification])
            logger.info(f"🔔 [NativeChannel] scheduled {notification.id} at {notification.at}")
            return True
        except Exception as e:
            logger.warning(f"[NativeChannel] schedule failed for {notification.id}: {e}")
            if self.fallback is not None:
                return await self.fallback.schedule(notification)
            return False

    async def cancel(self, ids: List[int]) -> None:
        if not ids:
            return
        await self._attempt("cancel", self.subsystem.cancel, ids)
        if self.fallback is not None:
            await self.fallback.cancel(ids)

    async def get_pending(self) -> List[LocalNotification]:
        try:
            pending = list(await self.subsystem.get_pending())
        except Exception as e:
            logger.warning(f"[NativeChannel] get_pending failed: {e}")
            pending = []
        if self.fallback is not None:
            pending.extend(await self.fallback.get_pending())
        return pending

    async def close(self) -> None:
        if self.fallback is not None:
            await self.fallback.close()


def select_channel(
    subsystem: Optional[NotificationSubsystem],
    notifier: Optional[WebNotifier] = None,
    config: Optional[ClientSettings] = None,
) -> DeliveryChannel:
    config = config or client_settings
    web = WebFallbackChannel(notifier, horizon_seconds=config.WEB_TIMER_HORIZON_SECONDS)
    if subsystem is None:
        logger.info("[Channels] no native notification subsystem; using web fallback")
        return web
    return NativeChannel(subsystem, channel_id=config.CHANNEL_ID, fallback=web)
