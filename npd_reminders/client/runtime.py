"""Startup wiring for the client: one channel, one scheduler, and the poller when there is no native subsystem."""
from dataclasses import dataclass
import logging
from typing import Optional

from .capabilities import NotificationSubsystem, WebNotifier
from .channels import DeliveryChannel, select_channel
from .config import ClientSettings, settings as client_settings
from .events import NotificationBus
from .poller import WebFallbackPoller
from .scheduler import LocalScheduler
from .settings_store import InMemorySettingsStore, SettingsStore
from .sources import ItemProvider

logger = logging.getLogger(__name__)


@dataclass
class ClientRuntime:
    channel: DeliveryChannel
    bus: NotificationBus
    scheduler: LocalScheduler
    poller: Optional[WebFallbackPoller] = None

    async def start(self) -> None:
        await self.scheduler.initialize()
        if self.poller is not None:
            self.poller.start()

    async def close(self) -> None:
        if self.poller is not None:
            await self.poller.stop()
        await self.scheduler.close()
        self.bus.remove_all_listeners()


def build_client(
    subsystem: Optional[NotificationSubsystem],
    provider: Optional[ItemProvider] = None,
    notifier: Optional[WebNotifier] = None,
    store: Optional[SettingsStore] = None,
    config: Optional[ClientSettings] = None,
) -> ClientRuntime:
    config = config or client_settings
    store = store or InMemorySettingsStore()
    bus = NotificationBus()
    channel = select_channel(subsystem, notifier, config)
    scheduler = LocalScheduler(channel, bus, store=store, config=config)
    poller = None
    if not channel.native and provider is not None:
        poller = WebFallbackPoller(provider, bus, notifier=notifier, store=store, config=config)
    return ClientRuntime(channel=channel, bus=bus, scheduler=scheduler, poller=poller)
