"""
Device registry: owner -> delivery address
"""
import logging
from typing import List, Optional
from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .models import Device
from .metrics import devices_evicted_total
from npd_reminders.utils.timezone import utcnow

logger = logging.getLogger(__name__)


class DeviceRegistry:
    """Authoritative mapping of owner id (or bare token) to push token.

    Each record is read-modify-written on its own; concurrent writers resolve
    as last-write-wins.
    """

    def __init__(self, db: Session):
        self.db = db

    @staticmethod
    def device_id(owner_id: Optional[str], token: Optional[str]) -> Optional[str]:
        return owner_id or token or None

    def upsert(self, device_id: str, token: str, platform: Optional[str] = None,
               owner_id: Optional[str] = None) -> Device:
        """Merge-write a device record. Fields not passed are left as they are."""
        device = self.db.get(Device, device_id)
        if device is None:
            device = Device(
                id=device_id,
                token=token,
                owner_id=owner_id,
                platform=platform or "unknown",
            )
            self.db.add(device)
            try:
                self.db.commit()
            except IntegrityError:
                # A concurrent registration inserted the same id first
                self.db.rollback()
                return self.upsert(device_id, token, platform=platform, owner_id=owner_id)
            logger.info(f"📱 [Registry] Registered device id={device_id} token={token[:12]}…")
        else:
            device.token = token
            if platform:
                device.platform = platform
            if owner_id:
                device.owner_id = owner_id
            device.updated_at = utcnow()
            self.db.add(device)
            self.db.commit()
            logger.info(f"📱 [Registry] Updated device id={device_id} token={token[:12]}…")
        self.db.refresh(device)
        return device

    def remove(self, device_id: str) -> bool:
        """Delete a device record. Removing an absent id succeeds silently."""
        result = self.db.execute(delete(Device).where(Device.id == device_id))
        self.db.commit()
        return result.rowcount > 0

    def evict(self, device_id: str) -> bool:
        """Remove a device after the provider rejected its token."""
        removed = self.remove(device_id)
        if removed:
            devices_evicted_total.inc()
            logger.warning(f"🧹 [Registry] Evicted device id={device_id[:12]}… (token invalid)")
        return removed

    def evict_token(self, token: str) -> int:
        """Remove every device record still pointing at ``token``."""
        ids = [d.id for d in self.db.execute(select(Device).where(Device.token == token)).scalars()]
        return sum(1 for device_id in ids if self.evict(device_id))

    def get(self, device_id: str) -> Optional[Device]:
        return self.db.get(Device, device_id)

    def resolve(self, owner_id: str) -> Optional[str]:
        """Single-record lookup by owner id; None when no device is registered."""
        device = self.db.get(Device, owner_id)
        return device.token if device else None

    def list_tokens(self) -> List[str]:
        # a token may sit under both an owner-keyed and a token-keyed record
        return [t for t in self.db.execute(select(Device.token).distinct()).scalars() if t]
