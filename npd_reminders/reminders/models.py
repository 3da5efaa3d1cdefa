"""
Reminder and device models - the two shared mutable resources of the service
"""
from datetime import datetime, timezone as dt_timezone
from sqlalchemy import Column, String, DateTime, Boolean, Integer, Index, JSON
from sqlalchemy.dialects.postgresql import JSONB
import uuid

from npd_reminders.db.base import Base


def _uuid_str() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(dt_timezone.utc)


JSONType = JSON().with_variant(JSONB(), "postgresql")


class Reminder(Base):
    """A schedulable obligation; one row per reminder, recurring ones are advanced in place"""
    __tablename__ = "reminders"

    id = Column(String(36), primary_key=True, default=_uuid_str)
    owner_id = Column(String, nullable=True, index=True)  # NULL: the captured token is the identity
    token = Column(String, nullable=True)  # delivery address captured at creation time
    source_kind = Column(String, nullable=False, default="task")  # task, note, budget, bill, habit, gamification
    source_ref = Column(String, nullable=True, index=True)  # id of the owning task/note/...
    title = Column(String, nullable=False)
    body = Column(String, nullable=False, default="")
    scheduled_at = Column(DateTime(timezone=True), nullable=False, index=True)
    repeat_rule = Column(String, nullable=False, default="none")  # none, daily, weekly, monthly, yearly
    payload = Column(JSONType, nullable=False, default=dict)

    sent = Column(Boolean, nullable=False, default=False)
    last_error = Column(String, nullable=True)
    attempts = Column(Integer, nullable=False, default=0)
    sent_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)

    __table_args__ = (
        Index("ix_reminders_sent_scheduled", "sent", "scheduled_at"),
        Index("ix_reminders_source", "source_ref", "sent"),
    )


class Device(Base):
    """Delivery endpoint; id is the owner id when known, otherwise the token itself"""
    __tablename__ = "devices"

    id = Column(String, primary_key=True)
    token = Column(String, nullable=False, index=True)
    owner_id = Column(String, nullable=True)
    platform = Column(String, nullable=False, default="unknown")  # ios, android, web, unknown
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)
