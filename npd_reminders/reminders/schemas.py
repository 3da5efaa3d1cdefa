"""
Request and response bodies of the HTTP surface (camelCase on the wire)
"""
from datetime import datetime
from typing import Any, Dict, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator

from .recurrence import RepeatRule


class _Body(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class RegisterTokenRequest(_Body):
    token: str = Field(..., min_length=1)
    user_id: Optional[str] = Field(default=None, alias="userId")
    platform: Optional[str] = None


class RemoveTokenRequest(_Body):
    token: Optional[str] = None
    user_id: Optional[str] = Field(default=None, alias="userId")


class ScheduleReminderRequest(_Body):
    user_id: Optional[str] = Field(default=None, alias="userId")
    token: Optional[str] = None
    title: str = Field(..., min_length=1)
    body: Optional[str] = ""
    scheduled_at: datetime = Field(..., alias="scheduledAt")
    data: Optional[Dict[str, Any]] = None
    repeat_type: Optional[str] = Field(default=None, alias="repeatType")

    @field_validator("repeat_type")
    @classmethod
    def _normalise_rule(cls, v: Optional[str]) -> Optional[str]:
        return RepeatRule.parse(v).value


class CancelReminderRequest(_Body):
    reminder_id: Optional[str] = Field(default=None, alias="reminderId")
    task_id: Optional[str] = Field(default=None, alias="taskId")
    note_id: Optional[str] = Field(default=None, alias="noteId")
    user_id: Optional[str] = Field(default=None, alias="userId")


class SendPushRequest(_Body):
    token: Optional[str] = None
    user_id: Optional[str] = Field(default=None, alias="userId")
    title: str = ""
    body: str = ""
    data: Optional[Dict[str, Any]] = None


class SendBroadcastRequest(_Body):
    title: str = Field(..., min_length=1)
    body: Optional[str] = ""
    data: Optional[Dict[str, Any]] = None


class SuccessResponse(BaseModel):
    success: bool = True


class ScheduleReminderResponse(SuccessResponse):
    reminderId: str


class SendPushResponse(SuccessResponse):
    messageId: str


class BroadcastResponse(SuccessResponse):
    sent: int
    failed: Optional[int] = None
