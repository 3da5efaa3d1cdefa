"""Application items a reminder can be attached to."""
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional, Protocol


@dataclass
class TaskItem:
    id: str
    text: str
    due_date: Optional[datetime] = None
    reminder_time: Optional[datetime] = None
    completed: bool = False
    priority: Optional[str] = None

    @property
    def reminder_at(self) -> Optional[datetime]:
        return self.reminder_time or self.due_date


@dataclass
class NoteItem:
    id: str
    title: str
    reminder_time: Optional[datetime] = None


@dataclass
class HabitItem:
    id: str
    name: str
    reminder_enabled: bool = False
    reminder_time: Optional[str] = None  # "HH:MM", local time


@dataclass
class RecurringExpense:
    id: str
    description: str
    amount: float
    day_of_month: int
    enabled: bool = True
    reminder_days: int = 3


class ItemProvider(Protocol):
    """Loads the candidate items the web poller checks on every tick."""

    async def load_tasks(self) -> List[TaskItem]: ...

    async def load_notes(self) -> List[NoteItem]: ...
