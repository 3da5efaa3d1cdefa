"""
Repeat rules and next-occurrence calculation
"""
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional, Union

from dateutil.relativedelta import relativedelta


class RepeatRule(str, Enum):
    """Supported repeat rules"""
    NONE = "none"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"

    @classmethod
    def parse(cls, value: Optional[Union[str, "RepeatRule"]]) -> "RepeatRule":
        """Lenient parse for request payloads.

        null/empty means a one-shot reminder; an unrecognised value repeats daily.
        """
        if value is None or value == "":
            return cls.NONE
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return cls.DAILY


_STEPS = {
    RepeatRule.DAILY: relativedelta(days=1),
    RepeatRule.WEEKLY: relativedelta(days=7),
    # relativedelta clamps to the last valid day: Jan 31 -> Feb 28/29
    RepeatRule.MONTHLY: relativedelta(months=1),
    RepeatRule.YEARLY: relativedelta(years=1),
}


def next_occurrence(current: datetime, rule: Union[RepeatRule, str]) -> datetime:
    """Return the occurrence that follows ``current`` under ``rule``.

    Callers branch on ``RepeatRule.NONE`` before calling. Any value that is not
    a known rule (``none`` included) advances by one day.
    """
    try:
        step = _STEPS.get(RepeatRule(rule))
    except ValueError:
        step = None
    if step is None:
        return current + timedelta(days=1)
    return current + step


def occurrences(start: datetime, rule: Union[RepeatRule, str], count: int):
    """Yield ``count`` successive occurrences after ``start`` (each from the previous one)."""
    current = start
    for _ in range(count):
        current = next_occurrence(current, rule)
        yield current
