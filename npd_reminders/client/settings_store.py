"""Key/value settings persistence used for notification history and fired markers."""
from abc import ABC, abstractmethod
import copy
from typing import Any, Dict


class SettingsStore(ABC):
    @abstractmethod
    async def get(self, key: str, default: Any = None) -> Any: ...

    @abstractmethod
    async def set(self, key: str, value: Any) -> None: ...


class InMemorySettingsStore(SettingsStore):
    def __init__(self, initial: Dict[str, Any] | None = None):
        self._data: Dict[str, Any] = dict(initial or {})

    async def get(self, key: str, default: Any = None) -> Any:
        # copies so callers cannot mutate stored state in place
        return copy.deepcopy(self._data.get(key, default))

    async def set(self, key: str, value: Any) -> None:
        self._data[key] = copy.deepcopy(value)
