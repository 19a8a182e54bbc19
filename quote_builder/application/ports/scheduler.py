from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Callable, Protocol


class ScheduledCall(Protocol):
    def cancel(self) -> None: ...


class SchedulerPort(ABC):
    @abstractmethod
    def call_later(self, delay_seconds: float, callback: Callable[[], None]) -> ScheduledCall:
        """Run callback once after delay_seconds. The returned handle can cancel it."""
        raise NotImplementedError
