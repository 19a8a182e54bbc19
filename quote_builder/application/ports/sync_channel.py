from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Callable

from quote_builder.domain.entities.sync_message import SyncMessage


class SyncChannelPort(ABC):
    @property
    @abstractmethod
    def name(self) -> str:
        raise NotImplementedError

    @abstractmethod
    def publish(self, message: SyncMessage) -> None:
        """Deliver a message to every other endpoint on the same channel name."""
        raise NotImplementedError

    @abstractmethod
    def subscribe(self, handler: Callable[[SyncMessage], None]) -> Callable[[], None]:
        """Register an inbound handler. Returns an unsubscribe function."""
        raise NotImplementedError

    @abstractmethod
    def close(self) -> None:
        raise NotImplementedError
