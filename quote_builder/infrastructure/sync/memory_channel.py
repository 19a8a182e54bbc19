from __future__ import annotations

import logging
import threading
from typing import Callable

from quote_builder.application.ports.sync_channel import SyncChannelPort
from quote_builder.domain.entities.sync_message import SyncMessage

Handler = Callable[[SyncMessage], None]


class MemorySyncHub:
    """In-process broadcast medium. Endpoints opened on the same name see each other's messages."""

    def __init__(self) -> None:
        self._endpoints: dict[str, list[MemorySyncChannel]] = {}
        self._lock = threading.Lock()

    def open(self, name: str) -> MemorySyncChannel:
        channel = MemorySyncChannel(name, self)
        with self._lock:
            self._endpoints.setdefault(name, []).append(channel)
        return channel

    def endpoints(self, name: str) -> int:
        with self._lock:
            return len(self._endpoints.get(name, ()))

    def _deliver(self, sender: MemorySyncChannel, message: SyncMessage) -> None:
        with self._lock:
            targets = [ep for ep in self._endpoints.get(sender.name, ()) if ep is not sender]
        for endpoint in targets:
            endpoint._receive(message)

    def _remove(self, channel: MemorySyncChannel) -> None:
        with self._lock:
            endpoints = self._endpoints.get(channel.name, [])
            if channel in endpoints:
                endpoints.remove(channel)


class MemorySyncChannel(SyncChannelPort):
    def __init__(self, name: str, hub: MemorySyncHub) -> None:
        self._name = name
        self._hub = hub
        self._handlers: list[Handler] = []
        self._closed = False
        self._lock = threading.Lock()
        self._logger = logging.getLogger(__name__)

    @property
    def name(self) -> str:
        return self._name

    def publish(self, message: SyncMessage) -> None:
        if self._closed:
            raise RuntimeError(f"Sync channel {self._name} is closed")
        self._hub._deliver(self, message)

    def subscribe(self, handler: Handler) -> Callable[[], None]:
        with self._lock:
            self._handlers.append(handler)

        def unsubscribe() -> None:
            with self._lock:
                if handler in self._handlers:
                    self._handlers.remove(handler)

        return unsubscribe

    def close(self) -> None:
        self._closed = True
        with self._lock:
            self._handlers.clear()
        self._hub._remove(self)

    def _receive(self, message: SyncMessage) -> None:
        with self._lock:
            handlers = list(self._handlers)
        for handler in handlers:
            try:
                handler(message)
            except Exception:
                # A failing receiver must not break delivery to the others or the publisher
                self._logger.exception("Sync handler failed", extra={"channel": self._name, "action": message.action_kind})
