from __future__ import annotations

import copy
import threading
from typing import Any

from quote_builder.application.ports.state_storage import StateStoragePort


class MemoryStateStorage(StateStoragePort):
    def __init__(self) -> None:
        self._data: dict[str, Any] | None = None
        self._lock = threading.Lock()

    def save(self, data: dict[str, Any]) -> None:
        with self._lock:
            # Deep copy so later mutation by the caller cannot alter what was saved
            self._data = copy.deepcopy(data)

    def load(self) -> dict[str, Any] | None:
        with self._lock:
            return copy.deepcopy(self._data)

    def clear(self) -> None:
        with self._lock:
            self._data = None
