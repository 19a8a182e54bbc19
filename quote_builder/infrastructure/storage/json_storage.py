from __future__ import annotations

import json
import logging
import threading
from pathlib import Path
from typing import Any

from quote_builder.application.exceptions import PersistenceFailure
from quote_builder.application.ports.state_storage import StateStoragePort


class JsonFileStateStorage(StateStoragePort):
    def __init__(self, path: str = "data/quote_state.json") -> None:
        self._path = Path(path)
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        self._logger = logging.getLogger(__name__)

    @property
    def path(self) -> Path:
        return self._path

    def save(self, data: dict[str, Any]) -> None:
        """Write atomically: temp file first, then rename over the target."""
        temp_path = self._path.with_suffix(".json.tmp")
        with self._lock:
            try:
                with open(temp_path, "w", encoding="utf-8") as f:
                    json.dump(data, f, indent=2, ensure_ascii=False)
                temp_path.replace(self._path)
            except (OSError, TypeError, ValueError) as e:
                if temp_path.exists():
                    temp_path.unlink(missing_ok=True)
                raise PersistenceFailure(f"Failed to write {self._path}: {e}") from e

    def load(self) -> dict[str, Any] | None:
        with self._lock:
            if not self._path.exists():
                return None
            try:
                with open(self._path, "r", encoding="utf-8") as f:
                    data = json.load(f)
            except json.JSONDecodeError:
                # Corrupted file: start fresh
                self._logger.warning("Saved quote corrupted, ignoring", extra={"path": str(self._path)})
                return None
            except OSError as e:
                raise PersistenceFailure(f"Failed to read {self._path}: {e}") from e
        if not isinstance(data, dict):
            return None
        return data

    def clear(self) -> None:
        with self._lock:
            try:
                self._path.unlink(missing_ok=True)
            except OSError as e:
                raise PersistenceFailure(f"Failed to remove {self._path}: {e}") from e
