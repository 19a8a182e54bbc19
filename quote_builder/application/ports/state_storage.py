from abc import ABC, abstractmethod
from typing import Any


class StateStoragePort(ABC):
    @abstractmethod
    def save(self, data: dict[str, Any]) -> None:
        """Persist a JSON-serializable quote payload. Raises PersistenceFailure on write errors."""
        raise NotImplementedError

    @abstractmethod
    def load(self) -> dict[str, Any] | None:
        """Return the last saved payload, or None if nothing was saved."""
        raise NotImplementedError

    @abstractmethod
    def clear(self) -> None:
        raise NotImplementedError
