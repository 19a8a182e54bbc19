from abc import ABC, abstractmethod
from typing import Any


class CatalogSourcePort(ABC):
    @abstractmethod
    def fetch_catalog(self) -> dict[str, Any]:
        """
        Fetch reference data keyed by catalog collection
        ("packages", "features", "addons", ...).
        Raises CatalogUnavailable when the source cannot be read.
        """
        raise NotImplementedError
