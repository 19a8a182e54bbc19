from __future__ import annotations

import logging
from dataclasses import dataclass

from quote_builder.application.exceptions import CatalogUnavailable
from quote_builder.application.ports.catalog_source import CatalogSourcePort
from quote_builder.application.store.actions import Actions
from quote_builder.application.store.store import Store


@dataclass(frozen=True)
class CatalogLoadResult:
    loaded: bool
    source: str  # "primary", "fallback" or "none"
    error: str | None = None


class LoadCatalogUseCase:
    def __init__(
        self,
        store: Store,
        source: CatalogSourcePort,
        fallback: CatalogSourcePort | None = None,
    ) -> None:
        self._store = store
        self._source = source
        self._fallback = fallback
        self._logger = logging.getLogger(__name__)

    def execute(self) -> CatalogLoadResult:
        """Fetch the catalog into the store. LOAD_DATA, then LOAD_DATA_SUCCESS or LOAD_DATA_ERROR."""
        self._store.dispatch(Actions.load_data())
        try:
            data = self._source.fetch_catalog()
        except CatalogUnavailable as e:
            self._logger.warning("Catalog source failed", extra={"reason": str(e)})
            if self._fallback is None:
                self._store.dispatch(Actions.load_data_error(str(e)))
                return CatalogLoadResult(loaded=False, source="none", error=str(e))
            try:
                data = self._fallback.fetch_catalog()
            except CatalogUnavailable as fallback_error:
                self._logger.error("Fallback catalog failed", extra={"reason": str(fallback_error)})
                self._store.dispatch(Actions.load_data_error(str(fallback_error)))
                return CatalogLoadResult(loaded=False, source="none", error=str(fallback_error))
            self._store.dispatch(Actions.load_data_success(data))
            return CatalogLoadResult(loaded=True, source="fallback", error=str(e))

        self._store.dispatch(Actions.load_data_success(data))
        self._logger.info("Catalog loaded", extra={"collections": sorted(data)})
        return CatalogLoadResult(loaded=True, source="primary")
