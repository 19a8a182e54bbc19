from __future__ import annotations

import logging
from typing import Any

import httpx

from quote_builder.application.exceptions import CatalogUnavailable
from quote_builder.application.ports.catalog_source import CatalogSourcePort


class HttpCatalogSource(CatalogSourcePort):
    def __init__(self, url: str, timeout: float = 10.0, client: httpx.Client | None = None) -> None:
        self._url = url
        self._client = client or httpx.Client(timeout=timeout)
        self._logger = logging.getLogger(__name__)

    def fetch_catalog(self) -> dict[str, Any]:
        try:
            resp = self._client.get(self._url)
        except httpx.HTTPError as e:
            self._logger.error("Catalog request failed", extra={"url": self._url, "error": str(e)})
            raise CatalogUnavailable(f"Catalog request failed: {e}") from e

        if resp.status_code >= 400:
            self._logger.error(
                "Catalog fetch failed",
                extra={"url": self._url, "status": resp.status_code, "body": resp.text[:200]},
            )
            raise CatalogUnavailable(f"Catalog fetch failed with status {resp.status_code}")

        try:
            data = resp.json()
        except ValueError as e:
            raise CatalogUnavailable("Catalog response is not JSON") from e
        if not isinstance(data, dict):
            raise CatalogUnavailable("Catalog response must be an object keyed by collection")
        return data

    def close(self) -> None:
        self._client.close()
