from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class CatalogItem:
    id: str
    name: str
    price: int = 0
    category: str | None = None  # e.g. "core", "marketing", "pages", "technical"
    description: str | None = None


@dataclass(frozen=True)
class Package:
    id: str
    name: str
    price: int
    original_price: int | None = None
    timeline: str | None = None
    description: str | None = None
    included_features: tuple[str, ...] = ()  # ids priced at zero while this package is selected
    popular: bool = False
