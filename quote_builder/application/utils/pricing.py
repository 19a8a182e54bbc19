from __future__ import annotations

from typing import Iterable

from quote_builder.domain.entities.catalog import CatalogItem, Package
from quote_builder.domain.entities.quote_state import DEFAULT_BASE_PRICE, Catalog, Selections


def find_package(catalog: Catalog, package_id: str | None) -> Package | None:
    if not package_id:
        return None
    for package in catalog.packages:
        if package.id == package_id:
            return package
    return None


def find_item(items: Iterable[CatalogItem], item_id: str | None) -> CatalogItem | None:
    if not item_id:
        return None
    for item in items:
        if item.id == item_id:
            return item
    return None


def priced_groups(selections: Selections, catalog: Catalog) -> list[tuple[frozenset[str], tuple[CatalogItem, ...]]]:
    """Pairs of (selected ids, catalog collection) for every set-valued selection domain."""
    return [
        (selections.features, catalog.features),
        (selections.addons, catalog.addons),
        (selections.components, catalog.components),
        (selections.hvac_features, catalog.hvac_features),
        (selections.appliance_features, catalog.appliance_features),
        (selections.contact_features, catalog.contact_features),
    ]


def calculate_total_price(
    selections: Selections,
    catalog: Catalog,
    base_price: int = DEFAULT_BASE_PRICE,
) -> int:
    """
    Quote total before discount.

    Base is the selected package price, or base_price when no package is
    selected. Items included in the selected package are free; unknown ids
    contribute nothing.
    """
    package = find_package(catalog, selections.package_id)
    total = package.price if package else base_price
    included = set(package.included_features) if package else set()

    for selected_ids, items in priced_groups(selections, catalog):
        for item in items:
            if item.id in selected_ids and item.id not in included:
                total += item.price

    emergency = find_item(catalog.emergency_services, selections.emergency_id)
    if emergency and emergency.id not in included:
        total += emergency.price

    area = find_item(catalog.service_areas, selections.service_area_id)
    if area and area.id not in included:
        total += area.price

    return max(0, total)
