from __future__ import annotations

import dataclasses
import json
import math
from enum import Enum
from typing import Any, Mapping

from quote_builder.domain.entities.catalog import CatalogItem, Package
from quote_builder.domain.entities.quote_state import (
    Catalog,
    Discount,
    Pricing,
    Progress,
    QuoteState,
    Selections,
)

PERSISTED_VERSION = "1.0"

_SET_FIELDS = (
    "features",
    "addons",
    "components",
    "hvac_features",
    "appliance_features",
    "contact_features",
)
_SINGLE_FIELDS = ("package_id", "emergency_id", "service_area_id")

# Catalog payload keys accepted from the fetch layer, mapped to Catalog fields.
_CATALOG_KEYS = {
    "packages": "packages",
    "features": "features",
    "addons": "addons",
    "components": "components",
    "emergency_services": "emergency_services",
    "emergencyServices": "emergency_services",
    "service_areas": "service_areas",
    "serviceAreas": "service_areas",
    "hvac_features": "hvac_features",
    "hvacFeatures": "hvac_features",
    "appliance_features": "appliance_features",
    "applianceFeatures": "appliance_features",
    "contact_features": "contact_features",
    "contactFeatures": "contact_features",
}


def serialize_selections(selections: Selections) -> dict[str, Any]:
    data: dict[str, Any] = {name: getattr(selections, name) for name in _SINGLE_FIELDS}
    for name in _SET_FIELDS:
        # Sorted so saved payloads are stable across runs
        data[name] = sorted(getattr(selections, name))
    return data


def deserialize_selections(data: Mapping[str, Any]) -> Selections:
    return Selections(
        package_id=data.get("package_id"),
        emergency_id=data.get("emergency_id"),
        service_area_id=data.get("service_area_id"),
        **{name: frozenset(str(v) for v in data.get(name) or ()) for name in _SET_FIELDS},
    )


def serialize_pricing(pricing: Pricing) -> dict[str, Any]:
    discount = None
    if pricing.discount:
        discount = {"code": pricing.discount.code, "amount": pricing.discount.amount}
    return {"total_price": pricing.total_price, "discount": discount}


def deserialize_pricing(data: Mapping[str, Any], default: Pricing) -> Pricing:
    discount_data = data.get("discount")
    discount = None
    if discount_data:
        discount = Discount(code=str(discount_data.get("code", "")), amount=int(discount_data.get("amount", 0)))
    return Pricing(
        total_price=max(0, int(data.get("total_price", default.total_price))),
        discount=discount,
    )


def deserialize_progress(data: Mapping[str, Any], default: Progress) -> Progress:
    # Step count is configuration, not user state; a saved value never overrides it
    total_steps = default.total_steps
    current_step = int(data.get("current_step", default.current_step))
    return Progress(current_step=min(max(current_step, 1), total_steps), total_steps=total_steps)


def to_persistable(state: QuoteState) -> dict[str, Any]:
    """State slice that survives reloads and crosses tabs: no ui, history or catalog."""
    return {
        "selections": serialize_selections(state.selections),
        "pricing": serialize_pricing(state.pricing),
        "progress": {
            "current_step": state.progress.current_step,
            "total_steps": state.progress.total_steps,
        },
    }


def _check_number(data: Mapping[str, Any], key: str, region: str) -> None:
    if key not in data:
        return
    value = data[key]
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
        raise ValueError(f"{region}.{key} must be a number, got {value!r}")


def _check_region(data: Mapping[str, Any], region: str) -> Mapping[str, Any] | None:
    value = data.get(region)
    if value is None:
        return None
    if not isinstance(value, Mapping):
        raise ValueError(f"{region} must be an object")
    return value


def validate_persisted(data: Any) -> None:
    """
    Raise ValueError unless data has the shape of to_persistable() output.

    Saved and synced slices come from outside the process, so they are checked
    before a reducer sees them. Missing regions and keys are allowed.
    """
    if not isinstance(data, Mapping):
        raise ValueError("state must be an object")

    selections = _check_region(data, "selections")
    if selections is not None:
        for name in _SINGLE_FIELDS:
            value = selections.get(name)
            if value is not None and not isinstance(value, str):
                raise ValueError(f"selections.{name} must be a string")
        for name in _SET_FIELDS:
            values = selections.get(name)
            if values is None:
                continue
            if not isinstance(values, (list, tuple)) or not all(isinstance(v, str) for v in values):
                raise ValueError(f"selections.{name} must be a list of ids")

    pricing = _check_region(data, "pricing")
    if pricing is not None:
        _check_number(pricing, "total_price", "pricing")
        discount = pricing.get("discount")
        if discount is not None:
            if not isinstance(discount, Mapping):
                raise ValueError("pricing.discount must be an object")
            _check_number(discount, "amount", "pricing.discount")

    progress = _check_region(data, "progress")
    if progress is not None:
        _check_number(progress, "current_step", "progress")
        _check_number(progress, "total_steps", "progress")


def apply_persisted(state: QuoteState, data: Mapping[str, Any] | None) -> QuoteState:
    """Hydrate the persistable regions present in data; returns state untouched if none are."""
    if not data:
        return state
    validate_persisted(data)

    changes: dict[str, Any] = {}
    if "selections" in data:
        selections = deserialize_selections(data["selections"] or {})
        if selections != state.selections:
            changes["selections"] = selections
    if "pricing" in data:
        pricing = deserialize_pricing(data["pricing"] or {}, state.pricing)
        if pricing != state.pricing:
            changes["pricing"] = pricing
    if "progress" in data:
        progress = deserialize_progress(data["progress"] or {}, state.progress)
        if progress != state.progress:
            changes["progress"] = progress

    if not changes:
        return state
    return dataclasses.replace(state, **changes)


def catalog_item_from(raw: CatalogItem | Mapping[str, Any], category: str | None = None) -> CatalogItem:
    if isinstance(raw, CatalogItem):
        return raw
    return CatalogItem(
        id=str(raw["id"]),
        name=str(raw.get("name") or raw["id"]),
        price=int(raw.get("price") or 0),
        category=raw.get("category") or category,
        description=raw.get("description"),
    )


def package_from(raw: Package | Mapping[str, Any]) -> Package:
    if isinstance(raw, Package):
        return raw
    included = raw.get("included_features") or raw.get("includedFeatures") or ()
    return Package(
        id=str(raw["id"]),
        name=str(raw.get("name") or raw["id"]),
        price=int(raw.get("price") or 0),
        original_price=raw.get("original_price", raw.get("originalPrice")),
        timeline=raw.get("timeline"),
        description=raw.get("description"),
        included_features=tuple(str(f) for f in included),
        popular=bool(raw.get("popular", False)),
    )


def catalog_items_from(raw: Any) -> tuple[CatalogItem, ...]:
    """Accept either a flat list or a {category: [items]} mapping."""
    if raw is None:
        return ()
    if isinstance(raw, Mapping):
        items: list[CatalogItem] = []
        for category, group in raw.items():
            items.extend(catalog_item_from(item, category) for item in group or ())
        return tuple(items)
    return tuple(catalog_item_from(item) for item in raw)


def merge_catalog(catalog: Catalog, data: Mapping[str, Any]) -> Catalog:
    """Replace only the collections carried by data; others stay as loaded."""
    changes: dict[str, Any] = {}
    for key, value in data.items():
        field_name = _CATALOG_KEYS.get(key)
        if field_name is None:
            continue
        if field_name == "packages":
            changes[field_name] = tuple(package_from(p) for p in value or ())
        else:
            changes[field_name] = catalog_items_from(value)
    if not changes:
        return catalog
    return dataclasses.replace(catalog, **changes)


def to_jsonable(value: Any) -> Any:
    """JSON-compatible view of state values (dataclasses, frozensets, enums)."""
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return {f.name: to_jsonable(getattr(value, f.name)) for f in dataclasses.fields(value)}
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (set, frozenset)):
        return sorted(to_jsonable(v) for v in value)
    if isinstance(value, Mapping):
        return {str(k): to_jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_jsonable(v) for v in value]
    return value


def state_to_dict(state: QuoteState, include_history: bool = False) -> dict[str, Any]:
    data = {
        "selections": serialize_selections(state.selections),
        "pricing": serialize_pricing(state.pricing),
        "progress": to_jsonable(state.progress),
        "catalog": to_jsonable(state.catalog),
        "ui": to_jsonable(state.ui),
        "system": to_jsonable(state.system),
    }
    history = state.history
    if include_history:
        data["history"] = {
            "cursor": history.cursor,
            "size": len(history.entries),
            "max_size": history.max_size,
            "actions": [entry.action.kind_name if entry.action else None for entry in history.entries],
        }
    return data


def state_size(state: QuoteState) -> int:
    return len(json.dumps(state_to_dict(state), default=str).encode("utf-8"))