from __future__ import annotations

import dataclasses
from typing import Any, Callable, Iterable

from quote_builder.application.utils.pricing import calculate_total_price
from quote_builder.application.utils.state_serialization import (
    apply_persisted,
    catalog_items_from,
    merge_catalog,
    package_from,
)
from quote_builder.domain.entities.action import Action, ActionType
from quote_builder.domain.entities.quote_state import (
    DEFAULT_BASE_PRICE,
    Discount,
    Notification,
    QuoteState,
    get_initial_state,
)

Reducer = Callable[[QuoteState, Action], QuoteState]


class ReducerRegistry:
    """Maps action kinds to pure reducers. Kinds without a reducer leave state untouched."""

    def __init__(self) -> None:
        self._reducers: dict[ActionType, Reducer] = {}

    def register(self, kind: ActionType, reducer: Reducer) -> None:
        self._reducers[kind] = reducer

    def handles(self, kind: ActionType | str) -> bool:
        return kind in self._reducers

    @property
    def kinds(self) -> frozenset[ActionType]:
        return frozenset(self._reducers)

    def __call__(self, state: QuoteState, action: Action) -> QuoteState:
        reducer = self._reducers.get(action.kind)  # type: ignore[arg-type]
        if reducer is None:
            return state
        return reducer(state, action)


# Region helpers: each returns the input state when the region would not change.

def _replace_selections(state: QuoteState, **changes: Any) -> QuoteState:
    selections = dataclasses.replace(state.selections, **changes)
    if selections == state.selections:
        return state
    return dataclasses.replace(state, selections=selections)


def _replace_pricing(state: QuoteState, **changes: Any) -> QuoteState:
    pricing = dataclasses.replace(state.pricing, **changes)
    if pricing == state.pricing:
        return state
    return dataclasses.replace(state, pricing=pricing)


def _replace_progress(state: QuoteState, **changes: Any) -> QuoteState:
    progress = dataclasses.replace(state.progress, **changes)
    if progress == state.progress:
        return state
    return dataclasses.replace(state, progress=progress)


def _replace_ui(state: QuoteState, **changes: Any) -> QuoteState:
    ui = dataclasses.replace(state.ui, **changes)
    if ui == state.ui:
        return state
    return dataclasses.replace(state, ui=ui)


def _replace_catalog(state: QuoteState, **changes: Any) -> QuoteState:
    catalog = dataclasses.replace(state.catalog, **changes)
    if catalog == state.catalog:
        return state
    return dataclasses.replace(state, catalog=catalog)


# Set-valued selection domains

@dataclasses.dataclass(frozen=True)
class SetDomain:
    field: str
    select: ActionType
    deselect: ActionType
    toggle: ActionType
    select_batch: ActionType
    clear: ActionType


SET_DOMAINS: tuple[SetDomain, ...] = (
    SetDomain(
        "features",
        ActionType.SELECT_FEATURE,
        ActionType.DESELECT_FEATURE,
        ActionType.TOGGLE_FEATURE,
        ActionType.SELECT_FEATURES_BATCH,
        ActionType.CLEAR_FEATURES,
    ),
    SetDomain(
        "addons",
        ActionType.SELECT_ADDON,
        ActionType.DESELECT_ADDON,
        ActionType.TOGGLE_ADDON,
        ActionType.SELECT_ADDONS_BATCH,
        ActionType.CLEAR_ADDONS,
    ),
    SetDomain(
        "components",
        ActionType.SELECT_COMPONENT,
        ActionType.DESELECT_COMPONENT,
        ActionType.TOGGLE_COMPONENT,
        ActionType.SELECT_COMPONENTS_BATCH,
        ActionType.CLEAR_COMPONENTS,
    ),
    SetDomain(
        "hvac_features",
        ActionType.SELECT_HVAC_FEATURE,
        ActionType.DESELECT_HVAC_FEATURE,
        ActionType.TOGGLE_HVAC_FEATURE,
        ActionType.SELECT_HVAC_FEATURES_BATCH,
        ActionType.CLEAR_HVAC_FEATURES,
    ),
    SetDomain(
        "appliance_features",
        ActionType.SELECT_APPLIANCE_FEATURE,
        ActionType.DESELECT_APPLIANCE_FEATURE,
        ActionType.TOGGLE_APPLIANCE_FEATURE,
        ActionType.SELECT_APPLIANCE_FEATURES_BATCH,
        ActionType.CLEAR_APPLIANCE_FEATURES,
    ),
    SetDomain(
        "contact_features",
        ActionType.SELECT_CONTACT_FEATURE,
        ActionType.DESELECT_CONTACT_FEATURE,
        ActionType.TOGGLE_CONTACT_FEATURE,
        ActionType.SELECT_CONTACT_FEATURES_BATCH,
        ActionType.CLEAR_CONTACT_FEATURES,
    ),
)


def _set_domain_reducers(domain: SetDomain) -> dict[ActionType, Reducer]:
    name = domain.field

    def select(state: QuoteState, action: Action) -> QuoteState:
        current: frozenset[str] = getattr(state.selections, name)
        item_id = str(action.payload["id"])
        if item_id in current:
            return state
        return _replace_selections(state, **{name: current | {item_id}})

    def deselect(state: QuoteState, action: Action) -> QuoteState:
        current: frozenset[str] = getattr(state.selections, name)
        item_id = str(action.payload["id"])
        if item_id not in current:
            return state
        return _replace_selections(state, **{name: current - {item_id}})

    def toggle(state: QuoteState, action: Action) -> QuoteState:
        current: frozenset[str] = getattr(state.selections, name)
        item_id = str(action.payload["id"])
        updated = current - {item_id} if item_id in current else current | {item_id}
        return _replace_selections(state, **{name: updated})

    def select_batch(state: QuoteState, action: Action) -> QuoteState:
        current: frozenset[str] = getattr(state.selections, name)
        ids: Iterable[Any] = action.payload.get("ids") or ()
        updated = current | {str(i) for i in ids}
        if updated == current:
            return state
        return _replace_selections(state, **{name: updated})

    def clear(state: QuoteState, action: Action) -> QuoteState:
        if not getattr(state.selections, name):
            return state
        return _replace_selections(state, **{name: frozenset()})

    return {
        domain.select: select,
        domain.deselect: deselect,
        domain.toggle: toggle,
        domain.select_batch: select_batch,
        domain.clear: clear,
    }


# Single-valued selections

def _select_package(state: QuoteState, action: Action) -> QuoteState:
    return _replace_selections(state, package_id=action.payload.get("package_id"))


def _select_emergency(state: QuoteState, action: Action) -> QuoteState:
    return _replace_selections(state, emergency_id=action.payload["id"])


def _deselect_emergency(state: QuoteState, action: Action) -> QuoteState:
    return _replace_selections(state, emergency_id=None)


def _toggle_emergency(state: QuoteState, action: Action) -> QuoteState:
    service_id = action.payload["id"]
    if state.selections.emergency_id == service_id:
        return _replace_selections(state, emergency_id=None)
    return _replace_selections(state, emergency_id=service_id)


def _select_service_area(state: QuoteState, action: Action) -> QuoteState:
    return _replace_selections(state, service_area_id=action.payload["id"])


def _deselect_service_area(state: QuoteState, action: Action) -> QuoteState:
    return _replace_selections(state, service_area_id=None)


# Price

def _update_total_price(state: QuoteState, action: Action) -> QuoteState:
    return _replace_pricing(state, total_price=max(0, int(action.payload["price"])))


def _apply_discount(state: QuoteState, action: Action) -> QuoteState:
    discount = Discount(code=str(action.payload["code"]), amount=int(action.payload["amount"]))
    return _replace_pricing(state, discount=discount)


def _remove_discount(state: QuoteState, action: Action) -> QuoteState:
    return _replace_pricing(state, discount=None)


def _update_package_price(state: QuoteState, action: Action) -> QuoteState:
    package_id = action.payload["package_id"]
    price = int(action.payload["price"])
    packages = tuple(
        dataclasses.replace(p, price=price) if p.id == package_id else p for p in state.catalog.packages
    )
    return _replace_catalog(state, packages=packages)


# Progress

def _set_current_step(state: QuoteState, action: Action) -> QuoteState:
    step = int(action.payload["step"])
    return _replace_progress(state, current_step=min(max(step, 1), state.progress.total_steps))


def _next_step(state: QuoteState, action: Action) -> QuoteState:
    return _replace_progress(state, current_step=min(state.progress.current_step + 1, state.progress.total_steps))


def _previous_step(state: QuoteState, action: Action) -> QuoteState:
    return _replace_progress(state, current_step=max(state.progress.current_step - 1, 1))


def _reset_progress(state: QuoteState, action: Action) -> QuoteState:
    return _replace_progress(state, current_step=1)


# Catalog data

_CATALOG_UPDATES: dict[ActionType, str] = {
    ActionType.UPDATE_PACKAGES: "packages",
    ActionType.UPDATE_FEATURES: "features",
    ActionType.UPDATE_ADDONS: "addons",
    ActionType.UPDATE_COMPONENTS: "components",
    ActionType.UPDATE_EMERGENCY_SERVICES: "emergency_services",
    ActionType.UPDATE_SERVICE_AREAS: "service_areas",
    ActionType.UPDATE_HVAC_FEATURES: "hvac_features",
    ActionType.UPDATE_APPLIANCE_FEATURES: "appliance_features",
    ActionType.UPDATE_CONTACT_FEATURES: "contact_features",
}


def _catalog_update_reducer(field_name: str) -> Reducer:
    def reducer(state: QuoteState, action: Action) -> QuoteState:
        raw = action.payload.get("items")
        if field_name == "packages":
            items = tuple(package_from(p) for p in raw or ())
        else:
            items = catalog_items_from(raw)
        return _replace_catalog(state, **{field_name: items})

    return reducer


def _load_data(state: QuoteState, action: Action) -> QuoteState:
    return _replace_ui(state, is_loading=True, error=None)


def _load_data_success(state: QuoteState, action: Action) -> QuoteState:
    catalog = merge_catalog(state.catalog, action.payload.get("data") or {})
    ui = dataclasses.replace(state.ui, is_loading=False, error=None)
    if catalog is state.catalog and ui == state.ui:
        return state
    return dataclasses.replace(state, catalog=catalog, ui=ui)


def _load_data_error(state: QuoteState, action: Action) -> QuoteState:
    return _replace_ui(state, is_loading=False, error=action.payload.get("error"))


# UI

def _set_loading_state(state: QuoteState, action: Action) -> QuoteState:
    return _replace_ui(state, is_loading=bool(action.payload["is_loading"]))


def _set_error_state(state: QuoteState, action: Action) -> QuoteState:
    return _replace_ui(state, error=action.payload.get("error"))


def _show_notification(state: QuoteState, action: Action) -> QuoteState:
    notification = Notification(
        message=str(action.payload["message"]),
        type=action.payload.get("type") or "info",
        timestamp=action.payload.get("timestamp"),
    )
    return _replace_ui(state, notification=notification)


def _hide_notification(state: QuoteState, action: Action) -> QuoteState:
    return _replace_ui(state, notification=None)


def _set_modal_state(state: QuoteState, action: Action) -> QuoteState:
    modal_id = str(action.payload["modal_id"])
    is_open = bool(action.payload["is_open"])
    if state.ui.modals.get(modal_id) == is_open:
        return state
    return _replace_ui(state, modals={**state.ui.modals, modal_id: is_open})


# Storage and sync

def _hydrate(state: QuoteState, action: Action) -> QuoteState:
    return apply_persisted(state, action.payload.get("state"))


# System

def _initialize_system(state: QuoteState, action: Action) -> QuoteState:
    if state.system.initialized:
        return state
    return dataclasses.replace(state, system=dataclasses.replace(state.system, initialized=True))


def build_reducer_registry(base_price: int = DEFAULT_BASE_PRICE) -> ReducerRegistry:
    """Registry covering every kind that changes state; base_price seeds CALCULATE_PRICE and RESET_SYSTEM."""
    registry = ReducerRegistry()

    for domain in SET_DOMAINS:
        for kind, reducer in _set_domain_reducers(domain).items():
            registry.register(kind, reducer)

    registry.register(ActionType.SELECT_PACKAGE, _select_package)
    registry.register(ActionType.UPDATE_PACKAGE_PRICE, _update_package_price)
    registry.register(ActionType.SELECT_EMERGENCY_SERVICE, _select_emergency)
    registry.register(ActionType.DESELECT_EMERGENCY_SERVICE, _deselect_emergency)
    registry.register(ActionType.TOGGLE_EMERGENCY_SERVICE, _toggle_emergency)
    registry.register(ActionType.SELECT_SERVICE_AREA, _select_service_area)
    registry.register(ActionType.DESELECT_SERVICE_AREA, _deselect_service_area)

    def calculate_price(state: QuoteState, action: Action) -> QuoteState:
        total = calculate_total_price(state.selections, state.catalog, base_price=base_price)
        return _replace_pricing(state, total_price=total)

    registry.register(ActionType.UPDATE_TOTAL_PRICE, _update_total_price)
    registry.register(ActionType.CALCULATE_PRICE, calculate_price)
    registry.register(ActionType.APPLY_DISCOUNT, _apply_discount)
    registry.register(ActionType.REMOVE_DISCOUNT, _remove_discount)

    registry.register(ActionType.SET_CURRENT_STEP, _set_current_step)
    registry.register(ActionType.NEXT_STEP, _next_step)
    registry.register(ActionType.PREVIOUS_STEP, _previous_step)
    registry.register(ActionType.RESET_PROGRESS, _reset_progress)

    registry.register(ActionType.LOAD_DATA, _load_data)
    registry.register(ActionType.LOAD_DATA_SUCCESS, _load_data_success)
    registry.register(ActionType.LOAD_DATA_ERROR, _load_data_error)
    for kind, field_name in _CATALOG_UPDATES.items():
        registry.register(kind, _catalog_update_reducer(field_name))

    registry.register(ActionType.SET_LOADING_STATE, _set_loading_state)
    registry.register(ActionType.SET_ERROR_STATE, _set_error_state)
    registry.register(ActionType.SHOW_NOTIFICATION, _show_notification)
    registry.register(ActionType.HIDE_NOTIFICATION, _hide_notification)
    registry.register(ActionType.SET_MODAL_STATE, _set_modal_state)

    registry.register(ActionType.LOAD_FROM_STORAGE, _hydrate)
    registry.register(ActionType.SYNC_REMOTE_STATE, _hydrate)

    registry.register(ActionType.INITIALIZE_SYSTEM, _initialize_system)

    def reset_system(state: QuoteState, action: Action) -> QuoteState:
        return get_initial_state(
            total_steps=state.progress.total_steps,
            base_price=base_price,
            max_history_size=state.history.max_size,
        )

    registry.register(ActionType.RESET_SYSTEM, reset_system)

    def batch_actions(state: QuoteState, action: Action) -> QuoteState:
        # Sub-actions fold into one transition
        for sub_action in action.payload.get("actions") or ():
            state = registry(state, sub_action)
        return state

    registry.register(ActionType.BATCH_ACTIONS, batch_actions)

    return registry
