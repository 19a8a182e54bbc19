from __future__ import annotations

import time
from typing import Any, Iterable, Mapping

from quote_builder.domain.entities.action import Action, ActionType


class Actions:
    """Action creators. Payload shape is fixed per kind here, reducers read it as-is."""

    # Package
    @staticmethod
    def select_package(package_id: str) -> Action:
        return Action(ActionType.SELECT_PACKAGE, {"package_id": package_id})

    @staticmethod
    def update_package_price(package_id: str, price: int) -> Action:
        return Action(ActionType.UPDATE_PACKAGE_PRICE, {"package_id": package_id, "price": price})

    # Set-valued selection domains share one payload layout
    @staticmethod
    def select(kind: ActionType, item_id: str) -> Action:
        return Action(kind, {"id": item_id})

    @staticmethod
    def select_many(kind: ActionType, item_ids: Iterable[str]) -> Action:
        return Action(kind, {"ids": tuple(item_ids)})

    @staticmethod
    def select_feature(feature_id: str) -> Action:
        return Actions.select(ActionType.SELECT_FEATURE, feature_id)

    @staticmethod
    def deselect_feature(feature_id: str) -> Action:
        return Actions.select(ActionType.DESELECT_FEATURE, feature_id)

    @staticmethod
    def toggle_feature(feature_id: str) -> Action:
        return Actions.select(ActionType.TOGGLE_FEATURE, feature_id)

    @staticmethod
    def select_features_batch(feature_ids: Iterable[str]) -> Action:
        return Actions.select_many(ActionType.SELECT_FEATURES_BATCH, feature_ids)

    @staticmethod
    def clear_features() -> Action:
        return Action(ActionType.CLEAR_FEATURES)

    @staticmethod
    def toggle_addon(addon_id: str) -> Action:
        return Actions.select(ActionType.TOGGLE_ADDON, addon_id)

    @staticmethod
    def toggle_component(component_id: str) -> Action:
        return Actions.select(ActionType.TOGGLE_COMPONENT, component_id)

    @staticmethod
    def toggle_hvac_feature(feature_id: str) -> Action:
        return Actions.select(ActionType.TOGGLE_HVAC_FEATURE, feature_id)

    @staticmethod
    def toggle_appliance_feature(feature_id: str) -> Action:
        return Actions.select(ActionType.TOGGLE_APPLIANCE_FEATURE, feature_id)

    @staticmethod
    def toggle_contact_feature(feature_id: str) -> Action:
        return Actions.select(ActionType.TOGGLE_CONTACT_FEATURE, feature_id)

    # Single-valued selections
    @staticmethod
    def select_emergency_service(service_id: str) -> Action:
        return Action(ActionType.SELECT_EMERGENCY_SERVICE, {"id": service_id})

    @staticmethod
    def deselect_emergency_service() -> Action:
        return Action(ActionType.DESELECT_EMERGENCY_SERVICE)

    @staticmethod
    def toggle_emergency_service(service_id: str) -> Action:
        return Action(ActionType.TOGGLE_EMERGENCY_SERVICE, {"id": service_id})

    @staticmethod
    def select_service_area(area_id: str) -> Action:
        return Action(ActionType.SELECT_SERVICE_AREA, {"id": area_id})

    @staticmethod
    def deselect_service_area() -> Action:
        return Action(ActionType.DESELECT_SERVICE_AREA)

    # Price
    @staticmethod
    def update_total_price(price: int) -> Action:
        return Action(ActionType.UPDATE_TOTAL_PRICE, {"price": price})

    @staticmethod
    def calculate_price() -> Action:
        return Action(ActionType.CALCULATE_PRICE)

    @staticmethod
    def apply_discount(code: str, amount: int) -> Action:
        return Action(ActionType.APPLY_DISCOUNT, {"code": code, "amount": amount})

    @staticmethod
    def remove_discount() -> Action:
        return Action(ActionType.REMOVE_DISCOUNT)

    # Progress
    @staticmethod
    def set_current_step(step: int) -> Action:
        return Action(ActionType.SET_CURRENT_STEP, {"step": step})

    @staticmethod
    def next_step() -> Action:
        return Action(ActionType.NEXT_STEP)

    @staticmethod
    def previous_step() -> Action:
        return Action(ActionType.PREVIOUS_STEP)

    @staticmethod
    def reset_progress() -> Action:
        return Action(ActionType.RESET_PROGRESS)

    # Catalog data
    @staticmethod
    def load_data() -> Action:
        return Action(ActionType.LOAD_DATA)

    @staticmethod
    def load_data_success(data: Mapping[str, Any]) -> Action:
        return Action(ActionType.LOAD_DATA_SUCCESS, {"data": dict(data)})

    @staticmethod
    def load_data_error(error: str) -> Action:
        return Action(ActionType.LOAD_DATA_ERROR, {"error": error})

    @staticmethod
    def update_catalog(kind: ActionType, items: Iterable[Any]) -> Action:
        """UPDATE_PACKAGES, UPDATE_FEATURES, ... all carry {"items": [...]}."""
        return Action(kind, {"items": tuple(items)})

    # UI
    @staticmethod
    def set_loading_state(is_loading: bool) -> Action:
        return Action(ActionType.SET_LOADING_STATE, {"is_loading": is_loading})

    @staticmethod
    def set_error_state(error: str | None) -> Action:
        return Action(ActionType.SET_ERROR_STATE, {"error": error})

    @staticmethod
    def show_notification(message: str, type: str = "info", timestamp: float | None = None) -> Action:
        # Timestamp is taken here so the reducer stays pure
        return Action(
            ActionType.SHOW_NOTIFICATION,
            {"message": message, "type": type, "timestamp": timestamp if timestamp is not None else time.time()},
        )

    @staticmethod
    def hide_notification() -> Action:
        return Action(ActionType.HIDE_NOTIFICATION)

    @staticmethod
    def set_modal_state(modal_id: str, is_open: bool) -> Action:
        return Action(ActionType.SET_MODAL_STATE, {"modal_id": modal_id, "is_open": is_open})

    # Storage
    @staticmethod
    def save_to_storage() -> Action:
        return Action(ActionType.SAVE_TO_STORAGE)

    @staticmethod
    def load_from_storage(data: Mapping[str, Any]) -> Action:
        return Action(ActionType.LOAD_FROM_STORAGE, {"state": dict(data)})

    @staticmethod
    def clear_storage() -> Action:
        return Action(ActionType.CLEAR_STORAGE)

    # System
    @staticmethod
    def initialize_system() -> Action:
        return Action(ActionType.INITIALIZE_SYSTEM)

    @staticmethod
    def reset_system() -> Action:
        return Action(ActionType.RESET_SYSTEM)

    @staticmethod
    def undo() -> Action:
        return Action(ActionType.UNDO_ACTION)

    @staticmethod
    def redo() -> Action:
        return Action(ActionType.REDO_ACTION)

    @staticmethod
    def batch(actions: Iterable[Action]) -> Action:
        return Action(ActionType.BATCH_ACTIONS, {"actions": tuple(actions)})

    @staticmethod
    def sync_remote_state(state_slice: Mapping[str, Any], origin_kind: str) -> Action:
        return Action(
            ActionType.SYNC_REMOTE_STATE,
            {"state": dict(state_slice)},
            {"remote": True, "origin_kind": origin_kind},
        )
