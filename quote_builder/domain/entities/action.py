from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping


class ActionType(str, Enum):
    # Package
    SELECT_PACKAGE = "SELECT_PACKAGE"
    UPDATE_PACKAGE_PRICE = "UPDATE_PACKAGE_PRICE"

    # Features
    SELECT_FEATURE = "SELECT_FEATURE"
    DESELECT_FEATURE = "DESELECT_FEATURE"
    TOGGLE_FEATURE = "TOGGLE_FEATURE"
    SELECT_FEATURES_BATCH = "SELECT_FEATURES_BATCH"
    CLEAR_FEATURES = "CLEAR_FEATURES"

    # Add-ons
    SELECT_ADDON = "SELECT_ADDON"
    DESELECT_ADDON = "DESELECT_ADDON"
    TOGGLE_ADDON = "TOGGLE_ADDON"
    SELECT_ADDONS_BATCH = "SELECT_ADDONS_BATCH"
    CLEAR_ADDONS = "CLEAR_ADDONS"

    # Components
    SELECT_COMPONENT = "SELECT_COMPONENT"
    DESELECT_COMPONENT = "DESELECT_COMPONENT"
    TOGGLE_COMPONENT = "TOGGLE_COMPONENT"
    SELECT_COMPONENTS_BATCH = "SELECT_COMPONENTS_BATCH"
    CLEAR_COMPONENTS = "CLEAR_COMPONENTS"

    # Emergency tier
    SELECT_EMERGENCY_SERVICE = "SELECT_EMERGENCY_SERVICE"
    DESELECT_EMERGENCY_SERVICE = "DESELECT_EMERGENCY_SERVICE"
    TOGGLE_EMERGENCY_SERVICE = "TOGGLE_EMERGENCY_SERVICE"

    # Service area
    SELECT_SERVICE_AREA = "SELECT_SERVICE_AREA"
    DESELECT_SERVICE_AREA = "DESELECT_SERVICE_AREA"

    # HVAC features
    SELECT_HVAC_FEATURE = "SELECT_HVAC_FEATURE"
    DESELECT_HVAC_FEATURE = "DESELECT_HVAC_FEATURE"
    TOGGLE_HVAC_FEATURE = "TOGGLE_HVAC_FEATURE"
    SELECT_HVAC_FEATURES_BATCH = "SELECT_HVAC_FEATURES_BATCH"
    CLEAR_HVAC_FEATURES = "CLEAR_HVAC_FEATURES"

    # Appliance features
    SELECT_APPLIANCE_FEATURE = "SELECT_APPLIANCE_FEATURE"
    DESELECT_APPLIANCE_FEATURE = "DESELECT_APPLIANCE_FEATURE"
    TOGGLE_APPLIANCE_FEATURE = "TOGGLE_APPLIANCE_FEATURE"
    SELECT_APPLIANCE_FEATURES_BATCH = "SELECT_APPLIANCE_FEATURES_BATCH"
    CLEAR_APPLIANCE_FEATURES = "CLEAR_APPLIANCE_FEATURES"

    # Contact features
    SELECT_CONTACT_FEATURE = "SELECT_CONTACT_FEATURE"
    DESELECT_CONTACT_FEATURE = "DESELECT_CONTACT_FEATURE"
    TOGGLE_CONTACT_FEATURE = "TOGGLE_CONTACT_FEATURE"
    SELECT_CONTACT_FEATURES_BATCH = "SELECT_CONTACT_FEATURES_BATCH"
    CLEAR_CONTACT_FEATURES = "CLEAR_CONTACT_FEATURES"

    # Price
    UPDATE_TOTAL_PRICE = "UPDATE_TOTAL_PRICE"
    CALCULATE_PRICE = "CALCULATE_PRICE"
    APPLY_DISCOUNT = "APPLY_DISCOUNT"
    REMOVE_DISCOUNT = "REMOVE_DISCOUNT"

    # Progress
    SET_CURRENT_STEP = "SET_CURRENT_STEP"
    NEXT_STEP = "NEXT_STEP"
    PREVIOUS_STEP = "PREVIOUS_STEP"
    RESET_PROGRESS = "RESET_PROGRESS"

    # Catalog data
    LOAD_DATA = "LOAD_DATA"
    LOAD_DATA_SUCCESS = "LOAD_DATA_SUCCESS"
    LOAD_DATA_ERROR = "LOAD_DATA_ERROR"
    UPDATE_PACKAGES = "UPDATE_PACKAGES"
    UPDATE_FEATURES = "UPDATE_FEATURES"
    UPDATE_ADDONS = "UPDATE_ADDONS"
    UPDATE_COMPONENTS = "UPDATE_COMPONENTS"
    UPDATE_EMERGENCY_SERVICES = "UPDATE_EMERGENCY_SERVICES"
    UPDATE_SERVICE_AREAS = "UPDATE_SERVICE_AREAS"
    UPDATE_HVAC_FEATURES = "UPDATE_HVAC_FEATURES"
    UPDATE_APPLIANCE_FEATURES = "UPDATE_APPLIANCE_FEATURES"
    UPDATE_CONTACT_FEATURES = "UPDATE_CONTACT_FEATURES"

    # UI
    SET_LOADING_STATE = "SET_LOADING_STATE"
    SET_ERROR_STATE = "SET_ERROR_STATE"
    SHOW_NOTIFICATION = "SHOW_NOTIFICATION"
    HIDE_NOTIFICATION = "HIDE_NOTIFICATION"
    SET_MODAL_STATE = "SET_MODAL_STATE"

    # Storage
    SAVE_TO_STORAGE = "SAVE_TO_STORAGE"
    LOAD_FROM_STORAGE = "LOAD_FROM_STORAGE"
    CLEAR_STORAGE = "CLEAR_STORAGE"

    # System
    INITIALIZE_SYSTEM = "INITIALIZE_SYSTEM"
    RESET_SYSTEM = "RESET_SYSTEM"
    UNDO_ACTION = "UNDO_ACTION"
    REDO_ACTION = "REDO_ACTION"
    BATCH_ACTIONS = "BATCH_ACTIONS"
    SYNC_REMOTE_STATE = "SYNC_REMOTE_STATE"

    @property
    def category(self) -> str:
        return _CATEGORY_BY_KIND[self]


def _categorize(kind: ActionType) -> str:
    name = kind.value
    prefixes = (
        ("HVAC", "hvac"),
        ("APPLIANCE", "appliance"),
        ("CONTACT", "contact"),
        ("EMERGENCY", "emergency"),
        ("SERVICE_AREA", "service_area"),
        ("PACKAGE", "package"),
        ("FEATURE", "feature"),
        ("ADDON", "addon"),
        ("COMPONENT", "component"),
    )
    if name.startswith("UPDATE_") and name not in ("UPDATE_PACKAGE_PRICE", "UPDATE_TOTAL_PRICE"):
        return "data"
    if name.startswith("LOAD_DATA"):
        return "data"
    for marker, category in prefixes:
        if marker in name:
            return category
    if "PRICE" in name or "DISCOUNT" in name:
        return "price"
    if "STEP" in name or "PROGRESS" in name:
        return "progress"
    if name.endswith("_STORAGE"):
        return "storage"
    if name.startswith(("SET_", "SHOW_", "HIDE_")):
        return "ui"
    return "system"


_CATEGORY_BY_KIND: dict[ActionType, str] = {kind: _categorize(kind) for kind in ActionType}


# Transient kinds: they only touch the ui region and never create history entries.
UI_ONLY_ACTIONS: frozenset[ActionType] = frozenset(
    {
        ActionType.SET_LOADING_STATE,
        ActionType.SET_ERROR_STATE,
        ActionType.SHOW_NOTIFICATION,
        ActionType.HIDE_NOTIFICATION,
        ActionType.SET_MODAL_STATE,
        ActionType.LOAD_DATA,
        ActionType.LOAD_DATA_ERROR,
    }
)


@dataclass(frozen=True)
class Action:
    kind: ActionType | str
    payload: Mapping[str, Any] = field(default_factory=dict)
    meta: Mapping[str, Any] = field(default_factory=dict)

    @classmethod
    def of(cls, kind: ActionType | str, payload: Mapping[str, Any] | None = None, **meta: Any) -> Action:
        """Build an action, resolving known kind names to ActionType members."""
        return cls(kind=resolve_kind(kind), payload=dict(payload or {}), meta=dict(meta))

    @property
    def is_known(self) -> bool:
        return isinstance(self.kind, ActionType)

    @property
    def kind_name(self) -> str:
        return self.kind.value if isinstance(self.kind, ActionType) else str(self.kind)

    @property
    def is_remote(self) -> bool:
        return bool(self.meta.get("remote"))


def resolve_kind(kind: ActionType | str) -> ActionType | str:
    if isinstance(kind, ActionType):
        return kind
    try:
        return ActionType(kind)
    except ValueError:
        return kind
