from __future__ import annotations

from typing import Any, Callable, Generic, TypeVar

from quote_builder.application.utils.pricing import calculate_total_price, find_item, find_package
from quote_builder.application.utils.state_serialization import state_size
from quote_builder.domain.entities.catalog import CatalogItem
from quote_builder.domain.entities.quote_state import QuoteState

T = TypeVar("T")
Selector = Callable[[QuoteState], Any]

_UNSET = object()


class MemoizedSelector(Generic[T]):
    """
    Selector caching its last (state, inputs, result).

    Called with the same state object it returns the cached result without
    evaluating anything. Called with a new state it evaluates its dependencies
    and re-runs the combiner only when a dependency output changed identity.
    """

    def __init__(
        self,
        dependencies: tuple[Selector, ...],
        combiner: Callable[..., T],
        name: str | None = None,
    ) -> None:
        self._dependencies = dependencies
        self._combiner = combiner
        self.name = name or getattr(combiner, "__name__", "selector")
        self.recomputations = 0
        # (state, inputs, result); always replaced whole
        self._cache: tuple[Any, tuple[Any, ...] | None, Any] = (_UNSET, None, _UNSET)

    def __call__(self, state: QuoteState) -> T:
        last_state, last_inputs, last_result = self._cache
        if state is last_state:
            return last_result

        if self._dependencies:
            inputs = tuple(dependency(state) for dependency in self._dependencies)
        else:
            inputs = (state,)

        if last_inputs is not None and _same_inputs(inputs, last_inputs):
            self._cache = (state, last_inputs, last_result)
            return last_result

        result = self._combiner(*inputs)
        self.recomputations += 1
        self._cache = (state, inputs, result)
        return result

    def reset(self) -> None:
        self._cache = (_UNSET, None, _UNSET)

    def __repr__(self) -> str:
        return f"MemoizedSelector({self.name!r}, recomputations={self.recomputations})"


def _same_inputs(current: tuple[Any, ...], previous: tuple[Any, ...]) -> bool:
    return len(current) == len(previous) and all(a is b for a, b in zip(current, previous))


def create_selector(*args: Callable[..., Any], name: str | None = None) -> MemoizedSelector:
    """
    create_selector(dep1, dep2, ..., combiner)

    The last positional argument is the combiner; it receives the dependency
    outputs in order. With no dependencies the combiner receives the state.
    """
    if not args:
        raise TypeError("create_selector needs at least a combiner")
    *dependencies, combiner = args
    return MemoizedSelector(tuple(dependencies), combiner, name=name)


def compose_selectors(*selectors: Selector) -> Callable[[QuoteState], tuple[Any, ...]]:
    def composed(state: QuoteState) -> tuple[Any, ...]:
        return tuple(selector(state) for selector in selectors)

    return composed


def create_conditional_selector(
    condition: Callable[[QuoteState], bool],
    when_true: Selector,
    when_false: Selector,
) -> Selector:
    def conditional(state: QuoteState) -> Any:
        return when_true(state) if condition(state) else when_false(state)

    return conditional


def _selected_details(selected: frozenset[str], items: tuple[CatalogItem, ...]) -> tuple[CatalogItem, ...]:
    return tuple(item for item in items if item.id in selected)


# Raw region reads; structural sharing keeps their outputs identical across unrelated changes

def select_selections(state: QuoteState):
    return state.selections


def select_catalog(state: QuoteState):
    return state.catalog


def select_pricing(state: QuoteState):
    return state.pricing


def select_progress(state: QuoteState):
    return state.progress


def select_ui(state: QuoteState):
    return state.ui


def select_history(state: QuoteState):
    return state.history


# Package
def select_package_id(state: QuoteState) -> str | None:
    return state.selections.package_id


select_selected_package = create_selector(
    select_package_id, select_catalog, lambda package_id, catalog: find_package(catalog, package_id),
    name="selected_package",
)

# Set-valued domains
def select_feature_ids(state: QuoteState) -> frozenset[str]:
    return state.selections.features


def select_addon_ids(state: QuoteState) -> frozenset[str]:
    return state.selections.addons


def select_component_ids(state: QuoteState) -> frozenset[str]:
    return state.selections.components


def select_hvac_feature_ids(state: QuoteState) -> frozenset[str]:
    return state.selections.hvac_features


def select_appliance_feature_ids(state: QuoteState) -> frozenset[str]:
    return state.selections.appliance_features


def select_contact_feature_ids(state: QuoteState) -> frozenset[str]:
    return state.selections.contact_features


select_feature_details = create_selector(
    select_feature_ids, lambda s: s.catalog.features, _selected_details, name="feature_details"
)
select_addon_details = create_selector(
    select_addon_ids, lambda s: s.catalog.addons, _selected_details, name="addon_details"
)
select_component_details = create_selector(
    select_component_ids, lambda s: s.catalog.components, _selected_details, name="component_details"
)
select_hvac_feature_details = create_selector(
    select_hvac_feature_ids, lambda s: s.catalog.hvac_features, _selected_details, name="hvac_feature_details"
)
select_appliance_feature_details = create_selector(
    select_appliance_feature_ids,
    lambda s: s.catalog.appliance_features,
    _selected_details,
    name="appliance_feature_details",
)
select_contact_feature_details = create_selector(
    select_contact_feature_ids,
    lambda s: s.catalog.contact_features,
    _selected_details,
    name="contact_feature_details",
)

# Single-valued domains
def select_emergency_id(state: QuoteState) -> str | None:
    return state.selections.emergency_id


def select_service_area_id(state: QuoteState) -> str | None:
    return state.selections.service_area_id


select_emergency_details = create_selector(
    select_emergency_id, lambda s: s.catalog.emergency_services, lambda i, items: find_item(items, i),
    name="emergency_details",
)
select_service_area_details = create_selector(
    select_service_area_id, lambda s: s.catalog.service_areas, lambda i, items: find_item(items, i),
    name="service_area_details",
)


# Price
def select_total_price(state: QuoteState) -> int:
    return state.pricing.total_price


def select_discount(state: QuoteState):
    return state.pricing.discount


def _final_price(total_price: int, discount) -> int:
    if not discount:
        return total_price
    return max(0, total_price - discount.amount)


def _discount_percentage(total_price: int, discount) -> int:
    amount = discount.amount if discount else 0
    if total_price == 0 or amount == 0:
        return 0
    return round(amount / total_price * 100)


select_final_price = create_selector(select_total_price, select_discount, _final_price, name="final_price")
select_discount_amount = create_selector(
    select_discount, lambda discount: discount.amount if discount else 0, name="discount_amount"
)
select_discount_percentage = create_selector(
    select_total_price, select_discount, _discount_percentage, name="discount_percentage"
)
select_calculated_price = create_selector(
    select_selections, select_catalog, calculate_total_price, name="calculated_price"
)


# Progress
def select_current_step(state: QuoteState) -> int:
    return state.progress.current_step


def select_total_steps(state: QuoteState) -> int:
    return state.progress.total_steps


select_progress_percentage = create_selector(
    select_progress,
    lambda p: p.current_step / p.total_steps * 100 if p.total_steps > 0 else 0,
    name="progress_percentage",
)
select_can_go_next = create_selector(
    select_progress, lambda p: p.current_step < p.total_steps, name="can_go_next"
)
select_can_go_previous = create_selector(
    select_progress, lambda p: p.current_step > 1, name="can_go_previous"
)


# UI
def select_is_loading(state: QuoteState) -> bool:
    return state.ui.is_loading


def select_error(state: QuoteState) -> str | None:
    return state.ui.error


def select_notification(state: QuoteState):
    return state.ui.notification


def select_modals(state: QuoteState) -> dict[str, bool]:
    return state.ui.modals


def make_modal_is_open(modal_id: str) -> MemoizedSelector:
    return create_selector(select_modals, lambda modals: bool(modals.get(modal_id, False)), name=f"modal:{modal_id}")


# System and history
def select_is_initialized(state: QuoteState) -> bool:
    return state.system.initialized


def select_history_size(state: QuoteState) -> int:
    return len(state.history.entries)


def select_history_index(state: QuoteState) -> int:
    return state.history.cursor


select_can_undo = create_selector(select_history, lambda h: h.cursor > 0, name="can_undo")
select_can_redo = create_selector(
    select_history, lambda h: 0 <= h.cursor < len(h.entries) - 1, name="can_redo"
)


# Combined
def _all_selected(selections) -> dict[str, Any]:
    return {
        "package": selections.package_id,
        "features": sorted(selections.features),
        "addons": sorted(selections.addons),
        "components": sorted(selections.components),
        "emergency": selections.emergency_id,
        "service_area": selections.service_area_id,
        "hvac_features": sorted(selections.hvac_features),
        "appliance_features": sorted(selections.appliance_features),
        "contact_features": sorted(selections.contact_features),
    }


def _selection_summary(selections) -> dict[str, Any]:
    counts = {
        "features": len(selections.features),
        "addons": len(selections.addons),
        "components": len(selections.components),
        "hvac_features": len(selections.hvac_features),
        "appliance_features": len(selections.appliance_features),
        "contact_features": len(selections.contact_features),
    }
    has_emergency = selections.emergency_id is not None
    has_service_area = selections.service_area_id is not None
    return {
        "total_items": sum(counts.values()) + int(has_emergency) + int(has_service_area),
        **counts,
        "has_emergency": has_emergency,
        "has_service_area": has_service_area,
    }


select_all_selected_items = create_selector(select_selections, _all_selected, name="all_selected_items")
select_selection_summary = create_selector(select_selections, _selection_summary, name="selection_summary")


def _quote_summary(package_id, total_price, final_price, discount, summary) -> dict[str, Any]:
    return {
        "package": package_id,
        "base_price": total_price,
        "final_price": final_price,
        "discount": {"code": discount.code, "amount": discount.amount} if discount else None,
        "savings": discount.amount if discount else 0,
        "selections": summary,
    }


select_quote_summary = create_selector(
    select_package_id,
    select_total_price,
    select_final_price,
    select_discount,
    select_selection_summary,
    _quote_summary,
    name="quote_summary",
)


def _validation_errors(package_id, progress) -> list[str]:
    errors = []
    if not package_id:
        errors.append("Please select a package")
    if progress.current_step < progress.total_steps:
        errors.append("Please complete all steps")
    return errors


select_validation_errors = create_selector(
    select_package_id, select_progress, _validation_errors, name="validation_errors"
)
select_is_quote_valid = create_selector(
    select_validation_errors, lambda errors: not errors, name="is_quote_valid"
)

select_state_size = create_selector(state_size, name="state_size")


SELECTORS: dict[str, Selector] = {
    "package_id": select_package_id,
    "selected_package": select_selected_package,
    "feature_ids": select_feature_ids,
    "feature_details": select_feature_details,
    "addon_ids": select_addon_ids,
    "addon_details": select_addon_details,
    "component_ids": select_component_ids,
    "component_details": select_component_details,
    "hvac_feature_ids": select_hvac_feature_ids,
    "hvac_feature_details": select_hvac_feature_details,
    "appliance_feature_ids": select_appliance_feature_ids,
    "appliance_feature_details": select_appliance_feature_details,
    "contact_feature_ids": select_contact_feature_ids,
    "contact_feature_details": select_contact_feature_details,
    "emergency_id": select_emergency_id,
    "emergency_details": select_emergency_details,
    "service_area_id": select_service_area_id,
    "service_area_details": select_service_area_details,
    "total_price": select_total_price,
    "discount": select_discount,
    "final_price": select_final_price,
    "discount_amount": select_discount_amount,
    "discount_percentage": select_discount_percentage,
    "calculated_price": select_calculated_price,
    "current_step": select_current_step,
    "total_steps": select_total_steps,
    "progress_percentage": select_progress_percentage,
    "can_go_next": select_can_go_next,
    "can_go_previous": select_can_go_previous,
    "is_loading": select_is_loading,
    "error": select_error,
    "notification": select_notification,
    "modals": select_modals,
    "is_initialized": select_is_initialized,
    "history_size": select_history_size,
    "history_index": select_history_index,
    "can_undo": select_can_undo,
    "can_redo": select_can_redo,
    "all_selected_items": select_all_selected_items,
    "selection_summary": select_selection_summary,
    "quote_summary": select_quote_summary,
    "is_quote_valid": select_is_quote_valid,
    "validation_errors": select_validation_errors,
    "state_size": select_state_size,
}


def reset_selector_caches() -> None:
    for selector in SELECTORS.values():
        if isinstance(selector, MemoizedSelector):
            selector.reset()
