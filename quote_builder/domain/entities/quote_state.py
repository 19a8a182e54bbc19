from __future__ import annotations

from dataclasses import dataclass, field

from quote_builder.domain.entities.catalog import CatalogItem, Package
from quote_builder.domain.entities.history_entry import HistoryEntry

DEFAULT_BASE_PRICE = 1200
DEFAULT_TOTAL_STEPS = 5
DEFAULT_MAX_HISTORY_SIZE = 50


@dataclass(frozen=True)
class Selections:
    package_id: str | None = None
    emergency_id: str | None = None
    service_area_id: str | None = None
    features: frozenset[str] = frozenset()
    addons: frozenset[str] = frozenset()
    components: frozenset[str] = frozenset()
    hvac_features: frozenset[str] = frozenset()
    appliance_features: frozenset[str] = frozenset()
    contact_features: frozenset[str] = frozenset()


@dataclass(frozen=True)
class Discount:
    code: str
    amount: int


@dataclass(frozen=True)
class Pricing:
    total_price: int = DEFAULT_BASE_PRICE
    discount: Discount | None = None


@dataclass(frozen=True)
class Progress:
    current_step: int = 1
    total_steps: int = DEFAULT_TOTAL_STEPS


@dataclass(frozen=True)
class Catalog:
    packages: tuple[Package, ...] = ()
    features: tuple[CatalogItem, ...] = ()
    addons: tuple[CatalogItem, ...] = ()
    components: tuple[CatalogItem, ...] = ()
    emergency_services: tuple[CatalogItem, ...] = ()
    service_areas: tuple[CatalogItem, ...] = ()
    hvac_features: tuple[CatalogItem, ...] = ()
    appliance_features: tuple[CatalogItem, ...] = ()
    contact_features: tuple[CatalogItem, ...] = ()


@dataclass(frozen=True)
class Notification:
    message: str
    type: str = "info"  # "info", "success", "warning", "error"
    timestamp: float | None = None


@dataclass(frozen=True)
class UIState:
    is_loading: bool = False
    error: str | None = None
    notification: Notification | None = None
    modals: dict[str, bool] = field(default_factory=dict)  # replaced, never mutated


@dataclass(frozen=True)
class SystemState:
    initialized: bool = False


@dataclass(frozen=True)
class HistoryState:
    entries: tuple[HistoryEntry, ...] = ()
    cursor: int = -1
    max_size: int = DEFAULT_MAX_HISTORY_SIZE


@dataclass(frozen=True)
class QuoteState:
    selections: Selections = Selections()
    pricing: Pricing = Pricing()
    progress: Progress = Progress()
    catalog: Catalog = Catalog()
    ui: UIState = UIState()
    system: SystemState = SystemState()
    history: HistoryState = HistoryState()


def get_initial_state(
    total_steps: int = DEFAULT_TOTAL_STEPS,
    base_price: int = DEFAULT_BASE_PRICE,
    max_history_size: int = DEFAULT_MAX_HISTORY_SIZE,
) -> QuoteState:
    """Fresh state used at store construction and on RESET_SYSTEM."""
    return QuoteState(
        pricing=Pricing(total_price=base_price),
        progress=Progress(current_step=1, total_steps=total_steps),
        history=HistoryState(max_size=max_history_size),
    )
