import pytest

from quote_builder.application.store.actions import Actions
from quote_builder.application.store.store import Store
from quote_builder.infrastructure.scheduling.manual_scheduler import ManualScheduler


class FakeClock:
    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def scheduler():
    return ManualScheduler()


@pytest.fixture
def catalog_data():
    return {
        "packages": [
            {"id": "starter", "name": "Starter Site", "price": 1000, "included_features": ["live-chat"]},
            {"id": "pro", "name": "Pro Site", "price": 2000},
        ],
        "features": [
            {"id": "extra-seo", "name": "Extra SEO", "price": 300},
            {"id": "live-chat", "name": "Live Chat", "price": 400},
        ],
        "addons": [{"id": "priority-support", "name": "Priority Support", "price": 199}],
        "emergency_services": [{"id": "emergency-24-7", "name": "24/7 Emergency", "price": 250}],
        "service_areas": [{"id": "metro", "name": "Metro Area", "price": 100}],
    }


@pytest.fixture
def loaded_store(catalog_data):
    """Bare store (no middleware) with the test catalog loaded."""
    store = Store()
    store.dispatch(Actions.load_data_success(catalog_data))
    return store
