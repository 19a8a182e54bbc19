import logging
from concurrent.futures import Future

import pytest

from quote_builder.application.exceptions import PersistenceFailure, ReducerFailure, ValidationFailure
from quote_builder.application.store.actions import Actions
from quote_builder.application.store.error_reporter import ErrorReporter
from quote_builder.application.store.middleware import (
    AnalyticsMiddleware,
    BatchMiddleware,
    CacheMiddleware,
    ErrorRecoveryMiddleware,
    PerformanceMiddleware,
    PersistenceMiddleware,
    RetryMiddleware,
    ThrottleMiddleware,
    ValidationMiddleware,
    ValidationResult,
)
from quote_builder.application.store.reducers import build_reducer_registry
from quote_builder.application.store.store import Store
from quote_builder.domain.entities.action import Action, ActionType
from quote_builder.infrastructure.storage.memory_storage import MemoryStateStorage


class BrokenStorage(MemoryStateStorage):
    def __init__(self) -> None:
        super().__init__()
        self.attempts = 0

    def save(self, data):
        self.attempts += 1
        raise PersistenceFailure("disk full")


def test_middleware_runs_outermost_first():
    trail = []

    def make(name):
        def mw(store, action, next):
            trail.append(f"{name}:in")
            result = next(action)
            trail.append(f"{name}:out")
            return result

        mw.__name__ = name
        return mw

    store = Store(middleware=[make("outer"), make("inner")])
    store.dispatch(Actions.select_feature("a"))

    assert trail == ["outer:in", "inner:in", "inner:out", "outer:out"]


def test_short_circuit_skips_reducer():
    def block(store, action, next):
        return store.get_state()

    store = Store(middleware=[block])
    before = store.get_state()
    assert store.dispatch(Actions.select_feature("a")) is before
    assert store.get_state() is before


def test_throttle_drops_repeat_inside_window(loaded_store, clock):
    store = Store(initial_state=loaded_store.get_state(), middleware=[ThrottleMiddleware(clock=clock)])

    store.dispatch(Actions.toggle_feature("extra-seo"))
    store.dispatch(Actions.calculate_price())
    assert store.get_state().pricing.total_price == 1500

    store.dispatch(Actions.toggle_feature("extra-seo"))
    throttled = store.dispatch(Actions.calculate_price())
    assert throttled is store.get_state()
    assert store.get_state().pricing.total_price == 1500

    clock.advance(0.6)
    store.dispatch(Actions.calculate_price())
    assert store.get_state().pricing.total_price == 1200


def test_throttle_ignores_other_kinds(clock):
    store = Store(middleware=[ThrottleMiddleware(clock=clock)])
    store.dispatch(Actions.select_feature("a"))
    store.dispatch(Actions.select_feature("b"))
    assert store.get_state().selections.features == frozenset({"a", "b"})


def test_retry_recovers_after_transient_failures(scheduler):
    attempts = []

    def flaky(store, action, next):
        attempts.append(action.meta.get("retry_attempt", 0))
        result = next(action)
        if len(attempts) < 3:
            raise PersistenceFailure("storage busy")
        return result

    store = Store(middleware=[RetryMiddleware(scheduler), flaky])
    outcome = store.dispatch(Actions.load_data())

    assert isinstance(outcome, Future)
    assert store.get_state().ui.is_loading is False

    scheduler.advance(1.0)
    assert attempts == [0, 1]
    assert not outcome.done()

    scheduler.advance(2.0)
    assert attempts == [0, 1, 2]
    assert outcome.result().ui.is_loading is True
    assert store.get_state().ui.is_loading is True


def test_retry_gives_up_after_max_retries(scheduler):
    attempts = []

    def always_fails(store, action, next):
        attempts.append(action.kind)
        raise PersistenceFailure("storage gone")

    store = Store(middleware=[RetryMiddleware(scheduler, max_retries=3), always_fails])
    outcome = store.dispatch(Actions.save_to_storage())
    scheduler.run_all()

    assert len(attempts) == 4
    assert scheduler.now == 6.0
    assert isinstance(outcome.exception(), PersistenceFailure)


def test_retry_does_not_hold_the_store(scheduler):
    """Other actions go through while a retry is waiting."""

    def fail_saves(store, action, next):
        if action.kind is ActionType.SAVE_TO_STORAGE:
            raise PersistenceFailure("disk full")
        return next(action)

    store = Store(middleware=[RetryMiddleware(scheduler), fail_saves])

    outcome = store.dispatch(Actions.save_to_storage())
    store.dispatch(Actions.select_feature("a"))

    assert not outcome.done()
    assert store.get_state().selections.features == frozenset({"a"})
    assert scheduler.pending == 1


def test_retry_only_applies_to_retryable_kinds(scheduler):
    attempts = []

    def always_fails(store, action, next):
        attempts.append(action.kind)
        raise PersistenceFailure("nope")

    store = Store(middleware=[RetryMiddleware(scheduler), always_fails])
    with pytest.raises(PersistenceFailure):
        store.dispatch(Actions.select_feature("a"))
    assert len(attempts) == 1
    assert scheduler.pending == 0


def test_cache_skips_repeat_within_ttl(clock):
    registry = build_reducer_registry()
    calls = []

    def counting_load(state, action):
        calls.append(action.kind)
        return state

    registry.register(ActionType.LOAD_DATA, counting_load)
    cache = CacheMiddleware(ttl_seconds=300, clock=clock)
    store = Store(middleware=[cache], reducer=registry)

    store.dispatch(Actions.load_data())
    store.dispatch(Actions.load_data())
    assert len(calls) == 1

    clock.advance(301)
    store.dispatch(Actions.load_data())
    assert len(calls) == 2

    cache.clear()
    store.dispatch(Actions.load_data())
    assert len(calls) == 3


def test_cache_drops_expired_entries(clock):
    cache = CacheMiddleware(ttl_seconds=60, clock=clock, key=lambda action: action.payload["source"])
    store = Store(middleware=[cache])

    for source in ("a", "b", "c"):
        store.dispatch(Action(ActionType.LOAD_DATA, {"source": source}))
    assert cache.size == 3

    clock.advance(61)
    store.dispatch(Action(ActionType.LOAD_DATA, {"source": "d"}))
    assert cache.size == 1


def test_error_counts_group_by_error_type():
    reporter = ErrorReporter()
    reporter.report(PersistenceFailure("disk full at 10:01"))
    reporter.report(PersistenceFailure("disk full at 10:02"))
    reporter.report(ValidationFailure("no package"))

    counts = reporter.stats()["error_counts"]
    assert counts == {"Storage:PersistenceFailure": 2, "Validation:ValidationFailure": 1}


def test_batch_coalesces_rapid_selections(scheduler):
    batch = BatchMiddleware(scheduler, delay_seconds=0.016)
    store = Store(middleware=[batch])
    notified = []
    store.subscribe(notified.append)

    first = store.dispatch(Actions.toggle_feature("a"))
    second = store.dispatch(Actions.toggle_feature("b"))

    assert isinstance(first, Future)
    assert first is second
    assert batch.pending == 2
    assert scheduler.pending == 1
    assert store.get_state().selections.features == frozenset()

    scheduler.advance(0.02)

    assert batch.pending == 0
    assert len(notified) == 1
    assert first.result().selections.features == frozenset({"a", "b"})
    assert store.get_stats()["history_size"] == 2


def test_batch_passes_other_kinds_through(scheduler):
    store = Store(middleware=[BatchMiddleware(scheduler)])
    state = store.dispatch(Actions.next_step())
    assert state.progress.current_step == 2
    assert scheduler.pending == 0


def test_error_recovery_runs_strategy_past_limit(clock):
    recovered = []
    recovery = ErrorRecoveryMiddleware(
        max_errors=2,
        window_seconds=60,
        strategies={"default": lambda store, action, exc: recovered.append(action.kind)},
        clock=clock,
    )
    registry = build_reducer_registry()
    registry.register(ActionType.APPLY_DISCOUNT, lambda state, action: 1 / 0)
    store = Store(middleware=[recovery], reducer=registry)

    for _ in range(3):
        with pytest.raises(ReducerFailure):
            store.dispatch(Actions.apply_discount("X", 1))

    assert recovered == [ActionType.APPLY_DISCOUNT]
    assert recovery.recoveries == 1
    assert recovery.error_count(ActionType.APPLY_DISCOUNT) == 3

    clock.advance(61)
    with pytest.raises(ReducerFailure):
        store.dispatch(Actions.apply_discount("X", 1))
    assert recovery.error_count(ActionType.APPLY_DISCOUNT) == 1
    assert recovery.recoveries == 1


def test_performance_records_metrics_and_alerts(caplog):
    ticks = iter(x * 0.2 for x in range(100))
    perf = PerformanceMiddleware(alert_ms=100, max_metrics=2, clock=lambda: next(ticks))
    store = Store(middleware=[perf])

    with caplog.at_level(logging.WARNING):
        for feature_id in ("a", "b", "c"):
            store.dispatch(Actions.select_feature(feature_id))

    assert len(perf.metrics) == 2
    assert perf.metrics[-1].action == "SELECT_FEATURE"
    assert perf.metrics[-1].state_size > 0
    assert perf.summary()["count"] == 2
    assert "Performance alert" in caplog.text


def test_analytics_tracks_actions_and_custom_events():
    events = []
    hooked = []
    analytics = AnalyticsMiddleware(
        sink=events.append,
        custom_events={ActionType.APPLY_DISCOUNT: lambda action, state: hooked.append(action.payload["code"])},
    )
    store = Store(middleware=[analytics])

    store.dispatch(Actions.set_loading_state(True))
    store.dispatch(Actions.apply_discount("SPRING", 100))

    assert [e["action"] for e in events] == ["APPLY_DISCOUNT"]
    assert events[0]["payload"] == {"code": "SPRING", "amount": 100}
    assert hooked == ["SPRING"]


def test_analytics_failure_does_not_block_action():
    def broken_sink(event):
        raise RuntimeError("tracker offline")

    store = Store(middleware=[AnalyticsMiddleware(sink=broken_sink)])
    store.dispatch(Actions.select_feature("a"))
    assert store.get_state().selections.features == frozenset({"a"})


def test_pre_validation_rejects_before_reducer():
    def no_negative_discounts(action, state):
        if action.kind is ActionType.APPLY_DISCOUNT and action.payload["amount"] < 0:
            return ValidationResult(False, "discount must be positive")
        return ValidationResult(True)

    store = Store(middleware=[ValidationMiddleware(pre_action=no_negative_discounts)])
    with pytest.raises(ValidationFailure, match="discount must be positive"):
        store.dispatch(Actions.apply_discount("BAD", -5))
    assert store.get_state().pricing.discount is None


def test_post_validation_rolls_back():
    def price_cap(action, state, previous):
        if state.pricing.total_price > 10000:
            return ValidationResult(False, "price over cap")
        return ValidationResult(True)

    store = Store(middleware=[ValidationMiddleware(post_action=price_cap)])
    before = store.get_state()
    notified = []
    store.subscribe(notified.append)

    with pytest.raises(ValidationFailure):
        store.dispatch(Actions.update_total_price(20000))

    assert store.get_state() is before
    assert notified == []
    store.dispatch(Actions.update_total_price(3000))
    assert store.get_state().pricing.total_price == 3000


def test_persistence_debounces_saves(scheduler):
    storage = MemoryStateStorage()
    persistence = PersistenceMiddleware(storage, scheduler, debounce_seconds=1.0, clock=lambda: 1000.0)
    store = Store(middleware=[persistence])

    for feature_id in ("b", "a", "c"):
        store.dispatch(Actions.select_feature(feature_id))
    assert storage.load() is None
    assert scheduler.pending == 1
    assert persistence.has_pending_save

    scheduler.advance(1.0)

    saved = storage.load()
    assert persistence.saves == 1
    assert saved["version"] == "1.0"
    assert saved["timestamp"] == 1_000_000
    assert saved["state"]["selections"]["features"] == ["a", "b", "c"]
    assert "ui" not in saved["state"]
    assert "catalog" not in saved["state"]


def test_persistence_skips_ui_only_changes(scheduler):
    storage = MemoryStateStorage()
    store = Store(middleware=[PersistenceMiddleware(storage, scheduler)])
    store.dispatch(Actions.set_modal_state("summary", True))
    assert scheduler.pending == 0


def test_save_to_storage_is_immediate(scheduler):
    storage = MemoryStateStorage()
    persistence = PersistenceMiddleware(storage, scheduler)
    store = Store(middleware=[persistence])

    store.dispatch(Actions.select_feature("a"))
    store.dispatch(Actions.save_to_storage())

    assert storage.load()["state"]["selections"]["features"] == ["a"]
    assert not persistence.has_pending_save

    store.dispatch(Actions.clear_storage())
    assert storage.load() is None


def test_save_failure_is_retried_then_raised(scheduler):
    storage = BrokenStorage()
    store = Store(
        middleware=[
            RetryMiddleware(scheduler, max_retries=2),
            PersistenceMiddleware(storage, scheduler),
        ]
    )
    outcome = store.dispatch(Actions.save_to_storage())
    scheduler.run_all()

    assert storage.attempts == 3
    assert isinstance(outcome.exception(), PersistenceFailure)


def test_background_save_failure_is_reported(scheduler):
    reporter = ErrorReporter()
    store = Store(middleware=[PersistenceMiddleware(BrokenStorage(), scheduler, reporter=reporter)])

    store.dispatch(Actions.select_feature("a"))
    scheduler.advance(1.0)

    stats = reporter.stats()
    assert stats["total_errors"] == 1
    assert reporter.recent()[0].context == "Storage"
    assert store.get_state().selections.features == frozenset({"a"})


def test_close_flushes_pending_save(scheduler):
    storage = MemoryStateStorage()
    store = Store(middleware=[PersistenceMiddleware(storage, scheduler)])
    store.dispatch(Actions.select_feature("a"))

    store.close()

    assert storage.load()["state"]["selections"]["features"] == ["a"]
    assert scheduler.pending == 0
