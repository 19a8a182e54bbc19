import threading
from concurrent.futures import Future

import pytest

from quote_builder.application.exceptions import MiddlewareFailure, ReducerFailure, ValidationFailure
from quote_builder.application.store.actions import Actions
from quote_builder.application.store.error_reporter import ErrorReporter
from quote_builder.application.store.middleware import ErrorReportingMiddleware
from quote_builder.application.store.reducers import build_reducer_registry
from quote_builder.application.store.store import Store
from quote_builder.domain.entities.action import Action, ActionType
from quote_builder.domain.entities.quote_state import get_initial_state


def _failing_registry(kind=ActionType.APPLY_DISCOUNT):
    registry = build_reducer_registry()

    def boom(state, action):
        raise ValueError("boom")

    registry.register(kind, boom)
    return registry


def test_new_store_seeds_history():
    store = Store()
    stats = store.get_stats()
    assert stats["history_size"] == 1
    assert stats["history_index"] == 0
    assert store.get_state().history.entries[0].action is None
    assert store.undo() is False
    assert store.redo() is False


def test_unknown_action_changes_nothing():
    store = Store()
    notified = []
    store.subscribe(notified.append)
    before = store.get_state()

    result = store.dispatch("NOT_A_KIND", {"x": 1})

    assert result is before
    assert store.get_state() is before
    assert notified == []
    assert store.get_stats()["history_size"] == 1


def test_dispatch_accepts_kind_name_and_payload():
    store = Store()
    state = store.dispatch("SELECT_FEATURE", {"id": "extra-seo"})
    assert state.selections.features == frozenset({"extra-seo"})
    assert state is store.get_state()


def test_subscribers_are_notified_in_order_and_can_unsubscribe():
    store = Store()
    calls = []
    store.subscribe(lambda s: calls.append("first"))
    unsubscribe = store.subscribe(lambda s: calls.append("second"))

    store.dispatch(Actions.toggle_feature("a"))
    unsubscribe()
    store.dispatch(Actions.toggle_feature("b"))

    assert calls == ["first", "second", "first"]


def test_failing_subscriber_does_not_block_others():
    store = Store()
    seen = []

    def broken(state):
        raise RuntimeError("listener bug")

    store.subscribe(broken)
    store.subscribe(lambda s: seen.append(s.selections.features))

    store.dispatch(Actions.select_feature("a"))

    assert seen == [frozenset({"a"})]
    assert store.get_state().selections.features == frozenset({"a"})


def test_toggle_and_recalculate_scenario(loaded_store):
    """Select a feature, price it, deselect it, price again."""
    store = loaded_store
    assert store.get_state().selections.features == frozenset()
    assert store.get_state().pricing.total_price == 1200

    store.dispatch(Actions.toggle_feature("extra-seo"))
    assert store.get_state().selections.features == frozenset({"extra-seo"})
    store.dispatch(Actions.calculate_price())
    assert store.get_state().pricing.total_price == 1500

    store.dispatch(Actions.toggle_feature("extra-seo"))
    assert store.get_state().selections.features == frozenset()
    store.dispatch(Actions.calculate_price())
    assert store.get_state().pricing.total_price == 1200


def test_undo_then_redo_restores_state():
    store = Store()
    store.dispatch(Actions.select_feature("a"))
    after_b = store.dispatch(Actions.select_feature("b"))

    assert store.undo() is True
    assert store.get_state().selections.features == frozenset({"a"})

    assert store.redo() is True
    assert store.get_state() == after_b


def test_new_action_after_undo_discards_redo():
    store = Store()
    store.dispatch(Actions.select_feature("a"))
    store.dispatch(Actions.select_feature("b"))
    store.undo()

    store.dispatch(Actions.select_feature("c"))

    assert store.get_state().selections.features == frozenset({"a", "c"})
    assert store.redo() is False
    assert store.get_stats()["history_size"] == 3


def test_undo_to_initial_state_and_stop():
    store = Store()
    initial = store.get_state()
    store.dispatch(Actions.select_feature("a"))

    assert store.undo() is True
    assert store.get_state().selections == initial.selections
    assert store.undo() is False


def test_ui_actions_are_not_recorded_and_survive_undo():
    store = Store()
    store.dispatch(Actions.select_feature("a"))
    store.dispatch(Actions.show_notification("Saved", timestamp=1.0))
    store.dispatch(Actions.set_loading_state(True))

    assert store.get_stats()["history_size"] == 2

    store.undo()
    state = store.get_state()
    assert state.selections.features == frozenset()
    assert state.ui.notification.message == "Saved"
    assert state.ui.is_loading is True


def test_history_is_bounded():
    store = Store(initial_state=get_initial_state(max_history_size=3))
    for feature_id in ("a", "b", "c", "d", "e"):
        store.dispatch(Actions.select_feature(feature_id))

    history = store.get_state().history
    assert len(history.entries) == 3
    assert history.cursor == 2
    assert [e.action.payload["id"] for e in history.entries] == ["c", "d", "e"]

    store.undo()
    store.undo()
    assert store.undo() is False
    assert store.get_state().selections.features == frozenset({"a", "b", "c"})


def test_history_snapshots_do_not_nest_history():
    store = Store()
    store.dispatch(Actions.select_feature("a"))
    store.dispatch(Actions.select_feature("b"))
    for entry in store.get_state().history.entries:
        assert entry.snapshot.history.entries == ()


def test_undo_action_kinds_go_through_dispatch():
    store = Store()
    store.dispatch(Actions.select_feature("a"))
    store.dispatch(Actions.undo())
    assert store.get_state().selections.features == frozenset()
    store.dispatch(Actions.redo())
    assert store.get_state().selections.features == frozenset({"a"})


def test_reducer_failure_leaves_state_untouched():
    store = Store(reducer=_failing_registry())
    notified = []
    store.subscribe(notified.append)
    before = store.get_state()

    with pytest.raises(ReducerFailure) as exc_info:
        store.dispatch(Actions.apply_discount("SPRING", 100))

    assert isinstance(exc_info.value.cause, ValueError)
    assert exc_info.value.kind == "APPLY_DISCOUNT"
    assert store.get_state() is before
    assert notified == []
    assert store.get_stats()["history_size"] == 1


def test_missing_payload_field_is_a_reducer_failure():
    store = Store()
    with pytest.raises(ReducerFailure):
        store.dispatch(Action(ActionType.TOGGLE_FEATURE))
    assert store.get_state().selections.features == frozenset()


def test_middleware_failure_after_reducer_rolls_back():
    def exploding(store, action, next):
        next(action)
        raise ValueError("late failure")

    store = Store(middleware=[exploding])
    before = store.get_state()

    with pytest.raises(MiddlewareFailure) as exc_info:
        store.dispatch(Actions.select_feature("a"))

    assert exc_info.value.middleware == "exploding"
    assert store.get_state() is before


def test_error_reporting_surfaces_failure_in_ui():
    reporter = ErrorReporter()
    store = Store(middleware=[ErrorReportingMiddleware(reporter)], reducer=_failing_registry())

    with pytest.raises(ReducerFailure):
        store.dispatch(Actions.apply_discount("SPRING", 100))

    state = store.get_state()
    assert "boom" in state.ui.error
    assert state.pricing.discount is None
    assert reporter.stats()["total_errors"] == 1


def test_dispatch_from_subscriber_is_queued_in_order():
    store = Store()
    seen = []
    futures = []

    def follow_up(state):
        seen.append(sorted(state.selections.features))
        if len(seen) == 1:
            futures.append(store.dispatch(Actions.select_feature("b")))
            futures.append(store.dispatch(Actions.select_feature("c")))

    store.subscribe(follow_up)
    result = store.dispatch(Actions.select_feature("a"))

    assert result.selections.features == frozenset({"a"})
    assert seen == [["a"], ["a", "b"], ["a", "b", "c"]]
    assert all(isinstance(f, Future) for f in futures)
    assert futures[0].result().selections.features == frozenset({"a", "b"})
    assert futures[1].result() is store.get_state()

    recorded = [e.action.payload["id"] for e in store.get_state().history.entries[1:]]
    assert recorded == ["a", "b", "c"]


def test_queued_failure_lands_on_its_future():
    store = Store()
    futures = []

    def follow_up(state):
        if not futures:
            futures.append(store.dispatch(Action(ActionType.TOGGLE_FEATURE)))

    store.subscribe(follow_up)
    store.dispatch(Actions.select_feature("a"))

    assert isinstance(futures[0].exception(), ReducerFailure)
    assert store.get_state().selections.features == frozenset({"a"})


def test_batch_dispatch_is_one_transition():
    store = Store()
    notified = []
    store.subscribe(notified.append)

    store.batch_dispatch([Actions.select_feature("a"), Actions.select_feature("b")])

    assert len(notified) == 1
    assert store.get_state().selections.features == frozenset({"a", "b"})
    assert store.get_stats()["history_size"] == 2

    store.undo()
    assert store.get_state().selections.features == frozenset()


def test_reset_reseeds_history():
    store = Store(base_price=900)
    store.dispatch(Actions.select_feature("a"))
    store.dispatch(Actions.update_total_price(5000))

    store.reset()

    state = store.get_state()
    assert state.selections.features == frozenset()
    assert state.pricing.total_price == 900
    assert len(state.history.entries) == 1
    assert store.undo() is False


def test_get_slice_and_select():
    store = Store()
    assert store.get_slice("pricing").total_price == 1200
    assert store.select(lambda s: s.progress.current_step) == 1
    with pytest.raises(KeyError):
        store.get_slice("nope")


def test_concurrent_dispatches_are_serialized():
    store = Store()
    ids = [f"feature-{i}" for i in range(20)]
    threads = [threading.Thread(target=store.dispatch, args=(Actions.select_feature(i),)) for i in ids]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert store.get_state().selections.features == frozenset(ids)
    assert store.get_stats()["history_size"] == 21


def test_undo_keeps_catalog_and_system(catalog_data):
    store = Store()
    store.dispatch(Actions.load_data_success(catalog_data))
    store.dispatch(Actions.initialize_system())
    store.dispatch(Actions.toggle_feature("extra-seo"))

    while store.undo():
        pass

    state = store.get_state()
    assert state.selections.features == frozenset()
    assert [p.id for p in state.catalog.packages] == ["starter", "pro"]
    assert state.system.initialized is True

    store.redo()
    assert [p.id for p in store.get_state().catalog.packages] == ["starter", "pro"]


def test_undo_from_subscriber_is_applied_after_dispatch():
    store = Store()
    moved = []

    def undo_once(state):
        if not moved:
            moved.append(store.undo())

    store.subscribe(undo_once)
    store.dispatch(Actions.select_feature("a"))

    assert moved == [True]
    assert store.get_state().selections.features == frozenset()
    assert store.redo() is True
    assert store.get_state().selections.features == frozenset({"a"})


def test_snapshot_never_sees_a_rolled_back_state():
    entered = threading.Event()
    release = threading.Event()
    errors = []
    seen = []

    def stall_then_reject(store, action, next):
        next(action)
        entered.set()
        release.wait(5)
        raise ValidationFailure("rejected")

    store = Store(middleware=[stall_then_reject])
    before = store.get_state()

    def run():
        try:
            store.dispatch(Actions.select_feature("a"))
        except ValidationFailure as e:
            errors.append(e)

    worker = threading.Thread(target=run)
    worker.start()
    assert entered.wait(5)

    reader = threading.Thread(target=lambda: seen.append(store.snapshot()))
    reader.start()
    reader.join(0.1)
    assert seen == []

    release.set()
    worker.join(5)
    reader.join(5)

    assert len(errors) == 1
    assert seen == [before]
    assert seen[0] is before
