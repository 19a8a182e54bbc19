import pytest

from quote_builder.application.exceptions import ValidationFailure
from quote_builder.application.store.actions import Actions
from quote_builder.application.store.error_reporter import ErrorReporter
from quote_builder.application.store.middleware import SyncMiddleware
from quote_builder.application.store.store import Store
from quote_builder.domain.entities.action import ActionType
from quote_builder.domain.entities.sync_message import SyncMessage
from quote_builder.infrastructure.sync.memory_channel import MemorySyncHub


def _synced_store(hub, name="quote-state-sync"):
    sync = SyncMiddleware(hub.open(name))
    return Store(middleware=[sync]), sync


def test_change_in_one_store_reaches_the_other():
    hub = MemorySyncHub()
    store_a, sync_a = _synced_store(hub)
    store_b, sync_b = _synced_store(hub)

    store_a.dispatch(Actions.select_feature("extra-seo"))
    store_a.dispatch(Actions.apply_discount("SPRING", 100))

    state_b = store_b.get_state()
    assert state_b.selections.features == frozenset({"extra-seo"})
    assert state_b.pricing.discount.code == "SPRING"
    assert sync_a.published == 2
    assert sync_b.received == 2
    # Remote updates are applied but never echoed back
    assert sync_b.published == 0
    assert store_b.get_state().history.entries[-1].action.kind is ActionType.SYNC_REMOTE_STATE


def test_ui_only_changes_are_not_published():
    hub = MemorySyncHub()
    store_a, sync_a = _synced_store(hub)
    store_b, _ = _synced_store(hub)

    store_a.dispatch(Actions.set_modal_state("summary", True))

    assert sync_a.published == 0
    assert store_b.get_state().ui.modals == {}


def test_channels_are_isolated_by_name():
    hub = MemorySyncHub()
    store_a, _ = _synced_store(hub, "quote-one")
    store_b, _ = _synced_store(hub, "quote-two")

    store_a.dispatch(Actions.select_feature("a"))

    assert store_b.get_state().selections.features == frozenset()


def test_own_messages_are_ignored():
    hub = MemorySyncHub()
    channel = hub.open("quote-state-sync")
    sync = SyncMiddleware(channel, origin="tab-1")
    store = Store(middleware=[sync])

    sync._on_message(
        SyncMessage(
            action_kind="SELECT_FEATURE",
            state_slice={"selections": {"features": ["a"]}},
            timestamp=0,
            origin="tab-1",
        )
    )

    assert store.get_state().selections.features == frozenset()
    assert sync.received == 0


def test_close_detaches_from_channel():
    hub = MemorySyncHub()
    store_a, _ = _synced_store(hub)
    store_b, _ = _synced_store(hub)
    assert hub.endpoints("quote-state-sync") == 2

    store_b.close()
    store_a.dispatch(Actions.select_feature("a"))

    assert store_b.get_state().selections.features == frozenset()


def test_rejected_change_is_not_published():
    hub = MemorySyncHub()
    sync_a = SyncMiddleware(hub.open("quote-state-sync"))

    def reject_after_reducer(store, action, next):
        next(action)
        raise ValidationFailure("package required")

    store_a = Store(middleware=[reject_after_reducer, sync_a])
    store_b, sync_b = _synced_store(hub)

    with pytest.raises(ValidationFailure):
        store_a.dispatch(Actions.select_feature("extra-seo"))

    assert store_a.get_state().selections.features == frozenset()
    assert store_b.get_state().selections.features == frozenset()
    assert sync_a.published == 0
    assert sync_b.received == 0


def test_malformed_message_is_dropped():
    hub = MemorySyncHub()
    reporter = ErrorReporter()
    sync = SyncMiddleware(hub.open("quote-state-sync"), reporter=reporter)
    store = Store(middleware=[sync])
    before = store.get_state()

    sync._on_message(
        SyncMessage(
            action_kind="NEXT_STEP",
            state_slice={"progress": {"current_step": "abc"}},
            timestamp=0,
            origin="tab-2",
        )
    )

    assert store.get_state() is before
    assert sync.rejected == 1
    assert sync.received == 0
    assert reporter.recent()[0].context == "Sync"
