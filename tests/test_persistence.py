"""Tests for quote persistence: file storage, freshness rules and restore on startup."""

import json
import tempfile
from pathlib import Path

from quote_builder.application.store.actions import Actions
from quote_builder.application.store.error_reporter import ErrorReporter
from quote_builder.application.store.middleware import PersistenceMiddleware
from quote_builder.application.store.store import Store
from quote_builder.application.use_cases.restore_quote import RestoreQuoteUseCase, is_fresh
from quote_builder.infrastructure.scheduling.manual_scheduler import ManualScheduler
from quote_builder.infrastructure.storage.json_storage import JsonFileStateStorage
from quote_builder.infrastructure.storage.memory_storage import MemoryStateStorage

NOW = 1_700_000_000.0


def _payload(timestamp_ms, features=("extra-seo",)):
    return {
        "version": "1.0",
        "timestamp": timestamp_ms,
        "state": {
            "selections": {"package_id": "pro", "features": list(features)},
            "pricing": {"total_price": 2300, "discount": None},
            "progress": {"current_step": 3, "total_steps": 5},
        },
    }


def test_json_storage_round_trip():
    """Test that a saved payload is read back unchanged and no temp file is left behind."""
    with tempfile.TemporaryDirectory() as tmpdir:
        storage = JsonFileStateStorage(str(Path(tmpdir) / "quote.json"))
        payload = _payload(int(NOW * 1000))

        storage.save(payload)

        assert storage.load() == payload
        assert not Path(tmpdir, "quote.json.tmp").exists()


def test_json_storage_missing_file_loads_none():
    with tempfile.TemporaryDirectory() as tmpdir:
        storage = JsonFileStateStorage(str(Path(tmpdir) / "nested" / "quote.json"))
        assert storage.load() is None


def test_json_storage_corrupted_file_is_ignored():
    """Test that a corrupted file does not crash startup."""
    with tempfile.TemporaryDirectory() as tmpdir:
        path = Path(tmpdir) / "quote.json"
        path.write_text("{not json", encoding="utf-8")
        storage = JsonFileStateStorage(str(path))

        assert storage.load() is None


def test_json_storage_non_object_is_ignored():
    with tempfile.TemporaryDirectory() as tmpdir:
        path = Path(tmpdir) / "quote.json"
        path.write_text(json.dumps([1, 2, 3]), encoding="utf-8")
        assert JsonFileStateStorage(str(path)).load() is None


def test_json_storage_clear():
    with tempfile.TemporaryDirectory() as tmpdir:
        storage = JsonFileStateStorage(str(Path(tmpdir) / "quote.json"))
        storage.save(_payload(0))
        storage.clear()
        storage.clear()

        assert not storage.path.exists()
        assert storage.load() is None


def test_freshness_window():
    now_ms = int(NOW * 1000)
    day_ms = 24 * 60 * 60 * 1000

    assert is_fresh({"timestamp": now_ms - 1000}, 86400, now_ms) is True
    assert is_fresh({"timestamp": now_ms - day_ms}, 86400, now_ms) is False
    assert is_fresh({"timestamp": now_ms + 60_000}, 86400, now_ms) is False
    assert is_fresh({"timestamp": "yesterday"}, 86400, now_ms) is False
    assert is_fresh({}, 86400, now_ms) is False


def test_restore_applies_fresh_quote():
    storage = MemoryStateStorage()
    storage.save(_payload(int(NOW * 1000) - 5000))
    store = Store()

    restored = RestoreQuoteUseCase(store, storage, clock=lambda: NOW).execute()

    state = store.get_state()
    assert restored is True
    assert state.selections.package_id == "pro"
    assert state.selections.features == frozenset({"extra-seo"})
    assert state.pricing.total_price == 2300
    assert state.progress.current_step == 3


def test_restore_discards_stale_quote():
    storage = MemoryStateStorage()
    storage.save(_payload(int(NOW * 1000) - 2 * 24 * 60 * 60 * 1000))
    store = Store()
    before = store.get_state()

    restored = RestoreQuoteUseCase(store, storage, clock=lambda: NOW).execute()

    assert restored is False
    assert store.get_state() is before
    assert storage.load() is None


def test_restore_with_empty_storage():
    store = Store()
    assert RestoreQuoteUseCase(store, MemoryStateStorage(), clock=lambda: NOW).execute() is False


def test_restore_rejects_payload_without_state():
    storage = MemoryStateStorage()
    storage.save({"version": "1.0", "timestamp": int(NOW * 1000)})
    assert RestoreQuoteUseCase(Store(), storage, clock=lambda: NOW).execute() is False


def test_restore_keeps_configured_step_count():
    payload = _payload(int(NOW * 1000))
    payload["state"]["progress"] = {"current_step": 3, "total_steps": 0}
    storage = MemoryStateStorage()
    storage.save(payload)
    store = Store()

    assert RestoreQuoteUseCase(store, storage, clock=lambda: NOW).execute() is True

    progress = store.get_state().progress
    assert progress.total_steps == 5
    assert progress.current_step == 3


def test_restore_discards_malformed_quote():
    payload = _payload(int(NOW * 1000))
    payload["state"]["progress"]["current_step"] = "abc"
    storage = MemoryStateStorage()
    storage.save(payload)
    reporter = ErrorReporter()
    store = Store()
    before = store.get_state()

    restored = RestoreQuoteUseCase(store, storage, reporter=reporter, clock=lambda: NOW).execute()

    assert restored is False
    assert store.get_state() is before
    assert storage.load() is None
    info = reporter.recent()[0]
    assert info.context == "Storage"
    assert "current_step" in info.message


def test_restore_discards_quote_with_bad_selections():
    payload = _payload(int(NOW * 1000))
    payload["state"]["selections"]["features"] = "extra-seo"
    storage = MemoryStateStorage()
    storage.save(payload)

    assert RestoreQuoteUseCase(Store(), storage, clock=lambda: NOW).execute() is False
    assert storage.load() is None


def test_restore_reports_unreadable_storage():
    with tempfile.TemporaryDirectory() as tmpdir:
        # A directory where the file should be makes reading fail with OSError
        path = Path(tmpdir) / "quote.json"
        path.mkdir()
        reporter = ErrorReporter()

        restored = RestoreQuoteUseCase(Store(), JsonFileStateStorage(str(path)), reporter=reporter).execute()

        assert restored is False
        assert reporter.recent()[0].context == "Storage"


def test_quote_survives_restart():
    """Test that a quote saved by one store is restored into a fresh one."""
    with tempfile.TemporaryDirectory() as tmpdir:
        path = str(Path(tmpdir) / "quote.json")
        scheduler = ManualScheduler()

        first = Store(middleware=[PersistenceMiddleware(JsonFileStateStorage(path), scheduler, clock=lambda: NOW)])
        first.dispatch(Actions.select_package("pro"))
        first.dispatch(Actions.select_features_batch(["live-chat", "extra-seo"]))
        first.dispatch(Actions.apply_discount("SPRING", 100))
        first.dispatch(Actions.set_modal_state("summary", True))
        first.close()

        second = Store()
        restored = RestoreQuoteUseCase(second, JsonFileStateStorage(path), clock=lambda: NOW + 60).execute()

        state = second.get_state()
        assert restored is True
        assert state.selections == first.get_state().selections
        assert state.pricing == first.get_state().pricing
        assert state.ui.modals == {}
