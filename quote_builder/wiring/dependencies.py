from __future__ import annotations

import logging
import threading
from typing import Any, Callable

from quote_builder.application.ports.catalog_source import CatalogSourcePort
from quote_builder.application.ports.scheduler import SchedulerPort
from quote_builder.application.ports.state_storage import StateStoragePort
from quote_builder.application.ports.sync_channel import SyncChannelPort
from quote_builder.application.store.actions import Actions
from quote_builder.application.store.error_reporter import ErrorReporter
from quote_builder.application.store.middleware import (
    AnalyticsMiddleware,
    BatchMiddleware,
    CacheMiddleware,
    ErrorRecoveryMiddleware,
    ErrorReportingMiddleware,
    LoggingMiddleware,
    PerformanceMiddleware,
    PersistenceMiddleware,
    RetryMiddleware,
    SyncMiddleware,
    ThrottleMiddleware,
    ValidationMiddleware,
)
from quote_builder.application.store.store import Store
from quote_builder.application.use_cases.load_catalog import LoadCatalogUseCase
from quote_builder.application.use_cases.restore_quote import RestoreQuoteUseCase
from quote_builder.core.config import Settings, settings
from quote_builder.domain.entities.action import ActionType
from quote_builder.domain.entities.quote_state import get_initial_state
from quote_builder.infrastructure.catalog.http_catalog_source import HttpCatalogSource
from quote_builder.infrastructure.catalog.static_catalog_source import StaticCatalogSource
from quote_builder.infrastructure.scheduling.threading_scheduler import ThreadingScheduler
from quote_builder.infrastructure.storage.json_storage import JsonFileStateStorage
from quote_builder.infrastructure.storage.memory_storage import MemoryStateStorage
from quote_builder.infrastructure.sync.memory_channel import MemorySyncHub

logger = logging.getLogger(__name__)

_store: Store | None = None
_storage: StateStoragePort | None = None
_reporter: ErrorReporter | None = None
_store_lock = threading.Lock()
_sync_hub = MemorySyncHub()


def get_error_reporter() -> ErrorReporter:
    global _reporter
    if _reporter is None:
        _reporter = ErrorReporter()
    return _reporter


def get_state_storage(cfg: Settings = settings) -> StateStoragePort:
    global _storage
    if _storage is None:
        if cfg.STORAGE_PROVIDER.lower() == "json":
            logger.info("Using JsonFileStateStorage", extra={"path": cfg.STORAGE_PATH})
            _storage = JsonFileStateStorage(cfg.STORAGE_PATH)
        else:
            _storage = MemoryStateStorage()
    return _storage


def get_sync_channel(cfg: Settings = settings, hub: MemorySyncHub | None = None) -> SyncChannelPort | None:
    if not cfg.SYNC_ENABLED:
        return None
    return (hub or _sync_hub).open(cfg.SYNC_CHANNEL)


def get_catalog_source(cfg: Settings = settings) -> CatalogSourcePort:
    if cfg.CATALOG_URL:
        return HttpCatalogSource(cfg.CATALOG_URL, timeout=cfg.CATALOG_TIMEOUT_SECONDS)
    return StaticCatalogSource()


def build_middleware(
    cfg: Settings,
    storage: StateStoragePort,
    scheduler: SchedulerPort,
    reporter: ErrorReporter,
    channel: SyncChannelPort | None = None,
    validation: ValidationMiddleware | None = None,
    analytics_sink: Callable[[dict[str, Any]], None] | None = None,
) -> list[Any]:
    """Default pipeline, outermost first."""
    cache = CacheMiddleware(ttl_seconds=cfg.CACHE_TTL_SECONDS)

    def clear_cache(store: Store, action, error: BaseException) -> None:
        cache.clear()

    def notify_user(store: Store, action, error: BaseException) -> None:
        store.dispatch(Actions.show_notification("Too many errors, please reload the quote.", "error"))

    middleware: list[Any] = [
        LoggingMiddleware(),
        ErrorReportingMiddleware(reporter),
        ErrorRecoveryMiddleware(
            max_errors=cfg.ERROR_RECOVERY_MAX_ERRORS,
            window_seconds=cfg.ERROR_RECOVERY_WINDOW_SECONDS,
            strategies={ActionType.LOAD_DATA.value: clear_cache, "default": notify_user},
        ),
        PerformanceMiddleware(alert_ms=cfg.PERFORMANCE_ALERT_MS),
    ]
    if cfg.ANALYTICS_ENABLED:
        middleware.append(AnalyticsMiddleware(sink=analytics_sink, slow_ms=cfg.SLOW_ACTION_MS))
    middleware.append(
        ThrottleMiddleware(
            windows={
                ActionType.CALCULATE_PRICE: cfg.THROTTLE_CALCULATE_PRICE_SECONDS,
                ActionType.UPDATE_TOTAL_PRICE: cfg.THROTTLE_UPDATE_TOTAL_PRICE_SECONDS,
            }
        )
    )
    if cfg.BATCH_ENABLED:
        middleware.append(BatchMiddleware(scheduler, delay_seconds=cfg.BATCH_DELAY_SECONDS))
    middleware.append(cache)
    middleware.append(
        RetryMiddleware(scheduler, max_retries=cfg.RETRY_MAX_ATTEMPTS, delay_seconds=cfg.RETRY_DELAY_SECONDS)
    )
    if validation is not None:
        middleware.append(validation)
    middleware.append(
        PersistenceMiddleware(
            storage,
            scheduler,
            debounce_seconds=cfg.PERSIST_DEBOUNCE_SECONDS,
            reporter=reporter,
        )
    )
    if channel is not None:
        middleware.append(SyncMiddleware(channel, reporter=reporter))
    return middleware


def build_store(
    cfg: Settings = settings,
    storage: StateStoragePort | None = None,
    scheduler: SchedulerPort | None = None,
    reporter: ErrorReporter | None = None,
    channel: SyncChannelPort | None = None,
    **middleware_options: Any,
) -> Store:
    middleware = build_middleware(
        cfg,
        storage=storage or MemoryStateStorage(),
        scheduler=scheduler or ThreadingScheduler(),
        reporter=reporter or ErrorReporter(),
        channel=channel,
        **middleware_options,
    )
    initial = get_initial_state(
        total_steps=cfg.TOTAL_STEPS,
        base_price=cfg.DEFAULT_BASE_PRICE,
        max_history_size=cfg.MAX_HISTORY_SIZE,
    )
    return Store(initial_state=initial, middleware=middleware, base_price=cfg.DEFAULT_BASE_PRICE)


def get_store() -> Store:
    """Process-wide store for the HTTP layer: restored from storage, catalog loaded, initialized."""
    global _store
    with _store_lock:
        if _store is None:
            storage = get_state_storage()
            reporter = get_error_reporter()
            store = build_store(
                settings,
                storage=storage,
                reporter=reporter,
                channel=get_sync_channel(),
            )
            RestoreQuoteUseCase(
                store,
                storage,
                max_age_seconds=settings.PERSIST_MAX_AGE_SECONDS,
                reporter=reporter,
            ).execute()
            get_load_catalog_use_case(store).execute()
            store.dispatch(Actions.initialize_system())
            logger.info("Quote store ready", extra={"env": settings.ENV})
            _store = store
        return _store


def get_load_catalog_use_case(store: Store) -> LoadCatalogUseCase:
    fallback = StaticCatalogSource() if settings.CATALOG_URL else None
    return LoadCatalogUseCase(store=store, source=get_catalog_source(), fallback=fallback)


def shutdown() -> None:
    global _store
    with _store_lock:
        if _store is not None:
            _store.close()
            _store = None
