from __future__ import annotations

import json
import logging
import threading
import time
import uuid
from collections import deque
from concurrent.futures import Future
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, Iterable, Mapping, Sequence

from quote_builder.application.exceptions import (
    MiddlewareFailure,
    PersistenceFailure,
    StoreError,
    ValidationFailure,
)
from quote_builder.application.ports.scheduler import ScheduledCall, SchedulerPort
from quote_builder.application.ports.state_storage import StateStoragePort
from quote_builder.application.ports.sync_channel import SyncChannelPort
from quote_builder.application.store.actions import Actions
from quote_builder.application.store.error_reporter import ErrorReporter
from quote_builder.application.utils.state_serialization import (
    PERSISTED_VERSION,
    state_size,
    to_persistable,
    validate_persisted,
)
from quote_builder.domain.entities.action import UI_ONLY_ACTIONS, Action, ActionType
from quote_builder.domain.entities.quote_state import QuoteState
from quote_builder.domain.entities.sync_message import SyncMessage

if TYPE_CHECKING:
    from quote_builder.application.store.store import Store

Next = Callable[[Action], Any]


class Middleware:
    """
    One leg of the dispatch pipeline.

    __call__ receives the store, the action and the next step. It must call
    next at most once (zero times to short-circuit) and return what the rest
    of the pipeline returned, or its own short-circuit value.
    """

    name = "middleware"

    def __call__(self, store: Store, action: Action, next: Next) -> Any:
        raise NotImplementedError

    def bind(self, store: Store) -> None:
        """Called once by the store that owns this middleware."""

    def close(self) -> None:
        """Release timers and channel subscriptions."""


def compose_middleware(store: Store, middleware: Sequence[Callable[..., Any]], innermost: Next) -> Next:
    """
    Fold middleware right-to-left into one callable.

    The first middleware runs first on the way in and last on the way out.
    Exceptions outside the store taxonomy are wrapped in MiddlewareFailure.
    """
    chain = innermost
    for mw in reversed(tuple(middleware)):
        chain = _link(store, mw, chain)
    return chain


def _link(store: Store, mw: Callable[..., Any], next_step: Next) -> Next:
    name = getattr(mw, "name", None) or getattr(mw, "__name__", type(mw).__name__)

    def step(action: Action) -> Any:
        try:
            return mw(store, action, next_step)
        except StoreError:
            raise
        except Exception as exc:
            raise MiddlewareFailure(name, action.kind_name, exc) from exc

    return step


class LoggingMiddleware(Middleware):
    name = "logging"

    def __init__(self, level: int = logging.DEBUG) -> None:
        self._level = level
        self._logger = logging.getLogger(__name__)

    def __call__(self, store: Store, action: Action, next: Next) -> Any:
        started = time.perf_counter()
        result = next(action)
        self._logger.log(
            self._level,
            "Action dispatched",
            extra={"action": action.kind_name, "duration_ms": round((time.perf_counter() - started) * 1000, 2)},
        )
        return result


class ErrorReportingMiddleware(Middleware):
    name = "error_reporting"

    def __init__(self, reporter: ErrorReporter) -> None:
        self._reporter = reporter

    def __call__(self, store: Store, action: Action, next: Next) -> Any:
        try:
            return next(action)
        except Exception as exc:
            info = self._reporter.report(exc, action=action.kind_name)
            if action.kind is not ActionType.SET_ERROR_STATE:
                # Runs after this dispatch settles; the failed transition is already rolled back
                store.dispatch(Actions.set_error_state(info.message))
            raise


RecoveryHandler = Callable[["Store", Action, BaseException], None]


class ErrorRecoveryMiddleware(Middleware):
    """Counts failures per kind in a rolling window and runs a recovery strategy once the limit is exceeded."""

    name = "error_recovery"

    def __init__(
        self,
        max_errors: int = 10,
        window_seconds: float = 60.0,
        strategies: Mapping[str, RecoveryHandler] | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._max_errors = max_errors
        self._window = window_seconds
        self._strategies: dict[str, RecoveryHandler] = dict(strategies or {})
        self._clock = clock
        self._errors: dict[str, deque[float]] = {}
        self._lock = threading.Lock()
        self._logger = logging.getLogger(__name__)
        self.recoveries = 0

    def register_strategy(self, kind: ActionType | str, strategy: RecoveryHandler) -> None:
        key = kind.value if isinstance(kind, ActionType) else kind
        self._strategies[key] = strategy

    def error_count(self, kind: ActionType | str) -> int:
        key = kind.value if isinstance(kind, ActionType) else kind
        with self._lock:
            return len(self._errors.get(key, ()))

    def __call__(self, store: Store, action: Action, next: Next) -> Any:
        try:
            return next(action)
        except Exception as exc:
            if self._record(action.kind_name):
                self._recover(store, action, exc)
            raise

    def _record(self, kind: str) -> bool:
        now = self._clock()
        with self._lock:
            timestamps = self._errors.setdefault(kind, deque())
            while timestamps and now - timestamps[0] >= self._window:
                timestamps.popleft()
            timestamps.append(now)
            return len(timestamps) > self._max_errors

    def _recover(self, store: Store, action: Action, exc: BaseException) -> None:
        strategy = self._strategies.get(action.kind_name) or self._strategies.get("default")
        self._logger.error("Too many errors, triggering recovery", extra={"action": action.kind_name})
        if strategy is None:
            return
        self.recoveries += 1
        try:
            strategy(store, action, exc)
        except Exception:
            self._logger.exception("Recovery strategy failed", extra={"action": action.kind_name})


@dataclass(frozen=True)
class PerformanceMetric:
    action: str
    duration_ms: float
    state_size: int | None
    timestamp: float


class PerformanceMiddleware(Middleware):
    name = "performance"

    def __init__(
        self,
        alert_ms: float = 100.0,
        max_metrics: int = 100,
        measure_state_size: bool = True,
        clock: Callable[[], float] = time.perf_counter,
    ) -> None:
        self._alert_ms = alert_ms
        self._metrics: deque[PerformanceMetric] = deque(maxlen=max_metrics)
        self._measure_state_size = measure_state_size
        self._clock = clock
        self._logger = logging.getLogger(__name__)

    @property
    def metrics(self) -> list[PerformanceMetric]:
        return list(self._metrics)

    def summary(self) -> dict[str, Any]:
        metrics = self.metrics
        if not metrics:
            return {"count": 0, "avg_ms": 0.0, "max_ms": 0.0}
        durations = [m.duration_ms for m in metrics]
        return {
            "count": len(durations),
            "avg_ms": round(sum(durations) / len(durations), 3),
            "max_ms": round(max(durations), 3),
        }

    def __call__(self, store: Store, action: Action, next: Next) -> Any:
        started = self._clock()
        result = next(action)
        duration_ms = (self._clock() - started) * 1000
        metric = PerformanceMetric(
            action=action.kind_name,
            duration_ms=duration_ms,
            state_size=state_size(store.get_state()) if self._measure_state_size else None,
            timestamp=time.time(),
        )
        self._metrics.append(metric)
        if duration_ms > self._alert_ms:
            self._logger.warning(
                "Performance alert",
                extra={"action": metric.action, "duration_ms": round(duration_ms, 2), "state_size": metric.state_size},
            )
        return result


AnalyticsSink = Callable[[dict[str, Any]], None]
AnalyticsHook = Callable[[Action, QuoteState], None]

DEFAULT_ANALYTICS_EXCLUDED = frozenset({ActionType.SET_LOADING_STATE, ActionType.HIDE_NOTIFICATION})


class AnalyticsMiddleware(Middleware):
    name = "analytics"

    def __init__(
        self,
        sink: AnalyticsSink | None = None,
        excluded: Iterable[ActionType] = DEFAULT_ANALYTICS_EXCLUDED,
        custom_events: Mapping[ActionType, AnalyticsHook] | None = None,
        slow_ms: float = 16.0,
        clock: Callable[[], float] = time.perf_counter,
    ) -> None:
        self._sink = sink
        self._excluded = frozenset(excluded)
        self._custom_events = dict(custom_events or {})
        self._slow_ms = slow_ms
        self._clock = clock
        self._logger = logging.getLogger(__name__)

    def __call__(self, store: Store, action: Action, next: Next) -> Any:
        started = self._clock()
        if action.kind not in self._excluded:
            self._track(store, action)

        result = next(action)

        duration_ms = (self._clock() - started) * 1000
        if duration_ms > self._slow_ms:
            self._logger.warning(
                "Slow action detected", extra={"action": action.kind_name, "duration_ms": round(duration_ms, 2)}
            )
        return result

    def _track(self, store: Store, action: Action) -> None:
        event = {"action": action.kind_name, "timestamp": time.time(), "payload": dict(action.payload)}
        try:
            if self._sink is not None:
                self._sink(event)
            else:
                self._logger.debug("Action tracked", extra={"action": action.kind_name})
            hook = self._custom_events.get(action.kind)  # type: ignore[arg-type]
            if hook is not None:
                hook(action, store.get_state())
        except Exception:
            # Tracking never blocks the action itself
            self._logger.exception("Analytics tracking failed", extra={"action": action.kind_name})


@dataclass(frozen=True)
class ValidationResult:
    is_valid: bool
    error: str | None = None


PreRule = Callable[[Action, QuoteState], ValidationResult]
PostRule = Callable[[Action, QuoteState, QuoteState], ValidationResult]


class ValidationMiddleware(Middleware):
    name = "validation"

    def __init__(self, pre_action: PreRule | None = None, post_action: PostRule | None = None) -> None:
        self._pre_action = pre_action
        self._post_action = post_action

    def __call__(self, store: Store, action: Action, next: Next) -> Any:
        previous = store.get_state()
        if self._pre_action is not None:
            outcome = self._pre_action(action, previous)
            if not outcome.is_valid:
                raise ValidationFailure(f"Pre-action validation failed: {outcome.error}")

        result = next(action)

        if self._post_action is not None:
            outcome = self._post_action(action, store.get_state(), previous)
            if not outcome.is_valid:
                # The store discards the tentative state when this propagates
                raise ValidationFailure(f"Post-action validation failed: {outcome.error}")
        return result


DEFAULT_THROTTLE_WINDOWS: dict[ActionType, float] = {
    ActionType.CALCULATE_PRICE: 0.5,
    ActionType.UPDATE_TOTAL_PRICE: 0.1,
}


class ThrottleMiddleware(Middleware):
    name = "throttle"

    def __init__(
        self,
        windows: Mapping[ActionType, float] | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._windows = dict(DEFAULT_THROTTLE_WINDOWS if windows is None else windows)
        self._clock = clock
        self._last_run: dict[ActionType | str, float] = {}
        self._logger = logging.getLogger(__name__)

    def __call__(self, store: Store, action: Action, next: Next) -> Any:
        window = self._windows.get(action.kind)  # type: ignore[arg-type]
        if window:
            now = self._clock()
            last = self._last_run.get(action.kind)
            if last is not None and now - last < window:
                self._logger.warning("Action throttled", extra={"action": action.kind_name})
                return store.get_state()
            self._last_run[action.kind] = now
        return next(action)


DEFAULT_BATCHABLE = frozenset(
    {ActionType.SELECT_FEATURE, ActionType.DESELECT_FEATURE, ActionType.TOGGLE_FEATURE}
)


class BatchMiddleware(Middleware):
    """
    Coalesces batchable actions arriving within delay_seconds into a single
    BATCH_ACTIONS dispatch. Each held action gets the same Future, resolved
    with the state after the batch commits.
    """

    name = "batch"

    def __init__(
        self,
        scheduler: SchedulerPort,
        delay_seconds: float = 0.016,
        batchable: Iterable[ActionType] = DEFAULT_BATCHABLE,
    ) -> None:
        self._scheduler = scheduler
        self._delay = delay_seconds
        self._batchable = frozenset(batchable)
        self._lock = threading.Lock()
        self._pending: list[Action] = []
        self._future: Future | None = None
        self._timer: ScheduledCall | None = None
        self._logger = logging.getLogger(__name__)

    @property
    def pending(self) -> int:
        with self._lock:
            return len(self._pending)

    def __call__(self, store: Store, action: Action, next: Next) -> Any:
        if action.kind not in self._batchable:
            return next(action)

        with self._lock:
            self._pending.append(action)
            if self._timer is not None:
                self._timer.cancel()
            if self._future is None:
                self._future = Future()
            future = self._future
            self._timer = self._scheduler.call_later(self._delay, lambda: self.flush(store))
        return future

    def flush(self, store: Store) -> None:
        with self._lock:
            actions, self._pending = self._pending, []
            future, self._future = self._future, None
            if self._timer is not None:
                self._timer.cancel()
            self._timer = None
        if not actions or future is None:
            return

        self._logger.debug("Flushing batch", extra={"action": ActionType.BATCH_ACTIONS.value, "size": len(actions)})
        try:
            result = store.dispatch(Actions.batch(actions))
        except Exception as exc:
            future.set_exception(exc)
            return

        if isinstance(result, Future):
            result.add_done_callback(lambda done: _copy_outcome(done, future))
        else:
            future.set_result(result)

    def close(self) -> None:
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            self._timer = None


def _copy_outcome(source: Future, target: Future) -> None:
    error = source.exception()
    if error is not None:
        target.set_exception(error)
    else:
        target.set_result(source.result())


def default_cache_key(action: Action) -> str:
    return f"{action.kind_name}_{json.dumps(dict(action.payload), sort_keys=True, default=str)}"


class CacheMiddleware(Middleware):
    name = "cache"

    def __init__(
        self,
        ttl_seconds: float = 300.0,
        cacheable: Iterable[ActionType] = (ActionType.LOAD_DATA,),
        key: Callable[[Action], str] = default_cache_key,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._ttl = ttl_seconds
        self._cacheable = frozenset(cacheable)
        self._key = key
        self._clock = clock
        self._entries: dict[str, tuple[Any, float]] = {}
        self._lock = threading.Lock()
        self._logger = logging.getLogger(__name__)

    @property
    def size(self) -> int:
        with self._lock:
            return len(self._entries)

    def __call__(self, store: Store, action: Action, next: Next) -> Any:
        if action.kind not in self._cacheable:
            return next(action)

        key = self._key(action)
        now = self._clock()
        with self._lock:
            self._prune(now)
            cached = self._entries.get(key)
        if cached is not None:
            self._logger.debug("Using cached result", extra={"action": action.kind_name})
            return cached[0]

        result = next(action)
        # A pending retry is not a result
        if not isinstance(result, Future):
            with self._lock:
                self._entries[key] = (result, now)
        return result

    def _prune(self, now: float) -> None:
        expired = [key for key, (_, stored_at) in self._entries.items() if now - stored_at >= self._ttl]
        for key in expired:
            del self._entries[key]

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()


class RetryMiddleware(Middleware):
    """
    Re-dispatches a failed retryable action through the scheduler, with a
    linear backoff, instead of waiting inside the dispatch.

    The failing attempt is rolled back and the caller gets a Future settled by
    the final attempt. Past max_retries (or when should_retry says no) the
    error propagates from that attempt's dispatch.
    """

    name = "retry"

    def __init__(
        self,
        scheduler: SchedulerPort,
        max_retries: int = 3,
        delay_seconds: float = 1.0,
        retryable: Iterable[ActionType] = (ActionType.LOAD_DATA, ActionType.SAVE_TO_STORAGE),
        should_retry: Callable[[BaseException, Action], bool] | None = None,
    ) -> None:
        self._scheduler = scheduler
        self._max_retries = max_retries
        self._delay = delay_seconds
        self._retryable = frozenset(retryable)
        self._should_retry = should_retry or (lambda error, action: True)
        self._logger = logging.getLogger(__name__)

    def __call__(self, store: Store, action: Action, next: Next) -> Any:
        if action.kind not in self._retryable:
            return next(action)

        before = store.get_state()
        try:
            return next(action)
        except Exception as exc:
            attempt = int(action.meta.get("retry_attempt", 0)) + 1
            if attempt > self._max_retries or not self._should_retry(exc, action):
                raise
            store.rollback_to(before)
            self._logger.info(
                "Retrying action",
                extra={"action": action.kind_name, "attempt": attempt, "max_retries": self._max_retries},
            )
            future: Future = Future()
            retry = Action(action.kind, action.payload, {**action.meta, "retry_attempt": attempt})
            # Linear backoff
            self._scheduler.call_later(self._delay * attempt, lambda: _redispatch(store, retry, future))
            return future


def _redispatch(store: Store, action: Action, future: Future) -> None:
    try:
        result = store.dispatch(action)
    except Exception as exc:
        future.set_exception(exc)
        return
    if isinstance(result, Future):
        result.add_done_callback(lambda done: _copy_outcome(done, future))
    else:
        future.set_result(result)


class PersistenceMiddleware(Middleware):
    """
    Saves the persistable slice after state changes, debounced.

    SAVE_TO_STORAGE saves immediately and raises PersistenceFailure so an
    outer retry can act. CLEAR_STORAGE wipes the medium. Failures of the
    debounced background save are reported and never reach the caller.
    """

    name = "persistence"

    def __init__(
        self,
        storage: StateStoragePort,
        scheduler: SchedulerPort,
        debounce_seconds: float = 1.0,
        reporter: ErrorReporter | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._storage = storage
        self._scheduler = scheduler
        self._debounce = debounce_seconds
        self._reporter = reporter
        self._clock = clock
        self._lock = threading.Lock()
        self._timer: ScheduledCall | None = None
        self._store: Store | None = None
        self._logger = logging.getLogger(__name__)
        self.saves = 0

    def bind(self, store: Store) -> None:
        self._store = store

    @property
    def has_pending_save(self) -> bool:
        with self._lock:
            return self._timer is not None

    def __call__(self, store: Store, action: Action, next: Next) -> Any:
        if action.kind is ActionType.SAVE_TO_STORAGE:
            result = next(action)
            self._cancel_pending()
            self.save_now(store.get_state())
            return result

        if action.kind is ActionType.CLEAR_STORAGE:
            result = next(action)
            self._cancel_pending()
            self._clear()
            return result

        before = store.get_state()
        result = next(action)
        if action.kind not in UI_ONLY_ACTIONS and store.get_state() is not before:
            self._schedule(store)
        return result

    def save_now(self, state: QuoteState) -> None:
        payload = {
            "version": PERSISTED_VERSION,
            "timestamp": int(self._clock() * 1000),
            "state": to_persistable(state),
        }
        try:
            self._storage.save(payload)
        except PersistenceFailure:
            raise
        except (OSError, TypeError, ValueError) as exc:
            raise PersistenceFailure(f"Failed to save quote state: {exc}") from exc
        self.saves += 1
        self._logger.debug("Quote state saved", extra={"action": ActionType.SAVE_TO_STORAGE.value})

    def flush(self) -> None:
        """Save now if a debounced save is pending."""
        with self._lock:
            pending = self._timer is not None
        if pending and self._store is not None:
            self._cancel_pending()
            self._save_in_background(self._store)

    def close(self) -> None:
        self.flush()

    def _schedule(self, store: Store) -> None:
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            self._timer = self._scheduler.call_later(self._debounce, lambda: self._on_timer(store))

    def _on_timer(self, store: Store) -> None:
        with self._lock:
            self._timer = None
        self._save_in_background(store)

    def _save_in_background(self, store: Store) -> None:
        try:
            self.save_now(store.snapshot())
        except PersistenceFailure as exc:
            if self._reporter is not None:
                self._reporter.report(exc, context="Storage", action=ActionType.SAVE_TO_STORAGE.value)
            else:
                self._logger.error("Background save failed", extra={"reason": str(exc)})

    def _cancel_pending(self) -> None:
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            self._timer = None

    def _clear(self) -> None:
        try:
            self._storage.clear()
        except PersistenceFailure:
            raise
        except OSError as exc:
            raise PersistenceFailure(f"Failed to clear quote state: {exc}") from exc


class SyncMiddleware(Middleware):
    """Publishes local changes on a named channel and applies changes published by other endpoints."""

    name = "sync"

    def __init__(
        self,
        channel: SyncChannelPort,
        reporter: ErrorReporter | None = None,
        origin: str | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._channel = channel
        self.origin = origin or uuid.uuid4().hex
        self._reporter = reporter
        self._clock = clock
        self._store: Store | None = None
        self._unsubscribe: Callable[[], None] | None = None
        self._logger = logging.getLogger(__name__)
        self.published = 0
        self.received = 0
        self.rejected = 0

    def bind(self, store: Store) -> None:
        self._store = store
        self._unsubscribe = self._channel.subscribe(self._on_message)

    def __call__(self, store: Store, action: Action, next: Next) -> Any:
        # Publishing waits for the commit; see after_commit
        return next(action)

    def after_commit(self, store: Store, action: Action, before: QuoteState, after: QuoteState) -> None:
        if action.is_remote or action.kind in UI_ONLY_ACTIONS:
            return
        if (
            after.selections is before.selections
            and after.pricing is before.pricing
            and after.progress is before.progress
        ):
            return

        message = SyncMessage(
            action_kind=action.kind_name,
            state_slice=to_persistable(after),
            timestamp=self._clock() * 1000,
            origin=self.origin,
        )
        try:
            self._channel.publish(message)
            self.published += 1
        except Exception as exc:
            # The local change stands even if other endpoints miss it
            if self._reporter is not None:
                self._reporter.report(exc, context="Sync", action=action.kind_name)
            else:
                self._logger.exception("Sync publish failed", extra={"action": action.kind_name})

    def _on_message(self, message: SyncMessage) -> None:
        if self._store is None or message.origin == self.origin:
            return
        try:
            validate_persisted(message.state_slice)
        except ValueError as exc:
            self.rejected += 1
            if self._reporter is not None:
                self._reporter.report(exc, context="Sync", action=message.action_kind)
            else:
                self._logger.warning("Malformed sync message dropped", extra={"reason": str(exc)})
            return
        self.received += 1
        self._logger.debug("Received state update", extra={"action": message.action_kind})
        self._store.dispatch(Actions.sync_remote_state(message.state_slice, message.action_kind))

    def close(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
