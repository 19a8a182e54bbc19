from __future__ import annotations

import dataclasses
import logging
import threading
import time
from collections import deque
from concurrent.futures import Future
from typing import Any, Callable, Iterable, Mapping, Sequence

from quote_builder.application.exceptions import ReducerFailure, StoreError
from quote_builder.application.store.actions import Actions
from quote_builder.application.store.history import HistoryManager
from quote_builder.application.store.middleware import compose_middleware
from quote_builder.application.store.reducers import ReducerRegistry, build_reducer_registry
from quote_builder.domain.entities.action import Action, ActionType, resolve_kind
from quote_builder.domain.entities.quote_state import DEFAULT_BASE_PRICE, QuoteState, get_initial_state

Subscriber = Callable[[QuoteState], None]

_REGIONS = frozenset(f.name for f in dataclasses.fields(QuoteState))


class Store:
    """
    Sole owner of the quote state.

    dispatch() runs an action through the middleware pipeline; the innermost
    step applies the reducer registry. A dispatch either commits (history
    entry, then subscribers in registration order) or fails and leaves the
    committed state untouched.

    Dispatches issued from inside a running dispatch on the same thread (from
    middleware or subscribers) are queued and run in order once the current
    one has finished; they return a Future. Other threads wait on the lock.

    Middleware exposing after_commit(store, action, before, after) is called
    once the transition has committed, never for a rolled-back dispatch.
    """

    def __init__(
        self,
        initial_state: QuoteState | None = None,
        middleware: Sequence[Callable[..., Any]] = (),
        reducer: ReducerRegistry | None = None,
        base_price: int = DEFAULT_BASE_PRICE,
        clock: Callable[[], float] = time.time,
    ) -> None:
        state = initial_state or get_initial_state(base_price=base_price)
        self._clock = clock
        if not state.history.entries:
            state = dataclasses.replace(state, history=HistoryManager.start(state, clock()))
        self._state = state
        self._reducer = reducer or build_reducer_registry(base_price)
        self._subscribers: list[Subscriber] = []
        self._middleware = tuple(middleware)
        self._lock = threading.RLock()
        self._queue: deque[tuple[Action, Future]] = deque()
        self._dispatching = False
        self._dispatch_count = 0
        self._logger = logging.getLogger(__name__)

        self._pipeline = compose_middleware(self, self._middleware, self._apply)
        self._commit_hooks = [mw.after_commit for mw in self._middleware if hasattr(mw, "after_commit")]
        for mw in self._middleware:
            bind = getattr(mw, "bind", None)
            if bind is not None:
                bind(self)

    @property
    def middleware(self) -> tuple[Callable[..., Any], ...]:
        return self._middleware

    @property
    def dispatching(self) -> bool:
        return self._dispatching

    def get_state(self) -> QuoteState:
        """Current state. Inside a dispatch this is the tentative, uncommitted state."""
        return self._state

    def snapshot(self) -> QuoteState:
        """Committed state as seen from another thread; waits for an in-flight dispatch."""
        with self._lock:
            return self._state

    def get_slice(self, name: str) -> Any:
        if name not in _REGIONS:
            raise KeyError(name)
        with self._lock:
            return getattr(self._state, name)

    def select(self, selector: Callable[[QuoteState], Any]) -> Any:
        """Apply selector to the committed state; inside a dispatch on this thread, the tentative one."""
        with self._lock:
            state = self._state
        return selector(state)

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        with self._lock:
            self._subscribers.append(callback)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe

    def dispatch(
        self,
        action: Action | ActionType | str,
        payload: Mapping[str, Any] | None = None,
    ) -> QuoteState | Future:
        action = _coerce(action, payload)
        with self._lock:
            if self._dispatching:
                future: Future = Future()
                self._queue.append((action, future))
                return future
            try:
                return self._run(action)
            finally:
                self._drain()

    def batch_dispatch(self, actions: Iterable[Action]) -> QuoteState | Future:
        """Apply several actions as one transition (one history entry, one notification)."""
        return self.dispatch(Actions.batch(actions))

    def undo(self) -> bool:
        """
        Step back one history entry. Returns whether the state moved.

        Called during a dispatch (from middleware or a subscriber) the undo is
        queued behind it and the return value is only the current can_undo;
        an earlier queued action may still change what the undo lands on.
        """
        return self._move(Actions.undo())

    def redo(self) -> bool:
        """Step forward one history entry. Same queuing rule as undo()."""
        return self._move(Actions.redo())

    def rollback_to(self, state: QuoteState) -> None:
        """Discard what inner legs changed; for middleware that swallows an inner failure."""
        if not self._dispatching:
            raise RuntimeError("rollback_to is only valid inside a dispatch")
        self._state = state

    def reset(self) -> QuoteState | Future:
        return self.dispatch(Actions.reset_system())

    def get_stats(self) -> dict[str, Any]:
        with self._lock:
            history = self._state.history
            return {
                "subscribers": len(self._subscribers),
                "middleware": len(self._middleware),
                "history_size": len(history.entries),
                "history_index": history.cursor,
                "dispatch_count": self._dispatch_count,
                "queued": len(self._queue),
            }

    def close(self) -> None:
        for mw in self._middleware:
            close = getattr(mw, "close", None)
            if close is not None:
                close()

    def _move(self, action: Action) -> bool:
        with self._lock:
            if self._dispatching:
                self._queue.append((action, Future()))
                history = self._state.history
                if action.kind is ActionType.UNDO_ACTION:
                    return HistoryManager.can_undo(history)
                return HistoryManager.can_redo(history)
            before = self._state
            self.dispatch(action)
            return self._state is not before

    def _run(self, action: Action) -> Any:
        committed = self._state
        self._dispatching = True
        try:
            try:
                result = self._pipeline(action)
            except BaseException:
                self._state = committed
                raise

            self._dispatch_count += 1
            tentative = self._state
            if tentative is committed:
                return result

            self._state = self._with_history(committed, tentative, action)
            self._notify(self._state)
            self._after_commit(action, committed, self._state)
            return self._state if result is tentative else result
        finally:
            self._dispatching = False

    def _apply(self, action: Action) -> QuoteState:
        """Innermost pipeline step."""
        if action.kind in (ActionType.UNDO_ACTION, ActionType.REDO_ACTION):
            step = HistoryManager.step_back if action.kind is ActionType.UNDO_ACTION else HistoryManager.step_forward
            history = step(self._state.history)
            if history is None:
                return self._state
            self._state = HistoryManager.restore(self._state, history)
            return self._state

        try:
            new_state = self._reducer(self._state, action)
        except StoreError:
            raise
        except Exception as exc:
            raise ReducerFailure(action.kind_name, exc) from exc
        self._state = new_state
        return new_state

    def _with_history(self, committed: QuoteState, state: QuoteState, action: Action) -> QuoteState:
        if action.kind is ActionType.RESET_SYSTEM:
            return dataclasses.replace(state, history=HistoryManager.start(state, self._clock()))
        if not HistoryManager.should_record(action):
            return state
        history = HistoryManager.record(committed.history, action, state, self._clock())
        return dataclasses.replace(state, history=history)

    def _notify(self, state: QuoteState) -> None:
        for callback in list(self._subscribers):
            try:
                callback(state)
            except Exception:
                self._logger.exception("Subscriber failed", extra={"subscriber": getattr(callback, "__name__", "?")})

    def _after_commit(self, action: Action, before: QuoteState, after: QuoteState) -> None:
        for hook in self._commit_hooks:
            try:
                hook(self, action, before, after)
            except Exception:
                self._logger.exception("Commit hook failed", extra={"action": action.kind_name})

    def _drain(self) -> None:
        while self._queue:
            action, future = self._queue.popleft()
            if not future.set_running_or_notify_cancel():
                continue
            try:
                result = self._run(action)
            except Exception as exc:
                future.set_exception(exc)
            else:
                future.set_result(result)


def _coerce(action: Action | ActionType | str, payload: Mapping[str, Any] | None) -> Action:
    if isinstance(action, Action):
        return action
    return Action(kind=resolve_kind(action), payload=dict(payload or {}))
