from __future__ import annotations

import logging
import time
from typing import Any, Callable

from quote_builder.application.exceptions import PersistenceFailure, ReducerFailure
from quote_builder.application.ports.state_storage import StateStoragePort
from quote_builder.application.store.actions import Actions
from quote_builder.application.store.error_reporter import ErrorReporter
from quote_builder.application.store.store import Store
from quote_builder.application.utils.state_serialization import validate_persisted
from quote_builder.domain.entities.action import ActionType


def is_fresh(payload: dict[str, Any], max_age_seconds: float, now_ms: int) -> bool:
    """Saved payloads older than max_age_seconds, or stamped in the future, are ignored."""
    timestamp = payload.get("timestamp")
    if not isinstance(timestamp, (int, float)) or isinstance(timestamp, bool):
        return False
    age_ms = now_ms - timestamp
    if age_ms < 0:
        return False
    return age_ms < max_age_seconds * 1000


class RestoreQuoteUseCase:
    def __init__(
        self,
        store: Store,
        storage: StateStoragePort,
        max_age_seconds: float = 24 * 60 * 60,
        reporter: ErrorReporter | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self._storage = storage
        self._max_age_seconds = max_age_seconds
        self._reporter = reporter
        self._clock = clock
        self._logger = logging.getLogger(__name__)

    def execute(self) -> bool:
        """Hydrate the store from storage. Returns True if a saved quote was applied."""
        try:
            payload = self._storage.load()
        except PersistenceFailure as e:
            if self._reporter is not None:
                self._reporter.report(e, context="Storage")
            else:
                self._logger.error("Saved quote unreadable", extra={"reason": str(e)})
            return False

        if not payload:
            return False

        if not is_fresh(payload, self._max_age_seconds, int(self._clock() * 1000)):
            self._logger.info("Saved quote expired, clearing", extra={"reason": "stale"})
            self._storage.clear()
            return False

        state = payload.get("state")
        try:
            validate_persisted(state)
        except ValueError as e:
            self._discard(PersistenceFailure(f"Saved quote is malformed: {e}"))
            return False

        try:
            self._store.dispatch(Actions.load_from_storage(state))
        except ReducerFailure as e:
            self._discard(PersistenceFailure(f"Saved quote could not be applied: {e}"))
            return False
        return True

    def _discard(self, error: PersistenceFailure) -> None:
        if self._reporter is not None:
            self._reporter.report(error, context="Storage", action=ActionType.LOAD_FROM_STORAGE.value)
        else:
            self._logger.warning("Saved quote discarded", extra={"reason": str(error)})
        self._storage.clear()
