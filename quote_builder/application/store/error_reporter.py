from __future__ import annotations

import logging
import threading
import time
from collections import Counter, deque
from dataclasses import dataclass, field
from typing import Any, Callable

from quote_builder.application.exceptions import (
    CatalogUnavailable,
    PersistenceFailure,
    ValidationFailure,
)

SEVERITIES = ("critical", "error", "warning", "info")

_USER_MESSAGES = {
    "Storage": "There was a problem saving your data.",
    "Catalog": "There was a problem loading the catalog. Please try again.",
    "Validation": "Please check your selections and try again.",
    "Store": "Something went wrong while updating your quote.",
}


@dataclass(frozen=True)
class ErrorInfo:
    message: str
    context: str
    severity: str = "error"
    timestamp: float = field(default_factory=time.time)
    action: str | None = None
    error_type: str | None = None
    recoverable: bool = True
    extra: dict[str, Any] = field(default_factory=dict)

    @property
    def user_message(self) -> str:
        return _USER_MESSAGES.get(self.context, _USER_MESSAGES["Store"])


RecoveryStrategy = Callable[[ErrorInfo], None]


def context_for(error: BaseException) -> str:
    if isinstance(error, PersistenceFailure):
        return "Storage"
    if isinstance(error, CatalogUnavailable):
        return "Catalog"
    if isinstance(error, ValidationFailure):
        return "Validation"
    return "Store"


class ErrorReporter:
    """Central error channel: bounded log, per-context counts and recovery strategies."""

    def __init__(self, max_log_size: int = 100) -> None:
        self._lock = threading.Lock()
        self._log: deque[ErrorInfo] = deque(maxlen=max_log_size)
        self._counts: Counter[str] = Counter()
        self._strategies: dict[str, RecoveryStrategy] = {}
        self._logger = logging.getLogger(__name__)

    def report(
        self,
        error: BaseException,
        context: str | None = None,
        severity: str = "error",
        action: str | None = None,
        recoverable: bool = True,
        **extra: Any,
    ) -> ErrorInfo:
        info = ErrorInfo(
            message=str(error) or type(error).__name__,
            context=context or context_for(error),
            severity=severity if severity in SEVERITIES else "error",
            action=action,
            error_type=type(error).__name__,
            recoverable=recoverable,
            extra=dict(extra),
        )
        with self._lock:
            self._log.append(info)
            self._counts[f"{info.context}:{info.error_type}"] += 1
            strategy = self._strategies.get(info.context)

        level = logging.ERROR if info.severity in ("critical", "error") else logging.WARNING
        self._logger.log(
            level,
            "Error reported",
            extra={"context": info.context, "action": info.action, "reason": info.message},
        )

        if info.recoverable and strategy is not None:
            try:
                strategy(info)
            except Exception:
                self._logger.exception("Recovery strategy failed", extra={"context": info.context})
        return info

    def register_recovery_strategy(self, context: str, strategy: RecoveryStrategy) -> None:
        with self._lock:
            self._strategies[context] = strategy

    def recent(self, limit: int = 10) -> list[ErrorInfo]:
        with self._lock:
            return list(self._log)[-limit:]

    def stats(self) -> dict[str, Any]:
        with self._lock:
            breakdown = {severity: 0 for severity in SEVERITIES}
            for info in self._log:
                breakdown[info.severity] += 1
            return {
                "total_errors": len(self._log),
                "error_counts": dict(self._counts),
                "severity_breakdown": breakdown,
            }

    def clear(self) -> None:
        with self._lock:
            self._log.clear()
            self._counts.clear()
