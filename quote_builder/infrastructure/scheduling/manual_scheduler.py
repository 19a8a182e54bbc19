from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable

from quote_builder.application.ports.scheduler import ScheduledCall, SchedulerPort


@dataclass
class ManualCall:
    due: float
    seq: int
    callback: Callable[[], None]
    cancelled: bool = field(default=False)

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler(SchedulerPort):
    """Scheduler driven by advance(); used by tests and the local script."""

    def __init__(self) -> None:
        self.now = 0.0
        self._calls: list[ManualCall] = []
        self._seq = 0

    def call_later(self, delay_seconds: float, callback: Callable[[], None]) -> ScheduledCall:
        self._seq += 1
        call = ManualCall(due=self.now + delay_seconds, seq=self._seq, callback=callback)
        self._calls.append(call)
        return call

    @property
    def pending(self) -> int:
        return sum(1 for call in self._calls if not call.cancelled)

    def advance(self, seconds: float) -> int:
        """Move time forward and run every call that became due, in due order. Returns how many ran."""
        target = self.now + seconds
        ran = 0
        while True:
            due = sorted(
                (c for c in self._calls if not c.cancelled and c.due <= target),
                key=lambda c: (c.due, c.seq),
            )
            if not due:
                break
            call = due[0]
            self._calls.remove(call)
            self.now = max(self.now, call.due)
            call.callback()
            ran += 1
        self.now = target
        self._calls = [c for c in self._calls if not c.cancelled]
        return ran

    def run_all(self) -> int:
        ran = 0
        while self.pending:
            horizon = max(c.due for c in self._calls if not c.cancelled)
            ran += self.advance(max(0.0, horizon - self.now))
        return ran
