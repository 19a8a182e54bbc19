from __future__ import annotations

import threading
from typing import Callable

from quote_builder.application.ports.scheduler import ScheduledCall, SchedulerPort


class ThreadingScheduler(SchedulerPort):
    def call_later(self, delay_seconds: float, callback: Callable[[], None]) -> ScheduledCall:
        timer = threading.Timer(delay_seconds, callback)
        timer.daemon = True
        timer.start()
        return timer
