from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class SyncMessage:
    action_kind: str
    state_slice: dict[str, Any]
    timestamp: float
    origin: str | None = None  # channel endpoint that published the message
    meta: dict[str, Any] = field(default_factory=dict)
