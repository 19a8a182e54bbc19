from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from quote_builder.domain.entities.action import Action

if TYPE_CHECKING:
    from quote_builder.domain.entities.quote_state import QuoteState


@dataclass(frozen=True)
class HistoryEntry:
    action: Action | None  # None for the seed entry holding the initial state
    timestamp: float
    snapshot: "QuoteState"
