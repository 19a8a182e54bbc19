from __future__ import annotations

import dataclasses
import time

from quote_builder.domain.entities.action import UI_ONLY_ACTIONS, Action, ActionType
from quote_builder.domain.entities.history_entry import HistoryEntry
from quote_builder.domain.entities.quote_state import HistoryState, QuoteState


class HistoryManager:
    """
    Bounded linear undo/redo over HistoryState.

    Every method is pure: it takes a HistoryState and returns a new one. The
    cursor always points at the entry describing the current state; entries
    past the cursor survive undo/redo until the next recorded action.
    """

    @staticmethod
    def snapshot(state: QuoteState) -> QuoteState:
        # Snapshots never carry their own history, otherwise every entry would chain all earlier ones
        if not state.history.entries and state.history.cursor == -1:
            return state
        return dataclasses.replace(state, history=HistoryState(max_size=state.history.max_size))

    @staticmethod
    def should_record(action: Action) -> bool:
        if not action.is_known:
            return False
        if action.kind in UI_ONLY_ACTIONS:
            return False
        return action.kind not in (ActionType.UNDO_ACTION, ActionType.REDO_ACTION)

    @staticmethod
    def start(state: QuoteState, timestamp: float | None = None) -> HistoryState:
        """Seed history with the given state so the first recorded action can be undone."""
        entry = HistoryEntry(
            action=None,
            timestamp=timestamp if timestamp is not None else time.time(),
            snapshot=HistoryManager.snapshot(state),
        )
        return HistoryState(entries=(entry,), cursor=0, max_size=state.history.max_size)

    @staticmethod
    def record(
        history: HistoryState,
        action: Action,
        state: QuoteState,
        timestamp: float | None = None,
    ) -> HistoryState:
        entry = HistoryEntry(
            action=action,
            timestamp=timestamp if timestamp is not None else time.time(),
            snapshot=HistoryManager.snapshot(state),
        )
        # Forward entries are discarded once a new action lands after an undo
        entries = history.entries[: history.cursor + 1] + (entry,)
        if len(entries) > history.max_size:
            entries = entries[len(entries) - history.max_size :]
        return HistoryState(entries=entries, cursor=len(entries) - 1, max_size=history.max_size)

    @staticmethod
    def can_undo(history: HistoryState) -> bool:
        return history.cursor > 0

    @staticmethod
    def can_redo(history: HistoryState) -> bool:
        return 0 <= history.cursor < len(history.entries) - 1

    @staticmethod
    def step_back(history: HistoryState) -> HistoryState | None:
        if not HistoryManager.can_undo(history):
            return None
        return dataclasses.replace(history, cursor=history.cursor - 1)

    @staticmethod
    def step_forward(history: HistoryState) -> HistoryState | None:
        if not HistoryManager.can_redo(history):
            return None
        return dataclasses.replace(history, cursor=history.cursor + 1)

    @staticmethod
    def restore(current: QuoteState, history: HistoryState) -> QuoteState:
        """State at the history cursor. ui, catalog and system stay live; only quote edits move."""
        snapshot = history.entries[history.cursor].snapshot
        return dataclasses.replace(
            snapshot,
            ui=current.ui,
            catalog=current.catalog,
            system=current.system,
            history=history,
        )
