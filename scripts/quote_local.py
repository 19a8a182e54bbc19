#!/usr/bin/env python3
from __future__ import annotations

import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

"""
Interactive local quote harness (no HTTP).

Usage:
  python3 scripts/quote_local.py

What it does:
- Builds a store from settings (storage provider, middleware policies)
- Restores a saved quote if one is fresh, loads the catalog
- Dispatches the actions you type and prints the quote summary after each one

Input:
  KIND [json payload]     e.g.  TOGGLE_FEATURE {"id": "live-chat"}
  /undo, /redo, /state, /summary, /catalog, /help, /quit
"""

import json
from typing import Any

from quote_builder.application.exceptions import StoreError
from quote_builder.application.store.actions import Actions
from quote_builder.application.store.selectors import select_quote_summary
from quote_builder.application.use_cases.restore_quote import RestoreQuoteUseCase
from quote_builder.application.utils.state_serialization import state_to_dict, to_jsonable
from quote_builder.core.config import settings
from quote_builder.domain.entities.action import Action
from quote_builder.wiring.dependencies import (
    build_store,
    get_error_reporter,
    get_load_catalog_use_case,
    get_state_storage,
)


def _print_header() -> None:
    print("\nLocal Quote Harness")
    print("-" * 60)
    print(f"storage: {settings.STORAGE_PROVIDER}  batch: {settings.BATCH_ENABLED}")
    print("Type an action kind with an optional JSON payload.")
    print("Commands: /undo /redo /state /summary /catalog /help /quit")
    print("-" * 60)


def _print_json(value: Any) -> None:
    print(json.dumps(to_jsonable(value), indent=2, ensure_ascii=False))


def _parse(line: str) -> Action:
    kind, _, rest = line.partition(" ")
    payload = json.loads(rest) if rest.strip() else {}
    if not isinstance(payload, dict):
        raise ValueError("payload must be a JSON object")
    return Action.of(kind.strip().upper(), payload)


def main() -> int:
    storage = get_state_storage()
    reporter = get_error_reporter()
    store = build_store(settings, storage=storage, reporter=reporter)
    restored = RestoreQuoteUseCase(
        store, storage, max_age_seconds=settings.PERSIST_MAX_AGE_SECONDS, reporter=reporter
    ).execute()
    result = get_load_catalog_use_case(store).execute()
    store.dispatch(Actions.initialize_system())

    _print_header()
    print(f"restored: {restored}  catalog: {result.source}")

    try:
        while True:
            try:
                line = input("> ").strip()
            except EOFError:
                break
            if not line:
                continue
            if line in ("/quit", "/exit"):
                break
            if line == "/help":
                _print_header()
                continue
            if line == "/undo":
                print(f"undo: {store.undo()}")
            elif line == "/redo":
                print(f"redo: {store.redo()}")
            elif line == "/state":
                _print_json(state_to_dict(store.get_state(), include_history=True))
                continue
            elif line == "/catalog":
                _print_json(store.get_state().catalog)
                continue
            elif line != "/summary":
                try:
                    outcome = store.dispatch(_parse(line))
                    if hasattr(outcome, "result"):
                        outcome.result(timeout=settings.DISPATCH_TIMEOUT_SECONDS)
                except (ValueError, StoreError) as e:
                    print(f"error: {e}")
                    continue
            _print_json(select_quote_summary(store.get_state()))
    finally:
        store.close()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
