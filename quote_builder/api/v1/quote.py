from concurrent.futures import Future, TimeoutError as FutureTimeoutError

from fastapi import APIRouter, Depends, HTTPException

from quote_builder.api.v1.schemas import (
    ActionRequestSchema,
    DispatchResponseSchema,
    HistoryMoveResponseSchema,
    SelectorResponseSchema,
    StateResponseSchema,
)
from quote_builder.application.exceptions import (
    PersistenceFailure,
    ReducerFailure,
    StoreError,
    ValidationFailure,
)
from quote_builder.application.store.history import HistoryManager
from quote_builder.application.store.selectors import SELECTORS
from quote_builder.application.store.store import Store
from quote_builder.application.utils.state_serialization import state_to_dict, to_jsonable
from quote_builder.core.config import settings
from quote_builder.domain.entities.action import Action, ActionType, resolve_kind
from quote_builder.wiring.dependencies import get_store

router = APIRouter()


def _to_action(req: ActionRequestSchema) -> Action:
    kind = resolve_kind(req.kind)
    payload = dict(req.payload)
    if kind is ActionType.BATCH_ACTIONS:
        payload["actions"] = tuple(
            Action.of(item.get("kind", ""), item.get("payload")) for item in payload.get("actions") or ()
        )
    return Action.of(kind, payload)


@router.get("/state", response_model=StateResponseSchema)
def get_state(include_history: bool = False, store: Store = Depends(get_store)):
    return StateResponseSchema(state=state_to_dict(store.snapshot(), include_history=include_history))


@router.post("/actions", response_model=DispatchResponseSchema)
def dispatch_action(req: ActionRequestSchema, store: Store = Depends(get_store)):
    action = _to_action(req)
    before = store.snapshot()
    try:
        result = store.dispatch(action)
        if isinstance(result, Future):
            result.result(timeout=settings.DISPATCH_TIMEOUT_SECONDS)
    except FutureTimeoutError:
        raise HTTPException(status_code=504, detail=f"{action.kind_name} did not settle in time")
    except (ValidationFailure, ReducerFailure) as e:
        raise HTTPException(status_code=422, detail=str(e))
    except PersistenceFailure as e:
        raise HTTPException(status_code=503, detail=str(e))
    except StoreError as e:
        raise HTTPException(status_code=500, detail=str(e))

    after = store.snapshot()
    return DispatchResponseSchema(kind=action.kind_name, changed=after is not before, state=state_to_dict(after))


def _history_response(store: Store, moved: bool) -> HistoryMoveResponseSchema:
    state = store.snapshot()
    return HistoryMoveResponseSchema(
        moved=moved,
        can_undo=HistoryManager.can_undo(state.history),
        can_redo=HistoryManager.can_redo(state.history),
        state=state_to_dict(state),
    )


@router.post("/undo", response_model=HistoryMoveResponseSchema)
def undo(store: Store = Depends(get_store)):
    return _history_response(store, store.undo())


@router.post("/redo", response_model=HistoryMoveResponseSchema)
def redo(store: Store = Depends(get_store)):
    return _history_response(store, store.redo())


@router.get("/selectors/{name}", response_model=SelectorResponseSchema)
def read_selector(name: str, store: Store = Depends(get_store)):
    selector = SELECTORS.get(name)
    if selector is None:
        raise HTTPException(status_code=404, detail=f"Unknown selector: {name}")
    return SelectorResponseSchema(name=name, value=to_jsonable(store.select(selector)))
