from pydantic import BaseModel, Field
from typing import Any


class ActionRequestSchema(BaseModel):
    kind: str = Field(..., min_length=1, description="Action kind, e.g. TOGGLE_FEATURE")
    payload: dict[str, Any] = Field(default_factory=dict)


class StateResponseSchema(BaseModel):
    state: dict[str, Any]


class DispatchResponseSchema(BaseModel):
    kind: str
    changed: bool
    state: dict[str, Any]


class HistoryMoveResponseSchema(BaseModel):
    moved: bool
    can_undo: bool
    can_redo: bool
    state: dict[str, Any]


class SelectorResponseSchema(BaseModel):
    name: str
    value: Any = None
