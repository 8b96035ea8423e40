from __future__ import annotations

from typing import Annotated, Any, Dict, List, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter


class ThinkingEvent(BaseModel):
    type: Literal["thinking"] = "thinking"
    thoughts: List[str] = Field(default_factory=list)
    step: int = 0
    total: int = 0


class StreamingEvent(BaseModel):
    type: Literal["streaming"] = "streaming"
    answer: str = ""


class CompleteEvent(BaseModel):
    type: Literal["complete"] = "complete"
    answer: str = ""


class ErrorEvent(BaseModel):
    type: Literal["error"] = "error"
    message: str


StreamEvent = Annotated[
    Union[ThinkingEvent, StreamingEvent, CompleteEvent, ErrorEvent],
    Field(discriminator="type"),
]

TERMINAL_EVENT_TYPES = frozenset({"complete", "error"})

_EVENT_ADAPTER: TypeAdapter = TypeAdapter(StreamEvent)


def is_terminal(event: BaseModel) -> bool:
    return getattr(event, "type", None) in TERMINAL_EVENT_TYPES


def parse_event(payload: Dict[str, Any]) -> Union[ThinkingEvent, StreamingEvent, CompleteEvent, ErrorEvent]:
    """Validate a decoded frame payload into its concrete event model.

    Raises ``pydantic.ValidationError`` for unknown ``type`` values or missing fields.
    """
    return _EVENT_ADAPTER.validate_python(payload)


def thinking_event(thoughts: List[str], step: int | None = None, total: int | None = None) -> ThinkingEvent:
    count = len(thoughts)
    return ThinkingEvent(
        thoughts=list(thoughts),
        step=count if step is None else step,
        total=count if total is None else total,
    )
