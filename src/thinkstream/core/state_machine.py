from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
from typing import Dict, Optional, Tuple, Union

from ..domain.stream_models import CompleteEvent, ErrorEvent, StreamingEvent, ThinkingEvent


class ChatPhase(str, Enum):
    IDLE = "idle"
    THINKING = "thinking"
    ANSWERING = "answering"
    COMPLETE = "complete"
    CACHE_LOADED = "cache_loaded"
    ERRORED = "errored"


# Answering -> Thinking happens when the server falls back mid-stream.
PHASE_TRANSITIONS: Dict[ChatPhase, Tuple[ChatPhase, ...]] = {
    ChatPhase.IDLE: (ChatPhase.THINKING, ChatPhase.CACHE_LOADED),
    ChatPhase.THINKING: (ChatPhase.THINKING, ChatPhase.ANSWERING, ChatPhase.COMPLETE, ChatPhase.ERRORED, ChatPhase.IDLE),
    ChatPhase.ANSWERING: (ChatPhase.ANSWERING, ChatPhase.THINKING, ChatPhase.COMPLETE, ChatPhase.ERRORED, ChatPhase.IDLE),
    ChatPhase.COMPLETE: (ChatPhase.IDLE,),
    ChatPhase.CACHE_LOADED: (ChatPhase.IDLE,),
    ChatPhase.ERRORED: (ChatPhase.IDLE,),
}

ACTIVE_PHASES = frozenset({ChatPhase.THINKING, ChatPhase.ANSWERING})


def is_valid_transition(current: ChatPhase, target: ChatPhase) -> bool:
    return target in PHASE_TRANSITIONS.get(current, ())


@dataclass(frozen=True)
class ChatState:
    phase: ChatPhase = ChatPhase.IDLE
    question: str = ""
    thoughts: Tuple[str, ...] = ()
    answer: str = ""
    error: Optional[str] = None

    @property
    def used_cache(self) -> bool:
        return self.phase is ChatPhase.CACHE_LOADED

    @property
    def busy(self) -> bool:
        return self.phase in ACTIVE_PHASES


INITIAL_STATE = ChatState()


@dataclass(frozen=True)
class StartThinking:
    question: str


@dataclass(frozen=True)
class ThoughtsReceived:
    thoughts: Tuple[str, ...]


@dataclass(frozen=True)
class AnswerStreamed:
    answer: str


@dataclass(frozen=True)
class AnswerCompleted:
    answer: str


@dataclass(frozen=True)
class LoadFromCache:
    question: str
    thoughts: Tuple[str, ...]
    answer: str


@dataclass(frozen=True)
class ConnectionFailed:
    message: str


@dataclass(frozen=True)
class Reset:
    pass


ChatAction = Union[StartThinking, ThoughtsReceived, AnswerStreamed, AnswerCompleted, LoadFromCache, ConnectionFailed, Reset]


def _move(state: ChatState, target: ChatPhase, **changes) -> ChatState:
    if not is_valid_transition(state.phase, target):
        # Stale or out-of-order action for this question; keep the current state.
        return state
    return replace(state, phase=target, **changes)


def reduce(state: ChatState, action: ChatAction) -> ChatState:
    """Apply one action and return the next immutable state."""
    if isinstance(action, Reset):
        return INITIAL_STATE
    if isinstance(action, StartThinking):
        return _move(INITIAL_STATE, ChatPhase.THINKING, question=action.question)
    if isinstance(action, LoadFromCache):
        return _move(
            INITIAL_STATE,
            ChatPhase.CACHE_LOADED,
            question=action.question,
            thoughts=tuple(action.thoughts),
            answer=action.answer,
        )
    if isinstance(action, ThoughtsReceived):
        return _move(state, ChatPhase.THINKING, thoughts=tuple(action.thoughts))
    if isinstance(action, AnswerStreamed):
        return _move(state, ChatPhase.ANSWERING, answer=action.answer)
    if isinstance(action, AnswerCompleted):
        return _move(state, ChatPhase.COMPLETE, answer=action.answer)
    if isinstance(action, ConnectionFailed):
        return _move(state, ChatPhase.ERRORED, error=action.message)
    return state


def action_for_event(event: Union[ThinkingEvent, StreamingEvent, CompleteEvent, ErrorEvent]) -> ChatAction:
    if isinstance(event, ThinkingEvent):
        return ThoughtsReceived(thoughts=tuple(event.thoughts))
    if isinstance(event, StreamingEvent):
        return AnswerStreamed(answer=event.answer)
    if isinstance(event, CompleteEvent):
        return AnswerCompleted(answer=event.answer)
    return ConnectionFailed(message=event.message)
