from __future__ import annotations

from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _WireModel(BaseModel):
    # camelCase on the wire, snake_case in Python
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class HistoryEntry(_WireModel):
    question: str
    answer: str = ""
    timestamp: Optional[float] = None


class Suggestion(_WireModel):
    question: str
    icon: str = ""
    confidence: float = 0.0


class SuggestionRequest(_WireModel):
    previous_question: Optional[str] = None
    previous_answer: Optional[str] = None
    conversation_history: List[HistoryEntry] = Field(default_factory=list)


SuggestionSource = Literal["model", "pattern-matching"]


class SuggestionResponse(_WireModel):
    suggestions: List[Suggestion]
    source: SuggestionSource
    timestamp: int
