from __future__ import annotations

import json
import logging
import time
from typing import List, Optional

from pydantic import BaseModel, Field, TypeAdapter, ValidationError

from ..domain.errors import MalformedSuggestionPayload
from ..domain.suggestion_models import Suggestion, SuggestionRequest, SuggestionResponse
from .llm_client import TextGenerator
from .suggestion_patterns import initial_suggestions, theme_based_suggestions

LOG = logging.getLogger("thinkstream.suggestions")

SUGGESTION_ICONS = ("💡", "🔍", "🎯", "📚")
SUGGESTION_COUNT = 4


class _ModelSuggestion(BaseModel):
    question: str = Field(min_length=1)
    confidence: float = Field(ge=0.0, le=1.0)


_MODEL_OUTPUT = TypeAdapter(List[_ModelSuggestion])


def _now_ms() -> int:
    return int(time.time() * 1000)


def build_suggestion_prompt(request: SuggestionRequest) -> str:
    history_context = ""
    if request.conversation_history:
        lines = ["", "Conversation History:"]
        for index, entry in enumerate(request.conversation_history, start=1):
            lines.append(f"{index}. Q: {entry.question}")
            lines.append(f"   A: {entry.answer[:150]}...")
        history_context = "\n".join(lines)

    if request.previous_question:
        recent = f"\nMost Recent Question: {request.previous_question}"
    else:
        recent = "This is the start of the conversation."
    recent_answer = f"Most Recent Answer: {request.previous_answer[:200]}..." if request.previous_answer else ""

    return f"""You are an AI assistant helping generate contextual follow-up questions.
Based on the full conversation context below, generate {SUGGESTION_COUNT} relevant follow-up questions that naturally continue the conversation journey.
{history_context}
{recent}
{recent_answer}

Analyze the conversation flow and topics discussed. Generate {SUGGESTION_COUNT} diverse, interesting follow-up questions that:
1. Build upon the conversation themes
2. Progress naturally from beginner to more advanced topics if applicable
3. Explore related areas the user might be curious about

Return ONLY a JSON array with this exact format:
[
  {{"question": "...", "confidence": 0.95}},
  {{"question": "...", "confidence": 0.92}},
  {{"question": "...", "confidence": 0.90}},
  {{"question": "...", "confidence": 0.88}}
]

Important: Return ONLY the JSON array, no other text."""


def parse_model_suggestions(raw: str) -> List[Suggestion]:
    """Turn raw model output into suggestions.

    Tolerates prose or code fences around the array. Raises
    :class:`MalformedSuggestionPayload` when no well-formed, non-empty array is found.
    """
    text = (raw or "").strip()
    start, end = text.find("["), text.rfind("]")
    if start == -1 or end <= start:
        raise MalformedSuggestionPayload("no JSON array in model output")
    try:
        items = _MODEL_OUTPUT.validate_python(json.loads(text[start : end + 1]))
    except (json.JSONDecodeError, ValidationError) as exc:
        raise MalformedSuggestionPayload(str(exc)) from exc
    if not items:
        raise MalformedSuggestionPayload("empty suggestion list")
    return [
        Suggestion(
            question=item.question.strip(),
            icon=SUGGESTION_ICONS[index % len(SUGGESTION_ICONS)],
            confidence=item.confidence,
        )
        for index, item in enumerate(items[:SUGGESTION_COUNT])
    ]


def generate_model_suggestions(request: SuggestionRequest, upstream: Optional[TextGenerator]) -> Optional[List[Suggestion]]:
    """Ask the upstream model for suggestions; None means the caller should pattern-match."""
    if upstream is None:
        return None
    try:
        if not upstream.available():
            LOG.info("suggestions_upstream_unavailable")
            return None
        raw = upstream.invoke([{"role": "user", "content": build_suggestion_prompt(request)}])
        return parse_model_suggestions(raw)
    except MalformedSuggestionPayload as exc:
        LOG.warning("suggestions_malformed_payload", extra={"err": str(exc)})
    except Exception as exc:
        LOG.warning("suggestions_generation_failed", extra={"err": str(exc)})
    return None


def pattern_suggestions(request: SuggestionRequest) -> List[Suggestion]:
    if not request.previous_question:
        return initial_suggestions()
    return theme_based_suggestions(request.previous_question, request.previous_answer)


def suggest(request: SuggestionRequest, upstream: Optional[TextGenerator]) -> SuggestionResponse:
    suggestions = generate_model_suggestions(request, upstream)
    if suggestions:
        return SuggestionResponse(suggestions=suggestions, source="model", timestamp=_now_ms())
    return SuggestionResponse(suggestions=pattern_suggestions(request), source="pattern-matching", timestamp=_now_ms())


def initial_response() -> SuggestionResponse:
    return SuggestionResponse(suggestions=initial_suggestions(), source="pattern-matching", timestamp=_now_ms())
