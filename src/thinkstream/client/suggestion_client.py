from __future__ import annotations

import logging
from typing import List, Optional, Sequence

import requests
from pydantic import ValidationError

from ..domain.suggestion_models import HistoryEntry, Suggestion, SuggestionRequest, SuggestionResponse

LOG = logging.getLogger("thinkstream.client")

_INITIAL_FALLBACK = (
    ("What's the best programming language for beginners?", "💻"),
    ("How does machine learning work?", "🤖"),
    ("How do I switch careers into tech?", "🔄"),
    ("What are the most important tech trends?", "📈"),
)
_FOLLOW_UP_FALLBACK = (
    ("What skills should I prioritize learning?", "🎯"),
    ("How do I stay updated with tech changes?", "📰"),
    ("What are common mistakes beginners make?", "⚠️"),
)


def fallback_suggestions(has_asked_before: bool) -> List[Suggestion]:
    """Offline suggestions used when the suggestion endpoint cannot be reached."""
    pairs = _FOLLOW_UP_FALLBACK if has_asked_before else _INITIAL_FALLBACK
    return [Suggestion(question=q, icon=icon) for q, icon in pairs]


class SuggestionClient:
    def __init__(self, base_url: str, session: Optional[requests.Session] = None, timeout: float = 15.0) -> None:
        self.base_url = base_url.rstrip("/")
        self._session = session or requests.Session()
        self._timeout = timeout

    def fetch(
        self,
        previous_question: Optional[str] = None,
        previous_answer: Optional[str] = None,
        history: Sequence[HistoryEntry] = (),
    ) -> List[Suggestion]:
        has_asked_before = bool(previous_question)
        try:
            if not has_asked_before:
                resp = self._session.get(f"{self.base_url}/suggestions", timeout=self._timeout)
            else:
                body = SuggestionRequest(
                    previous_question=previous_question,
                    previous_answer=previous_answer,
                    conversation_history=list(history),
                )
                resp = self._session.post(
                    f"{self.base_url}/suggestions",
                    json=body.model_dump(by_alias=True, exclude_none=True),
                    timeout=self._timeout,
                )
            resp.raise_for_status()
            return SuggestionResponse.model_validate(resp.json()).suggestions
        except (requests.exceptions.RequestException, ValueError, ValidationError) as exc:
            LOG.warning("suggestions_fetch_failed", extra={"err": str(exc)})
            return fallback_suggestions(has_asked_before)
