from __future__ import annotations

from fastapi import APIRouter

from ...domain.suggestion_models import SuggestionRequest, SuggestionResponse
from ...services.llm_client import get_upstream
from ...services.suggestions import initial_response, suggest

router = APIRouter(prefix="/suggestions", tags=["suggestions"])


@router.get("", response_model=SuggestionResponse, response_model_by_alias=True)
def get_initial_suggestions() -> SuggestionResponse:
    return initial_response()


@router.post("", response_model=SuggestionResponse, response_model_by_alias=True)
def post_follow_up_suggestions(req: SuggestionRequest) -> SuggestionResponse:
    # Runs in the threadpool; the model call blocks.
    return suggest(req, get_upstream("suggestions"))
