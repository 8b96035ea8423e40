from __future__ import annotations

from fastapi import APIRouter

from ...services.llm_client import ChatOpenAI, base_url_for, breaker_snapshot
from ...services.model_router import ModelRouter

router = APIRouter(prefix="/diag", tags=["diagnostics"])


@router.get("/upstream")
def diag_upstream():
    """Configured provider per purpose plus circuit breaker state. Does not probe the network."""
    model_router = ModelRouter()
    breaker = breaker_snapshot()
    purposes = {}
    for purpose in model_router.ROUTING_POLICY:
        selection = model_router.maybe_select_provider(purpose)
        if selection is None:
            purposes[purpose] = {"provider": "none", "model": None, "base_url": None, "ready": False}
            continue
        purposes[purpose] = {
            "provider": selection.name,
            "model": selection.model,
            "base_url": base_url_for(selection),
            "ready": not breaker["open"] and (selection.name == "local" or ChatOpenAI is not None),
        }
    return {
        "purposes": purposes,
        "library_present": ChatOpenAI is not None,
        "breaker": breaker,
    }
