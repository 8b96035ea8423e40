import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
root_str = str(ROOT)
if root_str not in sys.path:
    sys.path.insert(0, root_str)


@pytest.fixture(autouse=True)
def _reset_breaker():
    """Each test starts with a closed upstream circuit breaker."""
    from src.thinkstream.services import llm_client

    llm_client._BREAKER_STATE.update({"fails": 0, "opened_at": 0.0})
    yield
    llm_client._BREAKER_STATE.update({"fails": 0, "opened_at": 0.0})
