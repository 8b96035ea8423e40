import json

import pytest
from fastapi.testclient import TestClient

from src.thinkstream.api.main import app
from src.thinkstream.api.routers import stream as stream_router
from src.thinkstream.api.routers import suggestions as suggestions_router
from src.thinkstream.services import generation, streaming


client = TestClient(app)


class FakeUpstream:
    def __init__(self, tokens=(), raw=""):
        self.tokens = list(tokens)
        self.raw = raw

    def available(self):
        return True

    def stream(self, messages):
        for token in self.tokens:
            yield {"token": token}

    def invoke(self, messages):
        return self.raw


@pytest.fixture(autouse=True)
def fast_streams(monkeypatch):
    monkeypatch.setattr(generation, "FALLBACK_STEP_SECONDS", 0.0)
    monkeypatch.setattr(streaming, "CLOSE_GRACE_SECONDS", 0.0)
    monkeypatch.setattr(stream_router, "get_upstream", lambda purpose="generation": None)
    monkeypatch.setattr(suggestions_router, "get_upstream", lambda purpose="suggestions": None)


def _frames(body: str):
    return [json.loads(chunk[len("data: "):]) for chunk in body.split("\n\n") if chunk.startswith("data: ")]


def test_root_and_health():
    assert client.get("/").json()["name"] == "thinkstream API"
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json()["status"] == "ok"
    assert client.get("/api/health").json()["status"] == "ok"


def test_stream_fallback_when_no_upstream():
    r = client.get("/stream", params={"question": "Tell me about coding"})
    assert r.status_code == 200
    assert r.headers["content-type"].startswith("text/event-stream")
    assert r.headers["cache-control"] == "no-cache, no-transform"
    assert r.headers["x-accel-buffering"] == "no"
    frames = _frames(r.text)
    assert [f["type"] for f in frames] == ["thinking"] * 12 + ["complete"]
    assert frames[0]["thoughts"] == ['Analyzing the question: "Tell me about coding"']
    assert "Python for general programming" in frames[-1]["answer"]


def test_stream_defaults_question():
    frames = _frames(client.get("/stream").text)
    assert frames[0]["thoughts"][0] == 'Analyzing the question: "general inquiry"'


def test_stream_with_upstream(monkeypatch):
    upstream = FakeUpstream(["THINKING:\n- A\n", "ANSWER:", " Hi"])
    monkeypatch.setattr(stream_router, "get_upstream", lambda purpose="generation": upstream)
    frames = _frames(client.get("/api/stream", params={"question": "hi"}).text)
    assert [f["type"] for f in frames] == ["thinking", "thinking", "streaming", "streaming", "complete"]
    assert frames[-1] == {"type": "complete", "answer": "Hi"}
    assert sum(1 for f in frames if f["type"] in ("complete", "error")) == 1


def test_stream_driver_crash_emits_error_frame(monkeypatch):
    async def boom(self, prompt):
        raise ValueError("driver exploded")

    monkeypatch.setattr(generation.GenerationDriver, "run", boom)
    frames = _frames(client.get("/stream", params={"question": "x"}).text)
    assert frames == [{"type": "error", "message": "driver exploded"}]


def test_initial_suggestions():
    r = client.get("/suggestions")
    assert r.status_code == 200
    body = r.json()
    assert body["source"] == "pattern-matching"
    assert len(body["suggestions"]) == 4
    assert isinstance(body["timestamp"], int)


def test_follow_up_suggestions_pattern_matching():
    r = client.post(
        "/suggestions",
        json={"previousQuestion": "How do I get into photography?", "previousAnswer": "Buy a camera", "conversationHistory": []},
    )
    assert r.status_code == 200
    body = r.json()
    assert body["source"] == "pattern-matching"
    assert body["suggestions"][0]["question"] == "What camera should I buy as a beginner?"


def test_follow_up_suggestions_from_model(monkeypatch):
    upstream = FakeUpstream(raw='[{"question": "What lens next?", "confidence": 0.91}]')
    monkeypatch.setattr(suggestions_router, "get_upstream", lambda purpose="suggestions": upstream)
    body = client.post("/api/suggestions", json={"previousQuestion": "camera?"}).json()
    assert body["source"] == "model"
    assert body["suggestions"] == [{"question": "What lens next?", "icon": "💡", "confidence": 0.91}]


def test_diag_upstream(monkeypatch):
    monkeypatch.setenv("THINKSTREAM_DISABLE_LOCAL_LLM", "1")
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    monkeypatch.delenv("THINKSTREAM_MODEL_PROVIDER", raising=False)
    body = client.get("/diag/upstream").json()
    assert body["purposes"]["generation"]["provider"] == "none"
    assert body["breaker"]["open"] is False


def test_metrics_endpoint_exposes_stream_counters():
    client.get("/stream", params={"question": "metrics"})
    m = client.get("/metrics")
    assert m.status_code == 200
    assert "# TYPE thinkstream_request_latency_seconds histogram" in m.text
    assert "thinkstream_stream_frames_total" in m.text
    assert "thinkstream_fallback_activations_total" in m.text
    assert client.get("/api/metrics").status_code == 200


def test_diag_reports_local_provider(monkeypatch):
    monkeypatch.delenv("THINKSTREAM_DISABLE_LOCAL_LLM", raising=False)
    monkeypatch.delenv("THINKSTREAM_MODEL_PROVIDER", raising=False)
    monkeypatch.setenv("LOCAL_BASE_URL", "http://gpu-box:11434")
    monkeypatch.setenv("LOCAL_MODEL", "llama3.2")
    body = client.get("/api/diag/upstream").json()
    generation_info = body["purposes"]["generation"]
    assert generation_info["provider"] == "local"
    assert generation_info["base_url"] == "http://gpu-box:11434"
    assert generation_info["ready"] is True


def test_diag_reports_open_breaker(monkeypatch):
    from src.thinkstream.services import llm_client

    monkeypatch.setattr(llm_client, "_BREAKER_THRESHOLD", 1)
    monkeypatch.delenv("THINKSTREAM_DISABLE_LOCAL_LLM", raising=False)
    monkeypatch.delenv("THINKSTREAM_MODEL_PROVIDER", raising=False)
    llm_client._record_fail()
    body = client.get("/diag/upstream").json()
    assert body["breaker"]["open"] is True
    assert body["breaker"]["fails"] == 1
    assert body["purposes"]["generation"]["ready"] is False
