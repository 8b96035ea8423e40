import threading

from src.thinkstream.client.chat import ChatController, ChatStateStore
from src.thinkstream.client.prefetch import PrefetchCache
from src.thinkstream.client.suggestion_client import SuggestionClient, fallback_suggestions
from src.thinkstream.core.state_machine import ChatPhase, StartThinking
from src.thinkstream.domain.errors import StreamTransportError
from src.thinkstream.domain.stream_models import CompleteEvent, StreamingEvent, thinking_event
from src.thinkstream.domain.suggestion_models import Suggestion


class ScriptedFetcher:
    def __init__(self, script=None, fail=False):
        self.calls = []
        self.script = script
        self.fail = fail
        self._lock = threading.Lock()

    def __call__(self, question):
        with self._lock:
            self.calls.append(question)
        return self._events(question)

    def _events(self, question):
        if self.script is not None:
            yield from self.script
            return
        yield thinking_event(["considering"])
        yield StreamingEvent(answer="partial")
        if self.fail:
            raise StreamTransportError("connection dropped")
        yield CompleteEvent(answer=f"answer to {question}")


def _suggest(question, answer, history):
    return [
        Suggestion(question="low", confidence=0.1),
        Suggestion(question="top", confidence=0.9),
        Suggestion(question="second", confidence=0.8),
    ]


def test_ask_streams_caches_and_prefetches():
    fetcher = ScriptedFetcher()
    controller = ChatController(fetcher, suggestion_source=_suggest)
    phases = []
    controller.subscribe(lambda prev, cur: phases.append(cur.phase))

    state = controller.ask("What is AI?")
    assert controller.cache.wait(2)

    assert state.phase is ChatPhase.COMPLETE
    assert state.answer == "answer to What is AI?"
    assert phases == [ChatPhase.THINKING, ChatPhase.THINKING, ChatPhase.ANSWERING, ChatPhase.COMPLETE]
    assert [h.question for h in controller.history] == ["What is AI?"]
    assert [s.question for s in controller.suggestions] == ["low", "top", "second"]
    assert sorted(fetcher.calls[1:]) == ["second", "top"]
    assert controller.cache.get("top").answer == "answer to top"


def test_repeat_question_is_served_from_cache():
    fetcher = ScriptedFetcher()
    controller = ChatController(fetcher)
    controller.ask("Hello")
    state = controller.ask("  hello ")
    assert state.phase is ChatPhase.CACHE_LOADED
    assert state.used_cache
    assert state.answer == "answer to Hello"
    assert fetcher.calls == ["Hello"]


def test_transport_failure_keeps_partial_state():
    controller = ChatController(ScriptedFetcher(fail=True))
    state = controller.ask("q")
    assert state.phase is ChatPhase.ERRORED
    assert state.thoughts == ("considering",)
    assert state.answer == "partial"
    assert controller.cache.get("q") is None
    assert controller.history == []


def test_server_error_frame_marks_errored():
    from src.thinkstream.domain.stream_models import ErrorEvent

    controller = ChatController(ScriptedFetcher(script=[ErrorEvent(message="upstream crashed")]))
    state = controller.ask("q")
    assert state.phase is ChatPhase.ERRORED
    assert state.error == "upstream crashed"


def test_blank_question_is_ignored():
    fetcher = ScriptedFetcher()
    controller = ChatController(fetcher)
    assert controller.ask("   ").phase is ChatPhase.IDLE
    assert fetcher.calls == []


def test_unsubscribe_stops_notifications():
    store = ChatStateStore()
    seen = []
    unsubscribe = store.subscribe(lambda prev, cur: seen.append(cur.phase))
    store.dispatch(StartThinking("a"))
    unsubscribe()
    store.dispatch(StartThinking("b"))
    assert seen == [ChatPhase.THINKING]


def test_controller_accepts_shared_cache():
    fetcher = ScriptedFetcher()
    cache = PrefetchCache(fetcher)
    cache.store("preloaded", ["t"], "from cache")
    controller = ChatController(fetcher, cache=cache)
    assert controller.ask("Preloaded").answer == "from cache"
    assert fetcher.calls == []


class FakeResponse:
    def __init__(self, payload=None, status=200):
        self._payload = payload
        self.status_code = status

    def raise_for_status(self):
        if self.status_code >= 400:
            import requests

            raise requests.exceptions.HTTPError("bad")

    def json(self):
        return self._payload


class FakeSession:
    def __init__(self, response):
        self.response = response
        self.requests = []

    def get(self, url, timeout=None):
        self.requests.append(("GET", url, None))
        return self.response

    def post(self, url, json=None, timeout=None):
        self.requests.append(("POST", url, json))
        return self.response


def test_suggestion_client_posts_camel_case_body():
    payload = {
        "suggestions": [{"question": "Next?", "icon": "💡", "confidence": 0.9}],
        "source": "model",
        "timestamp": 1,
    }
    session = FakeSession(FakeResponse(payload))
    client = SuggestionClient("http://server", session=session)
    out = client.fetch("What is AI?", "Software.", [])
    assert [s.question for s in out] == ["Next?"]
    method, url, body = session.requests[0]
    assert (method, url) == ("POST", "http://server/suggestions")
    assert body["previousQuestion"] == "What is AI?"
    assert body["previousAnswer"] == "Software."
    assert body["conversationHistory"] == []


def test_suggestion_client_initial_get_and_fallback():
    session = FakeSession(FakeResponse({"unexpected": True}))
    client = SuggestionClient("http://server", session=session)
    assert [s.question for s in client.fetch()] == [s.question for s in fallback_suggestions(False)]
    assert session.requests[0][0] == "GET"

    failing = SuggestionClient("http://server", session=FakeSession(FakeResponse(status=503)))
    assert len(failing.fetch("q", "a")) == 3


def test_truncated_stream_is_reported_as_failure():
    controller = ChatController(ScriptedFetcher(script=[thinking_event(["a"])]), suggestion_source=_suggest)
    state = controller.ask("q")
    assert state.phase is ChatPhase.ERRORED
    assert not state.busy
    assert state.thoughts == ("a",)
    assert state.error == "stream ended before completion"
    assert controller.cache.get("q") is None
    assert controller.history == []


def test_cancel_mid_stream_stops_consumption():
    consumed = []

    def fetcher(question):
        consumed.append("thinking")
        yield thinking_event(["a"])
        controller.cancel()
        consumed.append("streaming")
        yield StreamingEvent(answer="never shown")
        consumed.append("complete")
        yield CompleteEvent(answer="never shown")

    controller = ChatController(fetcher)
    phases = []
    controller.subscribe(lambda prev, cur: phases.append(cur.phase))
    state = controller.ask("q")

    assert phases == [ChatPhase.THINKING, ChatPhase.THINKING, ChatPhase.IDLE]
    assert state.phase is ChatPhase.IDLE
    assert not state.busy
    assert consumed == ["thinking", "streaming"]
    assert controller.cache.get("q") is None


def test_ask_after_cancel_runs_normally():
    fetcher = ScriptedFetcher()
    controller = ChatController(fetcher)
    controller.cancel()
    assert controller.ask("again").phase is ChatPhase.COMPLETE
