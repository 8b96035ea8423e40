from __future__ import annotations

import logging
import time
from threading import Event, RLock
from typing import Callable, List, Optional

from ..core.state_machine import (
    INITIAL_STATE,
    ChatAction,
    ChatPhase,
    ChatState,
    ConnectionFailed,
    LoadFromCache,
    Reset,
    StartThinking,
    action_for_event,
    reduce,
)
from ..domain.stream_models import is_terminal
from ..domain.suggestion_models import HistoryEntry, Suggestion
from .prefetch import Fetcher, PrefetchCache

LOG = logging.getLogger("thinkstream.client")

Subscriber = Callable[[ChatState, ChatState], None]
SuggestionSource = Callable[[Optional[str], Optional[str], List[HistoryEntry]], List[Suggestion]]


class ChatStateStore:
    """Single-writer holder for :class:`ChatState`; notifies subscribers on change."""

    def __init__(self, state: ChatState = INITIAL_STATE) -> None:
        self._state = state
        self._subscribers: List[Subscriber] = []
        self._lock = RLock()

    @property
    def state(self) -> ChatState:
        return self._state

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        with self._lock:
            self._subscribers.append(callback)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe

    def dispatch(self, action: ChatAction) -> ChatState:
        with self._lock:
            previous = self._state
            self._state = reduce(previous, action)
            current = self._state
            subscribers = list(self._subscribers)
        if current is not previous:
            for callback in subscribers:
                try:
                    callback(previous, current)
                except Exception:
                    LOG.exception("chat_subscriber_failed")
        return current


class ChatController:
    """Asks questions against a streaming server, serving cache hits instantly."""

    def __init__(
        self,
        fetcher: Fetcher,
        cache: Optional[PrefetchCache] = None,
        suggestion_source: Optional[SuggestionSource] = None,
        store: Optional[ChatStateStore] = None,
    ) -> None:
        self._fetcher = fetcher
        self.cache = cache if cache is not None else PrefetchCache(fetcher)
        self._suggestion_source = suggestion_source
        self.store = store or ChatStateStore()
        self.history: List[HistoryEntry] = []
        self.suggestions: List[Suggestion] = []
        self._cancel = Event()

    @property
    def state(self) -> ChatState:
        return self.store.state

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        return self.store.subscribe(callback)

    def cancel(self) -> None:
        self._cancel.set()

    def load_initial_suggestions(self) -> List[Suggestion]:
        return self._refresh_suggestions(None, None)

    def ask(self, question: str) -> ChatState:
        question = (question or "").strip()
        if not question:
            return self.state
        self._cancel.clear()

        cached = self.cache.get(question)
        if cached is not None and cached.complete:
            state = self.store.dispatch(
                LoadFromCache(question=question, thoughts=cached.thoughts, answer=cached.answer)
            )
            self._after_answer(question, cached.answer)
            return state

        self.store.dispatch(StartThinking(question=question))
        events = self._fetcher(question)
        terminal_seen = False
        cancelled = False
        try:
            for event in events:
                if self._cancel.is_set():
                    cancelled = True
                    break
                self.store.dispatch(action_for_event(event))
                if is_terminal(event):
                    terminal_seen = True
                    break
        except Exception as exc:
            LOG.warning("chat_stream_failed", extra={"question": question, "err": str(exc)})
            self.store.dispatch(ConnectionFailed(message=str(exc) or "Connection failed"))
            terminal_seen = True
        finally:
            close = getattr(events, "close", None)
            if callable(close):
                close()

        if cancelled or (self._cancel.is_set() and not terminal_seen):
            LOG.info("chat_stream_cancelled", extra={"question": question})
            return self.store.dispatch(Reset())
        if not terminal_seen:
            LOG.warning("chat_stream_truncated", extra={"question": question})
            self.store.dispatch(ConnectionFailed(message="stream ended before completion"))

        state = self.state
        if state.phase is ChatPhase.COMPLETE:
            self.cache.store(question, state.thoughts, state.answer)
            self._after_answer(question, state.answer)
        return state

    def _after_answer(self, question: str, answer: str) -> None:
        self.history.append(HistoryEntry(question=question, answer=answer, timestamp=time.time()))
        suggestions = self._refresh_suggestions(question, answer)
        if suggestions and not self.state.busy:
            self.cache.prefetch_batch(suggestions)

    def _refresh_suggestions(self, question: Optional[str], answer: Optional[str]) -> List[Suggestion]:
        if self._suggestion_source is None:
            return self.suggestions
        self.suggestions = []
        self.suggestions = list(self._suggestion_source(question, answer, list(self.history)))
        return self.suggestions
