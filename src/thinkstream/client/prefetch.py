"""Speculative prefetching of likely next questions.

``prefetch_batch`` picks the two highest-confidence candidates and streams
their answers in background threads. Completed answers land in an in-process
cache keyed by the normalized question; at most one fetch per key is ever in
flight. Lookups through :meth:`PrefetchCache.get` never start a fetch.
"""

from __future__ import annotations

import logging
import time
from threading import RLock, Thread
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

from ..domain.cache_models import CacheEntry, CacheStats, PrefetchTask, normalize_key
from ..domain.suggestion_models import Suggestion

LOG = logging.getLogger("thinkstream.prefetch")

PREFETCH_TOP_K = 2

Fetcher = Callable[[str], Iterable[Any]]
Candidate = Union[Suggestion, Mapping[str, Any], str]


def _candidate_fields(candidate: Candidate) -> Tuple[str, float]:
    if isinstance(candidate, str):
        return candidate, 0.0
    if isinstance(candidate, Mapping):
        return str(candidate.get("question") or ""), float(candidate.get("confidence") or 0.0)
    return str(getattr(candidate, "question", "") or ""), float(getattr(candidate, "confidence", 0.0) or 0.0)


def select_top_candidates(candidates: Sequence[Candidate], limit: int = PREFETCH_TOP_K) -> List[Tuple[str, float]]:
    """Top ``limit`` candidates by descending confidence; ties keep input order."""
    fields = [_candidate_fields(c) for c in candidates or []]
    ranked = sorted(fields, key=lambda item: -item[1])
    return ranked[:limit]


def _event_field(event: Any, name: str, default: Any = None) -> Any:
    if isinstance(event, Mapping):
        return event.get(name, default)
    return getattr(event, name, default)


class PrefetchCache:
    def __init__(self, fetcher: Fetcher, top_k: int = PREFETCH_TOP_K) -> None:
        self._fetcher = fetcher
        self._top_k = top_k
        self._entries: Dict[str, CacheEntry] = {}
        self._in_flight: Dict[str, PrefetchTask] = {}
        self._threads: List[Thread] = []
        self._lock = RLock()

    def get(self, question: str) -> Optional[CacheEntry]:
        key = normalize_key(question)
        if not key:
            return None
        with self._lock:
            entry = self._entries.get(key)
        if entry is not None:
            LOG.info(
                "prefetch_cache_hit",
                extra={"question": question, "age_s": round(time.time() - entry.timestamp, 1)},
            )
        return entry

    def is_in_flight(self, question: str) -> bool:
        with self._lock:
            return normalize_key(question) in self._in_flight

    def store(self, question: str, thoughts: Sequence[str], answer: str) -> CacheEntry:
        """Insert (or wholesale replace) a completed entry."""
        key = normalize_key(question)
        entry = CacheEntry(
            key=key,
            question=question,
            thoughts=tuple(thoughts),
            answer=answer,
            complete=True,
            timestamp=time.time(),
        )
        with self._lock:
            self._entries[key] = entry
        return entry

    def prefetch(self, question: str) -> bool:
        """Start a background fetch for ``question`` unless cached or already in flight."""
        task = self._claim(question)
        if task is None:
            return False
        LOG.info("prefetch_started", extra={"question": question})
        worker = Thread(target=self._run, args=(task,), name=f"prefetch-{task.key[:24]}", daemon=True)
        with self._lock:
            self._threads = [t for t in self._threads if t.is_alive()]
            self._threads.append(worker)
        worker.start()
        return True

    def prefetch_batch(self, candidates: Sequence[Candidate]) -> List[str]:
        """Prefetch the top candidates by confidence; returns the questions actually started."""
        selected = select_top_candidates(candidates, self._top_k)
        LOG.info(
            "prefetch_batch",
            extra={"selected": [{"question": q, "confidence": c} for q, c in selected]},
        )
        return [question for question, _ in selected if self.prefetch(question)]

    def _claim(self, question: str) -> Optional[PrefetchTask]:
        key = normalize_key(question)
        if not key:
            return None
        with self._lock:
            if key in self._entries or key in self._in_flight:
                return None
            task = PrefetchTask(key=key, question=question)
            self._in_flight[key] = task
            return task

    def _run(self, task: PrefetchTask) -> None:
        thoughts: Tuple[str, ...] = ()
        answer = ""
        events: Iterable[Any] = ()
        try:
            events = self._fetcher(task.question)
            for event in events:
                kind = _event_field(event, "type")
                if kind == "thinking":
                    thoughts = tuple(_event_field(event, "thoughts", ()) or ())
                elif kind == "streaming":
                    answer = _event_field(event, "answer", "") or ""
                elif kind == "complete":
                    answer = _event_field(event, "answer", "") or answer
                    self.store(task.question, thoughts, answer)
                    LOG.info(
                        "prefetch_cached",
                        extra={"question": task.question, "answer_len": len(answer), "thoughts": len(thoughts)},
                    )
                    return
                elif kind == "error":
                    LOG.warning("prefetch_server_error", extra={"question": task.question})
                    return
            LOG.info("prefetch_stream_ended_early", extra={"question": task.question})
        except Exception as exc:
            LOG.warning("prefetch_failed", extra={"question": task.question, "err": str(exc)})
        finally:
            task.in_flight = False
            with self._lock:
                if self._in_flight.get(task.key) is task:
                    del self._in_flight[task.key]
            close = getattr(events, "close", None)
            if callable(close):
                close()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Join running prefetch workers; True when none is left running."""
        with self._lock:
            threads = list(self._threads)
        deadline = None if timeout is None else time.monotonic() + timeout
        for worker in threads:
            remaining = None if deadline is None else max(0.0, deadline - time.monotonic())
            worker.join(remaining)
        return not any(t.is_alive() for t in threads)

    def clear(self) -> None:
        """Drop cached entries; running prefetches keep their in-flight markers."""
        with self._lock:
            self._entries.clear()

    def stats(self) -> CacheStats:
        with self._lock:
            return CacheStats(
                size=len(self._entries),
                prefetching=len(self._in_flight),
                questions=list(self._entries.keys()),
            )
