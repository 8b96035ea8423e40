from __future__ import annotations

import json
import logging
from typing import Callable, Iterable, Iterator, Optional, Union

import requests
from pydantic import ValidationError

from ..domain.errors import StreamTransportError
from ..domain.stream_models import CompleteEvent, ErrorEvent, StreamingEvent, ThinkingEvent, is_terminal, parse_event

LOG = logging.getLogger("thinkstream.client")

Event = Union[ThinkingEvent, StreamingEvent, CompleteEvent, ErrorEvent]

_STREAM_TIMEOUT = (3, 120)


def parse_sse_lines(lines: Iterable[Union[str, bytes]]) -> Iterator[Event]:
    """Decode ``data:`` lines into events, stopping after the terminal frame."""
    for raw_line in lines:
        if not raw_line:
            continue
        line = raw_line.decode("utf-8") if isinstance(raw_line, bytes) else raw_line
        if not line.startswith("data:"):
            continue
        data = line[5:].strip()
        try:
            event = parse_event(json.loads(data))
        except (json.JSONDecodeError, ValidationError) as exc:
            LOG.debug("sse_frame_skipped", extra={"err": str(exc)})
            continue
        yield event
        if is_terminal(event):
            return


def iter_sse_events(
    url: str,
    question: str,
    session: Optional[requests.Session] = None,
    timeout=_STREAM_TIMEOUT,
) -> Iterator[Event]:
    """Stream events from ``url``; a session created here is closed when the stream ends."""
    owns_session = session is None
    http = session or requests.Session()
    try:
        with http.get(
            url,
            params={"question": question},
            headers={"Accept": "text/event-stream"},
            stream=True,
            timeout=timeout,
        ) as resp:
            resp.raise_for_status()
            yield from parse_sse_lines(resp.iter_lines())
    except requests.exceptions.RequestException as exc:
        raise StreamTransportError(str(exc)) from exc
    finally:
        if owns_session:
            http.close()


class SSEFetcher:
    """Callable ``question -> events`` reading the ``/stream`` endpoint of a server.

    The live question and prefetch workers call this from different threads,
    so every call gets its own session from ``session_factory``.
    """

    def __init__(self, base_url: str, session_factory: Callable[[], requests.Session] = requests.Session) -> None:
        self.base_url = base_url.rstrip("/")
        self._session_factory = session_factory

    def __call__(self, question: str) -> Iterator[Event]:
        return self._stream(question)

    def _stream(self, question: str) -> Iterator[Event]:
        session = self._session_factory()
        try:
            yield from iter_sse_events(f"{self.base_url}/stream", question, session=session)
        finally:
            session.close()
