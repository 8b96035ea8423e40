from __future__ import annotations

import asyncio
import json
import logging
import os
from typing import Any, AsyncIterator, Dict, Iterable, Optional, Protocol, TypeVar

from pydantic import BaseModel

from ..domain.errors import SinkClosedError
from ..domain.stream_models import is_terminal
from ..observability.metrics import STREAM_FRAMES

LOG = logging.getLogger("thinkstream.stream")

CLOSE_GRACE_SECONDS = float(os.getenv("THINKSTREAM_STREAM_CLOSE_GRACE_SECONDS", "0.1"))

T = TypeVar("T")
_DONE = object()
_EOF = object()


def format_sse(payload: Dict[str, Any]) -> str:
    return f"data: {json.dumps(payload)}\n\n"


async def iter_in_thread(it: Iterable[T]) -> AsyncIterator[T]:
    """Drive a blocking iterator from the event loop, one ``next()`` per worker hop."""
    iterator = iter(it)
    while True:
        item = await asyncio.to_thread(next, iterator, _DONE)
        if item is _DONE:
            return
        yield item


class FrameSink(Protocol):
    async def write(self, data: str) -> None: ...

    async def close(self) -> None: ...


class QueueSink:
    """In-memory sink bridging a :class:`StreamEmitter` to a response body iterator."""

    def __init__(self) -> None:
        self._queue: asyncio.Queue = asyncio.Queue()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def write(self, data: str) -> None:
        if self._closed:
            raise SinkClosedError("sink is closed")
        await self._queue.put(data)

    async def close(self) -> None:
        if self._closed:
            raise SinkClosedError("sink already closed")
        self._closed = True
        await self._queue.put(_EOF)

    def detach(self) -> None:
        # Reader went away; later writes must fail rather than pile up.
        self._closed = True

    async def __aiter__(self) -> AsyncIterator[str]:
        while True:
            item = await self._queue.get()
            if item is _EOF:
                return
            yield item


class StreamEmitter:
    """Safe event emission over a single sink.

    At most one terminal frame (``complete`` or ``error``) is ever written;
    anything emitted afterwards is dropped silently. A failed write marks the
    emitter closed for good. :meth:`close` is idempotent and defers the actual
    sink teardown by ``close_delay`` so frames written just before it can land.
    """

    def __init__(self, sink: FrameSink, close_delay: Optional[float] = None) -> None:
        self._sink = sink
        self._close_delay = CLOSE_GRACE_SECONDS if close_delay is None else max(0.0, close_delay)
        self._complete = False
        self._closed = False
        self._close_task: Optional[asyncio.Task] = None

    @property
    def complete(self) -> bool:
        return self._complete

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def accepting(self) -> bool:
        return not (self._complete or self._closed)

    async def emit(self, event: BaseModel) -> bool:
        """Write one event frame. Returns False when the frame was dropped."""
        if not self.accepting:
            return False
        if is_terminal(event):
            # Flip before awaiting so a concurrent emit cannot slip a second terminal frame in.
            self._complete = True
        event_type = getattr(event, "type", "unknown")
        try:
            await self._sink.write(format_sse(event.model_dump()))
        except Exception as exc:
            LOG.warning("stream_write_failed", extra={"event_type": event_type, "err": str(exc)})
            self._closed = True
            return False
        STREAM_FRAMES.labels(type=event_type).inc()
        return True

    def cancel(self) -> None:
        """Stop accepting frames; already written frames may still flush."""
        self._complete = True

    def schedule_close(self) -> asyncio.Task:
        self._complete = True
        if self._close_task is None:
            self._close_task = asyncio.ensure_future(self._deferred_close())
        return self._close_task

    async def close(self) -> None:
        await asyncio.shield(self.schedule_close())

    async def _deferred_close(self) -> None:
        if self._close_delay:
            await asyncio.sleep(self._close_delay)
        if self._closed:
            return
        self._closed = True
        try:
            await self._sink.close()
        except Exception as exc:
            LOG.info("sink_already_closed", extra={"err": str(exc)})
