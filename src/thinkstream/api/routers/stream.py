from __future__ import annotations

import asyncio
import logging

from fastapi import APIRouter, Query
from fastapi.responses import StreamingResponse

from ...domain.stream_models import ErrorEvent
from ...services.generation import GenerationDriver
from ...services.llm_client import get_upstream
from ...services.streaming import QueueSink, StreamEmitter

router = APIRouter(tags=["stream"])

LOG = logging.getLogger("thinkstream.api")

DEFAULT_QUESTION = "general inquiry"

SSE_HEADERS = {
    "Cache-Control": "no-cache, no-transform",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


async def _drive(driver: GenerationDriver, emitter: StreamEmitter, question: str) -> None:
    try:
        await driver.run(question)
    except asyncio.CancelledError:
        raise
    except Exception as exc:
        LOG.exception("stream_driver_crashed", extra={"question": question})
        await emitter.emit(ErrorEvent(message=str(exc) or "Internal server error"))
    finally:
        await emitter.close()


@router.get("/stream")
async def stream_answer(question: str = Query(DEFAULT_QUESTION, max_length=4000)):
    """Server-sent events: cumulative ``thinking`` frames, then ``streaming`` answer frames, then ``complete``."""
    question = question.strip() or DEFAULT_QUESTION
    sink = QueueSink()
    emitter = StreamEmitter(sink)
    driver = GenerationDriver(get_upstream("generation"), emitter)
    LOG.info("stream_opened", extra={"question": question})
    task = asyncio.create_task(_drive(driver, emitter, question))

    async def event_stream():
        try:
            async for frame in sink:
                yield frame
            await task
        finally:
            if not sink.closed:
                # Reader left before the sink was closed.
                sink.detach()
                driver.cancel()
                LOG.info("stream_client_disconnected", extra={"question": question})

    return StreamingResponse(event_stream(), media_type="text/event-stream", headers=SSE_HEADERS)
