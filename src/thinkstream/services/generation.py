"""Generation driver: upstream tokens in, progressive stream events out.

States run ``INIT -> THINKING -> ANSWERING -> COMPLETE``. A failed
availability probe, or any exception while consuming the upstream stream,
switches the driver irrevocably to the deterministic fallback path.
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Optional

from ..core.section_parser import Phase, parse_sections
from ..domain.stream_models import CompleteEvent, StreamingEvent, thinking_event
from ..observability.metrics import FALLBACK_ACTIVATIONS
from .fallback import FALLBACK_STEP_SECONDS, AnswerStrategy, build_fallback_steps, keyword_fallback_answer
from .llm_client import TextGenerator, build_generation_messages
from .streaming import StreamEmitter, iter_in_thread

LOG = logging.getLogger("thinkstream.generation")


class DriverState(str, Enum):
    INIT = "init"
    THINKING = "thinking"
    ANSWERING = "answering"
    COMPLETE = "complete"
    FALLBACK = "fallback"
    CANCELLED = "cancelled"


class GenerationDriver:
    """Serves one question over one :class:`StreamEmitter`."""

    def __init__(
        self,
        upstream: Optional[TextGenerator],
        emitter: StreamEmitter,
        *,
        answer_strategy: AnswerStrategy = keyword_fallback_answer,
        fallback_interval: Optional[float] = None,
    ) -> None:
        self._upstream = upstream
        self._emitter = emitter
        self._answer_strategy = answer_strategy
        self._fallback_interval = FALLBACK_STEP_SECONDS if fallback_interval is None else max(0.0, fallback_interval)
        self._cancelled = asyncio.Event()
        self.state = DriverState.INIT
        self.accumulated = ""

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def cancel(self) -> None:
        if not self._cancelled.is_set():
            LOG.info("generation_cancelled", extra={"state": self.state.value})
        self._cancelled.set()
        self._emitter.cancel()
        self.state = DriverState.CANCELLED

    async def run(self, prompt: str) -> Optional[str]:
        """Stream the answer for ``prompt``; returns the final answer or None if cancelled."""
        if self.cancelled:
            return None
        if not await self._probe():
            LOG.info("upstream_unavailable_using_fallback")
            FALLBACK_ACTIVATIONS.labels(reason="unavailable").inc()
            return await self._run_fallback(prompt)
        try:
            return await self._run_primary(prompt)
        except Exception as exc:
            if self.cancelled:
                return None
            LOG.warning("upstream_stream_failed", extra={"err": str(exc), "state": self.state.value})
            FALLBACK_ACTIVATIONS.labels(reason="stream_failure").inc()
            return await self._run_fallback(prompt)

    async def _probe(self) -> bool:
        if self._upstream is None:
            return False
        try:
            return bool(await asyncio.to_thread(self._upstream.available))
        except Exception as exc:
            LOG.warning("upstream_probe_failed", extra={"err": str(exc)})
            return False

    async def _run_primary(self, prompt: str) -> Optional[str]:
        assert self._upstream is not None
        self.state = DriverState.THINKING
        self.accumulated = ""
        emitted_steps = 0
        units = self._upstream.stream(build_generation_messages(prompt))
        try:
            async for unit in iter_in_thread(units):
                if self.cancelled or self._emitter.closed:
                    return None
                piece = unit.get("token") if isinstance(unit, dict) else str(unit or "")
                if not piece:
                    continue
                self.accumulated += piece
                parsed = parse_sections(self.accumulated)
                if self.state is DriverState.THINKING:
                    if parsed.phase is Phase.ANSWER:
                        self.state = DriverState.ANSWERING
                        await self._emitter.emit(thinking_event(list(parsed.steps)))
                        await self._emitter.emit(StreamingEvent(answer=parsed.answer_text))
                    elif len(parsed.steps) > emitted_steps:
                        emitted_steps = len(parsed.steps)
                        await self._emitter.emit(thinking_event(list(parsed.steps)))
                else:
                    await self._emitter.emit(StreamingEvent(answer=parsed.answer_text))
        finally:
            close = getattr(units, "close", None)
            if callable(close):
                close()
        if self.cancelled:
            return None
        final = parse_sections(self.accumulated)
        answer = final.answer_text if final.phase is Phase.ANSWER else self.accumulated
        await self._emitter.emit(CompleteEvent(answer=answer))
        self.state = DriverState.COMPLETE
        return answer

    async def _run_fallback(self, prompt: str) -> Optional[str]:
        self.state = DriverState.FALLBACK
        steps = build_fallback_steps(prompt)
        for index in range(len(steps)):
            if self.cancelled:
                return None
            await self._emitter.emit(thinking_event(steps[: index + 1], step=index + 1, total=len(steps)))
            if await self._pause():
                return None
        answer = self._answer_strategy(prompt)
        await self._emitter.emit(CompleteEvent(answer=answer))
        self.state = DriverState.COMPLETE
        return answer

    async def _pause(self) -> bool:
        """Wait one pacing interval; True when cancellation arrived meanwhile."""
        if not self._fallback_interval:
            await asyncio.sleep(0)
            return self.cancelled
        try:
            await asyncio.wait_for(self._cancelled.wait(), timeout=self._fallback_interval)
        except asyncio.TimeoutError:
            return False
        return True
