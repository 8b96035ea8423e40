"""Incremental THINKING/ANSWER section parsing over an accumulated transcript.

The upstream model is prompted to reply as::

    THINKING:
    - first consideration
    - second consideration
    ANSWER:
    The final answer.

Callers re-run :func:`parse_sections` against the whole accumulated buffer on
every incoming unit, so a marker split across two chunks is still found. The
answer text is always the complete current answer, never a delta.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import List, Tuple

THINKING_MARKER = "THINKING:"
ANSWER_MARKER = "ANSWER:"


class Phase(str, Enum):
    THINKING = "thinking"
    ANSWER = "answer"


@dataclass(frozen=True)
class ParsedSection:
    phase: Phase
    steps: Tuple[str, ...]
    answer_text: str = ""


def _step_from_line(line: str) -> str:
    stripped = line.strip()
    if stripped.startswith(THINKING_MARKER):
        stripped = stripped[len(THINKING_MARKER):].strip()
    if not stripped.startswith("-"):
        return ""
    return stripped[1:].strip()


def extract_thinking_steps(text: str) -> List[str]:
    """Return the dash-prefixed reasoning steps found before the answer marker.

    Until the answer marker shows up, the trailing line is still being written
    and is left out; a step is only reported once its line is terminated, so a
    reported step never changes as more text arrives.
    """
    section, marker, _ = text.partition(ANSWER_MARKER)
    lines = section.split("\n")
    if not marker:
        lines = lines[:-1]
    steps: List[str] = []
    for line in lines:
        step = _step_from_line(line)
        if step:
            steps.append(step)
    return steps


def extract_answer(text: str) -> str:
    _, marker, answer = text.partition(ANSWER_MARKER)
    return answer.strip() if marker else ""


def parse_sections(text: str) -> ParsedSection:
    text = text or ""
    steps = tuple(extract_thinking_steps(text))
    if ANSWER_MARKER in text:
        return ParsedSection(phase=Phase.ANSWER, steps=steps, answer_text=extract_answer(text))
    return ParsedSection(phase=Phase.THINKING, steps=steps)
