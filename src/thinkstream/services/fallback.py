from __future__ import annotations

import os
from typing import Callable, List

AnswerStrategy = Callable[[str], str]

FALLBACK_STEP_SECONDS = float(os.getenv("THINKSTREAM_FALLBACK_STEP_SECONDS", "0.8"))

FALLBACK_THINKING_STEPS: List[str] = [
    "Breaking down the question into key components...",
    "Analyzing different perspectives on this topic...",
    "Considering relevant examples and case studies...",
    "Evaluating the strengths and weaknesses of each approach...",
    "Looking for connections between different concepts...",
    "Reviewing potential counterarguments...",
    "Synthesizing information from multiple sources...",
    "Formulating a comprehensive response...",
    "Double-checking reasoning for logical consistency...",
    "Preparing final answer with clear explanations...",
]


def build_fallback_steps(question: str) -> List[str]:
    return [
        f'Analyzing the question: "{question}"',
        *FALLBACK_THINKING_STEPS[:6],
        f"Considering specific aspects related to: {question}",
        *FALLBACK_THINKING_STEPS[6:],
    ]


def keyword_fallback_answer(question: str) -> str:
    """Canned answer picked by keyword match against the question."""
    lowered = (question or "").lower()

    if "programming" in lowered or "coding" in lowered:
        return (
            f'For programming-related questions like "{question}", I recommend considering factors like: '
            "learning curve, community support, job market demand, and your specific goals. Popular "
            "beginner-friendly options include Python for general programming, JavaScript for web "
            "development, or Java for enterprise applications."
        )

    if "ai" in lowered or "machine learning" in lowered:
        return (
            f'Regarding "{question}", AI is a rapidly evolving field with applications in automation, '
            "data analysis, and decision-making. Key considerations include understanding the "
            "technology's capabilities, limitations, ethical implications, and practical implementation "
            "strategies."
        )

    if "career" in lowered or "job" in lowered:
        return (
            f'For career questions like "{question}", success typically involves continuous learning, '
            "networking, skill development, and adapting to market changes. Consider your interests, "
            "strengths, market demand, and long-term goals when making career decisions."
        )

    return (
        f'Thank you for asking "{question}". Based on my analysis, I\'ve considered multiple perspectives '
        "and approaches. The key insights are: 1) Context and specifics matter greatly, 2) There are often "
        "multiple valid approaches, and 3) The best solution depends on your particular circumstances and goals."
    )
