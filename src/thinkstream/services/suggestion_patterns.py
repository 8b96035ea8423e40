from __future__ import annotations

from typing import Dict, List, Optional, Tuple

from ..domain.suggestion_models import Suggestion


def _s(question: str, icon: str, confidence: float) -> Suggestion:
    return Suggestion(question=question, icon=icon, confidence=confidence)


INITIAL_SUGGESTIONS: Tuple[Suggestion, ...] = (
    _s("What's the best programming language for beginners?", "💻", 0.95),
    _s("How does machine learning work?", "🤖", 0.92),
    _s("How do I switch careers into tech?", "🔄", 0.90),
    _s("What are the most important tech trends?", "📈", 0.88),
)

DEFAULT_SUGGESTIONS: Tuple[Suggestion, ...] = (
    _s("Can you explain that in more detail?", "💡", 0.88),
    _s("What are some practical examples?", "🔍", 0.86),
    _s("Where can I learn more about this?", "📚", 0.84),
    _s("What are common mistakes to avoid?", "⚠️", 0.82),
)

# Checked in insertion order; the first topic whose keywords match wins.
TOPIC_PATTERNS: Dict[str, Dict[str, Tuple]] = {
    "programming": {
        "keywords": ("programming", "coding", "language", "python", "javascript", "java"),
        "suggestions": (
            _s("What frameworks should I learn for web development?", "🌐", 0.93),
            _s("How long does it take to become job-ready?", "⏱️", 0.91),
            _s("Should I focus on frontend or backend first?", "🎯", 0.89),
            _s("What are the best resources for learning to code?", "📚", 0.87),
        ),
    },
    "ai-ml": {
        "keywords": ("ai", "machine learning", "artificial intelligence", "neural", "model", "algorithm"),
        "suggestions": (
            _s("What math do I need to know for machine learning?", "📐", 0.94),
            _s("How can I build my first AI project?", "🛠️", 0.92),
            _s("What's the difference between supervised and unsupervised learning?", "🎓", 0.90),
            _s("Which AI tools are best for beginners?", "🔧", 0.88),
        ),
    },
    "career": {
        "keywords": ("career", "job", "work", "switch", "salary"),
        "suggestions": (
            _s("How do I build a strong tech portfolio?", "💼", 0.95),
            _s("What salary should I expect as a junior developer?", "💰", 0.91),
            _s("Is a computer science degree necessary?", "🎓", 0.89),
            _s("How important are certifications in tech?", "📜", 0.86),
        ),
    },
    "travel": {
        "keywords": ("travel", "trip", "country", "visit", "japan", "europe"),
        "suggestions": (
            _s("What are the must-see attractions?", "🗺️", 0.94),
            _s("How much should I budget for this trip?", "💰", 0.92),
            _s("What's the best time of year to visit?", "🌤️", 0.90),
            _s("Do I need a visa or special documents?", "📄", 0.88),
        ),
    },
    "photography": {
        "keywords": ("photography", "photo", "camera", "lens", "shoot"),
        "suggestions": (
            _s("What camera should I buy as a beginner?", "📷", 0.95),
            _s("How do I understand aperture and shutter speed?", "🔍", 0.92),
            _s("What editing software should I use?", "🎨", 0.89),
            _s("How do I take better portraits?", "👤", 0.87),
        ),
    },
    "health": {
        "keywords": ("health", "fitness", "exercise", "workout", "diet"),
        "suggestions": (
            _s("What's a good workout routine for beginners?", "💪", 0.94),
            _s("How do I stay motivated to exercise?", "🎯", 0.91),
            _s("What should I eat before and after workouts?", "🥗", 0.89),
            _s("How often should I exercise each week?", "📅", 0.87),
        ),
    },
    "learning": {
        "keywords": ("learn", "study", "course", "practice", "tutorial"),
        "suggestions": (
            _s("What's the best way to stay motivated while learning?", "💪", 0.93),
            _s("How many hours a day should I practice?", "⏰", 0.90),
            _s("Should I learn by building projects or taking courses?", "🔨", 0.88),
            _s("How do I overcome tutorial hell?", "🎯", 0.87),
        ),
    },
}


def _copies(suggestions: Tuple[Suggestion, ...]) -> List[Suggestion]:
    return [s.model_copy() for s in suggestions]


def initial_suggestions() -> List[Suggestion]:
    return _copies(INITIAL_SUGGESTIONS)


def match_topic(text: str) -> Optional[str]:
    lowered = (text or "").lower()
    for topic, pattern in TOPIC_PATTERNS.items():
        if any(keyword in lowered for keyword in pattern["keywords"]):
            return topic
    return None


def theme_based_suggestions(previous_question: str, previous_answer: Optional[str] = None) -> List[Suggestion]:
    topic = match_topic(f"{previous_question} {previous_answer or ''}")
    if topic is None:
        return _copies(DEFAULT_SUGGESTIONS)
    return _copies(TOPIC_PATTERNS[topic]["suggestions"])
