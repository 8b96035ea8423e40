from src.thinkstream.services.fallback import (
    FALLBACK_THINKING_STEPS,
    build_fallback_steps,
    keyword_fallback_answer,
)


def test_fallback_steps_mention_the_question():
    steps = build_fallback_steps("Why is the sky blue?")
    assert len(steps) == 12
    assert steps[0] == 'Analyzing the question: "Why is the sky blue?"'
    assert steps[7] == "Considering specific aspects related to: Why is the sky blue?"
    assert steps[1:7] == FALLBACK_THINKING_STEPS[:6]
    assert steps[8:] == FALLBACK_THINKING_STEPS[6:]


def test_keyword_answers():
    assert "Python for general programming" in keyword_fallback_answer("Which programming language?")
    assert "AI is a rapidly evolving field" in keyword_fallback_answer("Explain machine learning")
    assert "career decisions" in keyword_fallback_answer("How do I get a better job")


def test_generic_answer_quotes_question():
    answer = keyword_fallback_answer("Best pasta shape?")
    assert answer.startswith('Thank you for asking "Best pasta shape?"')


def test_programming_wins_over_career():
    assert "beginner-friendly" in keyword_fallback_answer("coding job")
