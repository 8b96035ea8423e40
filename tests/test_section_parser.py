from src.thinkstream.core.section_parser import (
    Phase,
    extract_answer,
    extract_thinking_steps,
    parse_sections,
)


SAMPLE = "THINKING:\n- A\n- B\nANSWER:\nHello world"


def test_parse_full_transcript():
    parsed = parse_sections(SAMPLE)
    assert parsed.phase is Phase.ANSWER
    assert parsed.steps == ("A", "B")
    assert parsed.answer_text == "Hello world"


def test_parse_is_idempotent():
    assert parse_sections(SAMPLE) == parse_sections(SAMPLE)


def test_thinking_only_until_marker():
    parsed = parse_sections("THINKING:\n- A\n- B\n")
    assert parsed.phase is Phase.THINKING
    assert parsed.steps == ("A", "B")
    assert parsed.answer_text == ""


def test_unterminated_line_is_not_yet_a_step():
    assert extract_thinking_steps("THINKING:\n- A\n- Partial ste") == ["A"]


def test_steps_form_a_prefix_across_every_prefix():
    previous = []
    for end in range(len(SAMPLE) + 1):
        steps = extract_thinking_steps(SAMPLE[:end])
        assert steps[: len(previous)] == previous, SAMPLE[:end]
        previous = steps
    assert previous == ["A", "B"]


def test_answer_phase_persists_once_marker_seen():
    seen_answer = False
    for end in range(len(SAMPLE) + 1):
        phase = parse_sections(SAMPLE[:end]).phase
        if seen_answer:
            assert phase is Phase.ANSWER
        seen_answer = seen_answer or phase is Phase.ANSWER
    assert seen_answer


def test_marker_split_across_chunks():
    buffer = ""
    phases = []
    for chunk in ["THINKING:\n- A\nANS", "WER:", " Hi"]:
        buffer += chunk
        phases.append(parse_sections(buffer).phase)
    assert phases == [Phase.THINKING, Phase.ANSWER, Phase.ANSWER]
    assert parse_sections(buffer).answer_text == "Hi"


def test_no_markers_at_all():
    parsed = parse_sections("Just some plain text")
    assert parsed.phase is Phase.THINKING
    assert parsed.steps == ()
    assert parsed.answer_text == ""


def test_non_dash_lines_are_ignored():
    text = "THINKING:\nsome preamble\n- real step\n  -  padded step  \n\nANSWER: x"
    assert extract_thinking_steps(text) == ["real step", "padded step"]


def test_answer_keeps_second_marker_text():
    assert extract_answer("ANSWER: first ANSWER: second") == "first ANSWER: second"


def test_step_on_marker_line():
    assert extract_thinking_steps("THINKING: - inline\n- next\nANSWER:") == ["inline", "next"]


def test_empty_input():
    parsed = parse_sections("")
    assert parsed.phase is Phase.THINKING
    assert parsed.steps == ()
