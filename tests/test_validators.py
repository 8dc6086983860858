from __future__ import annotations

import pytest

from exam_core.errors import InvalidExam, InvalidFlag, KindMismatch
from exam_core.types import MultipleChoiceAnswer, MultipleChoiceQuestion, OpenEndedAnswer, OpenEndedQuestion
from exam_core.validators import parse_answer, parse_exam, parse_flag, validate_exam

from tests.conftest import build_exam


def _payload(**overrides):
    base = {
        "id": "ex-1",
        "title": "Backend screen",
        "job_role": "Backend Engineer",
        "questions": [
            {"id": "q1", "kind": "multiple_choice", "text": "2+2?", "options": ["3", "4"], "correct_answer_index": 1},
            {"id": "q2", "kind": "open_ended", "text": "Explain indexes"},
        ],
    }
    base.update(overrides)
    return base


def test_parse_exam_applies_defaults():
    exam = parse_exam(_payload())
    assert exam.pass_mark == 70
    assert exam.time_limit_minutes == 45
    assert isinstance(exam.questions[0], MultipleChoiceQuestion)
    assert isinstance(exam.questions[1], OpenEndedQuestion)
    assert exam.question("q1").options == ("3", "4")
    assert exam.question("missing") is None


def test_parse_exam_accepts_legacy_question_keys():
    exam = parse_exam(_payload(questions=[
        {"id": "q1", "type": "multiple_choice", "text": "?", "options": ["a", "b"], "correctAnswer": 0},
    ]))
    assert exam.questions[0].correct_answer_index == 0


@pytest.mark.parametrize("overrides", [
    {"questions": []},
    {"pass_mark": 101},
    {"pass_mark": True},
    {"time_limit_minutes": 0},
    {"id": ""},
    {"questions": [{"id": "q1", "kind": "essay", "text": "?"}]},
    {"questions": [{"id": "q1", "kind": "multiple_choice", "text": "?", "options": [], "correct_answer_index": 0}]},
    {"questions": [{"id": "q1", "kind": "multiple_choice", "text": "?", "options": ["a"], "correct_answer_index": 1}]},
    {"questions": [{"id": "q1", "kind": "open_ended", "text": "a"}, {"id": "q1", "kind": "open_ended", "text": "b"}]},
])
def test_invalid_exams_are_rejected(overrides):
    with pytest.raises(InvalidExam):
        parse_exam(_payload(**overrides))


def test_validate_exam_returns_exam():
    exam = build_exam()
    assert validate_exam(exam) is exam


def test_parse_answer_kinds():
    mcq = parse_answer({"question_id": "q1", "kind": "multiple_choice", "selected_option_index": 1})
    blank = parse_answer({"question_id": "q1", "kind": "multiple_choice"})
    text = parse_answer({"question_id": "q2", "kind": "open_ended", "text": None})
    assert mcq == MultipleChoiceAnswer("q1", 1)
    assert blank.selected_option_index is None
    assert text == OpenEndedAnswer("q2", "")


@pytest.mark.parametrize("payload", [
    {"question_id": "q1", "kind": "true_false"},
    {"question_id": "q1", "kind": "multiple_choice", "selected_option_index": "1"},
    {"question_id": "q1", "kind": "multiple_choice", "selected_option_index": False},
    {"question_id": "q2", "kind": "open_ended", "text": 42},
])
def test_parse_answer_rejects_bad_shapes(payload):
    with pytest.raises(KindMismatch):
        parse_answer(payload)


def test_parse_flag():
    flag = parse_flag({"timestamp": 1_700_000_000_123, "type": "looking_away"})
    assert flag.type == "looking_away" and flag.details is None
    with pytest.raises(InvalidFlag):
        parse_flag({"timestamp": "soon", "type": "no_face"})
    with pytest.raises(InvalidFlag):
        parse_flag({"timestamp": 1, "type": "phone_detected"})
