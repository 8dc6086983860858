from __future__ import annotations
from typing import Any, Dict, Mapping

from .config import DEFAULT_PASS_MARK, DEFAULT_TIME_LIMIT_MINUTES
from .errors import InvalidExam, InvalidFlag, KindMismatch
from .types import (
    Answer,
    Exam,
    MultipleChoiceAnswer,
    MultipleChoiceQuestion,
    OpenEndedAnswer,
    OpenEndedQuestion,
    ProctoringFlag,
    Question,
)


def _is_int(v: Any) -> bool:
    return isinstance(v, int) and not isinstance(v, bool)


def validate_exam(exam: Exam) -> Exam:
    """Raise InvalidExam unless the exam can be run and scored."""
    if not exam.questions:
        raise InvalidExam(f"exam {exam.id!r} has no questions")
    if not _is_int(exam.pass_mark) or not 0 <= exam.pass_mark <= 100:
        raise InvalidExam(f"pass mark must be an integer in 0..100, got {exam.pass_mark!r}")
    if not _is_int(exam.time_limit_minutes) or exam.time_limit_minutes <= 0:
        raise InvalidExam(f"time limit must be a positive integer, got {exam.time_limit_minutes!r}")
    seen: set[str] = set()
    for q in exam.questions:
        if q.id in seen:
            raise InvalidExam(f"duplicate question id {q.id!r}")
        seen.add(q.id)
        if isinstance(q, MultipleChoiceQuestion):
            if not q.options:
                raise InvalidExam(f"question {q.id!r} has no options")
            idx = q.correct_answer_index
            if not _is_int(idx) or not 0 <= idx < len(q.options):
                raise InvalidExam(f"question {q.id!r} has no valid correct answer index")
        elif not isinstance(q, OpenEndedQuestion):
            raise InvalidExam(f"question {getattr(q, 'id', '?')!r} has unsupported kind")
    return exam


def parse_question(payload: Mapping[str, Any]) -> Question:
    kind = str(payload.get("kind") or payload.get("type") or "")
    qid = payload.get("id")
    if not isinstance(qid, str) or not qid:
        raise InvalidExam("question id must be a non-empty string")
    text = str(payload.get("text") or "")
    if kind == "multiple_choice":
        options = payload.get("options") or []
        idx = payload.get("correct_answer_index", payload.get("correctAnswer"))
        if not _is_int(idx):
            raise InvalidExam(f"question {qid!r} has no valid correct answer index")
        return MultipleChoiceQuestion(
            id=qid, text=text, options=tuple(str(o) for o in options), correct_answer_index=idx
        )
    if kind == "open_ended":
        return OpenEndedQuestion(id=qid, text=text)
    raise InvalidExam(f"question {qid!r} has unknown kind {kind!r}")


def parse_exam(payload: Mapping[str, Any]) -> Exam:
    """Build a validated Exam from a JSON-like mapping."""
    questions = payload.get("questions")
    if not isinstance(questions, (list, tuple)):
        raise InvalidExam("questions must be a list")
    exam = Exam(
        id=str(payload.get("id") or ""),
        title=str(payload.get("title") or ""),
        questions=tuple(parse_question(q) for q in questions),
        pass_mark=payload.get("pass_mark", DEFAULT_PASS_MARK),
        time_limit_minutes=payload.get("time_limit_minutes", DEFAULT_TIME_LIMIT_MINUTES),
        job_role=payload.get("job_role"),
    )
    if not exam.id:
        raise InvalidExam("exam id is required")
    return validate_exam(exam)


def parse_answer(payload: Mapping[str, Any]) -> Answer:
    kind = str(payload.get("kind") or "")
    qid = str(payload.get("question_id") or "")
    if kind == "multiple_choice":
        sel = payload.get("selected_option_index")
        if sel is not None and not _is_int(sel):
            raise KindMismatch(f"selected_option_index must be an integer or null, got {sel!r}")
        return MultipleChoiceAnswer(question_id=qid, selected_option_index=sel)
    if kind == "open_ended":
        text = payload.get("text")
        if text is not None and not isinstance(text, str):
            raise KindMismatch("open-ended answer text must be a string")
        return OpenEndedAnswer(question_id=qid, text=text or "")
    raise KindMismatch(f"unknown answer kind {kind!r}")


def parse_flag(payload: Mapping[str, Any]) -> ProctoringFlag:
    ts = payload.get("timestamp")
    if not _is_int(ts):
        raise InvalidFlag(f"flag timestamp must be integer milliseconds, got {ts!r}")
    details = payload.get("details")
    return ProctoringFlag(
        timestamp=ts, type=payload.get("type"), details=None if details is None else str(details)
    )


def exam_to_dict(exam: Exam) -> Dict[str, Any]:
    out: Dict[str, Any] = {
        "id": exam.id,
        "title": exam.title,
        "pass_mark": exam.pass_mark,
        "time_limit_minutes": exam.time_limit_minutes,
        "job_role": exam.job_role,
        "questions": [],
    }
    for q in exam.questions:
        row: Dict[str, Any] = {"id": q.id, "kind": q.kind, "text": q.text}
        if isinstance(q, MultipleChoiceQuestion):
            row["options"] = list(q.options)
            row["correct_answer_index"] = q.correct_answer_index
        out["questions"].append(row)
    return out
