from __future__ import annotations

import threading
import time
from typing import Any, Dict, List, Mapping, Optional, Sequence

import pytest

from exam_core.engine import ExamSessionStateMachine, SessionRegistry
from exam_core.llm_bridge import Grade
from exam_core.proctoring import ProctoringFlagAggregator
from exam_core.scheduler import ManualScheduler
from exam_core.scoring import ScoringEngine
from exam_core.types import (
    Exam,
    ExamSession,
    MultipleChoiceQuestion,
    OpenEndedQuestion,
    ProctoringFlag,
    Question,
)


def build_exam(
    *,
    correct: Sequence[int] = (0, 1, 2, 3),
    open_ended: int = 0,
    pass_mark: int = 70,
    time_limit_minutes: int = 1,
    exam_id: str = "exam-1",
    job_role: Optional[str] = "Data Engineer",
) -> Exam:
    """Deterministic exam: one 4-option MCQ per entry in ``correct``, then open-ended questions."""

    questions: List[Question] = []
    for idx, key in enumerate(correct):
        questions.append(
            MultipleChoiceQuestion(
                id=f"mcq_{idx}",
                text=f"MCQ #{idx}",
                options=("A", "B", "C", "D"),
                correct_answer_index=key,
            )
        )
    for idx in range(open_ended):
        questions.append(OpenEndedQuestion(id=f"open_{idx}", text=f"Explain topic #{idx}"))
    return Exam(
        id=exam_id,
        title="Synthetic exam",
        questions=tuple(questions),
        pass_mark=pass_mark,
        time_limit_minutes=time_limit_minutes,
        job_role=job_role,
    )


class FakeGrader:
    """Scripted grading collaborator.

    ``scores`` maps question text to a 0..100 grade; ``fail`` and ``block``
    name question texts that raise or wait on ``release``. ``delay`` makes
    every call take that many seconds.
    """

    def __init__(
        self,
        scores: Optional[Mapping[str, float]] = None,
        default: float = 100.0,
        fail: Sequence[str] = (),
        block: Sequence[str] = (),
        delay: float = 0.0,
    ) -> None:
        self.scores = dict(scores or {})
        self.default = default
        self.fail = set(fail)
        self.block = set(block)
        self.delay = delay
        self.release = threading.Event()
        self.calls: List[Dict[str, Any]] = []
        self._lock = threading.Lock()

    def grade(self, question_text: str, answer_text: str, context: Mapping[str, Any]) -> Grade:
        with self._lock:
            self.calls.append({"question": question_text, "answer": answer_text, "context": dict(context)})
        if self.delay:
            time.sleep(self.delay)
        if question_text in self.block:
            self.release.wait(timeout=5.0)
        if question_text in self.fail:
            raise RuntimeError("grader unavailable")
        return Grade(score=self.scores.get(question_text, self.default), feedback="ok")


class RecordingSink:
    def __init__(self) -> None:
        self.flags: List[ProctoringFlag] = []

    def __call__(self, flag: ProctoringFlag) -> None:
        self.flags.append(flag)


def build_machine(
    exam: Exam,
    grader: Any = None,
    scheduler: Optional[ManualScheduler] = None,
    sink: Any = None,
    timeout: float = 2.0,
    max_flags: int = 0,
) -> ExamSessionStateMachine:
    session = ExamSession(id="sess-1", candidate_id="cand-1", exam_id=exam.id)
    return ExamSessionStateMachine(
        session,
        exam,
        ScoringEngine(grader or FakeGrader(), timeout=timeout),
        scheduler=scheduler or ManualScheduler(),
        aggregator=ProctoringFlagAggregator(sink=sink or RecordingSink(), async_sink=False),
        max_flags=max_flags,
    )


@pytest.fixture
def scheduler() -> ManualScheduler:
    return ManualScheduler(start=1_700_000_000.0)


@pytest.fixture
def grader() -> FakeGrader:
    g = FakeGrader()
    yield g
    g.release.set()


@pytest.fixture
def registry(scheduler, grader) -> SessionRegistry:
    return SessionRegistry(grader=grader, scheduler=scheduler, grading_timeout=2.0, async_flag_sink=False)
