from __future__ import annotations

import json
import logging
from typing import Dict, List

from .engine import SessionRegistry
from .llm_bridge import HeuristicGrader
from .reporting import audit_view, candidate_view
from .scheduler import ManualScheduler
from .sensors import flag_from_face_sample, flag_from_visibility
from .types import (
    Exam,
    MultipleChoiceAnswer,
    MultipleChoiceQuestion,
    OpenEndedAnswer,
    OpenEndedQuestion,
    Question,
)


def _configure_logging() -> None:
    logging.basicConfig(level=logging.INFO, format="[%(levelname)s] %(name)s: %(message)s")


def synthetic_exam(mcq: int = 4, open_ended: int = 1, time_limit_minutes: int = 1) -> Exam:
    questions: List[Question] = []
    for idx in range(mcq):
        questions.append(
            MultipleChoiceQuestion(
                id=f"smoke_mcq_{idx}",
                text=f"Smoke MCQ #{idx}",
                options=("A", "B", "C", "D"),
                correct_answer_index=idx % 4,
            )
        )
    for idx in range(open_ended):
        questions.append(
            OpenEndedQuestion(id=f"smoke_open_{idx}", text="Describe how you would debug a slow API endpoint")
        )
    return Exam(
        id="smoke_exam",
        title="Smoke exam",
        questions=tuple(questions),
        pass_mark=60,
        time_limit_minutes=time_limit_minutes,
        job_role="Backend Engineer",
    )


_OPEN_TEXT = (
    "First I would measure latency per endpoint, then profile the slow path. For example we "
    "found an N+1 query; therefore we added an index and cached the result, which cut p95 latency by 40%."
)


def run_smoke_session(submit: bool = True) -> Dict[str, object]:
    """Drive one session on virtual time; returns the audit view."""
    _configure_logging()
    scheduler = ManualScheduler(start=1_700_000_000.0)
    registry = SessionRegistry(grader=HeuristicGrader(), scheduler=scheduler, async_flag_sink=False)
    exam = registry.register_exam(synthetic_exam())
    session = registry.assign("smoke_candidate", exam.id)
    registry.start(session.id)
    logging.info("Started %s with %ss on the clock", session.id, exam.time_limit_minutes * 60)

    for q in exam.questions:
        if isinstance(q, MultipleChoiceQuestion):
            registry.record_answer(session.id, MultipleChoiceAnswer(q.id, q.correct_answer_index))
        else:
            registry.record_answer(session.id, OpenEndedAnswer(q.id, _OPEN_TEXT))

    # one sample per second; the second no_face lands inside the suppression window
    for second, faces in enumerate([1, 0, 0, 2, 1, 1, 1, 0]):
        scheduler.advance(1)
        flag = flag_from_face_sample(faces, int(scheduler.now() * 1000))
        if flag is not None:
            registry.observe_flag(session.id, flag)
    tab = flag_from_visibility(True, int(scheduler.now() * 1000))
    if tab is not None:
        registry.observe_flag(session.id, tab)

    machine = registry.machine(session.id)
    logging.info("Remaining time %s", machine.countdown.format_mmss() if machine.countdown else "--:--")
    if submit:
        registry.complete(session.id, "manual_submit")
    else:
        scheduler.advance(exam.time_limit_minutes * 60)

    final = registry.get(session.id)
    logging.info("Candidate result: %s", json.dumps(candidate_view(final)))
    view = audit_view(final, machine.last_result, machine.audit_trail())
    logging.info("Flags accepted: %s", view["flag_summary"])
    return view


if __name__ == "__main__":  # pragma: no cover
    run_smoke_session()
