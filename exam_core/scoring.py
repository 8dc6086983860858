from __future__ import annotations
import logging
import math
import time
from concurrent.futures import Future, ThreadPoolExecutor, TimeoutError as FutureTimeout
from typing import Any, Dict, List, Mapping, Optional, Tuple

from .config import GRADING_MAX_WORKERS, GRADING_TIMEOUT_S
from .errors import GradingFailure, GradingTimeout
from .llm_bridge import Grade, GradingCollaborator
from .types import (
    Answer,
    Exam,
    GradingDegradation,
    MultipleChoiceAnswer,
    MultipleChoiceQuestion,
    OpenEndedAnswer,
    OpenEndedQuestion,
    ScoreResult,
)

log = logging.getLogger(__name__)


def _clamp01(x: float) -> float:
    if x < 0.0: return 0.0
    if x > 1.0: return 1.0
    return x


def round_half_up(x: float) -> int:
    return int(math.floor(x + 0.5))


def grading_context(exam: Exam) -> Dict[str, Any]:
    return {"job_role": exam.job_role or "", "exam_title": exam.title}


def score_mcq(question: MultipleChoiceQuestion, answer: Optional[Answer]) -> float:
    if not isinstance(answer, MultipleChoiceAnswer) or answer.selected_option_index is None:
        return 0.0
    return 1.0 if answer.selected_option_index == question.correct_answer_index else 0.0


def normalize_grade(grade: Grade) -> float:
    raw = float(grade.score)
    if not math.isfinite(raw):
        raise GradingFailure(f"non-finite grade {grade.score!r}")
    return _clamp01(raw / 100.0)


def overall_score(sub_scores: List[float]) -> int:
    if not sub_scores:
        return 0
    return round_half_up(100.0 * sum(sub_scores) / len(sub_scores))


class ScoringEngine:
    """Pure scoring of ``(exam, answers)`` with open-ended grading delegated out.

    Open-ended questions are graded concurrently on up to ``max_workers``
    threads. Each call is bounded by ``timeout`` seconds counted from the
    moment that call starts, so time spent queued behind other questions
    does not count against it. A grader that errors or runs out of time
    yields a sub-score of 0 and an entry in ``ScoreResult.degraded``;
    scoring itself never fails because of the grader.
    """

    def __init__(
        self,
        grader: GradingCollaborator,
        timeout: float = GRADING_TIMEOUT_S,
        max_workers: int = GRADING_MAX_WORKERS,
    ) -> None:
        self.grader = grader
        self.timeout = float(timeout)
        self.max_workers = max(1, int(max_workers))

    def score(
        self,
        exam: Exam,
        answers: Mapping[str, Answer],
        context: Optional[Mapping[str, Any]] = None,
    ) -> ScoreResult:
        ctx = dict(context) if context is not None else grading_context(exam)
        open_qs = [q for q in exam.questions if isinstance(q, OpenEndedQuestion)]
        grades, degraded = self._grade_open(open_qs, answers, ctx)

        sub_scores: Dict[str, float] = {}
        feedback: Dict[str, str] = {}
        for q in exam.questions:
            if isinstance(q, MultipleChoiceQuestion):
                sub_scores[q.id] = score_mcq(q, answers.get(q.id))
            elif isinstance(q, OpenEndedQuestion):
                g = grades.get(q.id)
                sub_scores[q.id] = normalize_grade(g) if g is not None else 0.0
                if g is not None:
                    feedback[q.id] = g.feedback
            else:
                raise TypeError(f"unsupported question type: {type(q).__name__}")

        score = overall_score(list(sub_scores.values()))
        return ScoreResult(
            score=score,
            passed=score >= exam.pass_mark,
            sub_scores=sub_scores,
            degraded=degraded,
            feedback=feedback,
        )

    def _grade_open(
        self,
        questions: List[OpenEndedQuestion],
        answers: Mapping[str, Answer],
        ctx: Dict[str, Any],
    ) -> Tuple[Dict[str, Grade], List[GradingDegradation]]:
        grades: Dict[str, Grade] = {}
        degraded: List[GradingDegradation] = []
        if not questions:
            return grades, degraded

        workers = min(len(questions), self.max_workers)
        # every queued call gets a worker within one timeout per wave ahead of it
        waves = -(-len(questions) // workers)
        started: Dict[str, float] = {}

        def call(q: OpenEndedQuestion, text: str) -> Grade:
            started[q.id] = time.monotonic()
            return self.grader.grade(q.text, text, ctx)

        pool = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="grader")
        try:
            start_by = time.monotonic() + self.timeout * waves
            futures: List[Tuple[OpenEndedQuestion, Future]] = []
            for q in questions:
                ans = answers.get(q.id)
                text = ans.text if isinstance(ans, OpenEndedAnswer) else ""
                futures.append((q, pool.submit(call, q, text)))

            for q, fut in futures:
                try:
                    g = self._await(fut, q.id, started, start_by)
                    normalize_grade(g)
                    grades[q.id] = g
                except FutureTimeout:
                    fut.cancel()
                    err = GradingTimeout(f"grading exceeded {self.timeout:g}s")
                    degraded.append(GradingDegradation(q.id, "timeout", str(err)))
                    log.warning("grading timed out question=%s: %s", q.id, err)
                except Exception as exc:
                    err = exc if isinstance(exc, GradingFailure) else GradingFailure(str(exc))
                    degraded.append(GradingDegradation(q.id, "failure", str(err)))
                    log.warning("grading failed question=%s: %s", q.id, err)
        finally:
            # stragglers are abandoned, not joined
            pool.shutdown(wait=False, cancel_futures=True)
        return grades, degraded

    def _await(self, fut: Future, qid: str, started: Mapping[str, float], start_by: float) -> Grade:
        """Wait for one grading call; its own clock starts when the call does."""
        while True:
            begun = started.get(qid)
            deadline = begun + self.timeout if begun is not None else start_by
            try:
                return fut.result(timeout=max(0.0, deadline - time.monotonic()))
            except FutureTimeout:
                if begun is None and qid in started:
                    continue
                raise
