# exam_core/engine.py
from __future__ import annotations
import copy
import logging
import threading
import uuid
from typing import Callable, Dict, List, Optional, Tuple

from .config import FLAG_LOG_ASYNC, FORCE_COMPLETE_AFTER_FLAGS, GRADING_TIMEOUT_S
from .countdown import CountdownController
from .errors import (
    AssignmentConflict,
    InvalidExam,
    InvalidState,
    InvalidTransition,
    KindMismatch,
    SessionClosed,
    UnknownExam,
    UnknownQuestion,
    UnknownSession,
)
from .llm_bridge import GradingCollaborator, HeuristicGrader
from .proctoring import FlagSink, LoggingFlagSink, ProctoringFlagAggregator
from .reporting import audit_view
from .scheduler import Scheduler, SystemScheduler, utc_datetime
from .scoring import ScoringEngine
from .types import (
    TRIGGERS,
    Answer,
    CompletionTrigger,
    Exam,
    ExamSession,
    MultipleChoiceAnswer,
    ProctoringFlag,
    ScoreResult,
    blank_answer,
)
from .validators import validate_exam


log = logging.getLogger(__name__)


class ExamSessionStateMachine:
    """Owns one session: ``pending -> in_progress -> completed``, nothing else.

    Every mutating operation runs under this session's lock. Completion
    claims the session under the lock (status check, countdown cancel, flag
    freeze), scores with the lock released, then takes the lock again to
    store the verdict and flip the status. A timer expiry racing a manual
    submit therefore scores the session once and the loser gets
    ``InvalidState``; answers and flags arriving while grading runs are
    rejected at once instead of waiting.
    """

    def __init__(
        self,
        session: ExamSession,
        exam: Exam,
        scoring: ScoringEngine,
        scheduler: Optional[Scheduler] = None,
        aggregator: Optional[ProctoringFlagAggregator] = None,
        max_flags: int = FORCE_COMPLETE_AFTER_FLAGS,
    ):
        validate_exam(exam)
        if session.exam_id != exam.id:
            raise InvalidExam(f"session {session.id} belongs to exam {session.exam_id!r}, not {exam.id!r}")
        self.session = session
        self.exam = exam
        self.scoring = scoring
        self.scheduler: Scheduler = scheduler or SystemScheduler()
        self.aggregator = aggregator or ProctoringFlagAggregator(sink=LoggingFlagSink(session.id))
        self.max_flags = max(0, int(max_flags or 0))
        self.audit_events: List[Dict[str, object]] = []
        self.last_result: Optional[ScoreResult] = None
        self._lock = threading.Lock()
        self._countdown: Optional[CountdownController] = None
        self._flags_frozen = session.status == "completed"
        self._completing = False

    # ---- helpers ----
    def _audit(self, event: str, **fields: object) -> None:
        record: Dict[str, object] = {
            "t": utc_datetime(self.scheduler.now()).isoformat(),
            "session_id": self.session.id,
            "event": event,
        }
        record.update({k: v for k, v in fields.items() if v is not None})
        self.audit_events.append(record)

    def _status_label(self) -> str:
        return "completing" if self._completing else self.session.status

    def _snapshot(self) -> ExamSession:
        return copy.deepcopy(self.session)

    def snapshot(self) -> ExamSession:
        with self._lock:
            return self._snapshot()

    def audit_trail(self) -> List[Dict[str, object]]:
        with self._lock:
            return [dict(e) for e in self.audit_events]

    @property
    def countdown(self) -> Optional[CountdownController]:
        return self._countdown

    def remaining_seconds(self) -> int:
        if self._countdown is not None:
            return 0 if self.session.status == "completed" else self._countdown.remaining
        if self.session.status == "pending":
            return self.exam.time_limit_minutes * 60
        return 0

    # ---- transitions ----
    def start(self) -> ExamSession:
        with self._lock:
            if self.session.status != "pending":
                raise InvalidTransition(
                    f"cannot start session {self.session.id}: status is {self.session.status}"
                )
            countdown = CountdownController(
                self.scheduler, self.exam.time_limit_minutes * 60, self._on_expire
            )
            self.session.answers = {q.id: blank_answer(q) for q in self.exam.questions}
            self.session.started_at = utc_datetime(self.scheduler.now())
            self.session.status = "in_progress"
            self._countdown = countdown
            countdown.start()
            self._audit("start_exam", detail=f"time_limit={self.exam.time_limit_minutes}m")
            log.info("session %s started exam=%s candidate=%s",
                     self.session.id, self.exam.id, self.session.candidate_id)
            return self._snapshot()

    def record_answer(self, answer: Answer) -> ExamSession:
        with self._lock:
            if self.session.status != "in_progress" or self._completing:
                raise InvalidState(
                    f"cannot record answer for session {self.session.id}: status is {self._status_label()}"
                )
            question = self.exam.question(answer.question_id)
            if question is None:
                raise UnknownQuestion(f"question {answer.question_id!r} is not part of exam {self.exam.id!r}")
            if answer.kind != question.kind:
                raise KindMismatch(
                    f"question {question.id!r} is {question.kind}, answer is {answer.kind}"
                )
            if isinstance(answer, MultipleChoiceAnswer):
                sel = answer.selected_option_index
                if sel is not None and (isinstance(sel, bool) or not isinstance(sel, int)):
                    raise KindMismatch(f"selected_option_index must be an integer or None, got {sel!r}")
            self.session.answers[question.id] = copy.copy(answer)
            self._audit("answer_recorded", question_id=question.id)
            return self._snapshot()

    def complete(self, trigger: CompletionTrigger) -> ExamSession:
        if trigger not in TRIGGERS:
            raise ValueError(f"unknown completion trigger {trigger!r}")
        with self._lock:
            if self.session.status != "in_progress" or self._completing:
                raise InvalidState(
                    f"cannot complete session {self.session.id}: status is {self._status_label()}"
                )
            self._completing = True
            if self._countdown is not None:
                self._countdown.cancel()
            self._flags_frozen = True
            self.session.completed_at = utc_datetime(self.scheduler.now())
            answers = copy.deepcopy(self.session.answers)

        # scoring may wait on the grader; the session stays readable meanwhile
        result = self.scoring.score(self.exam, answers)

        with self._lock:
            self.session.score = result.score
            self.session.passed = result.passed
            self.session.trigger = trigger
            self.session.status = "completed"
            self.last_result = result
            for d in result.degraded:
                self._audit("grading_degraded", question_id=d.question_id, detail=f"{d.reason}: {d.detail}")
            self._audit("complete_exam", trigger=trigger,
                        detail=f"score={result.score} passed={result.passed}")
            log.info("session %s completed trigger=%s score=%s passed=%s degraded=%d",
                     self.session.id, trigger, result.score, result.passed, len(result.degraded))
            return self._snapshot()

    def _on_expire(self) -> None:
        try:
            self.complete("timeout")
        except InvalidTransition:
            log.debug("session %s: expiry lost the race to another completion", self.session.id)

    def observe_flag(self, flag: ProctoringFlag) -> Optional[ProctoringFlag]:
        force = False
        with self._lock:
            if self._flags_frozen:
                self._audit("flag_rejected", flag_type=flag.type, detail=f"ts={flag.timestamp}")
                raise SessionClosed(f"session {self.session.id} is closed to proctoring flags")
            if self.session.status != "in_progress":
                raise InvalidState(
                    f"cannot observe flags for session {self.session.id}: status is {self.session.status}"
                )
            accepted = self.aggregator.observe(self.session.flags, flag)
            if accepted is None:
                self._audit("flag_suppressed", flag_type=flag.type, detail=f"ts={flag.timestamp}")
            else:
                self._audit("flag_accepted", flag_type=flag.type, detail=flag.details)
                force = bool(self.max_flags) and len(self.session.flags) >= self.max_flags
        if force:
            log.warning("session %s reached %d integrity flags; forcing completion",
                        self.session.id, self.max_flags)
            try:
                self.complete("forced")
            except InvalidTransition:
                log.debug("session %s: forced completion lost the race", self.session.id)
        return accepted


class SessionRegistry:
    """Exposed surface keyed by session id.

    The registry lock only guards the id -> machine map; session operations
    run under the owning machine's lock so sessions never contend.
    """

    def __init__(
        self,
        grader: Optional[GradingCollaborator] = None,
        scheduler: Optional[Scheduler] = None,
        grading_timeout: float = GRADING_TIMEOUT_S,
        flag_sink_factory: Optional[Callable[[str], FlagSink]] = None,
        async_flag_sink: bool = FLAG_LOG_ASYNC,
        max_flags: int = FORCE_COMPLETE_AFTER_FLAGS,
    ):
        self.scheduler: Scheduler = scheduler or SystemScheduler()
        self.scoring = ScoringEngine(grader or HeuristicGrader(), timeout=grading_timeout)
        self.flag_sink_factory = flag_sink_factory or LoggingFlagSink
        self.async_flag_sink = async_flag_sink
        self.max_flags = max_flags
        self._exams: Dict[str, Exam] = {}
        self._machines: Dict[str, ExamSessionStateMachine] = {}
        self._lock = threading.Lock()

    def register_exam(self, exam: Exam) -> Exam:
        validate_exam(exam)
        with self._lock:
            self._exams[exam.id] = exam
        return exam

    def get_exam(self, exam_id: str) -> Exam:
        with self._lock:
            exam = self._exams.get(exam_id)
        if exam is None:
            raise UnknownExam(f"exam {exam_id!r} not found")
        return exam

    def add(self, session: ExamSession) -> ExamSession:
        """Adopt a session created by the assignment collaborator."""
        exam = self.get_exam(session.exam_id)
        machine = ExamSessionStateMachine(
            session,
            exam,
            self.scoring,
            scheduler=self.scheduler,
            aggregator=ProctoringFlagAggregator(
                sink=self.flag_sink_factory(session.id), async_sink=self.async_flag_sink
            ),
            max_flags=self.max_flags,
        )
        with self._lock:
            if session.id in self._machines:
                raise AssignmentConflict(f"session {session.id} already registered")
            for m in self._machines.values():
                s = m.session
                if (s.candidate_id, s.exam_id) == (session.candidate_id, session.exam_id) \
                        and s.status != "completed":
                    raise AssignmentConflict(
                        f"candidate {session.candidate_id} already has an open session for exam {session.exam_id}"
                    )
            self._machines[session.id] = machine
        return machine.snapshot()

    def assign(self, candidate_id: str, exam_id: str, session_id: Optional[str] = None) -> ExamSession:
        return self.add(ExamSession(id=session_id or str(uuid.uuid4()),
                                    candidate_id=candidate_id, exam_id=exam_id))

    def machine(self, session_id: str) -> ExamSessionStateMachine:
        with self._lock:
            m = self._machines.get(session_id)
        if m is None:
            raise UnknownSession(f"session {session_id!r} not found")
        return m

    def get(self, session_id: str) -> ExamSession:
        return self.machine(session_id).snapshot()

    def audit(self, session_id: str) -> Dict[str, object]:
        m = self.machine(session_id)
        return audit_view(m.snapshot(), m.last_result, m.audit_trail())

    def start(self, session_id: str) -> ExamSession:
        return self.machine(session_id).start()

    def record_answer(self, session_id: str, answer: Answer) -> ExamSession:
        return self.machine(session_id).record_answer(answer)

    def complete(self, session_id: str, trigger: CompletionTrigger = "manual_submit") -> ExamSession:
        return self.machine(session_id).complete(trigger)

    def observe_flag(self, session_id: str, flag: ProctoringFlag) -> Tuple[Optional[ProctoringFlag], ExamSession]:
        m = self.machine(session_id)
        accepted = m.observe_flag(flag)
        return accepted, m.snapshot()
