from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Literal, Tuple, Union

from .errors import InvalidFlag

QuestionKind = Literal["multiple_choice", "open_ended"]
SessionStatus = Literal["pending", "in_progress", "completed"]
CompletionTrigger = Literal["manual_submit", "timeout", "forced"]
FlagType = Literal["no_face", "multiple_faces", "looking_away", "tab_switch"]
DegradeReason = Literal["timeout", "failure"]

TRIGGERS: tuple[str, ...] = ("manual_submit", "timeout", "forced")
# looking_away is reserved: no sensor produces it yet.
FLAG_TYPES: tuple[str, ...] = ("no_face", "multiple_faces", "looking_away", "tab_switch")


@dataclass(frozen=True)
class MultipleChoiceQuestion:
    id: str; text: str
    options: Tuple[str, ...]
    correct_answer_index: int
    kind: QuestionKind = field(default="multiple_choice", init=False)


@dataclass(frozen=True)
class OpenEndedQuestion:
    id: str; text: str
    kind: QuestionKind = field(default="open_ended", init=False)


Question = Union[MultipleChoiceQuestion, OpenEndedQuestion]


@dataclass(frozen=True)
class Exam:
    id: str
    title: str
    questions: Tuple[Question, ...]
    pass_mark: int = 70
    time_limit_minutes: int = 45
    job_role: Optional[str] = None

    def question(self, question_id: str) -> Optional[Question]:
        for q in self.questions:
            if q.id == question_id:
                return q
        return None


@dataclass
class MultipleChoiceAnswer:
    question_id: str
    selected_option_index: Optional[int] = None
    kind: QuestionKind = field(default="multiple_choice", init=False)


@dataclass
class OpenEndedAnswer:
    question_id: str
    text: str = ""
    kind: QuestionKind = field(default="open_ended", init=False)


Answer = Union[MultipleChoiceAnswer, OpenEndedAnswer]


def blank_answer(question: Question) -> Answer:
    """Unanswered draft matching the question's kind."""
    if isinstance(question, MultipleChoiceQuestion):
        return MultipleChoiceAnswer(question_id=question.id)
    if isinstance(question, OpenEndedQuestion):
        return OpenEndedAnswer(question_id=question.id)
    raise TypeError(f"unsupported question type: {type(question).__name__}")


def is_unanswered(answer: Answer) -> bool:
    if isinstance(answer, MultipleChoiceAnswer):
        return answer.selected_option_index is None
    return not (answer.text or "").strip()


@dataclass(frozen=True)
class ProctoringFlag:
    timestamp: int  # epoch ms, as emitted by the sensor
    type: FlagType
    details: Optional[str] = None

    def __post_init__(self) -> None:
        if self.type not in FLAG_TYPES:
            raise InvalidFlag(f"unknown flag type: {self.type!r}")


@dataclass(frozen=True)
class GradingDegradation:
    question_id: str
    reason: DegradeReason
    detail: str = ""


@dataclass
class ScoreResult:
    score: int
    passed: bool
    sub_scores: Dict[str, float] = field(default_factory=dict)
    degraded: List[GradingDegradation] = field(default_factory=list)
    feedback: Dict[str, str] = field(default_factory=dict)


@dataclass
class ExamSession:
    id: str
    candidate_id: str
    exam_id: str
    status: SessionStatus = "pending"
    answers: Dict[str, Answer] = field(default_factory=dict)
    flags: List[ProctoringFlag] = field(default_factory=list)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    score: Optional[int] = None
    passed: Optional[bool] = None
    trigger: Optional[CompletionTrigger] = None

    @property
    def flagged(self) -> bool:
        return bool(self.flags)
