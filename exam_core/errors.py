"""Typed errors raised by the exam session core.

Structural errors are raised before any mutation, so a caller that catches
one can assume the session is exactly as it was. Grading errors never
leave the scoring engine; they are recorded as degradations instead.
"""
from __future__ import annotations


class ExamSessionError(Exception):
    """Base class for every error the core raises."""


class InvalidTransition(ExamSessionError):
    """Operation not valid for the session's current status."""


class InvalidState(InvalidTransition):
    """Session is not in the status the operation requires."""


class UnknownQuestion(ExamSessionError):
    pass


class KindMismatch(ExamSessionError):
    pass


class SessionClosed(ExamSessionError):
    """Flag observed after completion started."""


class InvalidExam(ExamSessionError):
    pass


class InvalidFlag(ExamSessionError):
    pass


class UnknownSession(ExamSessionError):
    pass


class UnknownExam(ExamSessionError):
    pass


class AssignmentConflict(ExamSessionError):
    """A non-completed session already exists for the candidate and exam."""


class GradingError(ExamSessionError):
    pass


class GradingTimeout(GradingError):
    pass


class GradingFailure(GradingError):
    pass


__all__ = [
    "ExamSessionError",
    "InvalidTransition",
    "InvalidState",
    "UnknownQuestion",
    "KindMismatch",
    "SessionClosed",
    "InvalidExam",
    "InvalidFlag",
    "UnknownSession",
    "UnknownExam",
    "AssignmentConflict",
    "GradingError",
    "GradingTimeout",
    "GradingFailure",
]
