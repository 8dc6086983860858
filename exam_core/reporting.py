# exam_core/reporting.py
from __future__ import annotations
from dataclasses import asdict, is_dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional

from .countdown import format_mmss
from .proctoring import summarize_flags
from .types import ExamSession, ScoreResult, is_unanswered

# -------- utils: make any object JSON-safe ----------
def _to_basic(x: Any) -> Any:
    if x is None or isinstance(x, (bool, int, float, str)):
        return x
    if isinstance(x, datetime):
        return x.isoformat()
    if isinstance(x, dict):
        return {str(k): _to_basic(v) for k, v in x.items()}
    if isinstance(x, (list, tuple, set)):
        return [_to_basic(v) for v in x]
    if is_dataclass(x) and not isinstance(x, type):
        return _to_basic(asdict(x))
    if hasattr(x, "__dict__"):
        return _to_basic(vars(x))
    return str(x)


def candidate_view(session: ExamSession, remaining_seconds: Optional[int] = None) -> Dict[str, Any]:
    """What the candidate sees. Grading degradation never shows up here."""
    answers = list(session.answers.values())
    out: Dict[str, Any] = {
        "id": session.id,
        "candidate_id": session.candidate_id,
        "exam_id": session.exam_id,
        "status": session.status,
        "started_at": _to_basic(session.started_at),
        "completed_at": _to_basic(session.completed_at),
        "answered": sum(1 for a in answers if not is_unanswered(a)),
        "unanswered": sum(1 for a in answers if is_unanswered(a)),
        "score": session.score,
        "passed": session.passed,
    }
    if remaining_seconds is not None and session.status == "in_progress":
        out["remaining_seconds"] = int(remaining_seconds)
        out["remaining"] = format_mmss(remaining_seconds)
    return out


def audit_view(
    session: ExamSession,
    result: Optional[ScoreResult],
    events: List[Dict[str, Any]],
) -> Dict[str, Any]:
    """Reviewer-facing record: flags, trigger, per-question scores, degradations."""
    out = candidate_view(session)
    out["trigger"] = session.trigger
    out["answers"] = _to_basic(list(session.answers.values()))
    out["flags"] = _to_basic(session.flags)
    out["flag_summary"] = summarize_flags(session.flags)
    if result is not None:
        out["sub_scores"] = dict(result.sub_scores)
        out["feedback"] = dict(result.feedback)
        out["degraded"] = _to_basic(result.degraded)
    out["events"] = _to_basic(events)
    return out
