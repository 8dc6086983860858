from __future__ import annotations
import json, logging, math, time
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Protocol

from .config import GRADING_LOG_PATH, GRADING_TIMEOUT_S, get_backend
from .errors import GradingFailure
from .heuristics import heuristic_open_grade

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class Grade:
    score: float  # 0..100
    feedback: str = ""


class GradingCollaborator(Protocol):
    def grade(self, question_text: str, answer_text: str, context: Mapping[str, Any]) -> Grade: ...


def _system_prompt(job_role: str) -> str:
    role = job_role or "technical"
    return (f"You are an expert at grading technical assessments for {role} positions. "
            "Evaluate the following answer to the question. Score from 0-100 and provide brief feedback. "
            "Return as JSON with 'score' and 'feedback' fields.")


def parse_grade(raw: str) -> Grade:
    try:
        data = json.loads(raw or "")
    except ValueError as exc:
        raise GradingFailure(f"grader returned non-JSON output: {exc}") from exc
    if not isinstance(data, dict):
        raise GradingFailure("grader returned a non-object JSON payload")
    score = data.get("score")
    if isinstance(score, bool) or not isinstance(score, (int, float)):
        try:
            score = float(score)
        except (TypeError, ValueError) as exc:
            raise GradingFailure(f"grader returned non-numeric score {score!r}") from exc
    if not math.isfinite(float(score)):
        raise GradingFailure(f"grader returned non-finite score {score!r}")
    return Grade(score=float(score), feedback=str(data.get("feedback") or "No feedback provided"))


def _append_log(path: Optional[str], record: Dict[str, Any]) -> None:
    if not path:
        return
    try:
        with open(path, "a", encoding="utf-8") as f:
            f.write(json.dumps(record, ensure_ascii=False) + "\n")
    except OSError:
        log.debug("grading log not writable: %s", path)


class OpenAIGrader:
    """Grades open-ended answers through an OpenAI chat completion.

    ``client`` is anything exposing ``chat.completions.create``; both
    ``openai.OpenAI`` and ``openai.AzureOpenAI`` qualify. Every request carries
    ``request_timeout``, so a call abandoned by the scoring deadline still ends
    within the same bound.
    """

    def __init__(self, client: Any, model: str, log_path: Optional[str] = GRADING_LOG_PATH,
                 backend: str = "openai", request_timeout: float = GRADING_TIMEOUT_S) -> None:
        self.client = client
        self.model = model
        self.log_path = log_path
        self.backend = backend
        self.request_timeout = float(request_timeout)

    def grade(self, question_text: str, answer_text: str, context: Mapping[str, Any]) -> Grade:
        t0 = time.time()
        job_role = str(context.get("job_role") or "")
        raw: Optional[str] = None
        error: Optional[str] = None
        try:
            resp = self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": _system_prompt(job_role)},
                    {"role": "user", "content": f"Question: {question_text}\n\nAnswer: {answer_text}"},
                ],
                response_format={"type": "json_object"},
                temperature=0.0,
                timeout=self.request_timeout,
            )
            raw = resp.choices[0].message.content or ""
            return parse_grade(raw)
        except GradingFailure as exc:
            error = str(exc)
            raise
        except Exception as exc:
            error = str(exc)
            raise GradingFailure(f"grading request failed: {exc}") from exc
        finally:
            _append_log(self.log_path, {
                "ts": round(time.time(), 3),
                "backend": self.backend,
                "model": self.model,
                "job_role": job_role,
                "question": (question_text or "")[:800],
                "answer": (answer_text or "")[:1200],
                "raw": raw,
                "error": error,
                "rt_ms": int((time.time() - t0) * 1000),
            })


class HeuristicGrader:
    backend = "none"

    def grade(self, question_text: str, answer_text: str, context: Mapping[str, Any]) -> Grade:
        s = heuristic_open_grade(answer_text or "", question_text or "", str(context.get("job_role") or ""))
        return Grade(score=float(s), feedback="Heuristic grade (no LLM backend configured)")


def grader_from_config(cfg: Mapping[str, Any]) -> GradingCollaborator:
    from . import llm_cfg
    backend = get_backend(dict(cfg))
    if backend == "none":
        return HeuristicGrader()
    settings = llm_cfg.grader_settings(backend, cfg)
    log_path = GRADING_LOG_PATH if cfg.get("GRADING_LOG_ENABLED", True) else None
    return OpenAIGrader(
        llm_cfg.client(settings),
        settings.model,
        log_path=log_path,
        backend=backend,
    )

