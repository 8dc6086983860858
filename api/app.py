from __future__ import annotations
from fastapi import FastAPI, HTTPException, Body, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
import logging, os, typing as t

# ---- Engine imports ----
from exam_core.engine import SessionRegistry
from exam_core.config import load_config, get_backend, AUDIT_EXPORT_ENABLED, GRADING_TIMEOUT_S
from exam_core.errors import (
    AssignmentConflict,
    ExamSessionError,
    InvalidExam,
    InvalidFlag,
    InvalidTransition,
    KindMismatch,
    SessionClosed,
    UnknownExam,
    UnknownQuestion,
    UnknownSession,
)
from exam_core.llm_bridge import grader_from_config
from exam_core.audit_export import to_json as audit_to_json, to_csv as audit_to_csv
from exam_core.reporting import candidate_view
from exam_core.validators import exam_to_dict, parse_answer, parse_exam, parse_flag

log = logging.getLogger(__name__)

CFG = load_config()
REGISTRY = SessionRegistry(grader=grader_from_config(CFG), grading_timeout=GRADING_TIMEOUT_S)

app = FastAPI(title="Proctored Exam API")

ALLOWED_ORIGINS = [o.strip() for o in os.getenv("ALLOWED_ORIGINS", "http://localhost:3000").split(",") if o.strip()]

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_methods=["*"],
    allow_headers=["*"],
    allow_credentials=False,  # keep False unless you use cookies
)

_STATUS: tuple[tuple[type, int], ...] = (
    (UnknownSession, 404),
    (UnknownExam, 404),
    (InvalidTransition, 409),
    (SessionClosed, 409),
    (AssignmentConflict, 409),
    (UnknownQuestion, 422),
    (KindMismatch, 422),
    (InvalidExam, 422),
    (InvalidFlag, 422),
)


@app.exception_handler(ExamSessionError)
async def exam_error_handler(request: Request, exc: ExamSessionError):
    code = next((c for cls, c in _STATUS if isinstance(exc, cls)), 400)
    log.warning("%s %s rejected: %s: %s", request.method, request.url.path, type(exc).__name__, exc)
    return JSONResponse(status_code=code, content={"error": type(exc).__name__, "detail": str(exc)})


# ---- Schemas ----
class QuestionReq(BaseModel):
    id: str
    kind: t.Literal["multiple_choice", "open_ended"]
    text: str
    options: list[str] | None = None
    correct_answer_index: int | None = None

class ExamReq(BaseModel):
    id: str
    title: str
    questions: list[QuestionReq]
    pass_mark: int = 70
    time_limit_minutes: int = 45
    job_role: str | None = None

class AssignReq(BaseModel):
    candidate_id: str
    exam_id: str

class AnswerReq(BaseModel):
    question_id: str
    kind: t.Literal["multiple_choice", "open_ended"]
    selected_option_index: int | None = None
    text: str | None = None

class FlagReq(BaseModel):
    timestamp: int
    type: t.Literal["no_face", "multiple_faces", "looking_away", "tab_switch"]
    details: str | None = None

class CompleteReq(BaseModel):
    trigger: t.Literal["manual_submit", "timeout", "forced"] = "manual_submit"


# ---- Helpers ----
def _view(sid: str) -> dict[str, t.Any]:
    m = REGISTRY.machine(sid)
    return candidate_view(m.snapshot(), m.remaining_seconds())


# ---- Health ----
@app.get("/")
def root():
    return {"status": "ok", "service": "proctored-exam-api"}

@app.get("/health")
def health():
    return {
        "llm_backend": get_backend(CFG),
        "grading_timeout_s": REGISTRY.scoring.timeout,
        "audit_export": AUDIT_EXPORT_ENABLED,
    }

# ---- Exams & assignment ----
@app.post("/exams")
def register_exam(req: ExamReq):
    exam = REGISTRY.register_exam(parse_exam(req.model_dump()))
    return {"exam": exam_to_dict(exam)}

@app.post("/sessions")
def assign(req: AssignReq):
    session = REGISTRY.assign(req.candidate_id, req.exam_id)
    return candidate_view(session)

@app.get("/sessions/{sid}")
def get_session(sid: str):
    return _view(sid)

# ---- Lifecycle ----
@app.post("/sessions/{sid}/start")
def start(sid: str):
    REGISTRY.start(sid)
    return _view(sid)

@app.post("/sessions/{sid}/answers")
def record_answer(sid: str, req: AnswerReq):
    REGISTRY.record_answer(sid, parse_answer(req.model_dump()))
    return _view(sid)

@app.post("/sessions/{sid}/flags")
def observe_flag(sid: str, req: FlagReq):
    accepted, session = REGISTRY.observe_flag(sid, parse_flag(req.model_dump()))
    return {"accepted": accepted is not None, "session": candidate_view(session)}

@app.post("/sessions/{sid}/complete")
def complete(sid: str, req: CompleteReq | None = Body(None)):
    session = REGISTRY.complete(sid, req.trigger if req else "manual_submit")
    return candidate_view(session)

# ---- Audit ----
def _audit_events(sid: str) -> list[dict[str, t.Any]]:
    if not AUDIT_EXPORT_ENABLED:
        raise HTTPException(404, "audit export disabled")
    return REGISTRY.machine(sid).audit_trail()

@app.get("/sessions/{sid}/audit")
def get_audit(sid: str):
    if not AUDIT_EXPORT_ENABLED:
        raise HTTPException(404, "audit export disabled")
    return REGISTRY.audit(sid)

@app.get("/sessions/{sid}/audit.json")
def get_audit_json(sid: str):
    return {"session_id": sid, **audit_to_json(_audit_events(sid))}

@app.get("/sessions/{sid}/audit.csv")
def get_audit_csv(sid: str):
    body = audit_to_csv(_audit_events(sid))
    return Response(
        content=body,
        media_type="text/csv",
        headers={"Content-Disposition": f"attachment; filename=\"{sid}_audit.csv\""},
    )
