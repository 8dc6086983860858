from __future__ import annotations
import os, json, pathlib


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw.strip())
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw.strip())
    except ValueError:
        return default


SUPPRESSION_WINDOW_MS: int = 5000
TICK_SECONDS: float = 1.0

DEFAULT_PASS_MARK: int = 70
DEFAULT_TIME_LIMIT_MINUTES: int = 45

GRADING_TIMEOUT_S: float = 60.0
GRADING_MAX_WORKERS: int = 8
GRADING_LOG_PATH: str = "grading_log.jsonl"
GRADING_MODEL: str = "gpt-4o"

FLAG_LOG_ASYNC: bool = True
# 0 disables forced completion on accumulated integrity flags.
FORCE_COMPLETE_AFTER_FLAGS: int = 0

AUDIT_EXPORT_ENABLED: bool = True

# // env overrides for staging/ops; defaults remain conservative.
SUPPRESSION_WINDOW_MS = _env_int("SUPPRESSION_WINDOW_MS", SUPPRESSION_WINDOW_MS)
GRADING_TIMEOUT_S = _env_float("GRADING_TIMEOUT_S", GRADING_TIMEOUT_S)
GRADING_MAX_WORKERS = _env_int("GRADING_MAX_WORKERS", GRADING_MAX_WORKERS)
GRADING_LOG_PATH = os.getenv("GRADING_LOG_PATH", GRADING_LOG_PATH)
GRADING_MODEL = os.getenv("OPENAI_MODEL", GRADING_MODEL)
FLAG_LOG_ASYNC = _env_bool("FLAG_LOG_ASYNC", FLAG_LOG_ASYNC)
FORCE_COMPLETE_AFTER_FLAGS = _env_int("FORCE_COMPLETE_AFTER_FLAGS", FORCE_COMPLETE_AFTER_FLAGS)
AUDIT_EXPORT_ENABLED = _env_bool("AUDIT_EXPORT_ENABLED", AUDIT_EXPORT_ENABLED)

def _env_true(name: str) -> bool:
    return os.environ.get(name, "").lower() in ("1","true","yes","on")
def load_config() -> dict:
    cfg = {}
    p = pathlib.Path("config.json")
    if p.exists():
        try: cfg = json.loads(p.read_text(encoding="utf-8"))
        except (OSError, ValueError): cfg = {}
    e = os.environ
    if e.get("LLM_BACKEND"): cfg["LLM_BACKEND"] = e.get("LLM_BACKEND")
    for k in ("OPENAI_API_KEY","OPENAI_MODEL","AZURE_OPENAI_ENDPOINT","AZURE_OPENAI_API_KEY",
              "AZURE_OPENAI_API_VERSION","AZURE_OPENAI_DEPLOYMENT"):
        if e.get(k): cfg[k] = e.get(k)
    if e.get("GRADING_LOG_ENABLED"): cfg["GRADING_LOG_ENABLED"] = _env_true("GRADING_LOG_ENABLED")
    return cfg
def get_backend(cfg: dict) -> str:
    b = (cfg.get("LLM_BACKEND") or "").lower().strip()
    return b if b in ("openai","azure") else "none"
