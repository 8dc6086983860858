from __future__ import annotations
import atexit
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Dict, List, Optional

from .config import FLAG_LOG_ASYNC, SUPPRESSION_WINDOW_MS
from .types import FLAG_TYPES, ProctoringFlag

log = logging.getLogger(__name__)

FlagSink = Callable[[ProctoringFlag], None]

_SINK_POOL: Optional[ThreadPoolExecutor] = None


def _sink_pool() -> ThreadPoolExecutor:
    global _SINK_POOL
    if _SINK_POOL is None:
        _SINK_POOL = ThreadPoolExecutor(max_workers=1, thread_name_prefix="flag-sink")
        atexit.register(_SINK_POOL.shutdown, wait=False)
    return _SINK_POOL


class LoggingFlagSink:
    """Default logging collaborator: one INFO line per accepted flag."""

    def __init__(self, session_id: str = "") -> None:
        self.session_id = session_id

    def __call__(self, flag: ProctoringFlag) -> None:
        log.info(
            "proctoring flag session=%s type=%s ts=%s details=%s",
            self.session_id, flag.type, flag.timestamp, flag.details or "",
        )


def is_suppressed(
    session_flags: List[ProctoringFlag],
    candidate: ProctoringFlag,
    window_ms: int = SUPPRESSION_WINDOW_MS,
) -> bool:
    for f in session_flags:
        if f.type == candidate.type and abs(candidate.timestamp - f.timestamp) < window_ms:
            return True
    return False


class ProctoringFlagAggregator:
    """Deduplicates integrity flags per type and forwards accepted ones to a sink.

    Sink calls are best-effort: with ``async_sink`` they run on a background
    worker, and any exception is logged and dropped.
    """

    def __init__(
        self,
        sink: Optional[FlagSink] = None,
        window_ms: int = SUPPRESSION_WINDOW_MS,
        async_sink: bool = FLAG_LOG_ASYNC,
    ) -> None:
        self.sink: FlagSink = sink or LoggingFlagSink()
        self.window_ms = int(window_ms)
        self.async_sink = bool(async_sink)

    def observe(
        self, session_flags: List[ProctoringFlag], candidate: ProctoringFlag
    ) -> Optional[ProctoringFlag]:
        if is_suppressed(session_flags, candidate, self.window_ms):
            log.debug("flag suppressed type=%s ts=%s", candidate.type, candidate.timestamp)
            return None
        session_flags.append(candidate)
        self._emit(candidate)
        return candidate

    def _emit(self, flag: ProctoringFlag) -> None:
        if self.async_sink:
            try:
                _sink_pool().submit(self._deliver, flag)
            except RuntimeError as exc:  # pool shut down at interpreter exit
                log.warning("flag sink unavailable: %s", exc)
        else:
            self._deliver(flag)

    def _deliver(self, flag: ProctoringFlag) -> None:
        try:
            self.sink(flag)
        except Exception as exc:
            log.warning("flag sink failed for %s: %s", flag.type, exc)


def summarize_flags(flags: List[ProctoringFlag]) -> Dict[str, object]:
    counts = {t: 0 for t in FLAG_TYPES}
    for f in flags:
        counts[f.type] = counts.get(f.type, 0) + 1
    return {"flagged": bool(flags), "total": len(flags), "by_type": counts}
