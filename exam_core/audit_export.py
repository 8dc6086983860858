"""Export a session's audit trail (lifecycle, flags, grading degradation) as JSON or CSV."""
from __future__ import annotations

from collections import Counter
from typing import Iterable, List, Dict, Any, Optional
import csv
import io

_FIELDS: tuple[str, ...] = (
    "t",
    "session_id",
    "event",
    "question_id",
    "flag_type",
    "trigger",
    "detail",
)


def _normalize_event(event: Dict[str, Any]) -> Dict[str, str]:
    return {key: "" if event.get(key) is None else str(event.get(key)) for key in _FIELDS}


def _select(events: Iterable[Dict[str, Any]], kinds: Optional[Iterable[str]]) -> List[Dict[str, str]]:
    wanted = set(kinds) if kinds else None
    rows = [_normalize_event(evt or {}) for evt in events]
    if wanted is None:
        return rows
    return [r for r in rows if r["event"] in wanted]


def to_json(events: Iterable[Dict[str, Any]], kinds: Optional[Iterable[str]] = None) -> Dict[str, Any]:
    """JSON-safe payload: the events plus a tally per event kind."""

    rows = _select(events, kinds)
    return {"events": rows, "counts": dict(Counter(r["event"] for r in rows))}


def to_csv(events: Iterable[Dict[str, Any]], kinds: Optional[Iterable[str]] = None) -> str:
    buf = io.StringIO()
    writer = csv.DictWriter(buf, fieldnames=_FIELDS, lineterminator="\n")
    writer.writeheader()
    writer.writerows(_select(events, kinds))
    return buf.getvalue()


__all__ = ["to_json", "to_csv"]
