# exam_core/heuristics.py
from __future__ import annotations
import re

_EXAMPLE_RX    = re.compile(r'\b(for example|e\.g\.|such as|for instance|in my experience|i have|we built|i built)\b', re.I)
_STRUCTURE_RX  = re.compile(r'\b(first|second|then|finally|because|therefore|however|trade-?off)\b', re.I)
_METRIC_RX     = re.compile(r'\b(\d+%|percent|metric|kpi|latency|throughput|error rate|accuracy|cost|sla)\b', re.I)
_DEFLECT_RX    = re.compile(r"\b(i\s*don'?t\s*know|no\s*idea|pass|skip)\b", re.I)
_WORD_RX       = re.compile(r"[a-z0-9+#.-]{3,}", re.I)

def heuristic_open_grade(text: str, question: str = "", job_role: str = "") -> int:
    """Rough 0..100 grade for free text when no LLM backend is configured."""
    if not isinstance(text, str): return 0
    t = text.strip()
    if not t: return 0
    wc = len(t.split())
    if wc < 6 or _DEFLECT_RX.search(t): return 5

    score = 30.0
    if _EXAMPLE_RX.search(t):   score += 15
    if _STRUCTURE_RX.search(t): score += 15
    if _METRIC_RX.search(t):    score += 10

    ref = {w.lower() for w in _WORD_RX.findall(f"{question} {job_role}")}
    if ref:
        used = {w.lower() for w in _WORD_RX.findall(t)}
        score += 20.0 * len(ref & used) / len(ref)

    if 40 <= wc <= 300: score += 10
    return int(max(0.0, min(100.0, round(score))))
