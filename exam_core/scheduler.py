"""Clock and delayed-call scheduling used by the countdown.

Two implementations share one small interface (``now``, ``call_later``):

* ``SystemScheduler`` runs callbacks on daemon ``threading.Timer`` threads
  and reads wall-clock time.
* ``ManualScheduler`` keeps virtual time; nothing runs until ``advance`` is
  called, which makes countdown behaviour deterministic in tests and smoke
  runs.
"""
from __future__ import annotations

import heapq
import itertools
import threading
import time
from datetime import datetime, timezone
from typing import Callable, List, Protocol, Tuple


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    def now(self) -> float: ...

    def call_later(self, delay: float, fn: Callable[[], None]) -> TimerHandle: ...


def utc_datetime(ts: float) -> datetime:
    return datetime.fromtimestamp(ts, timezone.utc)


class SystemScheduler:
    def now(self) -> float:
        return time.time()

    def call_later(self, delay: float, fn: Callable[[], None]) -> TimerHandle:
        timer = threading.Timer(max(0.0, float(delay)), fn)
        timer.daemon = True
        timer.start()
        return timer


class _ManualHandle:
    __slots__ = ("cancelled",)

    def __init__(self) -> None:
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler:
    """Virtual-time scheduler. ``advance`` runs due callbacks in order."""

    def __init__(self, start: float = 0.0) -> None:
        self._now = float(start)
        self._queue: List[Tuple[float, int, _ManualHandle, Callable[[], None]]] = []
        self._seq = itertools.count()
        self._lock = threading.Lock()

    def now(self) -> float:
        return self._now

    def call_later(self, delay: float, fn: Callable[[], None]) -> TimerHandle:
        handle = _ManualHandle()
        with self._lock:
            heapq.heappush(self._queue, (self._now + max(0.0, float(delay)), next(self._seq), handle, fn))
        return handle

    def pending(self) -> int:
        with self._lock:
            return sum(1 for _, _, h, _ in self._queue if not h.cancelled)

    def advance(self, seconds: float) -> None:
        target = self._now + float(seconds)
        while True:
            with self._lock:
                if not self._queue or self._queue[0][0] > target:
                    break
                due, _, handle, fn = heapq.heappop(self._queue)
            self._now = max(self._now, due)
            if not handle.cancelled:
                fn()
        self._now = target
