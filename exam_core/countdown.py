from __future__ import annotations
import logging
import threading
from typing import Callable, Optional

from .config import TICK_SECONDS
from .scheduler import Scheduler, TimerHandle

log = logging.getLogger(__name__)


def format_mmss(seconds: int) -> str:
    seconds = max(0, int(seconds))
    return f"{seconds // 60:02d}:{seconds % 60:02d}"


class CountdownController:
    """Counts down once per tick and fires ``on_expire`` exactly once at zero.

    Never restarts. ``cancel`` is idempotent and never fires the callback.
    """

    def __init__(
        self,
        scheduler: Scheduler,
        duration_s: int,
        on_expire: Callable[[], None],
        tick_s: float = TICK_SECONDS,
    ) -> None:
        if int(duration_s) <= 0:
            raise ValueError(f"countdown duration must be positive, got {duration_s!r}")
        self._scheduler = scheduler
        self._on_expire = on_expire
        self._tick_s = float(tick_s)
        self._remaining = int(duration_s)
        self._handle: Optional[TimerHandle] = None
        self._lock = threading.Lock()
        self.started = False
        self.fired = False
        self.cancelled = False

    @property
    def remaining(self) -> int:
        return self._remaining

    @property
    def running(self) -> bool:
        return self.started and not (self.fired or self.cancelled)

    def format_mmss(self) -> str:
        return format_mmss(self._remaining)

    def start(self) -> None:
        with self._lock:
            if self.started:
                raise RuntimeError("countdown already started")
            self.started = True
            self._handle = self._scheduler.call_later(self._tick_s, self._tick)

    def cancel(self) -> None:
        with self._lock:
            if self.fired or self.cancelled:
                return
            self.cancelled = True
            if self._handle is not None:
                self._handle.cancel()
                self._handle = None

    def _tick(self) -> None:
        with self._lock:
            if self.fired or self.cancelled:
                return
            self._remaining -= 1
            if self._remaining > 0:
                self._handle = self._scheduler.call_later(self._tick_s, self._tick)
                return
            self.fired = True
            self._handle = None
        # outside the lock: the callback usually cancels this countdown
        log.info("countdown expired")
        self._on_expire()
