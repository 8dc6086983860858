from __future__ import annotations

import pytest

from exam_core.countdown import CountdownController, format_mmss
from exam_core.scheduler import ManualScheduler


def _controller(duration=5):
    sched = ManualScheduler()
    fired = []
    cd = CountdownController(sched, duration, lambda: fired.append(sched.now()))
    return sched, cd, fired


def test_fires_once_after_duration():
    sched, cd, fired = _controller(5)
    cd.start()
    sched.advance(4)
    assert cd.remaining == 1 and fired == []
    sched.advance(1)
    assert fired == [5.0]
    assert cd.remaining == 0 and cd.fired and not cd.running
    sched.advance(30)
    assert fired == [5.0], "never restarts"
    assert sched.pending() == 0


def test_remaining_never_goes_negative():
    sched, cd, fired = _controller(2)
    cd.start()
    sched.advance(10)
    assert cd.remaining == 0
    assert len(fired) == 1


def test_cancel_before_expiry_suppresses_callback():
    sched, cd, fired = _controller(3)
    cd.start()
    sched.advance(1)
    cd.cancel()
    cd.cancel()
    sched.advance(10)
    assert fired == []
    assert cd.cancelled and cd.remaining == 2


def test_cancel_after_fire_is_noop():
    sched, cd, fired = _controller(1)
    cd.start()
    sched.advance(1)
    cd.cancel()
    assert cd.fired and not cd.cancelled


def test_start_twice_and_bad_duration():
    _, cd, _ = _controller(3)
    cd.start()
    with pytest.raises(RuntimeError):
        cd.start()
    with pytest.raises(ValueError):
        CountdownController(ManualScheduler(), 0, lambda: None)


@pytest.mark.parametrize("seconds,expected", [(2700, "45:00"), (61, "01:01"), (9, "00:09"), (-3, "00:00")])
def test_format_mmss(seconds, expected):
    assert format_mmss(seconds) == expected
