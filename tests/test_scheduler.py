import threading

import pytest

from posture_coach.core.scheduler import PacedScheduler, ThreadedScheduler


class ManualClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


def test_pump_runs_pending_callback_once():
    scheduler = PacedScheduler(max_fps=0)
    calls = []
    scheduler.request(lambda: calls.append(1))

    assert scheduler.has_pending
    assert scheduler.pump()
    assert not scheduler.pump()
    assert calls == [1]


def test_at_most_one_pending():
    scheduler = PacedScheduler(max_fps=0)
    calls = []
    first = scheduler.request(lambda: calls.append("first"))
    scheduler.request(lambda: calls.append("second"))

    assert first.cancelled
    scheduler.pump()
    scheduler.pump()
    assert calls == ["second"]
    assert scheduler.get_stats()['replaced'] == 1


def test_cancel():
    scheduler = PacedScheduler(max_fps=0)
    calls = []
    handle = scheduler.request(lambda: calls.append(1))

    assert scheduler.cancel(handle)
    assert not scheduler.cancel(handle)
    assert not scheduler.cancel(None)
    assert not scheduler.pump()
    assert calls == []


def test_frame_rate_cap():
    clock = ManualClock()
    scheduler = PacedScheduler(max_fps=10, clock=clock)
    calls = []

    scheduler.request(lambda: calls.append(clock.now))
    assert scheduler.pump()

    clock.now = 0.05
    scheduler.request(lambda: calls.append(clock.now))
    assert scheduler.time_until_due() == pytest.approx(0.05)
    assert not scheduler.pump()

    clock.now = 0.1
    assert scheduler.pump()
    assert calls == [0.0, 0.1]


def test_callback_error_does_not_break_scheduler():
    scheduler = PacedScheduler(max_fps=0)

    def boom():
        raise RuntimeError("bad callback")

    scheduler.request(boom)
    assert scheduler.pump()
    assert scheduler.get_stats()['callback_errors'] == 1

    calls = []
    scheduler.request(lambda: calls.append(1))
    scheduler.pump()
    assert calls == [1]


def test_callback_may_request_next():
    scheduler = PacedScheduler(max_fps=0)
    calls = []

    def cycle():
        calls.append(1)
        if len(calls) < 3:
            scheduler.request(cycle)

    scheduler.request(cycle)
    while scheduler.pump():
        pass
    assert len(calls) == 3


def test_threaded_scheduler_runs_on_worker_thread():
    scheduler = ThreadedScheduler(max_fps=0)
    done = threading.Event()
    threads = []

    def callback():
        threads.append(threading.current_thread().name)
        done.set()

    try:
        scheduler.request(callback)
        assert done.wait(timeout=2.0)
        assert threads == [scheduler.name]
    finally:
        scheduler.close()
    assert not scheduler.is_running
    scheduler.close()


def test_threaded_scheduler_cancel_before_due():
    clock_started = threading.Event()
    scheduler = ThreadedScheduler(max_fps=1)
    calls = []
    try:
        scheduler.request(lambda: clock_started.set())
        assert clock_started.wait(timeout=2.0)
        handle = scheduler.request(lambda: calls.append(1))
        assert scheduler.cancel(handle)
    finally:
        scheduler.close()
    assert calls == []
