import pytest

from posture_coach.monitoring import FrameRateMonitor


def test_steady_rate():
    monitor = FrameRateMonitor(window=10, smoothing=0.5)
    for i in range(11):
        monitor.tick(i * 0.1)
    assert monitor.window_fps == pytest.approx(10.0)
    assert monitor.smoothed_fps == pytest.approx(10.0)
    assert monitor.get_stats()['interval_ms'] == pytest.approx(100.0)
    assert monitor.tick_count == 11


def test_no_rate_before_two_ticks():
    monitor = FrameRateMonitor()
    assert monitor.window_fps == 0.0
    monitor.tick(1.0)
    assert monitor.window_fps == 0.0
    assert monitor.smoothed_fps == 0.0


def test_reset():
    monitor = FrameRateMonitor()
    monitor.tick(0.0)
    monitor.tick(0.5)
    monitor.reset()
    assert monitor.get_stats() == {'fps': 0.0, 'window_fps': 0.0, 'interval_ms': 0.0, 'ticks': 0}
