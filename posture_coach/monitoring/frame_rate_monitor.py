"""
帧率监控模块
===========

统计主循环的周期速率：滑动窗口 FPS 与 EMA 平滑 FPS 并存，
前者反映最近一段时间的真实吞吐，后者用于界面显示（不抖动）。
"""
import time
from collections import deque
from typing import Deque, Optional


class FrameRateMonitor:
    """
    循环帧率监控器

    使用示例:
        monitor = FrameRateMonitor(window=30)
        for each cycle:
            monitor.tick()
        monitor.get_stats()
    """

    def __init__(self, window: int = 30, smoothing: float = 0.9):
        """
        Args:
            window: 滑动窗口大小（周期数）
            smoothing: EMA 平滑系数（0.0-1.0），越大越平滑
        """
        self.smoothing = max(0.0, min(1.0, smoothing))
        self._ticks: Deque[float] = deque(maxlen=max(2, int(window)))
        self._ema_fps = 0.0
        self._last_interval = 0.0
        self.tick_count = 0

    def tick(self, timestamp: Optional[float] = None) -> None:
        """记录一个完成的周期（timestamp 单位秒，默认 time.monotonic()）"""
        now = timestamp if timestamp is not None else time.monotonic()

        if self._ticks:
            elapsed = now - self._ticks[-1]
            if elapsed > 0:
                instant = 1.0 / elapsed
                if self._ema_fps == 0.0:
                    self._ema_fps = instant
                else:
                    self._ema_fps = self.smoothing * self._ema_fps + (1 - self.smoothing) * instant
                self._last_interval = elapsed

        self._ticks.append(now)
        self.tick_count += 1

    @property
    def window_fps(self) -> float:
        if len(self._ticks) < 2:
            return 0.0
        span = self._ticks[-1] - self._ticks[0]
        return (len(self._ticks) - 1) / span if span > 0 else 0.0

    @property
    def smoothed_fps(self) -> float:
        return self._ema_fps

    def reset(self) -> None:
        self._ticks.clear()
        self._ema_fps = 0.0
        self._last_interval = 0.0
        self.tick_count = 0

    def get_stats(self) -> dict:
        return {
            'fps': self._ema_fps,
            'window_fps': self.window_fps,
            'interval_ms': self._last_interval * 1000.0,
            'ticks': self.tick_count,
        }

    def __repr__(self) -> str:
        return f"FrameRateMonitor(fps={self._ema_fps:.2f}, window_fps={self.window_fps:.2f}, ticks={self.tick_count})"
