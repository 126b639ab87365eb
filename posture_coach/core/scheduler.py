"""
帧调度器
=======

主循环的调度原语：同一时刻最多挂起一个回调，按帧率上限节流。

- PacedScheduler: 由 GUI 线程在 cv2.waitKey 之间调用 pump() 驱动（显示刷新的等价物）
- ThreadedScheduler: 单个后台线程驱动同一队列（无界面运行）

回调在单一调度域内串行执行，因此任意时刻最多只有一个周期在运行。
"""
import itertools
import threading
import time
import traceback
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Callable, Dict, Optional

from .logger import logger


@dataclass
class ScheduleHandle:
    """已请求回调的句柄"""
    handle_id: int
    callback: Callable[[], None] = field(repr=False)
    due_time: float
    cancelled: bool = False


class FrameScheduler(ABC):
    """
    帧调度器基类

    request(callback) -> handle，cancel(handle)。
    新的 request 会替换尚未执行的旧回调（至多一个挂起）。
    """

    def __init__(self, max_fps: float = 30.0, clock: Callable[[], float] = time.monotonic):
        """
        Args:
            max_fps: 帧率上限，<= 0 表示不节流
            clock: 单调时钟（秒），测试时可注入
        """
        self.max_fps = float(max_fps or 0.0)
        self._min_interval = 1.0 / self.max_fps if self.max_fps > 0 else 0.0
        self._clock = clock
        self._ids = itertools.count(1)
        self._cond = threading.Condition(threading.RLock())
        self._pending: Optional[ScheduleHandle] = None
        self._last_fire: Optional[float] = None

        self._stats = {
            'requested': 0,
            'cancelled': 0,
            'replaced': 0,
            'executed': 0,
            'callback_errors': 0,
        }

    def request(self, callback: Callable[[], None]) -> ScheduleHandle:
        """登记下一次回调，返回可用于 cancel() 的句柄"""
        with self._cond:
            now = self._clock()
            due = now
            if self._last_fire is not None and self._min_interval:
                due = max(now, self._last_fire + self._min_interval)

            if self._pending is not None:
                self._pending.cancelled = True
                self._stats['replaced'] += 1
                logger.debug(f"Scheduler: 回调 #{self._pending.handle_id} 被新请求替换")

            handle = ScheduleHandle(handle_id=next(self._ids), callback=callback, due_time=due)
            self._pending = handle
            self._stats['requested'] += 1
            self._cond.notify_all()
            return handle

    def cancel(self, handle: Optional[ScheduleHandle]) -> bool:
        """取消挂起的回调；已执行或已取消的句柄返回 False"""
        if handle is None:
            return False
        with self._cond:
            if handle.cancelled or self._pending is not handle:
                return False
            handle.cancelled = True
            self._pending = None
            self._stats['cancelled'] += 1
            self._cond.notify_all()
            return True

    @property
    def has_pending(self) -> bool:
        with self._cond:
            return self._pending is not None

    def _take_due(self) -> Optional[ScheduleHandle]:
        """取出已到期的挂起回调（调用方需持有锁）"""
        handle = self._pending
        if handle is None or self._clock() < handle.due_time:
            return None
        self._pending = None
        self._last_fire = self._clock()
        return handle

    def _execute(self, handle: ScheduleHandle) -> None:
        try:
            handle.callback()
        except Exception as e:
            logger.error(f"Scheduler: 回调 #{handle.handle_id} 执行失败: {e}")
            logger.error(traceback.format_exc())
            with self._cond:
                self._stats['callback_errors'] += 1
        else:
            with self._cond:
                self._stats['executed'] += 1

    def get_stats(self) -> Dict:
        with self._cond:
            stats = self._stats.copy()
        stats['max_fps'] = self.max_fps
        return stats

    @abstractmethod
    def close(self) -> None:
        """释放调度器资源（幂等）"""


class PacedScheduler(FrameScheduler):
    """
    由调用方线程驱动的调度器

    GUI 主循环每次刷新调用 pump()，到期的回调在调用线程上执行。
    """

    def pump(self) -> bool:
        """
        执行到期的挂起回调

        Returns:
            bool: 本次是否执行了回调
        """
        with self._cond:
            handle = self._take_due()
        if handle is None:
            return False
        self._execute(handle)
        return True

    def time_until_due(self) -> Optional[float]:
        """距离挂起回调到期的秒数；无挂起回调时返回 None"""
        with self._cond:
            if self._pending is None:
                return None
            return max(0.0, self._pending.due_time - self._clock())

    def close(self) -> None:
        with self._cond:
            if self._pending is not None:
                self._pending.cancelled = True
                self._pending = None


class ThreadedScheduler(FrameScheduler):
    """
    单后台线程驱动的调度器

    回调全部在同一个工作线程上串行执行。
    """

    def __init__(self, max_fps: float = 30.0, clock: Callable[[], float] = time.monotonic,
                 name: str = "FrameScheduler"):
        super().__init__(max_fps=max_fps, clock=clock)
        self.name = name
        self._stop_event = threading.Event()
        self._worker_thread: Optional[threading.Thread] = None

    def start(self) -> None:
        """启动工作线程"""
        with self._cond:
            if self._worker_thread is not None and self._worker_thread.is_alive():
                return
            self._stop_event.clear()
            self._worker_thread = threading.Thread(
                target=self._worker_loop,
                name=self.name,
                daemon=True,
            )
            self._worker_thread.start()
        logger.info(f"[{self.name}] 调度线程已启动 (max_fps={self.max_fps:g})")

    def request(self, callback: Callable[[], None]) -> ScheduleHandle:
        handle = super().request(callback)
        self.start()
        return handle

    def _worker_loop(self):
        while not self._stop_event.is_set():
            with self._cond:
                handle = self._take_due()
                if handle is None:
                    if self._pending is None:
                        timeout = 0.1
                    else:
                        timeout = max(0.0, self._pending.due_time - self._clock())
                    self._cond.wait(timeout=timeout)
                    continue
            self._execute(handle)

    @property
    def is_running(self) -> bool:
        return self._worker_thread is not None and self._worker_thread.is_alive()

    def close(self, timeout: float = 2.0) -> None:
        with self._cond:
            if self._pending is not None:
                self._pending.cancelled = True
                self._pending = None
            self._stop_event.set()
            self._cond.notify_all()
            worker = self._worker_thread
            self._worker_thread = None

        if worker is None or worker is threading.current_thread():
            return
        worker.join(timeout=timeout)
        if worker.is_alive():
            logger.warning(f"[{self.name}] 调度线程未在 {timeout}s 内退出")
        else:
            logger.info(f"[{self.name}] 调度线程已停止")
