"""
主循环控制器
===========

把帧获取、姿态推理、角度计算和反馈分类串成一个协作式循环：

    acquire() -> [取最新帧 -> 分配递增时间戳 -> PoseEngine.run()
                  -> classify -> 发布 (FeedbackState, LandmarkSet)
                  -> 通过 FrameScheduler 请求下一周期] -> stop()

状态机: IDLE -> RUNNING (start 成功)；RUNNING -> IDLE (stop，或相机/模型致命错误)。

约束:
- 任意时刻至多一个活动循环、至多一个推理调用
- stop() 幂等，可在任意时刻调用（包括周期执行中）
- stop() 之后才返回的推理结果被丢弃，不再触发 on_feedback
- 单帧错误（InferenceError / ComputationError）不会中断循环
"""
import threading
import time
import concurrent.futures
from concurrent.futures import Future
from enum import Enum
from typing import Any, Callable, Dict, Optional, Union

from ..camera.frame_acquisition import CameraConstraints, FrameAcquisition
from ..detection.base import Delegate
from ..engines.pose_engine import PoseEngine, PoseHandle
from ..monitoring import FrameRateMonitor
from ..pose.classifier import DEFAULT_CLASSIFIER_CONFIG, ClassifierConfig, classify_with_angle
from ..pose.types import FeedbackState, LandmarkSet
from .constants import Constants
from .errors import (
    AcquisitionError,
    ComputationError,
    EngineNotReadyError,
    InferenceError,
    ModelLoadError,
)
from .logger import logger
from .scheduler import FrameScheduler
from .session import Session

class ControllerState(Enum):
    IDLE = "idle"
    RUNNING = "running"

STATUS_IDLE = "Start webcam to begin."
STATUS_LOADING = "Loading Exercise Model..."
STATUS_READY = "Ready to start. Press the webcam icon!"
STATUS_LOAD_FAILED = "Failed to load AI model. Please refresh."
STATUS_STARTED = "Webcam started. Get in position."
STATUS_CAMERA_FAILED = "Could not access webcam. Please check permissions."
STATUS_STOPPED = "Webcam stopped. Press the icon to start again."

class LoopController:
    """
    实时反馈循环控制器

    使用示例:
        controller = LoopController(engine, acquisition, PacedScheduler(30),
                                    display_sink=window, on_feedback=print)
        controller.initialize()          # 异步加载模型
        controller.wait_until_ready()
        controller.start()
        while ...:
            scheduler.pump()
        controller.shutdown()
    """

    def __init__(self,
                 engine: PoseEngine,
                 acquisition: FrameAcquisition,
                 scheduler: FrameScheduler,
                 display_sink: Optional[Any] = None,
                 on_feedback: Optional[Callable[[FeedbackState], None]] = None,
                 on_status: Optional[Callable[[str], None]] = None,
                 on_error: Optional[Callable[[Exception], None]] = None,
                 classifier_config: ClassifierConfig = DEFAULT_CLASSIFIER_CONFIG,
                 model_ref: str = Constants.POSE_MODEL_URL,
                 delegate: Union[Delegate, str] = Constants.POSE_DELEGATE,
                 constraints: Optional[CameraConstraints] = None,
                 heartbeat_interval: int = Constants.HEARTBEAT_INTERVAL,
                 clock_ms: Optional[Callable[[], int]] = None):
        """
        Args:
            engine: 姿态推理引擎
            acquisition: 帧获取
            scheduler: 帧调度器（PacedScheduler / ThreadedScheduler）
            display_sink: 显示端，需提供 present(frame, overlay, ...) 与 clear()
            on_feedback: 每个完成的周期调用一次
            on_status: 生命周期提示（加载中、就绪、已启动、已停止、失败）
            on_error: 使控制器回到 IDLE 的致命错误
            classifier_config: 分类阈值
            model_ref: 模型路径或 URL
            delegate: CPU / GPU
            constraints: 采集分辨率
            heartbeat_interval: 心跳日志间隔（周期数，<=0 关闭）
            clock_ms: 毫秒时钟（测试时可注入）
        """
        self._engine = engine
        self._acquisition = acquisition
        self._scheduler = scheduler
        self._display_sink = display_sink
        self._on_feedback = on_feedback
        self._on_status = on_status
        self._on_error = on_error
        self.classifier_config = classifier_config
        self.model_ref = model_ref
        self.delegate = delegate
        self.constraints = constraints or CameraConstraints()
        self.heartbeat_interval = int(heartbeat_interval or 0)
        self._clock_ms = clock_ms or (lambda: int(time.monotonic() * 1000))

        self._lock = threading.RLock()
        self._state = ControllerState.IDLE
        self._session = Session()
        self._handle: Optional[PoseHandle] = None
        self._load_future: Optional[Future] = None
        self._load_error: Optional[ModelLoadError] = None
        self._resolved_future: Optional[Future] = None
        self._status = STATUS_IDLE
        self._loop_monitor = FrameRateMonitor()

        self._totals = {
            'sessions': 0,
            'cycles': 0,
            'inference_errors': 0,
            'computation_fallbacks': 0,
            'discarded_results': 0,
            'acquisition_failures': 0,
            'fatal_errors': 0,
        }

    @classmethod
    def from_config(cls, config, engine: PoseEngine, acquisition: FrameAcquisition,
                    scheduler: FrameScheduler, **kwargs) -> "LoopController":
        """从 SystemConfig 构建（kwargs 传入回调与显示端）"""
        camera_cfg = config.camera
        params = dict(
            classifier_config=ClassifierConfig.from_config(config.get("classifier")),
            model_ref=str(config.pose.get("model", Constants.POSE_MODEL_URL)),
            delegate=config.pose.get("delegate", Constants.POSE_DELEGATE),
            constraints=CameraConstraints(
                width=int(camera_cfg.get("width", Constants.CAMERA_WIDTH)),
                height=int(camera_cfg.get("height", Constants.CAMERA_HEIGHT)),
            ),
            heartbeat_interval=config.loop.get("heartbeat_interval", Constants.HEARTBEAT_INTERVAL),
        )
        params.update(kwargs)
        return cls(engine, acquisition, scheduler, **params)

    # ------------------------------------------------------------------
    # 只读视图
    # ------------------------------------------------------------------

    @property
    def state(self) -> ControllerState:
        return self._state

    @property
    def is_ready(self) -> bool:
        return self._handle is not None

    @property
    def is_running(self) -> bool:
        return self._state is ControllerState.RUNNING

    @property
    def status(self) -> str:
        return self._status

    @property
    def load_error(self) -> Optional[ModelLoadError]:
        return self._load_error

    @property
    def latest_feedback(self) -> Optional[FeedbackState]:
        return self._session.latest_feedback

    @property
    def latest_landmarks(self) -> LandmarkSet:
        return self._session.latest_landmarks

    @property
    def latest_knee_angle(self) -> Optional[float]:
        return self._session.latest_knee_angle

    # ------------------------------------------------------------------
    # 模型加载
    # ------------------------------------------------------------------

    def initialize(self) -> Future:
        """
        开始异步加载模型

        Returns:
            Future: 完成后 is_ready 或 load_error 已更新
        """
        with self._lock:
            if self._load_future is not None and not self._load_future.done():
                return self._load_future

            if self._state is ControllerState.RUNNING:
                self._stop_locked(announce=True)
            if self._handle is not None:
                self._engine.dispose(self._handle)
                self._handle = None
            self._load_error = None
            self._notify_status(STATUS_LOADING)

            future = self._engine.load_async(self.model_ref, self.delegate)
            self._load_future = future

        future.add_done_callback(self._on_model_loaded)
        return future

    def _on_model_loaded(self, future: Future):
        if future.cancelled():
            return
        error = future.exception()

        with self._lock:
            if future is self._resolved_future:
                return
            if future is not self._load_future:
                # 已被新的 initialize()/shutdown() 取代
                if error is None:
                    self._engine.dispose(future.result())
                return
            self._resolved_future = future

            if error is None:
                handle = future.result()
                self._handle = handle
                logger.info(f"姿态模型就绪 (handle #{handle.handle_id}, delegate={handle.delegate.value})")
                self._notify_status(STATUS_READY)
                return

            self._load_error = error if isinstance(error, ModelLoadError) else ModelLoadError(str(error))
            logger.error(f"姿态模型加载失败: {error}")
            self._notify_status(STATUS_LOAD_FAILED)
        self._notify_error(self._load_error)

    def wait_until_ready(self, timeout: Optional[float] = None) -> bool:
        """
        阻塞等待模型加载结束

        Returns:
            bool: 加载成功返回 True，失败返回 False

        Raises:
            EngineNotReadyError: 尚未调用 initialize()
            concurrent.futures.TimeoutError: 超时
        """
        future = self._load_future
        if future is None:
            raise EngineNotReadyError("initialize() has not been called")
        concurrent.futures.wait([future], timeout=timeout)
        if not future.done():
            raise concurrent.futures.TimeoutError(f"Pose model not loaded within {timeout}s")
        # done_callback 可能晚于 wait() 返回
        self._on_model_loaded(future)
        return self.is_ready

    # ------------------------------------------------------------------
    # 启动 / 停止
    # ------------------------------------------------------------------

    def start(self) -> None:
        """
        启动循环；已在运行时先停止再启动（原子重置）

        Raises:
            EngineNotReadyError: 模型尚未加载完成
            ModelLoadError: 模型加载失败
            AcquisitionError: 相机不可用或预热超时
        """
        with self._lock:
            if self._handle is None:
                if self._load_error is not None:
                    raise ModelLoadError(f"Pose model unavailable: {self._load_error}") from self._load_error
                raise EngineNotReadyError("Pose model is still loading")

            if self._state is ControllerState.RUNNING:
                logger.info("循环已在运行，重置会话")
                self._stop_locked(announce=False)

            try:
                stream = self._acquisition.acquire(self.constraints)
            except AcquisitionError as e:
                self._totals['acquisition_failures'] += 1
                logger.error(f"相机获取失败: {e}")
                self._notify_status(STATUS_CAMERA_FAILED)
                self._notify_error(e)
                raise

            session = Session(running=True, stream=stream, started_at=time.monotonic())
            self._session = session
            self._state = ControllerState.RUNNING
            self._totals['sessions'] += 1
            self._loop_monitor.reset()
            self._notify_status(STATUS_STARTED)
            logger.info(f"会话 #{session.session_id} 已启动")
            self._schedule_next(session)

    def stop(self) -> None:
        """停止循环（幂等）"""
        with self._lock:
            if self._state is ControllerState.IDLE and not self._session.running:
                logger.debug("stop(): 循环未运行")
                return
            self._stop_locked(announce=True)

    def _stop_locked(self, announce: bool):
        session = self._session
        session.running = False
        self._scheduler.cancel(session.pending)
        session.pending = None
        self._acquisition.release(session.stream)
        session.stream = None
        if self._display_sink is not None:
            self._display_sink.clear()

        self._session = Session()
        self._state = ControllerState.IDLE
        logger.info(
            f"会话 #{session.session_id} 已停止 "
            f"(cycles={session.cycles}, published={session.published}, "
            f"inference_errors={session.inference_errors})"
        )
        if announce:
            self._notify_status(STATUS_STOPPED)

    def shutdown(self) -> None:
        """停止循环、释放模型与调度器"""
        self.stop()
        # 先停调度线程，再释放模型
        self._scheduler.close()
        with self._lock:
            future = self._load_future
            self._load_future = None
            if future is not None:
                future.cancel()
            self._engine.dispose(self._handle)
            self._handle = None
        self._engine.shutdown()
        logger.info("LoopController: 资源清理完成")

    # ------------------------------------------------------------------
    # 周期
    # ------------------------------------------------------------------

    def _is_current(self, session: Session) -> bool:
        return session is self._session and session.running

    def _schedule_next(self, session: Session):
        session.pending = self._scheduler.request(lambda: self._cycle(session))

    def _next_timestamp(self, handle: PoseHandle) -> int:
        now = self._clock_ms()
        if handle.last_timestamp_ms is None:
            return now
        return max(now, handle.last_timestamp_ms + 1)

    def _cycle(self, session: Session):
        with self._lock:
            if not self._is_current(session):
                return
            session.pending = None
            stream = session.stream
            handle = self._handle

        try:
            frame = stream.latest_frame()
        except AcquisitionError as e:
            self._fail(session, e)
            return

        if frame is None:
            with self._lock:
                if self._is_current(session):
                    session.no_new_frame += 1
                    self._schedule_next(session)
            return

        timestamp_ms = self._next_timestamp(handle)
        try:
            landmarks = self._engine.run(handle, frame, timestamp_ms)
        except InferenceError as e:
            with self._lock:
                if not self._is_current(session):
                    return
                session.inference_errors += 1
                self._totals['inference_errors'] += 1
                logger.warning(f"推理失败，跳过本帧: {e}")
                try:
                    self._present(frame, LandmarkSet.empty(handle.topology), None, None)
                finally:
                    self._complete_cycle(session)
            return
        except EngineNotReadyError as e:
            self._fail(session, e)
            return

        with self._lock:
            if not self._is_current(session):
                session.discarded_results += 1
                self._totals['discarded_results'] += 1
                logger.debug(f"会话 #{session.session_id} 已停止，丢弃推理结果 @ {timestamp_ms}ms")
                return

            try:
                state, knee_angle = classify_with_angle(landmarks, self.classifier_config)
            except ComputationError as e:
                session.computation_fallbacks += 1
                self._totals['computation_fallbacks'] += 1
                state, knee_angle = session.latest_feedback, None
                logger.warning(f"关节角度无法计算，沿用上一状态 {state.name if state else None}: {e}")

            try:
                self._publish(session, frame, landmarks, state, knee_angle)
            finally:
                self._complete_cycle(session)

    def _publish(self, session: Session, frame, landmarks: LandmarkSet,
                 state: Optional[FeedbackState], knee_angle: Optional[float]):
        session.latest_landmarks = landmarks
        session.latest_knee_angle = knee_angle
        self._present(frame, landmarks, state, knee_angle)
        if state is None:
            return
        session.latest_feedback = state
        session.published += 1
        if self._on_feedback is not None:
            self._on_feedback(state)

    def _present(self, frame, overlay: LandmarkSet, state: Optional[FeedbackState], knee_angle: Optional[float]):
        if self._display_sink is not None:
            self._display_sink.present(frame, overlay, feedback=state, knee_angle=knee_angle)

    def _complete_cycle(self, session: Session):
        if not self._is_current(session):
            return
        session.cycles += 1
        self._totals['cycles'] += 1
        self._loop_monitor.tick()

        if self.heartbeat_interval > 0 and session.cycles % self.heartbeat_interval == 0:
            engine_stats = self._engine.get_stats()
            logger.info(
                f"[KeepAlive] session=#{session.session_id} cycles={session.cycles} "
                f"fps={self._loop_monitor.smoothed_fps:.1f} "
                f"latency={engine_stats.get('latency_ms', 0.0):.1f}ms "
                f"feedback={session.latest_feedback.name if session.latest_feedback else None} "
                f"inference_errors={session.inference_errors}"
            )

        self._schedule_next(session)

    def _fail(self, session: Session, error: Exception):
        """致命错误：回到 IDLE"""
        with self._lock:
            if not self._is_current(session):
                return
            self._totals['fatal_errors'] += 1
            self._stop_locked(announce=False)
            if isinstance(error, AcquisitionError):
                self._totals['acquisition_failures'] += 1
                logger.error(f"视频流中断，循环停止: {error}")
                self._notify_status(STATUS_CAMERA_FAILED)
            else:
                logger.error(f"推理引擎不可用，循环停止: {error}")
                self._notify_status(STATUS_STOPPED)
        self._notify_error(error)

    # ------------------------------------------------------------------
    # 通知 / 统计
    # ------------------------------------------------------------------

    def _notify_status(self, message: str):
        self._status = message
        logger.info(f"状态: {message}")
        if self._on_status is not None:
            self._on_status(message)

    def _notify_error(self, error: Exception):
        if self._on_error is not None:
            self._on_error(error)

    def get_stats(self) -> Dict[str, Any]:
        """
        获取统计信息

        Returns:
            统计字典（状态、会话计数、循环帧率、引擎延迟）
        """
        with self._lock:
            stats = {
                'state': self._state.value,
                'ready': self.is_ready,
                'status': self._status,
                'totals': dict(self._totals),
                'session': self._session.to_dict(),
                'loop': self._loop_monitor.get_stats(),
                'scheduler': self._scheduler.get_stats(),
            }
        stats['engine'] = self._engine.get_stats()
        return stats
