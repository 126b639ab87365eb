"""
姿态推理引擎
===========

封装外部姿态估计模型的完整生命周期：
- load: 解析/下载模型文件并创建检测后端（可异步，返回 Future）
- run: 单帧同步推理，强制时间戳严格递增，校验关键点数量
- dispose: 释放模型与设备资源（幂等）
- 性能监控（EMA 延迟统计）
"""
import itertools
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Union

import numpy as np

from ..core.errors import EngineNotReadyError, InferenceError, ModelLoadError, TimestampOrderError
from ..core.logger import logger
from ..detection import Delegate, PoseDetector, resolve_model_asset
from ..pose.topology import PoseTopology
from ..pose.types import LandmarkSet


SUPPORTED_BACKENDS = ("mediapipe", "yolo")


def create_detector(
    backend: str,
    model_path: Path,
    delegate: Delegate,
    options: Dict[str, Any],
) -> PoseDetector:
    """
    按后端名称创建检测器（按需导入对应依赖）

    Raises:
        ValueError: 不支持的后端
    """
    if backend == "mediapipe":
        from ..detection.mediapipe_pose_detector import MediaPipePoseDetector
        return MediaPipePoseDetector(
            model_path=model_path,
            delegate=delegate,
            min_detection_confidence=options.get("min_detection_confidence", 0.5),
            min_presence_confidence=options.get("min_presence_confidence", 0.5),
            min_tracking_confidence=options.get("min_tracking_confidence", 0.5),
        )
    if backend == "yolo":
        from ..detection.yolo_pose_detector import YoloPoseDetector
        return YoloPoseDetector(
            model_path=model_path,
            delegate=delegate,
            confidence_threshold=options.get("min_detection_confidence", 0.5),
        )
    raise ValueError(f"Unsupported pose backend: {backend!r} (expected one of {SUPPORTED_BACKENDS})")


@dataclass
class PoseHandle:
    """
    已加载模型的句柄

    Attributes:
        handle_id: 句柄编号（日志用）
        detector: 检测后端实例
        model_path: 本地模型文件
        delegate: 推理设备
        last_timestamp_ms: 最近一次推理时间戳（视频模式要求严格递增）
        disposed: 是否已释放
        run_lock: run 与 dispose 互斥，推理进行中不会释放底层模型
    """
    handle_id: int
    detector: PoseDetector
    model_path: Path
    delegate: Delegate
    last_timestamp_ms: Optional[int] = None
    disposed: bool = False
    run_lock: threading.RLock = field(default_factory=threading.RLock, repr=False, compare=False)

    @property
    def topology(self) -> PoseTopology:
        return self.detector.topology


class PoseEngine:
    """
    姿态推理引擎（推理适配层）

    职责:
    - 模型加载（同步 load / 异步 load_async）
    - 单帧推理与结果校验
    - 资源释放
    - EMA 延迟统计

    使用示例:
        engine = PoseEngine(backend="mediapipe", cache_dir="models")
        future = engine.load_async(model_url, Delegate.GPU)
        handle = future.result()

        # 主循环中调用
        landmarks = engine.run(handle, rgb_frame, timestamp_ms)

        engine.dispose(handle)
        engine.shutdown()
    """

    def __init__(
        self,
        backend: str = "mediapipe",
        cache_dir: Union[str, Path] = "models",
        latency_smoothing: float = 0.7,
        detector_options: Optional[Dict[str, Any]] = None,
        warmup_runs: int = 0,
        detector_factory: Callable[[str, Path, Delegate, Dict[str, Any]], PoseDetector] = create_detector,
    ):
        """
        初始化姿态推理引擎

        Args:
            backend: 检测后端名称（mediapipe / yolo）
            cache_dir: 远程模型下载缓存目录
            latency_smoothing: 延迟 EMA 平滑系数，默认 0.7
            detector_options: 传给检测后端的置信度参数
            warmup_runs: 加载后空跑次数（减少首帧延迟）
            detector_factory: 检测器工厂（测试中可注入假后端）
        """
        self.backend = backend
        self.cache_dir = Path(cache_dir)
        self.latency_smoothing = max(0.0, min(1.0, latency_smoothing))
        self.detector_options = dict(detector_options or {})
        self.warmup_runs = max(0, int(warmup_runs))
        self._detector_factory = detector_factory

        self._handle_ids = itertools.count(1)
        self._executor: Optional[ThreadPoolExecutor] = None
        self._executor_lock = threading.Lock()

        # 统计信息
        self._latency_ms = 0.0
        self._stats = {
            'loads': 0,
            'load_failures': 0,
            'inferences': 0,
            'empty_results': 0,
            'errors': 0,
        }

        logger.info(f"PoseEngine 已初始化 (backend={backend}, cache_dir={self.cache_dir})")

    @classmethod
    def from_config(cls, config, **kwargs) -> "PoseEngine":
        """从 SystemConfig 构建"""
        pose_cfg = config.pose
        return cls(
            backend=pose_cfg.get("backend", "mediapipe"),
            cache_dir=config.resolve_path(config.paths.get("model_cache_dir", "models")),
            latency_smoothing=pose_cfg.get("latency_smoothing", 0.7),
            detector_options={
                "min_detection_confidence": pose_cfg.get("min_detection_confidence", 0.5),
                "min_presence_confidence": pose_cfg.get("min_presence_confidence", 0.5),
                "min_tracking_confidence": pose_cfg.get("min_tracking_confidence", 0.5),
            },
            warmup_runs=pose_cfg.get("warmup_runs", 0),
            **kwargs,
        )

    # ------------------------------------------------------------------
    # 加载
    # ------------------------------------------------------------------

    def load(self, model_asset_ref: Union[str, Path], delegate: Union[Delegate, str] = Delegate.CPU) -> PoseHandle:
        """
        同步加载模型

        Args:
            model_asset_ref: 本地模型路径或 URL
            delegate: 推理设备（CPU / GPU）

        Returns:
            PoseHandle: 模型句柄

        Raises:
            ModelLoadError: 下载、解析失败或后端/设备不支持
        """
        started = time.perf_counter()
        try:
            delegate = Delegate.parse(delegate)
            model_path = resolve_model_asset(model_asset_ref, self.cache_dir)
            detector = self._detector_factory(self.backend, model_path, delegate, self.detector_options)
        except Exception as e:
            self._stats['load_failures'] += 1
            logger.error(f"姿态模型加载失败 (backend={self.backend}, model={model_asset_ref}): {e}")
            raise ModelLoadError(f"Failed to load pose model {model_asset_ref}: {e}") from e

        handle = PoseHandle(
            handle_id=next(self._handle_ids),
            detector=detector,
            model_path=model_path,
            delegate=delegate,
        )
        self._stats['loads'] += 1
        logger.info(
            f"姿态模型已加载 #{handle.handle_id}: {detector.name} "
            f"({handle.topology.name}, delegate={delegate.value}, "
            f"{(time.perf_counter() - started) * 1000:.0f}ms)"
        )

        if self.warmup_runs:
            self._warmup(handle)

        return handle

    def load_async(self, model_asset_ref: Union[str, Path], delegate: Union[Delegate, str] = Delegate.CPU) -> "Future[PoseHandle]":
        """
        后台线程加载模型

        Returns:
            Future: 成功时结果为 PoseHandle，失败时异常为 ModelLoadError
        """
        with self._executor_lock:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="PoseEngineLoader")
            return self._executor.submit(self.load, model_asset_ref, delegate)

    def _warmup(self, handle: PoseHandle):
        """空帧预热，减少首帧延迟（失败只记录警告）"""
        blank = np.zeros((256, 256, 3), dtype=np.uint8)
        try:
            for i in range(self.warmup_runs):
                self.run(handle, blank, i)
            logger.info(f"姿态模型预热完成 ({self.warmup_runs} 次)")
        except InferenceError as e:
            logger.warning(f"姿态模型预热失败: {e}")

    # ------------------------------------------------------------------
    # 推理
    # ------------------------------------------------------------------

    def run(self, handle: PoseHandle, frame, timestamp_ms: int) -> LandmarkSet:
        """
        单帧推理

        Args:
            handle: load() 返回的句柄
            frame: RGB 图像 (H, W, 3)
            timestamp_ms: 帧时间戳（毫秒），同一句柄内必须严格递增

        Returns:
            LandmarkSet: 单人关键点（未检测到时为空集）

        Raises:
            EngineNotReadyError: 句柄已释放
            TimestampOrderError: 时间戳未严格递增（调用方用法错误）
            InferenceError: 推理失败或输出不符合拓扑
        """
        with handle.run_lock:
            if handle.disposed:
                raise EngineNotReadyError(f"Pose handle #{handle.handle_id} has been disposed")

            ts = int(timestamp_ms)
            if handle.last_timestamp_ms is not None and ts <= handle.last_timestamp_ms:
                raise TimestampOrderError(
                    f"timestamp must be strictly increasing: {ts} <= {handle.last_timestamp_ms}"
                )
            handle.last_timestamp_ms = ts

            start = time.perf_counter()
            try:
                landmarks = handle.detector.detect(frame, ts)
            except Exception as e:
                self._stats['errors'] += 1
                raise InferenceError(f"{handle.detector.name} inference failed at {ts}ms: {e}") from e

            if not isinstance(landmarks, LandmarkSet):
                self._stats['errors'] += 1
                raise InferenceError(f"{handle.detector.name} returned {type(landmarks).__name__}, expected LandmarkSet")

            if not landmarks.is_empty and len(landmarks) != handle.topology.landmark_count:
                self._stats['errors'] += 1
                raise InferenceError(
                    f"{handle.detector.name} returned {len(landmarks)} landmarks, "
                    f"expected {handle.topology.landmark_count}"
                )

            latency_ms = (time.perf_counter() - start) * 1000.0
            if self._stats['inferences'] == 0:
                self._latency_ms = latency_ms
            else:
                self._latency_ms = (
                    self.latency_smoothing * self._latency_ms
                    + (1 - self.latency_smoothing) * latency_ms
                )
            self._stats['inferences'] += 1
            if landmarks.is_empty:
                self._stats['empty_results'] += 1

            return landmarks

    # ------------------------------------------------------------------
    # 释放
    # ------------------------------------------------------------------

    def dispose(self, handle: Optional[PoseHandle]):
        """释放模型资源（重复调用为空操作）"""
        if handle is None:
            return
        # 等待进行中的 run 结束
        with handle.run_lock:
            if handle.disposed:
                return
            handle.disposed = True
            try:
                handle.detector.close()
                logger.info(f"姿态模型已释放 #{handle.handle_id}")
            except Exception as e:
                logger.warning(f"释放姿态模型 #{handle.handle_id} 异常: {e}")

    def shutdown(self):
        """关闭后台加载线程"""
        with self._executor_lock:
            if self._executor is not None:
                self._executor.shutdown(wait=False, cancel_futures=True)
                self._executor = None

    def _get_speed_fps(self) -> float:
        return 1000.0 / self._latency_ms if self._latency_ms > 0 else 0.0

    def get_stats(self) -> Dict[str, Any]:
        """
        获取统计信息

        Returns:
            包含加载/推理计数与延迟的字典
        """
        stats = dict(self._stats)
        stats['backend'] = self.backend
        stats['latency_ms'] = self._latency_ms
        stats['speed_fps'] = self._get_speed_fps()
        return stats
