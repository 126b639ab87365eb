"""
帧获取（Frame Acquisition）
========================

两阶段就绪:
1. 打开设备（CameraInterface.initialize）
2. 预热：等待第一帧真正可读（CameraWarmupManager）

acquire() 只有在帧已经开始流动后才返回 StreamHandle。
release() 停止底层采集，可重复调用。
"""
import threading
from dataclasses import dataclass
from typing import Callable, Optional, Union

import numpy as np

from ..core.errors import AcquisitionError
from ..core.logger import logger
from .camera_interface import CameraInterface
from .warmup_manager import CameraWarmupManager
from .webcam_manager import WebcamManager


@dataclass(frozen=True)
class CameraConstraints:
    """请求的采集分辨率"""
    width: int = 1280
    height: int = 720


CameraFactory = Callable[[Union[int, str], CameraConstraints, int], CameraInterface]


def _default_camera_factory(source, constraints: CameraConstraints, max_read_failures: int) -> CameraInterface:
    return WebcamManager(
        source=source,
        width=constraints.width,
        height=constraints.height,
        max_read_failures=max_read_failures,
    )


class StreamHandle:
    """
    已就绪的视频流句柄

    latest_frame() 只返回尚未取过的新帧，避免同一帧被重复推理。
    """

    def __init__(self, camera: CameraInterface, constraints: CameraConstraints):
        self._camera = camera
        self.constraints = constraints
        self._lock = threading.Lock()
        self._released = False
        self._last_seq: Optional[int] = None

    @property
    def camera(self) -> CameraInterface:
        return self._camera

    @property
    def released(self) -> bool:
        return self._released

    def latest_frame(self) -> Optional[np.ndarray]:
        """
        获取最新 RGB 帧（非阻塞）

        Returns:
            新帧；自上次调用后没有新帧时返回 None

        Raises:
            AcquisitionError: 句柄已释放，或设备在运行中进入 error 状态
        """
        with self._lock:
            if self._released:
                raise AcquisitionError("Stream handle already released")

            if self._camera.get_camera_status() == "error":
                raise AcquisitionError("Camera stream lost (device reported error)")

            latest = self._camera.get_latest_frame()
            if latest is None:
                return None

            seq, frame = latest
            if seq == self._last_seq:
                return None
            self._last_seq = seq
            return frame

    def _mark_released(self) -> bool:
        with self._lock:
            if self._released:
                return False
            self._released = True
            return True


class FrameAcquisition:
    """相机获取与释放"""

    def __init__(self,
                 source: Union[int, str] = 0,
                 camera_factory: Optional[CameraFactory] = None,
                 warmup_timeout: float = 5.0,
                 poll_interval: float = 0.05,
                 max_read_failures: int = 30):
        self.source = source
        self._camera_factory = camera_factory or _default_camera_factory
        self.warmup_timeout = warmup_timeout
        self.poll_interval = poll_interval
        self.max_read_failures = max_read_failures

    @classmethod
    def from_config(cls, config, **kwargs) -> "FrameAcquisition":
        """从 SystemConfig 构造（kwargs 覆盖配置项）"""
        camera_cfg = config.camera
        params = dict(
            source=camera_cfg.get("source", 0),
            warmup_timeout=camera_cfg.get("warmup_timeout", 5.0),
            poll_interval=camera_cfg.get("poll_interval", 0.05),
            max_read_failures=camera_cfg.get("max_read_failures", 30),
        )
        params.update(kwargs)
        return cls(**params)

    def acquire(self, constraints: Optional[CameraConstraints] = None) -> StreamHandle:
        """
        打开相机并等待帧开始流动

        Raises:
            AcquisitionError: 设备不存在、权限被拒或预热超时
        """
        constraints = constraints or CameraConstraints()
        camera = self._camera_factory(self.source, constraints, self.max_read_failures)

        try:
            camera.initialize()
        except AcquisitionError:
            camera.cleanup()
            raise
        except Exception as e:
            camera.cleanup()
            raise AcquisitionError(f"Camera initialization failed: {e}") from e

        warmup = CameraWarmupManager(camera, timeout=self.warmup_timeout, poll_interval=self.poll_interval)
        if not warmup.warmup():
            status = camera.get_camera_status()
            camera.cleanup()
            raise AcquisitionError(
                f"Camera produced no frames within {self.warmup_timeout:.1f}s (status: {status})"
            )

        logger.info(f"视频流已就绪: source={self.source!r}, {constraints.width}x{constraints.height}")
        return StreamHandle(camera, constraints)

    def release(self, handle: Optional[StreamHandle]) -> None:
        """停止底层采集（幂等）"""
        if handle is None:
            return
        if not handle._mark_released():
            return
        handle.camera.cleanup()
        logger.info("视频流已释放")
