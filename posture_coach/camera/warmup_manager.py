"""
相机预热：设备打开后轮询，直到第一帧到达、超时或设备报错
"""
import math
import time

from ..core.logger import logger
from .camera_interface import CameraInterface


class CameraWarmupManager:
    """
    Second phase of acquisition: the device handle is open, now poll until
    the first frame arrives (or time out).
    """

    def __init__(self,
                 camera: CameraInterface,
                 timeout: float = 5.0,
                 poll_interval: float = 0.05):
        """
        Args:
            camera: CameraInterface instance (already initialized)
            timeout: Maximum time to wait for the first frame in seconds
            poll_interval: Poll interval in seconds (default 50ms)
        """
        self.camera = camera
        self.poll_interval = max(0.001, float(poll_interval))
        self.max_attempts = max(1, math.ceil(float(timeout) / self.poll_interval))

    def warmup(self) -> bool:
        """True once a frame is available, False on timeout or device error"""
        logger.info(f"相机预热中（最多 {self.max_attempts} 次轮询）")

        for attempt in range(self.max_attempts):
            if self.camera.get_latest_frame() is not None:
                logger.info(f"Camera frame ready (attempt {attempt + 1})")
                return True

            status = self.camera.get_camera_status()
            if status == "error":
                logger.error("Camera entered ERROR state during warmup")
                return False

            if attempt % 20 == 0 and attempt > 0:
                logger.info(f"  Camera status: {status} (waited {attempt * self.poll_interval:.1f}s)")

            time.sleep(self.poll_interval)

        logger.warning(
            "相机预热超时: "
            f"{self.max_attempts} 次轮询, 约 {self.max_attempts * self.poll_interval:.1f}s 内没有收到帧"
        )
        return False
