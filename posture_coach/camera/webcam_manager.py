"""
Webcam Manager
Implements CameraInterface on top of OpenCV VideoCapture
"""
import threading
import time
from collections import deque
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Tuple, Union

import cv2
import numpy as np

from ..core.errors import AcquisitionError
from ..core.logger import logger
from .camera_interface import CameraInterface


class WebcamManager(CameraInterface):
    """
    Webcam / video file capture manager

    A background grabber thread reads frames continuously and keeps only the
    newest one, so a slow consumer drops frames instead of building a backlog.
    """

    def __init__(self,
                 source: Union[int, str] = 0,
                 width: int = 1280,
                 height: int = 720,
                 max_read_failures: int = 30,
                 capture_factory: Optional[Callable[[Union[int, str]], Any]] = None):
        """
        Args:
            source: Camera index or video file path
            width: Requested capture width
            height: Requested capture height
            max_read_failures: Consecutive read failures before the device is marked "error"
            capture_factory: VideoCapture constructor (injectable for tests)
        """
        self.source = source
        self.width = int(width)
        self.height = int(height)
        self.max_read_failures = max(1, int(max_read_failures))
        self._capture_factory = capture_factory or cv2.VideoCapture

        self._cap = None
        self._is_initialized = False
        self._camera_status = "not_initialized"

        # 最新帧（线程安全）
        self._lock = threading.RLock()
        self._frame: Optional[np.ndarray] = None
        self._frame_seq = 0
        self._last_frame_time: Optional[float] = None

        # 统计
        self._frames_read = 0
        self._read_failures = 0
        self._consecutive_failures = 0
        self._frame_times = deque(maxlen=30)

        self._grab_thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()
        self._file_frame_interval = 0.0

    @property
    def is_file_source(self) -> bool:
        return isinstance(self.source, str) and Path(self.source).exists()

    def initialize(self) -> bool:
        with self._lock:
            if self._is_initialized:
                return True

            self._camera_status = "initializing"
            cap = self._capture_factory(self.source)
            if cap is None or not cap.isOpened():
                self._camera_status = "error"
                if cap is not None:
                    cap.release()
                raise AcquisitionError(
                    f"Could not open camera source {self.source!r} (device missing or permission denied)"
                )

            if not self.is_file_source:
                cap.set(cv2.CAP_PROP_FRAME_WIDTH, self.width)
                cap.set(cv2.CAP_PROP_FRAME_HEIGHT, self.height)
            else:
                # 视频文件按原始帧率回放
                fps = cap.get(cv2.CAP_PROP_FPS) or 0.0
                self._file_frame_interval = 1.0 / fps if fps > 0 else 0.0

            self._cap = cap
            self._is_initialized = True
            self._stop_event.clear()
            self._grab_thread = threading.Thread(
                target=self._grab_loop,
                name="WebcamGrabber",
                daemon=True,
            )
            self._grab_thread.start()

        logger.info(f"Camera opened: source={self.source!r}, requested={self.width}x{self.height}")
        return True

    def _grab_loop(self):
        """Background grabber: keep only the latest frame"""
        cap = self._cap
        while not self._stop_event.is_set():
            ok, frame = cap.read()
            if not ok or frame is None:
                with self._lock:
                    self._read_failures += 1
                    self._consecutive_failures += 1
                    if self._consecutive_failures >= self.max_read_failures:
                        self._camera_status = "error"
                        logger.error(
                            f"Camera read failed {self._consecutive_failures} times in a row, "
                            f"marking device as error"
                        )
                        break
                self._stop_event.wait(0.01)
                continue

            rgb = cv2.cvtColor(frame, cv2.COLOR_BGR2RGB)
            now = time.monotonic()
            with self._lock:
                self._frame = rgb
                self._frame_seq += 1
                self._last_frame_time = now
                self._frames_read += 1
                self._consecutive_failures = 0
                self._frame_times.append(now)
                if self._camera_status == "initializing":
                    self._camera_status = "ok"

            if self._file_frame_interval:
                self._stop_event.wait(self._file_frame_interval)

    def get_latest_frame(self) -> Optional[Tuple[int, np.ndarray]]:
        with self._lock:
            if self._frame is None:
                return None
            return self._frame_seq, self._frame

    def get_camera_status(self) -> str:
        with self._lock:
            return self._camera_status

    def _calculate_fps(self) -> float:
        if len(self._frame_times) < 2:
            return 0.0
        span = self._frame_times[-1] - self._frame_times[0]
        return (len(self._frame_times) - 1) / span if span > 0 else 0.0

    def get_telemetry(self) -> Dict[str, Any]:
        with self._lock:
            frame_age_ms = (
                (time.monotonic() - self._last_frame_time) * 1000.0
                if self._last_frame_time is not None else None
            )
            return {
                "status": self._camera_status,
                "source": self.source,
                "frames_read": self._frames_read,
                "read_failures": self._read_failures,
                "consecutive_failures": self._consecutive_failures,
                "fps": self._calculate_fps(),
                "frame_age_ms": frame_age_ms,
            }

    def cleanup(self) -> None:
        with self._lock:
            if not self._is_initialized:
                return
            self._is_initialized = False
            self._stop_event.set()
            grab_thread = self._grab_thread
            self._grab_thread = None

        if grab_thread is not None and grab_thread is not threading.current_thread():
            grab_thread.join(timeout=2.0)
            if grab_thread.is_alive():
                logger.warning("Camera grabber thread did not exit within 2.0s")

        with self._lock:
            if self._cap is not None:
                self._cap.release()
                self._cap = None
            self._frame = None
            self._camera_status = "stopped"

        logger.info(f"Camera released: source={self.source!r}")

    def is_initialized(self) -> bool:
        with self._lock:
            return self._is_initialized
