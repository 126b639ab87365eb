import math
import os
import threading
import time

# 测试期间不写日志文件
os.environ.setdefault("POSTURE_COACH_LOG_TO_FILE", "0")

import numpy as np
import pytest

from posture_coach.camera.camera_interface import CameraInterface
from posture_coach.core.errors import AcquisitionError
from posture_coach.detection.base import PoseDetector
from posture_coach.pose.topology import BLAZEPOSE_33
from posture_coach.pose.types import Landmark, LandmarkSet


def make_landmarks(knee_angle=None, visibility=1.0, topology=BLAZEPOSE_33, hip=None, knee=None, ankle=None):
    """
    构造一个完整关键点集，左髋-左膝-左踝夹角为 knee_angle（度）

    hip/knee/ankle 可直接给出 (x, y) 以构造退化几何。
    """
    knee_xy = knee or (0.5, 0.5)
    hip_xy = hip or (knee_xy[0], knee_xy[1] - 0.2)
    if ankle is not None:
        ankle_xy = ankle
    else:
        theta = math.radians(knee_angle if knee_angle is not None else 170.0)
        ankle_xy = (knee_xy[0] + 0.2 * math.sin(theta), knee_xy[1] - 0.2 * math.cos(theta))

    points = [Landmark(0.5, 0.5, 0.0, visibility) for _ in range(topology.landmark_count)]
    points[topology.index_of("left_hip")] = Landmark(*hip_xy, 0.0, visibility)
    points[topology.index_of("left_knee")] = Landmark(*knee_xy, 0.0, visibility)
    points[topology.index_of("left_ankle")] = Landmark(*ankle_xy, 0.0, visibility)
    return LandmarkSet(points, topology)


def blank_frame(width=64, height=48):
    return np.zeros((height, width, 3), dtype=np.uint8)


def wait_for(predicate, timeout=2.0, interval=0.01):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()


class FakeDetector(PoseDetector):
    """按脚本返回结果的检测后端；脚本项可以是 LandmarkSet、异常或可调用对象"""

    def __init__(self, script=None, topology=BLAZEPOSE_33):
        self.script = list(script or [])
        self._topology = topology
        self.timestamps = []
        self.close_calls = 0

    @property
    def name(self):
        return "fake"

    @property
    def topology(self):
        return self._topology

    def detect(self, rgb_frame, timestamp_ms):
        self.timestamps.append(timestamp_ms)
        if not self.script:
            return LandmarkSet.empty(self._topology)
        item = self.script.pop(0)
        if isinstance(item, Exception):
            raise item
        if callable(item):
            return item()
        return item

    def close(self):
        self.close_calls += 1


class FakeCamera(CameraInterface):
    """
    内存相机

    auto_advance=True 时每次 get_latest_frame 都产生一个新帧序号。
    """

    def __init__(self, frame=None, auto_advance=True, fail_open=False, produce_frames=True):
        self.frame = frame if frame is not None else blank_frame()
        self.auto_advance = auto_advance
        self.fail_open = fail_open
        self.produce_frames = produce_frames
        self.status = "not_initialized"
        self.seq = 0
        self.initialize_calls = 0
        self.cleanup_calls = 0
        self._initialized = False
        self._lock = threading.Lock()

    def initialize(self):
        self.initialize_calls += 1
        if self.fail_open:
            self.status = "error"
            raise AcquisitionError("no camera device")
        self._initialized = True
        self.status = "ok"
        return True

    def get_latest_frame(self):
        with self._lock:
            if not self.produce_frames:
                return None
            if self.auto_advance or self.seq == 0:
                self.seq += 1
            return self.seq, self.frame

    def get_camera_status(self):
        return self.status

    def get_telemetry(self):
        return {"status": self.status, "frames_read": self.seq}

    def cleanup(self):
        self.cleanup_calls += 1
        self._initialized = False
        self.status = "stopped"

    def is_initialized(self):
        return self._initialized


class FakeSink:
    def __init__(self):
        self.presented = []
        self.clear_calls = 0

    def present(self, frame, overlay, feedback=None, knee_angle=None):
        self.presented.append((frame, overlay, feedback, knee_angle))

    def clear(self):
        self.clear_calls += 1


@pytest.fixture
def model_file(tmp_path):
    path = tmp_path / "pose_landmarker_test.task"
    path.write_bytes(b"\x00" * 2048)
    return path
