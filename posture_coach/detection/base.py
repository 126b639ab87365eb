"""
姿态检测后端抽象接口
==================

所有姿态检测后端（MediaPipe / YOLO Pose）都实现同一接口，
PoseEngine 只依赖此接口，便于替换模型或在测试中注入假后端。
"""
from abc import ABC, abstractmethod
from enum import Enum

from ..pose.topology import PoseTopology
from ..pose.types import LandmarkSet


class Delegate(Enum):
    """推理设备"""
    CPU = "CPU"
    GPU = "GPU"

    @classmethod
    def parse(cls, value) -> "Delegate":
        if isinstance(value, Delegate):
            return value
        try:
            return cls(str(value).strip().upper())
        except ValueError:
            raise ValueError(f"Unsupported delegate: {value!r} (expected CPU or GPU)") from None


class PoseDetector(ABC):
    """
    姿态检测后端接口

    实现类接收 RGB 图像 (H, W, 3 uint8)，返回单人 LandmarkSet（可为空）。
    视频模式下后端可能有跨帧状态，timestamp_ms 必须严格递增（由 PoseEngine 保证）。
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """后端名称（用于日志）"""

    @property
    @abstractmethod
    def topology(self) -> PoseTopology:
        """输出关键点拓扑"""

    @abstractmethod
    def detect(self, rgb_frame, timestamp_ms: int) -> LandmarkSet:
        """单帧推理"""

    @abstractmethod
    def close(self) -> None:
        """释放模型及设备资源"""
